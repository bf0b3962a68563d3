import json
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

logger = logging.getLogger("tetherdesk.audit")


def audit_event(
    action: str,
    user_id: Optional[int],
    payload: Dict[str, Any],
    *,
    db: Session | None = None,
    transaction_id: str | None = None,
    request_id: str | None = None,
    ip: str | None = None,
    user_agent: str | None = None,
) -> Optional[int]:
    """
    Persist audit event to database; if DB write fails, fall back to the log.

    Commits the given session, so call it after the business change has been committed.
    Returns the created audit log id when available.
    """
    event = {
        "action": action,
        "user_id": user_id,
        "transaction_id": transaction_id,
        "payload": payload,
        "timestamp": datetime.utcnow().isoformat(),
    }

    created_session = False
    session: Session | None = db
    try:
        from tetherdesk import models

        if session is None:
            from tetherdesk.database import SessionLocal

            session = SessionLocal()
            created_session = True

        log = models.AuditLog(
            action=action,
            user_id=user_id,
            transaction_id=transaction_id,
            payload_json=json.dumps(payload or {}, default=str),
            request_id=request_id,
            ip=ip,
            user_agent=user_agent,
        )
        session.add(log)
        session.commit()
        return getattr(log, "id", None)
    except SQLAlchemyError:
        if session is not None:
            session.rollback()
        logger.warning("audit_db_write_failed", extra={"audit_event": event})
        return None
    finally:
        if created_session and session is not None:
            session.close()
