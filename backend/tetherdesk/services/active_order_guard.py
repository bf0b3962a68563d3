from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tetherdesk import models
from tetherdesk.models.domain import ACTIVE_ORDER_STATUSES
from tetherdesk.services.errors import ActiveOrderExistsError, GuardUnavailableError
from tetherdesk.services.order_expiry import cancel_expired_orders

logger = logging.getLogger("tetherdesk.orders.guard")

ACTIVE_ORDER_MESSAGE = "Please complete your ongoing transaction first."


def count_active_orders(db: Session, user_id: int) -> int:
    return int(
        db.query(func.count(models.Order.id))
        .filter(models.Order.user_id == int(user_id))
        .filter(models.Order.status.in_(set(ACTIVE_ORDER_STATUSES)))
        .scalar()
        or 0
    )


def has_active_order(db: Session, user_id: int, *, now: datetime | None = None) -> bool:
    """True iff the user owns an order that is still pending or processing.

    Expired pending orders are closed first so they stop blocking the user. A data-store
    failure raises GuardUnavailableError instead of answering "no active order".
    """

    try:
        cancel_expired_orders(db, now=now, user_id=user_id)
        return count_active_orders(db, user_id) > 0
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error(
            "active_order_guard_failed",
            extra={"user_id": user_id, "error": str(exc)},
        )
        raise GuardUnavailableError(
            "Could not verify your open orders right now. Please try again shortly."
        ) from exc


def ensure_no_active_order(db: Session, user_id: int, *, now: datetime | None = None) -> None:
    if has_active_order(db, user_id, now=now):
        raise ActiveOrderExistsError(ACTIVE_ORDER_MESSAGE)


def get_active_order(db: Session, user_id: int) -> models.Order | None:
    return (
        db.query(models.Order)
        .filter(models.Order.user_id == int(user_id))
        .filter(models.Order.status.in_(set(ACTIVE_ORDER_STATUSES)))
        .order_by(models.Order.created_at.desc())
        .first()
    )
