from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy.orm import Session

from tetherdesk import models
from tetherdesk.models.domain import OrderStatus
from tetherdesk.services.countdown import as_naive_utc
from tetherdesk.services.order_transitions import EXPIRY_FROM, atomic_transition_order_status

logger = logging.getLogger("tetherdesk.orders.expiry")

EXPIRED_NOTE = "Payment window expired before proof was submitted."


def cancel_expired_orders(
    db: Session,
    *,
    now: datetime | None = None,
    user_id: int | None = None,
) -> list[str]:
    """Cancel pending orders whose payment window has closed.

    Runs from the background sweep and lazily before the active-order guard. Each order is
    moved with the same conditional UPDATE as any other transition, so an order that reached
    `processing` in the meantime is left alone. Commits when anything changed.
    """

    now = as_naive_utc(now or datetime.utcnow())

    query = (
        db.query(models.Order.id)
        .filter(models.Order.status == OrderStatus.pending)
        .filter(models.Order.timer_expires_at <= now)
    )
    if user_id is not None:
        query = query.filter(models.Order.user_id == int(user_id))

    candidate_ids = [row[0] for row in query.all()]
    if not candidate_ids:
        return []

    cancelled: list[str] = []
    for order_id in candidate_ids:
        result = atomic_transition_order_status(
            db=db,
            order_id=order_id,
            to_status=OrderStatus.cancelled,
            allowed_from=EXPIRY_FROM,
            updates={"admin_notes": EXPIRED_NOTE},
            now=now,
        )
        if result.updated:
            cancelled.append(order_id)

    if cancelled:
        db.commit()
        logger.info(
            "expired_orders_cancelled",
            extra={"count": len(cancelled), "order_ids": cancelled, "user_id": user_id},
        )
    return cancelled
