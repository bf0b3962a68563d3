from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable

from sqlalchemy.orm import Session

from tetherdesk import models
from tetherdesk.models.domain import OrderStatus

# Which statuses each target may be entered from. Terminal states have no exits.
USER_PROOF_FROM: frozenset[OrderStatus] = frozenset({OrderStatus.pending})
MODERATION_FROM: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.processing: frozenset({OrderStatus.pending}),
    # Moderators may settle or close straight from pending.
    OrderStatus.completed: frozenset({OrderStatus.pending, OrderStatus.processing}),
    OrderStatus.failed: frozenset({OrderStatus.pending, OrderStatus.processing}),
    OrderStatus.cancelled: frozenset({OrderStatus.pending, OrderStatus.processing}),
}
EXPIRY_FROM: frozenset[OrderStatus] = frozenset({OrderStatus.pending})


@dataclass(frozen=True)
class TransitionResult:
    updated: bool
    rowcount: int


def allowed_moderation_sources(to_status: OrderStatus) -> frozenset[OrderStatus]:
    return MODERATION_FROM.get(to_status, frozenset())


def atomic_transition_order_status(
    *,
    db: Session,
    order_id: str,
    to_status: OrderStatus,
    allowed_from: Iterable[OrderStatus],
    updates: dict[str, Any] | None = None,
    user_id: int | None = None,
    now: datetime | None = None,
) -> TransitionResult:
    """Apply an order status transition with an atomic DB guard.

    A single conditional UPDATE keeps out-of-order or concurrent transitions from being
    persisted:

        UPDATE transactions
        SET status = :to_status, updated_at = :now, ...
        WHERE id = :order_id AND status IN (:allowed_from) [AND user_id = :user_id]

    Callers control commit/rollback.
    """

    if now is None:
        now = datetime.utcnow()

    update_values: dict[str, Any] = {"status": to_status, "updated_at": now}
    if updates:
        update_values.update(updates)

    query = (
        db.query(models.Order)
        .filter(models.Order.id == str(order_id))
        .filter(models.Order.status.in_(set(allowed_from)))
    )
    if user_id is not None:
        query = query.filter(models.Order.user_id == int(user_id))

    rowcount = query.update(update_values, synchronize_session=False)

    return TransitionResult(updated=rowcount > 0, rowcount=int(rowcount or 0))
