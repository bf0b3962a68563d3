"""Order lifecycle: create -> submit proof -> moderate.

States: pending -> processing -> {completed | failed | cancelled}. Only pending and
processing are live; every write goes through `atomic_transition_order_status` so a
transition is applied only if the row is still in an allowed source state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from tetherdesk import models
from tetherdesk.config import settings
from tetherdesk.models.domain import (
    CryptoNetwork,
    OrderStatus,
    PayoutMethod,
    TicketStatus,
    TradeDirection,
)
from tetherdesk.services import proof_storage
from tetherdesk.services.active_order_guard import ACTIVE_ORDER_MESSAGE, ensure_no_active_order
from tetherdesk.services.countdown import as_naive_utc, is_expired, payment_window
from tetherdesk.services.errors import (
    ActiveOrderExistsError,
    InvalidQuoteError,
    InvalidTransitionError,
    OrderDetailsError,
    OrderNotFoundError,
    PaymentWindowExpiredError,
)
from tetherdesk.services.order_expiry import cancel_expired_orders
from tetherdesk.services.order_transitions import (
    MODERATION_FROM,
    USER_PROOF_FROM,
    atomic_transition_order_status,
)
from tetherdesk.services.rate_table import display_amount, load_active_brackets, quote_from_table

logger = logging.getLogger("tetherdesk.orders")

# Accepted quotes are re-priced server-side; a client rate further off than this is stale.
RATE_TOLERANCE = 1e-9


@dataclass(frozen=True)
class OrderRequest:
    direction: TradeDirection
    inr_amount: float
    crypto_network: CryptoNetwork = CryptoNetwork.trc20
    quoted_rate: Optional[float] = None
    # buy
    wallet_address: Optional[str] = None
    # sell
    payout_method: Optional[PayoutMethod] = None
    upi_id: Optional[str] = None
    bank_name: Optional[str] = None
    account_number: Optional[str] = None
    ifsc_code: Optional[str] = None
    account_holder_name: Optional[str] = None


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    s = str(value).strip()
    return s or None


def _direction_fields(req: OrderRequest) -> dict:
    if req.direction == TradeDirection.buy:
        wallet = _clean(req.wallet_address)
        if not wallet:
            raise OrderDetailsError("A destination wallet address is required for buy orders")
        return {"user_wallet_address": wallet, "crypto_network": req.crypto_network}

    method = req.payout_method
    if method is None:
        raise OrderDetailsError("A payout method is required for sell orders")
    if method == PayoutMethod.upi:
        upi_id = _clean(req.upi_id)
        if not upi_id:
            raise OrderDetailsError("A UPI ID is required for UPI payouts")
        return {
            "crypto_network": req.crypto_network,
            "payout_method": method,
            "upi_id": upi_id,
            "account_holder_name": _clean(req.account_holder_name),
        }

    bank = {
        "bank_name": _clean(req.bank_name),
        "account_number": _clean(req.account_number),
        "ifsc_code": _clean(req.ifsc_code),
        "account_holder_name": _clean(req.account_holder_name),
    }
    missing = [k for k, v in bank.items() if not v]
    if missing:
        raise OrderDetailsError(f"Missing bank payout details: {', '.join(missing)}")
    bank["ifsc_code"] = bank["ifsc_code"].upper()
    return {"crypto_network": req.crypto_network, "payout_method": method, **bank}


def _ticket_for_new_order(order: models.Order) -> models.SupportTicket:
    if order.direction == TradeDirection.buy:
        subject = f"Buy Order Created: {order.id}"
        message = (
            f"A new buy order for ₹{display_amount(order.inr_amount)} was created. "
            "Awaiting payment."
        )
    else:
        subject = f"Sell Order Created: {order.id}"
        message = (
            f"A new sell order for {display_amount(order.crypto_amount, 4)} USDT was created. "
            "Awaiting crypto deposit."
        )
    return models.SupportTicket(
        user_id=order.user_id,
        transaction_id=order.id,
        subject=subject,
        message=message,
        status=TicketStatus.open,
    )


def create_order(
    db: Session,
    *,
    user_id: int,
    request: OrderRequest,
    now: datetime | None = None,
) -> models.Order:
    """Accept a quote: price it from the live table, open the payment window, open a ticket.

    Raises InvalidQuoteError / OrderDetailsError before touching the store,
    ActiveOrderExistsError when the user already has a live order (including one created
    concurrently, which the unique index rejects) and lets SQLAlchemyError through after
    rolling back.
    """

    now = as_naive_utc(now or datetime.utcnow())
    fields = _direction_fields(request)

    q = quote_from_table(request.inr_amount, request.direction, load_active_brackets(db))
    if request.quoted_rate is not None and abs(float(request.quoted_rate) - q.rate) > RATE_TOLERANCE:
        raise InvalidQuoteError(
            "The rate changed since your quote. Please review the new price.",
            code="RATE_CHANGED",
        )

    ensure_no_active_order(db, user_id, now=now)

    started_at, expires_at = payment_window(now, settings.payment_window_minutes)
    order = models.Order(
        user_id=int(user_id),
        direction=q.direction,
        status=OrderStatus.pending,
        inr_amount=q.inr_amount,
        crypto_amount=q.crypto_amount,
        exchange_rate=q.rate,
        rate_bracket_id=q.bracket_id,
        timer_started_at=started_at,
        timer_expires_at=expires_at,
        **fields,
    )
    try:
        db.add(order)
        db.flush()
        db.add(_ticket_for_new_order(order))
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        logger.info("order_create_conflict", extra={"user_id": user_id, "error": str(exc)})
        raise ActiveOrderExistsError(ACTIVE_ORDER_MESSAGE) from exc
    except SQLAlchemyError:
        db.rollback()
        raise

    db.refresh(order)
    logger.info(
        "order_created",
        extra={
            "order_id": order.id,
            "user_id": user_id,
            "direction": order.direction.value,
            "inr_amount": order.inr_amount,
            "rate": order.exchange_rate,
        },
    )
    return order


def get_user_order(db: Session, *, user_id: int, order_id: str) -> models.Order:
    order = db.get(models.Order, str(order_id))
    if not order or int(order.user_id) != int(user_id):
        raise OrderNotFoundError("Order not found")
    return order


def list_user_orders(db: Session, *, user_id: int) -> list[models.Order]:
    return (
        db.query(models.Order)
        .filter(models.Order.user_id == int(user_id))
        .order_by(models.Order.created_at.desc())
        .all()
    )


def submit_proof(
    db: Session,
    *,
    user_id: int,
    order_id: str,
    filename: str,
    content: bytes,
    content_type: str,
    utr_number: Optional[str] = None,
    now: datetime | None = None,
) -> models.Order:
    """Attach proof of payment (buy) or deposit (sell) and move pending -> processing.

    The file is stored first. If the status update then fails the stored file is removed,
    so a proof never outlives a rejected submission.
    """

    now = as_naive_utc(now or datetime.utcnow())
    order = get_user_order(db, user_id=user_id, order_id=order_id)

    if order.status not in USER_PROOF_FROM:
        if order.status == OrderStatus.processing:
            raise InvalidTransitionError("Proof has already been submitted for this order")
        raise InvalidTransitionError(f"Order is {order.status.value}; proof can no longer be submitted")

    if is_expired(order.timer_expires_at, now):
        cancel_expired_orders(db, now=now, user_id=user_id)
        raise PaymentWindowExpiredError("The payment window for this order has expired")

    utr = _clean(utr_number)
    if order.direction == TradeDirection.buy and not utr:
        raise OrderDetailsError("A UTR / payment reference number is required")

    stored = proof_storage.write_payment_proof(
        user_id=user_id,
        order_id=order.id,
        filename=filename,
        content=content,
        content_type=content_type,
        tag="sell" if order.direction == TradeDirection.sell else None,
    )

    try:
        result = atomic_transition_order_status(
            db=db,
            order_id=order.id,
            to_status=OrderStatus.processing,
            allowed_from=USER_PROOF_FROM,
            user_id=user_id,
            updates={
                "proof_path": stored["key"],
                "utr_number": utr,
                "proof_submitted_at": now,
            },
            now=now,
        )
        if not result.updated:
            db.rollback()
            proof_storage.delete_payment_proof(stored["key"])
            raise InvalidTransitionError("Order status changed; proof was not applied")
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        proof_storage.delete_payment_proof(stored["key"])
        logger.error("proof_status_update_failed", extra={"order_id": order.id})
        raise

    db.refresh(order)
    logger.info(
        "order_proof_submitted",
        extra={"order_id": order.id, "user_id": user_id, "proof_size": stored["size"]},
    )
    return order


def moderate_order(
    db: Session,
    *,
    moderator_id: int,
    order_id: str,
    to_status: OrderStatus,
    admin_notes: Optional[str] = None,
    now: datetime | None = None,
) -> tuple[models.Order, OrderStatus]:
    """Moderator transition from a live state. Returns the order and its previous status."""

    now = as_naive_utc(now or datetime.utcnow())
    allowed_from = MODERATION_FROM.get(to_status)
    if not allowed_from:
        raise InvalidTransitionError(f"Moderators cannot set status {to_status.value}")

    order = db.get(models.Order, str(order_id))
    if not order:
        raise OrderNotFoundError("Order not found")
    from_status = order.status

    updates: dict = {"processed_by": int(moderator_id)}
    if _clean(admin_notes):
        updates["admin_notes"] = _clean(admin_notes)
    if to_status == OrderStatus.completed:
        updates["completed_at"] = now

    try:
        result = atomic_transition_order_status(
            db=db,
            order_id=order.id,
            to_status=to_status,
            allowed_from=allowed_from,
            updates=updates,
            now=now,
        )
        if not result.updated:
            db.rollback()
            db.refresh(order)
            raise InvalidTransitionError(
                f"Order is {order.status.value}; cannot move to {to_status.value}"
            )
        if to_status == OrderStatus.completed:
            _record_completed_volume(db, user_id=order.user_id, inr_amount=order.inr_amount)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    db.refresh(order)
    logger.info(
        "order_moderated",
        extra={
            "order_id": order.id,
            "from_status": from_status.value,
            "to_status": to_status.value,
            "moderator_id": moderator_id,
        },
    )
    return order, from_status


def _record_completed_volume(db: Session, *, user_id: int, inr_amount: float) -> None:
    db.query(models.Profile).filter(models.Profile.id == int(user_id)).update(
        {
            models.Profile.total_transactions: models.Profile.total_transactions + 1,
            models.Profile.total_volume: models.Profile.total_volume + float(inr_amount),
        },
        synchronize_session=False,
    )
