import json
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import StreamingResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tetherdesk import models
from tetherdesk.api.deps import get_current_user, get_db, http_error
from tetherdesk.core.observability import request_context
from tetherdesk.models.domain import OrderStatus
from tetherdesk.schemas import ActiveOrderRead, OrderCreate, OrderRead, PaymentInstructions
from tetherdesk.services import order_lifecycle
from tetherdesk.services.active_order_guard import get_active_order, has_active_order
from tetherdesk.services.audit import audit_event
from tetherdesk.services.countdown import PaymentCountdown, format_remaining, remaining_seconds
from tetherdesk.services.errors import ExchangeError
from tetherdesk.services.payment_destinations import order_payment_instructions
from tetherdesk.services.proof_storage import public_proof_url
from tetherdesk.services.scheduler import run_expiry_sweep

router = APIRouter(prefix="/orders", tags=["orders"])

_STORE_UNAVAILABLE = "Order store unavailable. Please try again shortly."


def build_order_read(db: Session, order: models.Order, schema=OrderRead, now: datetime | None = None):
    """Serialize an order with its countdown and payment details derived at read time."""

    left = remaining_seconds(order.timer_expires_at, now) if order.status == OrderStatus.pending else 0
    return schema.model_validate(order).model_copy(
        update={
            "remaining_seconds": left,
            "is_expired": order.status == OrderStatus.pending and left == 0,
            "proof_url": public_proof_url(order.proof_path),
            "payment": PaymentInstructions(**order_payment_instructions(db, order)),
        }
    )


@router.get("", response_model=list[OrderRead])
def list_my_orders(
    db: Session = Depends(get_db),
    current_user: models.Profile = Depends(get_current_user),
):
    return [
        build_order_read(db, o)
        for o in order_lifecycle.list_user_orders(db, user_id=current_user.id)
    ]


@router.get("/active", response_model=ActiveOrderRead)
def read_active_order(
    db: Session = Depends(get_db),
    current_user: models.Profile = Depends(get_current_user),
):
    try:
        active = has_active_order(db, current_user.id)
    except ExchangeError as exc:
        raise http_error(exc)
    order = get_active_order(db, current_user.id) if active else None
    return ActiveOrderRead(
        has_active_order=active,
        order=build_order_read(db, order) if order else None,
    )


@router.post("", response_model=OrderRead, status_code=status.HTTP_201_CREATED)
def create_order(
    request: Request,
    payload: OrderCreate,
    db: Session = Depends(get_db),
    current_user: models.Profile = Depends(get_current_user),
):
    try:
        order = order_lifecycle.create_order(
            db,
            user_id=current_user.id,
            request=order_lifecycle.OrderRequest(**payload.model_dump()),
        )
    except ExchangeError as exc:
        raise http_error(exc)
    except SQLAlchemyError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=_STORE_UNAVAILABLE)

    audit_event(
        "orders.created",
        current_user.id,
        {
            "direction": order.direction.value,
            "inr_amount": order.inr_amount,
            "exchange_rate": order.exchange_rate,
            "crypto_amount": order.crypto_amount,
        },
        db=db,
        transaction_id=order.id,
        **request_context(request),
    )
    return build_order_read(db, order)


@router.get("/{order_id}", response_model=OrderRead)
def read_order(
    order_id: str,
    db: Session = Depends(get_db),
    current_user: models.Profile = Depends(get_current_user),
):
    try:
        order = order_lifecycle.get_user_order(db, user_id=current_user.id, order_id=order_id)
    except ExchangeError as exc:
        raise http_error(exc)
    return build_order_read(db, order)


@router.post("/{order_id}/proof", response_model=OrderRead)
async def submit_proof(
    order_id: str,
    request: Request,
    file: UploadFile = File(...),
    utr_number: Optional[str] = Form(default=None),
    db: Session = Depends(get_db),
    current_user: models.Profile = Depends(get_current_user),
):
    content = await file.read()
    try:
        order = await run_in_threadpool(
            order_lifecycle.submit_proof,
            db,
            user_id=current_user.id,
            order_id=order_id,
            filename=file.filename or "proof",
            content=content,
            content_type=file.content_type or "",
            utr_number=utr_number,
        )
    except ExchangeError as exc:
        raise http_error(exc)
    except SQLAlchemyError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=_STORE_UNAVAILABLE)

    audit_event(
        "orders.proof_submitted",
        current_user.id,
        {"utr_number": order.utr_number, "proof_path": order.proof_path},
        db=db,
        transaction_id=order.id,
        **request_context(request),
    )
    return build_order_read(db, order)


def _sse(event: str, data: dict) -> str:
    return f"event: {event}\ndata: {json.dumps(data)}\n\n"


@router.get("/{order_id}/countdown")
def stream_countdown(
    order_id: str,
    request: Request,
    db: Session = Depends(get_db),
    current_user: models.Profile = Depends(get_current_user),
):
    """Server-sent countdown for a pending order's payment window.

    Emits a `tick` per second and a final `expired` event; stops early when the client
    disconnects. Orders that are no longer pending get a single `status` event.
    """

    try:
        order = order_lifecycle.get_user_order(db, user_id=current_user.id, order_id=order_id)
    except ExchangeError as exc:
        raise http_error(exc)

    # Plain values only: the DB session is closed once streaming starts.
    oid = order.id
    user_id = current_user.id
    order_status = order.status
    expires_at = order.timer_expires_at

    async def events():
        if order_status != OrderStatus.pending:
            yield _sse("status", {"order_id": oid, "status": order_status.value})
            return

        countdown = PaymentCountdown(expires_at)
        async for left in countdown.run():
            if await request.is_disconnected():
                return
            if left > 0:
                yield _sse(
                    "tick",
                    {"order_id": oid, "remaining_seconds": left, "display": format_remaining(left)},
                )
        # Close the window server-side as soon as it lapses.
        await run_in_threadpool(run_expiry_sweep, user_id)
        yield _sse("expired", {"order_id": oid, "remaining_seconds": 0, "display": "00:00"})

    return StreamingResponse(
        events(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
