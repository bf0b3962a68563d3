"""Moderation console. Every route here is gated server-side by `require_admin`."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from tetherdesk import models
from tetherdesk.api.deps import get_db, http_error, require_admin
from tetherdesk.api.routes.orders import build_order_read
from tetherdesk.core.observability import request_context
from tetherdesk.models.domain import OrderStatus, TicketStatus
from tetherdesk.schemas import (
    AdminOrderRead,
    AdminTicketRead,
    DashboardStats,
    ModerationResult,
    OrderModerate,
    PaymentMethodCreate,
    PaymentMethodRead,
    ProfileRead,
    ProfileVerificationUpdate,
    RateBracketCreate,
    RateBracketRead,
    RateBracketUpdate,
    TicketStatusUpdate,
)
from tetherdesk.services import order_lifecycle
from tetherdesk.services.audit import audit_event
from tetherdesk.services.errors import ExchangeError

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


@router.get("/orders", response_model=list[AdminOrderRead])
def list_orders(
    status_filter: Optional[OrderStatus] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    query = db.query(models.Order).options(joinedload(models.Order.user))
    if status_filter is not None:
        query = query.filter(models.Order.status == status_filter)
    orders = (
        query.order_by(models.Order.created_at.desc(), models.Order.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return [build_order_read(db, o, schema=AdminOrderRead) for o in orders]


@router.get("/orders/{order_id}", response_model=AdminOrderRead)
def read_order(order_id: str, db: Session = Depends(get_db)):
    order = db.get(models.Order, order_id)
    if not order:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
    return build_order_read(db, order, schema=AdminOrderRead)


@router.post("/orders/{order_id}/moderate", response_model=ModerationResult)
def moderate_order(
    order_id: str,
    payload: OrderModerate,
    request: Request,
    db: Session = Depends(get_db),
    admin: models.Profile = Depends(require_admin),
):
    try:
        order, from_status = order_lifecycle.moderate_order(
            db,
            moderator_id=admin.id,
            order_id=order_id,
            to_status=payload.status,
            admin_notes=payload.admin_notes,
        )
    except ExchangeError as exc:
        raise http_error(exc)
    except SQLAlchemyError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Order store unavailable. Please try again shortly.",
        )

    audit_event(
        "admin.order_moderated",
        admin.id,
        {
            "from_status": from_status.value,
            "to_status": order.status.value,
            "admin_notes": order.admin_notes,
        },
        db=db,
        transaction_id=order.id,
        **request_context(request),
    )
    return ModerationResult(
        order=build_order_read(db, order, schema=AdminOrderRead),
        from_status=from_status,
    )


@router.get("/tickets", response_model=list[AdminTicketRead])
def list_tickets(
    status_filter: Optional[TicketStatus] = Query(None, alias="status"),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
):
    query = db.query(models.SupportTicket).options(joinedload(models.SupportTicket.user))
    if status_filter is not None:
        query = query.filter(models.SupportTicket.status == status_filter)
    return (
        query.order_by(models.SupportTicket.created_at.desc(), models.SupportTicket.id.desc())
        .limit(limit)
        .all()
    )


@router.patch("/tickets/{ticket_id}", response_model=AdminTicketRead)
def update_ticket_status(
    ticket_id: int,
    payload: TicketStatusUpdate,
    db: Session = Depends(get_db),
):
    ticket = db.get(models.SupportTicket, ticket_id)
    if not ticket:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Ticket not found")
    ticket.status = payload.status
    db.commit()
    db.refresh(ticket)
    return ticket


@router.get("/profiles", response_model=list[ProfileRead])
def search_profiles(
    q: Optional[str] = Query(None, max_length=255),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
):
    query = db.query(models.Profile)
    term = (q or "").strip()
    if term:
        like = f"%{term.lower()}%"
        query = query.filter(
            or_(
                func.lower(models.Profile.email).like(like),
                func.lower(func.coalesce(models.Profile.full_name, "")).like(like),
            )
        )
    return query.order_by(models.Profile.created_at.desc(), models.Profile.id.desc()).limit(limit).all()


@router.patch("/profiles/{profile_id}/verification", response_model=ProfileRead)
def set_profile_verification(
    profile_id: int,
    payload: ProfileVerificationUpdate,
    request: Request,
    db: Session = Depends(get_db),
    admin: models.Profile = Depends(require_admin),
):
    profile = db.get(models.Profile, profile_id)
    if not profile:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Profile not found")
    profile.is_verified = payload.is_verified
    db.commit()
    db.refresh(profile)
    audit_event(
        "admin.profile_verification",
        admin.id,
        {"profile_id": profile.id, "is_verified": profile.is_verified},
        db=db,
        **request_context(request),
    )
    return profile


@router.get("/rates", response_model=list[RateBracketRead])
def list_all_rates(db: Session = Depends(get_db)):
    return (
        db.query(models.RateBracket)
        .order_by(models.RateBracket.quantity_min.asc(), models.RateBracket.id.asc())
        .all()
    )


@router.post("/rates", response_model=RateBracketRead, status_code=status.HTTP_201_CREATED)
def create_rate_bracket(
    payload: RateBracketCreate,
    request: Request,
    db: Session = Depends(get_db),
    admin: models.Profile = Depends(require_admin),
):
    bracket = models.RateBracket(**payload.model_dump())
    db.add(bracket)
    db.commit()
    db.refresh(bracket)
    audit_event(
        "admin.rate_created", admin.id, payload.model_dump(), db=db, **request_context(request)
    )
    return bracket


@router.patch("/rates/{bracket_id}", response_model=RateBracketRead)
def update_rate_bracket(
    bracket_id: int,
    payload: RateBracketUpdate,
    request: Request,
    db: Session = Depends(get_db),
    admin: models.Profile = Depends(require_admin),
):
    bracket = db.get(models.RateBracket, bracket_id)
    if not bracket:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Rate bracket not found")
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    for field, value in changes.items():
        setattr(bracket, field, value)
    db.commit()
    db.refresh(bracket)
    audit_event(
        "admin.rate_updated",
        admin.id,
        {"bracket_id": bracket.id, **changes},
        db=db,
        **request_context(request),
    )
    return bracket


@router.get("/payment-methods", response_model=list[PaymentMethodRead])
def list_all_payment_methods(db: Session = Depends(get_db)):
    return db.query(models.PaymentMethod).order_by(models.PaymentMethod.id.asc()).all()


@router.post(
    "/payment-methods", response_model=PaymentMethodRead, status_code=status.HTTP_201_CREATED
)
def create_payment_method(
    payload: PaymentMethodCreate,
    request: Request,
    db: Session = Depends(get_db),
    admin: models.Profile = Depends(require_admin),
):
    method = models.PaymentMethod(**payload.model_dump())
    db.add(method)
    db.commit()
    db.refresh(method)
    audit_event(
        "admin.payment_method_created",
        admin.id,
        {"payment_method_id": method.id, "type": method.type.value, "name": method.name},
        db=db,
        **request_context(request),
    )
    return method


@router.delete("/payment-methods/{method_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_payment_method(
    method_id: int,
    request: Request,
    db: Session = Depends(get_db),
    admin: models.Profile = Depends(require_admin),
):
    method = db.get(models.PaymentMethod, method_id)
    if not method:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Payment method not found")
    db.delete(method)
    db.commit()
    audit_event(
        "admin.payment_method_deleted",
        admin.id,
        {"payment_method_id": method_id},
        db=db,
        **request_context(request),
    )
    return None


@router.get("/stats", response_model=DashboardStats)
def dashboard_stats(db: Session = Depends(get_db)):
    counts = dict(
        db.query(models.Order.status, func.count(models.Order.id))
        .group_by(models.Order.status)
        .all()
    )
    completed_volume = (
        db.query(func.coalesce(func.sum(models.Order.inr_amount), 0.0))
        .filter(models.Order.status == OrderStatus.completed)
        .scalar()
    )
    open_tickets = (
        db.query(func.count(models.SupportTicket.id))
        .filter(models.SupportTicket.status != TicketStatus.closed)
        .scalar()
    )
    return DashboardStats(
        total_users=int(db.query(func.count(models.Profile.id)).scalar() or 0),
        total_orders=int(sum(counts.values())),
        pending_orders=int(counts.get(OrderStatus.pending, 0)),
        processing_orders=int(counts.get(OrderStatus.processing, 0)),
        completed_orders=int(counts.get(OrderStatus.completed, 0)),
        failed_orders=int(counts.get(OrderStatus.failed, 0)),
        cancelled_orders=int(counts.get(OrderStatus.cancelled, 0)),
        completed_volume_inr=float(completed_volume or 0.0),
        open_tickets=int(open_tickets or 0),
    )
