from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from tetherdesk import models
from tetherdesk.api.deps import get_current_user, get_db
from tetherdesk.models.domain import TicketStatus
from tetherdesk.schemas import TicketCreate, TicketRead

router = APIRouter(prefix="/tickets", tags=["tickets"])


@router.get("", response_model=list[TicketRead])
def list_my_tickets(
    db: Session = Depends(get_db),
    current_user: models.Profile = Depends(get_current_user),
):
    return (
        db.query(models.SupportTicket)
        .filter(models.SupportTicket.user_id == current_user.id)
        .order_by(models.SupportTicket.created_at.desc(), models.SupportTicket.id.desc())
        .all()
    )


@router.post("", response_model=TicketRead, status_code=status.HTTP_201_CREATED)
def create_ticket(
    payload: TicketCreate,
    db: Session = Depends(get_db),
    current_user: models.Profile = Depends(get_current_user),
):
    if payload.transaction_id:
        order = db.get(models.Order, payload.transaction_id)
        if not order or order.user_id != current_user.id:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")

    ticket = models.SupportTicket(
        user_id=current_user.id,
        transaction_id=payload.transaction_id,
        subject=payload.subject.strip(),
        message=payload.message.strip(),
        status=TicketStatus.open,
    )
    db.add(ticket)
    db.commit()
    db.refresh(ticket)
    return ticket
