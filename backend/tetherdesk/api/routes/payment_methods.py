from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from tetherdesk.api.deps import get_db
from tetherdesk.models.domain import CryptoNetwork, PaymentMethodType
from tetherdesk.schemas import PaymentMethodRead
from tetherdesk.services.payment_destinations import list_active_methods

router = APIRouter(prefix="/payment-methods", tags=["payment-methods"])


@router.get("", response_model=list[PaymentMethodRead])
def list_payment_methods(
    type: Optional[PaymentMethodType] = Query(None),
    network: Optional[CryptoNetwork] = Query(None),
    db: Session = Depends(get_db),
):
    return list_active_methods(db, method_type=type, network=network)
