from __future__ import annotations

from typing import Optional
from urllib.parse import quote

from sqlalchemy.orm import Session

from tetherdesk import models
from tetherdesk.config import settings
from tetherdesk.models.domain import CryptoNetwork, PaymentMethodType, TradeDirection
from tetherdesk.services.rate_table import display_amount


def list_active_methods(
    db: Session,
    *,
    method_type: Optional[PaymentMethodType] = None,
    network: Optional[CryptoNetwork] = None,
) -> list[models.PaymentMethod]:
    query = db.query(models.PaymentMethod).filter(models.PaymentMethod.is_active.is_(True))
    if method_type is not None:
        query = query.filter(models.PaymentMethod.type == method_type)
    if network is not None:
        query = query.filter(models.PaymentMethod.network == network)
    return query.order_by(models.PaymentMethod.id.asc()).all()


def upi_payee(db: Session) -> tuple[str, str]:
    """(vpa, display name) of the first active UPI destination, else the configured default."""

    rows = list_active_methods(db, method_type=PaymentMethodType.upi)
    if rows:
        return rows[0].identifier, rows[0].name
    return settings.upi_payee_vpa, settings.upi_payee_name


def build_upi_url(*, vpa: str, payee_name: str, inr_amount: float) -> str:
    return (
        f"upi://pay?pa={vpa}&pn={quote(payee_name, safe='')}"
        f"&am={display_amount(inr_amount)}&cu=INR"
    )


def deposit_wallet(db: Session, network: Optional[CryptoNetwork]) -> Optional[str]:
    if network is None:
        return None
    rows = list_active_methods(db, method_type=PaymentMethodType.crypto, network=network)
    return rows[0].identifier if rows else None


def order_payment_instructions(db: Session, order: models.Order) -> dict:
    """Where the user sends funds for this order: UPI link (buy) or deposit wallet (sell)."""

    if order.direction == TradeDirection.buy:
        vpa, name = upi_payee(db)
        return {
            "upi_id": vpa,
            "payee_name": name,
            "upi_url": build_upi_url(vpa=vpa, payee_name=name, inr_amount=order.inr_amount),
            "deposit_address": None,
        }
    return {
        "upi_id": None,
        "payee_name": None,
        "upi_url": None,
        "deposit_address": deposit_wallet(db, order.crypto_network),
    }
