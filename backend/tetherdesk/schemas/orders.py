from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from tetherdesk.models.domain import CryptoNetwork, OrderStatus, PayoutMethod, TradeDirection


class OrderCreate(BaseModel):
    direction: TradeDirection
    inr_amount: float
    # Rate the client was shown; the order is rejected if the live table now differs.
    quoted_rate: Optional[float] = None
    crypto_network: CryptoNetwork = CryptoNetwork.trc20
    wallet_address: Optional[str] = Field(default=None, max_length=128)
    payout_method: Optional[PayoutMethod] = None
    upi_id: Optional[str] = Field(default=None, max_length=128)
    bank_name: Optional[str] = Field(default=None, max_length=128)
    account_number: Optional[str] = Field(default=None, max_length=64)
    ifsc_code: Optional[str] = Field(default=None, max_length=16)
    account_holder_name: Optional[str] = Field(default=None, max_length=255)


class PaymentInstructions(BaseModel):
    upi_id: Optional[str] = None
    payee_name: Optional[str] = None
    upi_url: Optional[str] = None
    deposit_address: Optional[str] = None


class OrderRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: int
    direction: TradeDirection
    status: OrderStatus
    inr_amount: float
    crypto_amount: float
    exchange_rate: float
    rate_bracket_id: Optional[int] = None

    crypto_network: Optional[CryptoNetwork] = None
    user_wallet_address: Optional[str] = None
    payout_method: Optional[PayoutMethod] = None
    upi_id: Optional[str] = None
    bank_name: Optional[str] = None
    account_number: Optional[str] = None
    ifsc_code: Optional[str] = None
    account_holder_name: Optional[str] = None

    utr_number: Optional[str] = None
    proof_submitted_at: Optional[datetime] = None
    processed_by: Optional[int] = None
    admin_notes: Optional[str] = None

    timer_started_at: datetime
    timer_expires_at: datetime
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    # Derived at read time.
    remaining_seconds: int = 0
    is_expired: bool = False
    proof_url: Optional[str] = None
    payment: Optional[PaymentInstructions] = None


class ActiveOrderRead(BaseModel):
    has_active_order: bool
    order: Optional[OrderRead] = None


class OrderModerate(BaseModel):
    status: OrderStatus
    admin_notes: Optional[str] = Field(default=None, max_length=2000)


class OrderOwnerRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    full_name: Optional[str] = None
    phone: Optional[str] = None
    is_verified: bool


class AdminOrderRead(OrderRead):
    user: Optional[OrderOwnerRead] = None


class ModerationResult(BaseModel):
    order: AdminOrderRead
    from_status: OrderStatus
