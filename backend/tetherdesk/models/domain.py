import uuid
from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    event,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from tetherdesk.database import Base


class TradeDirection(PyEnum):
    buy = "buy"
    sell = "sell"


class OrderStatus(PyEnum):
    pending = "pending"
    processing = "processing"
    completed = "completed"
    failed = "failed"
    cancelled = "cancelled"


ACTIVE_ORDER_STATUSES = frozenset({OrderStatus.pending, OrderStatus.processing})
TERMINAL_ORDER_STATUSES = frozenset(
    {OrderStatus.completed, OrderStatus.failed, OrderStatus.cancelled}
)


class CryptoNetwork(PyEnum):
    erc20 = "erc20"
    trc20 = "trc20"


class PayoutMethod(PyEnum):
    upi = "upi"
    bank = "bank"


class TicketStatus(PyEnum):
    open = "open"
    in_progress = "in_progress"
    closed = "closed"


class PaymentMethodType(PyEnum):
    upi = "upi"
    bank_transfer = "bank_transfer"
    crypto = "crypto"


class Profile(Base):
    __tablename__ = "profiles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)
    full_name: Mapped[str | None] = mapped_column(String(255))
    phone: Mapped[str | None] = mapped_column(String(32))
    city: Mapped[str | None] = mapped_column(String(128))
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_admin: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    # Maintained when an order completes; never written by clients.
    total_transactions: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_volume: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    orders = relationship("Order", back_populates="user", foreign_keys="Order.user_id")
    tickets = relationship("SupportTicket", back_populates="user")


class RateBracket(Base):
    __tablename__ = "exchange_rates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    quantity_min: Mapped[float] = mapped_column(Float, nullable=False, index=True)
    # NULL marks the open-ended top tier.
    quantity_max: Mapped[float | None] = mapped_column(Float, nullable=True)
    buy_rate: Mapped[float] = mapped_column(Float, nullable=False)
    sell_rate: Mapped[float] = mapped_column(Float, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    @validates("buy_rate", "sell_rate")
    def _validate_rate(self, key, value):
        if value is None or float(value) <= 0:
            raise ValueError(f"RateBracket.{key} must be positive")
        return float(value)


class Order(Base):
    __tablename__ = "transactions"
    __table_args__ = (
        # At most one pending/processing order per user, enforced by the store itself.
        Index(
            "uq_transactions_one_active_per_user",
            "user_id",
            unique=True,
            sqlite_where=text("status IN ('pending', 'processing')"),
            postgresql_where=text("status IN ('pending', 'processing')"),
        ),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id: Mapped[int] = mapped_column(ForeignKey("profiles.id"), nullable=False, index=True)
    direction: Mapped[TradeDirection] = mapped_column(
        Enum(TradeDirection, native_enum=False), nullable=False
    )
    status: Mapped[OrderStatus] = mapped_column(
        Enum(OrderStatus, native_enum=False),
        default=OrderStatus.pending,
        nullable=False,
        index=True,
    )
    inr_amount: Mapped[float] = mapped_column(Float, nullable=False)
    crypto_amount: Mapped[float] = mapped_column(Float, nullable=False)
    exchange_rate: Mapped[float] = mapped_column(Float, nullable=False)
    rate_bracket_id: Mapped[int | None] = mapped_column(ForeignKey("exchange_rates.id"))

    crypto_network: Mapped[CryptoNetwork | None] = mapped_column(
        Enum(CryptoNetwork, native_enum=False)
    )
    # Buy: where the purchased USDT is sent.
    user_wallet_address: Mapped[str | None] = mapped_column(String(128))
    # Sell: where the INR payout goes.
    payout_method: Mapped[PayoutMethod | None] = mapped_column(
        Enum(PayoutMethod, native_enum=False)
    )
    upi_id: Mapped[str | None] = mapped_column(String(128))
    bank_name: Mapped[str | None] = mapped_column(String(128))
    account_number: Mapped[str | None] = mapped_column(String(64))
    ifsc_code: Mapped[str | None] = mapped_column(String(16))
    account_holder_name: Mapped[str | None] = mapped_column(String(255))

    # Proof of payment (buy) or of deposit (sell).
    proof_path: Mapped[str | None] = mapped_column(String(512))
    utr_number: Mapped[str | None] = mapped_column(String(64))
    proof_submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    processed_by: Mapped[int | None] = mapped_column(ForeignKey("profiles.id"))
    admin_notes: Mapped[str | None] = mapped_column(Text)

    timer_started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    timer_expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    user = relationship("Profile", back_populates="orders", foreign_keys=[user_id])
    processed_by_user = relationship("Profile", foreign_keys=[processed_by], viewonly=True)
    tickets = relationship("SupportTicket", back_populates="order")

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_ORDER_STATUSES

    def _validate_invariants(self) -> None:
        if self.inr_amount is None or float(self.inr_amount) <= 0:
            raise ValueError("Order.inr_amount must be positive")
        if self.exchange_rate is None or float(self.exchange_rate) <= 0:
            raise ValueError("Order.exchange_rate must be positive")
        if self.timer_expires_at is not None and self.timer_started_at is not None:
            if self.timer_expires_at <= self.timer_started_at:
                raise ValueError("Order.timer_expires_at must be after timer_started_at")


@event.listens_for(Order, "before_insert")
def _order_before_insert(_mapper, _connection, target: Order):
    target._validate_invariants()


class SupportTicket(Base):
    __tablename__ = "tickets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("profiles.id"), nullable=False, index=True)
    transaction_id: Mapped[str | None] = mapped_column(
        ForeignKey("transactions.id"), nullable=True, index=True
    )
    subject: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[TicketStatus] = mapped_column(
        Enum(TicketStatus, native_enum=False), default=TicketStatus.open, nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    user = relationship("Profile", back_populates="tickets")
    order = relationship("Order", back_populates="tickets")


class PaymentMethod(Base):
    __tablename__ = "payment_methods"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    type: Mapped[PaymentMethodType] = mapped_column(
        Enum(PaymentMethodType, native_enum=False), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    # UPI VPA, bank account reference or wallet address.
    identifier: Mapped[str] = mapped_column(String(255), nullable=False)
    qr_code_url: Mapped[str | None] = mapped_column(String(512))
    network: Mapped[CryptoNetwork | None] = mapped_column(Enum(CryptoNetwork, native_enum=False))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    action: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    user_id: Mapped[int | None] = mapped_column(ForeignKey("profiles.id"), nullable=True, index=True)
    transaction_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    payload_json: Mapped[str | None] = mapped_column(Text)
    request_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    ip: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(256), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class RevokedToken(Base):
    __tablename__ = "revoked_tokens"

    jti: Mapped[str] = mapped_column(String(64), primary_key=True)
    profile_id: Mapped[int | None] = mapped_column(ForeignKey("profiles.id"), nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    revoked_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
