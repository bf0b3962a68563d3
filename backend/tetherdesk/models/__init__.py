from tetherdesk.models.domain import (
    ACTIVE_ORDER_STATUSES,
    TERMINAL_ORDER_STATUSES,
    AuditLog,
    CryptoNetwork,
    Order,
    OrderStatus,
    PaymentMethod,
    PaymentMethodType,
    PayoutMethod,
    Profile,
    RateBracket,
    RevokedToken,
    SupportTicket,
    TicketStatus,
    TradeDirection,
)

__all__ = [
    "ACTIVE_ORDER_STATUSES",
    "TERMINAL_ORDER_STATUSES",
    "AuditLog",
    "CryptoNetwork",
    "Order",
    "OrderStatus",
    "PaymentMethod",
    "PaymentMethodType",
    "PayoutMethod",
    "Profile",
    "RateBracket",
    "RevokedToken",
    "SupportTicket",
    "TicketStatus",
    "TradeDirection",
]
