from tetherdesk.schemas.admin import DashboardStats
from tetherdesk.schemas.auth import SignupRequest, Token, TokenPayload
from tetherdesk.schemas.market import AssetPriceRead, MarketPricesRead
from tetherdesk.schemas.orders import (
    ActiveOrderRead,
    AdminOrderRead,
    ModerationResult,
    OrderCreate,
    OrderModerate,
    OrderOwnerRead,
    OrderRead,
    PaymentInstructions,
)
from tetherdesk.schemas.payment_methods import PaymentMethodCreate, PaymentMethodRead
from tetherdesk.schemas.profiles import ProfileRead, ProfileUpdate, ProfileVerificationUpdate
from tetherdesk.schemas.rates import (
    QuoteRead,
    QuoteRequest,
    RateBracketCreate,
    RateBracketRead,
    RateBracketUpdate,
)
from tetherdesk.schemas.tickets import (
    AdminTicketRead,
    TicketCreate,
    TicketRead,
    TicketRequester,
    TicketStatusUpdate,
)

__all__ = [
    "ActiveOrderRead",
    "AdminOrderRead",
    "AdminTicketRead",
    "AssetPriceRead",
    "DashboardStats",
    "MarketPricesRead",
    "ModerationResult",
    "OrderCreate",
    "OrderModerate",
    "OrderOwnerRead",
    "OrderRead",
    "PaymentInstructions",
    "PaymentMethodCreate",
    "PaymentMethodRead",
    "ProfileRead",
    "ProfileUpdate",
    "ProfileVerificationUpdate",
    "QuoteRead",
    "QuoteRequest",
    "RateBracketCreate",
    "RateBracketRead",
    "RateBracketUpdate",
    "SignupRequest",
    "TicketCreate",
    "TicketRead",
    "TicketRequester",
    "TicketStatusUpdate",
    "Token",
    "TokenPayload",
]
