from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from tetherdesk.config import settings
from tetherdesk.database import get_db
from tetherdesk.core.security import decode_access_token
from tetherdesk.models import Profile
from tetherdesk.services.auth import is_token_revoked
from tetherdesk.services.errors import (
    ActiveOrderExistsError,
    ExchangeError,
    GuardUnavailableError,
    InvalidQuoteError,
    InvalidTransitionError,
    OrderDetailsError,
    OrderNotFoundError,
    PaymentWindowExpiredError,
    ProofStorageError,
    ProofStorageUnavailableError,
)

__all__ = [
    "get_db",
    "get_current_user",
    "get_token_payload",
    "http_error",
    "require_admin",
]


def _token_url() -> str:
    if settings.api_prefix:
        prefix = settings.api_prefix.rstrip("/")
        return f"{prefix}/auth/token"
    return "/auth/token"


# auto_error off: the header fallback below also accepts `x-auth-token`.
oauth2_optional = OAuth2PasswordBearer(tokenUrl=_token_url(), auto_error=False)

_DB_DEP = Depends(get_db)
_TOKEN_OPT_DEP = Depends(oauth2_optional)


def _extract_bearer_from_headers(request: Request) -> Optional[str]:
    raw = request.headers.get("authorization") or request.headers.get("x-auth-token")
    if not raw:
        return None
    s = str(raw).strip()
    if not s:
        return None
    if s.lower().startswith("bearer "):
        return s.split(" ", 1)[1].strip()
    return s


def get_token_payload(
    request: Request,
    db: Session = _DB_DEP,
    token: Optional[str] = _TOKEN_OPT_DEP,
) -> dict:
    """Decoded claims of a valid, non-revoked bearer token."""

    if not token:
        token = _extract_bearer_from_headers(request)
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")

    payload = decode_access_token(token)
    if not payload or not payload.get("sub"):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    if is_token_revoked(db, payload.get("jti")):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Session has ended")
    return payload


_TOKEN_PAYLOAD_DEP = Depends(get_token_payload)


def get_current_user(
    db: Session = _DB_DEP,
    payload: dict = _TOKEN_PAYLOAD_DEP,
) -> Profile:
    subject = str(payload.get("sub"))
    user = db.query(Profile).filter(Profile.email == subject, Profile.active.is_(True)).first()
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or inactive",
        )
    return user


_CURRENT_USER_DEP = Depends(get_current_user)


def require_admin(user: Profile = _CURRENT_USER_DEP) -> Profile:
    """Server-side admin gate; every moderation endpoint depends on it."""

    if not user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return user


_STATUS_BY_ERROR: tuple[tuple[type[ExchangeError], int], ...] = (
    (OrderNotFoundError, status.HTTP_404_NOT_FOUND),
    (ActiveOrderExistsError, status.HTTP_409_CONFLICT),
    (InvalidTransitionError, status.HTTP_409_CONFLICT),
    (PaymentWindowExpiredError, status.HTTP_409_CONFLICT),
    (GuardUnavailableError, status.HTTP_503_SERVICE_UNAVAILABLE),
    # Must precede its ProofStorageError base.
    (ProofStorageUnavailableError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (InvalidQuoteError, status.HTTP_400_BAD_REQUEST),
    (OrderDetailsError, status.HTTP_400_BAD_REQUEST),
    (ProofStorageError, status.HTTP_400_BAD_REQUEST),
)


def http_error(exc: ExchangeError) -> HTTPException:
    """Translate a domain error to the HTTP status the API documents for it."""

    status_code = status.HTTP_400_BAD_REQUEST
    for error_type, code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            status_code = code
            break
    return HTTPException(
        status_code=status_code,
        detail={"message": exc.message, "code": exc.code},
    )
