from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional, Protocol, Sequence

from sqlalchemy.orm import Session

from tetherdesk import models
from tetherdesk.models.domain import TradeDirection
from tetherdesk.services.errors import InvalidQuoteError


class BracketLike(Protocol):
    quantity_min: float
    quantity_max: Optional[float]
    buy_rate: float
    sell_rate: float


@dataclass(frozen=True)
class Quote:
    inr_amount: float
    direction: TradeDirection
    rate: float
    crypto_amount: float
    bracket_id: int | None = None


def load_active_brackets(db: Session) -> list[models.RateBracket]:
    """Active brackets in ascending `quantity_min` order (the order resolution relies on)."""

    return (
        db.query(models.RateBracket)
        .filter(models.RateBracket.is_active.is_(True))
        .order_by(models.RateBracket.quantity_min.asc(), models.RateBracket.id.asc())
        .all()
    )


def bracket_contains(bracket: BracketLike, inr_amount: float) -> bool:
    if inr_amount < float(bracket.quantity_min):
        return False
    if bracket.quantity_max is None:
        return True
    return inr_amount <= float(bracket.quantity_max)


def resolve_bracket(inr_amount: float, brackets: Sequence[BracketLike]):
    """Pick the bracket whose range contains `inr_amount`.

    The first containing bracket wins. When none contains the amount (e.g. it is below every
    minimum) the last bracket is returned as the catch-all tier, not the first. Returns None
    only for an empty table.
    """

    for bracket in brackets:
        if bracket_contains(bracket, inr_amount):
            return bracket
    if not brackets:
        return None
    return brackets[-1]


def _coerce_direction(direction: TradeDirection | str) -> TradeDirection:
    if isinstance(direction, TradeDirection):
        return direction
    try:
        return TradeDirection(str(direction).strip().lower())
    except ValueError as exc:
        raise InvalidQuoteError(f"Unknown trade direction: {direction}") from exc


def quote(
    inr_amount: float,
    direction: TradeDirection | str,
    bracket: BracketLike | None,
) -> Quote:
    """Apply the bracket's buy or sell rate to an INR amount. No rounding is applied."""

    try:
        amount = float(inr_amount)
    except (TypeError, ValueError) as exc:
        raise InvalidQuoteError("Amount must be a number") from exc
    if not math.isfinite(amount):
        raise InvalidQuoteError("Amount must be a finite number")
    if amount <= 0:
        raise InvalidQuoteError("Amount must be greater than zero")
    if bracket is None:
        raise InvalidQuoteError("No exchange rate is configured", code="NO_RATE_AVAILABLE")

    side = _coerce_direction(direction)
    rate = float(bracket.buy_rate if side == TradeDirection.buy else bracket.sell_rate)
    if not math.isfinite(rate) or rate <= 0:
        raise InvalidQuoteError("Configured rate is not usable", code="NO_RATE_AVAILABLE")

    return Quote(
        inr_amount=amount,
        direction=side,
        rate=rate,
        crypto_amount=amount / rate,
        bracket_id=getattr(bracket, "id", None),
    )


def quote_from_table(
    inr_amount: float,
    direction: TradeDirection | str,
    brackets: Iterable[BracketLike],
) -> Quote:
    table = list(brackets)
    try:
        amount = float(inr_amount)
    except (TypeError, ValueError) as exc:
        raise InvalidQuoteError("Amount must be a number") from exc
    bracket = resolve_bracket(amount, table) if math.isfinite(amount) else None
    return quote(amount, direction, bracket)


def display_amount(value: float, places: int = 2) -> str:
    """Presentation rounding only; never feed the result back into pricing."""

    q = Decimal(1).scaleb(-int(places))
    return format(Decimal(str(value)).quantize(q, rounding=ROUND_HALF_UP), "f")
