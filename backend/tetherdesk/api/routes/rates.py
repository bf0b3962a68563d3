from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from tetherdesk.api.deps import get_db, http_error
from tetherdesk.schemas import QuoteRead, QuoteRequest, RateBracketRead
from tetherdesk.services.errors import ExchangeError
from tetherdesk.services.rate_table import display_amount, load_active_brackets, quote_from_table

router = APIRouter(tags=["rates"])


@router.get("/rates", response_model=list[RateBracketRead])
def list_rates(db: Session = Depends(get_db)):
    return load_active_brackets(db)


@router.post("/quotes", response_model=QuoteRead)
def preview_quote(payload: QuoteRequest, db: Session = Depends(get_db)):
    """Price an INR amount against the live rate table. Nothing is persisted."""

    try:
        q = quote_from_table(payload.inr_amount, payload.direction, load_active_brackets(db))
    except ExchangeError as exc:
        raise http_error(exc)
    return QuoteRead(
        inr_amount=q.inr_amount,
        direction=q.direction,
        rate=q.rate,
        crypto_amount=q.crypto_amount,
        bracket_id=q.bracket_id,
        display_crypto_amount=display_amount(q.crypto_amount, 4),
    )
