from datetime import datetime

from fastapi import APIRouter

from tetherdesk.schemas import MarketPricesRead
from tetherdesk.services.price_feed import price_cache

router = APIRouter(prefix="/market", tags=["market"])


@router.get("/prices", response_model=MarketPricesRead)
def read_market_prices():
    snap = price_cache.get()
    return MarketPricesRead(
        source=snap.source,
        as_of=datetime.utcnow(),
        prices=[p.to_dict() for p in snap.prices],
    )
