from datetime import datetime

from pydantic import BaseModel


class AssetPriceRead(BaseModel):
    id: str
    symbol: str
    name: str
    current_price: float
    price_change_percentage_24h: float


class MarketPricesRead(BaseModel):
    source: str
    as_of: datetime
    prices: list[AssetPriceRead]
