from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from tetherdesk.models.domain import TradeDirection


class RateBracketRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    quantity_min: float
    quantity_max: Optional[float] = None
    buy_rate: float
    sell_rate: float
    is_active: bool
    updated_at: Optional[datetime] = None


class RateBracketCreate(BaseModel):
    quantity_min: float = Field(ge=0)
    quantity_max: Optional[float] = Field(default=None, gt=0)
    buy_rate: float = Field(gt=0)
    sell_rate: float = Field(gt=0)
    is_active: bool = True

    @model_validator(mode="after")
    def _check_range(self):
        if self.quantity_max is not None and self.quantity_max < self.quantity_min:
            raise ValueError("quantity_max must be >= quantity_min")
        return self


class RateBracketUpdate(BaseModel):
    buy_rate: Optional[float] = Field(default=None, gt=0)
    sell_rate: Optional[float] = Field(default=None, gt=0)
    is_active: Optional[bool] = None


class QuoteRequest(BaseModel):
    inr_amount: float
    direction: TradeDirection


class QuoteRead(BaseModel):
    inr_amount: float
    direction: TradeDirection
    rate: float
    crypto_amount: float
    bracket_id: Optional[int] = None
    display_crypto_amount: str
