from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from tetherdesk.models.domain import CryptoNetwork, PaymentMethodType


class PaymentMethodRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    type: PaymentMethodType
    name: str
    identifier: str
    qr_code_url: Optional[str] = None
    network: Optional[CryptoNetwork] = None
    is_active: bool
    created_at: Optional[datetime] = None


class PaymentMethodCreate(BaseModel):
    type: PaymentMethodType
    name: str = Field(min_length=1, max_length=255)
    identifier: str = Field(min_length=1, max_length=255)
    qr_code_url: Optional[str] = Field(default=None, max_length=512)
    network: Optional[CryptoNetwork] = None
    is_active: bool = True

    @model_validator(mode="after")
    def _crypto_needs_network(self):
        if self.type == PaymentMethodType.crypto and self.network is None:
            raise ValueError("Crypto destinations need a network")
        return self
