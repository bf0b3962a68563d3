from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from tetherdesk.models.domain import TicketStatus


class TicketCreate(BaseModel):
    subject: str = Field(min_length=1, max_length=255)
    message: str = Field(min_length=1)
    transaction_id: Optional[str] = None


class TicketRequester(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    full_name: Optional[str] = None


class TicketRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    transaction_id: Optional[str] = None
    subject: str
    message: str
    status: TicketStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class AdminTicketRead(TicketRead):
    user: Optional[TicketRequester] = None


class TicketStatusUpdate(BaseModel):
    status: TicketStatus
