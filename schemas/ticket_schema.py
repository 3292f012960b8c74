# ticket_schema.py
from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import Optional
from datetime import datetime

from models.models import TicketStatus, TicketType


class TicketCreate(BaseModel):
    project_id: str
    type: TicketType
    title: str = Field(..., min_length=1, max_length=180)
    description: str = Field(..., min_length=1)
    requires_payment: bool = Field(default=False)
    price_cents: Optional[int] = Field(default=None, ge=0)
    payment_description: Optional[str] = Field(default=None, max_length=255)

    @field_validator("title", "description")
    @classmethod
    def strip_text(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


class TicketReason(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=1000)


class TicketPaymentRequest(BaseModel):
    price_cents: int = Field(..., gt=0)
    description: Optional[str] = Field(default=None, max_length=255)
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)


class TicketRead(BaseModel):
    id: str
    workspace_id: str
    project_id: str
    created_by_id: str
    type: TicketType
    title: str
    description: str
    status: TicketStatus
    status_reason: Optional[str] = None
    requires_payment: bool
    price_cents: Optional[int] = None
    currency: str
    payment_description: Optional[str] = None
    converted_task_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
