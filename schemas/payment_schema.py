# payment_schema.py
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional
from datetime import datetime

from models.models import PaymentStatus


# ---------------------------
# Payment request
# ---------------------------
class PaymentCreate(BaseModel):
    project_id: str
    ticket_id: Optional[str] = None
    title: str = Field(..., min_length=1, max_length=180)
    description: Optional[str] = None
    amount_cents: int = Field(..., gt=0)
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    due_at: Optional[datetime] = None


class PaymentRead(BaseModel):
    id: str
    workspace_id: str
    project_id: str
    ticket_id: Optional[str] = None
    created_by_id: str
    title: str
    description: Optional[str] = None
    amount_cents: int
    currency: str
    status: PaymentStatus
    stripe_checkout_session_id: Optional[str] = None
    due_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    canceled_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ---------------------------
# Stripe
# ---------------------------
class CheckoutSessionResponse(BaseModel):
    url: str
    session_id: str


class WebhookAck(BaseModel):
    received: bool = True
