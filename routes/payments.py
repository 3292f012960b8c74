# routes/payments.py
from fastapi import APIRouter, Depends, Query, Request
from sqlmodel import Session
from typing import List, Optional

from core.database import get_session
from core.security import AuthUser, get_current_user
from models.models import PaymentStatus
from schemas.payment_schema import CheckoutSessionResponse, PaymentCreate, PaymentRead, WebhookAck
from services.notification_service import NotificationService, get_notification_service
from services.payment_service import PaymentService
from services.stripe_gateway import StripeGateway, get_payment_gateway
from services.webhook_service import WebhookService

router = APIRouter(tags=["Payments"])


def get_payment_service(
    session: Session = Depends(get_session),
    gateway: StripeGateway = Depends(get_payment_gateway),
    notifications: NotificationService = Depends(get_notification_service),
) -> PaymentService:
    return PaymentService(session, gateway=gateway, notifications=notifications)


def get_webhook_service(
    session: Session = Depends(get_session),
    gateway: StripeGateway = Depends(get_payment_gateway),
) -> WebhookService:
    return WebhookService(session, gateway)


# -------------------------
# Payment requests
# -------------------------
@router.post("", response_model=PaymentRead, status_code=201)
def create_payment(
    payload: PaymentCreate,
    current_user: AuthUser = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    return service.create(
        current_user,
        project_id=payload.project_id,
        title=payload.title,
        amount_cents=payload.amount_cents,
        description=payload.description,
        currency=payload.currency,
        ticket_id=payload.ticket_id,
        due_at=payload.due_at,
    )


@router.get("", response_model=List[PaymentRead])
def list_payments(
    project_id: Optional[str] = None,
    ticket_id: Optional[str] = None,
    status: Optional[PaymentStatus] = None,
    limit: int = Query(default=50, ge=1, le=200),
    current_user: AuthUser = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    return service.list(current_user, project_id=project_id, ticket_id=ticket_id, status=status, limit=limit)


@router.post("/{payment_id}/cancel", response_model=PaymentRead)
def cancel_payment(
    payment_id: str,
    current_user: AuthUser = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    return service.cancel(current_user, payment_id)


# -------------------------
# Stripe
# -------------------------
@router.post("/{payment_id}/checkout-session", response_model=CheckoutSessionResponse)
def create_checkout_session(
    payment_id: str,
    current_user: AuthUser = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    return service.create_checkout_session(current_user, payment_id)


@router.post("/webhooks/stripe", response_model=WebhookAck)
async def stripe_webhook(request: Request, service: WebhookService = Depends(get_webhook_service)):
    """Stripe signs the raw bytes, so the body is read unparsed."""
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")
    return service.handle(payload, sig_header)
