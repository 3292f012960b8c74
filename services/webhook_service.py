# ================================================================
# services/webhook_service.py: Stripe webhook reconciliation
# ================================================================
import logging
from typing import Any, Dict, Optional

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from core.database import transaction
from core.errors import InvalidTransitionError, NotFoundError, SignatureInvalidError
from core.security import SystemPrincipal
from models.models import Payment, PaymentStatus, utc_now
from repositories.event_ledger_repo import EventLedgerRepository
from repositories.payment_repo import PaymentRepository
from services.audit_service import AuditService
from services.stripe_gateway import StripeGateway, WebhookEvent
from services.ticket_service import TicketService

logger = logging.getLogger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"
CHECKOUT_EXPIRED = "checkout.session.expired"


class WebhookService:
    """
    Applies provider events to payments and tickets.

    Each step is safe to repeat, and the event id is written to the ledger
    only after its effects are committed. A delivery that crashes halfway is
    simply redone on the provider's next retry.
    """

    def __init__(self, session: Session, gateway: StripeGateway):
        self.session = session
        self.gateway = gateway
        self.ledger = EventLedgerRepository(session)
        self.payments = PaymentRepository(session)
        self.audit = AuditService(session)
        self.tickets = TicketService(session)

    def handle(self, raw_body: bytes, signature_header: Optional[str]) -> Dict[str, bool]:
        try:
            event = self.gateway.verify_and_parse_webhook(raw_body, signature_header)
        except SignatureInvalidError as e:
            logger.warning(f"🚨 Rejected Stripe webhook: {e.message}")
            raise

        if self.ledger.is_processed(event.event_id):
            logger.info(f"🔁 Webhook {event.event_id} already processed, skipping")
            return {"received": True}

        logger.info(f"✅ Webhook received: {event.event_type} ({event.event_id})")

        if event.event_type == CHECKOUT_COMPLETED:
            self._checkout_completed(event)
        elif event.event_type == CHECKOUT_EXPIRED:
            self._checkout_expired(event)
        else:
            logger.info(f"ℹ️ Unhandled event type: {event.event_type}")

        return self._mark_processed(event)

    # ------------------------
    # Ledger
    # ------------------------
    def _mark_processed(self, event: WebhookEvent) -> Dict[str, bool]:
        try:
            with transaction(self.session):
                self.ledger.record(event.event_id, event.event_type)
        except IntegrityError:
            # A concurrent delivery of the same event got there first
            logger.info(f"🔁 Webhook {event.event_id} recorded concurrently, treating as processed")
        return {"received": True}

    # ------------------------
    # Event handlers
    # ------------------------
    @staticmethod
    def _metadata(payload: Dict[str, Any]) -> Dict[str, Any]:
        metadata = payload.get("metadata")
        return metadata if isinstance(metadata, dict) else {}

    @classmethod
    def _payment_reference(cls, payload: Dict[str, Any]) -> Optional[str]:
        metadata = cls._metadata(payload)
        return metadata.get("payment_id") or payload.get("client_reference_id")

    def _checkout_completed(self, event: WebhookEvent) -> None:
        payload = event.payload
        payment_id = self._payment_reference(payload)
        if not payment_id:
            logger.warning(f"⚠️ Webhook {event.event_id} has no payment reference")
            return

        with transaction(self.session):
            payment = self.payments.get(payment_id, for_update=True)
            if not payment:
                logger.warning(f"⚠️ Webhook {event.event_id} references unknown payment {payment_id}")
                return

            workspace_id = self._metadata(payload).get("workspace_id")
            if workspace_id and workspace_id != payment.workspace_id:
                logger.warning(f"⚠️ Webhook {event.event_id} workspace does not match payment {payment.id}")
                return

            prior_status = self._mark_paid(payment, payload)
            ticket_id = payment.ticket_id
            workspace_id = payment.workspace_id
            retired = payment.canceled_at is not None

        if not ticket_id:
            return
        if retired or prior_status not in (PaymentStatus.PENDING.value, PaymentStatus.PAID.value):
            # A retired payment no longer gates its ticket, even on redelivery
            logger.warning(
                f"⚠️ Late payment {payment_id} arrived after it was retired; "
                f"ticket {ticket_id} left as is, needs refund review"
            )
            return

        system = SystemPrincipal(workspace_id=workspace_id, ticket_id=ticket_id)
        try:
            self.tickets.settle_payment(system, ticket_id)
        except (InvalidTransitionError, NotFoundError) as e:
            logger.warning(f"⚠️ Ticket {ticket_id} not settled for payment {payment_id}: {e.message}")

    def _mark_paid(self, payment: Payment, payload: Dict[str, Any]) -> str:
        """Record the money on the payment. Returns the status it had before."""
        prior_status = payment.status
        if prior_status == PaymentStatus.PAID.value:
            logger.info(f"ℹ️ Payment {payment.id} already PAID")
            return prior_status

        now = utc_now()
        payment.status = PaymentStatus.PAID.value
        payment.paid_at = now
        payment.updated_at = now
        payment.stripe_checkout_session_id = payload.get("id") or payment.stripe_checkout_session_id

        payment_intent = payload.get("payment_intent")
        if isinstance(payment_intent, str):
            payment.stripe_payment_intent_id = payment_intent

        self.session.add(payment)
        self.audit.record(
            workspace_id=payment.workspace_id,
            project_id=payment.project_id,
            action="PAYMENT_RECEIVED",
            resource_type="Payment",
            resource_id=payment.id,
            metadata={"amountCents": payment.amount_cents, "currency": payment.currency},
        )
        logger.info(f"💰 Payment {payment.id} marked PAID")
        return prior_status

    def _checkout_expired(self, event: WebhookEvent) -> None:
        payload = event.payload
        payment_id = self._payment_reference(payload)
        if not payment_id:
            return

        with transaction(self.session):
            payment = self.payments.get(payment_id, for_update=True)
            if (
                payment
                and payment.status == PaymentStatus.PENDING.value
                and payment.stripe_checkout_session_id == payload.get("id")
            ):
                # Payment stays PENDING; the client can start a new checkout
                payment.stripe_checkout_session_id = None
                payment.updated_at = utc_now()
                self.session.add(payment)
                logger.info(f"⌛ Checkout session expired for payment {payment.id}")
