# ================================================================
# services/payment_service.py: Payment requests + Stripe Checkout
# ================================================================
import logging
from datetime import datetime
from typing import Dict, List, Optional

from sqlmodel import Session

from core.config import settings
from core.database import transaction
from core.errors import (
    BadRequestError,
    ForbiddenError,
    GatewayUnavailableError,
    InvalidTransitionError,
    NotFoundError,
)
from core.permissions import assert_project_access, require_admin
from core.security import AuthUser, Principal, SystemPrincipal
from models.models import Payment, PaymentStatus, TicketStatus, utc_now
from repositories.payment_repo import PaymentRepository
from repositories.project_repo import ProjectRepository
from repositories.ticket_repo import TicketRepository
from services.audit_service import AuditService
from services.notification_service import NotificationService
from services.payment_gate import open_ticket_payment
from services.stripe_gateway import StripeGateway
from services.ticket_state_machine import TicketAction, plan_transition

logger = logging.getLogger(__name__)


class PaymentService:
    def __init__(
        self,
        session: Session,
        gateway: Optional[StripeGateway] = None,
        notifications: Optional[NotificationService] = None,
    ):
        self.session = session
        self.gateway = gateway
        self.notifications = notifications
        self.payments = PaymentRepository(session)
        self.tickets = TicketRepository(session)
        self.projects = ProjectRepository(session)
        self.audit = AuditService(session)

    def _load(self, principal: Principal, payment_id: str, for_update: bool = False) -> Payment:
        payment = self.payments.get(payment_id, for_update=for_update)
        if not payment or payment.workspace_id != principal.workspace_id:
            raise NotFoundError("Payment not found", code="PAYMENT_NOT_FOUND")
        return payment

    # ------------------------
    # Create
    # ------------------------
    def create(
        self,
        principal: Principal,
        project_id: str,
        title: str,
        amount_cents: int,
        description: Optional[str] = None,
        currency: Optional[str] = None,
        ticket_id: Optional[str] = None,
        due_at: Optional[datetime] = None,
    ) -> Payment:
        """
        Open a PENDING payment request.

        With a ticket_id the ticket is put behind the payment the same way
        TicketService.request_payment does it.
        """
        require_admin(principal, principal.workspace_id, "create payment requests")
        project = assert_project_access(principal, self.projects.get(project_id))

        if amount_cents <= 0:
            raise BadRequestError("Amount must be a positive number of cents", code="PAYMENT_AMOUNT_INVALID")
        currency = (currency or settings.DEFAULT_CURRENCY).upper()

        with transaction(self.session):
            if ticket_id:
                ticket = self.tickets.get(ticket_id, for_update=True)
                if not ticket or ticket.is_deleted or ticket.project_id != project.id:
                    raise NotFoundError("Ticket not found in this project", code="TICKET_NOT_FOUND")

                payment = open_ticket_payment(
                    self.payments,
                    ticket,
                    created_by_id=principal.id,
                    amount_cents=amount_cents,
                    currency=currency,
                    title=title,
                    description=description,
                    due_at=due_at,
                )
            else:
                payment = self.payments.add(
                    Payment(
                        workspace_id=principal.workspace_id,
                        project_id=project.id,
                        created_by_id=principal.id,
                        title=title,
                        description=description,
                        amount_cents=amount_cents,
                        currency=currency,
                        status=PaymentStatus.PENDING.value,
                        due_at=due_at,
                    )
                )

            self.audit.record(
                workspace_id=payment.workspace_id,
                project_id=payment.project_id,
                actor_id=principal.id,
                action="PAYMENT_REQUEST_CREATED",
                resource_type="Payment",
                resource_id=payment.id,
                metadata={"amountCents": amount_cents, "currency": currency, "ticketId": ticket_id},
            )

        self.session.refresh(payment)
        logger.info(f"💳 Payment {payment.id} created for project {project.id} ({amount_cents} {currency})")

        if self.notifications:
            client = self.projects.get_client(project)
            if client:
                self.notifications.payment_requested(client.email, payment.title, payment.amount_cents, payment.currency)
        return payment

    # ------------------------
    # Cancel
    # ------------------------
    def cancel(self, principal: Principal, payment_id: str) -> Payment:
        with transaction(self.session):
            payment = self._load(principal, payment_id, for_update=True)
            require_admin(principal, payment.workspace_id, "cancel payments")

            if payment.status != PaymentStatus.PENDING.value:
                raise InvalidTransitionError(
                    "Only pending payments can be canceled",
                    current_status=payment.status,
                    code="PAYMENT_NOT_PENDING",
                )

            now = utc_now()
            payment.status = PaymentStatus.CANCELED.value
            payment.canceled_at = now
            payment.updated_at = now
            self.session.add(payment)

            if payment.ticket_id:
                self._release_ticket(payment.ticket_id)

            self.audit.record(
                workspace_id=payment.workspace_id,
                project_id=payment.project_id,
                actor_id=principal.id,
                action="PAYMENT_CANCELED",
                resource_type="Payment",
                resource_id=payment.id,
            )

        self.session.refresh(payment)
        logger.info(f"🚫 Payment {payment.id} canceled")
        return payment

    def _release_ticket(self, ticket_id: str) -> None:
        """Drop the payment gate on a ticket still waiting for it."""
        ticket = self.tickets.get(ticket_id, for_update=True)
        if not ticket:
            return

        transition = plan_transition(
            TicketStatus(ticket.status),
            TicketAction.CANCEL_PAYMENT,
            price_cents=ticket.price_cents,
            converted=bool(ticket.converted_task_id),
        )
        if not transition.allowed or transition.no_op:
            return

        ticket.status = transition.target.value
        ticket.requires_payment = False
        ticket.price_cents = None
        ticket.payment_description = None
        ticket.updated_at = utc_now()
        self.session.add(ticket)
        logger.info(f"🔄 Ticket {ticket.id} returned to {ticket.status} after payment cancel")

    # ------------------------
    # List
    # ------------------------
    def list(
        self,
        principal: AuthUser,
        project_id: Optional[str] = None,
        ticket_id: Optional[str] = None,
        status: Optional[PaymentStatus] = None,
        limit: int = 50,
    ) -> List[Payment]:
        if project_id:
            assert_project_access(principal, self.projects.get(project_id))

        return self.payments.list(
            workspace_id=principal.workspace_id,
            client_id=None if principal.is_admin else principal.id,
            project_id=project_id,
            ticket_id=ticket_id,
            status=status.value if status else None,
            limit=limit,
        )

    # ------------------------
    # Stripe Checkout
    # ------------------------
    def create_checkout_session(self, principal: Principal, payment_id: str) -> Dict[str, str]:
        if not self.gateway or not self.gateway.configured:
            raise GatewayUnavailableError("Stripe is not configured")
        if isinstance(principal, SystemPrincipal):
            raise ForbiddenError("System caller cannot start a checkout")

        payment = self._load(principal, payment_id)
        project = self.projects.get(payment.project_id)
        try:
            assert_project_access(principal, project)
        except NotFoundError:
            raise NotFoundError("Payment not found", code="PAYMENT_NOT_FOUND")

        if payment.status != PaymentStatus.PENDING.value:
            raise InvalidTransitionError(
                "Payment is not pending",
                current_status=payment.status,
                code="PAYMENT_NOT_PENDING",
            )

        client = self.projects.get_client(project)
        metadata = {
            "payment_id": payment.id,
            "workspace_id": payment.workspace_id,
            "project_id": payment.project_id,
        }
        if payment.ticket_id:
            metadata["ticket_id"] = payment.ticket_id

        # Gateway failures leave the payment untouched. No row lock is held across the call.
        checkout = self.gateway.create_checkout_session(
            amount_minor_units=payment.amount_cents,
            currency=payment.currency,
            title=payment.title,
            description=payment.description,
            customer_email=client.email if client else None,
            metadata=metadata,
            success_url=settings.checkout_success_url,
            cancel_url=settings.checkout_cancel_url,
            client_reference_id=payment.id,
        )

        with transaction(self.session):
            payment = self._load(principal, payment_id, for_update=True)
            if payment.status != PaymentStatus.PENDING.value:
                # Canceled or superseded while the provider was being called
                logger.warning(f"⚠️ Checkout session {checkout.id} dropped, payment {payment.id} is {payment.status}")
                raise InvalidTransitionError(
                    "Payment is not pending",
                    current_status=payment.status,
                    code="PAYMENT_NOT_PENDING",
                )
            payment.stripe_checkout_session_id = checkout.id
            payment.updated_at = utc_now()
            self.session.add(payment)

        logger.info(f"🧾 Checkout session {checkout.id} attached to payment {payment.id}")
        return {"url": checkout.url, "session_id": checkout.id}
