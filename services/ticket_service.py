# ================================================================
# services/ticket_service.py: Ticket workflow + ticket → task conversion
# ================================================================
import logging
from typing import List, Optional

from sqlmodel import Session

from core.config import settings
from core.database import transaction
from core.errors import ForbiddenError, InvalidTransitionError, NotFoundError
from core.permissions import (
    assert_project_access,
    require_admin,
    require_admin_or_system,
    require_system,
)
from core.security import AuthUser, Principal, SystemPrincipal
from models.models import Payment, Ticket, TicketStatus, TicketType, utc_now
from repositories.payment_repo import PaymentRepository
from repositories.project_repo import ProjectRepository
from repositories.ticket_repo import TicketRepository
from services.audit_service import AuditService
from services.notification_service import NotificationService
from services.payment_gate import open_ticket_payment, retire_pending_payments
from services.task_service import TaskService
from services.ticket_state_machine import TicketAction, Transition, plan_transition

logger = logging.getLogger(__name__)


class TicketService:
    """
    Owns ticket status changes.

    Every mutation re-reads the ticket row (locked where supported), checks the
    caller, plans the transition from the persisted status and commits once.
    """

    def __init__(
        self,
        session: Session,
        notifications: Optional[NotificationService] = None,
        default_currency: str = settings.DEFAULT_CURRENCY,
    ):
        self.session = session
        self.tickets = TicketRepository(session)
        self.payments = PaymentRepository(session)
        self.projects = ProjectRepository(session)
        self.tasks = TaskService(session)
        self.audit = AuditService(session)
        self.notifications = notifications
        self.default_currency = default_currency

    # ------------------------
    # Helpers
    # ------------------------
    def _load(self, principal: Principal, ticket_id: str, for_update: bool = False) -> Ticket:
        ticket = self.tickets.get(ticket_id, for_update=for_update)
        if not ticket or ticket.workspace_id != principal.workspace_id or ticket.is_deleted:
            raise NotFoundError("Ticket not found", code="TICKET_NOT_FOUND")
        return ticket

    def _plan(self, ticket: Ticket, action: TicketAction) -> Transition:
        transition = plan_transition(
            TicketStatus(ticket.status),
            action,
            price_cents=ticket.price_cents,
            converted=bool(ticket.converted_task_id),
        )
        if not transition.allowed:
            raise InvalidTransitionError(transition.reason, current_status=transition.current, code=transition.code)
        return transition

    def _set_status(self, ticket: Ticket, status: TicketStatus, reason: Optional[str] = None, keep_reason: bool = True):
        ticket.status = status.value
        if reason is not None or not keep_reason:
            ticket.status_reason = reason
        ticket.updated_at = utc_now()
        self.session.add(ticket)

    def _reassert_converted(self, ticket: Ticket) -> Ticket:
        if ticket.status != TicketStatus.CONVERTED.value:
            self._set_status(ticket, TicketStatus.CONVERTED)
        return ticket

    def _notify_payment_requested(self, payment: Payment) -> None:
        if not self.notifications:
            return
        project = self.projects.get(payment.project_id)
        client = self.projects.get_client(project) if project else None
        if client:
            self.notifications.payment_requested(client.email, payment.title, payment.amount_cents, payment.currency)

    # ------------------------
    # Reads
    # ------------------------
    def get(self, principal: Principal, ticket_id: str) -> Ticket:
        ticket = self._load(principal, ticket_id)
        project = self.projects.get(ticket.project_id)
        try:
            assert_project_access(principal, project)
        except ForbiddenError:
            raise ForbiddenError("Ticket is not accessible", code="TICKET_FORBIDDEN")
        return ticket

    def list(
        self,
        principal: AuthUser,
        project_id: Optional[str] = None,
        status: Optional[TicketStatus] = None,
        ticket_type: Optional[TicketType] = None,
        search: Optional[str] = None,
        limit: int = 50,
    ) -> List[Ticket]:
        if project_id:
            assert_project_access(principal, self.projects.get(project_id))

        return self.tickets.list(
            workspace_id=principal.workspace_id,
            client_id=None if principal.is_admin else principal.id,
            project_id=project_id,
            status=status.value if status else None,
            ticket_type=ticket_type.value if ticket_type else None,
            search=search,
            limit=limit,
        )

    # ------------------------
    # Create
    # ------------------------
    def create(
        self,
        principal: Principal,
        project_id: str,
        ticket_type: TicketType,
        title: str,
        description: str,
        requires_payment: bool = False,
        price_cents: Optional[int] = None,
        payment_description: Optional[str] = None,
    ) -> Ticket:
        if isinstance(principal, SystemPrincipal):
            raise ForbiddenError("System caller cannot create tickets")

        project = self.projects.get(project_id)
        try:
            assert_project_access(principal, project)
        except ForbiddenError:
            raise ForbiddenError("Cannot create ticket for this project", code="TICKET_FORBIDDEN")

        priced = (price_cents or 0) > 0
        ticket = Ticket(
            workspace_id=principal.workspace_id,
            project_id=project_id,
            created_by_id=principal.id,
            type=TicketType(ticket_type).value,
            title=title,
            description=description,
            requires_payment=requires_payment or priced,
            price_cents=price_cents if priced else None,
            currency=self.default_currency,
            payment_description=payment_description,
            status=(TicketStatus.PAYMENT_REQUIRED if priced else TicketStatus.OPEN).value,
        )

        with transaction(self.session):
            self.tickets.add(ticket)
            self.audit.record(
                workspace_id=ticket.workspace_id,
                project_id=project_id,
                actor_id=principal.id,
                action="TICKET_CREATED",
                resource_type="Ticket",
                resource_id=ticket.id,
                metadata={"type": ticket.type, "status": ticket.status},
            )

        self.session.refresh(ticket)
        logger.info(f"✅ Ticket {ticket.id} created in project {project_id} with status {ticket.status}")
        return ticket

    # ------------------------
    # Admin transitions
    # ------------------------
    def accept(self, principal: Principal, ticket_id: str) -> Ticket:
        opened: Optional[Payment] = None

        with transaction(self.session):
            ticket = self._load(principal, ticket_id, for_update=True)
            require_admin(principal, ticket.workspace_id, "accept tickets")
            transition = self._plan(ticket, TicketAction.ACCEPT)

            if transition.no_op:
                self._reassert_converted(ticket)
            elif transition.target is TicketStatus.PAYMENT_REQUIRED:
                # Payment must complete before conversion; make sure there is something to pay
                if self.payments.pending_for_ticket(ticket.id):
                    self._set_status(ticket, TicketStatus.PAYMENT_REQUIRED)
                    ticket.requires_payment = True
                else:
                    opened = open_ticket_payment(
                        self.payments,
                        ticket,
                        created_by_id=principal.id,
                        amount_cents=ticket.price_cents,
                        currency=ticket.currency,
                        description=ticket.payment_description,
                    )
                self.audit.record(
                    workspace_id=ticket.workspace_id,
                    project_id=ticket.project_id,
                    actor_id=principal.id,
                    action="TICKET_ACCEPTED_PAYMENT_REQUIRED",
                    resource_type="Ticket",
                    resource_id=ticket.id,
                )
            else:
                self._set_status(ticket, TicketStatus.ACCEPTED)
                self.audit.record(
                    workspace_id=ticket.workspace_id,
                    project_id=ticket.project_id,
                    actor_id=principal.id,
                    action="TICKET_ACCEPTED",
                    resource_type="Ticket",
                    resource_id=ticket.id,
                )
                self._convert(principal, ticket)

        self.session.refresh(ticket)
        if opened:
            self._notify_payment_requested(opened)
        logger.info(f"✅ Ticket {ticket.id} accepted → {ticket.status}")
        return ticket

    def reject(self, principal: Principal, ticket_id: str, reason: Optional[str] = None) -> Ticket:
        return self._simple_transition(principal, ticket_id, TicketAction.REJECT, "TICKET_REJECTED", reason, "reject tickets")

    def mark_needs_info(self, principal: Principal, ticket_id: str, reason: Optional[str] = None) -> Ticket:
        return self._simple_transition(
            principal, ticket_id, TicketAction.NEEDS_INFO, "TICKET_NEEDS_INFO", reason, "request more info"
        )

    def _simple_transition(
        self,
        principal: Principal,
        ticket_id: str,
        action: TicketAction,
        audit_action: str,
        reason: Optional[str],
        verb: str,
    ) -> Ticket:
        with transaction(self.session):
            ticket = self._load(principal, ticket_id, for_update=True)
            require_admin(principal, ticket.workspace_id, verb)
            transition = self._plan(ticket, action)

            if transition.no_op:
                self._reassert_converted(ticket)
            else:
                self._set_status(ticket, transition.target, reason=reason, keep_reason=False)
                self.audit.record(
                    workspace_id=ticket.workspace_id,
                    project_id=ticket.project_id,
                    actor_id=principal.id,
                    action=audit_action,
                    resource_type="Ticket",
                    resource_id=ticket.id,
                    metadata={"reason": reason} if reason else {},
                )

        self.session.refresh(ticket)
        return ticket

    def request_payment(
        self,
        principal: Principal,
        ticket_id: str,
        price_cents: int,
        description: Optional[str] = None,
        currency: Optional[str] = None,
    ) -> Ticket:
        payment: Optional[Payment] = None

        with transaction(self.session):
            ticket = self._load(principal, ticket_id, for_update=True)
            require_admin(principal, ticket.workspace_id, "request payment")
            transition = self._plan(ticket, TicketAction.REQUEST_PAYMENT)

            if transition.no_op:
                self._reassert_converted(ticket)
            else:
                payment = open_ticket_payment(
                    self.payments,
                    ticket,
                    created_by_id=principal.id,
                    amount_cents=price_cents,
                    currency=currency or ticket.currency or self.default_currency,
                    description=description,
                )
                self.audit.record(
                    workspace_id=ticket.workspace_id,
                    project_id=ticket.project_id,
                    actor_id=principal.id,
                    action="TICKET_PAYMENT_REQUESTED",
                    resource_type="Ticket",
                    resource_id=ticket.id,
                    metadata={"priceCents": price_cents, "paymentId": payment.id},
                )

        self.session.refresh(ticket)
        if payment:
            self._notify_payment_requested(payment)
        return ticket

    def soft_delete(self, principal: Principal, ticket_id: str) -> Ticket:
        with transaction(self.session):
            ticket = self._load(principal, ticket_id, for_update=True)
            require_admin(principal, ticket.workspace_id, "delete tickets")

            ticket.is_deleted = True
            ticket.deleted_at = utc_now()
            ticket.updated_at = ticket.deleted_at
            self.session.add(ticket)
            retire_pending_payments(self.payments, ticket.id, reason="ticket deleted")
            self.audit.record(
                workspace_id=ticket.workspace_id,
                project_id=ticket.project_id,
                actor_id=principal.id,
                action="TICKET_DELETED",
                resource_type="Ticket",
                resource_id=ticket.id,
            )

        logger.info(f"🗑️ Ticket {ticket_id} soft-deleted")
        return ticket

    # ------------------------
    # Payment settlement (system only)
    # ------------------------
    def settle_payment(self, principal: SystemPrincipal, ticket_id: str) -> Ticket:
        """Mark a ticket PAID and convert it, on behalf of the payment provider callback."""
        with transaction(self.session):
            ticket = self._load(principal, ticket_id, for_update=True)
            require_system(principal, ticket.workspace_id, ticket.id)
            transition = self._plan(ticket, TicketAction.MARK_PAID)

            if transition.no_op:
                self._reassert_converted(ticket)
            else:
                if ticket.status != TicketStatus.PAID.value:
                    self._set_status(ticket, TicketStatus.PAID)
                    self.audit.record(
                        workspace_id=ticket.workspace_id,
                        project_id=ticket.project_id,
                        action="TICKET_PAID",
                        resource_type="Ticket",
                        resource_id=ticket.id,
                    )
                self._convert(principal, ticket)

        self.session.refresh(ticket)
        return ticket

    # ------------------------
    # Conversion
    # ------------------------
    def convert_to_task(self, principal: Principal, ticket_id: str) -> Ticket:
        with transaction(self.session):
            ticket = self._load(principal, ticket_id, for_update=True)
            require_admin_or_system(principal, ticket.workspace_id, ticket.id, "convert tickets")
            self._convert(principal, ticket)

        self.session.refresh(ticket)
        return ticket

    def _convert(self, principal: Principal, ticket: Ticket) -> Ticket:
        """Create the task and close the ticket. Caller owns the transaction."""
        transition = self._plan(ticket, TicketAction.CONVERT)
        if transition.no_op:
            return self._reassert_converted(ticket)

        task = self.tasks.create_from_ticket(
            principal,
            project_id=ticket.project_id,
            title=ticket.title,
            description=ticket.description,
        )
        ticket.converted_task_id = task.id
        self._set_status(ticket, TicketStatus.CONVERTED)
        # Nothing left to pay once the work is scheduled
        retire_pending_payments(self.payments, ticket.id, reason="ticket converted")
        self.audit.record(
            workspace_id=ticket.workspace_id,
            project_id=ticket.project_id,
            actor_id=principal.id,
            action="TICKET_CONVERTED_TO_TASK",
            resource_type="Ticket",
            resource_id=ticket.id,
            metadata={"taskId": task.id},
        )
        logger.info(f"✅ Ticket {ticket.id} converted to task {task.id}")
        return ticket
