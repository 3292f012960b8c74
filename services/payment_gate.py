"""
Shared primitive that puts a ticket behind a payment.

Used by TicketService.request_payment and PaymentService.create so both
paths leave the ticket and its payment request in the same shape.
"""
import logging
from datetime import datetime
from typing import List, Optional

from core.errors import BadRequestError, InvalidTransitionError
from models.models import Payment, PaymentStatus, Ticket, TicketStatus, utc_now
from repositories.payment_repo import PaymentRepository
from services.ticket_state_machine import TicketAction, plan_transition

logger = logging.getLogger(__name__)


def retire_pending_payments(payments: PaymentRepository, ticket_id: str, reason: str) -> List[Payment]:
    """Cancel every PENDING payment of a ticket so none of them can still be paid. No commit."""
    now = utc_now()
    retired = payments.pending_for_ticket(ticket_id)
    for payment in retired:
        payment.status = PaymentStatus.CANCELED.value
        payment.canceled_at = now
        payment.updated_at = now
        payments.session.add(payment)
        logger.info(f"🔄 Retired payment {payment.id} for ticket {ticket_id} ({reason})")
    return retired


def open_ticket_payment(
    payments: PaymentRepository,
    ticket: Ticket,
    created_by_id: str,
    amount_cents: int,
    currency: str,
    title: Optional[str] = None,
    description: Optional[str] = None,
    due_at: Optional[datetime] = None,
) -> Payment:
    """
    Force the ticket into PAYMENT_REQUIRED at amount_cents and open its pending payment.

    Any payment still pending for the ticket is retired first, so only the new
    one is actionable. Nothing is committed here.
    """
    if amount_cents <= 0:
        raise BadRequestError("Amount must be a positive number of cents", code="PAYMENT_AMOUNT_INVALID")

    transition = plan_transition(
        TicketStatus(ticket.status),
        TicketAction.REQUEST_PAYMENT,
        price_cents=ticket.price_cents,
        converted=bool(ticket.converted_task_id),
    )
    if not transition.allowed or transition.no_op:
        raise InvalidTransitionError(
            transition.reason or "Cannot request payment for a converted ticket",
            current_status=TicketStatus.CONVERTED if transition.no_op else transition.current,
            code=transition.code or "TICKET_INVALID_TRANSITION",
        )

    retire_pending_payments(payments, ticket.id, reason="superseded")

    now = utc_now()
    currency = currency.upper()
    ticket.requires_payment = True
    ticket.price_cents = amount_cents
    ticket.currency = currency
    ticket.payment_description = description
    ticket.status = transition.target.value
    ticket.updated_at = now
    payments.session.add(ticket)

    payment = Payment(
        workspace_id=ticket.workspace_id,
        project_id=ticket.project_id,
        ticket_id=ticket.id,
        created_by_id=created_by_id,
        title=title or f"Ticket: {ticket.title}",
        description=description,
        amount_cents=amount_cents,
        currency=currency,
        status=PaymentStatus.PENDING.value,
        due_at=due_at,
    )
    return payments.add(payment)
