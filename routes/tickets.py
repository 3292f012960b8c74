# routes/tickets.py
from fastapi import APIRouter, Depends, Query
from sqlmodel import Session
from typing import List, Optional

from core.database import get_session
from core.security import AuthUser, get_current_user
from models.models import TicketStatus, TicketType
from schemas.ticket_schema import TicketCreate, TicketPaymentRequest, TicketRead, TicketReason
from services.notification_service import NotificationService, get_notification_service
from services.ticket_service import TicketService

router = APIRouter(tags=["Tickets"])


def get_ticket_service(
    session: Session = Depends(get_session),
    notifications: NotificationService = Depends(get_notification_service),
) -> TicketService:
    return TicketService(session, notifications=notifications)


# ================================================================
#  ✅ Create Ticket (admin or owning client)
# ================================================================
@router.post("", response_model=TicketRead, status_code=201)
def create_ticket(
    payload: TicketCreate,
    current_user: AuthUser = Depends(get_current_user),
    service: TicketService = Depends(get_ticket_service),
):
    return service.create(
        current_user,
        project_id=payload.project_id,
        ticket_type=payload.type,
        title=payload.title,
        description=payload.description,
        requires_payment=payload.requires_payment,
        price_cents=payload.price_cents,
        payment_description=payload.payment_description,
    )


# ================================================================
#  ✅ List / Get
# ================================================================
@router.get("", response_model=List[TicketRead])
def list_tickets(
    project_id: Optional[str] = None,
    status: Optional[TicketStatus] = None,
    type: Optional[TicketType] = None,
    search: Optional[str] = None,
    limit: int = Query(default=50, ge=1, le=200),
    current_user: AuthUser = Depends(get_current_user),
    service: TicketService = Depends(get_ticket_service),
):
    return service.list(
        current_user,
        project_id=project_id,
        status=status,
        ticket_type=type,
        search=search,
        limit=limit,
    )


@router.get("/{ticket_id}", response_model=TicketRead)
def get_ticket(
    ticket_id: str,
    current_user: AuthUser = Depends(get_current_user),
    service: TicketService = Depends(get_ticket_service),
):
    return service.get(current_user, ticket_id)


# ================================================================
#  ✅ Admin transitions
# ================================================================
@router.post("/{ticket_id}/accept", response_model=TicketRead)
def accept_ticket(
    ticket_id: str,
    current_user: AuthUser = Depends(get_current_user),
    service: TicketService = Depends(get_ticket_service),
):
    return service.accept(current_user, ticket_id)


@router.post("/{ticket_id}/reject", response_model=TicketRead)
def reject_ticket(
    ticket_id: str,
    payload: Optional[TicketReason] = None,
    current_user: AuthUser = Depends(get_current_user),
    service: TicketService = Depends(get_ticket_service),
):
    return service.reject(current_user, ticket_id, reason=payload.reason if payload else None)


@router.post("/{ticket_id}/needs-info", response_model=TicketRead)
def ticket_needs_info(
    ticket_id: str,
    payload: Optional[TicketReason] = None,
    current_user: AuthUser = Depends(get_current_user),
    service: TicketService = Depends(get_ticket_service),
):
    return service.mark_needs_info(current_user, ticket_id, reason=payload.reason if payload else None)


@router.post("/{ticket_id}/request-payment", response_model=TicketRead)
def request_ticket_payment(
    ticket_id: str,
    payload: TicketPaymentRequest,
    current_user: AuthUser = Depends(get_current_user),
    service: TicketService = Depends(get_ticket_service),
):
    return service.request_payment(
        current_user,
        ticket_id,
        price_cents=payload.price_cents,
        description=payload.description,
        currency=payload.currency,
    )


@router.post("/{ticket_id}/convert-to-task", response_model=TicketRead)
def convert_ticket_to_task(
    ticket_id: str,
    current_user: AuthUser = Depends(get_current_user),
    service: TicketService = Depends(get_ticket_service),
):
    return service.convert_to_task(current_user, ticket_id)


# ================================================================
#  ✅ Soft delete
# ================================================================
@router.delete("/{ticket_id}")
def delete_ticket(
    ticket_id: str,
    current_user: AuthUser = Depends(get_current_user),
    service: TicketService = Depends(get_ticket_service),
):
    service.soft_delete(current_user, ticket_id)
    return {"success": True}
