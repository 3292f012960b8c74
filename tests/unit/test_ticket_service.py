"""
Tests for TicketService: lifecycle, authorization and conversion.
"""
import pytest
from sqlmodel import select

from core.errors import BadRequestError, ForbiddenError, InvalidTransitionError, NotFoundError
from core.security import SystemPrincipal
from models.models import AuditEvent, Payment, PaymentStatus, Task, TaskSource, TaskStatus, TicketStatus, TicketType
from services.ticket_service import TicketService


@pytest.fixture
def service(session, notifications):
    return TicketService(session, notifications=notifications)


def _ticket(service, actor, project, title="Broken contact form", **kwargs):
    return service.create(
        actor,
        project_id=project.id,
        ticket_type=kwargs.pop("ticket_type", TicketType.BUG),
        title=title,
        description=kwargs.pop("description", "Submitting the form shows a blank page"),
        **kwargs,
    )


def _tasks(session):
    return session.exec(select(Task)).all()


class TestCreate:
    def test_client_creates_open_ticket(self, service, session, client, project):
        ticket = _ticket(service, client, project)

        assert ticket.status == TicketStatus.OPEN.value
        assert ticket.created_by_id == client.id
        assert ticket.requires_payment is False
        assert ticket.currency == "EUR"
        actions = [e.action for e in session.exec(select(AuditEvent)).all()]
        assert actions == ["TICKET_CREATED"]

    def test_priced_ticket_starts_in_payment_required_without_payment(self, service, session, admin, project):
        ticket = _ticket(service, admin, project, price_cents=5000)

        assert ticket.status == TicketStatus.PAYMENT_REQUIRED.value
        assert ticket.requires_payment is True
        assert ticket.price_cents == 5000
        assert session.exec(select(Payment)).all() == []

    def test_other_client_cannot_create_on_project(self, service, other_client, project):
        with pytest.raises(ForbiddenError):
            _ticket(service, other_client, project)

    def test_foreign_workspace_project_is_not_found(self, service, foreign_admin, project):
        with pytest.raises(NotFoundError) as exc:
            _ticket(service, foreign_admin, project)
        assert exc.value.code == "PROJECT_NOT_FOUND"

    def test_system_principal_cannot_create(self, service, workspace, project):
        with pytest.raises(ForbiddenError):
            _ticket(service, SystemPrincipal(workspace_id=workspace.id), project)


class TestAccept:
    def test_free_ticket_is_accepted_and_converted(self, service, session, admin, client, project):
        ticket = _ticket(service, client, project)

        ticket = service.accept(admin, ticket.id)

        assert ticket.status == TicketStatus.CONVERTED.value
        tasks = _tasks(session)
        assert len(tasks) == 1
        task = tasks[0]
        assert ticket.converted_task_id == task.id
        assert task.source == TaskSource.TICKET.value
        assert task.status == TaskStatus.BACKLOG.value
        assert task.title == "Broken contact form"
        assert task.position == 0

    def test_converted_tasks_are_appended(self, service, session, admin, client, project):
        first = service.accept(admin, _ticket(service, client, project, title="One").id)
        second = service.accept(admin, _ticket(service, client, project, title="Two").id)

        positions = {t.id: t.position for t in _tasks(session)}
        assert positions[first.converted_task_id] == 0
        assert positions[second.converted_task_id] == 1

    def test_priced_ticket_waits_for_payment(self, service, session, admin, client, project, notifications):
        ticket = _ticket(service, client, project)
        ticket.price_cents = 5000
        session.add(ticket)
        session.commit()

        ticket = service.accept(admin, ticket.id)

        assert ticket.status == TicketStatus.PAYMENT_REQUIRED.value
        assert ticket.converted_task_id is None
        assert _tasks(session) == []
        payments = session.exec(select(Payment)).all()
        assert len(payments) == 1
        assert payments[0].status == PaymentStatus.PENDING.value
        assert payments[0].amount_cents == 5000
        assert payments[0].title == "Ticket: Broken contact form"
        assert notifications.sent[0]["to"] == "client@acme.test"

    def test_client_cannot_accept(self, service, client, project):
        ticket = _ticket(service, client, project)
        with pytest.raises(ForbiddenError):
            service.accept(client, ticket.id)

    def test_foreign_admin_gets_not_found(self, service, client, foreign_admin, project):
        ticket = _ticket(service, client, project)
        with pytest.raises(NotFoundError) as exc:
            service.accept(foreign_admin, ticket.id)
        assert exc.value.code == "TICKET_NOT_FOUND"

    def test_rejected_ticket_cannot_be_accepted(self, service, admin, client, project):
        ticket = _ticket(service, client, project)
        service.reject(admin, ticket.id, reason="Out of scope")

        with pytest.raises(InvalidTransitionError) as exc:
            service.accept(admin, ticket.id)
        assert exc.value.current_status == "REJECTED"
        assert exc.value.to_dict()["current_status"] == "REJECTED"


class TestRejectAndNeedsInfo:
    def test_reject_records_reason(self, service, admin, client, project):
        ticket = service.reject(admin, _ticket(service, client, project).id, reason="Duplicate")

        assert ticket.status == TicketStatus.REJECTED.value
        assert ticket.status_reason == "Duplicate"

    def test_needs_info_then_accept(self, service, session, admin, client, project):
        ticket = _ticket(service, client, project)
        ticket = service.mark_needs_info(admin, ticket.id, reason="Which browser?")
        assert ticket.status == TicketStatus.NEEDS_INFO.value

        ticket = service.accept(admin, ticket.id)
        assert ticket.status == TicketStatus.CONVERTED.value
        assert len(_tasks(session)) == 1


class TestRequestPayment:
    def test_opens_pending_payment(self, service, session, admin, client, project, notifications):
        ticket = _ticket(service, client, project)

        ticket = service.request_payment(admin, ticket.id, price_cents=12000, description="Extra page", currency="usd")

        assert ticket.status == TicketStatus.PAYMENT_REQUIRED.value
        assert ticket.requires_payment is True
        assert ticket.price_cents == 12000
        assert ticket.currency == "USD"
        assert ticket.payment_description == "Extra page"
        payment = session.exec(select(Payment)).one()
        assert payment.ticket_id == ticket.id
        assert payment.status == PaymentStatus.PENDING.value
        assert payment.currency == "USD"
        assert notifications.sent[0]["subject"] == "Payment request - Ticket: Broken contact form"

    def test_new_request_retires_previous_pending(self, service, session, admin, client, project):
        ticket = _ticket(service, client, project)
        service.request_payment(admin, ticket.id, price_cents=1000)
        service.request_payment(admin, ticket.id, price_cents=2500)

        payments = session.exec(select(Payment)).all()
        pending = [p for p in payments if p.status == PaymentStatus.PENDING.value]
        assert len(payments) == 2
        assert len(pending) == 1
        assert pending[0].amount_cents == 2500

    def test_rejects_non_positive_amount(self, service, admin, client, project):
        ticket = _ticket(service, client, project)
        with pytest.raises(BadRequestError):
            service.request_payment(admin, ticket.id, price_cents=0)


class TestConvert:
    def test_priced_ticket_not_converted_before_payment(self, service, session, admin, client, project):
        ticket = _ticket(service, client, project)
        service.request_payment(admin, ticket.id, price_cents=5000)
        service.tickets.get(ticket.id).status = TicketStatus.ACCEPTED.value
        session.commit()

        with pytest.raises(InvalidTransitionError) as exc:
            service.convert_to_task(admin, ticket.id)

        assert exc.value.code == "TICKET_PAYMENT_PENDING"
        assert _tasks(session) == []

    def test_conversion_happens_once(self, service, session, admin, client, project):
        ticket = service.accept(admin, _ticket(service, client, project).id)
        task_id = ticket.converted_task_id

        again = service.convert_to_task(admin, ticket.id)

        assert again.converted_task_id == task_id
        assert len(_tasks(session)) == 1

    def test_converted_ticket_ignores_other_transitions(self, service, admin, client, project):
        ticket = service.accept(admin, _ticket(service, client, project).id)

        assert service.reject(admin, ticket.id, reason="late").status == TicketStatus.CONVERTED.value
        assert service.request_payment(admin, ticket.id, price_cents=100).status == TicketStatus.CONVERTED.value


class TestSettlePayment:
    def _priced(self, service, admin, client, project):
        ticket = _ticket(service, client, project)
        return service.request_payment(admin, ticket.id, price_cents=5000)

    def test_system_marks_paid_and_converts(self, service, session, workspace, admin, client, project):
        ticket = self._priced(service, admin, client, project)

        ticket = service.settle_payment(SystemPrincipal(workspace_id=workspace.id, ticket_id=ticket.id), ticket.id)

        assert ticket.status == TicketStatus.CONVERTED.value
        assert len(_tasks(session)) == 1
        actions = {e.action for e in session.exec(select(AuditEvent)).all()}
        assert {"TICKET_PAID", "TICKET_CONVERTED_TO_TASK"} <= actions

    def test_conversion_retires_payments_still_pending(self, service, session, workspace, admin, client, project):
        ticket = self._priced(service, admin, client, project)

        service.settle_payment(SystemPrincipal(workspace_id=workspace.id, ticket_id=ticket.id), ticket.id)

        payment = session.exec(select(Payment)).one()
        assert payment.status == PaymentStatus.CANCELED.value
        assert payment.canceled_at is not None

    def test_admin_cannot_settle(self, service, admin, client, project):
        ticket = self._priced(service, admin, client, project)
        with pytest.raises(ForbiddenError):
            service.settle_payment(admin, ticket.id)

    def test_system_scoped_to_other_ticket_is_forbidden(self, service, workspace, admin, client, project):
        ticket = self._priced(service, admin, client, project)
        with pytest.raises(ForbiddenError):
            service.settle_payment(SystemPrincipal(workspace_id=workspace.id, ticket_id="other"), ticket.id)

    def test_ticket_not_awaiting_payment_is_refused(self, service, workspace, admin, client, project):
        ticket = service.reject(admin, _ticket(service, client, project).id)
        with pytest.raises(InvalidTransitionError):
            service.settle_payment(SystemPrincipal(workspace_id=workspace.id, ticket_id=ticket.id), ticket.id)


class TestReadAndDelete:
    def test_soft_deleted_ticket_disappears(self, service, admin, client, project):
        ticket = _ticket(service, client, project)
        service.soft_delete(admin, ticket.id)

        with pytest.raises(NotFoundError):
            service.get(admin, ticket.id)
        assert service.list(admin) == []

    def test_deleting_ticket_retires_its_pending_payment(self, service, session, admin, client, project):
        ticket = _ticket(service, client, project)
        service.request_payment(admin, ticket.id, price_cents=5000)

        service.soft_delete(admin, ticket.id)

        payment = session.exec(select(Payment)).one()
        assert payment.status == PaymentStatus.CANCELED.value
        assert payment.canceled_at is not None

    def test_client_cannot_delete(self, service, client, project):
        ticket = _ticket(service, client, project)
        with pytest.raises(ForbiddenError):
            service.soft_delete(client, ticket.id)

    def test_other_client_cannot_read(self, service, client, other_client, project):
        ticket = _ticket(service, client, project)
        with pytest.raises(ForbiddenError):
            service.get(other_client, ticket.id)

    def test_list_is_scoped_and_filtered(self, service, admin, client, other_client, project):
        _ticket(service, client, project, title="Logo too small", ticket_type=TicketType.MODIFICATION)
        _ticket(service, client, project, title="Add FAQ page", ticket_type=TicketType.IMPROVEMENT)

        assert len(service.list(client)) == 2
        assert service.list(other_client) == []
        assert [t.title for t in service.list(admin, search="logo")] == ["Logo too small"]
        assert [t.title for t in service.list(admin, ticket_type=TicketType.IMPROVEMENT)] == ["Add FAQ page"]
        assert service.list(admin, status=TicketStatus.REJECTED) == []
