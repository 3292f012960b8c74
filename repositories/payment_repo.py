"""Payment request persistence."""

from typing import List, Optional

from sqlmodel import Session, col, select

from models.models import Payment, PaymentStatus, Project


class PaymentRepository:
    """Reads and writes payment requests; never commits."""

    def __init__(self, session: Session):
        self.session = session

    def get(self, payment_id: str, for_update: bool = False) -> Optional[Payment]:
        statement = select(Payment).where(Payment.id == payment_id)
        if for_update:
            statement = statement.with_for_update().execution_options(populate_existing=True)
        return self.session.exec(statement).first()

    def add(self, payment: Payment) -> Payment:
        self.session.add(payment)
        self.session.flush()
        return payment

    def pending_for_ticket(self, ticket_id: str) -> List[Payment]:
        statement = (
            select(Payment)
            .where(Payment.ticket_id == ticket_id, Payment.status == PaymentStatus.PENDING.value)
            .order_by(col(Payment.created_at).desc())
        )
        return list(self.session.exec(statement).all())

    def list(
        self,
        workspace_id: str,
        client_id: Optional[str] = None,
        project_id: Optional[str] = None,
        ticket_id: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 50,
    ) -> List[Payment]:
        statement = (
            select(Payment)
            .join(Project, Project.id == Payment.project_id)
            .where(Payment.workspace_id == workspace_id)
        )

        if client_id:
            statement = statement.where(Project.client_id == client_id)
        if project_id:
            statement = statement.where(Payment.project_id == project_id)
        if ticket_id:
            statement = statement.where(Payment.ticket_id == ticket_id)
        if status:
            statement = statement.where(Payment.status == status)

        statement = statement.order_by(col(Payment.created_at).desc()).limit(limit)
        return list(self.session.exec(statement).all())
