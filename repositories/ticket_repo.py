"""Ticket persistence backed by a SQLModel session."""

from typing import List, Optional

from sqlmodel import Session, col, or_, select

from models.models import Project, Ticket


class TicketRepository:
    """Reads and writes tickets; never commits."""

    def __init__(self, session: Session):
        self.session = session

    def get(self, ticket_id: str, for_update: bool = False) -> Optional[Ticket]:
        """
        Load a ticket by id.

        With for_update the row is locked (on backends that support it) and
        re-read from the database, so guards compare against persisted state.
        """
        statement = select(Ticket).where(Ticket.id == ticket_id)
        if for_update:
            statement = statement.with_for_update().execution_options(populate_existing=True)
        return self.session.exec(statement).first()

    def add(self, ticket: Ticket) -> Ticket:
        self.session.add(ticket)
        self.session.flush()
        return ticket

    def list(
        self,
        workspace_id: str,
        client_id: Optional[str] = None,
        project_id: Optional[str] = None,
        status: Optional[str] = None,
        ticket_type: Optional[str] = None,
        search: Optional[str] = None,
        limit: int = 50,
    ) -> List[Ticket]:
        statement = (
            select(Ticket)
            .join(Project, Project.id == Ticket.project_id)
            .where(Ticket.workspace_id == workspace_id, Ticket.is_deleted == False)  # noqa: E712
        )

        if client_id:
            statement = statement.where(Project.client_id == client_id)
        if project_id:
            statement = statement.where(Ticket.project_id == project_id)
        if status:
            statement = statement.where(Ticket.status == status)
        if ticket_type:
            statement = statement.where(Ticket.type == ticket_type)
        if search:
            pattern = f"%{search}%"
            statement = statement.where(
                or_(col(Ticket.title).ilike(pattern), col(Ticket.description).ilike(pattern))
            )

        statement = statement.order_by(col(Ticket.created_at).desc()).limit(limit)
        return list(self.session.exec(statement).all())
