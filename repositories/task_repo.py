"""Task persistence (only what ticket conversion needs)."""

from sqlmodel import Session, func, select

from models.models import Task


class TaskRepository:
    def __init__(self, session: Session):
        self.session = session

    def add(self, task: Task) -> Task:
        self.session.add(task)
        self.session.flush()
        return task

    def count_for_project(self, workspace_id: str, project_id: str) -> int:
        statement = select(func.count()).select_from(Task).where(
            Task.workspace_id == workspace_id,
            Task.project_id == project_id,
        )
        return self.session.exec(statement).one()
