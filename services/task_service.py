# services/task_service.py
import logging
from typing import Optional

from sqlmodel import Session

from core.permissions import assert_project_access
from core.security import Principal
from models.models import Task, TaskSource, TaskStatus
from repositories.project_repo import ProjectRepository
from repositories.task_repo import TaskRepository

logger = logging.getLogger(__name__)


class TaskService:
    def __init__(self, session: Session):
        self.session = session
        self.tasks = TaskRepository(session)
        self.projects = ProjectRepository(session)

    def create_from_ticket(
        self,
        principal: Principal,
        project_id: str,
        title: str,
        description: Optional[str],
    ) -> Task:
        """
        Append a TICKET task at the end of the project's ordering.
        Flushes only: the converter commits it together with the ticket update.
        """
        assert_project_access(principal, self.projects.get(project_id))

        position = self.tasks.count_for_project(principal.workspace_id, project_id)
        task = Task(
            workspace_id=principal.workspace_id,
            project_id=project_id,
            source=TaskSource.TICKET.value,
            status=TaskStatus.BACKLOG.value,
            title=title,
            description=description,
            position=position,
        )
        self.tasks.add(task)
        logger.info(f"🧩 Task {task.id} created from ticket in project {project_id} at position {position}")
        return task
