"""Read-only access to projects and their client users."""

from typing import Optional

from sqlmodel import Session

from models.models import Project, User


class ProjectRepository:
    def __init__(self, session: Session):
        self.session = session

    def get(self, project_id: str) -> Optional[Project]:
        return self.session.get(Project, project_id)

    def get_client(self, project: Project) -> Optional[User]:
        return self.session.get(User, project.client_id)
