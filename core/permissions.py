# core/permissions.py
from typing import Optional

from core.errors import ForbiddenError, NotFoundError
from core.security import AuthUser, Principal, SystemPrincipal
from models.models import Project


def require_admin(principal: Principal, workspace_id: str, action: str = "perform this action") -> None:
    """
    Admin-only gate for workflow mutations.
    Raises ForbiddenError for clients and for admins of another workspace.
    """
    if isinstance(principal, SystemPrincipal):
        raise ForbiddenError(f"System caller cannot {action}")

    if not principal.is_admin or principal.workspace_id != workspace_id:
        raise ForbiddenError(f"Only admins can {action}")


def require_admin_or_system(
    principal: Principal,
    workspace_id: str,
    ticket_id: Optional[str] = None,
    action: str = "perform this action",
) -> None:
    """Same as require_admin, but also accepts a system principal scoped to this ticket."""
    if isinstance(principal, SystemPrincipal):
        if not principal.covers(workspace_id, ticket_id):
            raise ForbiddenError(f"System caller is not scoped to {action} here")
        return

    require_admin(principal, workspace_id, action)


def require_system(principal: Principal, workspace_id: str, ticket_id: Optional[str] = None) -> None:
    if not isinstance(principal, SystemPrincipal) or not principal.covers(workspace_id, ticket_id):
        raise ForbiddenError("Payments can only be settled by the payment provider callback")


def assert_project_access(principal: Principal, project: Optional[Project]) -> Project:
    """
    Check a caller may see a project.
    Unknown and foreign-workspace projects are reported as not found.
    """
    if not project or project.workspace_id != principal.workspace_id:
        raise NotFoundError("Project not found", code="PROJECT_NOT_FOUND")

    if isinstance(principal, AuthUser) and not principal.is_admin and project.client_id != principal.id:
        raise ForbiddenError("Project access denied")

    return project
