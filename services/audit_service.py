# services/audit_service.py
import logging
from typing import Any, Dict, Optional

from sqlmodel import Session

from models.models import AuditEvent

logger = logging.getLogger(__name__)


class AuditService:
    """Writes audit rows inside the caller's transaction."""

    def __init__(self, session: Session):
        self.session = session

    def record(
        self,
        workspace_id: str,
        action: str,
        resource_type: str,
        resource_id: str,
        project_id: Optional[str] = None,
        actor_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> AuditEvent:
        event = AuditEvent(
            workspace_id=workspace_id,
            project_id=project_id,
            actor_id=actor_id,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            event_metadata=metadata or {},
        )
        self.session.add(event)
        logger.info(f"📝 {action} {resource_type}={resource_id} actor={actor_id or 'system'}")
        return event
