# models/models.py
from typing import Optional, Dict, Any
from datetime import datetime, timezone
from enum import Enum
import uuid

from sqlalchemy import Column, JSON
from sqlmodel import SQLModel, Field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


# ============================================================
# ENUMS
# ============================================================
class UserRole(str, Enum):
    ADMIN = "ADMIN"
    CLIENT = "CLIENT"


class TicketType(str, Enum):
    BUG = "BUG"
    MODIFICATION = "MODIFICATION"
    IMPROVEMENT = "IMPROVEMENT"
    QUESTION = "QUESTION"


class TicketStatus(str, Enum):
    OPEN = "OPEN"
    NEEDS_INFO = "NEEDS_INFO"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    PAYMENT_REQUIRED = "PAYMENT_REQUIRED"
    PAID = "PAID"
    CONVERTED = "CONVERTED"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    CANCELED = "CANCELED"
    EXPIRED = "EXPIRED"


class TaskSource(str, Enum):
    CORE = "CORE"
    TICKET = "TICKET"
    MILESTONE = "MILESTONE"


class TaskStatus(str, Enum):
    BACKLOG = "BACKLOG"
    IN_PROGRESS = "IN_PROGRESS"
    BLOCKED_BY_CLIENT = "BLOCKED_BY_CLIENT"
    DONE = "DONE"


# ============================================================
# WORKSPACE (tenant)
# ============================================================
class Workspace(SQLModel, table=True):
    __tablename__ = "workspace"

    id: str = Field(default_factory=new_id, primary_key=True, max_length=36)
    name: str = Field(max_length=100)
    created_at: datetime = Field(default_factory=utc_now)


# ============================================================
# USER
# ============================================================
class User(SQLModel, table=True):
    __tablename__ = "user"

    id: str = Field(default_factory=new_id, primary_key=True, max_length=36)
    workspace_id: str = Field(foreign_key="workspace.id", index=True, max_length=36)
    email: str = Field(index=True, max_length=100, nullable=False)
    full_name: Optional[str] = Field(default=None, max_length=100)
    role: str = Field(default=UserRole.CLIENT.value, max_length=20, index=True)
    created_at: datetime = Field(default_factory=utc_now)


# ============================================================
# PROJECT
# ============================================================
class Project(SQLModel, table=True):
    __tablename__ = "project"

    id: str = Field(default_factory=new_id, primary_key=True, max_length=36)
    workspace_id: str = Field(foreign_key="workspace.id", index=True, max_length=36)
    client_id: str = Field(foreign_key="user.id", index=True, max_length=36)
    name: str = Field(max_length=180)
    description: Optional[str] = Field(default=None)
    created_at: datetime = Field(default_factory=utc_now)


# ============================================================
# TASK
# ============================================================
class Task(SQLModel, table=True):
    __tablename__ = "task"

    id: str = Field(default_factory=new_id, primary_key=True, max_length=36)
    workspace_id: str = Field(foreign_key="workspace.id", index=True, max_length=36)
    project_id: str = Field(foreign_key="project.id", index=True, max_length=36)
    source: str = Field(default=TaskSource.CORE.value, max_length=20)
    title: str = Field(max_length=180)
    description: Optional[str] = Field(default=None)
    status: str = Field(default=TaskStatus.BACKLOG.value, max_length=20)
    position: int = Field(default=0)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


# ============================================================
# TICKET
# ============================================================
class Ticket(SQLModel, table=True):
    __tablename__ = "ticket"

    id: str = Field(default_factory=new_id, primary_key=True, max_length=36)
    workspace_id: str = Field(foreign_key="workspace.id", index=True, max_length=36)
    project_id: str = Field(foreign_key="project.id", index=True, max_length=36)
    created_by_id: str = Field(foreign_key="user.id", max_length=36)

    type: str = Field(max_length=20)
    title: str = Field(max_length=180)
    description: str = Field()
    status: str = Field(default=TicketStatus.OPEN.value, max_length=20, index=True)
    status_reason: Optional[str] = Field(default=None, max_length=1000)

    requires_payment: bool = Field(default=False)
    price_cents: Optional[int] = Field(default=None)
    currency: str = Field(default="EUR", max_length=3)
    payment_description: Optional[str] = Field(default=None, max_length=255)

    # Unique: a task is the conversion target of at most one ticket
    converted_task_id: Optional[str] = Field(
        default=None, foreign_key="task.id", unique=True, nullable=True, max_length=36
    )

    is_deleted: bool = Field(default=False, index=True)
    deleted_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


# ============================================================
# PAYMENT REQUEST
# ============================================================
class Payment(SQLModel, table=True):
    __tablename__ = "payment"

    id: str = Field(default_factory=new_id, primary_key=True, max_length=36)
    workspace_id: str = Field(foreign_key="workspace.id", index=True, max_length=36)
    project_id: str = Field(foreign_key="project.id", index=True, max_length=36)
    ticket_id: Optional[str] = Field(default=None, foreign_key="ticket.id", index=True, max_length=36)
    created_by_id: str = Field(foreign_key="user.id", max_length=36)

    title: str = Field(max_length=180)
    description: Optional[str] = Field(default=None)
    amount_cents: int = Field(gt=0)
    currency: str = Field(default="EUR", max_length=3)
    status: str = Field(default=PaymentStatus.PENDING.value, max_length=20, index=True)

    stripe_checkout_session_id: Optional[str] = Field(default=None, max_length=255, index=True)
    stripe_payment_intent_id: Optional[str] = Field(default=None, max_length=255)

    due_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    canceled_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


# ============================================================
# PROCESSED WEBHOOK EVENT (idempotency ledger)
# ============================================================
class ProcessedEvent(SQLModel, table=True):
    __tablename__ = "processed_event"

    # Primary key doubles as the uniqueness guard for concurrent deliveries
    event_id: str = Field(primary_key=True, max_length=255)
    event_type: str = Field(max_length=100, index=True)
    processed_at: datetime = Field(default_factory=utc_now)


# ============================================================
# AUDIT EVENT
# ============================================================
class AuditEvent(SQLModel, table=True):
    __tablename__ = "audit_event"

    id: str = Field(default_factory=new_id, primary_key=True, max_length=36)
    workspace_id: str = Field(foreign_key="workspace.id", index=True, max_length=36)
    project_id: Optional[str] = Field(default=None, index=True, max_length=36)
    actor_id: Optional[str] = Field(default=None, max_length=36)
    action: str = Field(max_length=80, index=True)
    resource_type: str = Field(max_length=40)
    resource_id: str = Field(max_length=36)
    event_metadata: Dict[str, Any] = Field(default_factory=dict, sa_column=Column("metadata", JSON))
    created_at: datetime = Field(default_factory=utc_now)
