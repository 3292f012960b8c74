"""
Shared fixtures: an in-memory SQLite database, a seeded workspace and the
FastAPI app wired to both.

Environment defaults are set before any project module is imported, since
core.config reads them at import time.
"""

import hashlib
import hmac
import json
import os
import sys
import time
from pathlib import Path
from typing import Any, Dict, List

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import Session, SQLModel, create_engine  # noqa: E402

from core.security import AuthUser, create_token_for_user  # noqa: E402
from models.models import Project, User, UserRole, Workspace  # noqa: E402
from services.notification_service import NotificationService  # noqa: E402
from services.stripe_gateway import CheckoutSession, StripeGateway  # noqa: E402
from core.errors import GatewayUnavailableError  # noqa: E402

WEBHOOK_SECRET = "whsec_test_secret"


class FakeGateway(StripeGateway):
    """Real webhook verification, canned checkout sessions."""

    def __init__(self, configured: bool = True, fail: bool = False):
        super().__init__(secret_key=None, webhook_secret=WEBHOOK_SECRET)
        self._configured = configured
        self.fail = fail
        self.sessions: List[Dict[str, Any]] = []

    @property
    def configured(self) -> bool:
        return self._configured

    def create_checkout_session(self, **kwargs) -> CheckoutSession:
        if self.fail:
            raise GatewayUnavailableError("Payment provider is unavailable, please retry")
        self.sessions.append(kwargs)
        session_id = f"cs_test_{len(self.sessions)}"
        return CheckoutSession(id=session_id, url=f"https://checkout.stripe.test/{session_id}")


class RecordingNotifications(NotificationService):
    def __init__(self):
        super().__init__(api_key=None, sender_email=None)
        self.sent: List[Dict[str, str]] = []

    def send(self, to_email: str, subject: str, text_body: str) -> bool:
        self.sent.append({"to": to_email, "subject": subject, "body": text_body})
        return True


# ------------------------
# Database
# ------------------------
@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


# ------------------------
# Workspace data
# ------------------------
@pytest.fixture
def workspace(session) -> Workspace:
    workspace = Workspace(name="Acme Studio")
    session.add(workspace)
    session.commit()
    session.refresh(workspace)
    return workspace


def _user(session: Session, workspace: Workspace, email: str, role: UserRole) -> User:
    user = User(workspace_id=workspace.id, email=email, full_name=email.split("@")[0], role=role.value)
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


@pytest.fixture
def admin_user(session, workspace) -> User:
    return _user(session, workspace, "admin@acme.test", UserRole.ADMIN)


@pytest.fixture
def client_user(session, workspace) -> User:
    return _user(session, workspace, "client@acme.test", UserRole.CLIENT)


@pytest.fixture
def other_client_user(session, workspace) -> User:
    return _user(session, workspace, "other@acme.test", UserRole.CLIENT)


@pytest.fixture
def project(session, workspace, client_user) -> Project:
    project = Project(workspace_id=workspace.id, client_id=client_user.id, name="Website relaunch")
    session.add(project)
    session.commit()
    session.refresh(project)
    return project


@pytest.fixture
def foreign_admin(session) -> AuthUser:
    """Admin of a different workspace."""
    other = Workspace(name="Elsewhere Ltd")
    session.add(other)
    session.commit()
    session.refresh(other)
    user = _user(session, other, "admin@elsewhere.test", UserRole.ADMIN)
    return AuthUser(id=user.id, workspace_id=other.id, role=UserRole.ADMIN, email=user.email)


@pytest.fixture
def admin(admin_user) -> AuthUser:
    return AuthUser(id=admin_user.id, workspace_id=admin_user.workspace_id, role=UserRole.ADMIN, email=admin_user.email)


@pytest.fixture
def client(client_user) -> AuthUser:
    return AuthUser(
        id=client_user.id, workspace_id=client_user.workspace_id, role=UserRole.CLIENT, email=client_user.email
    )


@pytest.fixture
def other_client(other_client_user) -> AuthUser:
    return AuthUser(
        id=other_client_user.id,
        workspace_id=other_client_user.workspace_id,
        role=UserRole.CLIENT,
        email=other_client_user.email,
    )


# ------------------------
# Collaborators
# ------------------------
@pytest.fixture
def make_gateway():
    return FakeGateway


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def notifications() -> RecordingNotifications:
    return RecordingNotifications()


@pytest.fixture
def stripe_event():
    """Build a signed Stripe webhook body: returns (raw_body, signature_header)."""

    def _build(event_id: str, event_type: str, obj: Dict[str, Any], secret: str = WEBHOOK_SECRET):
        raw_body = json.dumps(
            {"id": event_id, "object": "event", "type": event_type, "data": {"object": obj}}
        ).encode("utf-8")
        timestamp = int(time.time())
        signed = f"{timestamp}.".encode("utf-8") + raw_body
        signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
        return raw_body, f"t={timestamp},v1={signature}"

    return _build


# ------------------------
# HTTP
# ------------------------
@pytest.fixture
def api(engine, gateway, notifications):
    from core.database import get_session
    from main import app
    from services.notification_service import get_notification_service
    from services.stripe_gateway import get_payment_gateway

    def _get_session():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = _get_session
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    app.dependency_overrides[get_notification_service] = lambda: notifications

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    def _headers(principal: AuthUser) -> Dict[str, str]:
        token = create_token_for_user(principal.id, principal.workspace_id, principal.role, principal.email)
        return {"Authorization": f"Bearer {token}"}

    return _headers
