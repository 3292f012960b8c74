# core/security.py
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any, Union

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from pydantic import BaseModel, ConfigDict

from core.config import settings
from models.models import UserRole


# ========================================
# 🔑 JWT / APP CONFIG
# ========================================
SECRET_KEY = settings.SECRET_KEY
ALGORITHM = settings.ALGORITHM or "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = settings.ACCESS_TOKEN_EXPIRE_MINUTES

# Tokens are issued by the auth service; this API only reads them.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")


# ========================================
# 👤 Principals
# ========================================
class AuthUser(BaseModel):
    """Identity handed over by the auth collaborator for a human caller."""

    id: str
    workspace_id: str
    role: UserRole
    email: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


class SystemPrincipal(BaseModel):
    """
    Non-human caller used by the webhook path.

    Its authority is limited to one workspace and, when ticket_id is set,
    to that single ticket. It is never treated as a workspace admin.
    """

    workspace_id: str
    ticket_id: Optional[str] = None
    source: str = "stripe-webhook"

    model_config = ConfigDict(frozen=True)

    @property
    def id(self) -> None:
        # Audit rows record system actions without an actor
        return None

    def covers(self, workspace_id: str, ticket_id: Optional[str] = None) -> bool:
        if workspace_id != self.workspace_id:
            return False
        if self.ticket_id is not None and ticket_id != self.ticket_id:
            return False
        return True


Principal = Union[AuthUser, SystemPrincipal]


# ========================================
# 🔑 Token Helpers
# ========================================
def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def decode_token(token: str) -> dict:
    """Decode JWT and return payload."""
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token.",
            headers={"WWW-Authenticate": "Bearer"},
        )


def create_token_for_user(user_id: str, workspace_id: str, role: UserRole, email: Optional[str] = None) -> str:
    return create_access_token(
        {
            "sub": email or user_id,
            "user_id": user_id,
            "workspace_id": workspace_id,
            "role": UserRole(role).value,
        }
    )


# ========================================
# 👤 Authentication
# ========================================
def get_current_user(token: str = Depends(oauth2_scheme)) -> AuthUser:
    """Build the caller's identity from the token claims."""
    payload = decode_token(token)
    user_id = payload.get("user_id")
    workspace_id = payload.get("workspace_id")
    role = payload.get("role")

    if not (user_id and workspace_id and role):
        raise HTTPException(status_code=401, detail="Invalid token payload")

    try:
        role = UserRole(role)
    except ValueError:
        raise HTTPException(status_code=401, detail="Unknown role in token")

    email = payload.get("sub") if payload.get("sub") != user_id else None
    return AuthUser(id=str(user_id), workspace_id=str(workspace_id), role=role, email=email)
