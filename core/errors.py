"""Domain errors raised by the workflow services and rendered by main.py."""

from typing import Any, Dict, Optional


class PortalError(Exception):
    """Base class for workflow errors."""

    status_code = 400
    default_code = "BAD_REQUEST"

    def __init__(self, message: str, code: Optional[str] = None, **extra: Any):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.extra: Dict[str, Any] = extra

    def to_dict(self) -> Dict[str, Any]:
        body = {"detail": self.message, "code": self.code}
        body.update(self.extra)
        return body


class NotFoundError(PortalError):
    status_code = 404
    default_code = "NOT_FOUND"


class ForbiddenError(PortalError):
    status_code = 403
    default_code = "FORBIDDEN"


class BadRequestError(PortalError):
    status_code = 400
    default_code = "BAD_REQUEST"


class InvalidTransitionError(PortalError):
    """A state guard was violated; carries the persisted status so clients can resync."""

    status_code = 409
    default_code = "INVALID_TRANSITION"

    def __init__(self, message: str, current_status: Any, code: Optional[str] = None):
        status = getattr(current_status, "value", current_status)
        super().__init__(message, code=code, current_status=status)
        self.current_status = status


class GatewayUnavailableError(PortalError):
    """Payment processor not configured or unreachable. Safe to retry."""

    status_code = 503
    default_code = "PAYMENT_GATEWAY_UNAVAILABLE"


class SignatureInvalidError(PortalError):
    status_code = 400
    default_code = "WEBHOOK_SIGNATURE_INVALID"
