"""
Permission engine errors.

Business-expected failures (not found, conflict, validation) carry enough
detail to render a user-facing message. Permission checks never raise for
"no permission" - they return False.
"""

from typing import Any


class PermissionEngineError(Exception):
    """Base class for all errors raised by the permission engine."""

    status_code: int = 400
    code: str = "permission_error"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class NotFoundError(PermissionEngineError):
    """A referenced permission, role, template, rule or user does not exist."""

    status_code = 404
    code = "not_found"


class ConflictError(PermissionEngineError):
    """Duplicate unique code/name, duplicate user-role pair, or in-use entity."""

    status_code = 409
    code = "conflict"


class StaleObjectError(ConflictError):
    """Optimistic version check kept failing after all retries."""

    code = "stale_object"


class ValidationError(PermissionEngineError):
    """Malformed payload, e.g. rule conditions that don't match the rule type."""

    status_code = 422
    code = "validation_error"


class ForbiddenError(PermissionEngineError):
    """Caller lacks the administrative permission for a management operation."""

    status_code = 403
    code = "forbidden"


class InternalError(PermissionEngineError):
    """Store or cache transport failure."""

    status_code = 500
    code = "internal_error"
