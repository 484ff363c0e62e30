"""
Domain errors for the campus events service.

Domain modules raise these; main.py turns them into the JSON error envelope
``{"success": false, "error": <kind>, "message": ..., "errors": [...]}``.

Usage:
    from errors import NotFoundError, ConflictError

    if not event:
        raise NotFoundError("Event not found")
"""
from typing import Any, Dict, List, Optional


class CampusEventsError(Exception):
    """Base exception for all domain failures"""

    status_code = 500
    kind = "internal"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        body = {
            "success": False,
            "error": self.kind,
            "message": self.message,
        }
        if self.details:
            body["details"] = self.details
        return body


class NotFoundError(CampusEventsError):
    """Referenced entity does not exist"""

    status_code = 404
    kind = "not_found"


class InvalidStateError(CampusEventsError):
    """Operation not allowed in the entity's current lifecycle state"""

    status_code = 400
    kind = "invalid_state"


class CapacityExceededError(InvalidStateError):
    """Event has no free registration slots"""

    kind = "capacity_exceeded"

    def __init__(self, message: str = "Event has reached maximum capacity"):
        super().__init__(message)


class ConflictError(CampusEventsError):
    """Uniqueness or idempotency violation"""

    status_code = 409
    kind = "conflict"


class ForbiddenError(CampusEventsError):
    """Caller lacks the role or ownership required"""

    status_code = 403
    kind = "forbidden"


class AuthenticationError(CampusEventsError):
    """Missing, malformed or expired bearer credential"""

    status_code = 401
    kind = "unauthorized"


class ServiceUnavailableError(CampusEventsError):
    """Backing store is not configured or unreachable"""

    status_code = 503
    kind = "unavailable"


class ValidationError(CampusEventsError):
    """Malformed or out-of-range input, reported per field"""

    status_code = 422
    kind = "validation"

    def __init__(self, message: str, field: Optional[str] = None, errors: Optional[List[Dict[str, str]]] = None):
        super().__init__(message)
        if errors is None:
            errors = [{"field": field, "message": message}] if field else []
        self.errors = errors

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        if self.errors:
            body["errors"] = self.errors
        return body
