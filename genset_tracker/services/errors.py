"""
Typed failures raised by the core services.

The API layer maps each class to a transport status; services never
build HTTP responses themselves.
"""
from typing import Optional


class GensetError(Exception):
    """Base class for every failure a core operation can report."""
    status_code = 500

    def __init__(self, message: str, code: Optional[str] = None):
        self.message = message
        self.code = code
        super().__init__(self.message)


class NotFoundError(GensetError):
    """Entity id does not resolve to an active record."""
    status_code = 404


class ForbiddenError(GensetError):
    """Role or venue-scope violation."""
    status_code = 403


class PreconditionFailedError(GensetError):
    """
    Power-on safety rule violated.

    code is one of NO_VENUE_ASSIGNED or VENUE_INACTIVE so callers can render
    an actionable message.
    """
    status_code = 400

    NO_VENUE_ASSIGNED = "NO_VENUE_ASSIGNED"
    VENUE_INACTIVE = "VENUE_INACTIVE"


class ConflictError(GensetError):
    """Unique-constraint violation or a concurrent write against a stale row."""
    status_code = 409


class ValidationError(GensetError):
    """Missing or malformed required field."""
    status_code = 400


class InternalError(GensetError):
    """Unexpected store failure."""
    status_code = 500
