"""Domain errors for the registration and verification workflow.

Each error carries the machine code and HTTP status it is rendered with by
the API layer, so services can raise them without knowing about HTTP.
"""

from typing import Optional


class RegistryError(Exception):
    """Base error for the citizen registry."""

    code = "INTERNAL"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationFailedError(RegistryError):
    """Input failed validation; lists every offending field."""

    code = "VALIDATION_ERROR"
    status_code = 400

    def __init__(self, message: str, fields: Optional[list[dict]] = None):
        super().__init__(message)
        self.fields = fields or []


class ConflictError(RegistryError):
    """Illegal state transition or duplicate registration."""

    code = "CONFLICT"
    status_code = 409


class NotFoundError(RegistryError):
    """Referenced row does not exist in the caller's scope."""

    code = "NOT_FOUND"
    status_code = 404


class UnauthorizedError(RegistryError):
    """Missing, invalid or expired credential."""

    code = "UNAUTHORIZED"
    status_code = 401


class ForbiddenError(RegistryError):
    """Authenticated caller lacks the required role."""

    code = "FORBIDDEN"
    status_code = 403


class RateLimitedError(RegistryError):
    """Too many attempts from one client in the current window."""

    code = "RATE_LIMITED"
    status_code = 429


class InternalError(RegistryError):
    """Storage or commit failure; message is safe to show to callers."""

    code = "INTERNAL"
    status_code = 500
