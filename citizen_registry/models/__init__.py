"""Models package exports."""

from citizen_registry.models.application import Application, ValidatorActionRecord
from citizen_registry.models.auth import IssuedCredentials, UserSummary
from citizen_registry.models.user import (
    AuthenticatedUser,
    RefreshSession,
    Role,
    User,
    VerificationStatus,
)

__all__ = [
    "Application",
    "AuthenticatedUser",
    "IssuedCredentials",
    "RefreshSession",
    "Role",
    "User",
    "UserSummary",
    "ValidatorActionRecord",
    "VerificationStatus",
]
