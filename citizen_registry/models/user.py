"""User, role and verification status models."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class Role(str, Enum):
    """Account roles."""

    ADMIN = "admin"
    VALIDATOR = "validator"
    CITIZEN = "citizen"


class VerificationStatus(str, Enum):
    """Verification lifecycle shared by users and applications."""

    NONE = "none"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    NEEDS_INFO = "needs_info"


class User(BaseModel):
    """A registered account (citizen or staff)."""

    id: int
    email: str
    name: str
    role: Role = Role.CITIZEN
    verification_status: VerificationStatus = VerificationStatus.NONE
    rejection_reason: Optional[str] = None
    rejection_date: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class AuthenticatedUser(BaseModel):
    """Claims decoded from a verified access credential."""

    id: int
    email: str
    name: str
    role: Role
    verification_status: VerificationStatus

    @property
    def is_staff(self) -> bool:
        return self.role in (Role.ADMIN, Role.VALIDATOR)


class RefreshSession(BaseModel):
    """A server-tracked refresh credential."""

    id: int
    user_id: int
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None
    expires_at: datetime
    revoked_at: Optional[datetime] = None
    created_at: datetime
