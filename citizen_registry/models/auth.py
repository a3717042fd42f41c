"""Auth request and response models with validation."""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from citizen_registry.models.base import CamelModel
from citizen_registry.models.user import Role, User, VerificationStatus

MAX_PASSWORD_LENGTH = 128


class LoginRequest(CamelModel):
    """Login credentials.

    Attributes:
        email: Account email (case-insensitive)
        password: Plain-text password
    """

    email: EmailStr
    password: str = Field(..., min_length=1, max_length=MAX_PASSWORD_LENGTH)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()


class RefreshRequest(CamelModel):
    """Optional body for /auth/refresh when the cookie is not available."""

    refresh_token: Optional[str] = None


class UserSummary(CamelModel):
    """Public view of an account, as embedded in access credentials."""

    id: int
    email: str
    name: str
    role: Role
    verification_status: VerificationStatus
    rejection_reason: Optional[str] = None
    rejection_date: Optional[datetime] = None

    @classmethod
    def from_user(cls, user: User) -> "UserSummary":
        return cls(
            id=user.id,
            email=user.email,
            name=user.name,
            role=user.role,
            verification_status=user.verification_status,
            rejection_reason=user.rejection_reason,
            rejection_date=user.rejection_date,
        )


class IssuedCredentials(BaseModel):
    """Fresh access + refresh pair minted after a login or a transition.

    Attributes:
        access_token: Short-lived signed JWT carrying current claims
        refresh_token: Raw refresh token (only its hash is persisted)
        expires_in: Access token lifetime in seconds
    """

    access_token: str
    refresh_token: str
    expires_in: int = Field(ge=1)


class LoginResponse(CamelModel):
    """Successful authentication response."""

    user: UserSummary
    token: str


class MeResponse(CamelModel):
    """Current account, read fresh from storage."""

    user: UserSummary


class SessionSummary(CamelModel):
    """An active refresh session."""

    id: int
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None
    created_at: datetime
    expires_at: datetime


class SessionsResponse(CamelModel):
    sessions: list[SessionSummary]


class LogoutAllResponse(CamelModel):
    message: str
    sessions_revoked: int


class CreateStaffRequest(CamelModel):
    """Admin request to create a validator or admin account.

    Attributes:
        email: Staff email
        password: Initial password (min 8 chars)
        name: Display name
        role: validator or admin
    """

    email: EmailStr
    password: str = Field(..., min_length=8, max_length=MAX_PASSWORD_LENGTH)
    name: str = Field(..., min_length=1, max_length=255)
    role: Literal["validator", "admin"] = "validator"

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("password")
    @classmethod
    def password_not_empty(cls, v: str) -> str:
        """Ensure password is not empty or whitespace only."""
        if not v.strip():
            raise ValueError("Password cannot be empty or whitespace only")
        return v
