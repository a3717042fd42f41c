"""Registration pipeline and reapplication request/response models."""

import re
from datetime import date
from typing import Any, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from citizen_registry.models.auth import (
    MAX_PASSWORD_LENGTH,
    IssuedCredentials,
    UserSummary,
)
from citizen_registry.models.base import CamelModel
from citizen_registry.models.user import User

MAX_NAME_LENGTH = 100
MAX_ADDRESS_LENGTH = 500
MAX_IMAGE_LENGTH = 10_000_000  # data URL characters

PHONE_PATTERN = re.compile(r"^\+?[0-9][0-9\s\-()]{6,19}$")


def _check_phone(v: str) -> str:
    v = v.strip()
    if not PHONE_PATTERN.match(v):
        raise ValueError("Phone must be 7-20 digits, optionally starting with +")
    return v


def _check_dob(v: date) -> date:
    if v >= date.today():
        raise ValueError("Date of birth must be in the past")
    return v


def _check_image(v: str) -> str:
    if not v.strip():
        raise ValueError("Image cannot be empty")
    return v


class RegisterStep1Request(CamelModel):
    """Identity facts submitted at the start of registration.

    Attributes:
        email: Account email (normalized to lowercase)
        password: Account password (8-128 chars)
        first_name: Given name
        middle_name: Middle name (may be empty)
        last_name: Family name
        address: Residential address
        phone: Contact number
        dob: Date of birth (ISO date, in the past)
    """

    email: EmailStr
    password: str = Field(..., min_length=8, max_length=MAX_PASSWORD_LENGTH)
    first_name: str = Field(..., min_length=1, max_length=MAX_NAME_LENGTH)
    middle_name: str = Field(default="", max_length=MAX_NAME_LENGTH)
    last_name: str = Field(..., min_length=1, max_length=MAX_NAME_LENGTH)
    address: str = Field(..., min_length=1, max_length=MAX_ADDRESS_LENGTH)
    phone: str
    dob: date

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

    @field_validator("first_name", "last_name", "address")
    @classmethod
    def required_text(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Field cannot be blank")
        return v

    @field_validator("middle_name")
    @classmethod
    def strip_middle(cls, v: str) -> str:
        return v.strip()

    @field_validator("phone")
    @classmethod
    def phone_format(cls, v: str) -> str:
        return _check_phone(v)

    @field_validator("dob")
    @classmethod
    def dob_in_past(cls, v: date) -> date:
        return _check_dob(v)


class RegisterStep2Request(CamelModel):
    """Front and back images of the identity document."""

    id_card_front: str = Field(..., min_length=1, max_length=MAX_IMAGE_LENGTH)
    id_card_back: str = Field(..., min_length=1, max_length=MAX_IMAGE_LENGTH)

    @field_validator("id_card_front", "id_card_back")
    @classmethod
    def image_not_blank(cls, v: str) -> str:
        return _check_image(v)


class RegisterStep3Request(CamelModel):
    """Selfie plus the opaque result of the external liveness analysis."""

    selfie_image: str = Field(..., min_length=1, max_length=MAX_IMAGE_LENGTH)
    ai_analysis: Optional[Any] = None

    @field_validator("selfie_image")
    @classmethod
    def image_not_blank(cls, v: str) -> str:
        return _check_image(v)


class ReapplyWithChangesRequest(CamelModel):
    """Partial edit of a rejected application; omitted fields keep stored values."""

    first_name: Optional[str] = Field(default=None, max_length=MAX_NAME_LENGTH)
    middle_name: Optional[str] = Field(default=None, max_length=MAX_NAME_LENGTH)
    last_name: Optional[str] = Field(default=None, max_length=MAX_NAME_LENGTH)
    address: Optional[str] = Field(default=None, max_length=MAX_ADDRESS_LENGTH)
    phone: Optional[str] = None
    dob: Optional[date] = None
    id_card_front: Optional[str] = Field(default=None, max_length=MAX_IMAGE_LENGTH)
    id_card_back: Optional[str] = Field(default=None, max_length=MAX_IMAGE_LENGTH)
    selfie_image: Optional[str] = Field(default=None, max_length=MAX_IMAGE_LENGTH)

    @field_validator("phone")
    @classmethod
    def phone_format(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        return _check_phone(v)

    @field_validator("dob")
    @classmethod
    def dob_in_past(cls, v: Optional[date]) -> Optional[date]:
        if v is None:
            return v
        return _check_dob(v)

    @field_validator("id_card_front", "id_card_back", "selfie_image")
    @classmethod
    def blank_image_unchanged(cls, v: Optional[str]) -> Optional[str]:
        """A blank image keeps the stored one."""
        if v is None or not v.strip():
            return None
        return v


class TransitionResult(BaseModel):
    """Outcome of an operation that moved a citizen back to pending.

    Attributes:
        user: The user as written by the transaction
        application_id: The application now under review
        credentials: Fresh credentials carrying the new claims; None when the
            status did not change
        is_reapplication: True when a rejected account re-entered review
    """

    user: User
    application_id: int
    credentials: Optional[IssuedCredentials] = None
    is_reapplication: bool = False


class RegisterStep1Response(CamelModel):
    message: str
    user: UserSummary
    token: str
    is_reapplication: bool


class PreviousApplicationResponse(CamelModel):
    """Most recent application, with the stored full name split into parts."""

    email: str
    first_name: str
    middle_name: str
    last_name: str
    full_name: str
    address: str
    phone: str
    dob: date
    id_card_front: Optional[str] = None
    id_card_back: Optional[str] = None
    selfie_image: Optional[str] = None
    status: str


class ReapplyResponse(CamelModel):
    message: str
    application_id: int
    user: UserSummary
