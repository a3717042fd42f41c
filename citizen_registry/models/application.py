"""Verification application models."""

from datetime import date, datetime
from typing import Any, Optional

from pydantic import BaseModel

from citizen_registry.models.user import VerificationStatus


class Application(BaseModel):
    """One submission of identity evidence and its review status.

    A user accumulates several of these over time; the most recently
    created one is the user's current application.
    """

    id: int
    user_id: int
    full_name: str
    address: str
    phone: str
    dob: date
    id_card_front: Optional[str] = None
    id_card_back: Optional[str] = None
    selfie_image: Optional[str] = None
    ai_analysis: Optional[Any] = None
    status: VerificationStatus = VerificationStatus.PENDING
    created_at: datetime
    updated_at: datetime
    user_email: Optional[str] = None
    decided_at: Optional[datetime] = None


class ValidatorActionRecord(BaseModel):
    """One row of the validator audit trail."""

    id: int
    application_id: int
    validator_id: Optional[int] = None
    action: str
    notes: Optional[str] = None
    created_at: datetime
