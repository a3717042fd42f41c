"""Validator queue and decision models."""

from datetime import date, datetime
from enum import Enum
from typing import Any, Optional

from pydantic import Field, ValidationInfo, field_validator

from citizen_registry.models.base import MAX_ROW_ID, CamelModel
from citizen_registry.models.user import VerificationStatus


class ValidatorAction(str, Enum):
    """Decisions a validator can take on an application."""

    APPROVE = "approve"
    REJECT = "reject"
    REQUEST_INFO = "request_info"


class ValidatorActionRequest(CamelModel):
    """A validator's decision.

    Attributes:
        application_id: Application being decided
        action: approve, reject or request_info
        notes: Free text; mandatory for reject (becomes the rejection reason)
    """

    application_id: int = Field(..., ge=1, le=MAX_ROW_ID)
    action: ValidatorAction
    notes: Optional[str] = Field(default=None, max_length=2000, validate_default=True)

    @field_validator("notes")
    @classmethod
    def notes_required_for_reject(
        cls, v: Optional[str], info: ValidationInfo
    ) -> Optional[str]:
        """Rejections must explain themselves to the citizen."""
        if info.data.get("action") == ValidatorAction.REJECT and not (v or "").strip():
            raise ValueError("Notes are required when rejecting an application")
        return v.strip() if v else v


class QueueEntry(CamelModel):
    """A pending application as shown in the review queue."""

    id: int
    user_id: int
    full_name: str
    email: str
    submitted_at: datetime
    updated_at: datetime


class ValidatorActionEntry(CamelModel):
    id: int
    validator_id: Optional[int] = None
    action: str
    notes: Optional[str] = None
    created_at: datetime


class ApplicationSummary(CamelModel):
    """Another application by the same citizen."""

    id: int
    full_name: str
    status: VerificationStatus
    created_at: datetime
    updated_at: datetime


class ApplicationDetail(CamelModel):
    """Full evidence for one application, with its audit trail."""

    id: int
    user_id: int
    user_email: Optional[str] = None
    full_name: str
    address: str
    phone: str
    dob: date
    id_card_front: Optional[str] = None
    id_card_back: Optional[str] = None
    selfie_image: Optional[str] = None
    ai_analysis_json: Optional[Any] = None
    status: VerificationStatus
    created_at: datetime
    updated_at: datetime
    actions: list[ValidatorActionEntry] = Field(default_factory=list)
    other_applications: list[ApplicationSummary] = Field(default_factory=list)


class HistoryEntry(CamelModel):
    """A decided application in the audit browser."""

    id: int
    user_id: int
    full_name: str
    email: str
    status: VerificationStatus
    submitted_at: datetime
    decided_at: datetime


class ActionResponse(CamelModel):
    message: str
    new_status: VerificationStatus


class ReopenResponse(CamelModel):
    message: str
    application_id: int
