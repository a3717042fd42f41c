"""Validator review API endpoints."""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Path, Query

from citizen_registry.api.dependencies import require_validator
from citizen_registry.models.application import Application
from citizen_registry.models.base import MAX_ROW_ID
from citizen_registry.models.user import AuthenticatedUser, VerificationStatus
from citizen_registry.models.validator import (
    ActionResponse,
    ApplicationDetail,
    ApplicationSummary,
    HistoryEntry,
    QueueEntry,
    ReopenResponse,
    ValidatorActionEntry,
    ValidatorActionRequest,
)
from citizen_registry.services.validator_service import ValidatorService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/validator", tags=["Validator"])


def _queue_entry(application: Application) -> QueueEntry:
    return QueueEntry(
        id=application.id,
        user_id=application.user_id,
        full_name=application.full_name,
        email=application.user_email or "",
        submitted_at=application.created_at,
        updated_at=application.updated_at,
    )


def _history_entry(application: Application) -> HistoryEntry:
    return HistoryEntry(
        id=application.id,
        user_id=application.user_id,
        full_name=application.full_name,
        email=application.user_email or "",
        status=application.status,
        submitted_at=application.created_at,
        decided_at=application.decided_at or application.updated_at,
    )


@router.get("/queue")
async def get_queue(
    validator: AuthenticatedUser = Depends(require_validator),
) -> list[QueueEntry]:
    """Pending applications, oldest submission first."""
    applications = await ValidatorService().list_queue()
    return [_queue_entry(a) for a in applications]


@router.get("/application/{application_id}")
async def get_application(
    application_id: int = Path(..., ge=1, le=MAX_ROW_ID),
    validator: AuthenticatedUser = Depends(require_validator),
) -> ApplicationDetail:
    """Full evidence, audit trail and the owner's other applications.

    Raises:
        NotFoundError: Unknown application id
    """
    application, actions, others = await ValidatorService().get_application(application_id)

    return ApplicationDetail(
        id=application.id,
        user_id=application.user_id,
        user_email=application.user_email,
        full_name=application.full_name,
        address=application.address,
        phone=application.phone,
        dob=application.dob,
        id_card_front=application.id_card_front,
        id_card_back=application.id_card_back,
        selfie_image=application.selfie_image,
        ai_analysis_json=application.ai_analysis,
        status=application.status,
        created_at=application.created_at,
        updated_at=application.updated_at,
        actions=[
            ValidatorActionEntry(
                id=a.id,
                validator_id=a.validator_id,
                action=a.action,
                notes=a.notes,
                created_at=a.created_at,
            )
            for a in actions
        ],
        other_applications=[
            ApplicationSummary(
                id=o.id,
                full_name=o.full_name,
                status=o.status,
                created_at=o.created_at,
                updated_at=o.updated_at,
            )
            for o in others
        ],
    )


@router.post("/action")
async def record_action(
    payload: ValidatorActionRequest,
    validator: AuthenticatedUser = Depends(require_validator),
) -> ActionResponse:
    """Approve, reject or request more information on an application.

    Raises:
        ValidationFailedError: Reject without notes
        NotFoundError: Unknown application id
        ConflictError: The application is not awaiting a decision
    """
    new_status = await ValidatorService().decide(
        payload.application_id, payload.action, payload.notes, validator
    )
    return ActionResponse(message="Action recorded successfully", new_status=new_status)


@router.get("/history")
async def get_history(
    status: Optional[VerificationStatus] = Query(default=None),
    validator: AuthenticatedUser = Depends(require_validator),
) -> list[HistoryEntry]:
    """Decided applications, most recently decided first, optionally filtered."""
    applications = await ValidatorService().history(status)
    return [_history_entry(a) for a in applications]


@router.post("/application/{application_id}/reopen")
async def reopen_application(
    application_id: int = Path(..., ge=1, le=MAX_ROW_ID),
    validator: AuthenticatedUser = Depends(require_validator),
) -> ReopenResponse:
    """Send a decided application back to the pending queue."""
    reopened_id = await ValidatorService().reopen(application_id, validator)
    return ReopenResponse(
        message="Application reopened for review",
        application_id=reopened_id,
    )
