"""Registration and reapplication API endpoints."""

import structlog
from fastapi import APIRouter, Depends, Request, Response

from citizen_registry.api.cookies import set_session_cookies
from citizen_registry.api.dependencies import (
    client_ip,
    get_current_user,
    rate_limit,
    user_agent,
)
from citizen_registry.config import get_settings
from citizen_registry.models.auth import UserSummary
from citizen_registry.models.base import MessageResponse
from citizen_registry.models.registration import (
    PreviousApplicationResponse,
    ReapplyResponse,
    ReapplyWithChangesRequest,
    RegisterStep1Request,
    RegisterStep1Response,
    RegisterStep2Request,
    RegisterStep3Request,
    TransitionResult,
)
from citizen_registry.models.user import AuthenticatedUser
from citizen_registry.services.reapplication_service import ReapplicationService
from citizen_registry.services.registration_service import (
    RegistrationService,
    split_full_name,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/register", tags=["Registration"])


def _attach_credentials(response: Response, result: TransitionResult) -> None:
    if result.credentials is not None:
        set_session_cookies(response, result.credentials, get_settings())


@router.post("/step1", dependencies=[Depends(rate_limit("register"))])
async def register_step1(
    payload: RegisterStep1Request, request: Request, response: Response
) -> RegisterStep1Response:
    """Submit identity facts: creates the account, or reapplies if it was rejected.

    Raises:
        ConflictError: Email already registered and not rejected
        UnauthorizedError: Reapplying with the wrong password
    """
    result = await RegistrationService().register_identity(
        payload, user_agent(request), client_ip(request)
    )
    _attach_credentials(response, result)

    return RegisterStep1Response(
        message="Reapplication submitted" if result.is_reapplication else "Step 1 completed",
        user=UserSummary.from_user(result.user),
        token=result.credentials.access_token,
        is_reapplication=result.is_reapplication,
    )


@router.post("/step2")
async def register_step2(
    payload: RegisterStep2Request,
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> MessageResponse:
    """Upload the front and back of the identity document."""
    await RegistrationService().upload_documents(
        current_user.id, payload.id_card_front, payload.id_card_back
    )
    return MessageResponse(message="ID uploaded successfully")


@router.post("/step3")
async def register_step3(
    payload: RegisterStep3Request,
    request: Request,
    response: Response,
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> MessageResponse:
    """Submit the selfie and liveness analysis; the application goes under review."""
    result = await RegistrationService().submit_biometrics(
        current_user.id,
        payload.selfie_image,
        payload.ai_analysis,
        user_agent(request),
        client_ip(request),
    )
    _attach_credentials(response, result)
    return MessageResponse(message="Application submitted for review")


@router.get("/previous-application")
async def previous_application(
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> PreviousApplicationResponse:
    """Most recent application with the name split back into parts."""
    application = await ReapplicationService().get_previous_application(current_user.id)
    first, middle, last = split_full_name(application.full_name)

    return PreviousApplicationResponse(
        email=application.user_email or current_user.email,
        first_name=first,
        middle_name=middle,
        last_name=last,
        full_name=application.full_name,
        address=application.address,
        phone=application.phone,
        dob=application.dob,
        id_card_front=application.id_card_front,
        id_card_back=application.id_card_back,
        selfie_image=application.selfie_image,
        status=application.status.value,
    )


@router.post("/reapply")
async def reapply(
    request: Request,
    response: Response,
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> ReapplyResponse:
    """Resubmit the rejected application unchanged."""
    result = await ReapplicationService().reapply(
        current_user.id, user_agent(request), client_ip(request)
    )
    _attach_credentials(response, result)
    return ReapplyResponse(
        message="Reapplication submitted successfully",
        application_id=result.application_id,
        user=UserSummary.from_user(result.user),
    )


@router.post("/reapply-with-changes")
async def reapply_with_changes(
    payload: ReapplyWithChangesRequest,
    request: Request,
    response: Response,
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> ReapplyResponse:
    """Edit and resubmit the rejected application; omitted fields keep stored values."""
    result = await ReapplicationService().reapply_with_changes(
        current_user.id, payload, user_agent(request), client_ip(request)
    )
    _attach_credentials(response, result)
    return ReapplyResponse(
        message="Reapplication with updates submitted successfully",
        application_id=result.application_id,
        user=UserSummary.from_user(result.user),
    )
