"""Reapplication for rejected citizens: unchanged or with edits."""

from typing import Optional

import structlog

from citizen_registry.database import transaction
from citizen_registry.errors import ConflictError, NotFoundError
from citizen_registry.models.application import Application
from citizen_registry.models.registration import ReapplyWithChangesRequest, TransitionResult
from citizen_registry.models.user import User, VerificationStatus
from citizen_registry.services.application_service import ApplicationService
from citizen_registry.services.auth_service import AuthService
from citizen_registry.services.registration_service import (
    compose_full_name,
    issue_after_commit,
    split_full_name,
    with_status,
)
from citizen_registry.services.user_service import UserService
from citizen_registry.services.verification import apply_status_transition, ensure_transition

logger = structlog.get_logger(__name__)

REAPPLY_CONFLICT = "Can only reapply if previous application was rejected"


def _pick(supplied: Optional[str], stored: str) -> str:
    """Supplied text if it has content, else the stored value."""
    if supplied is not None and supplied.strip():
        return supplied.strip()
    return stored


def merged_full_name(request: ReapplyWithChangesRequest, stored_full_name: str) -> str:
    """Rebuild the full name, keeping stored parts the request leaves out.

    An explicitly empty middle name clears it; blank first or last names
    fall back to the stored part. Only the full name is stored, so the
    stored parts come from ``split_full_name``: the first word is taken as
    the first name and the last word as the last name. A multi-word first
    or last name that is not resupplied is therefore narrowed to one word
    and the rest treated as middle name. With no name part supplied the
    stored name is returned untouched.
    """
    if request.first_name is None and request.middle_name is None and request.last_name is None:
        return stored_full_name

    first, middle, last = split_full_name(stored_full_name)
    if request.middle_name is not None:
        middle = request.middle_name.strip()
    return compose_full_name(
        _pick(request.first_name, first),
        middle,
        _pick(request.last_name, last),
    ) or stored_full_name


class ReapplicationService:
    """Moves a rejected citizen's current application back under review."""

    def __init__(self):
        self.auth_service = AuthService()
        self.user_service = UserService()
        self.applications = ApplicationService()

    async def get_previous_application(self, user_id: int) -> Application:
        """The caller's current application, for pre-filling a resubmission.

        Raises:
            NotFoundError: The user has never applied
        """
        application = await self.applications.get_current(user_id)
        if application is None:
            raise NotFoundError("No previous application found")
        return application

    async def _lock_rejected(self, conn, user_id: int) -> tuple[User, Application]:
        user = await self.user_service.lock_by_id(conn, user_id)
        if user is None:
            raise NotFoundError("User not found")
        if user.verification_status != VerificationStatus.REJECTED:
            raise ConflictError(REAPPLY_CONFLICT)

        application = await self.applications.lock_current(conn, user_id)
        if application is None:
            raise NotFoundError("No previous application found")
        ensure_transition(application.status, VerificationStatus.PENDING, message=REAPPLY_CONFLICT)
        return user, application

    async def reapply(
        self,
        user_id: int,
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> TransitionResult:
        """Resubmit the current application unchanged.

        The existing application row is reused; no history row is added.

        Raises:
            ConflictError: The user is not currently rejected
            NotFoundError: User or application missing
        """
        async with transaction("Reapplication failed", operation="reapply", user_id=user_id) as conn:
            user, application = await self._lock_rejected(conn, user_id)
            written_at = await apply_status_transition(
                conn,
                user_id=user_id,
                application_id=application.id,
                status=VerificationStatus.PENDING,
            )

        logger.info(
            "citizen_reapplied",
            user_id=user_id,
            application_id=application.id,
            path="reapply",
            old_status=VerificationStatus.REJECTED.value,
            new_status=VerificationStatus.PENDING.value,
        )

        updated = with_status(user, VerificationStatus.PENDING, written_at)
        credentials = await issue_after_commit(
            self.auth_service, updated, user_agent, ip_address, "reapply"
        )
        return TransitionResult(
            user=updated,
            application_id=application.id,
            credentials=credentials,
            is_reapplication=True,
        )

    async def reapply_with_changes(
        self,
        user_id: int,
        request: ReapplyWithChangesRequest,
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> TransitionResult:
        """Edit the current application in place and resubmit it.

        Raises:
            ConflictError: The user is not currently rejected
            NotFoundError: User or application missing
        """
        async with transaction(
            "Reapplication failed", operation="reapply_with_changes", user_id=user_id
        ) as conn:
            user, application = await self._lock_rejected(conn, user_id)

            full_name = merged_full_name(request, application.full_name)
            await self.applications.update_evidence(
                conn,
                application.id,
                full_name=full_name,
                address=_pick(request.address, application.address),
                phone=_pick(request.phone, application.phone),
                dob=request.dob or application.dob,
                id_card_front=request.id_card_front,
                id_card_back=request.id_card_back,
                selfie_image=request.selfie_image,
            )
            written_at = await apply_status_transition(
                conn,
                user_id=user_id,
                application_id=application.id,
                status=VerificationStatus.PENDING,
                name=full_name,
            )

        changed = sorted(
            field for field, value in request.model_dump(exclude_none=True).items()
            if not isinstance(value, str) or value.strip()
        )
        logger.info(
            "citizen_reapplied",
            user_id=user_id,
            application_id=application.id,
            path="reapply_with_changes",
            fields_changed=changed,
            old_status=VerificationStatus.REJECTED.value,
            new_status=VerificationStatus.PENDING.value,
        )

        updated = with_status(user, VerificationStatus.PENDING, written_at, name=full_name)
        credentials = await issue_after_commit(
            self.auth_service, updated, user_agent, ip_address, "reapply_with_changes"
        )
        return TransitionResult(
            user=updated,
            application_id=application.id,
            credentials=credentials,
            is_reapplication=True,
        )
