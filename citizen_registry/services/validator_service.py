"""Validator review: queue, application detail, decisions, history and reopen."""

from typing import Optional

import structlog

from citizen_registry.database import transaction
from citizen_registry.errors import ConflictError, NotFoundError, ValidationFailedError
from citizen_registry.models.application import Application, ValidatorActionRecord
from citizen_registry.models.user import AuthenticatedUser, Role, VerificationStatus
from citizen_registry.models.validator import ValidatorAction
from citizen_registry.services.application_service import ApplicationService
from citizen_registry.services.user_service import UserService
from citizen_registry.services.verification import (
    DECIDABLE_STATUSES,
    apply_status_transition,
    ensure_transition,
)

logger = structlog.get_logger(__name__)

ACTION_TARGETS = {
    ValidatorAction.APPROVE: VerificationStatus.APPROVED,
    ValidatorAction.REJECT: VerificationStatus.REJECTED,
    ValidatorAction.REQUEST_INFO: VerificationStatus.NEEDS_INFO,
}

REOPEN_ACTION = "reopen"
REOPEN_NOTE = "Application reopened for re-review"


class ValidatorService:
    """Decisions on applications, each committed with its audit entry."""

    def __init__(self):
        self.user_service = UserService()
        self.applications = ApplicationService()

    async def list_queue(self) -> list[Application]:
        """Pending applications, oldest submission first."""
        return await self.applications.list_pending()

    async def get_application(
        self, application_id: int
    ) -> tuple[Application, list[ValidatorActionRecord], list[Application]]:
        """Full evidence for one application, its audit trail and the
        owner's other applications (oldest first).

        Raises:
            NotFoundError: Unknown application id
        """
        application = await self.applications.get_by_id(application_id)
        if application is None:
            raise NotFoundError("Application not found")
        actions = await self.applications.list_actions(application_id)
        others = [
            a
            for a in await self.applications.list_for_user(application.user_id)
            if a.id != application.id
        ]
        return application, actions, others

    async def history(
        self, status: Optional[VerificationStatus] = None
    ) -> list[Application]:
        """Decided applications, most recently decided first."""
        if status is not None and status not in (
            VerificationStatus.APPROVED,
            VerificationStatus.REJECTED,
            VerificationStatus.NEEDS_INFO,
        ):
            raise ValidationFailedError(
                "Invalid status filter",
                fields=[{"field": "status", "message": "Must be approved, rejected or needs_info"}],
            )
        return await self.applications.list_decided(status)

    async def _lock_owner_and_application(self, conn, application_id: int):
        # Users are always locked before applications so that decisions and
        # citizen resubmissions acquire row locks in the same order.
        owner_id = await self.applications.owner_id(conn, application_id)
        if owner_id is None:
            raise NotFoundError("Application not found")

        user = await self.user_service.lock_by_id(conn, owner_id)
        application = await self.applications.lock_by_id(conn, application_id)
        if user is None or application is None:
            raise NotFoundError("Application not found")

        current_id = await self.applications.current_id(conn, owner_id)
        return user, application, current_id

    async def decide(
        self,
        application_id: int,
        action: ValidatorAction,
        notes: Optional[str],
        validator: AuthenticatedUser,
    ) -> VerificationStatus:
        """Apply a decision to an application and its owner atomically.

        The audit entry, the application status and the user's status are
        written in one transaction; a failure anywhere leaves all three
        unchanged.

        Args:
            application_id: Application being decided
            action: approve, reject or request_info
            notes: Required for reject; stored as the rejection reason
            validator: The acting validator or admin

        Returns:
            The application's new status

        Raises:
            ValidationFailedError: Reject without notes
            NotFoundError: Unknown application id
            ConflictError: The application is not awaiting a decision
        """
        notes = notes.strip() if notes else None
        if action == ValidatorAction.REJECT and not notes:
            raise ValidationFailedError(
                "Notes are required when rejecting an application",
                fields=[{"field": "notes", "message": "Notes are required when rejecting an application"}],
            )

        target = ACTION_TARGETS[action]

        async with transaction(
            "Failed to record decision",
            operation="validator_decision",
            application_id=application_id,
            validator_id=validator.id,
        ) as conn:
            user, application, current_id = await self._lock_owner_and_application(
                conn, application_id
            )
            if application.status not in DECIDABLE_STATUSES:
                raise ConflictError("Application is not awaiting a decision")
            if current_id != application.id:
                raise ConflictError("Application has been superseded by a newer one")
            ensure_transition(application.status, target)

            await self.applications.record_action(
                conn, application.id, validator.id, action.value, notes
            )
            await apply_status_transition(
                conn,
                user_id=user.id,
                application_id=application.id,
                status=target,
                rejection_reason=notes if target == VerificationStatus.REJECTED else None,
            )

        logger.info(
            "validator_decision_recorded",
            application_id=application.id,
            user_id=user.id,
            validator_id=validator.id,
            action=action.value,
            old_status=application.status.value,
            new_status=target.value,
        )
        return target

    async def reopen(self, application_id: int, validator: AuthenticatedUser) -> int:
        """Put a decided application back into the pending queue.

        Rejected and needs-info applications may be reopened by any
        validator; approved ones only by an admin.

        Raises:
            NotFoundError: Unknown application id
            ConflictError: Already pending, superseded, or approved without admin rights
        """
        async with transaction(
            "Failed to reopen application",
            operation="reopen",
            application_id=application_id,
            validator_id=validator.id,
        ) as conn:
            user, application, current_id = await self._lock_owner_and_application(
                conn, application_id
            )
            if application.status == VerificationStatus.PENDING:
                raise ConflictError("Application is already pending")
            if current_id != application.id:
                raise ConflictError("Application has been superseded by a newer one")
            ensure_transition(
                application.status,
                VerificationStatus.PENDING,
                override=validator.role == Role.ADMIN,
                message="Only an admin can reopen an approved application",
            )

            await self.applications.record_action(
                conn, application.id, validator.id, REOPEN_ACTION, REOPEN_NOTE
            )
            await apply_status_transition(
                conn,
                user_id=user.id,
                application_id=application.id,
                status=VerificationStatus.PENDING,
            )

        logger.info(
            "application_reopened",
            application_id=application.id,
            user_id=user.id,
            validator_id=validator.id,
            old_status=application.status.value,
            new_status=VerificationStatus.PENDING.value,
        )
        return application.id
