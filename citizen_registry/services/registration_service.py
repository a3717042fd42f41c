"""Registration pipeline: identity facts, document upload, biometric submission."""

from datetime import datetime, timezone
from typing import Any, Optional

import asyncpg
import structlog

from citizen_registry.database import transaction
from citizen_registry.errors import (
    ConflictError,
    InternalError,
    NotFoundError,
    UnauthorizedError,
)
from citizen_registry.models.auth import IssuedCredentials
from citizen_registry.models.registration import RegisterStep1Request, TransitionResult
from citizen_registry.models.user import Role, User, VerificationStatus
from citizen_registry.services.application_service import ApplicationService
from citizen_registry.services.auth_service import AuthService
from citizen_registry.services.user_service import USER_COLUMNS, UserService, row_to_user
from citizen_registry.services.verification import (
    EVIDENCE_OPEN_STATUSES,
    apply_status_transition,
    ensure_transition,
)

logger = structlog.get_logger(__name__)


def compose_full_name(first: str, middle: Optional[str], last: str) -> str:
    """Join name parts, skipping empty ones."""
    return " ".join(part.strip() for part in (first, middle, last) if part and part.strip())


def split_full_name(full_name: Optional[str]) -> tuple[str, str, str]:
    """Split a stored full name into (first, middle, last).

    The first word is the first name, the last word the last name, and
    anything between them the middle name.
    """
    parts = (full_name or "").split()
    first = parts[0] if parts else ""
    middle = " ".join(parts[1:-1]) if len(parts) > 2 else ""
    last = parts[-1] if len(parts) > 1 else ""
    return first, middle, last


def with_status(user: User, status: VerificationStatus, written_at: datetime, name: Optional[str] = None) -> User:
    """The user as a status transition just wrote it."""
    update = {
        "verification_status": status,
        "rejection_reason": None,
        "rejection_date": None,
        "updated_at": written_at,
    }
    if name is not None:
        update["name"] = name
    return user.model_copy(update=update)


async def issue_after_commit(
    auth_service: AuthService,
    user: User,
    user_agent: Optional[str],
    ip_address: Optional[str],
    operation: str,
) -> IssuedCredentials:
    """Mint credentials once the transition is committed.

    The committed rows are not rolled back if this fails; the caller is told
    to sign in again, which re-issues credentials from the stored state.
    """
    try:
        return await auth_service.issue_credentials(user, user_agent, ip_address)
    except Exception as e:
        logger.error(
            "credential_issue_failed_after_commit",
            operation=operation,
            user_id=user.id,
            error=str(e),
        )
        raise InternalError(
            "Your application was saved but we could not sign you in. Please log in to continue."
        ) from e


class RegistrationService:
    """Orchestrates the three ordered registration steps."""

    def __init__(self):
        self.auth_service = AuthService()
        self.user_service = UserService()
        self.applications = ApplicationService()

    async def register_identity(
        self,
        request: RegisterStep1Request,
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> TransitionResult:
        """Step 1: create the account and its first application, or reapply.

        A new email creates a citizen and a pending application together. An
        email whose account was rejected re-enters review with a brand-new
        application; the rejected one is kept as history. Any other existing
        account is a conflict.

        Raises:
            ConflictError: Email registered and not in a reapplicable state
            UnauthorizedError: Reapplication with the wrong password
            InternalError: The transaction failed or credentials could not be issued
        """
        full_name = compose_full_name(request.first_name, request.middle_name, request.last_name)

        existing = await self.user_service.get_by_email(request.email)
        if existing is not None:
            user, password_hash = existing
            if user.role != Role.CITIZEN or user.verification_status != VerificationStatus.REJECTED:
                raise ConflictError("Email already registered")
            if not self.auth_service.verify_password(request.password, password_hash):
                raise UnauthorizedError("Invalid credentials")
            result = await self._reapply_from_scratch(user.id, full_name, request)
        else:
            result = await self._create_citizen(full_name, request)

        result.credentials = await issue_after_commit(
            self.auth_service, result.user, user_agent, ip_address, "register_step1"
        )
        return result

    async def _create_citizen(
        self, full_name: str, request: RegisterStep1Request
    ) -> TransitionResult:
        password_hash = self.auth_service.hash_password(request.password)
        now = datetime.now(timezone.utc)

        try:
            async with transaction("Registration failed", operation="register_step1") as conn:
                row = await conn.fetchrow(
                    f"""
                    INSERT INTO users (email, password_hash, name, role, verification_status, created_at, updated_at)
                    VALUES ($1, $2, $3, $4, $5, $6, $6)
                    RETURNING {USER_COLUMNS}
                    """,
                    request.email,
                    password_hash,
                    full_name,
                    Role.CITIZEN.value,
                    VerificationStatus.NONE.value,
                    now,
                )
                user = row_to_user(row)
                ensure_transition(user.verification_status, VerificationStatus.PENDING)

                application = await self.applications.create(
                    conn,
                    user_id=user.id,
                    full_name=full_name,
                    address=request.address,
                    phone=request.phone,
                    dob=request.dob,
                )
                written_at = await apply_status_transition(
                    conn,
                    user_id=user.id,
                    application_id=application.id,
                    status=VerificationStatus.PENDING,
                )
        except asyncpg.UniqueViolationError:
            # Lost a race with a concurrent registration for the same email
            raise ConflictError("Email already registered")

        logger.info(
            "citizen_registered",
            user_id=user.id,
            application_id=application.id,
            old_status=VerificationStatus.NONE.value,
            new_status=VerificationStatus.PENDING.value,
        )
        return TransitionResult(
            user=with_status(user, VerificationStatus.PENDING, written_at),
            application_id=application.id,
        )

    async def _reapply_from_scratch(
        self, user_id: int, full_name: str, request: RegisterStep1Request
    ) -> TransitionResult:
        async with transaction(
            "Reapplication failed", operation="register_step1_reapply", user_id=user_id
        ) as conn:
            user = await self.user_service.lock_by_id(conn, user_id)
            if user is None or user.verification_status != VerificationStatus.REJECTED:
                raise ConflictError("Email already registered")
            ensure_transition(user.verification_status, VerificationStatus.PENDING)

            application = await self.applications.create(
                conn,
                user_id=user.id,
                full_name=full_name,
                address=request.address,
                phone=request.phone,
                dob=request.dob,
            )
            written_at = await apply_status_transition(
                conn,
                user_id=user.id,
                application_id=application.id,
                status=VerificationStatus.PENDING,
                name=full_name,
            )

        logger.info(
            "citizen_reapplied",
            user_id=user.id,
            application_id=application.id,
            path="register_step1",
            old_status=VerificationStatus.REJECTED.value,
            new_status=VerificationStatus.PENDING.value,
        )
        return TransitionResult(
            user=with_status(user, VerificationStatus.PENDING, written_at, name=full_name),
            application_id=application.id,
            is_reapplication=True,
        )

    async def upload_documents(
        self, user_id: int, id_card_front: str, id_card_back: str
    ) -> int:
        """Step 2: attach both identity document images to the current application.

        Returns:
            Id of the updated application

        Raises:
            NotFoundError: The user has no application
            ConflictError: The application is no longer open for evidence
        """
        async with transaction(
            "Document upload failed", operation="register_step2", user_id=user_id
        ) as conn:
            application = await self.applications.lock_current(conn, user_id)
            if application is None:
                raise NotFoundError("Application not found")
            if application.status not in EVIDENCE_OPEN_STATUSES:
                raise ConflictError("Application is no longer accepting documents")

            await self.applications.update_documents(
                conn, application.id, id_card_front, id_card_back
            )

        logger.info(
            "application_documents_uploaded",
            user_id=user_id,
            application_id=application.id,
        )
        return application.id

    async def submit_biometrics(
        self,
        user_id: int,
        selfie_image: str,
        ai_analysis: Any = None,
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> TransitionResult:
        """Step 3: store the selfie and analysis, and put the application under review.

        Resubmitting while already pending only overwrites the evidence.
        Submitting in answer to a request for more information moves the
        citizen back to pending and re-issues credentials.

        Raises:
            NotFoundError: The user has no application
            ConflictError: The application is no longer open for evidence
        """
        async with transaction(
            "Verification submission failed", operation="register_step3", user_id=user_id
        ) as conn:
            user = await self.user_service.lock_by_id(conn, user_id)
            application = await self.applications.lock_current(conn, user_id)
            if user is None or application is None:
                raise NotFoundError("Application not found")
            if application.status not in EVIDENCE_OPEN_STATUSES:
                raise ConflictError("Application is no longer accepting a selfie")
            ensure_transition(application.status, VerificationStatus.PENDING)

            await self.applications.update_biometrics(
                conn, application.id, selfie_image, ai_analysis
            )
            written_at = await apply_status_transition(
                conn,
                user_id=user_id,
                application_id=application.id,
                status=VerificationStatus.PENDING,
            )

        old_status = application.status
        logger.info(
            "application_submitted",
            user_id=user_id,
            application_id=application.id,
            old_status=old_status.value,
            new_status=VerificationStatus.PENDING.value,
            has_analysis=ai_analysis is not None,
        )

        result = TransitionResult(
            user=with_status(user, VerificationStatus.PENDING, written_at),
            application_id=application.id,
        )
        if old_status != VerificationStatus.PENDING or user.verification_status != VerificationStatus.PENDING:
            result.credentials = await issue_after_commit(
                self.auth_service, result.user, user_agent, ip_address, "register_step3"
            )
        return result
