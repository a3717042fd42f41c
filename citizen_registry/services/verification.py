"""Verification state machine.

A citizen's ``users.verification_status`` must always equal the status of
their current (most recently created) application. Every status change
therefore goes through ``apply_status_transition``, which writes both rows
and refuses to run outside an open transaction.
"""

from datetime import datetime, timezone
from typing import Optional

import asyncpg
import structlog

from citizen_registry.errors import ConflictError, NotFoundError
from citizen_registry.models.user import VerificationStatus

logger = structlog.get_logger(__name__)

NONE = VerificationStatus.NONE
PENDING = VerificationStatus.PENDING
APPROVED = VerificationStatus.APPROVED
REJECTED = VerificationStatus.REJECTED
NEEDS_INFO = VerificationStatus.NEEDS_INFO

ALLOWED_TRANSITIONS: dict[VerificationStatus, frozenset[VerificationStatus]] = {
    NONE: frozenset({PENDING}),
    # pending -> pending is the idempotent evidence resubmission of step 3
    PENDING: frozenset({PENDING, APPROVED, REJECTED, NEEDS_INFO}),
    REJECTED: frozenset({PENDING}),
    NEEDS_INFO: frozenset({PENDING, APPROVED, REJECTED}),
    APPROVED: frozenset(),
}

# Only reachable through an explicit admin override.
OVERRIDE_TRANSITIONS: frozenset[tuple[VerificationStatus, VerificationStatus]] = frozenset(
    {(APPROVED, PENDING)}
)

# Statuses in which the citizen may still upload evidence (steps 2 and 3).
EVIDENCE_OPEN_STATUSES = frozenset({PENDING, NEEDS_INFO})

# Statuses a validator may decide on.
DECIDABLE_STATUSES = frozenset({PENDING, NEEDS_INFO})


def can_transition(
    current: VerificationStatus,
    target: VerificationStatus,
    override: bool = False,
) -> bool:
    """Return True if ``current -> target`` is a legal transition."""
    if target in ALLOWED_TRANSITIONS.get(current, frozenset()):
        return True
    return override and (current, target) in OVERRIDE_TRANSITIONS


def ensure_transition(
    current: VerificationStatus,
    target: VerificationStatus,
    override: bool = False,
    message: Optional[str] = None,
) -> None:
    """Raise ConflictError unless ``current -> target`` is legal."""
    if not can_transition(current, target, override=override):
        raise ConflictError(
            message
            or f"Cannot move verification from '{current.value}' to '{target.value}'"
        )


async def apply_status_transition(
    conn: asyncpg.Connection,
    *,
    user_id: int,
    application_id: int,
    status: VerificationStatus,
    rejection_reason: Optional[str] = None,
    name: Optional[str] = None,
) -> datetime:
    """Write ``status`` onto an application and its owning user together.

    Rejection stamps ``rejection_reason``/``rejection_date`` on the user; any
    other status clears them. ``name`` optionally replaces the user's name
    in the same write.

    Args:
        conn: Connection with an open transaction
        user_id: Owner of the application
        application_id: Application to update
        status: New status for both rows
        rejection_reason: Validator notes, required when rejecting
        name: New display name, if it changed

    Returns:
        The timestamp written to both rows

    Raises:
        RuntimeError: If called outside a transaction
        NotFoundError: If the application does not belong to the user
    """
    if not conn.is_in_transaction():
        raise RuntimeError("apply_status_transition requires an open transaction")

    if status == REJECTED and not (rejection_reason or "").strip():
        raise ValueError("A rejection must carry a reason")

    now = datetime.now(timezone.utc)

    result = await conn.execute(
        """
        UPDATE applications
        SET status = $1, updated_at = $2
        WHERE id = $3 AND user_id = $4
        """,
        status.value,
        now,
        application_id,
        user_id,
    )
    if result != "UPDATE 1":
        raise NotFoundError("Application not found")

    rejected = status == REJECTED
    await conn.execute(
        """
        UPDATE users
        SET verification_status = $1,
            rejection_reason = $2,
            rejection_date = $3,
            name = COALESCE($4, name),
            updated_at = $5
        WHERE id = $6
        """,
        status.value,
        rejection_reason if rejected else None,
        now if rejected else None,
        name,
        now,
        user_id,
    )

    logger.debug(
        "status_transition_written",
        user_id=user_id,
        application_id=application_id,
        status=status.value,
    )
    return now
