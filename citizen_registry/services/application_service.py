"""Application store: persistence for verification applications.

Methods that take a ``conn`` are meant to run inside the caller's
transaction; the others acquire their own connection for a single read.
"""

import json
from datetime import date, datetime, timezone
from typing import Any, Mapping, Optional

import asyncpg
import structlog

from citizen_registry.database import get_pool
from citizen_registry.models.application import Application, ValidatorActionRecord
from citizen_registry.models.user import VerificationStatus

logger = structlog.get_logger(__name__)

APPLICATION_COLUMNS = """
    a.id, a.user_id, a.full_name, a.address, a.phone, a.dob,
    a.id_card_front, a.id_card_back, a.selfie_image, a.ai_analysis_json,
    a.status, a.created_at, a.updated_at
"""

# Newest first; id breaks ties between rows created in the same instant.
CURRENT_ORDER = "ORDER BY a.created_at DESC, a.id DESC"

DECIDED_STATUSES = (
    VerificationStatus.APPROVED.value,
    VerificationStatus.REJECTED.value,
    VerificationStatus.NEEDS_INFO.value,
)


def _decode_analysis(value: Any) -> Any:
    # asyncpg hands JSONB back as text unless a codec is registered
    if isinstance(value, str):
        return json.loads(value)
    return value


def _present(image: Optional[str]) -> Optional[str]:
    # None lets COALESCE keep the stored image
    return image if image and image.strip() else None


def row_to_application(row: Mapping[str, Any]) -> Application:
    """Build an Application from an asyncpg record."""
    return Application(
        id=row["id"],
        user_id=row["user_id"],
        full_name=row["full_name"],
        address=row["address"],
        phone=row["phone"],
        dob=row["dob"],
        id_card_front=row["id_card_front"],
        id_card_back=row["id_card_back"],
        selfie_image=row["selfie_image"],
        ai_analysis=_decode_analysis(row["ai_analysis_json"]),
        status=row["status"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        user_email=row.get("user_email"),
        decided_at=row.get("decided_at"),
    )


class ApplicationService:
    """Service for creating, reading and mutating applications."""

    async def create(
        self,
        conn: asyncpg.Connection,
        user_id: int,
        full_name: str,
        address: str,
        phone: str,
        dob: date,
    ) -> Application:
        """Insert a new pending application; it becomes the user's current one."""
        now = datetime.now(timezone.utc)
        row = await conn.fetchrow(
            """
            INSERT INTO applications AS a (user_id, full_name, address, phone, dob, status, created_at, updated_at)
            VALUES ($1, $2, $3, $4, $5, $6, $7, $7)
            RETURNING """
            + APPLICATION_COLUMNS,
            user_id,
            full_name,
            address,
            phone,
            dob,
            VerificationStatus.PENDING.value,
            now,
        )
        application = row_to_application(row)
        logger.info(
            "application_created",
            application_id=application.id,
            user_id=user_id,
        )
        return application

    async def lock_current(
        self, conn: asyncpg.Connection, user_id: int
    ) -> Optional[Application]:
        """Read and row-lock the user's current application."""
        row = await conn.fetchrow(
            f"""
            SELECT {APPLICATION_COLUMNS}
            FROM applications a
            WHERE a.user_id = $1
            {CURRENT_ORDER}
            LIMIT 1
            FOR UPDATE
            """,
            user_id,
        )
        return row_to_application(row) if row is not None else None

    async def lock_by_id(
        self, conn: asyncpg.Connection, application_id: int
    ) -> Optional[Application]:
        """Read and row-lock one application by id."""
        row = await conn.fetchrow(
            f"""
            SELECT {APPLICATION_COLUMNS}
            FROM applications a
            WHERE a.id = $1
            FOR UPDATE
            """,
            application_id,
        )
        return row_to_application(row) if row is not None else None

    async def owner_id(
        self, conn: asyncpg.Connection, application_id: int
    ) -> Optional[int]:
        """Owning user of an application, read without locking."""
        return await conn.fetchval(
            "SELECT user_id FROM applications WHERE id = $1",
            application_id,
        )

    async def current_id(self, conn: asyncpg.Connection, user_id: int) -> Optional[int]:
        """Id of the user's current application."""
        return await conn.fetchval(
            f"""
            SELECT a.id FROM applications a
            WHERE a.user_id = $1
            {CURRENT_ORDER}
            LIMIT 1
            """,
            user_id,
        )

    async def get_current(self, user_id: int) -> Optional[Application]:
        """The user's current application, joined with their email."""
        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                SELECT {APPLICATION_COLUMNS}, u.email AS user_email
                FROM applications a
                JOIN users u ON a.user_id = u.id
                WHERE a.user_id = $1
                {CURRENT_ORDER}
                LIMIT 1
                """,
                user_id,
            )

        return row_to_application(row) if row is not None else None

    async def get_by_id(self, application_id: int) -> Optional[Application]:
        """One application with its owner's email."""
        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                SELECT {APPLICATION_COLUMNS}, u.email AS user_email
                FROM applications a
                JOIN users u ON a.user_id = u.id
                WHERE a.id = $1
                """,
                application_id,
            )

        return row_to_application(row) if row is not None else None

    async def list_for_user(self, user_id: int) -> list[Application]:
        """Every application the user has ever submitted, oldest first."""
        pool = await get_pool()

        async with pool.acquire() as conn:
            rows = await conn.fetch(
                f"""
                SELECT {APPLICATION_COLUMNS}
                FROM applications a
                WHERE a.user_id = $1
                ORDER BY a.created_at ASC, a.id ASC
                """,
                user_id,
            )

        return [row_to_application(row) for row in rows]

    async def list_pending(self) -> list[Application]:
        """Pending applications, longest-waiting first."""
        pool = await get_pool()

        async with pool.acquire() as conn:
            rows = await conn.fetch(
                f"""
                SELECT {APPLICATION_COLUMNS}, u.email AS user_email
                FROM applications a
                JOIN users u ON a.user_id = u.id
                WHERE a.status = $1
                ORDER BY a.created_at ASC, a.id ASC
                """,
                VerificationStatus.PENDING.value,
            )

        return [row_to_application(row) for row in rows]

    async def list_decided(
        self, status: Optional[VerificationStatus] = None
    ) -> list[Application]:
        """Decided applications, most recently decided first.

        The decision time is the newest audit entry for the application, so
        evidence resubmitted while in needs_info does not reorder history.

        Args:
            status: Restrict to one decided status; None returns all of them
        """
        statuses = [status.value] if status is not None else list(DECIDED_STATUSES)

        pool = await get_pool()

        async with pool.acquire() as conn:
            rows = await conn.fetch(
                f"""
                SELECT {APPLICATION_COLUMNS}, u.email AS user_email,
                       COALESCE(last_action.created_at, a.updated_at) AS decided_at
                FROM applications a
                JOIN users u ON a.user_id = u.id
                LEFT JOIN LATERAL (
                    SELECT va.created_at
                    FROM validator_actions va
                    WHERE va.application_id = a.id
                    ORDER BY va.created_at DESC
                    LIMIT 1
                ) last_action ON TRUE
                WHERE a.status = ANY($1::text[])
                ORDER BY decided_at DESC, a.id DESC
                """,
                statuses,
            )

        return [row_to_application(row) for row in rows]

    async def update_documents(
        self,
        conn: asyncpg.Connection,
        application_id: int,
        id_card_front: str,
        id_card_back: str,
    ) -> None:
        """Store both identity document images."""
        await conn.execute(
            """
            UPDATE applications
            SET id_card_front = $1, id_card_back = $2, updated_at = $3
            WHERE id = $4
            """,
            id_card_front,
            id_card_back,
            datetime.now(timezone.utc),
            application_id,
        )

    async def update_biometrics(
        self,
        conn: asyncpg.Connection,
        application_id: int,
        selfie_image: str,
        ai_analysis: Any = None,
    ) -> None:
        """Store the selfie and the opaque analysis payload, overwriting any earlier ones."""
        await conn.execute(
            """
            UPDATE applications
            SET selfie_image = $1, ai_analysis_json = $2::jsonb, updated_at = $3
            WHERE id = $4
            """,
            selfie_image,
            json.dumps(ai_analysis) if ai_analysis is not None else None,
            datetime.now(timezone.utc),
            application_id,
        )

    async def update_evidence(
        self,
        conn: asyncpg.Connection,
        application_id: int,
        full_name: str,
        address: str,
        phone: str,
        dob: date,
        id_card_front: Optional[str] = None,
        id_card_back: Optional[str] = None,
        selfie_image: Optional[str] = None,
    ) -> None:
        """Rewrite an application in place.

        Text fields always take the given value; images only replace the
        stored one when a non-empty value is supplied.
        """
        await conn.execute(
            """
            UPDATE applications
            SET full_name = $1,
                address = $2,
                phone = $3,
                dob = $4,
                id_card_front = COALESCE($5, id_card_front),
                id_card_back = COALESCE($6, id_card_back),
                selfie_image = COALESCE($7, selfie_image),
                updated_at = $8
            WHERE id = $9
            """,
            full_name,
            address,
            phone,
            dob,
            _present(id_card_front),
            _present(id_card_back),
            _present(selfie_image),
            datetime.now(timezone.utc),
            application_id,
        )

    async def record_action(
        self,
        conn: asyncpg.Connection,
        application_id: int,
        validator_id: int,
        action: str,
        notes: Optional[str] = None,
    ) -> None:
        """Append to the validator audit trail."""
        await conn.execute(
            """
            INSERT INTO validator_actions (application_id, validator_id, action, notes, created_at)
            VALUES ($1, $2, $3, $4, $5)
            """,
            application_id,
            validator_id,
            action,
            notes,
            datetime.now(timezone.utc),
        )

    async def list_actions(self, application_id: int) -> list[ValidatorActionRecord]:
        """Audit trail for one application, oldest first."""
        pool = await get_pool()

        async with pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT id, application_id, validator_id, action, notes, created_at
                FROM validator_actions
                WHERE application_id = $1
                ORDER BY created_at ASC, id ASC
                """,
                application_id,
            )

        return [ValidatorActionRecord(**dict(row)) for row in rows]
