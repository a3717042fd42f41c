"""User account service."""

from datetime import datetime, timezone
from typing import Any, Mapping, Optional

import asyncpg
import structlog

from citizen_registry.database import get_pool
from citizen_registry.errors import ConflictError
from citizen_registry.models.user import Role, User, VerificationStatus
from citizen_registry.services.auth_service import AuthService

logger = structlog.get_logger(__name__)

USER_COLUMNS = """
    id, email, name, role, verification_status, rejection_reason,
    rejection_date, created_at, updated_at
"""


def row_to_user(row: Mapping[str, Any]) -> User:
    """Build a User from an asyncpg record (or any mapping with users columns)."""
    return User(
        id=row["id"],
        email=row["email"],
        name=row["name"],
        role=row["role"],
        verification_status=row["verification_status"],
        rejection_reason=row["rejection_reason"],
        rejection_date=row["rejection_date"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class UserService:
    """Service for account lookups and staff account management."""

    def __init__(self):
        self.auth_service = AuthService()

    async def get_by_email(self, email: str) -> Optional[tuple[User, str]]:
        """Get a user by email (case-insensitive).

        Args:
            email: Email to look up

        Returns:
            Tuple of (User, password_hash) or None if not found
        """
        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                SELECT {USER_COLUMNS}, password_hash
                FROM users
                WHERE LOWER(email) = LOWER($1)
                """,
                email,
            )

        if row is None:
            return None

        return row_to_user(row), row["password_hash"]

    async def get_by_id(self, user_id: int) -> Optional[User]:
        """Get a user by id, always from a fresh read.

        Args:
            user_id: User id

        Returns:
            User model or None if not found
        """
        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {USER_COLUMNS} FROM users WHERE id = $1",
                user_id,
            )

        if row is None:
            return None

        return row_to_user(row)

    async def lock_by_id(self, conn: asyncpg.Connection, user_id: int) -> Optional[User]:
        """Read and row-lock a user inside the caller's transaction."""
        row = await conn.fetchrow(
            f"SELECT {USER_COLUMNS} FROM users WHERE id = $1 FOR UPDATE",
            user_id,
        )
        return row_to_user(row) if row is not None else None

    async def create_staff_user(
        self,
        email: str,
        password: str,
        name: str,
        role: Role,
    ) -> User:
        """Create a validator or admin account.

        Staff accounts are born approved and never own applications.

        Raises:
            ConflictError: If the email is already registered
        """
        if role == Role.CITIZEN:
            raise ValueError("Citizen accounts are created through registration")

        now = datetime.now(timezone.utc)
        password_hash = self.auth_service.hash_password(password)

        pool = await get_pool()

        try:
            async with pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"""
                    INSERT INTO users (email, password_hash, name, role, verification_status, created_at, updated_at)
                    VALUES ($1, $2, $3, $4, $5, $6, $6)
                    RETURNING {USER_COLUMNS}
                    """,
                    email,
                    password_hash,
                    name,
                    role.value,
                    VerificationStatus.APPROVED.value,
                    now,
                )
        except asyncpg.UniqueViolationError:
            raise ConflictError("Email already registered")

        user = row_to_user(row)
        logger.info("staff_user_created", user_id=user.id, role=role.value)
        return user

    async def list_staff(self) -> list[User]:
        """Return all validator and admin accounts ordered by creation date."""
        pool = await get_pool()

        async with pool.acquire() as conn:
            rows = await conn.fetch(
                f"""
                SELECT {USER_COLUMNS}
                FROM users
                WHERE role IN ('admin', 'validator')
                ORDER BY created_at ASC
                """
            )

        return [row_to_user(row) for row in rows]

    async def count_admins(self) -> int:
        """Count number of admin users."""
        pool = await get_pool()

        async with pool.acquire() as conn:
            count = await conn.fetchval(
                "SELECT COUNT(*) FROM users WHERE role = 'admin'"
            )

        return count

    async def ensure_default_admin(
        self, email: str, password: str, name: str
    ) -> Optional[User]:
        """Seed the bootstrap admin account if no admin exists yet.

        Returns:
            The created admin, or None if one already existed
        """
        if await self.count_admins() > 0:
            return None

        try:
            user = await self.create_staff_user(
                email=email.strip().lower(),
                password=password,
                name=name,
                role=Role.ADMIN,
            )
        except ConflictError:
            logger.warning("default_admin_email_taken", email=email)
            return None

        logger.info("default_admin_seeded", user_id=user.id)
        return user
