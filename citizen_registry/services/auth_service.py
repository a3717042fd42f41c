"""Credential service: password hashing, access JWTs and refresh sessions."""

import hashlib
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

import asyncpg
import bcrypt
import jwt
import structlog

from citizen_registry.config import get_settings
from citizen_registry.database import get_pool
from citizen_registry.models.auth import IssuedCredentials
from citizen_registry.models.user import (
    AuthenticatedUser,
    RefreshSession,
    User,
)

logger = structlog.get_logger(__name__)

JWT_ALGORITHM = "HS256"


def hash_token(raw_token: str) -> str:
    """SHA-256 a refresh token for storage; raw tokens are never persisted."""
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()


class AuthService:
    """Service for authentication, JWT management, and refresh token lifecycle."""

    def __init__(self):
        self.settings = get_settings()

    @property
    def access_token_ttl(self) -> timedelta:
        return timedelta(minutes=self.settings.access_token_expire_minutes)

    @property
    def refresh_token_ttl(self) -> timedelta:
        return timedelta(days=self.settings.refresh_token_expire_days)

    def hash_password(self, password: str) -> str:
        """Hash a password using bcrypt.

        Args:
            password: Plain-text password to hash

        Returns:
            Bcrypt hash string
        """
        salt = bcrypt.gensalt()
        hashed = bcrypt.hashpw(password.encode("utf-8"), salt)
        return hashed.decode("utf-8")

    def verify_password(self, password: str, password_hash: str) -> bool:
        """Verify a password against a bcrypt hash.

        Args:
            password: Plain-text password to check
            password_hash: Bcrypt hash to verify against

        Returns:
            True if the password matches, False otherwise
        """
        return bcrypt.checkpw(
            password.encode("utf-8"),
            password_hash.encode("utf-8"),
        )

    def create_access_token(self, user: User) -> str:
        """Issue a signed access token from the user's current row.

        Role and verification status are always taken from ``user`` as it
        stands at issuance; claims are never copied from an earlier token.

        Args:
            user: Freshly read or freshly written user

        Returns:
            Encoded JWT string
        """
        now = datetime.now(timezone.utc)
        payload = {
            "sub": str(user.id),
            "id": user.id,
            "email": user.email,
            "name": user.name,
            "role": user.role.value,
            "verificationStatus": user.verification_status.value,
            "iat": now,
            "exp": now + self.access_token_ttl,
        }
        token = jwt.encode(payload, self.settings.jwt_secret, algorithm=JWT_ALGORITHM)
        logger.debug(
            "access_token_created",
            user_id=user.id,
            role=user.role.value,
            verification_status=user.verification_status.value,
            expires_minutes=self.settings.access_token_expire_minutes,
        )
        return token

    def validate_access_token(self, token: str) -> dict:
        """Decode and validate a JWT access token.

        Args:
            token: Encoded JWT string

        Returns:
            Decoded payload dict

        Raises:
            ValueError: If the token is invalid, expired, or malformed
        """
        try:
            payload = jwt.decode(
                token,
                self.settings.jwt_secret,
                algorithms=[JWT_ALGORITHM],
            )
            return payload
        except jwt.ExpiredSignatureError:
            raise ValueError("Access token has expired")
        except jwt.InvalidTokenError as e:
            raise ValueError(f"Invalid access token: {e}")

    def claims_from_token(self, token: str) -> AuthenticatedUser:
        """Validate a token and map its payload onto AuthenticatedUser.

        Raises:
            ValueError: If the token is invalid or its claims are incomplete
        """
        payload = self.validate_access_token(token)
        try:
            return AuthenticatedUser(
                id=int(payload["sub"]),
                email=payload["email"],
                name=payload["name"],
                role=payload["role"],
                verification_status=payload["verificationStatus"],
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"Invalid token payload: {e}")

    async def create_refresh_token(
        self,
        user_id: int,
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None,
        conn: Optional[asyncpg.Connection] = None,
    ) -> tuple[str, str]:
        """Generate a refresh token, hash it, and store it in the database.

        Args:
            user_id: Owning user
            user_agent: Issuing device
            ip_address: Issuing client address
            conn: Connection to reuse (e.g. inside a rotation transaction)

        Returns:
            Tuple of (raw_token, token_hash)
        """
        raw_token = secrets.token_urlsafe(48)
        token_hash = hash_token(raw_token)
        now = datetime.now(timezone.utc)
        expires_at = now + self.refresh_token_ttl

        query = """
            INSERT INTO refresh_tokens (user_id, token_hash, user_agent, ip_address, expires_at, created_at)
            VALUES ($1, $2, $3, $4, $5, $6)
        """
        args = (user_id, token_hash, user_agent, ip_address, expires_at, now)

        if conn is not None:
            await conn.execute(query, *args)
        else:
            pool = await get_pool()
            async with pool.acquire() as acquired:
                await acquired.execute(query, *args)

        logger.info(
            "refresh_token_created",
            user_id=user_id,
            ip_address=ip_address,
            expires_at=expires_at.isoformat(),
        )

        return raw_token, token_hash

    async def validate_refresh_token(self, raw_token: str) -> Optional[int]:
        """Validate a refresh token by hashing and looking it up.

        Args:
            raw_token: The raw (unhashed) refresh token string

        Returns:
            The user_id if the token is valid, not revoked, and not expired;
            None otherwise
        """
        now = datetime.now(timezone.utc)

        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                SELECT user_id, expires_at, revoked_at
                FROM refresh_tokens
                WHERE token_hash = $1
                """,
                hash_token(raw_token),
            )

        if row is None:
            logger.warning("refresh_token_not_found")
            return None

        if row["revoked_at"] is not None:
            logger.warning("refresh_token_revoked", user_id=row["user_id"])
            return None

        if row["expires_at"] < now:
            logger.warning("refresh_token_expired", user_id=row["user_id"])
            return None

        return row["user_id"]

    async def rotate_refresh_token(
        self,
        old_token: str,
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> Optional[tuple[str, int]]:
        """Revoke the old refresh token and store a new one atomically.

        The revoke only matches a live token, so two concurrent rotations of
        the same token cannot both succeed.

        Args:
            old_token: The raw refresh token being exchanged
            user_agent: Device presenting the token
            ip_address: Client address presenting the token

        Returns:
            Tuple of (new_raw_token, user_id), or None if the old token was
            unknown, revoked or expired
        """
        now = datetime.now(timezone.utc)

        pool = await get_pool()

        async with pool.acquire() as conn:
            async with conn.transaction():
                user_id = await conn.fetchval(
                    """
                    UPDATE refresh_tokens
                    SET revoked_at = $1
                    WHERE token_hash = $2 AND revoked_at IS NULL AND expires_at > $1
                    RETURNING user_id
                    """,
                    now,
                    hash_token(old_token),
                )

                if user_id is None:
                    logger.warning("refresh_token_rotation_refused")
                    return None

                new_raw, _ = await self.create_refresh_token(
                    user_id, user_agent, ip_address, conn=conn
                )

        logger.info("refresh_token_rotated", user_id=user_id)
        return new_raw, user_id

    async def revoke_refresh_token(self, raw_token: str) -> bool:
        """Revoke a single refresh token.

        Returns:
            True if a live token was revoked
        """
        pool = await get_pool()

        async with pool.acquire() as conn:
            result = await conn.execute(
                """
                UPDATE refresh_tokens
                SET revoked_at = $1
                WHERE token_hash = $2 AND revoked_at IS NULL
                """,
                datetime.now(timezone.utc),
                hash_token(raw_token),
            )

        return result == "UPDATE 1"

    async def revoke_all_user_tokens(self, user_id: int) -> int:
        """Revoke all refresh tokens for a user.

        Args:
            user_id: User whose tokens should be revoked

        Returns:
            Number of sessions revoked
        """
        now = datetime.now(timezone.utc)

        pool = await get_pool()

        async with pool.acquire() as conn:
            result = await conn.execute(
                """
                UPDATE refresh_tokens
                SET revoked_at = $1
                WHERE user_id = $2 AND revoked_at IS NULL
                """,
                now,
                user_id,
            )

        revoked = int(result.split()[-1]) if result else 0
        logger.info("all_refresh_tokens_revoked", user_id=user_id, revoked=revoked)
        return revoked

    async def list_active_sessions(self, user_id: int) -> list[RefreshSession]:
        """Return the user's live refresh sessions, newest first."""
        pool = await get_pool()

        async with pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT id, user_id, user_agent, ip_address, expires_at, revoked_at, created_at
                FROM refresh_tokens
                WHERE user_id = $1 AND revoked_at IS NULL AND expires_at > $2
                ORDER BY created_at DESC
                """,
                user_id,
                datetime.now(timezone.utc),
            )

        return [RefreshSession(**dict(row)) for row in rows]

    async def issue_credentials(
        self,
        user: User,
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> IssuedCredentials:
        """Mint a fresh access + refresh pair reflecting ``user`` as it is now.

        Every operation that changes a user's status or name calls this
        before returning, so callers never hold stale claims.
        """
        access_token = self.create_access_token(user)
        raw_refresh, _ = await self.create_refresh_token(user.id, user_agent, ip_address)
        return IssuedCredentials(
            access_token=access_token,
            refresh_token=raw_refresh,
            expires_in=int(self.access_token_ttl.total_seconds()),
        )
