"""FastAPI dependencies for authentication, role guards and rate limiting."""

from typing import Optional

import structlog
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from citizen_registry.api.cookies import ACCESS_COOKIE
from citizen_registry.errors import ForbiddenError, RateLimitedError, UnauthorizedError
from citizen_registry.models.user import AuthenticatedUser, Role
from citizen_registry.services.auth_service import AuthService
from citizen_registry.services.redis_service import RedisService

logger = structlog.get_logger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def client_ip(request: Request) -> Optional[str]:
    """Address of the calling client, if known."""
    return request.client.host if request.client else None


def user_agent(request: Request) -> Optional[str]:
    return request.headers.get("user-agent")


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> AuthenticatedUser:
    """Authenticate the caller from a Bearer header or the access cookie.

    The returned claims are exactly those embedded in the credential; no
    database read is made.

    Raises:
        UnauthorizedError: Missing, malformed, invalid or expired credential
    """
    if credentials is not None:
        token = credentials.credentials
    elif request.headers.get("authorization"):
        # Present but not of the form "Bearer <token>"
        raise UnauthorizedError("Malformed authorization header")
    else:
        token = request.cookies.get(ACCESS_COOKIE)

    if not token:
        raise UnauthorizedError("Authentication required")

    try:
        return AuthService().claims_from_token(token)
    except ValueError as e:
        logger.info("access_token_rejected", reason=str(e))
        raise UnauthorizedError("Invalid or expired access token")


async def require_validator(
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> AuthenticatedUser:
    """Require the validator or admin role.

    Raises:
        ForbiddenError: If the caller is a citizen
    """
    if not current_user.is_staff:
        raise ForbiddenError("Validator access required")
    return current_user


async def require_admin(
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> AuthenticatedUser:
    """Require the admin role.

    Raises:
        ForbiddenError: If the caller is not an admin
    """
    if current_user.role != Role.ADMIN:
        raise ForbiddenError("Admin access required")
    return current_user


def rate_limit(scope: str):
    """Build a dependency that counts requests per client IP for ``scope``."""

    async def check(request: Request) -> None:
        key = f"{scope}:{client_ip(request) or 'unknown'}"
        allowed, _ = await RedisService().check_rate_limit(key)
        if not allowed:
            logger.warning("rate_limit_exceeded", scope=scope, ip_address=client_ip(request))
            raise RateLimitedError("Too many attempts. Please try again later.")

    return check
