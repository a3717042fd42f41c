"""Authentication API endpoints."""

from typing import Optional

import structlog
from fastapi import APIRouter, Body, Depends, Request, Response

from citizen_registry.api.cookies import (
    REFRESH_COOKIE,
    clear_session_cookies,
    set_session_cookies,
)
from citizen_registry.api.dependencies import (
    client_ip,
    get_current_user,
    rate_limit,
    user_agent,
)
from citizen_registry.api.errors import error_response
from citizen_registry.config import get_settings
from citizen_registry.errors import UnauthorizedError
from citizen_registry.models.auth import (
    IssuedCredentials,
    LoginRequest,
    LoginResponse,
    LogoutAllResponse,
    MeResponse,
    RefreshRequest,
    SessionsResponse,
    SessionSummary,
    UserSummary,
)
from citizen_registry.models.base import MessageResponse
from citizen_registry.models.user import AuthenticatedUser
from citizen_registry.services.auth_service import AuthService
from citizen_registry.services.user_service import UserService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])


def _presented_refresh_token(request: Request, body: Optional[RefreshRequest]) -> Optional[str]:
    if body is not None and body.refresh_token:
        return body.refresh_token
    return request.cookies.get(REFRESH_COOKIE)


@router.post("/login", dependencies=[Depends(rate_limit("login"))])
async def login(
    payload: LoginRequest, request: Request, response: Response
) -> LoginResponse:
    """Login with email and password.

    Returns:
        LoginResponse with the user and access token; both credentials are
        also set as cookies

    Raises:
        UnauthorizedError: If the email is unknown or the password is wrong
    """
    user_service = UserService()
    auth_service = AuthService()

    result = await user_service.get_by_email(payload.email)
    if result is None:
        raise UnauthorizedError("Invalid credentials")

    user, password_hash = result
    if not auth_service.verify_password(payload.password, password_hash):
        logger.info("login_failed", user_id=user.id)
        raise UnauthorizedError("Invalid credentials")

    credentials = await auth_service.issue_credentials(
        user, user_agent(request), client_ip(request)
    )
    set_session_cookies(response, credentials, get_settings())

    logger.info("user_logged_in", user_id=user.id, role=user.role.value)
    return LoginResponse(user=UserSummary.from_user(user), token=credentials.access_token)


@router.post("/refresh", response_model=LoginResponse)
async def refresh(
    request: Request,
    response: Response,
    body: Optional[RefreshRequest] = Body(default=None),
):
    """Exchange a refresh token for a new credential pair.

    The old refresh token is revoked and the new access token is built
    from a fresh read of the user, so role and verification status are
    current. On failure both cookies are cleared.
    """
    settings = get_settings()
    auth_service = AuthService()
    user_service = UserService()

    def refused(message: str):
        failure = error_response(request, UnauthorizedError.status_code, UnauthorizedError.code, message)
        clear_session_cookies(failure, settings)
        return failure

    raw_token = _presented_refresh_token(request, body)
    if not raw_token:
        return refused("Refresh token required")

    rotated = await auth_service.rotate_refresh_token(
        raw_token, user_agent(request), client_ip(request)
    )
    if rotated is None:
        return refused("Invalid or expired refresh token")

    new_refresh, user_id = rotated
    user = await user_service.get_by_id(user_id)
    if user is None:
        return refused("User not found")

    credentials = IssuedCredentials(
        access_token=auth_service.create_access_token(user),
        refresh_token=new_refresh,
        expires_in=int(auth_service.access_token_ttl.total_seconds()),
    )
    set_session_cookies(response, credentials, settings)
    return LoginResponse(user=UserSummary.from_user(user), token=credentials.access_token)


@router.post("/logout")
async def logout(
    request: Request,
    response: Response,
    body: Optional[RefreshRequest] = Body(default=None),
) -> MessageResponse:
    """Revoke the presented refresh token and clear session cookies."""
    raw_token = _presented_refresh_token(request, body)
    if raw_token:
        await AuthService().revoke_refresh_token(raw_token)

    clear_session_cookies(response, get_settings())
    return MessageResponse(message="Logged out successfully")


@router.post("/logout-all")
async def logout_all(
    response: Response,
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> LogoutAllResponse:
    """Revoke every refresh session of the caller."""
    revoked = await AuthService().revoke_all_user_tokens(current_user.id)
    clear_session_cookies(response, get_settings())
    return LogoutAllResponse(
        message="Logged out from all devices",
        sessions_revoked=revoked,
    )


@router.get("/me")
async def get_me(
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> MeResponse:
    """Current account read fresh from storage, including any rejection reason."""
    user = await UserService().get_by_id(current_user.id)
    if user is None:
        raise UnauthorizedError("User not found")
    return MeResponse(user=UserSummary.from_user(user))


@router.get("/sessions")
async def list_sessions(
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> SessionsResponse:
    sessions = await AuthService().list_active_sessions(current_user.id)
    return SessionsResponse(
        sessions=[
            SessionSummary(
                id=s.id,
                user_agent=s.user_agent,
                ip_address=s.ip_address,
                created_at=s.created_at,
                expires_at=s.expires_at,
            )
            for s in sessions
        ]
    )
