"""Session cookie helpers."""

from starlette.responses import Response

from citizen_registry.config import Settings
from citizen_registry.models.auth import IssuedCredentials

ACCESS_COOKIE = "access_token"
REFRESH_COOKIE = "refresh_token"


def set_session_cookies(
    response: Response, credentials: IssuedCredentials, settings: Settings
) -> None:
    """Attach both credentials as httpOnly, SameSite=Lax cookies."""
    response.set_cookie(
        ACCESS_COOKIE,
        credentials.access_token,
        max_age=credentials.expires_in,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
        domain=settings.cookie_domain,
    )
    response.set_cookie(
        REFRESH_COOKIE,
        credentials.refresh_token,
        max_age=settings.refresh_token_expire_days * 24 * 60 * 60,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
        domain=settings.cookie_domain,
    )


def clear_session_cookies(response: Response, settings: Settings) -> None:
    for name in (ACCESS_COOKIE, REFRESH_COOKIE):
        response.delete_cookie(
            name,
            httponly=True,
            secure=settings.cookie_secure,
            samesite="lax",
            domain=settings.cookie_domain,
        )
