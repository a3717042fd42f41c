"""Admin API endpoints for staff account management."""

import structlog
from fastapi import APIRouter, Depends, status

from citizen_registry.api.dependencies import require_admin
from citizen_registry.models.auth import CreateStaffRequest, UserSummary
from citizen_registry.models.user import AuthenticatedUser, Role
from citizen_registry.services.user_service import UserService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.get("/staff")
async def list_staff(
    admin: AuthenticatedUser = Depends(require_admin),
) -> list[UserSummary]:
    """List validator and admin accounts (admin only).

    Returns:
        List of UserSummary ordered by creation date
    """
    users = await UserService().list_staff()
    return [UserSummary.from_user(u) for u in users]


@router.post("/staff", status_code=status.HTTP_201_CREATED)
async def create_staff(
    request: CreateStaffRequest,
    admin: AuthenticatedUser = Depends(require_admin),
) -> UserSummary:
    """Create a validator or admin account (admin only).

    Raises:
        ConflictError: If the email is already registered
    """
    user = await UserService().create_staff_user(
        email=request.email,
        password=request.password,
        name=request.name,
        role=Role(request.role),
    )

    logger.info(
        "admin_created_staff",
        admin_id=admin.id,
        new_user_id=user.id,
        role=user.role.value,
    )
    return UserSummary.from_user(user)
