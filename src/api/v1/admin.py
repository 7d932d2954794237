"""
Administrative endpoints.
"""

from fastapi import APIRouter

from src.api.deps import AdminUser, Identity
from src.schemas.auth import UserListResponse, UserResponse

router = APIRouter()


@router.get("/users", response_model=UserListResponse)
async def list_users(admin: AdminUser, identity: Identity):
    """List every user account (admin only)."""
    users = await identity.list_users(admin)
    return UserListResponse(users=[UserResponse.model_validate(u) for u in users])
