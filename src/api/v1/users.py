"""
Current-user profile endpoints.
"""

from fastapi import APIRouter

from src.api.deps import CurrentUser, Identity
from src.schemas.auth import UserProfileUpdate, UserResponse

router = APIRouter()


@router.get("/me", response_model=UserResponse)
async def get_me(user: CurrentUser):
    """Get current user's profile."""
    return UserResponse.model_validate(user)


@router.put("/me", response_model=UserResponse)
async def update_me(data: UserProfileUpdate, user: CurrentUser, identity: Identity):
    """Update current user's first and last name."""
    updated = await identity.update_profile(
        user_id=user.id,
        first_name=data.first_name,
        last_name=data.last_name,
    )
    return UserResponse.model_validate(updated)
