"""
Profile Routes

Read and edit the current user's profile.
"""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from app.api.dependencies import UserProfileRepoDep, get_current_user_id
from app.domain.subscription import UserProfile
from app.infrastructure.db.models.user_profile import ProfileUpdate
from app.infrastructure.exceptions import NotFoundError


router = APIRouter()


# ============================================================================
# Request Models
# ============================================================================

class ProfileUpdateRequest(BaseModel):
    """Request to update the current profile (only sent fields change)."""
    email: Optional[str] = Field(None, max_length=320)
    display_name: Optional[str] = Field(None, min_length=1, max_length=100)
    terms_agreed: Optional[bool] = None
    onboarding_done: Optional[bool] = None


# ============================================================================
# Endpoints
# ============================================================================

@router.get("/profiles/me", response_model=UserProfile)
async def get_current_profile(
    repo: UserProfileRepoDep,
    user_id: str = Depends(get_current_user_id),
):
    """Get the current user's profile, creating the default one on first visit."""
    profile, _ = await repo.get_or_create(user_id)
    return profile


@router.patch("/profiles/me", response_model=UserProfile)
async def update_profile(
    request: ProfileUpdateRequest,
    repo: UserProfileRepoDep,
    user_id: str = Depends(get_current_user_id),
):
    """Update the current user's profile."""
    await repo.get_or_create(user_id)
    data = ProfileUpdate(**request.model_dump(exclude_unset=True))
    profile = await repo.update_by_user_id(user_id, data)
    if profile is None:
        raise NotFoundError(f"Profile not found for user {user_id}")
    return profile
