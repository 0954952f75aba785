"""
Profile Router

Read and replace the authenticated user's profile.
"""
from fastapi import APIRouter, Depends

from found_money.api.auth import get_current_profile, get_current_user_id
from found_money.api.dependencies import get_profile_store
from found_money.api.schemas import ProfileUpdate
from found_money.models.profile import UserProfile
from found_money.store import ProfileStore

router = APIRouter(prefix="/profile", tags=["profile"])


@router.get("", response_model=UserProfile)
async def read_profile(profile: UserProfile = Depends(get_current_profile)):
    return profile


@router.put("", response_model=UserProfile)
async def update_profile(
    body: ProfileUpdate,
    user_id: str = Depends(get_current_user_id),
    store: ProfileStore = Depends(get_profile_store),
):
    """Create or replace identity fields and the full address history."""
    return store.upsert_profile(UserProfile(user_id=user_id, **body.model_dump()))
