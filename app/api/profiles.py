"""
Cozy Connect — Browse feed API
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends

from app.api.deps import get_optional_email, get_profile_gateway
from app.config import get_settings
from app.schemas.profile import ProfileListResponse
from app.services.profile_gateway import ProfileGateway

router = APIRouter()


@router.get("", response_model=ProfileListResponse, summary="List profiles to browse")
async def list_profiles(
    email: Optional[str] = Depends(get_optional_email),
    profiles: ProfileGateway = Depends(get_profile_gateway),
) -> ProfileListResponse:
    """Priority profiles first, then everyone else in random order.

    A signed-in caller never sees their own profile.
    """
    settings = get_settings()
    exclude_ids: list[str] = []
    if email:
        me = await profiles.find_profile_by_linking_email(email)
        if me is not None:
            exclude_ids.append(me.id)

    feed = await profiles.list_browsable_profiles(
        exclude_names=settings.blacklisted_profiles_list,
        priority_names=settings.priority_profiles_list,
        exclude_ids=exclude_ids,
    )
    return ProfileListResponse(profiles=feed)
