"""
Cozy Connect — Caller profile API

Read, create and update the signed-in user's own profile, plus the
verification-code flow for claiming a pre-seeded profile.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, status

from app.api.deps import (
    get_current_email,
    get_current_profile,
    get_linking_service,
    get_profile_gateway,
)
from app.config import get_settings
from app.errors import InvalidRequest, ProfileNotFound
from app.schemas.profile import (
    LinkProfileRequest,
    MessageResponse,
    Profile,
    ProfileCreate,
    ProfileResponse,
    ProfileUpdate,
    RequestCodeRequest,
)
from app.services.linking_service import LinkingService
from app.services.profile_gateway import ProfileGateway

logger = structlog.get_logger("cozy.api.profile")

router = APIRouter()


@router.get("", response_model=ProfileResponse, summary="Get the caller's profile")
async def get_profile(me: Profile = Depends(get_current_profile)) -> ProfileResponse:
    return ProfileResponse(profile=me)


@router.get("/me", response_model=ProfileResponse, summary="Get the caller's profile")
async def get_my_profile(me: Profile = Depends(get_current_profile)) -> ProfileResponse:
    return ProfileResponse(profile=me)


# ──────────────────────────────────────────────────────────────────────────────
# GET /profile/check: Existence gate used right after sign-in
# ──────────────────────────────────────────────────────────────────────────────

@router.get("/check", response_model=ProfileResponse, summary="Check that the caller has a profile")
async def check_profile(
    email: str = Depends(get_current_email),
    profiles: ProfileGateway = Depends(get_profile_gateway),
) -> ProfileResponse:
    """Look the caller up a few times before concluding they have no profile.

    A profile written moments ago may not be visible to reads yet.
    """
    settings = get_settings()
    profile = await profiles.wait_for_profile(
        email,
        attempts=settings.PROFILE_CHECK_ATTEMPTS,
        delay=settings.PROFILE_CHECK_DELAY_SECONDS,
    )
    if profile is None:
        raise ProfileNotFound("Profile not found")
    return ProfileResponse(profile=profile)


# ──────────────────────────────────────────────────────────────────────────────
# POST /profile: create. PUT /profile: partial update
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "",
    response_model=ProfileResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create the caller's profile",
)
async def create_profile(
    payload: ProfileCreate,
    email: str = Depends(get_current_email),
    profiles: ProfileGateway = Depends(get_profile_gateway),
) -> ProfileResponse:
    profile = await profiles.create_profile(email, payload)
    return ProfileResponse(profile=profile)


@router.put("", response_model=ProfileResponse, summary="Update the caller's profile")
async def update_profile(
    payload: ProfileUpdate,
    me: Profile = Depends(get_current_profile),
    profiles: ProfileGateway = Depends(get_profile_gateway),
) -> ProfileResponse:
    changes = payload.model_dump(exclude_unset=True)
    if not changes:
        raise InvalidRequest("No update data provided")
    try:
        profile = await profiles.update_profile(me.id, changes)
    except ValueError as exc:
        raise InvalidRequest(str(exc)) from exc
    return ProfileResponse(profile=profile)


# ──────────────────────────────────────────────────────────────────────────────
# Claiming a pre-seeded profile
# ──────────────────────────────────────────────────────────────────────────────

@router.post("/request-code", response_model=MessageResponse, summary="Email a verification code")
async def request_code(
    payload: RequestCodeRequest,
    email: str = Depends(get_current_email),
    linking: LinkingService = Depends(get_linking_service),
) -> MessageResponse:
    await linking.request_code(email, payload.name)
    return MessageResponse(message="Verification code sent to your email. Please check your inbox.")


@router.post("/link", response_model=ProfileResponse, summary="Link a profile with a verification code")
async def link_profile(
    payload: LinkProfileRequest,
    email: str = Depends(get_current_email),
    linking: LinkingService = Depends(get_linking_service),
) -> ProfileResponse:
    profile = await linking.link_profile(email, payload.name, payload.verification_code)
    return ProfileResponse(profile=profile)
