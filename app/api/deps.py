"""
Cozy Connect — Shared FastAPI dependencies.

Services are built once in the application lifespan and stored on
``app.state``; these helpers hand them to route functions.  Tests either
populate ``app.state`` with in-memory fakes or override the helpers through
``app.dependency_overrides``.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.errors import ProfileNotFound, Unauthenticated
from app.schemas.profile import Profile
from app.services.feedback_service import FeedbackService
from app.services.linking_service import LinkingService
from app.services.match_service import MatchService
from app.services.profile_gateway import ProfileGateway
from app.utils.identity import GoogleIdentityVerifier

_bearer = HTTPBearer(auto_error=False)


def get_profile_gateway(request: Request) -> ProfileGateway:
    return request.app.state.profiles


def get_match_service(request: Request) -> MatchService:
    return request.app.state.matches


def get_linking_service(request: Request) -> LinkingService:
    return request.app.state.linking


def get_feedback_service(request: Request) -> FeedbackService:
    return request.app.state.feedback


def get_identity_verifier(request: Request) -> GoogleIdentityVerifier:
    return request.app.state.identity


async def get_optional_email(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
    verifier: GoogleIdentityVerifier = Depends(get_identity_verifier),
) -> Optional[str]:
    """Verified email of the caller, or ``None`` when no token was sent.

    A token that is present but invalid is still rejected.
    """
    if credentials is None or not credentials.credentials:
        return None
    return await verifier.verify(credentials.credentials)


async def get_current_email(email: Optional[str] = Depends(get_optional_email)) -> str:
    if not email:
        raise Unauthenticated("Not authenticated")
    return email


async def get_current_profile(
    email: str = Depends(get_current_email),
    profiles: ProfileGateway = Depends(get_profile_gateway),
) -> Profile:
    profile = await profiles.find_profile_by_linking_email(email)
    if profile is None:
        raise ProfileNotFound("User profile not found")
    return profile
