"""
Cozy Connect — Profile claiming via emailed verification codes.

Some profiles are seeded by organisers before their owners ever sign in.
Such an "unclaimed" profile has no linking email.  To claim it, a signed-in
user asks for a code by profile name; the code is stored on the profile and
emailed to the user's verified address.  Presenting the code back binds the
user's email to the profile and clears the code.
"""

from __future__ import annotations

import hmac
import secrets

import structlog

from app.errors import ProfileAlreadyExists, ProfileNotFound, VerificationError
from app.schemas.profile import Profile
from app.services.email_service import EmailService
from app.services.profile_gateway import ProfileGateway

logger = structlog.get_logger("cozy.linking_service")


def generate_verification_code() -> str:
    """Return a random six-digit code (100000-999999)."""
    return str(secrets.randbelow(900000) + 100000)


class LinkingService:
    def __init__(self, profiles: ProfileGateway, email: EmailService) -> None:
        self._profiles = profiles
        self._email = email

    async def request_code(self, caller_email: str, name: str) -> None:
        log = logger.bind(caller_email=caller_email, profile_name=name)

        await self._ensure_caller_unlinked(caller_email)
        profile = await self._get_by_name(name)
        if profile.is_linked:
            log.info("request_code_already_linked", profile_id=profile.id)
            raise VerificationError(
                "This profile is already linked to a Cozy Connect account",
                error_type="ALREADY_LINKED",
            )

        code = generate_verification_code()
        await self._profiles.set_verification_code(profile.id, code)
        await self._email.send_verification_code(caller_email, profile.name, code)
        log.info("verification_code_sent", profile_id=profile.id)

    async def link_profile(self, caller_email: str, name: str, code: str) -> Profile:
        log = logger.bind(caller_email=caller_email, profile_name=name)

        profile = await self._get_by_name(name)
        stored = profile.verification_code
        if not stored:
            raise VerificationError(
                "No verification code found for this profile. Please request a new one.",
                error_type="NO_CODE",
            )
        if not hmac.compare_digest(stored.strip().encode(), code.strip().encode()):
            log.info("link_invalid_code", profile_id=profile.id)
            raise VerificationError(
                "The verification code you entered is incorrect. Please try again.",
                error_type="INVALID_CODE",
            )
        if profile.is_linked:
            raise VerificationError(
                "This profile is already linked to a Cozy Connect account. "
                "Please sign in with the linked email.",
                error_type="ALREADY_LINKED",
            )
        await self._ensure_caller_unlinked(caller_email)

        linked = await self._profiles.bind_linking_email(profile.id, caller_email)
        log.info("profile_linked", profile_id=profile.id)
        return linked

    async def _get_by_name(self, name: str) -> Profile:
        profile = await self._profiles.find_profile_by_name(name)
        if profile is None:
            raise ProfileNotFound("No profile found with that name")
        return profile

    async def _ensure_caller_unlinked(self, caller_email: str) -> None:
        if await self._profiles.find_profile_by_linking_email(caller_email) is not None:
            raise ProfileAlreadyExists("Your account is already linked to a profile")
