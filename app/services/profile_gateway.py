"""
Cozy Connect — Profile Repository Gateway

Translates identity- and identifier-based lookups into record-store queries
and maps raw records onto the ``Profile`` model.  The gateway is the only
place that knows the profile table's column names.

Lookups are read-only and uncached; every call goes to the store.  Writes
(create, partial update, verification-code bookkeeping) are thin wrappers
that keep the column mapping in one place.

The linking email ("Cozy Connect Gmail") binds a profile to an authenticated
Google identity.  At most one profile may carry a given linking email; this
is checked before every write that sets it, but the check and the write are
not atomic.
"""

from __future__ import annotations

import random
from typing import Any, Iterable, Sequence

import structlog
from tenacity import AsyncRetrying, retry_if_result, stop_after_attempt, wait_fixed

from app.errors import ProfileAlreadyExists, ProfileNotFound
from app.schemas.profile import Picture, Profile, ProfileCreate
from app.store.base import Record, RecordStore, Sort
from app.store.query import any_of, eq, is_valid_identifier, not_, record_id

logger = structlog.get_logger("cozy.profile_gateway")


class ProfileFields:
    """Column names of the profile table."""

    NAME = "Name 名子"
    EMAIL = "Email 電子信箱"
    LINKING_EMAIL = "Cozy Connect Gmail"
    SHORT_INTRO = "Short intro 簡短介紹自己"
    COMPANY_TITLE = "Company/Title 公司職稱"
    LOCATION = "🌏 Where are you from? 你從哪裡來？"
    INSTAGRAM = "Instagram"
    LINKEDIN_LINK = "LinkedIn Link"
    GITHUB = "GitHub"
    CATEGORIES = "Categories/Skills 分類"
    LOOKING_FOR = "I am looking for 我在尋找什麼？"
    CAN_OFFER = "I can offer 我可以提供什麼？"
    OPEN_TO_WORK = "I am open for work 我在找工作機會"
    OTHER = "Other"
    PICTURE = "Picture 照片"
    LAST_MODIFIED = "Last Modified"
    VERIFICATION_CODE = "Verification Code"
    ACTIVE = "Active"


# Profile attribute -> column, for the plain scalar/list attributes.
_ATTRIBUTE_FIELDS: dict[str, str] = {
    "name": ProfileFields.NAME,
    "email": ProfileFields.EMAIL,
    "short_intro": ProfileFields.SHORT_INTRO,
    "company_title": ProfileFields.COMPANY_TITLE,
    "location": ProfileFields.LOCATION,
    "instagram": ProfileFields.INSTAGRAM,
    "linkedin_link": ProfileFields.LINKEDIN_LINK,
    "github": ProfileFields.GITHUB,
    "categories": ProfileFields.CATEGORIES,
    "looking_for": ProfileFields.LOOKING_FOR,
    "can_offer": ProfileFields.CAN_OFFER,
    "open_to_work": ProfileFields.OPEN_TO_WORK,
    "other": ProfileFields.OTHER,
}

# Attributes a partial update may change but never clear.
_REQUIRED_ATTRIBUTES = frozenset(
    {"name", "short_intro", "categories", "looking_for", "can_offer", "picture"}
)

# Columns fetched for the browse feed (verification codes stay server-side).
BROWSE_FIELDS: list[str] = [
    ProfileFields.NAME,
    ProfileFields.EMAIL,
    ProfileFields.LINKING_EMAIL,
    ProfileFields.INSTAGRAM,
    ProfileFields.SHORT_INTRO,
    ProfileFields.LINKEDIN_LINK,
    ProfileFields.GITHUB,
    ProfileFields.COMPANY_TITLE,
    ProfileFields.PICTURE,
    ProfileFields.CATEGORIES,
    ProfileFields.LOOKING_FOR,
    ProfileFields.CAN_OFFER,
    ProfileFields.OPEN_TO_WORK,
    ProfileFields.OTHER,
    ProfileFields.LAST_MODIFIED,
    ProfileFields.LOCATION,
]

# Keeps each RECORD_ID() disjunction well under formula length limits.
_ID_BATCH_SIZE = 50


# ──────────────────────────────────────────────────────────────────────────────
# Record <-> Profile mapping
# ──────────────────────────────────────────────────────────────────────────────

def _picture_from_field(value: Any) -> Picture | None:
    # Attachment columns hold a list; the app only ever uses the first entry.
    if isinstance(value, list):
        value = value[0] if value else None
    if isinstance(value, dict) and value.get("url"):
        return Picture(url=value["url"], filename=value.get("filename"))
    return None


def _picture_to_field(picture: Picture | dict[str, Any] | None) -> list[dict[str, Any]]:
    if picture is None:
        return []
    if isinstance(picture, dict):
        picture = Picture(**picture)
    attachment = {"url": picture.url}
    if picture.filename:
        attachment["filename"] = picture.filename
    return [attachment]


def _categories_from_field(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value else []
    return [str(v) for v in value]


def record_to_profile(record: Record) -> Profile:
    f = record.fields
    return Profile(
        id=record.id,
        name=f.get(ProfileFields.NAME) or "",
        email=f.get(ProfileFields.EMAIL),
        linking_email=f.get(ProfileFields.LINKING_EMAIL) or None,
        short_intro=f.get(ProfileFields.SHORT_INTRO),
        company_title=f.get(ProfileFields.COMPANY_TITLE),
        location=f.get(ProfileFields.LOCATION),
        instagram=f.get(ProfileFields.INSTAGRAM),
        linkedin_link=f.get(ProfileFields.LINKEDIN_LINK),
        github=f.get(ProfileFields.GITHUB),
        categories=_categories_from_field(f.get(ProfileFields.CATEGORIES)),
        looking_for=f.get(ProfileFields.LOOKING_FOR),
        can_offer=f.get(ProfileFields.CAN_OFFER),
        open_to_work=f.get(ProfileFields.OPEN_TO_WORK),
        other=f.get(ProfileFields.OTHER),
        picture=_picture_from_field(f.get(ProfileFields.PICTURE)),
        active=f.get(ProfileFields.ACTIVE),
        last_modified=f.get(ProfileFields.LAST_MODIFIED),
        verification_code=f.get(ProfileFields.VERIFICATION_CODE) or None,
    )


def to_store_fields(changes: dict[str, Any]) -> dict[str, Any]:
    """Translate a snake_case attribute mapping into column names."""
    fields: dict[str, Any] = {}
    for attr, value in changes.items():
        if attr == "picture":
            fields[ProfileFields.PICTURE] = _picture_to_field(value)
        elif attr in _ATTRIBUTE_FIELDS:
            fields[_ATTRIBUTE_FIELDS[attr]] = value
        else:
            raise ValueError(f"Unknown profile attribute: {attr}")
    return fields


# ──────────────────────────────────────────────────────────────────────────────
# Gateway
# ──────────────────────────────────────────────────────────────────────────────

class ProfileGateway:
    """Profile lookups and writes against one profile table."""

    def __init__(self, store: RecordStore, table_id: str) -> None:
        self._store = store
        self._table = table_id

    @property
    def table_id(self) -> str:
        return self._table

    # ── Lookups ───────────────────────────────────────────────────────────

    async def find_profile_by_linking_email(self, email: str) -> Profile | None:
        if not email:
            raise ValueError("email must be a non-empty string")
        records = await self._store.select(
            self._table,
            where=eq(ProfileFields.LINKING_EMAIL, email),
            max_records=1,
        )
        return record_to_profile(records[0]) if records else None

    async def find_profile_by_id(self, profile_id: str) -> Profile | None:
        if not is_valid_identifier(profile_id):
            return None
        record = await self._store.find(self._table, profile_id)
        return record_to_profile(record) if record is not None else None

    async def find_profiles_by_ids(self, ids: Iterable[str]) -> list[Profile]:
        """Batch lookup.  Result order is whatever the store returns."""
        unique_ids = list(dict.fromkeys(i for i in ids if is_valid_identifier(i)))
        if not unique_ids:
            return []

        profiles: list[Profile] = []
        for start in range(0, len(unique_ids), _ID_BATCH_SIZE):
            chunk = unique_ids[start:start + _ID_BATCH_SIZE]
            records = await self._store.select(
                self._table,
                where=any_of(*(record_id(i) for i in chunk)),
            )
            profiles.extend(record_to_profile(r) for r in records)
        return profiles

    async def find_profile_by_name(self, name: str) -> Profile | None:
        if not name:
            raise ValueError("name must be a non-empty string")
        records = await self._store.select(
            self._table,
            where=eq(ProfileFields.NAME, name),
            max_records=1,
        )
        return record_to_profile(records[0]) if records else None

    async def list_browsable_profiles(
        self,
        exclude_names: Sequence[str] = (),
        priority_names: Sequence[str] = (),
        exclude_ids: Iterable[str] = (),
        rng: random.Random | None = None,
    ) -> list[Profile]:
        """Return the browse feed.

        Profiles named in *exclude_names* are filtered out by the store
        query.  Profiles named in *priority_names* come first, in that
        order; everything else follows in shuffled order.
        """
        where = None
        if exclude_names:
            where = not_(any_of(*(eq(ProfileFields.NAME, n) for n in exclude_names)))

        records = await self._store.select(
            self._table,
            where=where,
            fields=BROWSE_FIELDS,
            sort=[Sort(ProfileFields.LAST_MODIFIED, "desc")],
        )

        skip = set(exclude_ids)
        rank = {name: i for i, name in enumerate(priority_names)}
        priority: list[Profile] = []
        others: list[Profile] = []
        for record in records:
            if record.id in skip:
                continue
            profile = record_to_profile(record)
            (priority if profile.name in rank else others).append(profile)

        priority.sort(key=lambda p: rank[p.name])
        (rng or random.Random()).shuffle(others)

        logger.info(
            "browse_profiles_listed",
            priority=len(priority),
            others=len(others),
        )
        return priority + others

    async def wait_for_profile(
        self,
        email: str,
        attempts: int = 3,
        delay: float = 1.0,
    ) -> Profile | None:
        """Look up *email* up to *attempts* times, *delay* seconds apart.

        Covers the window in which a just-written profile is not yet visible
        to reads.  Returns ``None`` after the last miss; store errors are
        raised immediately.
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(attempts),
            wait=wait_fixed(delay),
            retry=retry_if_result(lambda profile: profile is None),
            retry_error_callback=lambda retry_state: None,
        )
        profile = await retrying(self.find_profile_by_linking_email, email)
        if profile is None:
            logger.info("profile_wait_exhausted", attempts=attempts)
        return profile

    # ── Writes ────────────────────────────────────────────────────────────

    async def create_profile(self, linking_email: str, payload: ProfileCreate) -> Profile:
        log = logger.bind(linking_email=linking_email)

        if await self.find_profile_by_linking_email(linking_email) is not None:
            log.warning("create_profile_duplicate_linking_email")
            raise ProfileAlreadyExists("A profile is already linked to this account")

        fields = to_store_fields(payload.model_dump(exclude_none=True))
        fields.setdefault(ProfileFields.EMAIL, linking_email)
        fields[ProfileFields.LINKING_EMAIL] = linking_email

        record = await self._store.create(self._table, fields)
        log.info("profile_created", profile_id=record.id)
        return record_to_profile(record)

    async def update_profile(self, profile_id: str, changes: dict[str, Any]) -> Profile:
        """Apply a partial update given as snake_case attributes."""
        if not changes:
            raise ValueError("No update data provided")
        cleared = sorted(a for a in _REQUIRED_ATTRIBUTES if a in changes and changes[a] is None)
        if cleared:
            raise ValueError(f"Required fields cannot be cleared: {', '.join(cleared)}")
        if not is_valid_identifier(profile_id):
            raise ProfileNotFound(f"Profile {profile_id} not found")

        fields = to_store_fields(changes)
        record = await self._store.update(self._table, profile_id, fields)
        logger.info("profile_updated", profile_id=profile_id, fields=sorted(changes))
        return record_to_profile(record)

    async def set_verification_code(self, profile_id: str, code: str) -> None:
        await self._store.update(
            self._table, profile_id, {ProfileFields.VERIFICATION_CODE: code}
        )
        logger.info("verification_code_stored", profile_id=profile_id)

    async def bind_linking_email(self, profile_id: str, email: str) -> Profile:
        """Bind *email* to the profile and clear its verification code."""
        record = await self._store.update(
            self._table,
            profile_id,
            {
                ProfileFields.LINKING_EMAIL: email,
                # Airtable clears a text column on an empty string.
                ProfileFields.VERIFICATION_CODE: "",
            },
        )
        logger.info("linking_email_bound", profile_id=profile_id)
        return record_to_profile(record)
