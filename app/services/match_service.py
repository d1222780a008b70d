"""
Cozy Connect — Match Reconciliation Engine

Decides what a swipe means and persists the result.  One match record exists
per unordered pair of profiles; its ``Swiper`` column always holds the party
that swiped first, and its ``Status`` column holds the reconciled state:

    pending   first swipe recorded, waiting for the invitee
    accepted  both parties swiped (the "match")
    rejected  the invitee declined the pending request

``reconcile_swipe`` applies the decision table below (first row wins):

    existing?  existing.swiper == swiper  status     action           is_match
    ---------  -------------------------  ---------  ---------------  --------
    none       -                          -          create pending   False
    yes        yes                        any        none (already)   status == accepted
    yes        no                         pending    set accepted     True
    yes        no                         accepted/  none             status == accepted
                                          rejected

First swipes are created with a canonical sorted-pair ``unique_key``.  On
backends that enforce it, a concurrent double first swipe surfaces as
``DuplicateRecord``; the engine then re-reads the pair once and applies the
table to whichever record won.  Airtable cannot enforce the key, so legacy
duplicates are tolerated on read: the accepted record wins, otherwise the
earliest created one.

The engine never retries and never swallows store errors.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable

import structlog

from app.errors import (
    DuplicateRecord,
    InvalidStatus,
    InvalidSwipe,
    MatchNotFound,
    MatchStateConflict,
    ProfileNotFound,
    Unauthorized,
)
from app.services.profile_gateway import ProfileGateway
from app.store.base import Record, RecordStore
from app.store.query import all_of, any_of, eq, is_valid_identifier, record_id

logger = structlog.get_logger("cozy.match_service")


class MatchFields:
    """Column names of the match table."""

    SWIPER = "Swiper"
    SWIPED = "Swiped"
    STATUS = "Status"


class MatchState(str, Enum):
    """Reconciled pair state; values are the stored status strings."""

    PENDING = "pending"
    MUTUAL = "accepted"
    DECLINED = "rejected"


# States an invitee may set explicitly.
SETTABLE_STATES = frozenset({MatchState.MUTUAL.value, MatchState.DECLINED.value})


@dataclass
class Match:
    id: str
    first_swiper_id: str
    invitee_id: str
    state: MatchState
    created_time: str | None = None

    @property
    def is_mutual(self) -> bool:
        return self.state is MatchState.MUTUAL

    def involves(self, profile_id: str) -> bool:
        return profile_id in (self.first_swiper_id, self.invitee_id)

    def other_party(self, profile_id: str) -> str:
        return self.invitee_id if profile_id == self.first_swiper_id else self.first_swiper_id


@dataclass(frozen=True)
class SwipeOutcome:
    is_match: bool
    match_id: str
    already_swiped: bool = False
    created: bool = False


def pair_key(a: str, b: str) -> str:
    """Canonical key for the unordered pair {a, b}."""
    low, high = sorted((a, b))
    return f"{low}:{high}"


def record_to_match(record: Record) -> Match:
    raw_status = record.get(MatchFields.STATUS) or MatchState.PENDING.value
    try:
        state = MatchState(raw_status)
    except ValueError:
        # Unrecognised values (e.g. hand-edited rows) are treated as pending.
        logger.warning("unknown_match_status", match_id=record.id, status=raw_status)
        state = MatchState.PENDING
    return Match(
        id=record.id,
        first_swiper_id=record.get(MatchFields.SWIPER) or "",
        invitee_id=record.get(MatchFields.SWIPED) or "",
        state=state,
        created_time=record.created_time,
    )


def partition_matches(matches: Iterable[Match], profile_id: str) -> dict[str, list[Match]]:
    """Split a user's matches into incoming, outgoing and connected lists.

    incoming   pending requests where *profile_id* is the invitee
    outgoing   pending requests *profile_id* sent
    connected  mutual matches, either role

    Declined records appear in none of the lists.
    """
    result: dict[str, list[Match]] = {"incoming": [], "outgoing": [], "connected": []}
    for match in matches:
        if match.state is MatchState.MUTUAL:
            result["connected"].append(match)
        elif match.state is MatchState.PENDING:
            key = "incoming" if match.invitee_id == profile_id else "outgoing"
            result[key].append(match)
    return result


class MatchService:
    """Match reconciliation over an injected record store."""

    def __init__(self, store: RecordStore, table_id: str, profiles: ProfileGateway) -> None:
        self._store = store
        self._table = table_id
        self._profiles = profiles

    # ══════════════════════════════════════════════════════════════════════
    # Swipes
    # ══════════════════════════════════════════════════════════════════════

    async def reconcile_swipe(self, swiper_id: str, swiped_id: str) -> SwipeOutcome:
        log = logger.bind(swiper_id=swiper_id, swiped_id=swiped_id)

        if swiper_id == swiped_id:
            raise InvalidSwipe("You cannot swipe on your own profile")

        await self._require_profiles(swiper_id, swiped_id)

        existing = await self._find_pair(swiper_id, swiped_id)
        if existing is None:
            try:
                created = await self._store.create(
                    self._table,
                    {
                        MatchFields.SWIPER: swiper_id,
                        MatchFields.SWIPED: swiped_id,
                        MatchFields.STATUS: MatchState.PENDING.value,
                    },
                    unique_key=pair_key(swiper_id, swiped_id),
                )
            except DuplicateRecord:
                log.warning("swipe_create_raced")
                existing = await self._find_pair(swiper_id, swiped_id)
                if existing is None:
                    raise
            else:
                log.info("match_created", match_id=created.id)
                return SwipeOutcome(is_match=False, match_id=created.id, created=True)

        return await self._apply_existing(existing, swiper_id, log)

    async def _apply_existing(self, match: Match, swiper_id: str, log) -> SwipeOutcome:
        if match.first_swiper_id == swiper_id:
            log.info("swipe_already_recorded", match_id=match.id, state=match.state.value)
            return SwipeOutcome(
                is_match=match.is_mutual,
                match_id=match.id,
                already_swiped=True,
            )

        if match.state is MatchState.PENDING:
            await self._store.update(
                self._table, match.id, {MatchFields.STATUS: MatchState.MUTUAL.value}
            )
            log.info("match_accepted", match_id=match.id)
            return SwipeOutcome(is_match=True, match_id=match.id)

        log.info("swipe_on_settled_match", match_id=match.id, state=match.state.value)
        return SwipeOutcome(is_match=match.is_mutual, match_id=match.id)

    async def _require_profiles(self, *profile_ids: str) -> None:
        found = await self._profiles.find_profiles_by_ids(profile_ids)
        missing = set(profile_ids) - {p.id for p in found}
        if missing:
            logger.info("swipe_profile_missing", missing=sorted(missing))
            raise ProfileNotFound(f"Profile not found: {', '.join(sorted(missing))}")

    async def _find_pair(self, a: str, b: str) -> Match | None:
        records = await self._store.select(
            self._table,
            where=any_of(
                all_of(eq(MatchFields.SWIPER, a), eq(MatchFields.SWIPED, b)),
                all_of(eq(MatchFields.SWIPER, b), eq(MatchFields.SWIPED, a)),
            ),
        )
        if not records:
            return None

        matches = [record_to_match(r) for r in records]
        if len(matches) == 1:
            return matches[0]

        chosen = _pick_canonical(matches)
        logger.warning(
            "duplicate_match_records",
            pair=pair_key(a, b),
            match_ids=[m.id for m in matches],
            chosen=chosen.id,
        )
        return chosen

    # ══════════════════════════════════════════════════════════════════════
    # Explicit status changes and undo
    # ══════════════════════════════════════════════════════════════════════

    async def get_match(self, match_id: str) -> Match:
        if not is_valid_identifier(match_id):
            raise MatchNotFound("Match not found")
        record = await self._store.find(self._table, match_id)
        if record is None:
            raise MatchNotFound("Match not found")
        return record_to_match(record)

    async def set_match_status(self, match_id: str, new_status: str, requester_id: str) -> Match:
        """Let the invitee accept or reject a pending request."""
        if new_status not in SETTABLE_STATES:
            raise InvalidStatus(
                f"Invalid status {new_status!r}; expected 'accepted' or 'rejected'"
            )

        match = await self.get_match(match_id)
        log = logger.bind(match_id=match_id, requester_id=requester_id)

        if match.invitee_id != requester_id:
            log.warning("set_status_not_invitee")
            raise Unauthorized("Match not found")

        target = MatchState(new_status)
        if match.state is not MatchState.PENDING:
            if match.state is target:
                return match
            raise MatchStateConflict(
                f"Match is already {match.state.value} and cannot become {target.value}"
            )

        record = await self._store.update(
            self._table, match_id, {MatchFields.STATUS: target.value}
        )
        log.info("match_status_set", state=target.value)
        return record_to_match(record)

    async def delete_match(self, match_id: str, requester_id: str) -> None:
        """Delete a match the requester is a party to.

        Lookup and authorisation are one filtered query, so "no such match"
        and "not yours" are indistinguishable to the caller.
        """
        if not is_valid_identifier(match_id):
            raise Unauthorized("Match not found")

        records = await self._store.select(
            self._table,
            where=all_of(
                record_id(match_id),
                any_of(
                    eq(MatchFields.SWIPER, requester_id),
                    eq(MatchFields.SWIPED, requester_id),
                ),
            ),
            max_records=1,
        )
        if not records:
            logger.warning("delete_match_denied", match_id=match_id, requester_id=requester_id)
            raise Unauthorized("Match not found")

        await self._store.delete(self._table, match_id)
        logger.info("match_deleted", match_id=match_id, requester_id=requester_id)

    # ══════════════════════════════════════════════════════════════════════
    # Listing
    # ══════════════════════════════════════════════════════════════════════

    async def list_matches_for_user(self, profile_id: str) -> list[Match]:
        """One match per counterpart; legacy duplicates collapse to the record
        ``reconcile_swipe`` would act on."""
        records = await self._store.select(
            self._table,
            where=any_of(
                eq(MatchFields.SWIPER, profile_id),
                eq(MatchFields.SWIPED, profile_id),
            ),
        )
        by_pair: dict[str, list[Match]] = {}
        for record in records:
            match = record_to_match(record)
            by_pair.setdefault(pair_key(match.first_swiper_id, match.invitee_id), []).append(match)

        listed = []
        for pair, matches in by_pair.items():
            if len(matches) > 1:
                logger.warning(
                    "duplicate_match_records",
                    pair=pair,
                    match_ids=[m.id for m in matches],
                )
            listed.append(_pick_canonical(matches))
        return listed


def _pick_canonical(matches: list[Match]) -> Match:
    accepted = [m for m in matches if m.is_mutual]
    pool = accepted or matches
    # created_time is ISO-8601, so string order is chronological.
    return min(pool, key=lambda m: (m.created_time or "", m.id))
