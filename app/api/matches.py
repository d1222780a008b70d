"""
Cozy Connect — Matches API

Swipe, accept/reject, undo, and list the caller's matches.  Every endpoint
resolves the caller's profile from their verified Google email first; the
match engine then works purely in profile identifiers.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends

from app.api.deps import get_current_profile, get_match_service, get_profile_gateway
from app.schemas.match import (
    MatchDelete,
    MatchListItem,
    MatchListResponse,
    MatchOut,
    MatchStatusResponse,
    MatchStatusUpdate,
    SuccessResponse,
    SwipeRequest,
    SwipeResponse,
)
from app.schemas.profile import Profile
from app.services.match_service import MatchService
from app.services.profile_gateway import ProfileGateway

logger = structlog.get_logger("cozy.api.matches")

router = APIRouter()


# ──────────────────────────────────────────────────────────────────────────────
# GET /matches: List the caller's matches with the other party's profile
# ──────────────────────────────────────────────────────────────────────────────

@router.get("", response_model=MatchListResponse, summary="List matches for the caller")
async def list_matches(
    me: Profile = Depends(get_current_profile),
    matches: MatchService = Depends(get_match_service),
    profiles: ProfileGateway = Depends(get_profile_gateway),
) -> MatchListResponse:
    records = await matches.list_matches_for_user(me.id)
    others = await profiles.find_profiles_by_ids(m.other_party(me.id) for m in records)
    by_id = {p.id: p for p in others}

    items: list[MatchListItem] = []
    for match in records:
        other = by_id.get(match.other_party(me.id))
        if other is None:
            # The other profile was removed from the base; nothing to show.
            logger.warning("match_other_party_missing", match_id=match.id)
            continue
        items.append(
            MatchListItem(
                **other.model_dump(),
                match_id=match.id,
                match_status=match.state.value,
                is_incoming=match.invitee_id == me.id,
            )
        )

    logger.info("list_matches", profile_id=me.id, count=len(items))
    return MatchListResponse(matches=items)


# ──────────────────────────────────────────────────────────────────────────────
# POST /matches: Swipe right on a profile
# ──────────────────────────────────────────────────────────────────────────────

@router.post("", response_model=SwipeResponse, summary="Swipe right on a profile")
async def swipe(
    payload: SwipeRequest,
    me: Profile = Depends(get_current_profile),
    matches: MatchService = Depends(get_match_service),
) -> SwipeResponse:
    outcome = await matches.reconcile_swipe(me.id, payload.swiped_profile_id)
    return SwipeResponse(
        is_match=outcome.is_match,
        match_id=outcome.match_id,
        already_swiped=outcome.already_swiped,
    )


# ──────────────────────────────────────────────────────────────────────────────
# PUT /matches: Accept or reject an incoming request
# ──────────────────────────────────────────────────────────────────────────────

@router.put("", response_model=MatchStatusResponse, summary="Accept or reject a match request")
async def update_match_status(
    payload: MatchStatusUpdate,
    me: Profile = Depends(get_current_profile),
    matches: MatchService = Depends(get_match_service),
) -> MatchStatusResponse:
    match = await matches.set_match_status(payload.match_id, payload.status, me.id)
    return MatchStatusResponse(
        match=MatchOut(
            id=match.id,
            swiper=match.first_swiper_id,
            swiped=match.invitee_id,
            status=match.state.value,
        )
    )


# ──────────────────────────────────────────────────────────────────────────────
# DELETE /matches: Undo a swipe or remove a connection
# ──────────────────────────────────────────────────────────────────────────────

@router.delete("", response_model=SuccessResponse, summary="Delete a match")
async def delete_match(
    payload: MatchDelete,
    me: Profile = Depends(get_current_profile),
    matches: MatchService = Depends(get_match_service),
) -> SuccessResponse:
    await matches.delete_match(payload.match_id, me.id)
    return SuccessResponse()
