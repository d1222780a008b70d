from typing import Literal

from pydantic import Field

from app.schemas.base import CamelModel
from app.schemas.profile import Profile


class SwipeRequest(CamelModel):
    swiped_profile_id: str = Field(min_length=1)


class SwipeResponse(CamelModel):
    success: bool = True
    is_match: bool
    match_id: str
    already_swiped: bool = False


class MatchStatusUpdate(CamelModel):
    match_id: str = Field(min_length=1)
    # Validated by the service so the error carries INVALID_STATUS.
    status: str


class MatchDelete(CamelModel):
    match_id: str = Field(min_length=1)


class MatchOut(CamelModel):
    id: str
    swiper: str
    swiped: str
    status: Literal["pending", "accepted", "rejected"]


class MatchStatusResponse(CamelModel):
    success: bool = True
    match: MatchOut


class MatchListItem(Profile):
    match_id: str
    match_status: Literal["pending", "accepted", "rejected"]
    is_incoming: bool


class MatchListResponse(CamelModel):
    success: bool = True
    matches: list[MatchListItem]


class SuccessResponse(CamelModel):
    success: bool = True
