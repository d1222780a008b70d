from typing import Optional

from pydantic import Field

from app.schemas.base import CamelModel


class Picture(CamelModel):
    url: str = Field(min_length=1)
    filename: Optional[str] = None


class Profile(CamelModel):
    id: str
    name: str
    email: Optional[str] = None
    linking_email: Optional[str] = Field(None, alias="cozyConnectGmail")
    short_intro: Optional[str] = None
    company_title: Optional[str] = None
    location: Optional[str] = None
    instagram: Optional[str] = None
    linkedin_link: Optional[str] = None
    github: Optional[str] = None
    categories: list[str] = []
    looking_for: Optional[str] = None
    can_offer: Optional[str] = None
    open_to_work: Optional[str] = None
    other: Optional[str] = None
    picture: Optional[Picture] = None
    active: Optional[bool] = None
    last_modified: Optional[str] = None
    # Never serialised.
    verification_code: Optional[str] = Field(None, exclude=True)

    @property
    def is_linked(self) -> bool:
        return bool(self.linking_email)


class ProfileCreate(CamelModel):
    name: str = Field(min_length=1, max_length=200)
    short_intro: str = Field(min_length=1)
    categories: list[str] = Field(min_length=1)
    looking_for: str = Field(min_length=1)
    can_offer: str = Field(min_length=1)
    picture: Picture
    email: Optional[str] = None
    company_title: Optional[str] = None
    location: Optional[str] = None
    instagram: Optional[str] = None
    linkedin_link: Optional[str] = None
    github: Optional[str] = None
    open_to_work: Optional[str] = None
    other: Optional[str] = None


class ProfileUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    short_intro: Optional[str] = Field(None, min_length=1)
    categories: Optional[list[str]] = Field(None, min_length=1)
    looking_for: Optional[str] = Field(None, min_length=1)
    can_offer: Optional[str] = Field(None, min_length=1)
    picture: Optional[Picture] = None
    email: Optional[str] = None
    company_title: Optional[str] = None
    location: Optional[str] = None
    instagram: Optional[str] = None
    linkedin_link: Optional[str] = None
    github: Optional[str] = None
    open_to_work: Optional[str] = None
    other: Optional[str] = None


class ProfileResponse(CamelModel):
    success: bool = True
    profile: Profile


class ProfileListResponse(CamelModel):
    success: bool = True
    profiles: list[Profile]


class RequestCodeRequest(CamelModel):
    name: str = Field(min_length=1)


class LinkProfileRequest(CamelModel):
    name: str = Field(min_length=1)
    verification_code: str = Field(min_length=1)


class MessageResponse(CamelModel):
    success: bool = True
    message: str


class UploadResponse(CamelModel):
    success: bool = True
    url: str
    key: str
    filename: str
