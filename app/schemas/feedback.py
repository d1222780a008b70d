from typing import Optional

from pydantic import Field

from app.schemas.base import CamelModel


class FeedbackCreate(CamelModel):
    name: Optional[str] = None
    email: Optional[str] = None
    feedback: str = Field(min_length=1, max_length=5000)
    rating: int = Field(ge=1, le=5)
