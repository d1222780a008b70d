"""
Cozy Connect — Feedback API (no sign-in required)
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from app.api.deps import get_feedback_service
from app.schemas.feedback import FeedbackCreate
from app.schemas.match import SuccessResponse
from app.services.feedback_service import FeedbackService

router = APIRouter()


@router.post("", response_model=SuccessResponse, summary="Submit feedback")
async def submit_feedback(
    payload: FeedbackCreate,
    feedback: FeedbackService = Depends(get_feedback_service),
) -> SuccessResponse:
    await feedback.submit(payload)
    return SuccessResponse()
