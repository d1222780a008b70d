"""
Cozy Connect — Feedback intake.

Feedback is write-only from the API: each submission becomes one row in the
feedback table with the submission date formatted ``MM/DD/YYYY``.
"""

from __future__ import annotations

from datetime import date

import structlog

from app.schemas.feedback import FeedbackCreate
from app.store.base import RecordStore

logger = structlog.get_logger("cozy.feedback_service")


class FeedbackService:
    def __init__(self, store: RecordStore, table_id: str) -> None:
        self._store = store
        self._table = table_id

    async def submit(self, payload: FeedbackCreate, today: date | None = None) -> str:
        fields = {
            "Name": payload.name or "",
            "Email": payload.email or "",
            "Feedback": payload.feedback,
            "Rating": payload.rating,
            "Date": (today or date.today()).strftime("%m/%d/%Y"),
        }
        record = await self._store.create(self._table, fields)
        logger.info("feedback_submitted", record_id=record.id, rating=payload.rating)
        return record.id
