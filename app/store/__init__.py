"""
Cozy Connect — Record store package.

``build_store`` turns validated settings into a concrete backend.  The
application calls it once in the FastAPI lifespan and hands the instance to
every service that needs it.
"""

from __future__ import annotations

from app.config import Settings
from app.store.base import Record, RecordStore, Sort
from app.store.memory import InMemoryRecordStore

LAST_MODIFIED_FIELD = "Last Modified"


def build_store(settings: Settings) -> RecordStore:
    """Construct the backend selected by ``STORE_BACKEND``."""
    backend = settings.STORE_BACKEND

    if backend == "airtable":
        from app.store.airtable import AirtableRecordStore

        return AirtableRecordStore(
            settings.AIRTABLE_API_KEY,
            settings.AIRTABLE_BASE_ID,
            endpoint_url=settings.AIRTABLE_ENDPOINT_URL,
            timeout=settings.STORE_TIMEOUT_SECONDS,
            read_attempts=settings.STORE_READ_ATTEMPTS,
        )

    if backend == "sql":
        from app.database import build_engine
        from app.store.sql import SqlRecordStore

        engine = build_engine(settings.DATABASE_URL, echo=settings.LOG_LEVEL == "DEBUG")
        return SqlRecordStore(engine, last_modified_field=LAST_MODIFIED_FIELD)

    return InMemoryRecordStore(last_modified_field=LAST_MODIFIED_FIELD)


__all__ = [
    "LAST_MODIFIED_FIELD",
    "InMemoryRecordStore",
    "Record",
    "RecordStore",
    "Sort",
    "build_store",
]
