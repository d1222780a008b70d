"""
Cozy Connect — In-memory record store.

Process-local backend for local development (``STORE_BACKEND=memory``) and
for the test-suite.  Conditions are evaluated directly with
``app.store.query.evaluate``; ``unique_key`` is honoured so the match
engine's duplicate-swipe handling can be exercised without a database.
"""

from __future__ import annotations

from typing import Any, Sequence

import structlog

from app.errors import DuplicateRecord, StoreUnavailable
from app.store.base import Record, RecordStore, Sort, new_record_id, utc_timestamp
from app.store.query import Condition, evaluate

logger = structlog.get_logger("cozy.store.memory")


class InMemoryRecordStore(RecordStore):
    backend_name = "memory"

    def __init__(self, last_modified_field: str | None = None) -> None:
        super().__init__(last_modified_field)
        # table -> record id -> Record (insertion-ordered)
        self._tables: dict[str, dict[str, Record]] = {}
        # (table, unique_key) -> record id
        self._unique: dict[tuple[str, str], str] = {}

    def _table(self, table: str) -> dict[str, Record]:
        return self._tables.setdefault(table, {})

    async def select(
        self,
        table: str,
        *,
        where: Condition | None = None,
        max_records: int | None = None,
        fields: Sequence[str] | None = None,
        sort: Sequence[Sort] | None = None,
    ) -> list[Record]:
        rows = [
            r for r in self._table(table).values()
            if where is None or evaluate(where, r.id, r.fields)
        ]
        for spec in reversed(sort or []):
            rows.sort(key=self._sort_key(spec.field), reverse=spec.descending)
        if max_records is not None:
            rows = rows[:max_records]
        return [self._project(r, fields) for r in rows]

    async def find(self, table: str, record_id: str) -> Record | None:
        record = self._table(table).get(record_id)
        return self._project(record, None) if record is not None else None

    async def create(
        self,
        table: str,
        fields: dict[str, Any],
        *,
        unique_key: str | None = None,
    ) -> Record:
        if unique_key is not None and (table, unique_key) in self._unique:
            logger.info("duplicate_unique_key", table=table, unique_key=unique_key)
            raise DuplicateRecord(f"Record with key {unique_key!r} already exists in {table}")

        record = Record(id=new_record_id(), fields=self._stamp(fields), created_time=utc_timestamp())
        self._table(table)[record.id] = record
        if unique_key is not None:
            self._unique[(table, unique_key)] = record.id
        return self._project(record, None)

    async def update(self, table: str, record_id: str, fields: dict[str, Any]) -> Record:
        record = self._table(table).get(record_id)
        if record is None:
            raise StoreUnavailable(f"Record {record_id} not found in {table}")
        record.fields = self._stamp({**record.fields, **fields})
        return self._project(record, None)

    async def delete(self, table: str, record_id: str) -> None:
        if self._table(table).pop(record_id, None) is None:
            raise StoreUnavailable(f"Record {record_id} not found in {table}")
        for key, rid in list(self._unique.items()):
            if rid == record_id:
                del self._unique[key]

    def seed(self, table: str, record_id: str, fields: dict[str, Any]) -> Record:
        """Insert a record under a caller-chosen id (fixtures, local demos)."""
        record = Record(id=record_id, fields=self._stamp(fields), created_time=utc_timestamp())
        self._table(table)[record_id] = record
        return self._project(record, None)

    def count(self, table: str) -> int:
        return len(self._table(table))
