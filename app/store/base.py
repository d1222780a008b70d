"""
Cozy Connect — Record-store interface.

The application treats its backing store as a spreadsheet-style service:
named tables of records, each with an opaque identifier and a flat mapping
of field values.  Every backend implements ``RecordStore``; the gateway and
the match engine receive an instance through their constructors and never
reach for a module-level client.
"""

from __future__ import annotations

import secrets
import string
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Sequence

from app.store.query import Condition

_ID_ALPHABET = string.ascii_letters + string.digits


def new_record_id() -> str:
    """Generate an Airtable-shaped identifier (``rec`` + 14 alphanumerics)."""
    return "rec" + "".join(secrets.choice(_ID_ALPHABET) for _ in range(14))


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass
class Record:
    id: str
    fields: dict[str, Any] = field(default_factory=dict)
    created_time: str | None = None

    def get(self, name: str, default: Any = None) -> Any:
        return self.fields.get(name, default)


@dataclass(frozen=True)
class Sort:
    field: str
    direction: str = "asc"  # asc / desc

    @property
    def descending(self) -> bool:
        return self.direction.lower() == "desc"


class RecordStore(ABC):
    """Async record-store contract shared by all backends.

    Parameters
    ----------
    last_modified_field:
        Name of the field that carries a record's last-modified timestamp.
        Backends that do not maintain such a field natively stamp it on
        every create and update.
    """

    backend_name: str = "abstract"

    def __init__(self, last_modified_field: str | None = None) -> None:
        self.last_modified_field = last_modified_field

    @abstractmethod
    async def select(
        self,
        table: str,
        *,
        where: Condition | None = None,
        max_records: int | None = None,
        fields: Sequence[str] | None = None,
        sort: Sequence[Sort] | None = None,
    ) -> list[Record]:
        """Return every record in *table* matching *where*."""

    @abstractmethod
    async def find(self, table: str, record_id: str) -> Record | None:
        """Return one record by identifier, or ``None``."""

    @abstractmethod
    async def create(
        self,
        table: str,
        fields: dict[str, Any],
        *,
        unique_key: str | None = None,
    ) -> Record:
        """Create a record.

        When *unique_key* is given, backends that can enforce uniqueness
        raise ``DuplicateRecord`` if another record in *table* already holds
        the same key.
        """

    @abstractmethod
    async def update(self, table: str, record_id: str, fields: dict[str, Any]) -> Record:
        """Merge *fields* into an existing record and return it."""

    @abstractmethod
    async def delete(self, table: str, record_id: str) -> None:
        """Delete a record."""

    async def ping(self, table: str) -> None:
        """Cheap connectivity probe used by the deep health check."""
        await self.select(table, max_records=1)

    async def aclose(self) -> None:
        """Release network or database resources."""

    # ── Helpers for backends that stamp their own timestamps ──────────────

    def _stamp(self, fields: dict[str, Any]) -> dict[str, Any]:
        if self.last_modified_field:
            return {**fields, self.last_modified_field: utc_timestamp()}
        return dict(fields)

    @staticmethod
    def _project(record: Record, fields: Sequence[str] | None) -> Record:
        if not fields:
            return Record(id=record.id, fields=dict(record.fields), created_time=record.created_time)
        return Record(
            id=record.id,
            fields={k: v for k, v in record.fields.items() if k in fields},
            created_time=record.created_time,
        )

    @staticmethod
    def _sort_key(name: str):
        def key(record: Record) -> tuple[int, str]:
            value = record.fields.get(name)
            return (0, "") if value is None else (1, str(value))

        return key
