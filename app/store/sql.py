"""
Cozy Connect — SQL record store.

Stores every table's records in one generic ``records`` table (see
``app.models.record``) with the field mapping held in a JSON column.
Conditions are compiled to SQLAlchemy clauses over JSON path lookups, so the
same backend runs on PostgreSQL (asyncpg) and SQLite (aiosqlite).

Unlike Airtable, this backend can enforce uniqueness: ``create(...,
unique_key=...)`` is backed by the ``uq_record_unique_key`` constraint and
raises ``DuplicateRecord`` on collision.
"""

from __future__ import annotations

from typing import Any, Sequence

import structlog
from sqlalchemy import Boolean, and_, false, func, not_, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from app.database import Base, build_session_factory
from app.errors import DuplicateRecord, StoreUnavailable
from app.models.record import StoreRecord
from app.store.base import Record, RecordStore, Sort, new_record_id
from app.store.query import (
    AllOf,
    AnyOf,
    Condition,
    FieldEquals,
    IsBlank,
    Not,
    RecordIdEquals,
)

logger = structlog.get_logger("cozy.store.sql")


def _field(name: str):
    return StoreRecord.fields[name]


def _known(clause):
    """Missing JSON keys compare as false rather than NULL."""
    return func.coalesce(clause, false(), type_=Boolean)


def compile_condition(condition: Condition):
    """Translate a condition tree into a SQLAlchemy boolean clause."""
    if isinstance(condition, FieldEquals):
        value = condition.value
        if value is None:
            return _field(condition.field).as_string().is_(None)
        if isinstance(value, bool):
            return _known(_field(condition.field).as_boolean() == value)
        if isinstance(value, (int, float)):
            return _known(_field(condition.field).as_float() == float(value))
        return _known(_field(condition.field).as_string() == str(value))
    if isinstance(condition, RecordIdEquals):
        return StoreRecord.id == condition.record_id
    if isinstance(condition, IsBlank):
        text = _field(condition.field).as_string()
        return or_(text.is_(None), text == "")
    if isinstance(condition, AnyOf):
        return or_(*(compile_condition(c) for c in condition.conditions))
    if isinstance(condition, AllOf):
        return and_(*(compile_condition(c) for c in condition.conditions))
    if isinstance(condition, Not):
        return not_(compile_condition(condition.condition))
    raise TypeError(f"Unsupported condition: {condition!r}")


def _to_record(row: StoreRecord) -> Record:
    return Record(
        id=row.id,
        fields=dict(row.fields or {}),
        created_time=row.created_at.isoformat() if row.created_at else None,
    )


class SqlRecordStore(RecordStore):
    backend_name = "sql"

    def __init__(
        self,
        engine: AsyncEngine,
        *,
        last_modified_field: str | None = None,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
    ) -> None:
        super().__init__(last_modified_field)
        self._engine = engine
        self._session_factory = session_factory or build_session_factory(engine)

    async def create_schema(self) -> None:
        """Create the ``records`` table if it does not exist."""
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("sql_schema_ready")

    # ── Public API ────────────────────────────────────────────────────────

    async def select(
        self,
        table: str,
        *,
        where: Condition | None = None,
        max_records: int | None = None,
        fields: Sequence[str] | None = None,
        sort: Sequence[Sort] | None = None,
    ) -> list[Record]:
        stmt = select(StoreRecord).where(StoreRecord.table_id == table)
        if where is not None:
            stmt = stmt.where(compile_condition(where))
        for spec in sort or []:
            column = _field(spec.field).as_string()
            stmt = stmt.order_by(column.desc() if spec.descending else column.asc())
        stmt = stmt.order_by(StoreRecord.created_at.asc())
        if max_records is not None:
            stmt = stmt.limit(max_records)

        try:
            async with self._session_factory() as session:
                rows = (await session.execute(stmt)).scalars().all()
        except SQLAlchemyError as exc:
            logger.error("sql_select_failed", table=table, error=str(exc))
            raise StoreUnavailable(f"Database query failed: {exc}") from exc

        return [self._project(_to_record(r), fields) for r in rows]

    async def find(self, table: str, record_id: str) -> Record | None:
        try:
            async with self._session_factory() as session:
                row = await session.get(StoreRecord, record_id)
        except SQLAlchemyError as exc:
            logger.error("sql_find_failed", table=table, error=str(exc))
            raise StoreUnavailable(f"Database query failed: {exc}") from exc
        if row is None or row.table_id != table:
            return None
        return _to_record(row)

    async def create(
        self,
        table: str,
        fields: dict[str, Any],
        *,
        unique_key: str | None = None,
    ) -> Record:
        row = StoreRecord(
            id=new_record_id(),
            table_id=table,
            fields=self._stamp(fields),
            unique_key=unique_key,
        )
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    session.add(row)
                await session.refresh(row)
        except IntegrityError as exc:
            if unique_key is not None:
                logger.info("duplicate_unique_key", table=table, unique_key=unique_key)
                raise DuplicateRecord(
                    f"Record with key {unique_key!r} already exists in {table}"
                ) from exc
            raise StoreUnavailable(f"Database insert failed: {exc}") from exc
        except SQLAlchemyError as exc:
            logger.error("sql_create_failed", table=table, error=str(exc))
            raise StoreUnavailable(f"Database insert failed: {exc}") from exc

        logger.info("sql_record_created", table=table, record_id=row.id)
        return _to_record(row)

    async def update(self, table: str, record_id: str, fields: dict[str, Any]) -> Record:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    row = await self._get_row(session, table, record_id)
                    # Reassign so the JSON column is flagged dirty.
                    row.fields = self._stamp({**(row.fields or {}), **fields})
                await session.refresh(row)
        except SQLAlchemyError as exc:
            logger.error("sql_update_failed", table=table, error=str(exc))
            raise StoreUnavailable(f"Database update failed: {exc}") from exc

        logger.info("sql_record_updated", table=table, record_id=record_id)
        return _to_record(row)

    async def delete(self, table: str, record_id: str) -> None:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    row = await self._get_row(session, table, record_id)
                    await session.delete(row)
        except SQLAlchemyError as exc:
            logger.error("sql_delete_failed", table=table, error=str(exc))
            raise StoreUnavailable(f"Database delete failed: {exc}") from exc

        logger.info("sql_record_deleted", table=table, record_id=record_id)

    async def aclose(self) -> None:
        await self._engine.dispose()

    # ── Private helpers ──────────────────────────────────────────────────

    @staticmethod
    async def _get_row(session: AsyncSession, table: str, record_id: str) -> StoreRecord:
        row = await session.get(StoreRecord, record_id)
        if row is None or row.table_id != table:
            raise StoreUnavailable(f"Record {record_id} not found in {table}")
        return row

