"""
Cozy Connect — Generic spreadsheet-style record model (SQL backend).
"""

from datetime import datetime

from sqlalchemy import JSON, DateTime, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class StoreRecord(Base):
    __tablename__ = "records"
    __table_args__ = (
        UniqueConstraint("table_id", "unique_key", name="uq_record_unique_key"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    table_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    fields: Mapped[dict] = mapped_column(
        JSON, nullable=False, default=dict, comment="Flat field-name -> value mapping"
    )
    unique_key: Mapped[str | None] = mapped_column(
        String(200), nullable=True, comment="Optional per-table uniqueness key (e.g. sorted match pair)"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), onupdate=func.now(), nullable=True
    )

    def __repr__(self) -> str:
        return f"<StoreRecord {self.table_id}/{self.id}>"
