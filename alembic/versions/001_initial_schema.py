"""Initial schema: generic ``records`` table for the SQL record store.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ── records ─────────────────────────────────────────────────────
    # One row per profile / match / feedback record; ``fields`` holds the
    # column-name -> value mapping.
    op.create_table(
        "records",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column("table_id", sa.String(64), nullable=False),
        sa.Column(
            "fields",
            sa.JSON,
            nullable=False,
            comment="Flat field-name -> value mapping",
        ),
        sa.Column(
            "unique_key",
            sa.String(200),
            nullable=True,
            comment="Optional per-table uniqueness key (e.g. sorted match pair)",
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("table_id", "unique_key", name="uq_record_unique_key"),
    )
    op.create_index("ix_records_table_id", "records", ["table_id"])


def downgrade() -> None:
    op.drop_index("ix_records_table_id", table_name="records")
    op.drop_table("records")
