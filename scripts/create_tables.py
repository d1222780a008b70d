"""Create the ``records`` table used by the SQL record store.

Convenience for local development with ``STORE_BACKEND=sql``; deployed
databases are migrated with Alembic (``alembic/versions``).

Usage:
    DATABASE_URL=sqlite+aiosqlite:///./cozy_connect.db python scripts/create_tables.py
"""
import argparse
import asyncio
import sys
sys.path.insert(0, ".")

from app.config import get_settings
from app.database import build_engine
from app.store.sql import SqlRecordStore


async def create_tables(database_url: str) -> None:
    store = SqlRecordStore(build_engine(database_url))
    try:
        await store.create_schema()
    finally:
        await store.aclose()
    print(f"Schema ready at {database_url}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Create the SQL record-store schema")
    parser.add_argument(
        "--database-url",
        default=None,
        help="Override DATABASE_URL from the environment",
    )
    args = parser.parse_args()
    asyncio.run(create_tables(args.database_url or get_settings().DATABASE_URL))


if __name__ == "__main__":
    main()
