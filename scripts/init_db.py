"""Create the booking tables directly from the table metadata.

Meant for local SQLite runs and throwaway databases; deployed databases are
managed with ``scripts/migrate.py``.
"""

import asyncio

from app.database import engine
from app.models import metadata


async def init_db() -> None:
    """Initialize the database by creating all tables."""
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)

    await engine.dispose()
    print(f"✓ Database initialized with tables: {', '.join(sorted(metadata.tables))}")


if __name__ == "__main__":
    asyncio.run(init_db())
