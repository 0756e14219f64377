"""Script to create the relational schema in PostgreSQL."""

import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from docdialogue.core.config import settings
from docdialogue.services.database import SCHEMA_PATH, DatabaseService


async def init_schema() -> None:
    """Apply docdialogue/db/schema.sql to the configured database."""
    settings.require("postgres_url")
    database = DatabaseService()
    try:
        await database.apply_schema()
        print(f"Applied schema from {SCHEMA_PATH}")
    finally:
        await database.disconnect()


if __name__ == "__main__":
    asyncio.run(init_schema())
