"""
Database initialization and schema management.

Creates the relational store tables on startup and drops them for tests.
"""

import logging
from pathlib import Path

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

from cube_binder.db.config import DatabaseConfig
from cube_binder.db.engine import get_engine
from cube_binder.db.models import Base

logger = logging.getLogger(__name__)


def ensure_database_directories(db_path: str | None = None) -> None:
    """Create the parent directory of the SQLite file if needed."""
    path = Path(db_path or DatabaseConfig.BINDER_DB_PATH)
    path.parent.mkdir(parents=True, exist_ok=True)
    logger.info(f"Ensured database directory exists: {path.parent}")


async def init_database(engine: AsyncEngine | None = None) -> None:
    """
    Create all tables and verify connectivity.

    Args:
        engine: Engine to initialise; defaults to the cached engine
    """
    if engine is None:
        ensure_database_directories()
        engine = get_engine()

    logger.info("Initializing relational store...")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        await conn.execute(text("SELECT 1"))

    logger.info(f"Relational store ready with {len(Base.metadata.tables)} tables")

