"""
Database engine creation and management.

Provides the async SQLAlchemy engine for the relational store with SQLite
pragma enforcement via connection event listeners.
"""

import logging

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool

from cube_binder.db.config import DatabaseConfig

logger = logging.getLogger(__name__)

# Module-level engine cache
_binder_engine: AsyncEngine | None = None


def create_engine(
    db_path: str | None = None,
    pragmas: dict[str, str | int] | None = None,
    echo: bool = False,
    url: str | None = None,
) -> AsyncEngine:
    """
    Create an async SQLAlchemy engine for the relational store.

    Args:
        db_path: Path to the SQLite database file, or ":memory:"
        pragmas: PRAGMA settings applied on each connection.
                If None, uses DatabaseConfig.SQLITE_PRAGMAS
        echo: If True, log all SQL statements
        url: Full async URL; overrides db_path when given

    Returns:
        Configured AsyncEngine instance
    """
    if pragmas is None:
        pragmas = DatabaseConfig.SQLITE_PRAGMAS

    db_url = url or DatabaseConfig.get_binder_db_url(db_path)
    is_sqlite = db_url.startswith("sqlite")

    if is_sqlite:
        # StaticPool keeps the single SQLite connection (and an in-memory
        # database) alive for the life of the engine
        engine = create_async_engine(db_url, poolclass=StaticPool, echo=echo)
    else:
        engine = create_async_engine(db_url, echo=echo, pool_pre_ping=True)

    if is_sqlite:

        @event.listens_for(engine.sync_engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            """Set SQLite PRAGMAs on each new connection."""
            cursor = dbapi_connection.cursor()
            try:
                for pragma, value in pragmas.items():
                    cursor.execute(f"PRAGMA {pragma}={value}")
                logger.debug(f"Applied {len(pragmas)} PRAGMAs to connection for {db_url}")
            except Exception as e:
                logger.error(f"Failed to apply PRAGMAs to {db_url}: {e}")
                raise
            finally:
                cursor.close()

    logger.info(f"Created async engine for database: {db_url}")
    return engine


def configure_engine(url: str | None = None, echo: bool = False) -> AsyncEngine:
    """Replace the cached engine with one built from explicit settings."""
    global _binder_engine
    _binder_engine = create_engine(url=url, echo=echo)
    return _binder_engine


def get_engine() -> AsyncEngine:
    """
    Get or create the relational store engine (singleton).

    The engine is created lazily from DatabaseConfig and reused afterwards.
    """
    global _binder_engine

    if _binder_engine is None:
        _binder_engine = create_engine(echo=DatabaseConfig.ECHO_SQL)
        logger.info("Initialized relational store engine")

    return _binder_engine


async def dispose_engines() -> None:
    """Dispose of the cached engine and close its connections."""
    global _binder_engine

    if _binder_engine is not None:
        await _binder_engine.dispose()
        logger.info("Disposed relational store engine")
        _binder_engine = None
