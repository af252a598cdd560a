"""
Database session management and context managers.

Provides the async session factory and context managers for automatic
transaction handling against the relational store.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from cube_binder.db.engine import get_engine

logger = logging.getLogger(__name__)

# Module-level session maker cache
_session_maker: async_sessionmaker[AsyncSession] | None = None


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """
    Build a session factory bound to ``engine``.

    Objects stay loaded after commit; services keep using the dimension they
    just installed without another round trip.
    """
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        autoflush=True,
        expire_on_commit=False,
    )


def session_maker() -> async_sessionmaker[AsyncSession]:
    """Get or create the session maker for the cached engine."""
    global _session_maker

    if _session_maker is None:
        _session_maker = create_session_maker(get_engine())
        logger.debug("Created relational store session maker")

    return _session_maker


def reset_session_maker() -> None:
    """Forget the cached session maker (after the engine is replaced)."""
    global _session_maker
    _session_maker = None


@asynccontextmanager
async def get_session(
    factory: async_sessionmaker[AsyncSession] | None = None,
) -> AsyncIterator[AsyncSession]:
    """
    Context manager for sessions with automatic transaction handling.

    - Commits on successful completion
    - Rolls back on exception and re-raises
    - Always closes the session

    Example:
        >>> async with get_session() as session:
        ...     session.add(Dataset(title="Population"))
    """
    SessionMaker = factory or session_maker()
    async with SessionMaker() as session:
        try:
            yield session
            await session.commit()
            logger.debug("Session committed successfully")
        except Exception as e:
            await session.rollback()
            logger.error(f"Session rolled back due to error: {e}")
            raise
        finally:
            await session.close()


class SessionContext:
    """
    Explicit transaction context for callers that need to commit at a
    specific point (e.g. before deleting blobs that the commit orphaned).

    Example:
        >>> ctx = SessionContext()
        >>> session = await ctx.begin()
        >>> try:
        ...     session.add(dimension)
        ...     await ctx.commit()
        ... except Exception:
        ...     await ctx.rollback()
        ... finally:
        ...     await ctx.close()
    """

    def __init__(self, factory: async_sessionmaker[AsyncSession] | None = None):
        self._session_maker = factory or session_maker()
        self.session: AsyncSession | None = None

    async def begin(self) -> AsyncSession:
        if self.session is not None:
            raise RuntimeError("Session already active")

        self.session = self._session_maker()
        return self.session

    async def commit(self) -> None:
        if self.session is None:
            raise RuntimeError("No active session")

        await self.session.commit()
        logger.debug("Session committed")

    async def rollback(self) -> None:
        if self.session is None:
            raise RuntimeError("No active session")

        await self.session.rollback()
        logger.debug("Session rolled back")

    async def close(self) -> None:
        if self.session is not None:
            await self.session.close()
            self.session = None
            logger.debug("Session closed")

    async def __aenter__(self) -> AsyncSession:
        return await self.begin()

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if exc_type is not None:
            await self.rollback()
        else:
            await self.commit()
        await self.close()
