"""Per-revision write lock serialising binders and cube assembly."""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

logger = logging.getLogger(__name__)


class RevisionLockRegistry:
    """
    One asyncio.Lock per revision id.

    Writers (binders, classification, cube builds) hold the revision's lock
    for their whole run; readers never take it.

    Example:
        >>> locks = RevisionLockRegistry()
        >>> async with locks.acquire(revision.id):
        ...     await bind()
    """

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}

    def lock_for(self, revision_id: str) -> asyncio.Lock:
        lock = self._locks.get(revision_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[revision_id] = lock
        return lock

    def locked(self, revision_id: str) -> bool:
        lock = self._locks.get(revision_id)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def acquire(self, revision_id: str) -> AsyncIterator[None]:
        lock = self.lock_for(revision_id)
        if lock.locked():
            logger.debug(f"Waiting for revision lock {revision_id}")
        async with lock:
            yield

    def discard(self, revision_id: str) -> None:
        """Forget an idle revision's lock."""
        lock = self._locks.get(revision_id)
        if lock is not None and not lock.locked():
            del self._locks[revision_id]
