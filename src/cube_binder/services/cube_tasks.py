"""
Tracked cube rebuild tasks.

Every rebuild scheduled after a binding change is an asyncio task with a
TaskStatus the caller can poll (``get_status``) or await (``wait``). A failed
rebuild is logged and kept in its status; it never disappears silently.
"""

import asyncio
import logging
import uuid
from collections.abc import Coroutine
from datetime import UTC, datetime
from typing import Any

from cachetools import TTLCache
from pydantic import BaseModel

logger = logging.getLogger(__name__)

TASK_STATUS_TTL_SECONDS = 24 * 3600
TASK_STATUS_MAX_ENTRIES = 10000


class TaskStatus(BaseModel):
    """Status of a cube rebuild task."""

    status: str  # "pending", "running", "completed", "failed", "cancelled"
    revision_id: str
    message: str = ""
    started_at: datetime | None = None
    completed_at: datetime | None = None
    description: str = ""
    error: str | None = None
    result: Any = None

    @property
    def done(self) -> bool:
        return self.status in ("completed", "failed", "cancelled")


class CubeBuildTracker:
    """Schedules cube rebuilds and records their outcome."""

    def __init__(self, ttl_seconds: int = TASK_STATUS_TTL_SECONDS):
        self._tasks: dict[str, asyncio.Task] = {}
        self._status: TTLCache = TTLCache(maxsize=TASK_STATUS_MAX_ENTRIES, ttl=ttl_seconds)
        self._errors: TTLCache = TTLCache(maxsize=TASK_STATUS_MAX_ENTRIES, ttl=ttl_seconds)
        self._latest: dict[str, str] = {}

    def schedule(
        self, revision_id: str, coro: Coroutine[Any, Any, Any], description: str = ""
    ) -> str:
        """Start ``coro`` as a tracked task and return its id."""
        task_id = f"cube_{uuid.uuid4().hex[:12]}"
        self._status[task_id] = TaskStatus(
            status="pending",
            revision_id=revision_id,
            description=description,
            message="Task scheduled",
        )

        async def run() -> Any:
            self._update(task_id, status="running", started_at=datetime.now(UTC))
            return await coro

        task = asyncio.create_task(run(), name=task_id)
        self._tasks[task_id] = task
        self._latest[revision_id] = task_id

        def task_done_callback(future: asyncio.Task) -> None:
            self._tasks.pop(task_id, None)
            if future.cancelled():
                coro.close()
                self._update(
                    task_id,
                    status="cancelled",
                    completed_at=datetime.now(UTC),
                    message="Task was cancelled",
                )
                return
            error = future.exception()
            if error is not None:
                logger.error(f"Cube rebuild {task_id} for revision {revision_id} failed: {error}")
                self._errors[task_id] = error
                self._update(
                    task_id,
                    status="failed",
                    completed_at=datetime.now(UTC),
                    message=f"Task failed: {error}",
                    error=str(error),
                )
                return
            self._update(
                task_id,
                status="completed",
                completed_at=datetime.now(UTC),
                message="Task completed successfully",
                result=future.result(),
            )

        task.add_done_callback(task_done_callback)
        logger.info(f"Scheduled cube rebuild {task_id} for revision {revision_id}")
        return task_id

    def _update(self, task_id: str, **changes: Any) -> None:
        current = self._status.get(task_id)
        if current is None:
            return
        self._status[task_id] = current.model_copy(update=changes)

    def get_status(self, task_id: str) -> TaskStatus | None:
        return self._status.get(task_id)

    def latest_for(self, revision_id: str) -> str | None:
        """Id of the most recently scheduled rebuild of a revision."""
        return self._latest.get(revision_id)

    async def wait(self, task_id: str) -> Any:
        """
        Wait for a task to finish and return its result.

        Re-raises the task's exception if it failed, and CancelledError if it
        was cancelled. Returns immediately for a task that already finished.
        """
        task = self._tasks.get(task_id)
        if task is not None:
            return await asyncio.shield(task)

        status = self._status.get(task_id)
        if status is None:
            raise KeyError(f"Unknown task {task_id}")
        if status.status == "failed":
            error = self._errors.get(task_id)
            raise error if error is not None else RuntimeError(status.error)
        if status.status == "cancelled":
            raise asyncio.CancelledError(task_id)
        return status.result

    async def settle(self, task_id: str) -> TaskStatus | None:
        """Wait for a task to finish without raising its error; return its status."""
        task = self._tasks.get(task_id)
        if task is not None:
            await asyncio.wait([task])
        return self._status.get(task_id)

    def cancel(self, task_id: str) -> bool:
        """Cancel a running task; False if it is unknown or already finished."""
        task = self._tasks.get(task_id)
        if task is None or task.done():
            return False
        task.cancel()
        self._update(
            task_id,
            status="cancelled",
            completed_at=datetime.now(UTC),
            message="Task was cancelled",
        )
        return True

    async def shutdown(self) -> None:
        """Cancel every running task and wait for them to finish."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
