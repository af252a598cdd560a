"""
Unit tests for tracked cube rebuild tasks.

Tests verify status transitions, waiting on finished and failed tasks,
cancellation and the latest-task index per revision.
"""

import asyncio

import pytest

from cube_binder.services.cube_tasks import CubeBuildTracker, TaskStatus


class TestTaskStatus:
    """Test the task status model."""

    @pytest.mark.parametrize(
        "status,done",
        [
            ("pending", False),
            ("running", False),
            ("completed", True),
            ("failed", True),
            ("cancelled", True),
        ],
    )
    def test_done(self, status, done):
        """Test which statuses count as finished."""
        assert TaskStatus(status=status, revision_id="rev").done is done


class TestCubeBuildTracker:
    """Test scheduling and tracking rebuilds."""

    @pytest.mark.asyncio
    async def test_completed_task(self):
        """Test that a successful task records its result."""
        tracker = CubeBuildTracker()

        async def build():
            return "/cubes/rev-1.duckdb"

        task_id = tracker.schedule("rev-1", build(), description="Rebuild")
        assert task_id.startswith("cube_")
        assert tracker.get_status(task_id).status in ("pending", "running")

        assert await tracker.wait(task_id) == "/cubes/rev-1.duckdb"
        status = tracker.get_status(task_id)
        assert status.status == "completed"
        assert status.result == "/cubes/rev-1.duckdb"
        assert status.started_at is not None
        assert status.completed_at is not None
        assert status.description == "Rebuild"

    @pytest.mark.asyncio
    async def test_failed_task(self, caplog):
        """Test that a failure is kept in the status and re-raised by wait."""
        tracker = CubeBuildTracker()

        async def build():
            raise RuntimeError("disk full")

        task_id = tracker.schedule("rev-1", build())

        with pytest.raises(RuntimeError, match="disk full"):
            await tracker.wait(task_id)
        status = tracker.get_status(task_id)
        assert status.status == "failed"
        assert status.error == "disk full"
        assert "failed" in caplog.text

        # Waiting again on a finished task re-raises the stored error
        with pytest.raises(RuntimeError, match="disk full"):
            await tracker.wait(task_id)

    @pytest.mark.asyncio
    async def test_settle_does_not_raise(self):
        """Test that settle returns the failed status instead of raising."""
        tracker = CubeBuildTracker()

        async def build():
            raise ValueError("bad")

        task_id = tracker.schedule("rev-1", build())
        status = await tracker.settle(task_id)
        assert status.status == "failed"

    @pytest.mark.asyncio
    async def test_wait_unknown_task(self):
        """Test that waiting on an unknown id raises KeyError."""
        with pytest.raises(KeyError):
            await CubeBuildTracker().wait("cube_missing")

    @pytest.mark.asyncio
    async def test_cancel(self):
        """Test that a running task can be cancelled once."""
        tracker = CubeBuildTracker()
        started = asyncio.Event()

        async def build():
            started.set()
            await asyncio.sleep(60)

        task_id = tracker.schedule("rev-1", build())
        await started.wait()

        assert tracker.cancel(task_id) is True
        with pytest.raises(asyncio.CancelledError):
            await tracker.wait(task_id)
        assert tracker.get_status(task_id).status == "cancelled"
        assert tracker.cancel(task_id) is False

    @pytest.mark.asyncio
    async def test_latest_for_revision(self):
        """Test that the most recently scheduled task is tracked per revision."""
        tracker = CubeBuildTracker()

        async def build(value):
            return value

        first = tracker.schedule("rev-1", build(1))
        second = tracker.schedule("rev-1", build(2))
        other = tracker.schedule("rev-2", build(3))

        assert tracker.latest_for("rev-1") == second
        assert tracker.latest_for("rev-2") == other
        assert tracker.latest_for("rev-3") is None
        await asyncio.gather(*(tracker.wait(t) for t in (first, second, other)))

    @pytest.mark.asyncio
    async def test_shutdown_cancels_running(self):
        """Test that shutdown cancels every running task."""
        tracker = CubeBuildTracker()

        async def build():
            await asyncio.sleep(60)

        task_ids = [tracker.schedule("rev-1", build()) for _ in range(3)]
        await asyncio.sleep(0)
        await tracker.shutdown()

        assert all(tracker.get_status(t).status == "cancelled" for t in task_ids)
