"""
Unit tests for the local blob store and the storage timeout wrapper.
"""

import asyncio

import pytest

from cube_binder.shared.exceptions import NotFoundError, StorageError, TransientStorageError
from cube_binder.storage.blob_store import LocalBlobStore, with_timeout


class TestLocalBlobStore:
    """Test save, load, stream and delete against a temporary directory."""

    @pytest.mark.asyncio
    async def test_save_and_load(self, blob_store):
        """Test that saved bytes are stored per dataset and read back."""
        await blob_store.save_buffer("file.csv", "dataset-1", b"a,b\n1,2\n")

        assert await blob_store.load_buffer("file.csv", "dataset-1") == b"a,b\n1,2\n"
        assert (blob_store.root / "dataset-1" / "file.csv").exists()
        assert await blob_store.exists("file.csv", "dataset-1")
        assert not await blob_store.exists("file.csv", "dataset-2")

    @pytest.mark.asyncio
    async def test_save_replaces(self, blob_store):
        """Test that saving an existing key replaces its bytes."""
        await blob_store.save_buffer("file.csv", "dataset-1", b"old")
        await blob_store.save_buffer("file.csv", "dataset-1", b"new")
        assert await blob_store.load_buffer("file.csv", "dataset-1") == b"new"

    @pytest.mark.asyncio
    async def test_load_missing(self, blob_store):
        """Test that a missing key is a NotFoundError."""
        with pytest.raises(NotFoundError, match="dataset-1/missing.csv"):
            await blob_store.load_buffer("missing.csv", "dataset-1")

    @pytest.mark.asyncio
    async def test_delete(self, blob_store):
        """Test that delete removes the blob and a second delete is NotFound."""
        await blob_store.save_buffer("file.csv", "dataset-1", b"x")
        await blob_store.delete("file.csv", "dataset-1")

        assert not await blob_store.exists("file.csv", "dataset-1")
        with pytest.raises(NotFoundError):
            await blob_store.delete("file.csv", "dataset-1")

    @pytest.mark.asyncio
    async def test_stream(self, blob_store):
        """Test that streaming yields the whole file in chunks."""
        data = b"x" * (200 * 1024)
        await blob_store.save_buffer("big.bin", "dataset-1", data)

        chunks = [chunk async for chunk in blob_store.load_stream("big.bin", "dataset-1")]

        assert b"".join(chunks) == data
        assert len(chunks) > 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("key", ["../escape.csv", "a/b.csv", "..", ""])
    async def test_rejects_path_keys(self, blob_store, key):
        """Test that keys cannot escape the dataset directory."""
        with pytest.raises(StorageError, match="Invalid blob key"):
            await blob_store.save_buffer(key, "dataset-1", b"x")

    def test_creates_root(self, tmp_path):
        """Test that the root directory is created on construction."""
        store = LocalBlobStore(tmp_path / "nested" / "blobs")
        assert store.root.is_dir()


class TestWithTimeout:
    """Test the storage timeout wrapper."""

    @pytest.mark.asyncio
    async def test_passes_result_through(self):
        """Test that a fast call returns its result."""

        async def fast():
            return 42

        assert await with_timeout(fast(), 1.0, "fast call") == 42

    @pytest.mark.asyncio
    async def test_timeout_is_transient(self):
        """Test that a stalled call becomes a retryable storage error."""

        async def slow():
            await asyncio.sleep(10)

        with pytest.raises(TransientStorageError, match="timed out") as exc_info:
            await with_timeout(slow(), 0.01, "slow call")
        assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    async def test_connection_error_is_transient(self):
        """Test that interrupted I/O is retryable."""

        async def broken():
            raise ConnectionResetError("reset")

        with pytest.raises(TransientStorageError, match="interrupted"):
            await with_timeout(broken(), 1.0, "broken call")

    @pytest.mark.asyncio
    async def test_not_found_propagates(self):
        """Test that permanent storage errors are not wrapped."""

        async def missing():
            raise NotFoundError("gone")

        with pytest.raises(NotFoundError) as exc_info:
            await with_timeout(missing(), 1.0, "missing call")
        assert exc_info.value.retryable is False
