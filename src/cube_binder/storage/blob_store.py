"""
Blob store contract and a local filesystem implementation.

Keys are addressed by (key, dataset_id). Every call a binder makes goes
through ``with_timeout`` so a stalled store surfaces as a retryable
TransientStorageError rather than a hung request.
"""

import asyncio
import logging
import os
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Awaitable
from pathlib import Path
from typing import TypeVar

from ..shared.exceptions import NotFoundError, StorageError, TransientStorageError

logger = logging.getLogger(__name__)

T = TypeVar("T")

STREAM_CHUNK_SIZE = 64 * 1024


async def with_timeout(awaitable: Awaitable[T], seconds: float, operation: str) -> T:
    """
    Await ``awaitable`` with a deadline.

    Timeouts and interrupted I/O become TransientStorageError; NotFoundError and
    other StorageErrors propagate unchanged.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=seconds)
    except asyncio.TimeoutError as e:
        logger.warning(f"{operation} timed out after {seconds}s")
        raise TransientStorageError(
            f"{operation} timed out after {seconds}s", original_error=e
        ) from e
    except StorageError:
        raise
    except (ConnectionError, InterruptedError, BlockingIOError) as e:
        logger.warning(f"{operation} interrupted: {e}")
        raise TransientStorageError(f"{operation} interrupted", original_error=e) from e


class BlobStore(ABC):
    """Byte storage keyed by (key, dataset_id)."""

    @abstractmethod
    async def load_buffer(self, key: str, dataset_id: str) -> bytes: ...

    @abstractmethod
    async def save_buffer(self, key: str, dataset_id: str, data: bytes) -> None: ...

    @abstractmethod
    async def delete(self, key: str, dataset_id: str) -> None: ...

    @abstractmethod
    def load_stream(self, key: str, dataset_id: str) -> AsyncIterator[bytes]: ...


class LocalBlobStore(BlobStore):
    """Stores blobs as files under ``<root>/<dataset_id>/<key>``."""

    def __init__(self, root: str | Path):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str, dataset_id: str) -> Path:
        for part in (key, dataset_id):
            if not part or "/" in part or "\\" in part or part in (".", ".."):
                raise StorageError("Invalid blob key", key=key, dataset_id=dataset_id)
        return self.root / dataset_id / key

    async def load_buffer(self, key: str, dataset_id: str) -> bytes:
        path = self._path(key, dataset_id)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError as e:
            raise NotFoundError("Blob not found", key=key, dataset_id=dataset_id) from e
        except OSError as e:
            raise StorageError(
                "Failed to read blob", key=key, dataset_id=dataset_id, original_error=e
            ) from e

    async def save_buffer(self, key: str, dataset_id: str, data: bytes) -> None:
        path = self._path(key, dataset_id)

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp = path.with_name(f".{path.name}.tmp")
            tmp.write_bytes(data)
            os.replace(tmp, path)

        try:
            await asyncio.to_thread(_write)
        except OSError as e:
            raise StorageError(
                "Failed to write blob", key=key, dataset_id=dataset_id, original_error=e
            ) from e
        logger.debug(f"Saved {len(data)} bytes to {dataset_id}/{key}")

    async def delete(self, key: str, dataset_id: str) -> None:
        path = self._path(key, dataset_id)
        try:
            await asyncio.to_thread(path.unlink)
        except FileNotFoundError as e:
            raise NotFoundError("Blob not found", key=key, dataset_id=dataset_id) from e
        except OSError as e:
            raise StorageError(
                "Failed to delete blob", key=key, dataset_id=dataset_id, original_error=e
            ) from e
        logger.info(f"Deleted blob {dataset_id}/{key}")

    async def exists(self, key: str, dataset_id: str) -> bool:
        return await asyncio.to_thread(self._path(key, dataset_id).exists)

    async def load_stream(self, key: str, dataset_id: str) -> AsyncIterator[bytes]:
        path = self._path(key, dataset_id)
        try:
            handle = await asyncio.to_thread(path.open, "rb")
        except FileNotFoundError as e:
            raise NotFoundError("Blob not found", key=key, dataset_id=dataset_id) from e
        try:
            while True:
                chunk = await asyncio.to_thread(handle.read, STREAM_CHUNK_SIZE)
                if not chunk:
                    break
                yield chunk
        finally:
            handle.close()
