"""
Staging uploaded buffers into DuckDB.

DuckDB reads files, not byte buffers, so every buffer is written to a
temporary file first. ``stage_buffer`` and ``open_fact_table`` release the
file and the engine in ``finally`` blocks, including on cancellation.
"""

import logging
import os
import tempfile
from collections.abc import AsyncIterator, Iterator
from contextlib import asynccontextmanager, contextmanager
from pathlib import Path

from ..config.models import BinderConfig
from ..db.duckdb_engine import CubeEngine, quote_identifier
from ..db.models import DataTable
from ..storage.blob_store import BlobStore, with_timeout

logger = logging.getLogger(__name__)

FACT_TABLE = "fact_table"


@contextmanager
def stage_buffer(data: bytes, file_type: str, temp_dir: str | None = None) -> Iterator[Path]:
    """Write ``data`` to a temporary ``.<file_type>`` file for the duration of the block."""
    if temp_dir:
        Path(temp_dir).mkdir(parents=True, exist_ok=True)
    fd, name = tempfile.mkstemp(suffix=f".{file_type}", dir=temp_dir)
    path = Path(name)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
        yield path
    finally:
        try:
            path.unlink()
        except FileNotFoundError:
            pass


def load_buffer(
    engine: CubeEngine,
    table: str,
    data: bytes,
    file_type: str,
    temp_dir: str | None = None,
) -> None:
    """Load an in-memory file into ``table``."""
    with stage_buffer(data, file_type, temp_dir) as path:
        engine.create_table_from_file(table, path, file_type)


async def load_blob_table(
    engine: CubeEngine,
    blob_store: BlobStore,
    config: BinderConfig,
    dataset_id: str,
    key: str,
    file_type: str,
    table: str,
) -> None:
    """Fetch a blob (with the storage timeout) and load it into ``table``."""
    data = await with_timeout(
        blob_store.load_buffer(key, dataset_id),
        config.validation.storage_timeout_seconds,
        f"Loading {dataset_id}/{key}",
    )
    load_buffer(engine, table, data, file_type, config.paths.temp_dir)
    logger.debug(f"Loaded {dataset_id}/{key} into {table}")


@asynccontextmanager
async def open_fact_table(
    blob_store: BlobStore,
    config: BinderConfig,
    dataset_id: str,
    data_table: DataTable,
) -> AsyncIterator[CubeEngine]:
    """
    Scratch engine with the revision's fact table loaded as ``fact_table``.

    Example:
        >>> async with open_fact_table(store, config, ds.id, rev.data_table) as engine:
        ...     engine.query_value('SELECT COUNT(*) FROM fact_table')
    """
    engine = CubeEngine()
    try:
        await load_blob_table(
            engine,
            blob_store,
            config,
            dataset_id,
            data_table.filename,
            data_table.file_type,
            FACT_TABLE,
        )
        yield engine
    finally:
        engine.close()


def distinct_values(engine: CubeEngine, column: str, table: str = FACT_TABLE) -> list[str]:
    """Distinct non-null values of a column, as text."""
    rows = engine.query_all(
        f"SELECT DISTINCT CAST({quote_identifier(column)} AS VARCHAR) AS value "
        f"FROM {quote_identifier(table)} WHERE {quote_identifier(column)} IS NOT NULL "
        f"ORDER BY value"
    )
    return [row["value"] for row in rows]


def row_count(engine: CubeEngine, table: str = FACT_TABLE) -> int:
    return int(engine.query_value(f"SELECT COUNT(*) FROM {quote_identifier(table)}"))
