"""Registering an uploaded fact table on a dataset's draft revision."""

import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from ..config.models import BinderConfig
from ..db.duckdb_engine import FILE_TYPES, CubeEngine, file_type_from_filename
from ..db.models import DataTable, DataTableDescription
from ..db.repositories import DatasetRepository
from ..shared.exceptions import StorageError, UnsupportedFileTypeError
from ..storage.blob_store import BlobStore, with_timeout
from .fact_table import FACT_TABLE, load_buffer

logger = logging.getLogger(__name__)


async def register_data_table(
    session: AsyncSession,
    blob_store: BlobStore,
    config: BinderConfig,
    dataset_id: str,
    filename: str,
    data: bytes,
) -> DataTable:
    """
    Store an uploaded fact table and record its detected columns.

    The buffer is loaded into a scratch engine first, so an unreadable file is
    rejected before anything is written. Any previous data table of the draft
    revision is replaced; its stored bytes are left in place.

    Raises:
        UnsupportedFileTypeError: The filename has no supported extension
        StorageError: The buffer could not be saved
    """
    file_type = file_type_from_filename(filename)
    if file_type is None:
        raise UnsupportedFileTypeError(filename, list(FILE_TYPES))

    with CubeEngine() as engine:
        load_buffer(engine, FACT_TABLE, data, file_type, config.paths.temp_dir)
        detected = engine.columns(FACT_TABLE)

    revision = await DatasetRepository(session).draft_revision(dataset_id)
    key = f"{uuid.uuid4()}.{file_type}"
    await with_timeout(
        blob_store.save_buffer(key, dataset_id, data),
        config.validation.storage_timeout_seconds,
        f"Saving {dataset_id}/{key}",
    )

    data_table = DataTable(
        filename=key,
        original_filename=filename,
        file_type=file_type,
        descriptions=[
            DataTableDescription(column_name=name, column_index=index, column_datatype=dtype)
            for index, (name, dtype) in enumerate(detected)
        ],
    )
    previous = revision.data_table
    revision.data_table = data_table
    try:
        await session.flush()
    except Exception:
        try:
            await blob_store.delete(key, dataset_id)
        except StorageError as e:
            logger.warning(f"Could not remove unregistered blob {dataset_id}/{key}: {e}")
        raise

    if previous is not None:
        logger.info(f"Replaced data table {previous.filename} on revision {revision.id}")
    logger.info(
        f"Registered {filename} as {dataset_id}/{key} with {len(detected)} columns"
    )
    return data_table
