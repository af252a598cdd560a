"""
Startup and shutdown of a binder runtime.

Wires a BinderConfig into logging, the relational store, the blob store, the
taxonomy and a DimensionService, and tears them down again.

Example:
    >>> async with binder_runtime() as service:
    ...     outcome = await service.classify(dataset_id, request)
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

from .config.models import BinderConfig
from .config.settings import load_config_with_fallback
from .db.engine import configure_engine, dispose_engines
from .db.init import ensure_database_directories, init_database
from .db.session import reset_session_maker, session_maker
from .services.dimension_service import DimensionService
from .shared.logging_config import configure_structured_logging
from .storage.blob_store import LocalBlobStore
from .storage.taxonomy import DataFrameTaxonomyStore, TaxonomyStore

logger = logging.getLogger(__name__)


def load_taxonomy(config: BinderConfig) -> TaxonomyStore | None:
    """Taxonomy from ``paths.taxonomy_dir``, or None when none is configured."""
    if not config.paths.taxonomy_dir:
        logger.warning("No taxonomy directory configured; reference data bindings disabled")
        return None
    return DataFrameTaxonomyStore.from_directory(config.paths.taxonomy_dir)


@asynccontextmanager
async def binder_runtime(
    config: BinderConfig | None = None,
    taxonomy: TaxonomyStore | None = None,
) -> AsyncIterator[DimensionService]:
    """
    Start a DimensionService from configuration.

    Args:
        config: Explicit configuration; loaded with file/env fallback if None
        taxonomy: Taxonomy store; loaded from ``paths.taxonomy_dir`` if None
    """
    config = config or load_config_with_fallback()
    configure_structured_logging(
        level=config.logging.level, echo_sql=config.database.echo_sql
    )

    if config.database.url is None:
        ensure_database_directories()
    engine = configure_engine(url=config.database.url, echo=config.database.echo_sql)
    reset_session_maker()
    await init_database(engine)

    Path(config.paths.cube_root).mkdir(parents=True, exist_ok=True)
    service = DimensionService(
        session_maker(),
        LocalBlobStore(config.paths.blob_root),
        config,
        taxonomy or load_taxonomy(config),
    )
    logger.info(f"Binder runtime started (languages: {', '.join(config.languages.supported)})")

    try:
        yield service
    finally:
        await service.tracker.shutdown()
        await dispose_engines()
        reset_session_maker()
        logger.info("Binder runtime stopped")
