"""
Loading bound reference tables into an engine.

The binders, the cube assembler and the preview all materialise a dimension's
reference table the same way, from the persisted extractor alone. Every
loader assumes the fact table is already loaded as ``fact_table``.
"""

import logging

import pandas as pd

from ..config.models import BinderConfig
from ..db.duckdb_engine import CubeEngine, quote_identifier
from ..db.models import Dimension
from ..generators.date_periods import generate_reference_items, reference_frame
from ..generators.lookup_tables import normalise_lookup_sql, reference_table_name
from ..generators.note_codes import note_codes_frame
from ..shared.exceptions import CubeBinderException
from ..shared.models import (
    DateExtractor,
    DimensionType,
    LookupTableExtractor,
    ReferenceDataExtractor,
)
from ..storage.blob_store import BlobStore, with_timeout
from ..storage.taxonomy import TaxonomyStore
from .fact_table import distinct_values, load_blob_table

logger = logging.getLogger(__name__)

NOTE_CODES_TABLE = "note_codes"
ALL_NOTES_TABLE = "all_notes"
REFERENCE_DATA_JOIN_COLUMN = "item_id"
DATE_JOIN_COLUMN = "date_code"

REFERENCE_DATA_COLUMNS = [
    "item_id",
    "language",
    "description",
    "category_key",
    "sort_order",
    "hierarchy",
]


def table_for(dimension: Dimension) -> str:
    """Name of the reference table a bound dimension joins to."""
    if dimension.type == DimensionType.NOTE_CODES:
        return NOTE_CODES_TABLE
    return reference_table_name(dimension.fact_table_column)


def load_date_reference(
    engine: CubeEngine,
    table: str,
    fact_column: str,
    extractor: DateExtractor,
    languages: list[str],
) -> int:
    """Generate the calendar for the column's values and load it; returns row count."""
    items = generate_reference_items(extractor, distinct_values(engine, fact_column), languages)
    return engine.create_table_from_frame(table, reference_frame(items))


def load_note_codes_reference(engine: CubeEngine, languages: list[str]) -> int:
    return engine.create_table_from_frame(NOTE_CODES_TABLE, note_codes_frame(languages))


def load_lookup_reference(
    engine: CubeEngine,
    source_table: str,
    table: str,
    extractor: LookupTableExtractor,
    languages: list[str],
) -> None:
    """Normalise an already loaded lookup upload into ``table``."""
    engine.execute(normalise_lookup_sql(source_table, table, extractor, languages))


def reference_data_frame(items: pd.DataFrame, languages: list[str]) -> pd.DataFrame:
    """Latest version of each taxonomy item, one row per supported language."""
    frame = items[items["language"].isin([lang.lower() for lang in languages])]
    frame = frame.sort_values("version_no").drop_duplicates(
        ["item_id", "language"], keep="last"
    )
    frame = frame[REFERENCE_DATA_COLUMNS].reset_index(drop=True)
    return frame.astype({"item_id": "string", "hierarchy": "string"})


async def load_reference_data_reference(
    engine: CubeEngine,
    table: str,
    taxonomy: TaxonomyStore,
    extractor: ReferenceDataExtractor,
    config: BinderConfig,
) -> int:
    items = await with_timeout(
        taxonomy.items_for_categories(extractor.categories),
        config.validation.taxonomy_timeout_seconds,
        "Loading taxonomy items",
    )
    return engine.create_table_from_frame(
        table, reference_data_frame(items, config.languages.supported)
    )


async def load_dimension_reference(
    engine: CubeEngine,
    dimension: Dimension,
    blob_store: BlobStore,
    taxonomy: TaxonomyStore | None,
    config: BinderConfig,
) -> str | None:
    """
    Materialise the reference table of a bound dimension.

    Returns the table name, or None for dimensions without a reference table
    (raw, text and numeric).
    """
    extractor = dimension.extractor
    languages = config.languages.supported
    table = table_for(dimension)

    if isinstance(extractor, DateExtractor):
        load_date_reference(engine, table, dimension.fact_table_column, extractor, languages)
    elif isinstance(extractor, LookupTableExtractor):
        lookup = dimension.lookup_table
        if lookup is None:
            raise CubeBinderException(
                f"Dimension {dimension.id} is bound to a lookup table that no longer exists"
            )
        source = f"{table}_source"
        await load_blob_table(
            engine,
            blob_store,
            config,
            dimension.dataset_id,
            lookup.filename,
            lookup.file_type,
            source,
        )
        try:
            load_lookup_reference(engine, source, table, extractor, languages)
        finally:
            engine.drop_table(source)
    elif isinstance(extractor, ReferenceDataExtractor):
        if taxonomy is None:
            raise CubeBinderException("No taxonomy store configured for reference data")
        await load_reference_data_reference(engine, table, taxonomy, extractor, config)
    elif dimension.type == DimensionType.NOTE_CODES:
        load_note_codes_reference(engine, languages)
    else:
        return None

    logger.debug(f"Loaded reference table {table} for {dimension.fact_table_column}")
    return table


def join_key_sql(column: str, alias: str | None = None) -> str:
    """Text form of a join key; fact and reference sides compare as VARCHAR."""
    ref = quote_identifier(column) if alias is None else f"{alias}.{quote_identifier(column)}"
    return f"CAST({ref} AS VARCHAR)"

