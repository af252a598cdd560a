"""
Cube assembly.

A cube is one DuckDB file per revision holding:

- fact_table: the uploaded fact table, loaded once
- one reference table per bound dimension (``<column>_<hash>_lookup``)
- note_codes and all_notes when the dataset has a note codes column
- filter_table: every (reference value, language) a consumer can filter on
- default_view_<lang>: the fact table with dimension descriptions per language
- metadata: revision id, build id, build timestamps and status

The file is built at a temporary path and moved over the previous cube only
once complete, so a failed build never leaves a half-built cube behind and the
previous cube stays readable throughout.
"""

import asyncio
import logging
import os
import uuid
from datetime import UTC, datetime
from pathlib import Path

from ..config.models import BinderConfig
from ..db.duckdb_engine import CubeEngine, quote_identifier, quote_literal
from ..db.models import Dataset, Dimension, Revision
from ..shared.exceptions import CubeAssemblyError, StorageError
from ..shared.i18n import language_of
from ..shared.logging_utils import get_structured_logger
from ..shared.metrics import metrics_collector
from ..shared.models import (
    JOINED_DIMENSION_TYPES,
    DimensionType,
    FactTableColumnType,
    NumberType,
    NumericExtractor,
)
from ..storage.blob_store import BlobStore
from ..storage.taxonomy import TaxonomyStore
from .fact_table import FACT_TABLE, load_blob_table
from .reference_tables import (
    ALL_NOTES_TABLE,
    NOTE_CODES_TABLE,
    load_dimension_reference,
    load_note_codes_reference,
)

logger = logging.getLogger(__name__)
structured_logger = get_structured_logger(__name__)

METADATA_TABLE = "metadata"
FILTER_TABLE = "filter_table"


def view_name(locale: str) -> str:
    return f"default_view_{language_of(locale)}"


def numeric_sql(expression: str, extractor: NumericExtractor) -> str:
    """Cast a fact column expression to the extractor's number format."""
    if extractor.number_type == NumberType.INTEGER:
        return f"TRY_CAST({expression} AS BIGINT)"
    return f"ROUND(TRY_CAST({expression} AS DOUBLE), {int(extractor.decimal_places or 0)})"


def note_cell_codes_sql(expression: str) -> str:
    """List of lower-case codes in a note codes cell."""
    return f"string_split(replace(lower(CAST({expression} AS VARCHAR)), ' ', ''), ',')"


class CubeAssembler:
    """Builds the cube file of a revision from its persisted bindings."""

    def __init__(
        self,
        blob_store: BlobStore,
        config: BinderConfig,
        taxonomy: TaxonomyStore | None = None,
    ):
        self.blob_store = blob_store
        self.config = config
        self.taxonomy = taxonomy
        self.cube_root = Path(config.paths.cube_root)

    def cube_path(self, revision_id: str) -> Path:
        return self.cube_root / f"{revision_id}.duckdb"

    async def build(self, dataset: Dataset, revision: Revision) -> Path:
        """
        Assemble the cube for ``revision`` and swap it into place.

        Returns:
            Path of the finished cube file

        Raises:
            StorageError: A fact or lookup table could not be read
            CubeAssemblyError: Anything else went wrong; no cube file changed
        """
        if revision.data_table is None:
            raise CubeAssemblyError("Revision has no fact table", revision_id=revision.id)

        self.cube_root.mkdir(parents=True, exist_ok=True)
        build_id = uuid.uuid4().hex
        final_path = self.cube_path(revision.id)
        temp_path = self.cube_root / f".{revision.id}.{build_id[:8]}.duckdb.tmp"

        started = metrics_collector.cube_build_started()
        structured_logger.info(
            "Cube build started",
            dataset_id=dataset.id,
            revision_id=revision.id,
            build_id=build_id,
        )

        engine = CubeEngine(temp_path)
        current_table = None
        try:
            self._create_metadata(engine, revision.id, build_id)

            current_table = FACT_TABLE
            await load_blob_table(
                engine,
                self.blob_store,
                self.config,
                dataset.id,
                revision.data_table.filename,
                revision.data_table.file_type,
                FACT_TABLE,
            )

            tables: dict[str, str] = {}
            for dimension in dataset.dimensions:
                if not dimension.is_bound or dimension.type not in JOINED_DIMENSION_TYPES:
                    continue
                current_table = dimension.fact_table_column
                table = await load_dimension_reference(
                    engine, dimension, self.blob_store, self.taxonomy, self.config
                )
                if table is not None:
                    tables[dimension.fact_table_column] = table

            current_table = ALL_NOTES_TABLE
            note_column = self._note_codes_column(dataset)
            if note_column is not None:
                if not engine.table_exists(NOTE_CODES_TABLE):
                    load_note_codes_reference(engine, self.config.languages.supported)
                self._create_all_notes(engine, note_column)

            current_table = FILTER_TABLE
            self._create_filter_table(engine, dataset, tables)

            current_table = None
            default_view = None
            for locale in self.config.languages.supported:
                sql = self.view_sql(dataset, locale, tables, note_column)
                engine.execute(
                    f"CREATE OR REPLACE VIEW {quote_identifier(view_name(locale))} AS {sql}"
                )
                default_view = default_view or sql

            self._set_metadata(engine, "default_view", default_view)
            self._set_metadata(engine, "build_finished", datetime.now(UTC).isoformat())
            self._set_metadata(engine, "build_status", "complete")
            engine.checkpoint()
            engine.close()
            os.replace(temp_path, final_path)
        except asyncio.CancelledError:
            self._discard(engine, temp_path)
            metrics_collector.cube_build_finished(started, "cancelled")
            structured_logger.warning(
                "Cube build cancelled", revision_id=revision.id, build_id=build_id
            )
            raise
        except StorageError:
            self._discard(engine, temp_path)
            metrics_collector.cube_build_finished(started, "failed")
            structured_logger.error(
                "Cube build failed reading storage", revision_id=revision.id, build_id=build_id
            )
            raise
        except Exception as e:
            self._discard(engine, temp_path)
            metrics_collector.cube_build_finished(started, "failed")
            structured_logger.error(
                "Cube build failed",
                exc_info=True,
                revision_id=revision.id,
                build_id=build_id,
                table=current_table,
            )
            if isinstance(e, CubeAssemblyError):
                raise
            raise CubeAssemblyError(
                "Failed to assemble cube",
                revision_id=revision.id,
                table_name=current_table,
                original_error=e,
            ) from e

        metrics_collector.cube_build_finished(started, "complete")
        structured_logger.info(
            "Cube build complete",
            dataset_id=dataset.id,
            revision_id=revision.id,
            build_id=build_id,
            tables=sorted(tables.values()),
        )
        return final_path

    # ------------------------------------------------------------------
    # Tables
    # ------------------------------------------------------------------

    def _create_metadata(self, engine: CubeEngine, revision_id: str, build_id: str) -> None:
        engine.execute(
            f"CREATE TABLE {METADATA_TABLE} (key VARCHAR PRIMARY KEY, value VARCHAR)"
        )
        for key, value in (
            ("revision_id", revision_id),
            ("build_id", build_id),
            ("build_start", datetime.now(UTC).isoformat()),
            ("build_status", "incomplete"),
        ):
            self._set_metadata(engine, key, value)

    def _set_metadata(self, engine: CubeEngine, key: str, value: str | None) -> None:
        engine.execute(
            f"INSERT OR REPLACE INTO {METADATA_TABLE} (key, value) VALUES (?, ?)", [key, value]
        )

    def _note_codes_column(self, dataset: Dataset) -> str | None:
        for column in dataset.fact_table_columns:
            if column.column_type == FactTableColumnType.NOTE_CODES:
                return column.column_name
        return None

    def _create_all_notes(self, engine: CubeEngine, note_column: str) -> None:
        """One row per distinct note codes cell and language, descriptions joined."""
        col = quote_identifier(note_column)
        engine.execute(
            f"CREATE OR REPLACE TABLE {ALL_NOTES_TABLE} AS "
            f"SELECT fc.cell AS note_cell, nc.language AS language, "
            f"string_agg(nc.description, ', ' ORDER BY nc.code) AS description "
            f"FROM (SELECT DISTINCT CAST({col} AS VARCHAR) AS cell FROM {FACT_TABLE} "
            f"WHERE {col} IS NOT NULL) fc "
            f"JOIN {NOTE_CODES_TABLE} nc "
            f"ON list_contains({note_cell_codes_sql('fc.cell')}, nc.code) "
            f"GROUP BY fc.cell, nc.language"
        )

    def _create_filter_table(
        self, engine: CubeEngine, dataset: Dataset, tables: dict[str, str]
    ) -> None:
        engine.execute(
            f"CREATE OR REPLACE TABLE {FILTER_TABLE} ("
            f"reference VARCHAR, language VARCHAR, fact_table_column VARCHAR, "
            f"dimension_name VARCHAR, description VARCHAR, hierarchy VARCHAR)"
        )
        languages = self.config.languages.supported
        for dimension in dataset.dimensions:
            if dimension.type == DimensionType.NOTE_CODES:
                continue
            column = dimension.fact_table_column
            col = quote_identifier(column)
            table = tables.get(column)
            if table is not None:
                join = quote_identifier(dimension.join_column)
                engine.execute(
                    f"INSERT INTO {FILTER_TABLE} "
                    f"SELECT DISTINCT CAST(t.{join} AS VARCHAR), t.language, ?, ?, "
                    f"CAST(t.description AS VARCHAR), CAST(t.hierarchy AS VARCHAR) "
                    f"FROM {quote_identifier(table)} t "
                    f"WHERE CAST(t.{join} AS VARCHAR) IN "
                    f"(SELECT CAST({col} AS VARCHAR) FROM {FACT_TABLE})",
                    [column, column],
                )
            else:
                engine.execute(
                    f"INSERT INTO {FILTER_TABLE} "
                    f"SELECT DISTINCT CAST(f.{col} AS VARCHAR), lang.language, ?, ?, "
                    f"CAST(f.{col} AS VARCHAR), CAST(NULL AS VARCHAR) "
                    f"FROM {FACT_TABLE} f "
                    f"CROSS JOIN (SELECT unnest(?::VARCHAR[]) AS language) lang "
                    f"WHERE f.{col} IS NOT NULL",
                    [column, column, languages],
                )

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def view_sql(
        self,
        dataset: Dataset,
        locale: str,
        tables: dict[str, str],
        note_column: str | None,
    ) -> str:
        """SELECT for one language's default view."""
        columns = [
            c
            for c in sorted(dataset.fact_table_columns, key=lambda c: c.column_index)
            if c.column_type not in (FactTableColumnType.IGNORE, FactTableColumnType.UNKNOWN)
        ]
        if not columns:
            return f"SELECT * FROM {FACT_TABLE}"

        dimensions: dict[str, Dimension] = {d.fact_table_column: d for d in dataset.dimensions}
        language = quote_literal(locale.lower())
        selects: list[str] = []
        joins: list[str] = []

        for index, column in enumerate(columns):
            name = column.column_name
            col = f"f.{quote_identifier(name)}"
            alias = f"t{index}"

            if name == note_column:
                joins.append(
                    f"LEFT JOIN {ALL_NOTES_TABLE} {alias} "
                    f"ON CAST({col} AS VARCHAR) = {alias}.note_cell "
                    f"AND {alias}.language = {language}"
                )
                selects.append(f"{alias}.description AS {quote_identifier(name)}")
                continue

            dimension = dimensions.get(name)
            if dimension is not None and name in tables:
                join = quote_identifier(dimension.join_column)
                joins.append(
                    f"LEFT JOIN {quote_identifier(tables[name])} {alias} "
                    f"ON CAST({col} AS VARCHAR) = CAST({alias}.{join} AS VARCHAR) "
                    f"AND {alias}.language = {language}"
                )
                selects.append(f"{alias}.description AS {quote_identifier(name)}")
            elif dimension is not None and isinstance(dimension.extractor, NumericExtractor):
                selects.append(f"{numeric_sql(col, dimension.extractor)} AS {quote_identifier(name)}")
            else:
                selects.append(f"{col} AS {quote_identifier(name)}")

        return f"SELECT {', '.join(selects)} FROM {FACT_TABLE} f " + " ".join(joins)

    def _discard(self, engine: CubeEngine, temp_path: Path) -> None:
        engine.close()
        for path in (temp_path, Path(f"{temp_path}.wal")):
            try:
                path.unlink()
            except FileNotFoundError:
                pass
