"""
Read-side previews of dimensions and the fact table.

The projector only runs SELECTs against an engine that already holds the fact
table and, for bound dimensions, their reference tables (an assembled cube
opened read-only, or a scratch engine). It never changes either.
"""

import logging
import math

from ..config.models import BinderConfig
from ..db.duckdb_engine import CubeEngine, quote_identifier
from ..db.models import Dataset, Dimension
from ..shared.i18n import language_of
from ..shared.models import (
    ColumnHeader,
    DateExtractor,
    DimensionType,
    FactTableColumnType,
    LookupTableExtractor,
    NumericExtractor,
    PageInfo,
    PreviewTable,
    ReferenceDataExtractor,
)
from .cube_assembler import note_cell_codes_sql, numeric_sql
from .fact_table import FACT_TABLE, row_count
from .reference_tables import NOTE_CODES_TABLE, table_for

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 100
REFERENCE_SOURCE = "reference"


def resolve_language(language: str | None, config: BinderConfig) -> str:
    """
    Map a requested locale onto a supported one.

    An exact match wins, then a supported locale with the same language part;
    anything else falls back to the default language.
    """
    supported = config.languages.supported
    if not language:
        return config.languages.default
    requested = language.strip().lower()
    if requested in supported:
        return requested
    for locale in supported:
        if language_of(locale) == language_of(requested):
            return locale
    logger.debug(f"Unsupported preview language {language}, using {config.languages.default}")
    return config.languages.default


class PreviewProjector:
    """
    Capped samples of a dimension's values, or pages of the fact table.

    Example:
        >>> with CubeEngine(cube_path, read_only=True) as engine:
        ...     preview = PreviewProjector(engine, config).dimension_preview(ds, dim, "cy")
    """

    def __init__(self, engine: CubeEngine, config: BinderConfig):
        self.engine = engine
        self.config = config

    @property
    def sample_size(self) -> int:
        return self.config.validation.preview_sample_size

    def dimension_preview(
        self, dataset: Dataset, dimension: Dimension, language: str | None = None
    ) -> PreviewTable:
        """Up to ``preview_sample_size`` rows describing the dimension's values."""
        locale = resolve_language(language, self.config)
        column = dataset.column(dimension.fact_table_column)
        role = column.column_type if column is not None else FactTableColumnType.DIMENSION
        index = column.column_index if column is not None else 0
        fact_header = ColumnHeader(index=index, name=dimension.fact_table_column, source_type=role)

        extractor = dimension.extractor
        reference = table_for(dimension)
        if dimension.is_bound and not self.engine.table_exists(reference):
            reference = None

        if isinstance(extractor, DateExtractor) and reference:
            names, rows = self._date_rows(dimension, reference, locale)
        elif isinstance(extractor, LookupTableExtractor) and reference:
            names, rows = self._lookup_rows(dimension, reference, locale)
        elif isinstance(extractor, ReferenceDataExtractor) and reference:
            names, rows = self._reference_data_rows(dimension, reference, locale)
        elif dimension.type == DimensionType.NOTE_CODES and reference:
            names, rows = self._note_code_rows(dimension, locale)
        elif isinstance(extractor, NumericExtractor):
            names, rows = self._numeric_rows(dimension, extractor)
        else:
            names, rows = self._distinct_rows(dimension)

        headers = [fact_header] + [
            ColumnHeader(index=index + offset, name=name, source_type=REFERENCE_SOURCE)
            for offset, name in enumerate(names[1:], start=1)
        ]
        return PreviewTable(
            dataset_id=dataset.id,
            headers=headers,
            data=rows,
            total_distinct=self._total_distinct(dimension.fact_table_column),
        )

    def fact_table_preview(
        self, dataset: Dataset, page: int = 1, page_size: int = DEFAULT_PAGE_SIZE
    ) -> PreviewTable:
        """One page of the raw fact table."""
        if page < 1 or page_size < 1:
            raise ValueError("page and page_size must be positive")

        total = row_count(self.engine)
        offset = (page - 1) * page_size
        rows = self.engine.query_all(
            f"SELECT * FROM {quote_identifier(FACT_TABLE)} LIMIT ? OFFSET ?",
            [page_size, offset],
        )

        headers = []
        for index, (name, _) in enumerate(self.engine.columns(FACT_TABLE)):
            column = dataset.column(name)
            headers.append(
                ColumnHeader(
                    index=index,
                    name=name,
                    source_type=column.column_type if column else FactTableColumnType.UNKNOWN,
                )
            )

        return PreviewTable(
            dataset_id=dataset.id,
            headers=headers,
            data=[list(row.values()) for row in rows],
            page_info=PageInfo(
                total_records=total,
                start_record=offset + 1 if rows else 0,
                end_record=offset + len(rows),
            ),
            current_page=page,
            page_size=page_size,
            total_pages=max(1, math.ceil(total / page_size)),
        )

    # ------------------------------------------------------------------
    # Per-type samples
    # ------------------------------------------------------------------

    def _fact_codes_sql(self, column: str) -> str:
        col = quote_identifier(column)
        return f"SELECT CAST({col} AS VARCHAR) FROM {FACT_TABLE} WHERE {col} IS NOT NULL"

    def _rows(self, sql: str, params: list | None = None) -> list[list]:
        return [list(row.values()) for row in self.engine.query_all(sql, params)]

    def _distinct_rows(self, dimension: Dimension):
        col = quote_identifier(dimension.fact_table_column)
        rows = self._rows(
            f"SELECT DISTINCT CAST({col} AS VARCHAR) AS value FROM {FACT_TABLE} "
            f"WHERE {col} IS NOT NULL ORDER BY value LIMIT {self.sample_size}"
        )
        return [dimension.fact_table_column], rows

    def _numeric_rows(self, dimension: Dimension, extractor: NumericExtractor):
        col = quote_identifier(dimension.fact_table_column)
        rows = self._rows(
            f"SELECT DISTINCT {numeric_sql(col, extractor)} AS value FROM {FACT_TABLE} "
            f"WHERE {col} IS NOT NULL ORDER BY value NULLS LAST LIMIT {self.sample_size}"
        )
        return [dimension.fact_table_column], rows

    def _date_rows(self, dimension: Dimension, reference: str, locale: str):
        rows = self._rows(
            f"SELECT date_code, description, start_date, end_date, date_type "
            f"FROM {quote_identifier(reference)} "
            f"WHERE language = ? AND date_code IN "
            f"({self._fact_codes_sql(dimension.fact_table_column)}) "
            f"ORDER BY end_date, date_code LIMIT {self.sample_size}",
            [locale],
        )
        names = [dimension.fact_table_column, "description", "start_date", "end_date", "date_type"]
        return names, rows

    def _lookup_rows(self, dimension: Dimension, reference: str, locale: str):
        join = quote_identifier(dimension.join_column)
        rows = self._rows(
            f"SELECT CAST({join} AS VARCHAR) AS code, description, notes, hierarchy "
            f"FROM {quote_identifier(reference)} "
            f"WHERE language = ? AND CAST({join} AS VARCHAR) IN "
            f"({self._fact_codes_sql(dimension.fact_table_column)}) "
            f"ORDER BY sort_order NULLS LAST, code LIMIT {self.sample_size}",
            [locale],
        )
        return [dimension.fact_table_column, "description", "notes", "hierarchy"], rows

    def _reference_data_rows(self, dimension: Dimension, reference: str, locale: str):
        rows = self._rows(
            f"SELECT item_id, description, hierarchy FROM {quote_identifier(reference)} "
            f"WHERE language = ? AND item_id IN "
            f"({self._fact_codes_sql(dimension.fact_table_column)}) "
            f"ORDER BY TRY_CAST(sort_order AS BIGINT) NULLS LAST, item_id "
            f"LIMIT {self.sample_size}",
            [locale],
        )
        return [dimension.fact_table_column, "description", "hierarchy"], rows

    def _note_code_rows(self, dimension: Dimension, locale: str):
        col = f"f.{quote_identifier(dimension.fact_table_column)}"
        rows = self._rows(
            f"SELECT nc.code, nc.description FROM {NOTE_CODES_TABLE} nc "
            f"WHERE nc.language = ? AND EXISTS (SELECT 1 FROM {FACT_TABLE} f "
            f"WHERE {col} IS NOT NULL "
            f"AND list_contains({note_cell_codes_sql(col)}, nc.code)) "
            f"ORDER BY nc.code LIMIT {self.sample_size}",
            [locale],
        )
        return [dimension.fact_table_column, "description"], rows

    def _total_distinct(self, column: str) -> int:
        col = quote_identifier(column)
        return int(self.engine.query_value(f"SELECT COUNT(DISTINCT {col}) FROM {FACT_TABLE}"))
