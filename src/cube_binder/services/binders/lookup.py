"""
Lookup table binder.

The uploaded table is loaded next to the fact table, its join column found
(explicit hint or name heuristic) and anti-joined against the fact column in
both directions. Only then are the remaining columns mapped onto an
extractor and the table normalised; a per-language table must have a row for
every supported language for every code.
"""

import logging
import uuid

from ...config.models import BinderConfig
from ...db.duckdb_engine import FILE_TYPES, file_type_from_filename, quote_identifier
from ...db.models import LookupTable
from ...generators.lookup_tables import (
    derive_lookup_extractor,
    find_join_column,
    reference_table_name,
)
from ...shared.exceptions import (
    IncompleteLookupTranslationsError,
    InvalidLookupTableError,
    UnsupportedFileTypeError,
)
from ...shared.models import DimensionType, LookupTableExtractor, LookupTablePatchRequest
from ..fact_table import load_buffer
from ..reference_tables import load_lookup_reference
from .base import (
    BindingContext,
    BindingResult,
    DimensionBinder,
    fact_orphans,
    reference_orphans,
)

logger = logging.getLogger(__name__)


class LookupTableBinder(DimensionBinder):
    dimension_types = (DimensionType.LOOKUP_TABLE,)

    def precheck(self, request: LookupTablePatchRequest, config: BinderConfig) -> None:
        if file_type_from_filename(request.filename) is None:
            raise UnsupportedFileTypeError(request.filename, list(FILE_TYPES))

    async def bind(self, ctx: BindingContext, request: LookupTablePatchRequest) -> BindingResult:
        engine = ctx.engine
        file_type = file_type_from_filename(request.filename)
        table = reference_table_name(ctx.fact_column)
        source = f"{table}_source"

        load_buffer(engine, source, request.data, file_type, ctx.config.paths.temp_dir)
        try:
            columns = [name for name, _ in engine.columns(source)]
            join_column = find_join_column(columns, ctx.fact_column, request.join_column)
            self._check_references(ctx, source, join_column)

            extractor = derive_lookup_extractor(
                columns,
                join_column,
                ctx.languages,
                sort_column=request.sort_column,
                hierarchy_column=request.hierarchy_column,
                description_columns=request.description_columns,
                notes_columns=request.notes_columns,
                language_column=request.language_column,
                is_per_language=request.is_per_language,
                fact_column=ctx.fact_column,
            )
            load_lookup_reference(engine, source, table, extractor, ctx.languages)
            self._check_normalised(ctx, table, extractor)
        except Exception:
            engine.drop_table(table)
            raise
        finally:
            engine.drop_table(source)

        key = f"{uuid.uuid4()}.{file_type}"
        lookup = LookupTable(
            dataset_id=ctx.dataset.id,
            filename=key,
            original_filename=request.filename,
            file_type=file_type,
            is_per_language=extractor.is_per_language,
        )
        logger.info(
            f"Lookup table {request.filename} validated for column {ctx.fact_column} "
            f"(join column {join_column})"
        )
        return BindingResult(
            dimension_type=DimensionType.LOOKUP_TABLE,
            extractor=extractor,
            join_column=join_column,
            lookup_table=lookup,
            new_blob=(key, request.data),
        )

    def _check_references(self, ctx: BindingContext, source: str, join_column: str) -> None:
        orphans = fact_orphans(ctx.engine, ctx.fact_column, source, join_column)
        if orphans.empty:
            return
        lookup_side = reference_orphans(
            ctx.engine,
            ctx.fact_column,
            source,
            join_column,
            ctx.config.validation.mismatch_sample_limit,
        )
        message = (
            "No values in the column match the lookup table"
            if orphans.all_failed
            else "Some values in the column are missing from the lookup table"
        )
        raise InvalidLookupTableError(
            message,
            total_non_matching=orphans.total_non_matching,
            non_matching_values=orphans.values,
            non_matching_lookup_values=lookup_side,
            mismatch=orphans.all_failed,
            detail=f"Join column: {join_column}",
            **ctx.report_fields(),
        )

    def _check_normalised(
        self, ctx: BindingContext, table: str, extractor: LookupTableExtractor
    ) -> None:
        join = quote_identifier(extractor.join_column)
        duplicates = ctx.engine.query_all(
            f"SELECT {join} AS code FROM {quote_identifier(table)} "
            f"GROUP BY {join}, language HAVING COUNT(*) > 1 ORDER BY 1 "
            f"LIMIT {int(ctx.config.validation.mismatch_sample_limit)}"
        )
        if duplicates:
            raise InvalidLookupTableError(
                "The lookup table has more than one row for a code in the same language",
                non_matching_lookup_values=sorted({row["code"] for row in duplicates}),
                detail="duplicate codes",
                **ctx.report_fields(extractor),
            )

        if not extractor.is_per_language:
            return

        rows = ctx.engine.query_all(
            f"SELECT {join} AS code, list(DISTINCT language) AS languages "
            f"FROM {quote_identifier(table)} GROUP BY {join} "
            f"HAVING COUNT(DISTINCT language) < ? ORDER BY 1",
            [len(ctx.languages)],
        )
        row_total = ctx.engine.query_value(f"SELECT COUNT(*) FROM {quote_identifier(table)}")
        if not rows and row_total:
            return

        # no language cell matched a supported language at all
        if not row_total:
            missing = list(ctx.languages)
        else:
            missing = sorted(
                {
                    locale
                    for row in rows
                    for locale in ctx.languages
                    if locale not in (row["languages"] or [])
                }
            )
        raise IncompleteLookupTranslationsError(
            "The lookup table is missing rows for some languages",
            total_non_matching=len(rows),
            non_matching_lookup_values=[row["code"] for row in rows],
            detail=f"Missing languages: {', '.join(missing)}",
            **ctx.report_fields(extractor),
        )
