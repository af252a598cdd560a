"""
Date and date-period binder.

The calendar is generated only as wide as the years observed in the column,
loaded under the dimension's reference table name and anti-joined against the
fact column. On success the dataset's coverage window is derived from the
generated table.
"""

import logging

from ...config.models import BinderConfig
from ...db.duckdb_engine import quote_identifier
from ...generators.date_formats import resolve_formats, specific_date_pattern, year_start
from ...generators.lookup_tables import reference_table_name
from ...shared.exceptions import (
    InvalidDateFormatError,
    MissingParameterError,
    UnmatchedDateValuesError,
)
from ...shared.models import DatePatchRequest, DimensionType
from ..reference_tables import DATE_JOIN_COLUMN, load_date_reference
from .base import BindingContext, BindingResult, DimensionBinder, fact_orphans

logger = logging.getLogger(__name__)


class DateBinder(DimensionBinder):
    dimension_types = (DimensionType.DATE, DimensionType.DATE_PERIOD)

    def precheck(self, request: DatePatchRequest, config: BinderConfig) -> None:
        extractor = request.to_extractor()
        if extractor.is_specific_date:
            specific_date_pattern(extractor.date_format)
            return
        formats = resolve_formats(extractor)
        year_start(extractor)
        if extractor.fifth_quarter_is_annual_total and formats.quarter is None:
            raise MissingParameterError(
                "quarter_format", "a fifth quarter annual total needs a quarter format"
            )

    async def bind(self, ctx: BindingContext, request: DatePatchRequest) -> BindingResult:
        extractor = request.to_extractor()
        table = reference_table_name(ctx.fact_column)
        engine = ctx.engine

        rows = load_date_reference(engine, table, ctx.fact_column, extractor, ctx.languages)
        logger.debug(f"Loaded {rows} date reference rows into {table}")

        try:
            orphans = fact_orphans(engine, ctx.fact_column, table, DATE_JOIN_COLUMN)
            if orphans.all_failed:
                raise InvalidDateFormatError(
                    "None of the column's values match the supplied date format",
                    total_non_matching=orphans.total_non_matching,
                    non_matching_values=orphans.values,
                    mismatch=True,
                    **ctx.report_fields(extractor),
                )
            if not orphans.empty:
                raise UnmatchedDateValuesError(
                    "Some of the column's values do not match the supplied date format",
                    total_non_matching=orphans.total_non_matching,
                    non_matching_values=orphans.values,
                    **ctx.report_fields(extractor),
                )
        except Exception:
            engine.drop_table(table)
            raise

        coverage = engine.query_all(
            f"SELECT MIN(start_date) AS start_date, MAX(end_date) AS end_date "
            f"FROM {quote_identifier(table)}"
        )[0]
        return BindingResult(
            dimension_type=DimensionType(request.dimension_type),
            extractor=extractor,
            join_column=DATE_JOIN_COLUMN,
            coverage=(coverage["start_date"], coverage["end_date"]),
        )
