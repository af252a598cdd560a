"""
Numeric binder.

If the engine already stores the column as the requested kind of number the
binding is accepted without a scan. Otherwise every value's text form is
matched against the number pattern; any value that fails is reported.
"""

import logging

from ...config.models import BinderConfig
from ...db.duckdb_engine import FLOAT_TYPES, INTEGER_TYPES, quote_identifier
from ...shared.exceptions import MissingParameterError, NonNumericValuesError
from ...shared.models import DimensionType, NumberType, NumericExtractor, NumericPatchRequest
from ..fact_table import FACT_TABLE
from .base import BindingContext, BindingResult, DimensionBinder

logger = logging.getLogger(__name__)

INTEGER_PATTERN = r"^-?[0-9]+$"
DECIMAL_PATTERN = r"^-?([0-9]+([.][0-9]*)?|[.][0-9]+)$"


def is_native_number(column_type: str | None, number_type: NumberType) -> bool:
    """True if a DuckDB storage type already satisfies ``number_type``."""
    if column_type is None:
        return False
    if column_type in INTEGER_TYPES:
        return True
    if number_type == NumberType.DECIMAL:
        return column_type in FLOAT_TYPES or column_type.startswith("DECIMAL")
    return False


class NumericBinder(DimensionBinder):
    dimension_types = (DimensionType.NUMERIC,)

    def precheck(self, request: NumericPatchRequest, config: BinderConfig) -> None:
        if request.number_type == NumberType.DECIMAL and request.decimal_places is None:
            raise MissingParameterError("decimal_places", "decimal numbers need a precision")

    async def bind(self, ctx: BindingContext, request: NumericPatchRequest) -> BindingResult:
        extractor = NumericExtractor(
            number_type=request.number_type,
            decimal_places=request.decimal_places
            if request.number_type == NumberType.DECIMAL
            else None,
        )
        result = BindingResult(dimension_type=DimensionType.NUMERIC, extractor=extractor)

        column_type = ctx.engine.column_type(FACT_TABLE, ctx.fact_column)
        if is_native_number(column_type, request.number_type):
            logger.debug(
                f"Column {ctx.fact_column} is stored as {column_type}; skipping value scan"
            )
            return result

        pattern = INTEGER_PATTERN if request.number_type == NumberType.INTEGER else DECIMAL_PATTERN
        col = quote_identifier(ctx.fact_column)
        rows = ctx.engine.query_all(
            f"SELECT CAST({col} AS VARCHAR) AS value, COUNT(*) AS n "
            f"FROM {quote_identifier(FACT_TABLE)} "
            f"WHERE {col} IS NOT NULL "
            f"AND NOT regexp_full_match(CAST({col} AS VARCHAR), ?) "
            f"GROUP BY 1 ORDER BY 1",
            [pattern],
        )
        if rows:
            raise NonNumericValuesError(
                f"Column contains values that are not {request.number_type.value} numbers",
                total_non_matching=sum(int(row["n"]) for row in rows),
                non_matching_values=[row["value"] for row in rows],
                **ctx.report_fields(extractor),
            )
        return result
