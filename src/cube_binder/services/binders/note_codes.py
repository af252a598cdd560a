"""Note codes binder: every comma separated code must be a standard note code."""

import logging

from ...db.duckdb_engine import quote_identifier
from ...generators.note_codes import NOTE_CODE_VALUES, NOTE_CODES_JOIN_COLUMN, split_note_codes
from ...shared.exceptions import UnknownNoteCodesError
from ...shared.models import DimensionType, NoteCodesExtractor, NoteCodesPatchRequest
from ..fact_table import FACT_TABLE
from .base import BindingContext, BindingResult, DimensionBinder

logger = logging.getLogger(__name__)


class NoteCodesBinder(DimensionBinder):
    dimension_types = (DimensionType.NOTE_CODES,)

    async def bind(self, ctx: BindingContext, request: NoteCodesPatchRequest) -> BindingResult:
        col = quote_identifier(ctx.fact_column)
        cells = ctx.engine.query_all(
            f"SELECT CAST({col} AS VARCHAR) AS cell, COUNT(*) AS n "
            f"FROM {quote_identifier(FACT_TABLE)} WHERE {col} IS NOT NULL GROUP BY 1"
        )

        unknown: set[str] = set()
        bad_rows = 0
        for row in cells:
            codes = set(split_note_codes(row["cell"]))
            invalid = codes - NOTE_CODE_VALUES
            if invalid:
                unknown |= invalid
                bad_rows += int(row["n"])

        if unknown:
            raise UnknownNoteCodesError(
                "The column contains unknown note codes",
                total_non_matching=bad_rows,
                non_matching_values=sorted(unknown),
                **ctx.report_fields(NoteCodesExtractor()),
            )

        logger.debug(f"{len(cells)} distinct note code cells validated")
        return BindingResult(
            dimension_type=DimensionType.NOTE_CODES,
            extractor=NoteCodesExtractor(),
            join_column=NOTE_CODES_JOIN_COLUMN,
        )
