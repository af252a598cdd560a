"""
Reference data (taxonomy) binder.

Every distinct fact value must be an item of the shared taxonomy. The items
must then belong to the requested category, or, when none is requested, to
exactly one category they all share.
"""

import logging

from ...config.models import BinderConfig
from ...db.duckdb_engine import quote_identifier
from ...generators.lookup_tables import reference_table_name
from ...shared.exceptions import (
    CubeBinderException,
    ItemsNotInCategoryError,
    NoCategoryMatchError,
    StructuralError,
    TooManyCategoriesError,
    UnknownReferenceItemsError,
)
from ...shared.models import DimensionType, ReferenceDataExtractor, ReferenceDataPatchRequest
from ...storage.blob_store import with_timeout
from ..fact_table import FACT_TABLE, distinct_values
from ..reference_tables import REFERENCE_DATA_JOIN_COLUMN, load_reference_data_reference
from .base import BindingContext, BindingResult, DimensionBinder

logger = logging.getLogger(__name__)


class ReferenceDataBinder(DimensionBinder):
    dimension_types = (DimensionType.REFERENCE_DATA,)

    def precheck(self, request: ReferenceDataPatchRequest, config: BinderConfig) -> None:
        if request.category is not None and not request.category.strip():
            raise StructuralError("Reference data category must not be blank")

    async def bind(
        self, ctx: BindingContext, request: ReferenceDataPatchRequest
    ) -> BindingResult:
        if ctx.taxonomy is None:
            raise CubeBinderException("No taxonomy store configured for reference data")
        timeout = ctx.config.validation.taxonomy_timeout_seconds

        item_keys: dict[str, set[str]] = {}
        unknown: list[str] = []
        for value in distinct_values(ctx.engine, ctx.fact_column):
            keys = await with_timeout(
                ctx.taxonomy.lookup_item(value), timeout, f"Taxonomy lookup of {value}"
            )
            if keys:
                item_keys[value] = keys
            else:
                unknown.append(value)

        if unknown:
            raise UnknownReferenceItemsError(
                "Some values are not known reference data items",
                total_non_matching=self._rows_with(ctx, unknown),
                non_matching_values=unknown,
                mismatch=not item_keys,
                **ctx.report_fields(),
            )

        if not item_keys:
            raise NoCategoryMatchError(
                "The column has no values to match against reference data",
                **ctx.report_fields(),
            )

        key_categories: dict[str, str] = {}
        for keys in item_keys.values():
            for key in keys:
                if key not in key_categories:
                    info = await with_timeout(
                        ctx.taxonomy.resolve_category(key), timeout, f"Resolving category {key}"
                    )
                    key_categories[key] = info.category

        item_categories = {
            item: {key_categories[key] for key in keys} for item, keys in item_keys.items()
        }

        if request.category is not None:
            category = request.category
            outside = sorted(item for item, cats in item_categories.items() if category not in cats)
            if outside:
                raise ItemsNotInCategoryError(
                    f"Some values are not in category {category}",
                    total_non_matching=self._rows_with(ctx, outside),
                    non_matching_values=outside,
                    detail=f"Category: {category}",
                    **ctx.report_fields(),
                )
        else:
            category = self._infer_category(ctx, item_categories)

        used_keys = sorted(
            {key for keys in item_keys.values() for key in keys if key_categories[key] == category}
        )
        extractor = ReferenceDataExtractor(category=category, categories=used_keys)
        table = reference_table_name(ctx.fact_column)
        rows = await load_reference_data_reference(
            ctx.engine, table, ctx.taxonomy, extractor, ctx.config
        )
        logger.debug(f"Loaded {rows} reference data rows into {table}")
        logger.info(
            f"Column {ctx.fact_column} matched reference data category {category} "
            f"({len(used_keys)} category keys)"
        )
        return BindingResult(
            dimension_type=DimensionType.REFERENCE_DATA,
            extractor=extractor,
            join_column=REFERENCE_DATA_JOIN_COLUMN,
        )

    def _infer_category(self, ctx: BindingContext, item_categories: dict[str, set[str]]) -> str:
        everything = set().union(*item_categories.values()) if item_categories else set()
        if not everything:
            raise NoCategoryMatchError(
                "The column's values do not belong to any reference data category",
                **ctx.report_fields(),
            )

        shared = set.intersection(*item_categories.values())
        if len(shared) == 1:
            return shared.pop()

        candidates = shared or everything
        raise TooManyCategoriesError(
            "The column's values do not share exactly one reference data category",
            detail=f"Categories: {', '.join(sorted(candidates))}",
            **ctx.report_fields(),
        )

    def _rows_with(self, ctx: BindingContext, values: list[str]) -> int:
        col = quote_identifier(ctx.fact_column)
        return int(
            ctx.engine.query_value(
                f"SELECT COUNT(*) FROM {quote_identifier(FACT_TABLE)} "
                f"WHERE list_contains(?::VARCHAR[], CAST({col} AS VARCHAR))",
                [values],
            )
        )
