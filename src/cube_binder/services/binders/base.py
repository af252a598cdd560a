"""
Shared binder types and the referential integrity check.

A binder validates one patch request against a scratch engine that already
holds the fact table. It never writes to the relational store: it returns a
BindingResult describing the binding to install, or raises a
DimensionValidationError. Installation (cleanup of the previous binding, then
the new one) is done by the dimension service in a single transaction.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import ClassVar

from pydantic import BaseModel

from ...config.models import BinderConfig
from ...db.duckdb_engine import CubeEngine, quote_identifier
from ...db.models import Dataset, Dimension, LookupTable
from ...shared.models import DimensionType, Extractor
from ...storage.blob_store import BlobStore
from ...storage.taxonomy import TaxonomyStore
from ..fact_table import FACT_TABLE


@dataclass
class BindingContext:
    """Everything a binder may read while validating one request."""

    engine: CubeEngine
    dataset: Dataset
    dimension: Dimension
    blob_store: BlobStore
    config: BinderConfig
    taxonomy: TaxonomyStore | None = None

    @property
    def fact_column(self) -> str:
        return self.dimension.fact_table_column

    @property
    def languages(self) -> list[str]:
        return self.config.languages.supported

    def report_fields(self, extractor: BaseModel | None = None) -> dict:
        """Context fields every validation report carries."""
        return {
            "dataset_id": self.dataset.id,
            "dimension_id": self.dimension.id,
            "fact_table_column": self.fact_column,
            "extractor": None if extractor is None else extractor.model_dump(mode="json"),
        }


@dataclass
class BindingResult:
    """A validated binding, ready to be installed on the dimension."""

    dimension_type: DimensionType
    extractor: Extractor | None = None
    join_column: str | None = None
    lookup_table: LookupTable | None = None
    # (key, bytes) to save to the blob store before the binding is committed
    new_blob: tuple[str, bytes] | None = field(default=None, repr=False)
    coverage: tuple[datetime, datetime] | None = None


@dataclass
class OrphanReport:
    """Result of a left-anti-join of fact values against a reference column."""

    total_rows: int
    total_non_matching: int
    values: list = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return self.total_non_matching == 0

    @property
    def all_failed(self) -> bool:
        return self.total_rows > 0 and self.total_non_matching == self.total_rows


def fact_orphans(
    engine: CubeEngine,
    fact_column: str,
    reference_table: str,
    reference_column: str,
) -> OrphanReport:
    """
    Fact rows whose value has no match in the reference column.

    Both sides are compared as text. NULL fact values never match. The
    distinct offending values are returned in full.
    """
    col = quote_identifier(fact_column)
    ref_col = quote_identifier(reference_column)
    rows = engine.query_all(
        f"SELECT CAST(f.{col} AS VARCHAR) AS value, COUNT(*) AS n "
        f"FROM {quote_identifier(FACT_TABLE)} f "
        f"LEFT JOIN (SELECT DISTINCT CAST({ref_col} AS VARCHAR) AS code "
        f"FROM {quote_identifier(reference_table)}) r "
        f"ON CAST(f.{col} AS VARCHAR) = r.code "
        f"WHERE r.code IS NULL GROUP BY 1 ORDER BY 1 NULLS FIRST"
    )
    total_rows = int(engine.query_value(f"SELECT COUNT(*) FROM {quote_identifier(FACT_TABLE)}"))
    return OrphanReport(
        total_rows=total_rows,
        total_non_matching=sum(int(row["n"]) for row in rows),
        values=[row["value"] for row in rows],
    )


def reference_orphans(
    engine: CubeEngine,
    fact_column: str,
    reference_table: str,
    reference_column: str,
    limit: int,
) -> list[str]:
    """Reference codes that no fact row uses (bounded sample)."""
    ref_col = quote_identifier(reference_column)
    rows = engine.query_all(
        f"SELECT DISTINCT CAST({ref_col} AS VARCHAR) AS code "
        f"FROM {quote_identifier(reference_table)} "
        f"WHERE CAST({ref_col} AS VARCHAR) NOT IN ("
        f"SELECT CAST({quote_identifier(fact_column)} AS VARCHAR) "
        f"FROM {quote_identifier(FACT_TABLE)} "
        f"WHERE {quote_identifier(fact_column)} IS NOT NULL) "
        f"ORDER BY code LIMIT {int(limit)}"
    )
    return [row["code"] for row in rows]


class DimensionBinder(ABC):
    """Validates one dimension type."""

    dimension_types: ClassVar[tuple[DimensionType, ...]] = ()

    def precheck(self, request, config: BinderConfig) -> None:
        """Structural checks that need neither the engine nor storage."""

    @abstractmethod
    async def bind(self, ctx: BindingContext, request) -> BindingResult:
        """Validate ``request`` against the fact table; raise or return the binding."""
