"""
Shared cross-dataset reference-data taxonomy.

The taxonomy is four tables:

- reference_data: item_id, version_no, sort_order, category_key[, hierarchy]
- reference_data_info: item_id, version_no, category_key, lang, description
- category_keys: category_key, category[, hierarchy]
- categories: category

An item id may appear under several category keys (the same code used in
different classifications), so ``lookup_item`` returns a set.
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path

import pandas as pd
from cachetools import TTLCache
from pydantic import BaseModel

from ..shared.exceptions import StorageError

logger = logging.getLogger(__name__)

TAXONOMY_TABLES = ("reference_data", "reference_data_info", "category_keys", "categories")

ITEM_FRAME_COLUMNS = [
    "item_id",
    "category_key",
    "version_no",
    "sort_order",
    "hierarchy",
    "language",
    "description",
]


class CategoryInfo(BaseModel):
    category: str
    hierarchy: str | None = None


class TaxonomyStore(ABC):
    """Read-only access to the reference-data taxonomy."""

    @abstractmethod
    async def lookup_item(self, item_id: str) -> set[str]:
        """Category keys the item belongs to; empty if the item is unknown."""

    @abstractmethod
    async def resolve_category(self, category_key: str) -> CategoryInfo:
        """Category a category key belongs to."""

    @abstractmethod
    async def items_for_categories(self, category_keys: list[str]) -> pd.DataFrame:
        """Every item (one row per language) in the given category keys."""


class DataFrameTaxonomyStore(TaxonomyStore):
    """Taxonomy held in memory as pandas frames."""

    def __init__(
        self,
        reference_data: pd.DataFrame,
        reference_data_info: pd.DataFrame,
        category_keys: pd.DataFrame,
        categories: pd.DataFrame,
        cache_ttl_seconds: int = 300,
    ):
        self.reference_data = reference_data.astype({"item_id": str, "category_key": str})
        self.reference_data_info = reference_data_info.astype(
            {"item_id": str, "category_key": str}
        )
        self.category_keys = category_keys.astype({"category_key": str, "category": str})
        self.categories = categories.astype({"category": str})

        known = set(self.categories["category"])
        unknown = set(self.category_keys["category"]) - known
        if unknown:
            raise StorageError(f"Category keys reference unknown categories: {sorted(unknown)}")

        self._items: dict[str, set[str]] = {}
        for item_id, key in zip(self.reference_data["item_id"], self.reference_data["category_key"]):
            self._items.setdefault(item_id, set()).add(key)
        self._cache: TTLCache = TTLCache(maxsize=10000, ttl=cache_ttl_seconds)

        logger.info(
            f"Loaded taxonomy: {len(self._items)} items, "
            f"{len(self.category_keys)} category keys, {len(self.categories)} categories"
        )

    @classmethod
    def from_directory(cls, directory: str | Path, **kwargs) -> "DataFrameTaxonomyStore":
        """Load ``<table>.csv`` for each taxonomy table from ``directory``."""
        directory = Path(directory)
        frames = {}
        for table in TAXONOMY_TABLES:
            path = directory / f"{table}.csv"
            if not path.exists():
                raise StorageError(f"Taxonomy table missing: {path}")
            frames[table] = pd.read_csv(path, dtype=str, keep_default_na=False)
        for table in ("reference_data", "reference_data_info"):
            frames[table]["version_no"] = pd.to_numeric(frames[table]["version_no"])
        frames["reference_data"]["sort_order"] = pd.to_numeric(
            frames["reference_data"]["sort_order"], errors="coerce"
        )
        return cls(**frames, **kwargs)

    async def lookup_item(self, item_id: str) -> set[str]:
        key = str(item_id)
        if key in self._cache:
            return set(self._cache[key])
        keys = set(self._items.get(key, set()))
        self._cache[key] = keys
        return set(keys)

    async def resolve_category(self, category_key: str) -> CategoryInfo:
        rows = self.category_keys[self.category_keys["category_key"] == str(category_key)]
        if rows.empty:
            raise StorageError(f"Unknown category key: {category_key}")
        row = rows.iloc[0]
        hierarchy = row.get("hierarchy") if "hierarchy" in rows.columns else None
        return CategoryInfo(category=row["category"], hierarchy=hierarchy or None)

    async def items_for_categories(self, category_keys: list[str]) -> pd.DataFrame:
        keys = [str(key) for key in category_keys]
        items = self.reference_data[self.reference_data["category_key"].isin(keys)]
        info = self.reference_data_info[self.reference_data_info["category_key"].isin(keys)]
        merged = items.merge(info, on=["item_id", "version_no", "category_key"], how="inner")
        merged = merged.rename(columns={"lang": "language"})
        merged["language"] = merged["language"].str.lower()
        if "hierarchy" not in merged.columns:
            merged["hierarchy"] = None
        return merged[ITEM_FRAME_COLUMNS].reset_index(drop=True)
