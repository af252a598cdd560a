"""
Repositories for the relational store.

Thin async wrappers around an AsyncSession. They never commit: the caller
owns the transaction boundary.
"""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cube_binder.db.models import (
    Dataset,
    Dimension,
    LookupTable,
    Revision,
)
from cube_binder.shared.exceptions import EntityNotFoundError

logger = logging.getLogger(__name__)


class DatasetRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, dataset_id: str) -> Dataset:
        """Load a dataset with its revisions, columns, dimensions and measure."""
        dataset = await self.session.get(Dataset, dataset_id)
        if dataset is None:
            raise EntityNotFoundError("Dataset", dataset_id)
        return dataset

    async def create(self, title: str | None = None) -> Dataset:
        """
        Create a dataset with an empty first revision.

        Every relationship is set up front; a lazy load of an unset one on
        the freshly flushed rows cannot run under asyncio.
        """
        dataset = Dataset(
            title=title,
            revisions=[Revision(revision_index=1, data_table=None)],
            fact_table_columns=[],
            dimensions=[],
            measure=None,
        )
        self.session.add(dataset)
        await self.session.flush()
        logger.info(f"Created dataset {dataset.id}")
        return dataset

    async def get_revision(self, revision_id: str) -> Revision:
        revision = await self.session.get(Revision, revision_id)
        if revision is None:
            raise EntityNotFoundError("Revision", revision_id)
        return revision

    async def draft_revision(self, dataset_id: str) -> Revision:
        dataset = await self.get(dataset_id)
        revision = dataset.draft_revision
        if revision is None:
            raise EntityNotFoundError("Revision", f"draft of {dataset_id}")
        return revision

    async def clear_classification(self, dataset: Dataset) -> list[LookupTable]:
        """
        Remove all fact table columns, dimensions and the measure.

        Returns the lookup tables that were owned by the removed dimensions
        so their stored bytes can be deleted after commit.
        """
        orphaned = [dim.lookup_table for dim in dataset.dimensions if dim.lookup_table]
        dataset.dimensions.clear()
        dataset.fact_table_columns.clear()
        dataset.measure = None
        await self.session.flush()
        logger.warning(
            f"Cleared classification for dataset {dataset.id} "
            f"({len(orphaned)} lookup tables orphaned)"
        )
        return orphaned


class DimensionRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, dimension_id: str, dataset_id: str | None = None) -> Dimension:
        dimension = await self.session.get(Dimension, dimension_id)
        if dimension is None or (dataset_id and dimension.dataset_id != dataset_id):
            raise EntityNotFoundError("Dimension", dimension_id)
        return dimension

    async def list_for_dataset(self, dataset_id: str) -> list[Dimension]:
        result = await self.session.execute(
            select(Dimension)
            .where(Dimension.dataset_id == dataset_id)
            .order_by(Dimension.fact_table_column)
        )
        return list(result.scalars().all())


class LookupTableRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, lookup_table_id: str) -> LookupTable:
        lookup = await self.session.get(LookupTable, lookup_table_id)
        if lookup is None:
            raise EntityNotFoundError("LookupTable", lookup_table_id)
        return lookup

    async def list_for_dataset(self, dataset_id: str) -> list[LookupTable]:
        result = await self.session.execute(
            select(LookupTable).where(LookupTable.dataset_id == dataset_id)
        )
        return list(result.scalars().all())
