"""
Fixtures for integration tests.

A DimensionService over the in-memory relational store, the local blob store
and the test taxonomy, plus a helper that uploads and classifies a fact
table. Every write schedules a cube rebuild; tests wait for it before the
next write because the in-memory store has a single shared connection.
"""

import pandas as pd
import pytest
import pytest_asyncio

from cube_binder.db.repositories import DatasetRepository, DimensionRepository
from cube_binder.db.session import get_session
from cube_binder.services.data_table import register_data_table
from cube_binder.services.dimension_service import DimensionService
from cube_binder.shared.models import (
    ClassificationRequest,
    FactTableColumnType,
    SourceAssignment,
)


@pytest_asyncio.fixture
async def service(session_factory, blob_store, config, taxonomy):
    dimension_service = DimensionService(session_factory, blob_store, config, taxonomy)
    yield dimension_service
    await dimension_service.tracker.shutdown()


@pytest.fixture
def fact_frame() -> pd.DataFrame:
    return pd.DataFrame(
        {
            "YearCode": ["2020", "2021", "2022", "2022"],
            "Area": ["E1", "E2", "E3", "E1"],
            "Value": [10, 20, 30, 40],
            "Notes": ["p", None, "e,p", None],
        }
    )


def assign(**roles: FactTableColumnType) -> ClassificationRequest:
    return ClassificationRequest(
        assignments=[SourceAssignment(column_name=name, role=role) for name, role in roles.items()]
    )


DEFAULT_ROLES = {
    "YearCode": FactTableColumnType.TIME,
    "Area": FactTableColumnType.DIMENSION,
    "Value": FactTableColumnType.DATA_VALUES,
    "Notes": FactTableColumnType.NOTE_CODES,
}


@pytest.fixture
def upload(session_factory, blob_store, config, csv_bytes):
    """Create a dataset and register ``frame`` as its fact table; returns the id."""

    async def _upload(frame: pd.DataFrame) -> str:
        async with get_session(session_factory) as session:
            dataset = await DatasetRepository(session).create("Population")
            await register_data_table(
                session, blob_store, config, dataset.id, "data.csv", csv_bytes(frame)
            )
            return dataset.id

    return _upload


@pytest.fixture
def dimension_ids(session_factory):
    """Map of fact table column to dimension id for a dataset."""

    async def _dimension_ids(dataset_id: str) -> dict[str, str]:
        async with get_session(session_factory) as session:
            dimensions = await DimensionRepository(session).list_for_dataset(dataset_id)
            return {d.fact_table_column: d.id for d in dimensions}

    return _dimension_ids


@pytest.fixture
def load_dataset(session_factory):
    """Reload a dataset with its columns, dimensions and revisions."""

    async def _load(dataset_id: str):
        async with get_session(session_factory) as session:
            return await DatasetRepository(session).get(dataset_id)

    return _load


@pytest.fixture
def classified(service, upload, fact_frame, dimension_ids):
    """Upload a fact table and classify it; returns (dataset id, dimension ids)."""

    async def _classified(frame: pd.DataFrame | None = None, roles=None):
        dataset_id = await upload(fact_frame if frame is None else frame)
        outcome = await service.classify(dataset_id, assign(**(roles or DEFAULT_ROLES)))
        await service.tracker.wait(outcome.rebuild_task_id)
        return dataset_id, await dimension_ids(dataset_id)

    return _classified
