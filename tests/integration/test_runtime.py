"""
Integration tests for the binder runtime.

The runtime is started against a file-backed SQLite store so that the
configured database URL, paths and taxonomy directory are all exercised.
"""

import pytest

from cube_binder.config.models import BinderConfig, DatabaseSettings, PathsConfig
from cube_binder.db import engine as engine_module
from cube_binder.db.repositories import DatasetRepository
from cube_binder.db.session import get_session
from cube_binder.runtime import binder_runtime, load_taxonomy
from cube_binder.services.data_table import register_data_table
from cube_binder.shared.models import (
    ClassificationRequest,
    FactTableColumnType,
    SourceAssignment,
)
from cube_binder.storage.taxonomy import DataFrameTaxonomyStore

pytestmark = pytest.mark.integration


@pytest.fixture
def runtime_config(tmp_path) -> BinderConfig:
    return BinderConfig(
        paths=PathsConfig(
            blob_root=str(tmp_path / "blobs"),
            cube_root=str(tmp_path / "cubes"),
        ),
        database=DatabaseSettings(url=f"sqlite+aiosqlite:///{tmp_path / 'binder.db'}"),
    )


@pytest.fixture
def taxonomy_dir(tmp_path, taxonomy_frames):
    directory = tmp_path / "taxonomy"
    directory.mkdir()
    for table, frame in taxonomy_frames.items():
        frame.to_csv(directory / f"{table}.csv", index=False)
    return directory


class TestBinderRuntime:
    """Test starting, using and stopping a runtime."""

    @pytest.mark.asyncio
    async def test_classify_and_rebuild(self, runtime_config, tmp_path, fact_frame, csv_bytes):
        """Test that a started runtime persists, classifies and builds a cube."""
        async with binder_runtime(runtime_config) as service:
            async with get_session(service.session_factory) as session:
                dataset = await DatasetRepository(session).create("Population")
                await register_data_table(
                    session,
                    service.blob_store,
                    runtime_config,
                    dataset.id,
                    "data.csv",
                    csv_bytes(fact_frame),
                )
            request = ClassificationRequest(
                assignments=[
                    SourceAssignment(column_name="YearCode", role=FactTableColumnType.TIME),
                    SourceAssignment(column_name="Area", role=FactTableColumnType.DIMENSION),
                    SourceAssignment(column_name="Value", role=FactTableColumnType.DATA_VALUES),
                    SourceAssignment(column_name="Notes", role=FactTableColumnType.NOTE_CODES),
                ]
            )
            outcome = await service.classify(dataset.id, request)
            status = await service.tracker.settle(outcome.rebuild_task_id)

            assert status.status == "completed"
            assert service.taxonomy is None

        assert (tmp_path / "binder.db").exists()
        assert list((tmp_path / "cubes").glob("*.duckdb"))
        assert engine_module._binder_engine is None

    @pytest.mark.asyncio
    async def test_explicit_taxonomy(self, runtime_config, taxonomy):
        """Test that an explicit taxonomy is handed to the service."""
        async with binder_runtime(runtime_config, taxonomy=taxonomy) as service:
            assert service.taxonomy is taxonomy
            assert service.assembler.taxonomy is taxonomy


class TestLoadTaxonomy:
    """Test loading the taxonomy named by configuration."""

    def test_no_directory(self, runtime_config):
        """Test that no configured directory means no taxonomy."""
        assert load_taxonomy(runtime_config) is None

    @pytest.mark.asyncio
    async def test_from_directory(self, runtime_config, taxonomy_dir):
        """Test that the four tables are read from the configured directory."""
        runtime_config.paths.taxonomy_dir = str(taxonomy_dir)

        store = load_taxonomy(runtime_config)

        assert isinstance(store, DataFrameTaxonomyStore)
        assert await store.lookup_item("W92000004") == {"GeoWales", "GeoUK"}
        assert (await store.resolve_category("SexKey")).category == "Sex"
