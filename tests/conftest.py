"""
Pytest configuration and fixtures for cube binder tests.

Provides configuration pointing at a temporary directory, an in-memory
relational store, a local blob store, a small reference-data taxonomy and
helpers for building fact tables.
"""

import io
from collections.abc import Callable

import pandas as pd
import pytest
import pytest_asyncio

from cube_binder.config.models import BinderConfig, PathsConfig
from cube_binder.db.duckdb_engine import CubeEngine
from cube_binder.db.engine import create_engine
from cube_binder.db.init import init_database
from cube_binder.db.session import create_session_maker
from cube_binder.services.fact_table import FACT_TABLE
from cube_binder.storage.blob_store import LocalBlobStore
from cube_binder.storage.taxonomy import DataFrameTaxonomyStore


@pytest.fixture
def config(tmp_path) -> BinderConfig:
    """Configuration with every path under the test's temporary directory."""
    return BinderConfig(
        paths=PathsConfig(
            blob_root=str(tmp_path / "blobs"),
            cube_root=str(tmp_path / "cubes"),
            temp_dir=str(tmp_path / "scratch"),
        )
    )


@pytest.fixture
def blob_store(config) -> LocalBlobStore:
    return LocalBlobStore(config.paths.blob_root)


@pytest.fixture
def engine():
    """In-memory scratch engine, closed after the test."""
    cube_engine = CubeEngine()
    yield cube_engine
    cube_engine.close()


@pytest.fixture
def load_fact_table(engine) -> Callable[[dict], int]:
    """Load a column dict as ``fact_table`` into the scratch engine."""

    def _load(columns: dict) -> int:
        return engine.create_table_from_frame(FACT_TABLE, pd.DataFrame(columns))

    return _load


@pytest.fixture
def csv_bytes() -> Callable[[pd.DataFrame], bytes]:
    """Serialise a frame to CSV bytes as an upload would arrive."""

    def _to_csv(frame: pd.DataFrame) -> bytes:
        buffer = io.StringIO()
        frame.to_csv(buffer, index=False)
        return buffer.getvalue().encode("utf-8")

    return _to_csv


@pytest.fixture
def taxonomy_frames() -> dict[str, pd.DataFrame]:
    """
    A small taxonomy.

    - Geography: Wales (W92000004) with two local authorities, and the UK
      (K02000001); W92000004 also appears under the UK key
    - Sex: M, F
    """
    categories = pd.DataFrame({"category": ["Geography", "Sex"]})
    category_keys = pd.DataFrame(
        {
            "category_key": ["GeoWales", "GeoUK", "SexKey"],
            "category": ["Geography", "Geography", "Sex"],
        }
    )
    reference_data = pd.DataFrame(
        {
            "item_id": ["W92000004", "W06000001", "W06000002", "K02000001", "W92000004", "M", "F"],
            "version_no": [1, 1, 1, 1, 1, 1, 1],
            "sort_order": [1, 2, 3, 1, 2, 1, 2],
            "category_key": [
                "GeoWales",
                "GeoWales",
                "GeoWales",
                "GeoUK",
                "GeoUK",
                "SexKey",
                "SexKey",
            ],
            "hierarchy": [None, "W92000004", "W92000004", None, "K02000001", None, None],
        }
    )
    descriptions = {
        "W92000004": ("Wales", "Cymru"),
        "W06000001": ("Isle of Anglesey", "Ynys Môn"),
        "W06000002": ("Gwynedd", "Gwynedd"),
        "K02000001": ("United Kingdom", "Y Deyrnas Unedig"),
        "M": ("Male", "Gwryw"),
        "F": ("Female", "Benyw"),
    }
    info_rows = []
    for item_id, key in zip(reference_data["item_id"], reference_data["category_key"]):
        english, welsh = descriptions[item_id]
        info_rows.append((item_id, 1, key, "en-GB", english))
        info_rows.append((item_id, 1, key, "cy-GB", welsh))
    reference_data_info = pd.DataFrame(
        info_rows, columns=["item_id", "version_no", "category_key", "lang", "description"]
    )
    return {
        "reference_data": reference_data,
        "reference_data_info": reference_data_info,
        "category_keys": category_keys,
        "categories": categories,
    }


@pytest.fixture
def taxonomy(taxonomy_frames) -> DataFrameTaxonomyStore:
    return DataFrameTaxonomyStore(**taxonomy_frames)


@pytest_asyncio.fixture
async def session_factory():
    """Session factory over a fresh in-memory SQLite relational store."""
    db_engine = create_engine(db_path=":memory:")
    await init_database(db_engine)
    yield create_session_maker(db_engine)
    await db_engine.dispose()
