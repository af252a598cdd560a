"""
Relational store and query engine access.

- SQLAlchemy async engine/session helpers for Dataset, Dimension and
  LookupTable persistence
- CubeEngine, the DuckDB wrapper used for validation and cube files
"""

from cube_binder.db.duckdb_engine import CubeEngine
from cube_binder.db.engine import (
    configure_engine,
    create_engine,
    dispose_engines,
    get_engine,
)
from cube_binder.db.init import init_database
from cube_binder.db.session import create_session_maker, get_session

__all__ = [
    "CubeEngine",
    "configure_engine",
    "create_engine",
    "create_session_maker",
    "dispose_engines",
    "get_engine",
    "get_session",
    "init_database",
]
