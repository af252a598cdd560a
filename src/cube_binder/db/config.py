"""
Database configuration constants and settings.

Defines the relational store path, SQLite pragmas and the scratch settings
applied to DuckDB engines.
"""


class DatabaseConfig:
    """Configuration for the SQLite relational store and DuckDB engines."""

    # Relational store holding datasets, revisions, dimensions and lookup tables
    BINDER_DB_PATH: str = "data/cube_binder.db"

    # Applied on each connection via event listeners
    SQLITE_PRAGMAS: dict[str, str | int] = {
        # Write-Ahead Logging lets readers and the single writer overlap
        "journal_mode": "WAL",
        "synchronous": "NORMAL",
        # Required for the dimension -> lookup table cascade
        "foreign_keys": 1,
        "temp_store": "MEMORY",
        "cache_size": -16000,
        "busy_timeout": 5000,
    }

    # DuckDB settings for scratch and cube engines
    DUCKDB_THREADS: int | None = None  # None = DuckDB default
    DUCKDB_MEMORY_LIMIT: str | None = None

    ECHO_SQL: bool = False

    @classmethod
    def get_binder_db_url(cls, db_path: str | None = None) -> str:
        """Get SQLAlchemy async URL for the relational store."""
        return f"sqlite+aiosqlite:///{db_path or cls.BINDER_DB_PATH}"
