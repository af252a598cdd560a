"""
DuckDB query engine wrapper.

A CubeEngine owns one DuckDB connection: either an in-memory scratch engine
used while validating a binding, or a file-backed engine holding an assembled
cube. Table loading helpers follow the register-then-CREATE-AS pattern.
"""

from __future__ import annotations

import logging
import uuid
from pathlib import Path
from typing import Any, Iterable

import duckdb
import pandas as pd

from cube_binder.db.config import DatabaseConfig

logger = logging.getLogger(__name__)

FILE_TYPES = ("csv", "csv.gz", "parquet", "json", "json.gz")

INTEGER_TYPES = frozenset(
    {
        "BIGINT",
        "HUGEINT",
        "SMALLINT",
        "TINYINT",
        "INTEGER",
        "UBIGINT",
        "UHUGEINT",
        "UINTEGER",
        "USMALLINT",
        "UTINYINT",
    }
)
FLOAT_TYPES = frozenset({"DOUBLE", "FLOAT"})


def quote_identifier(name: str) -> str:
    """Quote a table or column name for DuckDB."""
    return '"' + str(name).replace('"', '""') + '"'


def quote_literal(value: Any) -> str:
    """Quote a string literal for DuckDB (for table functions that take no parameters)."""
    return "'" + str(value).replace("'", "''") + "'"


def file_type_from_filename(filename: str) -> str | None:
    """Detect the engine file type from a filename, or None if unsupported."""
    lowered = filename.lower()
    for file_type in sorted(FILE_TYPES, key=len, reverse=True):
        if lowered.endswith(f".{file_type}"):
            return file_type
    return None


def _reader_sql(local_path: str | Path, file_type: str) -> str:
    path = quote_literal(str(local_path))
    if file_type in ("csv", "csv.gz"):
        return (
            f"read_csv({path}, header=true, auto_detect=true, "
            f"auto_type_candidates=['BIGINT', 'DOUBLE', 'VARCHAR'], "
            f"sample_size=-1, compression='auto')"
        )
    if file_type == "parquet":
        return f"read_parquet({path})"
    if file_type in ("json", "json.gz"):
        return f"read_json_auto({path}, compression='auto')"
    raise ValueError(f"Unsupported file type: {file_type}")


class CubeEngine:
    """Tabular query engine backed by a DuckDB connection."""

    def __init__(self, database: str | Path = ":memory:", read_only: bool = False):
        self.database = str(database)
        self.read_only = read_only
        self._conn: duckdb.DuckDBPyConnection | None = duckdb.connect(
            self.database, read_only=read_only
        )
        if DatabaseConfig.DUCKDB_THREADS:
            self._conn.execute(f"SET threads={int(DatabaseConfig.DUCKDB_THREADS)}")
        if DatabaseConfig.DUCKDB_MEMORY_LIMIT:
            self._conn.execute(
                f"SET memory_limit={quote_literal(DatabaseConfig.DUCKDB_MEMORY_LIMIT)}"
            )
        logger.debug(f"Opened DuckDB engine on {self.database}")

    @property
    def connection(self) -> duckdb.DuckDBPyConnection:
        if self._conn is None:
            raise RuntimeError("Engine is closed")
        return self._conn

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def create_table_from_file(
        self, name: str, local_path: str | Path, file_type: str
    ) -> None:
        """Create (or replace) table ``name`` from a local CSV/Parquet/JSON file."""
        if file_type not in FILE_TYPES:
            raise ValueError(f"Unsupported file type: {file_type}")
        self.connection.execute(
            f"CREATE OR REPLACE TABLE {quote_identifier(name)} AS "
            f"SELECT * FROM {_reader_sql(local_path, file_type)}"
        )
        logger.debug(f"Loaded {file_type} file into table {name}")

    def create_table_from_frame(self, name: str, df: pd.DataFrame) -> int:
        """Create (or replace) table ``name`` from a DataFrame."""
        view = f"_frame_{uuid.uuid4().hex[:8]}"
        self.connection.register(view, df)
        try:
            self.connection.execute(
                f"CREATE OR REPLACE TABLE {quote_identifier(name)} AS "
                f"SELECT * FROM {quote_identifier(view)}"
            )
        finally:
            self.connection.unregister(view)
        return len(df)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def execute(self, sql: str, params: Iterable[Any] | None = None) -> None:
        self.connection.execute(sql, list(params) if params is not None else None)

    def query_all(self, sql: str, params: Iterable[Any] | None = None) -> list[dict]:
        cursor = self.connection.execute(sql, list(params) if params is not None else None)
        names = [col[0] for col in cursor.description]
        return [dict(zip(names, row)) for row in cursor.fetchall()]

    def query_value(self, sql: str, params: Iterable[Any] | None = None) -> Any:
        row = self.connection.execute(
            sql, list(params) if params is not None else None
        ).fetchone()
        return None if row is None else row[0]

    def query_df(self, sql: str, params: Iterable[Any] | None = None) -> pd.DataFrame:
        return self.connection.execute(
            sql, list(params) if params is not None else None
        ).df()

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def table_exists(self, name: str) -> bool:
        return bool(
            self.query_value(
                "SELECT COUNT(*) FROM information_schema.tables WHERE table_name = ?",
                [name],
            )
        )

    def columns(self, table: str) -> list[tuple[str, str]]:
        """(name, type) pairs of ``table`` in column order."""
        rows = self.connection.execute(
            "SELECT column_name, data_type FROM information_schema.columns "
            "WHERE table_name = ? ORDER BY ordinal_position",
            [table],
        ).fetchall()
        return [(str(name), str(data_type)) for name, data_type in rows]

    def column_type(self, table: str, column: str) -> str | None:
        """Native storage type of a column, e.g. ``BIGINT`` or ``VARCHAR``."""
        value = self.query_value(
            "SELECT data_type FROM information_schema.columns "
            "WHERE table_name = ? AND column_name = ?",
            [table, column],
        )
        return None if value is None else str(value).upper()

    def drop_table(self, name: str) -> None:
        self.connection.execute(f"DROP TABLE IF EXISTS {quote_identifier(name)}")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def checkpoint(self) -> None:
        self.connection.execute("CHECKPOINT")

    def close(self) -> None:
        """Close the connection; safe to call more than once."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            logger.debug(f"Closed DuckDB engine on {self.database}")

    def __enter__(self) -> CubeEngine:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
