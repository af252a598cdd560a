"""
Configuration models for the cube binder.

These models define the structure and validation for the binder's JSON
configuration file.
"""

import json
import logging
from pathlib import Path

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)


class PathsConfig(BaseModel):
    """Configuration for on-disk locations."""

    blob_root: str = Field(
        "data/blobs", min_length=1, description="Root directory of the local blob store"
    )
    cube_root: str = Field(
        "data/cubes",
        min_length=1,
        description="Directory holding one <revision_id>.duckdb cube file per revision",
    )
    temp_dir: str | None = Field(
        None, description="Scratch directory for files staged for DuckDB"
    )
    taxonomy_dir: str | None = Field(
        None, description="Directory holding the four taxonomy tables as CSV files"
    )

    @field_validator("blob_root", "cube_root")
    @classmethod
    def validate_non_empty_paths(cls, v: str) -> str:
        """Validate that paths are not empty or whitespace only."""
        if not v or not v.strip():
            raise ValueError("Path cannot be empty or whitespace only")
        return v.strip()


class LanguagesConfig(BaseModel):
    """Output languages for generated and normalised reference tables."""

    supported: list[str] = Field(
        default_factory=lambda: ["en-gb", "cy-gb"],
        min_length=1,
        description="Lower-case locale codes; the first entry is the default language",
    )

    @field_validator("supported")
    @classmethod
    def normalise_locales(cls, v: list[str]) -> list[str]:
        normalised = []
        for locale in v:
            code = locale.strip().lower()
            if not code:
                raise ValueError("Locale codes cannot be empty")
            if code not in normalised:
                normalised.append(code)
        return normalised

    @property
    def default(self) -> str:
        return self.supported[0]


class ValidationConfig(BaseModel):
    """Limits and timeouts applied while validating bindings."""

    preview_sample_size: int = Field(
        5, gt=0, description="Number of distinct rows returned by a dimension preview"
    )
    mismatch_sample_limit: int = Field(
        500,
        gt=0,
        description="Maximum number of reference-side orphans reported for a lookup table",
    )
    storage_timeout_seconds: float = Field(
        30.0, gt=0.0, description="Timeout for a single blob store call"
    )
    taxonomy_timeout_seconds: float = Field(
        10.0, gt=0.0, description="Timeout for a single taxonomy store call"
    )


class DatabaseSettings(BaseModel):
    """Relational store connection settings."""

    url: str | None = Field(
        None,
        description="SQLAlchemy async URL; defaults to the SQLite file in DatabaseConfig",
    )
    echo_sql: bool = Field(False, description="Log emitted SQL statements")

    @field_validator("url")
    @classmethod
    def validate_async_driver(cls, v: str | None) -> str | None:
        if v is not None and "+aiosqlite" not in v and "+asyncpg" not in v:
            raise ValueError("Database URL must use an async driver")
        return v


class LoggingSettings(BaseModel):
    level: str = Field("INFO", description="Root logging level")

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown logging level: {v}")
        return level


class BinderConfig(BaseModel):
    """Main configuration model for the cube binder."""

    paths: PathsConfig = Field(
        default_factory=PathsConfig, description="File path configuration"
    )
    languages: LanguagesConfig = Field(
        default_factory=LanguagesConfig, description="Supported output languages"
    )
    validation: ValidationConfig = Field(
        default_factory=ValidationConfig, description="Validation limits and timeouts"
    )
    database: DatabaseSettings = Field(
        default_factory=DatabaseSettings, description="Relational store settings"
    )
    logging: LoggingSettings = Field(
        default_factory=LoggingSettings, description="Logging settings"
    )

    @classmethod
    def from_file(cls, file_path: str | Path) -> "BinderConfig":
        """
        Load configuration from a JSON file.

        Args:
            file_path: Path to the configuration JSON file

        Returns:
            BinderConfig instance

        Raises:
            FileNotFoundError: If the file doesn't exist
            ValueError: If the JSON is invalid or doesn't match the schema
        """
        path = Path(file_path)

        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {file_path}")

        try:
            with path.open("r") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in configuration file: {e}")

        return cls(**data)

    def to_file(self, file_path: str | Path) -> None:
        """Save configuration to a JSON file."""
        path = Path(file_path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with path.open("w") as f:
            json.dump(self.model_dump(), f, indent=2)
