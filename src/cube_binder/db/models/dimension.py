"""
SQLAlchemy ORM models for dimensions and their owned lookup tables.

A Dimension is created in the raw state by classification and mutated in
place by each binding. A LookupTable belongs to exactly one Dimension; the
relationship uses delete-orphan, so detaching it deletes the row.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cube_binder.db.models.base import Base, new_id, utcnow
from cube_binder.shared.models import (
    JOINED_DIMENSION_TYPES,
    DimensionType,
    Extractor,
    parse_extractor,
)


class LookupTable(Base):
    """An uploaded lookup table file."""

    __tablename__ = "lookup_tables"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    dataset_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("datasets.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    filename: Mapped[str] = mapped_column(
        String(255), nullable=False, comment="Blob store key"
    )
    original_filename: Mapped[str] = mapped_column(String(255), nullable=False)
    file_type: Mapped[str] = mapped_column(String(16), nullable=False)
    is_per_language: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="True when the table has one row per (code, language)",
    )
    uploaded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    dimension: Mapped["Dimension | None"] = relationship(
        "Dimension", back_populates="lookup_table", uselist=False
    )

    def __repr__(self) -> str:
        return f"<LookupTable(id={self.id}, filename={self.filename})>"


class Dimension(Base):
    """A classified fact table column and its (optional) binding."""

    __tablename__ = "dimensions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    dataset_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("datasets.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    fact_table_column: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[DimensionType] = mapped_column(
        SAEnum(
            DimensionType,
            native_enum=False,
            length=32,
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        default=DimensionType.RAW,
    )
    extractor_data: Mapped[dict[str, Any] | None] = mapped_column(
        "extractor", JSON, nullable=True, comment="Serialised extractor"
    )
    join_column: Mapped[str | None] = mapped_column(
        String(255), nullable=True, comment="Key column of the bound reference table"
    )
    lookup_table_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("lookup_tables.id", ondelete="SET NULL"),
        nullable=True,
        unique=True,
    )

    dataset: Mapped["Dataset"] = relationship(  # noqa: F821
        "Dataset", back_populates="dimensions"
    )
    lookup_table: Mapped[LookupTable | None] = relationship(
        "LookupTable",
        back_populates="dimension",
        cascade="all, delete-orphan",
        single_parent=True,
        lazy="selectin",
    )

    __table_args__ = (
        UniqueConstraint("dataset_id", "fact_table_column", name="uq_dimension_column"),
    )

    @property
    def extractor(self) -> Extractor | None:
        return parse_extractor(self.extractor_data)

    @extractor.setter
    def extractor(self, value: Extractor | None) -> None:
        self.extractor_data = None if value is None else value.model_dump(mode="json")

    @property
    def is_bound(self) -> bool:
        return self.extractor_data is not None

    def reset_binding(self) -> LookupTable | None:
        """
        Return the dimension to the raw state.

        Returns the detached lookup table (deleted on flush via delete-orphan)
        so the caller can remove its stored bytes after commit.
        """
        previous = self.lookup_table
        self.extractor_data = None
        self.join_column = None
        self.type = DimensionType.RAW
        self.lookup_table = None
        return previous

    def check_invariants(self) -> None:
        """Raise ValueError if extractor/join column presence disagrees with type."""
        if (self.type == DimensionType.RAW) == self.is_bound:
            raise ValueError(
                f"Dimension {self.id}: extractor must be present iff type is not raw"
            )
        needs_join = self.type in JOINED_DIMENSION_TYPES
        if needs_join != (self.join_column is not None):
            raise ValueError(
                f"Dimension {self.id}: join column presence does not match type {self.type.value}"
            )

    def __repr__(self) -> str:
        return (
            f"<Dimension(id={self.id}, column={self.fact_table_column}, "
            f"type={self.type.value})>"
        )
