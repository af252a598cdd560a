"""
SQLAlchemy ORM models for datasets and their uploaded fact tables.

- Dataset (datasets): owner of revisions, fact table columns, dimensions and
  the measure; carries the derived coverage window
- Revision (revisions): one version of the dataset and its cube file
- DataTable (data_tables): the uploaded fact table file for a revision
- DataTableDescription (data_table_descriptions): detected columns
- FactTableColumn (fact_table_columns): classified columns of the dataset
- Measure (measures): the column holding the measure codes
"""

from datetime import datetime

from sqlalchemy import (
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cube_binder.db.models.base import Base, new_id, utcnow
from cube_binder.shared.models import FactTableColumnType


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class Dataset(Base):
    """
    A statistical dataset.

    ``start_date``/``end_date`` are derived from the date dimension's
    reference table (half-open interval) and rewritten on every date binding.
    """

    __tablename__ = "datasets"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=new_id, comment="Primary key"
    )
    title: Mapped[str | None] = mapped_column(
        String(255), nullable=True, comment="Working title"
    )
    start_date: Mapped[datetime | None] = mapped_column(
        DateTime, nullable=True, comment="Coverage start (inclusive)"
    )
    end_date: Mapped[datetime | None] = mapped_column(
        DateTime, nullable=True, comment="Coverage end (exclusive)"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    revisions: Mapped[list["Revision"]] = relationship(
        "Revision",
        back_populates="dataset",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="Revision.revision_index",
    )
    fact_table_columns: Mapped[list["FactTableColumn"]] = relationship(
        "FactTableColumn",
        back_populates="dataset",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="FactTableColumn.column_index",
    )
    dimensions: Mapped[list["Dimension"]] = relationship(  # noqa: F821
        "Dimension",
        back_populates="dataset",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    measure: Mapped["Measure | None"] = relationship(
        "Measure",
        back_populates="dataset",
        cascade="all, delete-orphan",
        lazy="selectin",
        uselist=False,
    )

    @property
    def draft_revision(self) -> "Revision | None":
        """The revision with the highest index, if any."""
        if not self.revisions:
            return None
        return max(self.revisions, key=lambda rev: rev.revision_index)

    def column(self, name: str) -> "FactTableColumn | None":
        for col in self.fact_table_columns:
            if col.column_name == name:
                return col
        return None

    def __repr__(self) -> str:
        return f"<Dataset(id={self.id}, title={self.title})>"


class Revision(Base):
    """One revision of a dataset; owns at most one cube file."""

    __tablename__ = "revisions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    dataset_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("datasets.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    revision_index: Mapped[int] = mapped_column(
        Integer, nullable=False, default=1, comment="1-based revision number"
    )
    cube_path: Mapped[str | None] = mapped_column(
        String(1024), nullable=True, comment="Path of the last assembled cube file"
    )
    cube_built_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    dataset: Mapped[Dataset] = relationship("Dataset", back_populates="revisions")
    data_table: Mapped["DataTable | None"] = relationship(
        "DataTable",
        back_populates="revision",
        cascade="all, delete-orphan",
        lazy="selectin",
        uselist=False,
    )

    __table_args__ = (
        UniqueConstraint("dataset_id", "revision_index", name="uq_revision_index"),
    )

    def __repr__(self) -> str:
        return f"<Revision(id={self.id}, index={self.revision_index})>"


class DataTable(Base):
    """The uploaded fact table file for a revision."""

    __tablename__ = "data_tables"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    revision_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("revisions.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    filename: Mapped[str] = mapped_column(
        String(255), nullable=False, comment="Blob store key"
    )
    original_filename: Mapped[str] = mapped_column(String(255), nullable=False)
    file_type: Mapped[str] = mapped_column(
        String(16), nullable=False, comment="csv, csv.gz, parquet, json or json.gz"
    )
    uploaded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    revision: Mapped[Revision] = relationship("Revision", back_populates="data_table")
    descriptions: Mapped[list["DataTableDescription"]] = relationship(
        "DataTableDescription",
        back_populates="data_table",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="DataTableDescription.column_index",
    )

    @property
    def column_names(self) -> list[str]:
        return [desc.column_name for desc in self.descriptions]


class DataTableDescription(Base):
    """A column detected in an uploaded fact table."""

    __tablename__ = "data_table_descriptions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    data_table_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("data_tables.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    column_name: Mapped[str] = mapped_column(String(255), nullable=False)
    column_index: Mapped[int] = mapped_column(Integer, nullable=False)
    column_datatype: Mapped[str] = mapped_column(
        String(64), nullable=False, comment="DuckDB type detected on load"
    )

    data_table: Mapped[DataTable] = relationship(
        "DataTable", back_populates="descriptions"
    )


class FactTableColumn(Base):
    """A classified fact table column."""

    __tablename__ = "fact_table_columns"

    dataset_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("datasets.id", ondelete="CASCADE"),
        primary_key=True,
    )
    column_name: Mapped[str] = mapped_column(String(255), primary_key=True)
    column_index: Mapped[int] = mapped_column(Integer, nullable=False)
    column_datatype: Mapped[str] = mapped_column(String(64), nullable=False)
    column_type: Mapped[FactTableColumnType] = mapped_column(
        SAEnum(
            FactTableColumnType,
            native_enum=False,
            length=32,
            values_callable=_enum_values,
        ),
        nullable=False,
        default=FactTableColumnType.UNKNOWN,
        comment="Role assigned by classification",
    )

    dataset: Mapped[Dataset] = relationship(
        "Dataset", back_populates="fact_table_columns"
    )

    __table_args__ = (Index("ix_fact_column_type", "dataset_id", "column_type"),)

    def __repr__(self) -> str:
        return (
            f"<FactTableColumn(name={self.column_name}, "
            f"type={self.column_type.value})>"
        )


class Measure(Base):
    __tablename__ = "measures"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    dataset_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("datasets.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    fact_table_column: Mapped[str] = mapped_column(String(255), nullable=False)

    dataset: Mapped[Dataset] = relationship("Dataset", back_populates="measure")
