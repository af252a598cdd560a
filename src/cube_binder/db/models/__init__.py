"""
SQLAlchemy ORM models for the relational store.
"""

from cube_binder.db.models.base import Base
from cube_binder.db.models.dataset import (
    DataTable,
    DataTableDescription,
    Dataset,
    FactTableColumn,
    Measure,
    Revision,
)
from cube_binder.db.models.dimension import Dimension, LookupTable

__all__ = [
    "Base",
    "Dataset",
    "Revision",
    "DataTable",
    "DataTableDescription",
    "FactTableColumn",
    "Measure",
    "Dimension",
    "LookupTable",
]
