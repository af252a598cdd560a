"""External collaborators: blob store and reference-data taxonomy."""

from .blob_store import BlobStore, LocalBlobStore, with_timeout
from .taxonomy import CategoryInfo, DataFrameTaxonomyStore, TaxonomyStore

__all__ = [
    "BlobStore",
    "LocalBlobStore",
    "with_timeout",
    "CategoryInfo",
    "DataFrameTaxonomyStore",
    "TaxonomyStore",
]
