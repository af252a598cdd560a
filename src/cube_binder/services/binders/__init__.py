"""
Dimension binders, one per dimension type.

``binder_for`` dispatches on the patch request variant; each variant maps to
exactly one binder.
"""

from ...shared.models import (
    DatePatchRequest,
    LookupTablePatchRequest,
    NoteCodesPatchRequest,
    NumericPatchRequest,
    RawPatchRequest,
    ReferenceDataPatchRequest,
    TextPatchRequest,
)
from .base import BindingContext, BindingResult, DimensionBinder, OrphanReport, fact_orphans
from .date import DateBinder
from .lookup import LookupTableBinder
from .note_codes import NoteCodesBinder
from .numeric import NumericBinder
from .reference_data import ReferenceDataBinder
from .text import RawBinder, TextBinder

BINDERS: dict[type, DimensionBinder] = {
    RawPatchRequest: RawBinder(),
    TextPatchRequest: TextBinder(),
    NumericPatchRequest: NumericBinder(),
    DatePatchRequest: DateBinder(),
    LookupTablePatchRequest: LookupTableBinder(),
    ReferenceDataPatchRequest: ReferenceDataBinder(),
    NoteCodesPatchRequest: NoteCodesBinder(),
}


def binder_for(request) -> DimensionBinder:
    """The binder handling ``request``'s variant."""
    try:
        return BINDERS[type(request)]
    except KeyError:
        raise TypeError(f"No binder for {type(request).__name__}") from None


__all__ = [
    "BINDERS",
    "BindingContext",
    "BindingResult",
    "DateBinder",
    "DimensionBinder",
    "LookupTableBinder",
    "NoteCodesBinder",
    "NumericBinder",
    "OrphanReport",
    "RawBinder",
    "ReferenceDataBinder",
    "TextBinder",
    "binder_for",
    "fact_orphans",
]
