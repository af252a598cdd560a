"""
Reference table generators.

Pure functions that turn a semantic description (date format parameters, a
lookup table's column list, the note code list) into reference rows or the
SQL that materialises them. Nothing here touches storage.
"""

from .date_periods import DATE_TABLE_COLUMNS, generate_reference_items, reference_frame
from .lookup_tables import derive_lookup_extractor, find_join_column, reference_table_name
from .note_codes import NOTE_CODES, note_codes_frame, split_note_codes

__all__ = [
    "DATE_TABLE_COLUMNS",
    "NOTE_CODES",
    "derive_lookup_extractor",
    "find_join_column",
    "generate_reference_items",
    "note_codes_frame",
    "reference_frame",
    "reference_table_name",
    "split_note_codes",
]
