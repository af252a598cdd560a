"""Standard statistical note codes and their reference table."""

import pandas as pd

from ..shared.i18n import note_code_description

NOTE_CODES = [
    ("a", "average"),
    ("b", "break_in_series"),
    ("c", "confidential"),
    ("e", "estimated"),
    ("f", "forecast"),
    ("k", "low_figure"),
    ("ns", "not_statistically_significant"),
    ("p", "provisional"),
    ("r", "revised"),
    ("s", "statistically_significant_at_level_1"),
    ("ss", "statistically_significant_at_level_2"),
    ("sss", "statistically_significant_at_level_3"),
    ("t", "total"),
    ("u", "low_reliability"),
    ("w", "not_recorded"),
    ("x", "missing_data"),
    ("z", "not_applicable"),
]

NOTE_CODE_VALUES = frozenset(code for code, _ in NOTE_CODES)

NOTE_CODES_JOIN_COLUMN = "code"


def split_note_codes(cell) -> list[str]:
    """Codes in one cell: comma separated, case and whitespace insensitive."""
    if cell is None:
        return []
    return [part.strip().lower() for part in str(cell).split(",") if part.strip()]


def note_codes_frame(languages: list[str]) -> pd.DataFrame:
    """One row per (code, language) with the localised description."""
    rows = [
        {
            "code": code,
            "language": locale.lower(),
            "tag": tag,
            "description": note_code_description(tag, locale),
            "notes": None,
        }
        for code, tag in NOTE_CODES
        for locale in languages
    ]
    frame = pd.DataFrame(rows, columns=["code", "language", "tag", "description", "notes"])
    return frame.astype({"notes": "string"})
