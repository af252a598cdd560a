"""
Localised labels used in generated reference tables.

Only the strings that end up inside reference tables live here: month names,
quarter abbreviations, period type labels, language names and note code
descriptions. Locale codes are lower-case (``en-gb``); lookups fall back to
English for a language without its own entry.
"""

from .models import PeriodType, YearType

DEFAULT_LANGUAGE = "en"

MONTH_ABBREVIATIONS = [
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
]

MONTH_NAMES = {
    "en": [
        "January", "February", "March", "April", "May", "June",
        "July", "August", "September", "October", "November", "December",
    ],
    "cy": [
        "Ionawr", "Chwefror", "Mawrth", "Ebrill", "Mai", "Mehefin",
        "Gorffennaf", "Awst", "Medi", "Hydref", "Tachwedd", "Rhagfyr",
    ],
}

QUARTER_ABBREVIATIONS = {"en": "Q", "cy": "Ch"}

# Names of each language, in each language; used to recognise language
# suffixes on lookup table columns and values in a lookup language column.
LANGUAGE_NAMES = {
    "en": {"en": "english", "cy": "welsh"},
    "cy": {"en": "saesneg", "cy": "cymraeg"},
}

YEAR_TYPE_LABELS = {
    "en": {
        YearType.CALENDAR: "Calendar",
        YearType.FINANCIAL: "Financial",
        YearType.TAX: "Tax",
        YearType.ACADEMIC: "Academic",
        YearType.METEOROLOGICAL: "Meteorological",
        YearType.ROLLING: "Rolling",
    },
    "cy": {
        YearType.CALENDAR: "Calendr",
        YearType.FINANCIAL: "Ariannol",
        YearType.TAX: "Treth",
        YearType.ACADEMIC: "Academaidd",
        YearType.METEOROLOGICAL: "Meteorolegol",
        YearType.ROLLING: "Treigl",
    },
}

PERIOD_LABELS = {
    "en": {
        PeriodType.YEAR: "year",
        PeriodType.QUARTER: "quarter",
        PeriodType.MONTH: "month",
        PeriodType.SPECIFIC_DAY: "day",
    },
    "cy": {
        PeriodType.YEAR: "blwyddyn",
        PeriodType.QUARTER: "chwarter",
        PeriodType.MONTH: "mis",
        PeriodType.SPECIFIC_DAY: "diwrnod",
    },
}

NOTE_CODE_DESCRIPTIONS = {
    "en": {
        "average": "Average",
        "break_in_series": "Break in series",
        "confidential": "Confidential information",
        "estimated": "Estimated",
        "forecast": "Forecast",
        "low_figure": "Low figure",
        "not_statistically_significant": "Not statistically significant",
        "provisional": "Provisional",
        "revised": "Revised",
        "statistically_significant_at_level_1": "Statistically significant at level 1",
        "statistically_significant_at_level_2": "Statistically significant at level 2",
        "statistically_significant_at_level_3": "Statistically significant at level 3",
        "total": "Total",
        "low_reliability": "Low reliability",
        "not_recorded": "Not recorded",
        "missing_data": "Missing data",
        "not_applicable": "Not applicable",
    },
    "cy": {
        "average": "Cyfartaledd",
        "break_in_series": "Toriad yn y gyfres",
        "confidential": "Gwybodaeth gyfrinachol",
        "estimated": "Amcangyfrif",
        "forecast": "Rhagolwg",
        "low_figure": "Ffigur isel",
        "not_statistically_significant": "Ddim yn ystadegol arwyddocaol",
        "provisional": "Dros dro",
        "revised": "Diwygiedig",
        "statistically_significant_at_level_1": "Ystadegol arwyddocaol ar lefel 1",
        "statistically_significant_at_level_2": "Ystadegol arwyddocaol ar lefel 2",
        "statistically_significant_at_level_3": "Ystadegol arwyddocaol ar lefel 3",
        "total": "Cyfanswm",
        "low_reliability": "Dibynadwyedd isel",
        "not_recorded": "Heb ei gofnodi",
        "missing_data": "Data ar goll",
        "not_applicable": "Amherthnasol",
    },
}


def language_of(locale: str) -> str:
    """Return the two-letter language part of a locale code (``cy-gb`` -> ``cy``)."""
    return locale.lower().split("-")[0]


def _table(mapping: dict, locale: str) -> dict:
    return mapping.get(language_of(locale), mapping[DEFAULT_LANGUAGE])


def month_name(month: int, locale: str) -> str:
    return _table(MONTH_NAMES, locale)[month - 1]


def quarter_abbreviation(locale: str) -> str:
    return _table(QUARTER_ABBREVIATIONS, locale)


def period_label(period_type: PeriodType, year_type: YearType | None, locale: str) -> str:
    """Human readable period type, e.g. ``Financial quarter``."""
    label = _table(PERIOD_LABELS, locale)[period_type]
    if year_type is None or period_type == PeriodType.SPECIFIC_DAY:
        return label
    prefix = _table(YEAR_TYPE_LABELS, locale)[year_type]
    return f"{prefix} {label}"


def note_code_description(tag: str, locale: str) -> str:
    return _table(NOTE_CODE_DESCRIPTIONS, locale)[tag]


def language_names_for(locale: str) -> set[str]:
    """Every name the given locale's language is known by, in any language."""
    lang = language_of(locale)
    return {names[lang] for names in LANGUAGE_NAMES.values() if lang in names}
