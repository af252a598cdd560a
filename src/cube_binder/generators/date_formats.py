"""
Date format code templates.

Year codes are built from a year template (``YYYY``, ``YYYY-YY``, ...);
quarter and month codes append a marker template to the year code. The year a
code names is the year its period *starts* in, so for a financial year
starting April 2020 the year code under ``YYYY-YY`` is ``2020-21``.
"""

from dataclasses import dataclass
from datetime import date, datetime

from ..shared.exceptions import MissingParameterError, StructuralError, UnknownFormatCodeError
from ..shared.i18n import MONTH_ABBREVIATIONS
from ..shared.models import DateExtractor, YearType

DEFAULT_YEAR_FORMAT = "YYYY"

YEAR_FORMATS = {
    "YYYYYYYY": "{start}{end}",
    "YYYY/YYYY": "{start}/{end}",
    "YYYY-YYYY": "{start}-{end}",
    "YYYYYY": "{start}{end_short}",
    "YYYY/YY": "{start}/{end_short}",
    "YYYY-YY": "{start}-{end_short}",
    "YYYY": "{start}",
}

QUARTER_FORMATS = {
    "QX": "Q{quarter}",
    "_QX": "_Q{quarter}",
    "X": "{quarter}",
    "_X": "_{quarter}",
    "-X": "-{quarter}",
}

MONTH_FORMATS = {
    "MMM": "{month_abbr}",
    "mMM": "m{month:02d}",
    "mm": "{month:02d}",
}

# Explicit specific-date formats and their strptime equivalents
SPECIFIC_DATE_FORMATS = {
    "dd/MM/yyyy": "%d/%m/%Y",
    "dd-MM-yyyy": "%d-%m-%Y",
    "yyyy-MM-dd": "%Y-%m-%d",
    "yyyyMMdd": "%Y%m%d",
}
_SPECIFIC_DATE_ALIASES = {
    "DD/MM/YYYY": "dd/MM/yyyy",
    "DD-MM-YYYY": "dd-MM-yyyy",
    "YYYY-MM-DD": "yyyy-MM-dd",
    "YYYYMMDD": "yyyyMMdd",
}

# (month, day) each year type starts on
YEAR_STARTS = {
    YearType.CALENDAR: (1, 1),
    YearType.FINANCIAL: (4, 1),
    YearType.TAX: (4, 6),
    YearType.ACADEMIC: (9, 1),
    YearType.METEOROLOGICAL: (3, 1),
}


@dataclass(frozen=True)
class PeriodFormats:
    """Resolved code templates for one date extractor."""

    year: str
    quarter: str | None = None
    month: str | None = None

    def year_code(self, start_year: int) -> str:
        end_year = start_year + 1
        return self.year.format(
            start=f"{start_year:04d}",
            end=f"{end_year:04d}",
            end_short=f"{end_year % 100:02d}",
        )

    def quarter_code(self, start_year: int, quarter: int) -> str:
        if self.quarter is None:
            raise MissingParameterError("quarter_format")
        return self.year_code(start_year) + self.quarter.format(quarter=quarter)

    def month_code(self, start_year: int, month: int) -> str:
        if self.month is None:
            raise MissingParameterError("month_format")
        marker = self.month.format(month=month, month_abbr=MONTH_ABBREVIATIONS[month - 1])
        return self.year_code(start_year) + marker


def resolve_formats(extractor: DateExtractor) -> PeriodFormats:
    """Look up the templates named by ``extractor``; raise on unknown codes."""
    year_code = (extractor.year_format or DEFAULT_YEAR_FORMAT).upper()
    if year_code not in YEAR_FORMATS:
        raise UnknownFormatCodeError("year", year_code, list(YEAR_FORMATS))

    quarter = None
    if extractor.quarter_format is not None:
        if extractor.quarter_format not in QUARTER_FORMATS:
            raise UnknownFormatCodeError(
                "quarter", extractor.quarter_format, list(QUARTER_FORMATS)
            )
        quarter = QUARTER_FORMATS[extractor.quarter_format]

    month = None
    if extractor.month_format is not None:
        if extractor.month_format not in MONTH_FORMATS:
            raise UnknownFormatCodeError("month", extractor.month_format, list(MONTH_FORMATS))
        month = MONTH_FORMATS[extractor.month_format]

    return PeriodFormats(year=YEAR_FORMATS[year_code], quarter=quarter, month=month)


def year_start(extractor: DateExtractor) -> tuple[int, int]:
    """(month, day) the extractor's years begin on."""
    if extractor.year_type != YearType.ROLLING:
        return YEAR_STARTS[extractor.year_type]

    if extractor.start_month is None:
        raise MissingParameterError("start_month", "rolling years need a start month")
    if extractor.start_day is None:
        raise MissingParameterError("start_day", "rolling years need a start day")
    try:
        # 2001 is not a leap year, so 29 February is rejected here
        date(2001, extractor.start_month, extractor.start_day)
    except ValueError as e:
        raise StructuralError(
            f"Invalid rolling year start {extractor.start_day}/{extractor.start_month}"
        ) from e
    return extractor.start_month, extractor.start_day


def specific_date_pattern(date_format: str) -> str:
    """strptime pattern for an explicit date format code."""
    code = _SPECIFIC_DATE_ALIASES.get(date_format, date_format)
    if code not in SPECIFIC_DATE_FORMATS:
        raise UnknownFormatCodeError("date", date_format, list(SPECIFIC_DATE_FORMATS))
    return SPECIFIC_DATE_FORMATS[code]


def parse_specific_date(value: str, pattern: str) -> datetime | None:
    """Parse ``value`` with a strptime pattern; None if it does not match."""
    try:
        return datetime.strptime(value.strip(), pattern)
    except ValueError:
        return None
