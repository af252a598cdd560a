"""
Date reference table generator.

Turns a DateExtractor plus the distinct raw values of a fact table column into
the rows of a calendar reference table. Two modes:

- Specific dates (``date_format`` set): one row per distinct parseable value
  per language, each spanning one day.
- Periods: every year (and optionally quarter and month) from the earliest to
  the latest year found in the values, one row per period per language.

Intervals are half-open: ``end_instant`` is the start of the next period.
"""

import logging
from collections.abc import Iterable
from datetime import datetime, timedelta

import pandas as pd

from ..shared.exceptions import MissingParameterError
from ..shared.i18n import month_name, period_label, quarter_abbreviation
from ..shared.models import DateExtractor, DateReferenceItem, PeriodType, YearType
from .date_formats import (
    PeriodFormats,
    parse_specific_date,
    resolve_formats,
    specific_date_pattern,
    year_start,
)

logger = logging.getLogger(__name__)

# Column layout of a date reference table inside the query engine
DATE_TABLE_COLUMNS = [
    "date_code",
    "language",
    "description",
    "start_date",
    "end_date",
    "period_type",
    "date_type",
    "hierarchy",
]


def _add_months(start: datetime, months: int) -> datetime:
    return (pd.Timestamp(start) + pd.DateOffset(months=months)).to_pydatetime()


def _years_in(values: Iterable[str]) -> list[int]:
    years = []
    for value in values:
        prefix = value.strip()[:4]
        if len(prefix) == 4 and prefix.isdigit():
            years.append(int(prefix))
    return years


def _year_description(year_type: YearType, start_year: int) -> str:
    if year_type == YearType.CALENDAR:
        return f"{start_year:04d}"
    return f"{start_year:04d}-{(start_year + 1) % 100:02d}"


def _quarter_description(year_type: YearType, start_year: int, quarter: int, locale: str) -> str:
    return f"{quarter_abbreviation(locale)}{quarter} {_year_description(year_type, start_year)}"


class _PeriodWriter:
    """Accumulates one row per language for each generated period."""

    def __init__(self, extractor: DateExtractor, languages: list[str]):
        self.extractor = extractor
        self.languages = [lang.lower() for lang in languages]
        self.items: list[DateReferenceItem] = []

    def emit(
        self,
        code: str,
        period_type: PeriodType,
        start: datetime,
        end: datetime,
        describe,
        parent: str | None = None,
    ) -> None:
        for locale in self.languages:
            self.items.append(
                DateReferenceItem(
                    date_code=code,
                    language=locale,
                    description=describe(locale),
                    start_instant=start,
                    end_instant=end,
                    period_type=period_type,
                    date_type=period_label(period_type, self.extractor.year_type, locale),
                    parent_date_code=parent,
                )
            )


def _specific_date_items(
    extractor: DateExtractor, values: list[str], languages: list[str]
) -> list[DateReferenceItem]:
    pattern = specific_date_pattern(extractor.date_format)
    writer = _PeriodWriter(extractor, languages)
    skipped = 0
    for value in values:
        parsed = parse_specific_date(value, pattern)
        if parsed is None:
            skipped += 1
            continue
        for locale in writer.languages:
            writer.items.append(
                DateReferenceItem(
                    date_code=value,
                    language=locale,
                    description=parsed.strftime("%d/%m/%Y"),
                    start_instant=parsed,
                    end_instant=parsed + timedelta(days=1),
                    period_type=PeriodType.SPECIFIC_DAY,
                    date_type=period_label(PeriodType.SPECIFIC_DAY, None, locale),
                )
            )
    if skipped:
        logger.debug(f"{skipped} values did not parse with date format {extractor.date_format}")
    return writer.items


def _period_items(
    extractor: DateExtractor, values: list[str], languages: list[str]
) -> list[DateReferenceItem]:
    formats: PeriodFormats = resolve_formats(extractor)
    start_month, start_day = year_start(extractor)
    fifth_quarter = extractor.fifth_quarter_is_annual_total
    if fifth_quarter and formats.quarter is None:
        raise MissingParameterError(
            "quarter_format", "a fifth quarter annual total needs a quarter format"
        )

    years = _years_in(values)
    if not years:
        logger.debug("No value starts with a four digit year; generated no periods")
        return []

    year_type = extractor.year_type
    writer = _PeriodWriter(extractor, languages)

    for start_year in range(min(years), max(years) + 1):
        year_begin = datetime(start_year, start_month, start_day)
        year_end = _add_months(year_begin, 12)
        year_code = formats.year_code(start_year)

        if fifth_quarter:
            annual_code = formats.quarter_code(start_year, 5)
            writer.emit(
                annual_code,
                PeriodType.YEAR,
                year_begin,
                year_end,
                lambda locale, y=start_year: _year_description(year_type, y),
            )
            quarter_parent = annual_code
        else:
            writer.emit(
                year_code,
                PeriodType.YEAR,
                year_begin,
                year_end,
                lambda locale, y=start_year: _year_description(year_type, y),
            )
            quarter_parent = year_code

        if formats.quarter is not None:
            for quarter in range(1, 5):
                writer.emit(
                    formats.quarter_code(start_year, quarter),
                    PeriodType.QUARTER,
                    _add_months(year_begin, 3 * (quarter - 1)),
                    _add_months(year_begin, 3 * quarter),
                    lambda locale, y=start_year, q=quarter: _quarter_description(
                        year_type, y, q, locale
                    ),
                    parent=quarter_parent,
                )

        if formats.month is not None and not fifth_quarter:
            for offset in range(12):
                month_begin = _add_months(year_begin, offset)
                if formats.quarter is not None:
                    parent = formats.quarter_code(start_year, offset // 3 + 1)
                else:
                    parent = year_code
                writer.emit(
                    formats.month_code(start_year, month_begin.month),
                    PeriodType.MONTH,
                    month_begin,
                    _add_months(year_begin, offset + 1),
                    lambda locale, m=month_begin: f"{month_name(m.month, locale)} {m.year}",
                    parent=parent,
                )

    return writer.items


def generate_reference_items(
    extractor: DateExtractor, values: Iterable, languages: list[str]
) -> list[DateReferenceItem]:
    """
    Build the date reference rows for the distinct values of a column.

    Args:
        extractor: Date format parameters
        values: Distinct raw values of the fact table column (None is ignored)
        languages: Output locale codes

    Returns:
        One DateReferenceItem per generated period per language

    Raises:
        UnknownFormatCodeError: A format code is not a known template
        MissingParameterError: Rolling years without a start, or a fifth
            quarter without a quarter format
    """
    distinct = sorted({str(value) for value in values if value is not None})
    if extractor.is_specific_date:
        items = _specific_date_items(extractor, distinct, languages)
    else:
        items = _period_items(extractor, distinct, languages)
    logger.info(
        f"Generated {len(items)} date reference rows for {len(distinct)} distinct values"
    )
    return items


def reference_frame(items: list[DateReferenceItem]) -> pd.DataFrame:
    """Lay out reference rows as the date table the query engine loads."""
    rows = [
        {
            "date_code": item.date_code,
            "language": item.language,
            "description": item.description,
            "start_date": item.start_instant,
            "end_date": item.end_instant,
            "period_type": item.period_type.value,
            "date_type": item.date_type,
            "hierarchy": item.parent_date_code,
        }
        for item in items
    ]
    frame = pd.DataFrame(rows, columns=DATE_TABLE_COLUMNS)
    frame["start_date"] = pd.to_datetime(frame["start_date"])
    frame["end_date"] = pd.to_datetime(frame["end_date"])
    return frame.astype({"date_code": "string", "hierarchy": "string"})
