"""
Unit tests for date format code templates.

Covers year/quarter/month code rendering, year start resolution (including
rolling years) and explicit specific-date formats.
"""

from datetime import datetime

import pytest

from cube_binder.generators.date_formats import (
    MONTH_FORMATS,
    QUARTER_FORMATS,
    YEAR_FORMATS,
    parse_specific_date,
    resolve_formats,
    specific_date_pattern,
    year_start,
)
from cube_binder.shared.exceptions import (
    MissingParameterError,
    StructuralError,
    UnknownFormatCodeError,
)
from cube_binder.shared.models import DateExtractor, YearType


class TestYearCodes:
    """Test year code rendering for every year template."""

    @pytest.mark.parametrize(
        "year_format,expected",
        [
            ("YYYYYYYY", "20202021"),
            ("YYYY/YYYY", "2020/2021"),
            ("YYYY-YYYY", "2020-2021"),
            ("YYYYYY", "202021"),
            ("YYYY/YY", "2020/21"),
            ("YYYY-YY", "2020-21"),
            ("YYYY", "2020"),
        ],
    )
    def test_year_code(self, year_format, expected):
        """Test that each year template renders the start year of the period."""
        formats = resolve_formats(DateExtractor(year_format=year_format))
        assert formats.year_code(2020) == expected

    def test_default_year_format(self):
        """Test that a missing year format falls back to YYYY."""
        formats = resolve_formats(DateExtractor())
        assert formats.year_code(1999) == "1999"

    def test_year_format_is_case_insensitive(self):
        """Test that lower-case year templates are accepted."""
        formats = resolve_formats(DateExtractor(year_format="yyyy-yy"))
        assert formats.year_code(2023) == "2023-24"

    def test_century_rollover_short_end(self):
        """Test that the two digit end year wraps at the century."""
        formats = resolve_formats(DateExtractor(year_format="YYYY-YY"))
        assert formats.year_code(1999) == "1999-00"

    def test_unknown_year_format(self):
        """Test that an unknown year template is rejected with the supported list."""
        with pytest.raises(UnknownFormatCodeError, match="Unknown year format") as exc_info:
            resolve_formats(DateExtractor(year_format="YY"))
        assert exc_info.value.supported == list(YEAR_FORMATS)


class TestQuarterAndMonthCodes:
    """Test quarter and month markers appended to the year code."""

    @pytest.mark.parametrize(
        "quarter_format,expected",
        [
            ("QX", "2021Q3"),
            ("_QX", "2021_Q3"),
            ("X", "20213"),
            ("_X", "2021_3"),
            ("-X", "2021-3"),
        ],
    )
    def test_quarter_code(self, quarter_format, expected):
        """Test each quarter marker template."""
        formats = resolve_formats(DateExtractor(quarter_format=quarter_format))
        assert formats.quarter_code(2021, 3) == expected

    @pytest.mark.parametrize(
        "month_format,expected",
        [("MMM", "2021Feb"), ("mMM", "2021m02"), ("mm", "202102")],
    )
    def test_month_code(self, month_format, expected):
        """Test each month marker template."""
        formats = resolve_formats(DateExtractor(month_format=month_format))
        assert formats.month_code(2021, 2) == expected

    def test_quarter_code_without_quarter_format(self):
        """Test that asking for a quarter code without a template raises."""
        formats = resolve_formats(DateExtractor())
        with pytest.raises(MissingParameterError, match="quarter_format"):
            formats.quarter_code(2021, 1)

    def test_month_code_without_month_format(self):
        """Test that asking for a month code without a template raises."""
        formats = resolve_formats(DateExtractor())
        with pytest.raises(MissingParameterError, match="month_format"):
            formats.month_code(2021, 1)

    def test_unknown_quarter_format(self):
        """Test that an unknown quarter template is rejected."""
        with pytest.raises(UnknownFormatCodeError) as exc_info:
            resolve_formats(DateExtractor(quarter_format="Q"))
        assert exc_info.value.kind == "quarter"
        assert exc_info.value.supported == list(QUARTER_FORMATS)

    def test_unknown_month_format(self):
        """Test that an unknown month template is rejected."""
        with pytest.raises(UnknownFormatCodeError) as exc_info:
            resolve_formats(DateExtractor(month_format="MM"))
        assert exc_info.value.kind == "month"
        assert exc_info.value.supported == list(MONTH_FORMATS)

    def test_quarter_format_is_case_sensitive(self):
        """Test that quarter templates must match exactly."""
        with pytest.raises(UnknownFormatCodeError):
            resolve_formats(DateExtractor(quarter_format="qx"))


class TestYearStart:
    """Test the (month, day) each year type starts on."""

    @pytest.mark.parametrize(
        "year_type,expected",
        [
            (YearType.CALENDAR, (1, 1)),
            (YearType.FINANCIAL, (4, 1)),
            (YearType.TAX, (4, 6)),
            (YearType.ACADEMIC, (9, 1)),
            (YearType.METEOROLOGICAL, (3, 1)),
        ],
    )
    def test_fixed_year_types(self, year_type, expected):
        """Test the fixed start of each named year type."""
        assert year_start(DateExtractor(year_type=year_type)) == expected

    def test_rolling_year(self):
        """Test that a rolling year starts on the given day and month."""
        extractor = DateExtractor(year_type=YearType.ROLLING, start_month=7, start_day=15)
        assert year_start(extractor) == (7, 15)

    def test_rolling_year_needs_start_month(self):
        """Test that a rolling year without a start month is rejected."""
        extractor = DateExtractor(year_type=YearType.ROLLING, start_day=1)
        with pytest.raises(MissingParameterError, match="start_month"):
            year_start(extractor)

    def test_rolling_year_needs_start_day(self):
        """Test that a rolling year without a start day is rejected."""
        extractor = DateExtractor(year_type=YearType.ROLLING, start_month=1)
        with pytest.raises(MissingParameterError, match="start_day"):
            year_start(extractor)

    def test_rolling_year_invalid_date(self):
        """Test that an impossible start date is a structural error."""
        extractor = DateExtractor(year_type=YearType.ROLLING, start_month=2, start_day=30)
        with pytest.raises(StructuralError, match="Invalid rolling year start"):
            year_start(extractor)

    def test_rolling_year_rejects_leap_day(self):
        """Test that 29 February cannot start a rolling year."""
        extractor = DateExtractor(year_type=YearType.ROLLING, start_month=2, start_day=29)
        with pytest.raises(StructuralError):
            year_start(extractor)


class TestSpecificDates:
    """Test explicit specific-date formats."""

    @pytest.mark.parametrize(
        "date_format,value",
        [
            ("dd/MM/yyyy", "05/03/2021"),
            ("dd-MM-yyyy", "05-03-2021"),
            ("yyyy-MM-dd", "2021-03-05"),
            ("yyyyMMdd", "20210305"),
            ("DD/MM/YYYY", "05/03/2021"),
            ("YYYYMMDD", "20210305"),
        ],
    )
    def test_parse_each_format(self, date_format, value):
        """Test that every supported format (and its alias) parses."""
        pattern = specific_date_pattern(date_format)
        assert parse_specific_date(value, pattern) == datetime(2021, 3, 5)

    def test_parse_strips_whitespace(self):
        """Test that surrounding whitespace is ignored."""
        pattern = specific_date_pattern("yyyy-MM-dd")
        assert parse_specific_date(" 2021-03-05 ", pattern) == datetime(2021, 3, 5)

    def test_unparseable_value_returns_none(self):
        """Test that a value in another format yields None rather than raising."""
        pattern = specific_date_pattern("dd/MM/yyyy")
        assert parse_specific_date("2021-03-05", pattern) is None
        assert parse_specific_date("31/02/2021", pattern) is None

    def test_unknown_date_format(self):
        """Test that an unknown date format is rejected."""
        with pytest.raises(UnknownFormatCodeError, match="Unknown date format"):
            specific_date_pattern("MM/dd/yyyy")
