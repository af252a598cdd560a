"""
Unit tests for the date reference table generator.

Tests verify the generated periods (codes, half-open intervals, parents and
localised descriptions) for each year type, the fifth-quarter mode and
specific dates, plus a generate-then-bind round trip property.
"""

import asyncio
from collections import Counter
from datetime import datetime
from unittest.mock import MagicMock

import pandas as pd
import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from cube_binder.config.models import BinderConfig
from cube_binder.db.duckdb_engine import CubeEngine
from cube_binder.db.models import Dataset, Dimension
from cube_binder.generators.date_formats import MONTH_FORMATS, QUARTER_FORMATS, YEAR_FORMATS
from cube_binder.generators.date_periods import (
    DATE_TABLE_COLUMNS,
    generate_reference_items,
    reference_frame,
)
from cube_binder.services.binders import BindingContext, DateBinder
from cube_binder.services.fact_table import FACT_TABLE
from cube_binder.shared.exceptions import MissingParameterError, UnknownFormatCodeError
from cube_binder.shared.models import (
    DateExtractor,
    DatePatchRequest,
    DimensionType,
    PeriodType,
    YearType,
)

LANGUAGES = ["en-gb", "cy-gb"]


def _by_code(items, language="en-gb"):
    return {item.date_code: item for item in items if item.language == language}


class TestCalendarYears:
    """Test plain calendar year generation."""

    def test_one_row_per_year_per_language(self):
        """Test that every year between the earliest and latest gets a row per language."""
        items = generate_reference_items(
            DateExtractor(year_format="YYYY"), ["2020", "2022", "2021"], LANGUAGES
        )

        assert len(items) == 6
        assert Counter(item.language for item in items) == {"en-gb": 3, "cy-gb": 3}
        assert set(_by_code(items)) == {"2020", "2021", "2022"}

    def test_gaps_between_years_are_filled(self):
        """Test that years missing from the values are still generated."""
        items = generate_reference_items(DateExtractor(), ["2018", "2021"], ["en-gb"])
        assert [item.date_code for item in items] == ["2018", "2019", "2020", "2021"]

    def test_half_open_intervals(self):
        """Test that each year ends exactly where the next begins."""
        items = generate_reference_items(DateExtractor(), ["2020", "2021"], ["en-gb"])
        first, second = items
        assert first.start_instant == datetime(2020, 1, 1)
        assert first.end_instant == datetime(2021, 1, 1)
        assert second.start_instant == first.end_instant

    def test_labels_and_descriptions(self):
        """Test the calendar year description and localised period label."""
        items = generate_reference_items(DateExtractor(), ["2020"], LANGUAGES)
        english = _by_code(items, "en-gb")["2020"]
        welsh = _by_code(items, "cy-gb")["2020"]

        assert english.description == "2020"
        assert english.period_type == PeriodType.YEAR
        assert english.date_type == "Calendar year"
        assert welsh.date_type == "Calendr blwyddyn"
        assert english.parent_date_code is None

    def test_values_without_a_year_prefix(self):
        """Test that values with no four digit year generate nothing."""
        assert generate_reference_items(DateExtractor(), ["abc", "20"], LANGUAGES) == []

    def test_none_values_are_ignored(self):
        """Test that missing values do not affect the generated range."""
        items = generate_reference_items(DateExtractor(), [None, "2020", None], ["en-gb"])
        assert [item.date_code for item in items] == ["2020"]

    def test_languages_are_lowercased(self):
        """Test that output locales are stored in lower case."""
        items = generate_reference_items(DateExtractor(), ["2020"], ["en-GB"])
        assert items[0].language == "en-gb"


class TestFinancialYears:
    """Test financial years with quarters and months."""

    @pytest.fixture
    def items(self):
        extractor = DateExtractor(
            year_type=YearType.FINANCIAL,
            year_format="YYYY-YY",
            quarter_format="QX",
            month_format="MMM",
        )
        return generate_reference_items(extractor, ["2020-21Q1", "2020-21Jan"], LANGUAGES)

    def test_counts(self, items):
        """Test one year, four quarters and twelve months per language."""
        english = [item for item in items if item.language == "en-gb"]
        periods = Counter(item.period_type for item in english)
        assert periods == {PeriodType.YEAR: 1, PeriodType.QUARTER: 4, PeriodType.MONTH: 12}

    def test_year(self, items):
        """Test the financial year spans April to April."""
        year = _by_code(items)["2020-21"]
        assert year.start_instant == datetime(2020, 4, 1)
        assert year.end_instant == datetime(2021, 4, 1)
        assert year.description == "2020-21"
        assert year.date_type == "Financial year"

    def test_quarter(self, items):
        """Test the first quarter's interval, parent and descriptions."""
        quarter = _by_code(items)["2020-21Q1"]
        assert quarter.start_instant == datetime(2020, 4, 1)
        assert quarter.end_instant == datetime(2020, 7, 1)
        assert quarter.parent_date_code == "2020-21"
        assert quarter.description == "Q1 2020-21"
        assert quarter.date_type == "Financial quarter"
        assert _by_code(items, "cy-gb")["2020-21Q1"].description == "Ch1 2020-21"

    def test_month_crossing_calendar_year(self, items):
        """Test that January belongs to the fourth quarter of the previous start year."""
        january = _by_code(items)["2020-21Jan"]
        assert january.start_instant == datetime(2021, 1, 1)
        assert january.end_instant == datetime(2021, 2, 1)
        assert january.parent_date_code == "2020-21Q4"
        assert january.description == "January 2021"
        assert _by_code(items, "cy-gb")["2020-21Jan"].description == "Ionawr 2021"

    def test_months_partition_the_year(self, items):
        """Test that consecutive months are contiguous and cover the year."""
        months = sorted(
            (item for item in items if item.language == "en-gb" and item.period_type == PeriodType.MONTH),
            key=lambda item: item.start_instant,
        )
        assert months[0].start_instant == datetime(2020, 4, 1)
        assert months[-1].end_instant == datetime(2021, 4, 1)
        for previous, current in zip(months, months[1:]):
            assert previous.end_instant == current.start_instant


class TestOtherYearTypes:
    """Test tax, academic, meteorological and rolling years."""

    def test_tax_year_quarters(self):
        """Test that tax quarters start on the sixth of the month."""
        extractor = DateExtractor(
            year_type=YearType.TAX, year_format="YYYY/YY", quarter_format="_QX"
        )
        items = _by_code(generate_reference_items(extractor, ["2020/21_Q2"], ["en-gb"]))
        assert items["2020/21"].start_instant == datetime(2020, 4, 6)
        assert items["2020/21_Q2"].start_instant == datetime(2020, 7, 6)
        assert items["2020/21_Q2"].end_instant == datetime(2020, 10, 6)

    def test_month_without_quarters_has_year_parent(self):
        """Test that months hang off the year when no quarter format is given."""
        extractor = DateExtractor(year_type=YearType.ACADEMIC, month_format="mMM")
        items = _by_code(generate_reference_items(extractor, ["2019m09"], ["en-gb"]))
        september = items["2019m09"]
        assert september.start_instant == datetime(2019, 9, 1)
        assert september.parent_date_code == "2019"
        assert "2019m08" in items
        assert items["2019m08"].start_instant == datetime(2020, 8, 1)

    def test_meteorological_year_description(self):
        """Test that non-calendar year descriptions span two years."""
        extractor = DateExtractor(year_type=YearType.METEOROLOGICAL)
        items = generate_reference_items(extractor, ["2021"], ["en-gb"])
        assert items[0].description == "2021-22"
        assert items[0].start_instant == datetime(2021, 3, 1)

    def test_rolling_year(self):
        """Test that a rolling year starts on its configured day."""
        extractor = DateExtractor(year_type=YearType.ROLLING, start_month=7, start_day=15)
        items = generate_reference_items(extractor, ["2020"], ["en-gb"])
        assert items[0].start_instant == datetime(2020, 7, 15)
        assert items[0].end_instant == datetime(2021, 7, 15)
        assert items[0].date_type == "Rolling year"

    def test_rolling_year_without_start(self):
        """Test that a rolling year without a start is rejected."""
        with pytest.raises(MissingParameterError):
            generate_reference_items(DateExtractor(year_type=YearType.ROLLING), ["2020"], LANGUAGES)

    def test_unknown_format_code(self):
        """Test that an unknown template surfaces from the generator."""
        with pytest.raises(UnknownFormatCodeError):
            generate_reference_items(DateExtractor(year_format="YY"), ["2020"], LANGUAGES)


class TestFifthQuarter:
    """Test the fifth-quarter annual total mode."""

    def test_annual_total_uses_fifth_quarter_code(self):
        """Test that the year row is coded as Q5 and quarters point at it."""
        extractor = DateExtractor(
            quarter_format="QX", month_format="MMM", fifth_quarter_is_annual_total=True
        )
        items = _by_code(generate_reference_items(extractor, ["2020Q5"], ["en-gb"]))

        assert set(items) == {"2020Q5", "2020Q1", "2020Q2", "2020Q3", "2020Q4"}
        assert items["2020Q5"].period_type == PeriodType.YEAR
        assert items["2020Q5"].start_instant == datetime(2020, 1, 1)
        assert items["2020Q5"].end_instant == datetime(2021, 1, 1)
        assert items["2020Q1"].parent_date_code == "2020Q5"

    def test_needs_quarter_format(self):
        """Test that the fifth-quarter mode needs a quarter template."""
        extractor = DateExtractor(fifth_quarter_is_annual_total=True)
        with pytest.raises(MissingParameterError, match="quarter_format"):
            generate_reference_items(extractor, ["2020"], LANGUAGES)


class TestSpecificDates:
    """Test specific-date mode."""

    def test_one_day_per_parsed_value(self):
        """Test that each parseable value becomes a one day period."""
        extractor = DateExtractor(date_format="dd/MM/yyyy")
        items = generate_reference_items(
            extractor, ["01/02/2021", "not a date", "03/02/2021"], LANGUAGES
        )

        english = _by_code(items)
        assert set(english) == {"01/02/2021", "03/02/2021"}
        day = english["03/02/2021"]
        assert day.start_instant == datetime(2021, 2, 3)
        assert day.end_instant == datetime(2021, 2, 4)
        assert day.period_type == PeriodType.SPECIFIC_DAY
        assert day.date_type == "day"
        assert _by_code(items, "cy-gb")["03/02/2021"].date_type == "diwrnod"

    def test_description_is_normalised(self):
        """Test that descriptions use dd/MM/yyyy whatever the source format."""
        extractor = DateExtractor(date_format="yyyyMMdd")
        items = generate_reference_items(extractor, ["20210203"], ["en-gb"])
        assert items[0].date_code == "20210203"
        assert items[0].description == "03/02/2021"


class TestReferenceFrame:
    """Test the engine layout of generated rows."""

    def test_frame_layout(self):
        """Test column order and value mapping of the reference frame."""
        extractor = DateExtractor(quarter_format="QX")
        frame = reference_frame(generate_reference_items(extractor, ["2020"], ["en-gb"]))

        assert list(frame.columns) == DATE_TABLE_COLUMNS
        assert len(frame) == 5
        quarter = frame[frame["date_code"] == "2020Q1"].iloc[0]
        assert quarter["period_type"] == "quarter"
        assert quarter["hierarchy"] == "2020"
        assert quarter["start_date"] == pd.Timestamp("2020-01-01")

    def test_empty_frame(self):
        """Test that no items still yields the full column layout."""
        frame = reference_frame([])
        assert list(frame.columns) == DATE_TABLE_COLUMNS
        assert frame.empty


period_extractors = st.builds(
    DateExtractor,
    year_type=st.sampled_from(
        [YearType.CALENDAR, YearType.FINANCIAL, YearType.TAX, YearType.ACADEMIC]
    ),
    year_format=st.sampled_from(list(YEAR_FORMATS)),
    quarter_format=st.one_of(st.none(), st.sampled_from(list(QUARTER_FORMATS))),
    month_format=st.one_of(st.none(), st.sampled_from(list(MONTH_FORMATS))),
)


class TestGeneratedCalendarProperties:
    """Property tests over generated calendars."""

    @given(
        extractor=period_extractors,
        years=st.lists(st.integers(1990, 2030), min_size=1, max_size=3, unique=True),
    )
    @settings(max_examples=50, deadline=None)
    def test_codes_unique_and_intervals_valid(self, extractor, years):
        """Test that (code, language) pairs are unique and every interval is positive."""
        items = generate_reference_items(extractor, [str(y) for y in years], LANGUAGES)

        keys = [(item.date_code, item.language) for item in items]
        assert len(keys) == len(set(keys))
        assert all(item.end_instant > item.start_instant for item in items)

        codes = {item.date_code for item in items}
        assert all(
            item.parent_date_code in codes for item in items if item.parent_date_code
        )

    @given(
        extractor=period_extractors,
        years=st.lists(st.integers(2000, 2010), min_size=1, max_size=2, unique=True),
        data=st.data(),
    )
    @settings(max_examples=25, deadline=None)
    def test_generated_codes_bind_without_orphans(self, extractor, years, data):
        """Test that any sample of generated codes binds against the same extractor."""
        generated = sorted(
            {
                item.date_code
                for item in generate_reference_items(
                    extractor, [str(y) for y in years], ["en-gb"]
                )
            }
        )
        values = data.draw(st.lists(st.sampled_from(generated), min_size=1, max_size=20))
        request = DatePatchRequest(**extractor.model_dump(exclude={"kind"}))

        with CubeEngine() as engine:
            engine.create_table_from_frame(FACT_TABLE, pd.DataFrame({"Period": values}))
            ctx = BindingContext(
                engine=engine,
                dataset=Dataset(id="dataset-1"),
                dimension=Dimension(
                    id="dimension-1", fact_table_column="Period", type=DimensionType.RAW
                ),
                blob_store=MagicMock(),
                config=BinderConfig(),
            )
            result = asyncio.run(DateBinder().bind(ctx, request))

        assert result.join_column == "date_code"
        start, end = result.coverage
        assert start < end
