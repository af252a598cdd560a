"""
Core data models for the cube binder.

This module contains the column role and dimension type enums, the extractor
tagged union persisted on each dimension, the classification and dimension
patch request models, the generated date reference row and the preview
response models.
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter, field_validator, model_validator

# ================================
# ENUMS
# ================================


class FactTableColumnType(str, Enum):
    """Semantic role of a fact table column."""

    DATA_VALUES = "data_values"
    MEASURE = "measure"
    NOTE_CODES = "note_codes"
    DIMENSION = "dimension"
    TIME = "time"
    IGNORE = "ignore"
    UNKNOWN = "unknown"


SINGLE_COLUMN_ROLES = (
    FactTableColumnType.DATA_VALUES,
    FactTableColumnType.MEASURE,
    FactTableColumnType.NOTE_CODES,
)


class DimensionType(str, Enum):
    RAW = "raw"
    TEXT = "text"
    NUMERIC = "numeric"
    LOOKUP_TABLE = "lookup_table"
    DATE = "date"
    DATE_PERIOD = "date_period"
    REFERENCE_DATA = "reference_data"
    NOTE_CODES = "note_codes"


JOINED_DIMENSION_TYPES = frozenset(
    {
        DimensionType.DATE,
        DimensionType.DATE_PERIOD,
        DimensionType.LOOKUP_TABLE,
        DimensionType.REFERENCE_DATA,
        DimensionType.NOTE_CODES,
    }
)


class YearType(str, Enum):
    """How a year is anchored on the calendar."""

    CALENDAR = "calendar"
    FINANCIAL = "financial"
    TAX = "tax"
    ACADEMIC = "academic"
    METEOROLOGICAL = "meteorological"
    ROLLING = "rolling"


class NumberType(str, Enum):
    INTEGER = "integer"
    DECIMAL = "decimal"


class PeriodType(str, Enum):
    YEAR = "year"
    QUARTER = "quarter"
    MONTH = "month"
    SPECIFIC_DAY = "specific_day"


# ================================
# EXTRACTORS (TAGGED UNION)
# ================================


class TextExtractor(BaseModel):
    kind: Literal["text"] = "text"


class NumericExtractor(BaseModel):
    """Number format a numeric dimension's values are cast to."""

    kind: Literal["numeric"] = "numeric"
    number_type: NumberType
    decimal_places: int | None = Field(None, ge=0, le=18)


class DateExtractor(BaseModel):
    """Everything needed to regenerate a date dimension's reference table."""

    kind: Literal["date"] = "date"
    year_type: YearType = YearType.CALENDAR
    year_format: str | None = Field(None, description="Year template, e.g. YYYY or YYYY-YY")
    quarter_format: str | None = Field(None, description="Quarter marker template, e.g. QX")
    month_format: str | None = Field(None, description="Month marker template, e.g. MMM")
    date_format: str | None = Field(
        None, description="Explicit specific-date format, e.g. dd/MM/yyyy"
    )
    fifth_quarter_is_annual_total: bool = False
    start_day: int | None = Field(None, ge=1, le=31)
    start_month: int | None = Field(None, ge=1, le=12)

    @property
    def is_specific_date(self) -> bool:
        return self.date_format is not None


class LanguageColumn(BaseModel):
    """A lookup table column holding text for one language."""

    name: str
    language: str | None = None


class LookupTableExtractor(BaseModel):
    """Column mapping of an uploaded lookup table."""

    kind: Literal["lookup_table"] = "lookup_table"
    join_column: str
    description_columns: list[LanguageColumn] = Field(..., min_length=1)
    notes_columns: list[LanguageColumn] = Field(default_factory=list)
    sort_column: str | None = None
    hierarchy_column: str | None = None
    language_column: str | None = None

    @property
    def is_per_language(self) -> bool:
        """True when the table has one row per (code, language)."""
        return self.language_column is not None


class ReferenceDataExtractor(BaseModel):
    """Resolved taxonomy category and the category keys the column uses."""

    kind: Literal["reference_data"] = "reference_data"
    category: str
    categories: list[str] = Field(..., min_length=1)


class NoteCodesExtractor(BaseModel):
    kind: Literal["note_codes"] = "note_codes"


Extractor = Annotated[
    Union[
        TextExtractor,
        NumericExtractor,
        DateExtractor,
        LookupTableExtractor,
        ReferenceDataExtractor,
        NoteCodesExtractor,
    ],
    Field(discriminator="kind"),
]

extractor_adapter: TypeAdapter[Extractor] = TypeAdapter(Extractor)


def parse_extractor(data: dict[str, Any] | None) -> Extractor | None:
    """Rebuild a typed extractor from its stored JSON form."""
    if data is None:
        return None
    return extractor_adapter.validate_python(data)


# ================================
# CLASSIFICATION MODELS
# ================================


class SourceAssignment(BaseModel):
    """A column name paired with its proposed role."""

    column_name: str = Field(..., min_length=1)
    role: FactTableColumnType


class ClassificationRequest(BaseModel):
    assignments: list[SourceAssignment] = Field(..., min_length=1)


class ClassificationResult(BaseModel):
    """Validated partition of the fact table columns."""

    data_values: str | None = None
    measure: str | None = None
    note_codes: str | None = None
    dimensions: list[SourceAssignment] = Field(default_factory=list)
    ignore: list[str] = Field(default_factory=list)


# ================================
# DIMENSION PATCH REQUESTS
# ================================


class RawPatchRequest(BaseModel):
    dimension_type: Literal["raw"] = "raw"


class TextPatchRequest(BaseModel):
    dimension_type: Literal["text"] = "text"


class NumericPatchRequest(BaseModel):
    dimension_type: Literal["numeric"] = "numeric"
    number_type: NumberType
    decimal_places: int | None = Field(None, ge=0, le=18)


class DatePatchRequest(BaseModel):
    """Parameters for a date or date-period binding."""

    dimension_type: Literal["date", "date_period"] = "date_period"
    year_type: YearType = YearType.CALENDAR
    year_format: str | None = None
    quarter_format: str | None = None
    month_format: str | None = None
    date_format: str | None = None
    fifth_quarter_is_annual_total: bool = False
    start_day: int | None = Field(None, ge=1, le=31)
    start_month: int | None = Field(None, ge=1, le=12)

    def to_extractor(self) -> DateExtractor:
        return DateExtractor(**self.model_dump(exclude={"dimension_type"}))


class LookupTablePatchRequest(BaseModel):
    """An uploaded lookup table plus optional column hints."""

    dimension_type: Literal["lookup_table"] = "lookup_table"
    filename: str = Field(..., min_length=1)
    data: bytes = Field(..., repr=False)
    join_column: str | None = None
    sort_column: str | None = None
    hierarchy_column: str | None = None
    description_columns: list[str] | None = None
    notes_columns: list[str] | None = None
    language_column: str | None = None
    is_per_language: bool | None = None

    @field_validator("filename")
    @classmethod
    def validate_filename(cls, v: str) -> str:
        if "/" in v or "\\" in v:
            raise ValueError("Filename must not contain path separators")
        return v


class ReferenceDataPatchRequest(BaseModel):
    dimension_type: Literal["reference_data"] = "reference_data"
    category: str | None = Field(
        None, description="Taxonomy category the values must belong to; inferred if absent"
    )


class NoteCodesPatchRequest(BaseModel):
    dimension_type: Literal["note_codes"] = "note_codes"


DimensionPatchRequest = Annotated[
    Union[
        RawPatchRequest,
        TextPatchRequest,
        NumericPatchRequest,
        DatePatchRequest,
        LookupTablePatchRequest,
        ReferenceDataPatchRequest,
        NoteCodesPatchRequest,
    ],
    Field(discriminator="dimension_type"),
]

patch_request_adapter: TypeAdapter[DimensionPatchRequest] = TypeAdapter(
    DimensionPatchRequest
)


# ================================
# REFERENCE ROWS
# ================================


class DateReferenceItem(BaseModel):
    """One row of a generated calendar reference table."""

    date_code: str
    language: str
    description: str
    start_instant: datetime
    end_instant: datetime
    period_type: PeriodType
    date_type: str = Field("", description="Localised period label, e.g. Financial quarter")
    parent_date_code: str | None = None

    @model_validator(mode="after")
    def validate_interval(self):
        if self.end_instant <= self.start_instant:
            raise ValueError("end_instant must be after start_instant")
        return self


# ================================
# PREVIEW MODELS
# ================================


class ColumnHeader(BaseModel):
    index: int
    name: str
    source_type: FactTableColumnType | str


class PageInfo(BaseModel):
    total_records: int = Field(..., ge=0)
    start_record: int = Field(..., ge=0)
    end_record: int = Field(..., ge=0)


class PreviewTable(BaseModel):
    """Uniform tabular preview of a dimension or a fact table page."""

    dataset_id: str
    headers: list[ColumnHeader]
    data: list[list[Any]]
    total_distinct: int | None = None
    page_info: PageInfo | None = None
    current_page: int | None = None
    page_size: int | None = None
    total_pages: int | None = None
