"""
Custom exceptions for the cube binder.

Two families matter to callers:

- Structural errors are raised before any engine or storage work and never
  leave persisted state half-changed.
- Dimension validation errors carry a ValidationReport describing exactly which
  values failed to resolve, so a publisher can fix the source file.

Storage failures are split into permanent (NotFoundError) and retryable
(TransientStorageError). Anything unexpected during a binding attempt is
wrapped in BindingFailedError.
"""

from typing import Any

from pydantic import BaseModel, Field


class ValidationReport(BaseModel):
    """Details of a failed referential integrity or format check."""

    error_code: str
    dataset_id: str | None = None
    dimension_id: str | None = None
    fact_table_column: str | None = None
    total_non_matching: int = 0
    non_matching_values: list[Any] = Field(default_factory=list)
    non_matching_lookup_values: list[Any] = Field(default_factory=list)
    mismatch: bool = False
    extractor: dict[str, Any] | None = None
    detail: str | None = None


class CubeBinderException(Exception):
    """Base exception for all cube binder errors."""

    error_code: str = "errors.unknown"
    retryable: bool = False


# ================================
# STRUCTURAL ERRORS
# ================================


class StructuralError(CubeBinderException):
    """Request is malformed; rejected before touching the engine or storage."""

    error_code = "errors.structural"

    def __init__(self, message: str, column_name: str | None = None):
        self.column_name = column_name
        if column_name:
            message = f"{message} (Column: {column_name})"
        super().__init__(message)


class DuplicateRoleError(StructuralError):
    """More than one column proposed for a single-column role."""

    def __init__(self, role: str, column_name: str, existing_column: str):
        self.role = role
        self.existing_column = existing_column
        self.error_code = f"errors.source_assignment.too_many_{role.lower()}"
        super().__init__(
            f"Only one column may be assigned as {role}; "
            f"'{existing_column}' is already assigned",
            column_name,
        )


class UnknownColumnError(StructuralError):
    """Proposed column is not one of the table's detected columns."""

    error_code = "errors.source_assignment.invalid_column_name"

    def __init__(self, column_name: str, known_columns: list[str] | None = None):
        self.known_columns = known_columns or []
        message = "Column not present in the uploaded table"
        if known_columns:
            message = f"{message}. Known columns: {', '.join(known_columns)}"
        super().__init__(message, column_name)


class MissingRoleError(StructuralError):
    """A required role was not assigned to any column."""

    def __init__(self, role: str):
        self.role = role
        self.error_code = f"errors.source_assignment.missing_{role.lower()}"
        super().__init__(f"No column was assigned as {role}")


class MissingParameterError(StructuralError):
    """A binder was called without a parameter its variant requires."""

    error_code = "errors.dimension.missing_parameter"

    def __init__(self, parameter: str, reason: str | None = None):
        self.parameter = parameter
        message = f"Missing required parameter '{parameter}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class UnknownFormatCodeError(StructuralError):
    """A date format code is not one of the supported templates."""

    error_code = "errors.dimension.unknown_format_code"

    def __init__(self, kind: str, code: str, supported: list[str]):
        self.kind = kind
        self.code = code
        self.supported = supported
        super().__init__(
            f"Unknown {kind} format '{code}'. Supported: {', '.join(supported)}"
        )


class UnsupportedFileTypeError(StructuralError):
    """Uploaded file is not one of the formats the query engine can load."""

    error_code = "errors.file.unsupported_type"

    def __init__(self, filename: str, supported: list[str]):
        self.filename = filename
        self.supported = supported
        super().__init__(
            f"Unsupported file type for '{filename}'. Supported: {', '.join(supported)}"
        )


class IncompleteClassificationError(CubeBinderException):
    """Columns remain unresolved after classification; the pass was unwound."""

    error_code = "errors.source_assignment.unknown_columns_remaining"

    def __init__(self, unresolved_columns: list[str]):
        self.unresolved_columns = unresolved_columns
        super().__init__(
            "Columns left without a role after classification: "
            f"{', '.join(unresolved_columns)}"
        )


# ================================
# DATA VALIDATION ERRORS
# ================================


class DimensionValidationError(CubeBinderException):
    """Base for failures that carry a ValidationReport."""

    error_code = "errors.dimension_validation.unknown_error"

    def __init__(self, message: str, report: ValidationReport | None = None, **fields):
        if report is None:
            report = ValidationReport(error_code=self.error_code, **fields)
        self.report = report
        parts = [message]
        if report.fact_table_column:
            parts.append(f"Column: {report.fact_table_column}")
        if report.total_non_matching:
            parts.append(f"Non-matching rows: {report.total_non_matching}")
        if report.non_matching_values:
            sample = ", ".join(str(v) for v in report.non_matching_values[:10])
            parts.append(f"Values: {sample}")
        super().__init__(" | ".join(parts))

    def with_context(
        self, dataset_id: str | None, dimension_id: str | None
    ) -> "DimensionValidationError":
        """Attach dataset/dimension identifiers to the report."""
        self.report = self.report.model_copy(
            update={"dataset_id": dataset_id, "dimension_id": dimension_id}
        )
        return self


class NonNumericValuesError(DimensionValidationError):
    error_code = "errors.dimension_validation.non_numerical_values_present"


class InvalidDateFormatError(DimensionValidationError):
    """None of the column's values matched the supplied date format."""

    error_code = "errors.dimension_validation.invalid_date_format"


class UnmatchedDateValuesError(DimensionValidationError):
    """Some of the column's values are missing from the generated calendar."""

    error_code = "errors.dimension_validation.unmatched_date_values"


class NoJoinColumnError(DimensionValidationError):
    error_code = "errors.lookup_validation.no_join_column"


class InvalidLookupTableError(DimensionValidationError):
    error_code = "errors.lookup_validation.some_references_failed_to_match"


class NoDescriptionColumnsError(DimensionValidationError):
    error_code = "errors.lookup_validation.no_description_columns"


class IncompleteLookupTranslationsError(DimensionValidationError):
    error_code = "errors.lookup_validation.missing_translations"


class UnknownReferenceItemsError(DimensionValidationError):
    error_code = "errors.dimension_validation.unknown_reference_data_items"


class ItemsNotInCategoryError(DimensionValidationError):
    error_code = "errors.dimension_validation.items_not_in_category"


class NoCategoryMatchError(DimensionValidationError):
    error_code = "errors.dimension_validation.no_reference_data_categories_present"


class TooManyCategoriesError(DimensionValidationError):
    error_code = "errors.dimension_validation.too_many_categories_present"


class UnknownNoteCodesError(DimensionValidationError):
    error_code = "errors.dimension_validation.unknown_note_codes"


# ================================
# STORAGE AND RUNTIME ERRORS
# ================================


class StorageError(CubeBinderException):
    """Exception raised when the blob or taxonomy store fails."""

    error_code = "errors.storage.failed"

    def __init__(
        self,
        message: str,
        key: str | None = None,
        dataset_id: str | None = None,
        original_error: Exception | None = None,
    ):
        self.key = key
        self.dataset_id = dataset_id
        self.original_error = original_error

        if key:
            message = f"{message} (Key: {dataset_id}/{key})"

        if original_error:
            message = f"{message} (Original error: {original_error})"

        super().__init__(message)


class NotFoundError(StorageError):
    error_code = "errors.storage.not_found"


class TransientStorageError(StorageError):
    """Timeout or interrupted I/O; the caller may retry."""

    error_code = "errors.storage.transient"
    retryable = True


class EntityNotFoundError(CubeBinderException):
    """Exception raised when a relational-store row does not exist."""

    error_code = "errors.entity.not_found"

    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} '{entity_id}' not found")


class BindingFailedError(CubeBinderException):
    """Unexpected engine or storage failure during a binding attempt."""

    error_code = "errors.dimension_validation.binding_failed"

    def __init__(
        self,
        message: str,
        dataset_id: str | None = None,
        dimension_id: str | None = None,
        original_error: Exception | None = None,
    ):
        self.dataset_id = dataset_id
        self.dimension_id = dimension_id
        self.original_error = original_error

        context = [f"dataset={dataset_id}", f"dimension={dimension_id}"]
        message = f"{message} ({', '.join(context)})"
        if original_error:
            message = f"{message} (Original error: {original_error})"

        super().__init__(message)


class CubeAssemblyError(CubeBinderException):
    """Exception raised when the cube for a revision cannot be built."""

    error_code = "errors.cube_builder.failed"

    def __init__(
        self,
        message: str,
        revision_id: str | None = None,
        table_name: str | None = None,
        original_error: Exception | None = None,
    ):
        self.revision_id = revision_id
        self.table_name = table_name
        self.original_error = original_error

        if table_name:
            message = f"{message} (Table: {table_name})"
        if original_error:
            message = f"{message} (Original error: {original_error})"

        super().__init__(message)
