"""
Unit tests for column classification.

Tests verify the validation order of source assignments and that the
compensation log unwinds newest first, carrying on past failing actions.
"""

import pytest

from cube_binder.services.classifier import CompensationLog, validate_source_assignment
from cube_binder.shared.exceptions import (
    DuplicateRoleError,
    MissingRoleError,
    StructuralError,
    UnknownColumnError,
)
from cube_binder.shared.models import FactTableColumnType, SourceAssignment

COLUMNS = ["YearCode", "AreaCode", "Value", "Measure", "Notes", "Comment"]


def assign(**roles: FactTableColumnType) -> list[SourceAssignment]:
    return [SourceAssignment(column_name=name, role=role) for name, role in roles.items()]


class TestValidateSourceAssignment:
    """Test source assignment validation."""

    def test_full_partition(self):
        """Test that every role lands in the right slot of the result."""
        result = validate_source_assignment(
            assign(
                YearCode=FactTableColumnType.TIME,
                AreaCode=FactTableColumnType.DIMENSION,
                Value=FactTableColumnType.DATA_VALUES,
                Measure=FactTableColumnType.MEASURE,
                Notes=FactTableColumnType.NOTE_CODES,
                Comment=FactTableColumnType.IGNORE,
            ),
            COLUMNS,
        )

        assert result.data_values == "Value"
        assert result.measure == "Measure"
        assert result.note_codes == "Notes"
        assert [a.column_name for a in result.dimensions] == ["YearCode", "AreaCode"]
        assert result.dimensions[0].role == FactTableColumnType.TIME
        assert result.ignore == ["Comment"]

    def test_unknown_role_columns_are_left_out(self):
        """Test that columns proposed as unknown appear in no slot."""
        result = validate_source_assignment(
            assign(
                AreaCode=FactTableColumnType.DIMENSION,
                Value=FactTableColumnType.DATA_VALUES,
                Comment=FactTableColumnType.UNKNOWN,
            ),
            COLUMNS,
        )
        assert "Comment" not in result.ignore
        assert [a.column_name for a in result.dimensions] == ["AreaCode"]

    def test_unknown_column(self):
        """Test that a column missing from the fact table is rejected."""
        with pytest.raises(UnknownColumnError, match="Missing") as exc_info:
            validate_source_assignment(
                assign(Missing=FactTableColumnType.DIMENSION, Value=FactTableColumnType.DATA_VALUES),
                COLUMNS,
            )
        assert exc_info.value.error_code == "errors.source_assignment.invalid_column_name"

    def test_column_assigned_twice(self):
        """Test that a column may only be proposed once."""
        assignments = [
            SourceAssignment(column_name="Value", role=FactTableColumnType.DATA_VALUES),
            SourceAssignment(column_name="Value", role=FactTableColumnType.DIMENSION),
        ]
        with pytest.raises(StructuralError, match="more than once"):
            validate_source_assignment(assignments, COLUMNS)

    def test_two_measure_columns(self):
        """Test that a second measure column is a duplicate role."""
        with pytest.raises(DuplicateRoleError) as exc_info:
            validate_source_assignment(
                assign(
                    Measure=FactTableColumnType.MEASURE,
                    Comment=FactTableColumnType.MEASURE,
                    Value=FactTableColumnType.DATA_VALUES,
                    AreaCode=FactTableColumnType.DIMENSION,
                ),
                COLUMNS,
            )
        assert exc_info.value.error_code == "errors.source_assignment.too_many_measure"
        assert exc_info.value.existing_column == "Measure"
        assert exc_info.value.column_name == "Comment"

    @pytest.mark.parametrize(
        "role", [FactTableColumnType.DATA_VALUES, FactTableColumnType.NOTE_CODES]
    )
    def test_other_single_column_roles(self, role):
        """Test that data values and note codes are single-column roles too."""
        with pytest.raises(DuplicateRoleError):
            validate_source_assignment(
                assign(Value=role, Comment=role, AreaCode=FactTableColumnType.DIMENSION),
                COLUMNS,
            )

    def test_missing_data_values(self):
        """Test that a data values column is required."""
        with pytest.raises(MissingRoleError) as exc_info:
            validate_source_assignment(assign(AreaCode=FactTableColumnType.DIMENSION), COLUMNS)
        assert exc_info.value.error_code == "errors.source_assignment.missing_data_values"

    def test_missing_dimension(self):
        """Test that at least one dimension is required."""
        with pytest.raises(MissingRoleError) as exc_info:
            validate_source_assignment(assign(Value=FactTableColumnType.DATA_VALUES), COLUMNS)
        assert exc_info.value.role == "dimension"

    def test_unknown_column_checked_before_duplicates(self):
        """Test that an unknown column is reported before a duplicate role later on."""
        with pytest.raises(UnknownColumnError):
            validate_source_assignment(
                assign(
                    Missing=FactTableColumnType.MEASURE,
                    Measure=FactTableColumnType.MEASURE,
                ),
                COLUMNS,
            )


class TestCompensationLog:
    """Test compensating action unwinding."""

    @pytest.mark.asyncio
    async def test_unwinds_newest_first(self):
        """Test that actions run in reverse order of recording."""
        calls = []
        log = CompensationLog()
        for name in ("first", "second", "third"):

            async def action(name=name):
                calls.append(name)

            log.record(name, action)

        assert len(log) == 3
        errors = await log.unwind()

        assert errors == []
        assert calls == ["third", "second", "first"]
        assert len(log) == 0

    @pytest.mark.asyncio
    async def test_failing_action_does_not_stop_unwind(self, caplog):
        """Test that a failing action is logged and the rest still run."""
        calls = []
        log = CompensationLog()

        async def good():
            calls.append("good")

        async def bad():
            raise RuntimeError("cannot undo")

        log.record("good", good)
        log.record("bad", bad)

        errors = await log.unwind()

        assert calls == ["good"]
        assert len(errors) == 1
        assert "cannot undo" in str(errors[0])
        assert "Compensating action failed" in caplog.text

    @pytest.mark.asyncio
    async def test_unwind_twice_is_a_no_op(self):
        """Test that an unwound log has nothing left to run."""
        calls = []
        log = CompensationLog()

        async def action():
            calls.append(1)

        log.record("once", action)
        await log.unwind()
        await log.unwind()

        assert calls == [1]
