"""
Column classification (source assignment).

``validate_source_assignment`` is pure: it checks a proposed role per column
against the columns detected in the uploaded fact table and returns the
validated partition. ``apply_classification`` writes the partition to the
relational store, recording a compensating action for every step so an
incomplete result can be unwound back to the "no fact table bound" state.
"""

import logging
from collections.abc import Awaitable, Callable

from sqlalchemy.ext.asyncio import AsyncSession

from ..db.models import (
    DataTable,
    Dataset,
    Dimension,
    FactTableColumn,
    LookupTable,
    Measure,
)
from ..db.repositories import DatasetRepository
from ..shared.exceptions import (
    DuplicateRoleError,
    IncompleteClassificationError,
    MissingRoleError,
    StructuralError,
    UnknownColumnError,
)
from ..shared.models import (
    SINGLE_COLUMN_ROLES,
    ClassificationResult,
    DimensionType,
    FactTableColumnType,
    SourceAssignment,
)

logger = logging.getLogger(__name__)

DIMENSION_ROLES = (FactTableColumnType.DIMENSION, FactTableColumnType.TIME)


def validate_source_assignment(
    assignments: list[SourceAssignment], known_columns: list[str]
) -> ClassificationResult:
    """
    Validate proposed roles and partition the columns.

    Args:
        assignments: One (column, role) pair per column
        known_columns: Columns detected in the uploaded fact table

    Returns:
        ClassificationResult with the single-column roles, dimensions and
        ignored columns. Columns proposed as ``unknown`` appear nowhere.

    Raises:
        UnknownColumnError: A column is not in the fact table
        StructuralError: A column is assigned more than once
        DuplicateRoleError: Two columns proposed for a single-column role
        MissingRoleError: No data values column, or no dimension
    """
    known = set(known_columns)
    seen: set[str] = set()
    single: dict[FactTableColumnType, str] = {}
    result = ClassificationResult()

    for assignment in assignments:
        name = assignment.column_name
        if name not in known:
            raise UnknownColumnError(name, known_columns)
        if name in seen:
            raise StructuralError("Column assigned more than once", name)
        seen.add(name)

        role = assignment.role
        if role in SINGLE_COLUMN_ROLES:
            if role in single:
                raise DuplicateRoleError(role.value, name, single[role])
            single[role] = name
        elif role in DIMENSION_ROLES:
            result.dimensions.append(assignment)
        elif role == FactTableColumnType.IGNORE:
            result.ignore.append(name)

    result.data_values = single.get(FactTableColumnType.DATA_VALUES)
    result.measure = single.get(FactTableColumnType.MEASURE)
    result.note_codes = single.get(FactTableColumnType.NOTE_CODES)

    if result.data_values is None:
        raise MissingRoleError(FactTableColumnType.DATA_VALUES.value)
    if not result.dimensions:
        raise MissingRoleError(FactTableColumnType.DIMENSION.value)
    return result


class CompensationLog:
    """
    Compensating actions recorded while applying a multi-step change.

    ``unwind`` runs them newest first. A failing action is logged and the
    remaining actions still run.
    """

    def __init__(self):
        self._actions: list[tuple[str, Callable[[], Awaitable[None]]]] = []

    def record(self, description: str, action: Callable[[], Awaitable[None]]) -> None:
        self._actions.append((description, action))

    def __len__(self) -> int:
        return len(self._actions)

    async def unwind(self) -> list[Exception]:
        errors: list[Exception] = []
        while self._actions:
            description, action = self._actions.pop()
            try:
                await action()
                logger.info(f"Compensated: {description}")
            except Exception as e:
                logger.error(f"Compensating action failed ({description}): {e}", exc_info=True)
                errors.append(e)
        return errors


async def apply_classification(
    session: AsyncSession,
    dataset: Dataset,
    data_table: DataTable,
    result: ClassificationResult,
    log: CompensationLog,
) -> list[LookupTable]:
    """
    Replace the dataset's classification with ``result``.

    Returns the lookup tables orphaned by the previous classification so their
    stored bytes can be deleted once the transaction commits.

    Raises:
        IncompleteClassificationError: Columns remain unknown; the log has
            already been unwound and flushed when this is raised
    """
    repo = DatasetRepository(session)
    orphaned = await repo.clear_classification(dataset)

    roles: dict[str, FactTableColumnType] = {}
    for role_name in ("data_values", "measure", "note_codes"):
        column = getattr(result, role_name)
        if column is not None:
            roles[column] = FactTableColumnType(role_name)
    for assignment in result.dimensions:
        roles[assignment.column_name] = assignment.role
    for column in result.ignore:
        roles[column] = FactTableColumnType.IGNORE

    columns = [
        FactTableColumn(
            column_name=desc.column_name,
            column_index=desc.column_index,
            column_datatype=desc.column_datatype,
            column_type=roles.get(desc.column_name, FactTableColumnType.UNKNOWN),
        )
        for desc in data_table.descriptions
    ]
    dataset.fact_table_columns.extend(columns)

    async def remove_columns() -> None:
        for column in columns:
            if column in dataset.fact_table_columns:
                dataset.fact_table_columns.remove(column)

    log.record("remove fact table columns", remove_columns)

    if result.measure is not None:
        dataset.measure = Measure(fact_table_column=result.measure)

        async def remove_measure() -> None:
            dataset.measure = None

        log.record("remove measure", remove_measure)

    dimension_columns = [a.column_name for a in result.dimensions]
    if result.note_codes is not None:
        dimension_columns.append(result.note_codes)
    dimensions = [
        Dimension(fact_table_column=name, type=DimensionType.RAW) for name in dimension_columns
    ]
    dataset.dimensions.extend(dimensions)

    async def remove_dimensions() -> None:
        for dimension in dimensions:
            if dimension in dataset.dimensions:
                dataset.dimensions.remove(dimension)

    log.record("remove dimensions", remove_dimensions)

    await session.flush()

    unresolved = [c.column_name for c in columns if c.column_type == FactTableColumnType.UNKNOWN]
    if unresolved:
        logger.warning(
            f"Classification of dataset {dataset.id} left {len(unresolved)} columns "
            f"unresolved; unwinding {len(log)} steps"
        )
        await log.unwind()
        await session.flush()
        raise IncompleteClassificationError(unresolved)

    logger.info(
        f"Classified dataset {dataset.id}: {len(dimensions)} dimensions, "
        f"{len(result.ignore)} ignored columns"
    )
    return orphaned
