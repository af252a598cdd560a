"""
Dimension service: classification, binding, previews and cube rebuilds.

Every write follows the same shape:

1. structural checks (no engine or storage work)
2. under the revision lock: validation against a scratch engine
3. one transaction that cleans up the previous binding and installs the new one
4. after commit: deletion of orphaned lookup table bytes and a tracked cube
   rebuild

A failed validation rolls back before step 3, so the previous binding and the
previous cube are left exactly as they were.
"""

import logging
import time
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..config.models import BinderConfig
from ..db.duckdb_engine import CubeEngine
from ..db.models import Dataset, Dimension, LookupTable, Revision
from ..db.repositories import DatasetRepository, DimensionRepository
from ..db.session import SessionContext
from ..shared.exceptions import (
    BindingFailedError,
    CubeBinderException,
    DimensionValidationError,
    EntityNotFoundError,
    IncompleteClassificationError,
    NotFoundError,
    StorageError,
    StructuralError,
)
from ..shared.logging_utils import get_structured_logger
from ..shared.metrics import metrics_collector
from ..shared.models import (
    ClassificationRequest,
    ClassificationResult,
    DimensionType,
    FactTableColumnType,
    NoteCodesPatchRequest,
    PreviewTable,
    RawPatchRequest,
)
from ..storage.blob_store import BlobStore, with_timeout
from ..storage.taxonomy import TaxonomyStore
from .binders import BindingContext, BindingResult, DimensionBinder, binder_for
from .classifier import CompensationLog, apply_classification, validate_source_assignment
from .cube_assembler import CubeAssembler
from .cube_tasks import CubeBuildTracker
from .fact_table import open_fact_table
from .locks import RevisionLockRegistry
from .preview import DEFAULT_PAGE_SIZE, PreviewProjector
from .reference_tables import load_dimension_reference, table_for

logger = logging.getLogger(__name__)
structured_logger = get_structured_logger(__name__)

DATE_TYPES = (DimensionType.DATE, DimensionType.DATE_PERIOD)


@dataclass
class BindingOutcome:
    """A committed binding and the cube rebuild it triggered."""

    dimension: Dimension
    rebuild_task_id: str | None = None
    preview: PreviewTable | None = None


@dataclass
class ClassificationOutcome:
    result: ClassificationResult
    rebuild_task_id: str | None = None


class DimensionService:
    """
    Facade over the classifier, the binders, the assembler and the preview.

    Example:
        >>> service = DimensionService(session_factory, blob_store, config, taxonomy)
        >>> outcome = await service.patch_dimension(ds.id, dim.id, TextPatchRequest())
        >>> await service.tracker.wait(outcome.rebuild_task_id)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        blob_store: BlobStore,
        config: BinderConfig,
        taxonomy: TaxonomyStore | None = None,
        locks: RevisionLockRegistry | None = None,
        tracker: CubeBuildTracker | None = None,
        assembler: CubeAssembler | None = None,
    ):
        self.session_factory = session_factory
        self.blob_store = blob_store
        self.config = config
        self.taxonomy = taxonomy
        self.locks = locks or RevisionLockRegistry()
        self.tracker = tracker or CubeBuildTracker()
        self.assembler = assembler or CubeAssembler(blob_store, config, taxonomy)

    # ------------------------------------------------------------------
    # Classification
    # ------------------------------------------------------------------

    async def classify(
        self, dataset_id: str, request: ClassificationRequest
    ) -> ClassificationOutcome:
        """
        Assign a role to every fact table column.

        Replaces any previous classification (and the bindings that came with
        it). If columns remain unresolved the dataset is left with no
        classification at all and IncompleteClassificationError is raised.
        """
        ctx = SessionContext(self.session_factory)
        session = await ctx.begin()
        try:
            dataset = await DatasetRepository(session).get(dataset_id)
            revision = self._revision_with_data(dataset)
            result = validate_source_assignment(
                request.assignments, revision.data_table.column_names
            )

            async with self.locks.acquire(revision.id):
                previous = [
                    d.lookup_table.filename for d in dataset.dimensions if d.lookup_table
                ]
                log = CompensationLog()
                try:
                    await apply_classification(session, dataset, revision.data_table, result, log)
                except IncompleteClassificationError:
                    await ctx.commit()
                    await self._delete_blobs(previous, dataset.id)
                    raise
                await ctx.commit()
        except Exception:
            await ctx.rollback()
            raise
        finally:
            await ctx.close()

        await self._delete_blobs(previous, dataset_id)
        structured_logger.info(
            "Dataset classified",
            dataset_id=dataset_id,
            dimensions=[a.column_name for a in result.dimensions],
            ignored=result.ignore,
        )
        return ClassificationOutcome(
            result=result, rebuild_task_id=self._schedule_rebuild(dataset_id, revision.id)
        )

    # ------------------------------------------------------------------
    # Binding
    # ------------------------------------------------------------------

    async def patch_dimension(
        self,
        dataset_id: str,
        dimension_id: str,
        request,
        language: str | None = None,
    ) -> BindingOutcome:
        """
        Validate and install a new binding for one dimension.

        Args:
            dataset_id: Owning dataset
            dimension_id: Dimension to bind
            request: One of the dimension patch request variants
            language: Locale of the preview returned with the outcome

        Raises:
            StructuralError: Rejected before any engine or storage work
            DimensionValidationError: The values do not match the reference;
                the previous binding is untouched
            StorageError: Blob or taxonomy access failed (retryable if transient)
            BindingFailedError: Unexpected engine failure
        """
        binder = binder_for(request)
        binder.precheck(request, self.config)

        with structured_logger.correlation_scope():
            return await self._bind_dimension(
                binder, dataset_id, dimension_id, request, language
            )

    async def _bind_dimension(
        self,
        binder: DimensionBinder,
        dataset_id: str,
        dimension_id: str,
        request,
        language: str | None,
    ) -> BindingOutcome:
        dimension_type = request.dimension_type

        ctx = SessionContext(self.session_factory)
        session = await ctx.begin()
        try:
            dataset = await DatasetRepository(session).get(dataset_id)
            dimension = await DimensionRepository(session).get(dimension_id, dataset_id)
            self._check_role(dataset, dimension, request)
            revision = self._revision_with_data(dataset)

            async with self.locks.acquire(revision.id):
                structured_logger.info(
                    "Binding started",
                    dataset_id=dataset.id,
                    dimension_id=dimension.id,
                    dimension_type=dimension_type,
                    revision_id=revision.id,
                )
                metrics_collector.record_binding_attempt(dimension_type)
                started = time.perf_counter()
                try:
                    async with open_fact_table(
                        self.blob_store, self.config, dataset.id, revision.data_table
                    ) as engine:
                        binding_ctx = BindingContext(
                            engine=engine,
                            dataset=dataset,
                            dimension=dimension,
                            blob_store=self.blob_store,
                            config=self.config,
                            taxonomy=self.taxonomy,
                        )
                        result = await binder.bind(binding_ctx, request)
                        await self._save_new_blob(dataset, result)
                        try:
                            old_blobs = await self._install(session, dataset, dimension, result)
                            preview = self._preview_bound(engine, dataset, dimension, language)
                            await ctx.commit()
                        except BaseException:
                            if result.new_blob is not None:
                                await self._delete_blobs([result.new_blob[0]], dataset.id)
                            raise
                except DimensionValidationError as e:
                    metrics_collector.record_binding_failure(dimension_type, e.error_code)
                    structured_logger.warning(
                        "Binding rejected",
                        dataset_id=dataset.id,
                        dimension_id=dimension.id,
                        dimension_type=dimension_type,
                        error_code=e.error_code,
                        total_non_matching=e.report.total_non_matching,
                    )
                    raise e.with_context(dataset.id, dimension.id)
                except CubeBinderException as e:
                    metrics_collector.record_binding_failure(dimension_type, e.error_code)
                    raise
                except Exception as e:
                    metrics_collector.record_binding_failure(
                        dimension_type, BindingFailedError.error_code
                    )
                    structured_logger.error(
                        "Binding failed unexpectedly",
                        exc_info=True,
                        dataset_id=dataset.id,
                        dimension_id=dimension.id,
                        dimension_type=dimension_type,
                    )
                    raise BindingFailedError(
                        "Binding failed",
                        dataset_id=dataset.id,
                        dimension_id=dimension.id,
                        original_error=e,
                    ) from e
                finally:
                    metrics_collector.record_binding_duration(
                        dimension_type, time.perf_counter() - started
                    )
        except Exception:
            await ctx.rollback()
            raise
        finally:
            await ctx.close()

        await self._delete_blobs(old_blobs, dataset_id)
        structured_logger.info(
            "Binding installed",
            dataset_id=dataset_id,
            dimension_id=dimension_id,
            dimension_type=dimension_type,
            join_column=dimension.join_column,
        )
        return BindingOutcome(
            dimension=dimension,
            rebuild_task_id=self._schedule_rebuild(dataset_id, revision.id),
            preview=preview,
        )

    async def reset_dimension(self, dataset_id: str, dimension_id: str) -> BindingOutcome:
        """Return a dimension to raw, deleting any lookup table it owned."""
        async with SessionContext(self.session_factory) as session:
            dataset = await DatasetRepository(session).get(dataset_id)
            dimension = await DimensionRepository(session).get(dimension_id, dataset_id)
            revision = self._revision_with_data(dataset)
            async with self.locks.acquire(revision.id):
                old_blobs = self._cleanup(dataset, dimension)
                await session.flush()

        await self._delete_blobs(old_blobs, dataset_id)
        logger.info(f"Reset dimension {dimension_id} of dataset {dataset_id} to raw")
        return BindingOutcome(
            dimension=dimension,
            rebuild_task_id=self._schedule_rebuild(dataset_id, revision.id),
        )

    async def remove_dimension(self, dataset_id: str, dimension_id: str) -> str | None:
        """
        Delete a dimension and mark its column ignored.

        Returns the id of the cube rebuild task.
        """
        async with SessionContext(self.session_factory) as session:
            dataset = await DatasetRepository(session).get(dataset_id)
            dimension = await DimensionRepository(session).get(dimension_id, dataset_id)
            revision = self._revision_with_data(dataset)
            async with self.locks.acquire(revision.id):
                old_blobs = self._cleanup(dataset, dimension)
                dataset.dimensions.remove(dimension)
                column = dataset.column(dimension.fact_table_column)
                if column is not None:
                    column.column_type = FactTableColumnType.IGNORE
                await session.flush()

        await self._delete_blobs(old_blobs, dataset_id)
        logger.info(f"Removed dimension {dimension_id} from dataset {dataset_id}")
        return self._schedule_rebuild(dataset_id, revision.id)

    # ------------------------------------------------------------------
    # Previews
    # ------------------------------------------------------------------

    async def preview_dimension(
        self, dataset_id: str, dimension_id: str, language: str | None = None
    ) -> PreviewTable:
        """
        Sample of a dimension's values in ``language``.

        Reads the current cube when its latest rebuild completed, otherwise
        rebuilds the dimension's reference table on a scratch engine.
        """
        async with SessionContext(self.session_factory) as session:
            dataset = await DatasetRepository(session).get(dataset_id)
            dimension = await DimensionRepository(session).get(dimension_id, dataset_id)
            revision = self._revision_with_data(dataset)

        cube = await self._current_cube(revision)
        if cube is not None:
            with CubeEngine(cube, read_only=True) as engine:
                return PreviewProjector(engine, self.config).dimension_preview(
                    dataset, dimension, language
                )

        async with open_fact_table(
            self.blob_store, self.config, dataset.id, revision.data_table
        ) as engine:
            if dimension.is_bound:
                await load_dimension_reference(
                    engine, dimension, self.blob_store, self.taxonomy, self.config
                )
            return PreviewProjector(engine, self.config).dimension_preview(
                dataset, dimension, language
            )

    async def preview_fact_table(
        self, dataset_id: str, page: int = 1, page_size: int = DEFAULT_PAGE_SIZE
    ) -> PreviewTable:
        dataset, revision = await self._load_for_read(dataset_id)
        cube = await self._current_cube(revision)
        if cube is not None:
            with CubeEngine(cube, read_only=True) as engine:
                return PreviewProjector(engine, self.config).fact_table_preview(
                    dataset, page, page_size
                )
        async with open_fact_table(
            self.blob_store, self.config, dataset.id, revision.data_table
        ) as engine:
            return PreviewProjector(engine, self.config).fact_table_preview(
                dataset, page, page_size
            )

    # ------------------------------------------------------------------
    # Cube rebuilds
    # ------------------------------------------------------------------

    def _schedule_rebuild(self, dataset_id: str, revision_id: str) -> str:
        return self.tracker.schedule(
            revision_id,
            self._rebuild(dataset_id, revision_id),
            description=f"Rebuild cube for dataset {dataset_id}",
        )

    async def _rebuild(self, dataset_id: str, revision_id: str) -> str:
        async with self.locks.acquire(revision_id):
            async with SessionContext(self.session_factory) as session:
                repo = DatasetRepository(session)
                dataset = await repo.get(dataset_id)
                revision = await repo.get_revision(revision_id)
                path = await self.assembler.build(dataset, revision)
                revision.cube_path = str(path)
                revision.cube_built_at = datetime.now(UTC)
        return str(path)

    async def _current_cube(self, revision: Revision) -> Path | None:
        """The revision's cube file if its most recent rebuild completed."""
        task_id = self.tracker.latest_for(revision.id)
        if task_id is None:
            return None
        status = await self.tracker.settle(task_id)
        if status is None or status.status != "completed":
            return None
        path = self.assembler.cube_path(revision.id)
        return path if path.exists() else None

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _revision_with_data(self, dataset: Dataset) -> Revision:
        revision = dataset.draft_revision
        if revision is None or revision.data_table is None:
            raise EntityNotFoundError("DataTable", f"draft of {dataset.id}")
        return revision

    async def _load_for_read(self, dataset_id: str) -> tuple[Dataset, Revision]:
        async with SessionContext(self.session_factory) as session:
            dataset = await DatasetRepository(session).get(dataset_id)
            return dataset, self._revision_with_data(dataset)

    def _check_role(self, dataset: Dataset, dimension: Dimension, request) -> None:
        column = dataset.column(dimension.fact_table_column)
        is_note_column = (
            column is not None and column.column_type == FactTableColumnType.NOTE_CODES
        )
        if isinstance(request, NoteCodesPatchRequest) and not is_note_column:
            raise StructuralError(
                "Only the note codes column can be bound as note codes",
                dimension.fact_table_column,
            )
        if is_note_column and not isinstance(request, (NoteCodesPatchRequest, RawPatchRequest)):
            raise StructuralError(
                "The note codes column can only be bound as note codes",
                dimension.fact_table_column,
            )

    def _cleanup(self, dataset: Dataset, dimension: Dimension) -> list[str]:
        """Reset the dimension to raw; returns blob keys to delete after commit."""
        if dimension.type in DATE_TYPES:
            dataset.start_date = None
            dataset.end_date = None
        previous: LookupTable | None = dimension.reset_binding()
        return [previous.filename] if previous is not None else []

    async def _save_new_blob(self, dataset: Dataset, result: BindingResult) -> None:
        if result.new_blob is None:
            return
        key, data = result.new_blob
        await with_timeout(
            self.blob_store.save_buffer(key, dataset.id, data),
            self.config.validation.storage_timeout_seconds,
            f"Saving {dataset.id}/{key}",
        )

    async def _install(
        self,
        session: AsyncSession,
        dataset: Dataset,
        dimension: Dimension,
        result: BindingResult,
    ) -> list[str]:
        """
        Clean up the previous binding, then install ``result`` (not committed).

        Returns the blob keys orphaned by the cleanup.
        """
        old_blobs = self._cleanup(dataset, dimension)
        await session.flush()

        dimension.type = result.dimension_type
        dimension.extractor = result.extractor
        dimension.join_column = result.join_column
        if result.lookup_table is not None:
            result.lookup_table.dataset_id = dataset.id
            dimension.lookup_table = result.lookup_table
        if result.coverage is not None:
            dataset.start_date, dataset.end_date = result.coverage
        dimension.check_invariants()
        await session.flush()
        return old_blobs

    def _preview_bound(
        self, engine: CubeEngine, dataset: Dataset, dimension: Dimension, language: str | None
    ) -> PreviewTable | None:
        if dimension.is_bound and not engine.table_exists(table_for(dimension)):
            return None
        return PreviewProjector(engine, self.config).dimension_preview(
            dataset, dimension, language
        )

    async def _delete_blobs(self, keys: list[str], dataset_id: str) -> None:
        """Delete orphaned blobs; the owning rows are already gone."""
        for key in keys:
            try:
                await with_timeout(
                    self.blob_store.delete(key, dataset_id),
                    self.config.validation.storage_timeout_seconds,
                    f"Deleting {dataset_id}/{key}",
                )
            except NotFoundError:
                logger.warning(f"Orphaned blob {dataset_id}/{key} was already gone")
            except StorageError as e:
                logger.error(f"Failed to delete orphaned blob {dataset_id}/{key}: {e}")
