"""
Binding pipeline services.

- classifier: source assignment validation and the compensation log
- binders: one validator per dimension type
- cube_assembler: builds the per-revision cube file
- preview: read-side dimension and fact table previews
- dimension_service: the facade tying them together under revision locks
"""

from .classifier import CompensationLog, apply_classification, validate_source_assignment
from .cube_assembler import CubeAssembler
from .cube_tasks import CubeBuildTracker, TaskStatus
from .data_table import register_data_table
from .dimension_service import BindingOutcome, ClassificationOutcome, DimensionService
from .locks import RevisionLockRegistry
from .preview import PreviewProjector, resolve_language

__all__ = [
    "BindingOutcome",
    "ClassificationOutcome",
    "CompensationLog",
    "CubeAssembler",
    "CubeBuildTracker",
    "DimensionService",
    "PreviewProjector",
    "RevisionLockRegistry",
    "TaskStatus",
    "apply_classification",
    "register_data_table",
    "resolve_language",
    "validate_source_assignment",
]
