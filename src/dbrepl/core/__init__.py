"""Core orchestration modules."""

from dbrepl.core.change_detector import (
    ALWAYS_EXPORT_KINDS,
    ChangeDetector,
    DeltaCategory,
    DeltaClassification,
)
from dbrepl.core.context import ExportContext, ImportContext
from dbrepl.core.dependency_resolver import DependencyResolver, ResolverReport, StopReason
from dbrepl.core.engine import (
    ExportEngine,
    ExportSummary,
    ImportEngine,
    ImportSummary,
    run_export,
    run_import,
)
from dbrepl.core.executor import ExecutionResult, SequentialExecutor
from dbrepl.core.fk_guard import ForeignKeyGuard, FkConstraintRef
from dbrepl.core.metadata_store import ExportMetadata, MetadataStore, ObjectRecord
from dbrepl.core.parallel import ParallelExecutor
from dbrepl.core.work_items import WorkItem, WorkItemBuilder

__all__ = [
    "ALWAYS_EXPORT_KINDS",
    "ChangeDetector",
    "DeltaCategory",
    "DeltaClassification",
    "ExportContext",
    "ImportContext",
    "DependencyResolver",
    "ResolverReport",
    "StopReason",
    "ExportEngine",
    "ExportSummary",
    "ImportEngine",
    "ImportSummary",
    "run_export",
    "run_import",
    "ExecutionResult",
    "SequentialExecutor",
    "ForeignKeyGuard",
    "FkConstraintRef",
    "ExportMetadata",
    "MetadataStore",
    "ObjectRecord",
    "ParallelExecutor",
    "WorkItem",
    "WorkItemBuilder",
]
