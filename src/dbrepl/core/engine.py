"""Export and import engines - orchestrate a whole replication run."""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import AbstractSet, Dict, List, Optional, Sequence, Tuple

from dbrepl.config.loader import ConfigLoader
from dbrepl.config.schema import (
    ExportSettings,
    GroupingMode,
    ImportSettings,
    ObjectKind,
    ReplicationConfig,
)
from dbrepl.core.change_detector import ChangeDetector
from dbrepl.core.context import ExportContext, ImportContext
from dbrepl.core.dependency_resolver import DependencyResolver
from dbrepl.core.executor import (
    ConnectionFactory,
    ExecutionResult,
    SequentialExecutor,
    connect_with_retry,
)
from dbrepl.core.fk_guard import ForeignKeyGuard
from dbrepl.core.import_plan import ScriptFile, build_import_plan, discover_scripts
from dbrepl.core.metadata_store import (
    FORMAT_VERSION,
    ExportMetadata,
    MetadataStore,
    ObjectRecord,
)
from dbrepl.core.parallel import ParallelExecutor
from dbrepl.core.work_items import WorkItem, WorkItemBuilder
from dbrepl.objects.base import ObjectIdentifier
from dbrepl.objects.registry import KindRegistry
from dbrepl.sources.base import DatabaseConnection, DataSourceError, InventorySource
from dbrepl.strategies.error_handling import (
    ConfigurationError,
    ErrorHandler,
    ParallelExecutionError,
    ReferentialIntegrityError,
    RetryConfig,
    ScriptApplyError,
    describe_error,
)

# Import to register backends
import dbrepl.sources  # noqa: F401

logger = logging.getLogger(__name__)


@dataclass
class ExportSummary:
    """Summary of an export run."""

    output_dir: Optional[Path] = None
    total_items: int = 0
    exported: int = 0
    copied: int = 0
    skipped: int = 0
    failed: int = 0
    deleted_reported: int = 0
    duration_seconds: float = 0.0
    start_time: datetime = field(default_factory=datetime.now)
    end_time: Optional[datetime] = None
    results: List[ExecutionResult] = field(default_factory=list)
    copy_failures: Dict[str, str] = field(default_factory=dict)

    def add_result(self, result: ExecutionResult) -> None:
        """
        Add an execution result to the summary.

        Args:
            result: Execution result
        """
        self.results.append(result)
        if result.succeeded:
            self.exported += 1
        else:
            self.failed += 1

    def add_copy_failure(self, name: str, error: str) -> None:
        """Record an unchanged object whose file could not be copied."""
        self.copy_failures[name] = error
        self.failed += 1

    @property
    def exit_code(self) -> int:
        """0 when nothing failed, 1 otherwise."""
        return 0 if self.failed == 0 else 1

    def finalize(self) -> None:
        """Finalize the summary with end time and duration."""
        self.end_time = datetime.now()
        self.duration_seconds = (self.end_time - self.start_time).total_seconds()

    def __str__(self) -> str:
        """String representation."""
        lines = [
            "=" * 60,
            "Export Summary",
            "=" * 60,
            f"Output:             {self.output_dir}",
            f"Total Items:        {self.total_items}",
            f"Exported:           {self.exported}",
            f"Copied (delta):     {self.copied}",
            f"Skipped:            {self.skipped}",
            f"Deleted (reported): {self.deleted_reported}",
            f"Failed:             {self.failed}",
            f"Duration:           {self.duration_seconds:.2f}s",
            "=" * 60,
        ]

        if self.failed > 0:
            lines.append("\nFailures:")
            for result in self.results:
                if not result.succeeded:
                    lines.append(f"  - {result}")
            for name, error in self.copy_failures.items():
                lines.append(f"  - COPY FAILED: {name} - {error}")

        return "\n".join(lines)


@dataclass
class ImportSummary:
    """Summary of an import run."""

    source_dir: Optional[Path] = None
    total_scripts: int = 0
    applied: int = 0
    skipped: int = 0
    dependency_passes: int = 0
    constraints_suspended: int = 0
    duration_seconds: float = 0.0
    start_time: datetime = field(default_factory=datetime.now)
    end_time: Optional[datetime] = None
    script_errors: List[ScriptApplyError] = field(default_factory=list)
    dependency_failures: Dict[str, str] = field(default_factory=dict)
    integrity_errors: List[ReferentialIntegrityError] = field(default_factory=list)

    @property
    def failed(self) -> int:
        """Failures across every error category."""
        return (
            len(self.script_errors)
            + len(self.dependency_failures)
            + len(self.integrity_errors)
        )

    @property
    def exit_code(self) -> int:
        """0 when nothing failed, 1 otherwise."""
        return 0 if self.failed == 0 else 1

    def finalize(self) -> None:
        """Finalize the summary with end time and duration."""
        self.end_time = datetime.now()
        self.duration_seconds = (self.end_time - self.start_time).total_seconds()

    def __str__(self) -> str:
        """String representation."""
        lines = [
            "=" * 60,
            "Import Summary",
            "=" * 60,
            f"Source:             {self.source_dir}",
            f"Total Scripts:      {self.total_scripts}",
            f"Applied:            {self.applied}",
            f"Skipped:            {self.skipped}",
            f"Failed:             {self.failed}",
            f"  Script errors:    {len(self.script_errors)}",
            f"  Dependency:       {len(self.dependency_failures)}"
            f" ({self.dependency_passes} pass(es))",
            f"  Integrity:        {len(self.integrity_errors)}"
            f" ({self.constraints_suspended} FK suspended)",
            f"Duration:           {self.duration_seconds:.2f}s",
            "=" * 60,
        ]

        if self.script_errors:
            lines.append("\nScript Errors:")
            lines.extend(f"  - {e.script_path}: {describe_error(e)}" for e in self.script_errors)
        if self.dependency_failures:
            lines.append("\nUnresolved Dependencies:")
            lines.extend(f"  - {p}: {e}" for p, e in self.dependency_failures.items())
        if self.integrity_errors:
            lines.append("\nReferential Integrity Errors:")
            lines.extend(f"  - {e.constraint}: {e}" for e in self.integrity_errors)

        return "\n".join(lines)


class ExportEngine:
    """
    Export engine.

    Orchestrates an export run:
    1. Validate delta preconditions (before any connection)
    2. Read the inventory
    3. Classify changes against the previous run (delta mode)
    4. Build work items
    5. Execute them, in parallel or sequentially
    6. Copy unchanged files (delta mode)
    7. Write export metadata
    """

    def __init__(
        self,
        config: ReplicationConfig,
        connection_factory: Optional[ConnectionFactory] = None,
        now: Optional[datetime] = None,
    ):
        """
        Initialize export engine.

        Args:
            config: Replication configuration with an export section
            connection_factory: Opens source connections (defaults to the
                registered backend with connection retries)
            now: Run start time, for reproducible folder names
        """
        if config.export is None:
            raise ConfigurationError("Configuration has no 'export' section")

        self.config = config
        self.settings: ExportSettings = config.export
        self.retry = RetryConfig.from_settings(config.retry)
        self.connection_factory = connection_factory or (
            lambda: connect_with_retry(self.settings.source, self.retry)
        )
        self.now = now
        self.context: Optional[ExportContext] = None

    def run(self) -> ExportSummary:
        """
        Run the export.

        Returns:
            ExportSummary with per-item results

        Raises:
            DeltaValidationError: If delta preconditions fail
            ConnectionFailedError: If the source cannot be reached
        """
        summary = ExportSummary()

        try:
            previous = None
            if self.settings.delta.enabled:
                logger.info(f"Validating previous export {self.settings.delta.previous_export}")
                previous = ChangeDetector.validate_preconditions(
                    self.settings.delta, self.settings.grouping
                )

            self.context = ExportContext.create(
                self.settings, self.retry, previous, self.now
            )
            summary.output_dir = self.context.output_root
            builder = WorkItemBuilder.from_settings(self.settings)

            logger.info(
                f"Reading inventory of {self.settings.source.server}/"
                f"{self.settings.source.database}"
            )
            with self.connection_factory() as connection:
                inventory_source = connection.create_inventory()
                server_time = inventory_source.fetch_server_time()
                scriptable = connection.create_scripter().supported_kinds
                inventory = builder.select_objects(
                    self._collect_inventory(inventory_source, builder)
                )
                times = (
                    inventory_source.fetch_modification_times()
                    if self.context.delta_enabled
                    else {}
                )
                file_groups = (
                    inventory_source.list_file_groups()
                    if builder.is_kind_selected(ObjectKind.FILE_GROUP)
                    else []
                )

            detector = None
            classification = None
            to_script = inventory
            if self.context.previous_metadata is not None:
                detector = ChangeDetector(
                    self.context.previous_metadata, self.settings.delta.previous_export
                )
                classification = detector.classify(inventory, times)
                to_script = detector.filter_inventory(inventory, classification)
                summary.deleted_reported = len(classification.deleted)

            items, skipped = self._partition_scriptable(builder.build(to_script), scriptable)
            summary.skipped = len(skipped)
            self.context.output_root.mkdir(parents=True, exist_ok=True)

            logger.info(f"Exporting {len(items)} work item(s) to {self.context.output_root}")
            for result in self._execute(items):
                summary.add_result(result)

            copied: List[ObjectRecord] = []
            if detector is not None:
                outcome = detector.copy_unchanged(classification, self.context.output_root)
                copied = outcome.copied
                summary.copied = len(copied)
                for name, error in outcome.failed.items():
                    summary.add_copy_failure(name, error)

            summary.total_items = (
                len(items) + len(skipped) + len(classification.to_copy if classification else ())
            )

            records = self._records(items, summary.results) + copied
            MetadataStore.write(
                self.context.output_root,
                ExportMetadata(
                    format_version=FORMAT_VERSION,
                    export_start_time_utc=self.context.start_time_utc,
                    export_start_time_local=self.context.start_time_local,
                    server_start_time=server_time,
                    source_server=self.settings.source.server,
                    source_database=self.settings.source.database,
                    grouping_mode=self._effective_grouping_mode(builder),
                    includes_data=builder.is_kind_selected(ObjectKind.TABLE_DATA),
                    object_count=len(records),
                    objects=records,
                    file_group_descriptors=file_groups,
                ),
            )

            summary.finalize()
            logger.info("\n" + str(summary))
            return summary

        except Exception as e:
            logger.error(f"Fatal error during export: {e}", exc_info=True)
            summary.finalize()
            raise

    def _collect_inventory(
        self, inventory_source: InventorySource, builder: WorkItemBuilder
    ) -> Dict[ObjectKind, List[ObjectIdentifier]]:
        """
        Enumerate every selected kind the inventory supports.

        Args:
            inventory_source: Inventory bound to the source connection
            builder: Builder holding the kind filters

        Returns:
            Objects by kind
        """
        supported = set(inventory_source.supported_kinds)
        inventory: Dict[ObjectKind, List[ObjectIdentifier]] = {}

        for kind in builder.selected_kinds():
            if kind not in supported:
                logger.debug(f"Inventory does not support {kind.value}; skipping")
                continue
            try:
                inventory[kind] = inventory_source.list_objects(kind)
            except DataSourceError as e:
                logger.warning(f"Could not enumerate {kind.value}; skipping: {e}")

        total = sum(len(v) for v in inventory.values())
        logger.info(f"Found {total} object(s) across {len(inventory)} kind(s)")
        return inventory

    @staticmethod
    def _partition_scriptable(
        items: Sequence[WorkItem], scriptable: AbstractSet[ObjectKind]
    ) -> Tuple[List[WorkItem], List[WorkItem]]:
        """Split items into those the scripting service handles and the rest."""
        kept: List[WorkItem] = []
        skipped: List[WorkItem] = []
        for item in items:
            if item.kind in scriptable:
                kept.append(item)
            else:
                logger.info(f"⊘ {item.kind.value} {item.output_path}: no scripter for this kind")
                skipped.append(item)
        return kept, skipped

    def _execute(self, items: Sequence[WorkItem]) -> List[ExecutionResult]:
        """
        Execute items with the configured strategy.

        A failing parallel pool falls back to sequential execution of the
        items it did not finish; results it already produced are kept.
        """
        parallel = self.settings.parallel
        if parallel.enabled and len(items) > 1:
            try:
                return ParallelExecutor.from_settings(self.context).execute(
                    items, self.connection_factory
                )
            except ParallelExecutionError as e:
                done = {r.work_item_id for r in e.partial_results}
                remaining = [item for item in items if item.id not in done]
                logger.warning(
                    f"Parallel execution failed ({e}); running {len(remaining)} "
                    f"remaining item(s) sequentially"
                )
                return list(e.partial_results) + SequentialExecutor(self.context).execute(
                    remaining, self.connection_factory
                )

        return SequentialExecutor(self.context).execute(items, self.connection_factory)

    @staticmethod
    def _records(
        items: Sequence[WorkItem], results: Sequence[ExecutionResult]
    ) -> List[ObjectRecord]:
        """Metadata records for every object of every successful item."""
        succeeded = {r.work_item_id for r in results if r.succeeded}
        records = []
        for item in items:
            if item.id not in succeeded:
                continue
            handler = KindRegistry.get_handler(item.kind)
            for identifier in item.identifiers:
                kind, owner_group, name = handler.object_key(identifier)
                records.append(
                    ObjectRecord(
                        kind=kind,
                        owner_group=owner_group,
                        name=name,
                        file_path=item.output_path,
                    )
                )
        return records

    @staticmethod
    def _effective_grouping_mode(builder: WorkItemBuilder) -> GroupingMode:
        """The first non-single mode of a configurable kind, else single."""
        for kind in builder.selected_kinds():
            handler = KindRegistry.get_handler(kind)
            if handler.fixed_grouping is None:
                mode = builder.mode_for(handler)
                if mode != GroupingMode.SINGLE:
                    return mode
        return GroupingMode.SINGLE


class ImportEngine:
    """
    Import engine.

    Replays an export run folder against the target:
    1. Ordinary scripts before the first retry-eligible folder
    2. Retry-eligible scripts through the dependency resolver
    3. Remaining ordinary scripts
    4. Row-level security policies
    5. Data, inside the foreign-key guard
    """

    def __init__(
        self,
        config: ReplicationConfig,
        connection_factory: Optional[ConnectionFactory] = None,
    ):
        """
        Initialize import engine.

        Args:
            config: Replication configuration with an import section
            connection_factory: Opens the target connection (defaults to the
                registered backend with connection retries)
        """
        if config.import_ is None:
            raise ConfigurationError("Configuration has no 'import' section")

        self.config = config
        self.settings: ImportSettings = config.import_
        self.context = ImportContext.create(
            self.settings, RetryConfig.from_settings(config.retry)
        )
        self.connection_factory = connection_factory or (
            lambda: connect_with_retry(self.settings.target, self.context.retry)
        )

    def run(self) -> ImportSummary:
        """
        Run the import.

        Returns:
            ImportSummary with per-category errors

        Raises:
            ScriptApplyError: If an ordinary script fails without continue-on-error
            DependencyChainError: If retry-eligible scripts stay unresolved
                without continue-on-error
            ConnectionFailedError: If the target cannot be reached
        """
        summary = ImportSummary(source_dir=self.context.source_dir)

        try:
            scripts = discover_scripts(self.context.source_dir)
            plan = build_import_plan(
                scripts, self.context.retry_kinds, self.settings.include_data
            )
            summary.total_scripts = plan.total
            summary.skipped = len(plan.skipped)
            error_handler = self.context.error_handler()

            with self.connection_factory() as connection:
                self._apply_all(connection, plan.before_retry, summary, error_handler)

                if plan.retry_eligible:
                    self._resolve_dependencies(connection, plan.retry_eligible, summary)

                self._apply_all(connection, plan.after_retry, summary, error_handler)

                if plan.security_policies:
                    logger.info(f"Applying {len(plan.security_policies)} security policy script(s)")
                    self._apply_all(connection, plan.security_policies, summary, error_handler)

                if plan.data:
                    self._load_data(connection, plan.data, summary, error_handler)

            summary.finalize()
            logger.info("\n" + str(summary))
            return summary

        except Exception as e:
            if isinstance(e, ScriptApplyError) and e not in summary.script_errors:
                summary.script_errors.append(e)
            logger.error(f"Fatal error during import: {e}", exc_info=True)
            summary.finalize()
            logger.info("\n" + str(summary))
            raise

    def _apply(self, connection: DatabaseConnection, script: ScriptFile) -> None:
        """Apply one script, batch by batch. Never retried mid-script."""
        connection.execute_script(script.read(self.context.sqlcmd_variables))

    def _apply_all(
        self,
        connection: DatabaseConnection,
        scripts: Sequence[ScriptFile],
        summary: ImportSummary,
        error_handler: ErrorHandler,
    ) -> None:
        """Apply ordinary scripts in order; errors are fatal unless tolerated."""
        for script in scripts:
            try:
                self._apply(connection, script)
            except Exception as e:
                logger.error(f"✗ {script.relative_path}: {describe_error(e)}")
                error = error_handler.handle_error(e, script.relative_path, script.kind)
                summary.script_errors.append(error)
                continue

            summary.applied += 1
            logger.info(f"✓ {script.relative_path}")

    def _resolve_dependencies(
        self,
        connection: DatabaseConnection,
        scripts: Sequence[ScriptFile],
        summary: ImportSummary,
    ) -> None:
        """Run the retry-eligible set through the dependency resolver."""
        logger.info(
            f"Resolving {len(scripts)} retry-eligible script(s) "
            f"in up to {self.context.max_passes} pass(es)"
        )
        resolver = DependencyResolver(
            apply=lambda script: self._apply(connection, script),
            max_passes=self.context.max_passes,
        )
        report = resolver.resolve(scripts)

        summary.applied += len(report.succeeded)
        summary.dependency_passes = report.passes
        summary.dependency_failures.update(report.failed)

        error = report.to_error()
        if error is not None and not self.context.continue_on_error:
            raise error

    def _load_data(
        self,
        connection: DatabaseConnection,
        scripts: Sequence[ScriptFile],
        summary: ImportSummary,
        error_handler: ErrorHandler,
    ) -> None:
        """Load data scripts with foreign keys suspended, then re-validate them."""
        logger.info(f"Loading {len(scripts)} data script(s)")
        guard = ForeignKeyGuard(connection)
        try:
            with guard:
                summary.constraints_suspended = len(guard.report.suspended)
                self._apply_all(connection, scripts, summary, error_handler)
        finally:
            summary.integrity_errors.extend(guard.report.errors)


def _load_config(config_path: str) -> ReplicationConfig:
    logger.info(f"Loading configuration from {config_path}")
    config = ConfigLoader().load(config_path)
    logger.info(f"Loaded replication config: {config.metadata.name}")
    return config


def run_export(config_path: str) -> ExportSummary:
    """
    Convenience function to run an export.

    Args:
        config_path: Path to YAML configuration

    Returns:
        ExportSummary
    """
    return ExportEngine(_load_config(config_path)).run()


def run_import(config_path: str) -> ImportSummary:
    """
    Convenience function to run an import.

    Args:
        config_path: Path to YAML configuration

    Returns:
        ImportSummary
    """
    return ImportEngine(_load_config(config_path)).run()
