"""Per-run contexts shared read-only by every component of a run."""

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from dbrepl.config.schema import ExportSettings, ImportSettings, ObjectKind
from dbrepl.core.metadata_store import ExportMetadata
from dbrepl.strategies.error_handling import ErrorHandler, RetryConfig


def run_folder_name(server: str, database: str, started: datetime) -> str:
    """
    Name of an export run folder.

    Args:
        server: Source server, e.g. 'localhost,1433' or 'HOST\\INSTANCE'
        database: Source database
        started: Local start time of the run

    Returns:
        '<server>_<database>_<YYYYMMDD_HHMMSS>'
    """
    safe_server = server.replace("\\", "_").replace(":", "_")
    return f"{safe_server}_{database}_{started:%Y%m%d_%H%M%S}"


@dataclass(frozen=True)
class ExportContext:
    """
    Immutable state of one export run.

    Built once and handed to every component, including each parallel
    worker. Workers share this value but never a connection.
    """

    settings: ExportSettings
    output_root: Path
    start_time_utc: datetime
    start_time_local: datetime
    retry: RetryConfig
    previous_metadata: Optional[ExportMetadata] = None

    @classmethod
    def create(
        cls,
        settings: ExportSettings,
        retry: Optional[RetryConfig] = None,
        previous_metadata: Optional[ExportMetadata] = None,
        now: Optional[datetime] = None,
    ) -> "ExportContext":
        """
        Create the context for a new run, choosing its output folder.

        Args:
            settings: Export settings
            retry: Connection retry policy
            previous_metadata: Metadata of the previous run (delta mode)
            now: Start time (aware); defaults to the current time

        Returns:
            ExportContext
        """
        start_utc = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
        start_local = start_utc.astimezone().replace(tzinfo=None)
        folder = run_folder_name(
            settings.source.server, settings.source.database, start_local
        )
        return cls(
            settings=settings,
            output_root=Path(settings.output_dir) / folder,
            start_time_utc=start_utc,
            start_time_local=start_local,
            retry=retry or RetryConfig(),
            previous_metadata=previous_metadata,
        )

    @property
    def delta_enabled(self) -> bool:
        """Whether this run is incremental."""
        return self.settings.delta.enabled

    def output_path(self, relative_path: str) -> Path:
        """Absolute location of a run-relative output path."""
        return self.output_root / relative_path


@dataclass(frozen=True)
class ImportContext:
    """Immutable state of one import run."""

    settings: ImportSettings
    retry: RetryConfig

    @classmethod
    def create(
        cls, settings: ImportSettings, retry: Optional[RetryConfig] = None
    ) -> "ImportContext":
        """Create the context for an import run."""
        return cls(settings=settings, retry=retry or RetryConfig())

    @property
    def source_dir(self) -> Path:
        """Export run folder being replayed."""
        return Path(self.settings.source_dir)

    @property
    def continue_on_error(self) -> bool:
        """Whether ordinary script failures are tolerated."""
        return self.settings.continue_on_error

    @property
    def retry_kinds(self) -> List[ObjectKind]:
        """Kinds whose scripts go through the dependency resolver."""
        retries = self.settings.dependency_retries
        return list(retries.kinds) if retries.enabled else []

    @property
    def max_passes(self) -> int:
        """Maximum dependency resolver passes."""
        return self.settings.dependency_retries.max_passes

    @property
    def sqlcmd_variables(self) -> Dict[str, str]:
        """Values substituted for $(NAME) placeholders."""
        return self.settings.sqlcmd_variables

    def error_handler(self) -> ErrorHandler:
        """Error handler for ordinary import scripts."""
        return ErrorHandler(continue_on_error=self.continue_on_error)
