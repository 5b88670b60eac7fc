"""Work item execution: the pure item executor and the sequential strategy."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from dbrepl.config.schema import ConnectionConfig
from dbrepl.core.context import ExportContext
from dbrepl.core.work_items import WorkItem
from dbrepl.objects.registry import KindRegistry
from dbrepl.sources.base import DatabaseConnection, ScriptingService
from dbrepl.sources.registry import SourceRegistry
from dbrepl.strategies.error_handling import (
    ConnectionFailedError,
    ReplicationError,
    RetryConfig,
    describe_error,
    retry_with_backoff,
)

logger = logging.getLogger(__name__)

# Returns an open connection owned by the caller
ConnectionFactory = Callable[[], DatabaseConnection]


@dataclass
class ExecutionResult:
    """Outcome of one work item (or of a worker that could not start)."""

    work_item_id: str
    object_count: int
    succeeded: bool
    error: Optional[str] = None
    output_path: Optional[str] = None

    def __str__(self) -> str:
        """String representation."""
        target = self.output_path or self.work_item_id
        if self.succeeded:
            return f"EXPORTED: {target} ({self.object_count} object(s))"
        return f"FAILED: {target} - {self.error}"


def connect_with_retry(
    config: ConnectionConfig, retry: Optional[RetryConfig] = None
) -> DatabaseConnection:
    """
    Open a connection, retrying transient failures with backoff.

    Args:
        config: Connection configuration
        retry: Retry policy

    Returns:
        Open DatabaseConnection

    Raises:
        ConnectionFailedError: If the connection cannot be established
    """

    def attempt() -> DatabaseConnection:
        connection = SourceRegistry.create_connection(config)
        connection.connect()
        return connection

    try:
        return retry_with_backoff(
            attempt, retry, description=f"connect to {config.server}/{config.database}"
        )
    except Exception as e:
        raise ConnectionFailedError(
            f"Could not connect to {config.server}/{config.database}: {e}"
        ) from e


def execute_work_item(
    context: ExportContext, scripter: ScriptingService, item: WorkItem
) -> ExecutionResult:
    """
    Script every object of a work item into its output file.

    Never raises: failures become a failed result.

    Args:
        context: Export context
        scripter: Scripting service bound to the caller's connection
        item: Work item

    Returns:
        ExecutionResult for the item
    """
    handler = KindRegistry.get_handler(item.kind)
    output_path = context.output_path(item.output_path)

    try:
        for index, identifier in enumerate(item.identifiers):
            target = handler.resolve(identifier)
            scripter.script(
                target,
                dict(item.script_options),
                output_path,
                append=item.append_to_existing_file or index > 0,
            )
    except Exception as e:
        logger.error(
            f"✗ {item.kind.value} {item.output_path}: {describe_error(e)}",
            exc_info=not isinstance(e, ReplicationError),
        )
        return ExecutionResult(
            work_item_id=item.id,
            object_count=item.object_count,
            succeeded=False,
            error=describe_error(e),
            output_path=item.output_path,
        )

    logger.info(f"✓ {item.kind.value} {item.output_path}")
    return ExecutionResult(
        work_item_id=item.id,
        object_count=item.object_count,
        succeeded=True,
        output_path=item.output_path,
    )


class ExecutionStrategy(ABC):
    """
    Abstract base class for execution strategies.

    Every strategy produces one result per work item and the same set of
    output files as every other strategy.
    """

    def __init__(self, context: ExportContext):
        """
        Initialize execution strategy.

        Args:
            context: Export context
        """
        self.context = context

    @abstractmethod
    def execute(
        self, items: Sequence[WorkItem], connection_factory: ConnectionFactory
    ) -> List[ExecutionResult]:
        """
        Execute work items.

        Args:
            items: Work items
            connection_factory: Opens a connection for the caller

        Returns:
            ExecutionResult list
        """
        pass


class SequentialExecutor(ExecutionStrategy):
    """Runs items one at a time in builder order on a single connection."""

    def execute(
        self, items: Sequence[WorkItem], connection_factory: ConnectionFactory
    ) -> List[ExecutionResult]:
        """
        Execute items in order, recording failures and carrying on.

        Raises:
            ConnectionFailedError: If the connection cannot be opened
        """
        if not items:
            return []

        try:
            connection = connection_factory()
        except ConnectionFailedError:
            raise
        except Exception as e:
            raise ConnectionFailedError(f"Could not open connection: {e}") from e

        results = []
        with connection:
            scripter = connection.create_scripter()
            for item in items:
                results.append(execute_work_item(self.context, scripter, item))

        failed = sum(1 for r in results if not r.succeeded)
        logger.info(f"Sequential execution finished: {len(results)} item(s), {failed} failed")
        return results
