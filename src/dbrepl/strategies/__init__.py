"""Processing strategies."""

from dbrepl.strategies.error_handling import (
    ConfigurationError,
    ConnectionFailedError,
    DeltaValidationError,
    DependencyChainError,
    ErrorHandler,
    MetadataError,
    ParallelExecutionError,
    ReferentialIntegrityError,
    ReplicationError,
    RetryConfig,
    ScriptApplyError,
    ScriptingError,
    WorkerSetupError,
    describe_error,
    is_transient_error,
    retry_with_backoff,
)
from dbrepl.strategies.grouping import (
    AllStrategy,
    ByGroupStrategy,
    FileAssignment,
    GroupingStrategy,
    GroupingStrategyFactory,
    SingleStrategy,
)

__all__ = [
    # Error handling
    "ReplicationError",
    "ConfigurationError",
    "DeltaValidationError",
    "MetadataError",
    "ConnectionFailedError",
    "ScriptingError",
    "ScriptApplyError",
    "DependencyChainError",
    "ReferentialIntegrityError",
    "WorkerSetupError",
    "ParallelExecutionError",
    "ErrorHandler",
    "RetryConfig",
    "describe_error",
    "is_transient_error",
    "retry_with_backoff",
    # Grouping
    "GroupingStrategy",
    "SingleStrategy",
    "ByGroupStrategy",
    "AllStrategy",
    "FileAssignment",
    "GroupingStrategyFactory",
]
