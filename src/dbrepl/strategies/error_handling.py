"""Error handling strategies and exceptions."""

import logging
import re
import time
from typing import Callable, Iterator, List, Optional, TypeVar

from dbrepl.config.schema import ObjectKind

T = TypeVar("T")

logger = logging.getLogger(__name__)


class ReplicationError(Exception):
    """Base exception for replication errors."""

    def __init__(
        self,
        message: str,
        kind: Optional[ObjectKind] = None,
        object_name: Optional[str] = None,
    ):
        """
        Initialize replication error.

        Args:
            message: Error message
            kind: Kind of object that failed
            object_name: Name of object that failed
        """
        self.kind = kind
        self.object_name = object_name
        super().__init__(message)

    def __str__(self) -> str:
        """String representation."""
        if self.kind and self.object_name:
            return f"{self.kind.value} '{self.object_name}': {super().__str__()}"
        elif self.kind:
            return f"{self.kind.value}: {super().__str__()}"
        else:
            return super().__str__()


class ConfigurationError(ReplicationError):
    """
    Raised when configuration is invalid.

    These errors should always fail-fast.
    """

    pass


class DeltaValidationError(ConfigurationError):
    """
    Raised when delta export preconditions are not met.

    Always raised before any database connection is opened.
    """

    pass


class MetadataError(ReplicationError):
    """Raised when export metadata cannot be read, written or trusted."""

    pass


class ConnectionFailedError(ReplicationError):
    """Raised when a database connection cannot be established."""

    pass


class ScriptingError(ReplicationError):
    """
    Raised when scripting a work item fails during export.

    Counted per item; never aborts the run.
    """

    def __init__(
        self,
        message: str,
        kind: Optional[ObjectKind] = None,
        object_name: Optional[str] = None,
        original_exception: Optional[Exception] = None,
    ):
        """
        Initialize scripting error.

        Args:
            message: Error message
            kind: Kind of object that failed
            object_name: Name of object that failed
            original_exception: Original exception that caused this error
        """
        self.original_exception = original_exception
        super().__init__(message, kind, object_name)


class ScriptApplyError(ReplicationError):
    """Raised when an import script fails against the target."""

    def __init__(
        self,
        message: str,
        script_path: str,
        kind: Optional[ObjectKind] = None,
        original_exception: Optional[Exception] = None,
    ):
        """
        Initialize script apply error.

        Args:
            message: Error message
            script_path: Relative path of the failing script
            kind: Kind of object the script creates
            original_exception: Original exception that caused this error
        """
        self.script_path = script_path
        self.original_exception = original_exception
        super().__init__(message, kind, script_path)


class DependencyChainError(ReplicationError):
    """
    Raised for retry-eligible scripts still failing after the last pass.

    Only escalated after no-progress or pass exhaustion.
    """

    def __init__(self, message: str, pending_scripts: Optional[List[str]] = None):
        self.pending_scripts = pending_scripts or []
        super().__init__(message)


class ReferentialIntegrityError(ReplicationError):
    """
    Raised when a foreign key fails re-validation after a data load.

    Reported separately from script errors: it is a data problem.
    """

    def __init__(self, message: str, constraint: Optional[str] = None):
        self.constraint = constraint
        super().__init__(message, ObjectKind.FOREIGN_KEY, constraint)


class WorkerSetupError(ReplicationError):
    """Raised when a parallel worker cannot open its connection."""

    def __init__(self, message: str, worker_id: int):
        self.worker_id = worker_id
        super().__init__(message)


class ParallelExecutionError(ReplicationError):
    """
    Raised when the parallel coordinator itself fails.

    Carries the results gathered so far so a fallback can resume.
    """

    def __init__(self, message: str, partial_results: Optional[list] = None):
        self.partial_results = partial_results or []
        super().__init__(message)


# Error numbers treated as transient: timeouts, deadlock victim,
# transport failures and Azure SQL throttling/failover codes.
TRANSIENT_ERROR_CODES = frozenset(
    {
        -2,
        20,
        64,
        121,
        233,
        1205,
        4060,
        4221,
        10053,
        10054,
        10060,
        10928,
        10929,
        40143,
        40197,
        40501,
        40540,
        40613,
        49918,
        49919,
        49920,
    }
)

TRANSIENT_MESSAGE_PATTERNS = (
    "timeout expired",
    "timed out",
    "login timeout",
    "query timeout",
    "connection pool",
    "max pool size",
    "transport-level error",
    "communication link failure",
)

TRANSIENT_SQLSTATES = frozenset({"08S01", "HYT00", "HYT01"})

_ERROR_CODE_PATTERNS = (
    re.compile(r"\((-?\d+)\)"),
    re.compile(r"error(?: number)?[:\s]+(-?\d+)", re.IGNORECASE),
)


def _cause_chain(error: BaseException) -> Iterator[BaseException]:
    """Yield the error and every chained cause/context once."""
    seen = set()
    current: Optional[BaseException] = error
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or current.__context__


def describe_error(error: BaseException) -> str:
    """Render an error with its explicit cause chain, innermost last."""
    parts = [str(error) or error.__class__.__name__]
    cause = error.__cause__
    while cause is not None:
        text = str(cause) or cause.__class__.__name__
        if text not in parts[-1]:
            parts.append(text)
        cause = cause.__cause__
    return " <- ".join(parts)


def _error_codes(error: BaseException) -> set:
    """Collect numeric error codes from attributes and message text."""
    codes = set()
    for attr in ("number", "errno", "code"):
        value = getattr(error, attr, None)
        if isinstance(value, int):
            codes.add(value)

    text = str(error)
    for pattern in _ERROR_CODE_PATTERNS:
        for match in pattern.findall(text):
            codes.add(int(match))
    return codes


def is_transient_error(error: BaseException) -> bool:
    """
    Classify an error as transient (worth retrying) or not.

    Checks every exception in the cause chain against known timeout
    phrasing, transient error numbers, transport SQLSTATEs and
    connection pool exhaustion wording.

    Args:
        error: Exception raised by the operation

    Returns:
        True if the error is transient
    """
    for exc in _cause_chain(error):
        if isinstance(exc, TimeoutError):
            return True

        text = str(exc).lower()
        if any(pattern in text for pattern in TRANSIENT_MESSAGE_PATTERNS):
            return True

        args = getattr(exc, "args", ())
        if args and isinstance(args[0], str) and args[0].upper() in TRANSIENT_SQLSTATES:
            return True

        if _error_codes(exc) & TRANSIENT_ERROR_CODES:
            return True

    return False


class RetryConfig:
    """Configuration for retry behavior."""

    def __init__(
        self,
        max_attempts: int = 3,
        initial_delay: float = 1.0,
        max_delay: float = 60.0,
        exponential_base: float = 2.0,
    ):
        """
        Initialize retry configuration.

        Args:
            max_attempts: Maximum number of attempts (first try included)
            initial_delay: Initial delay in seconds
            max_delay: Maximum delay in seconds
            exponential_base: Base for exponential backoff
        """
        self.max_attempts = max_attempts
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base

    @classmethod
    def from_settings(cls, settings) -> "RetryConfig":
        """Build from the ``retry`` section of the configuration."""
        return cls(
            max_attempts=settings.max_attempts,
            initial_delay=settings.initial_delay,
            max_delay=settings.max_delay,
        )

    def get_delay(self, attempt: int) -> float:
        """
        Get delay for the given attempt number.

        Args:
            attempt: Attempt number (0-indexed)

        Returns:
            Delay in seconds
        """
        delay = self.initial_delay * (self.exponential_base**attempt)
        return min(delay, self.max_delay)


def retry_with_backoff(
    func: Callable[[], T],
    config: Optional[RetryConfig] = None,
    is_transient: Callable[[BaseException], bool] = is_transient_error,
    sleep: Callable[[float], None] = time.sleep,
    description: str = "operation",
) -> T:
    """
    Retry a function with exponential backoff on transient errors.

    Non-transient errors propagate immediately, without delay.

    Args:
        func: Function to call
        config: Retry configuration
        is_transient: Classifier deciding whether an error is retryable
        sleep: Sleep function (injectable for tests)
        description: What is being retried, for log messages

    Returns:
        Result of function call

    Raises:
        The last exception if it is non-transient or attempts are exhausted
    """
    if config is None:
        config = RetryConfig()

    for attempt in range(config.max_attempts):
        try:
            return func()
        except Exception as e:
            if not is_transient(e) or attempt >= config.max_attempts - 1:
                raise

            delay = config.get_delay(attempt)
            logger.warning(
                f"Transient failure in {description} "
                f"(attempt {attempt + 1}/{config.max_attempts}), "
                f"retrying in {delay:.1f}s: {e}"
            )
            sleep(delay)

    raise RuntimeError("Retry failed with no exception")


class ErrorHandler:
    """
    Handles import script errors outside the retry-eligible set.

    Script errors are fatal unless continue-on-error was requested.
    """

    def __init__(self, continue_on_error: bool = False):
        """
        Initialize error handler.

        Args:
            continue_on_error: Continue processing on script errors
        """
        self.continue_on_error = continue_on_error

    def should_fail_fast(self, error: Exception) -> bool:
        """
        Determine if we should fail fast for this error.

        Args:
            error: Exception that occurred

        Returns:
            True if should fail fast
        """
        if isinstance(error, ConfigurationError):
            return True

        if isinstance(error, (ScriptApplyError, ReferentialIntegrityError)):
            return not self.continue_on_error

        return True

    def handle_error(
        self,
        error: Exception,
        script_path: str,
        kind: Optional[ObjectKind] = None,
    ) -> ReplicationError:
        """
        Handle an error according to strategy.

        Args:
            error: Exception that occurred
            script_path: Script being applied
            kind: Kind of object the script creates

        Returns:
            The wrapped error, when processing may continue

        Raises:
            ReplicationError if should fail fast
        """
        if not isinstance(error, ReplicationError):
            wrapped = ScriptApplyError(
                message=str(error),
                script_path=script_path,
                kind=kind,
                original_exception=error,
            )
            wrapped.__cause__ = error
            error = wrapped

        if self.should_fail_fast(error):
            raise error
        return error
