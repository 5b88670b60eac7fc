"""Multi-pass retry of import scripts that may reference each other."""

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from dbrepl.config.schema import ObjectKind
from dbrepl.core.import_plan import ScriptFile
from dbrepl.strategies.error_handling import DependencyChainError, describe_error

logger = logging.getLogger(__name__)


class StopReason(str, Enum):
    """Why the resolver stopped."""

    RESOLVED = "resolved"
    NO_PROGRESS = "no_progress"
    MAX_PASSES = "max_passes"


@dataclass(frozen=True)
class RetryCandidate:
    """A retry-eligible script still waiting to succeed."""

    script: ScriptFile
    remaining_attempts: int

    @property
    def script_path(self) -> str:
        """Script path relative to the run folder."""
        return self.script.relative_path

    @property
    def kind(self) -> Optional[ObjectKind]:
        """Kind of object the script creates."""
        return self.script.kind


@dataclass
class ResolverReport:
    """Outcome of a resolver run."""

    passes: int = 0
    stop_reason: StopReason = StopReason.RESOLVED
    succeeded: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        """Whether every candidate succeeded."""
        return not self.failed

    def to_error(self) -> Optional[DependencyChainError]:
        """Escalate remaining failures, if any."""
        if self.success:
            return None
        return DependencyChainError(
            f"{len(self.failed)} script(s) still failing after {self.passes} pass(es) "
            f"({self.stop_reason.value})",
            pending_scripts=list(self.failed),
        )


class DependencyResolver:
    """
    Bounded fixpoint iteration over retry-eligible scripts.

    Each pass tries every pending script once, in a stable order. The
    loop stops when nothing is pending, when a pass resolves nothing, or
    after ``max_passes``. An acyclic chain of depth d resolves within d
    passes; a cycle stops on the first pass that makes no progress.
    """

    def __init__(self, apply: Callable[[ScriptFile], None], max_passes: int = 10):
        """
        Initialize dependency resolver.

        Args:
            apply: Applies one script; raises on failure
            max_passes: Maximum passes
        """
        if max_passes < 1:
            raise ValueError("max_passes must be at least 1")
        self.apply = apply
        self.max_passes = max_passes

    def resolve(self, scripts: Sequence[ScriptFile]) -> ResolverReport:
        """
        Apply scripts until they all succeed or no progress is possible.

        Args:
            scripts: Retry-eligible scripts

        Returns:
            ResolverReport with the last error of every failed script
        """
        report = ResolverReport()
        pending: Tuple[RetryCandidate, ...] = tuple(
            RetryCandidate(script=s, remaining_attempts=self.max_passes)
            for s in sorted(scripts, key=lambda s: s.relative_path)
        )
        last_errors: Dict[str, str] = {}

        while pending:
            still_pending = self._run_pass(pending, report, last_errors)
            report.passes += 1
            progressed = len(still_pending) < len(pending)

            logger.info(
                f"Dependency pass {report.passes}/{self.max_passes}: "
                f"{len(pending) - len(still_pending)} resolved, {len(still_pending)} pending"
            )

            pending = still_pending
            if not pending:
                report.stop_reason = StopReason.RESOLVED
            elif not progressed:
                report.stop_reason = StopReason.NO_PROGRESS
                logger.warning(
                    f"No progress in pass {report.passes}; "
                    f"{len(pending)} script(s) fail for reasons other than ordering"
                )
                break
            elif all(c.remaining_attempts == 0 for c in pending):
                report.stop_reason = StopReason.MAX_PASSES
                break

        for candidate in pending:
            report.failed[candidate.script_path] = last_errors[candidate.script_path]
            logger.error(
                f"✗ {candidate.script_path}: {last_errors[candidate.script_path]}"
            )

        return report

    def _run_pass(
        self,
        pending: Tuple[RetryCandidate, ...],
        report: ResolverReport,
        last_errors: Dict[str, str],
    ) -> Tuple[RetryCandidate, ...]:
        """Try every pending script once; return those that still fail."""
        still_pending = []
        for candidate in pending:
            try:
                self.apply(candidate.script)
            except Exception as e:
                last_errors[candidate.script_path] = describe_error(e)
                logger.debug(f"Deferred {candidate.script_path}: {e}")
                still_pending.append(
                    replace(candidate, remaining_attempts=candidate.remaining_attempts - 1)
                )
                continue

            report.succeeded.append(candidate.script_path)
            logger.info(f"✓ {candidate.script_path}")
        return tuple(still_pending)
