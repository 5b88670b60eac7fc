"""Import script discovery and ordering."""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Collection, Dict, List, Optional

from dbrepl.config.schema import ObjectKind
from dbrepl.objects.registry import KindRegistry
from dbrepl.sources.batches import substitute_variables

# Import to trigger handler registration via decorators
import dbrepl.objects  # noqa: F401

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScriptFile:
    """One script of an export run folder."""

    path: Path
    relative_path: str
    kind: Optional[ObjectKind]

    def read(self, variables: Optional[Dict[str, str]] = None) -> str:
        """Read the script with SQLCMD variables substituted."""
        text = self.path.read_text(encoding="utf-8-sig")
        return substitute_variables(text, variables or {})

    def __str__(self) -> str:
        """String representation."""
        return self.relative_path


@dataclass
class ImportPlan:
    """
    Scripts of one run folder in application order.

    Ordinary scripts in folders before the first retry-eligible script
    run first, then the retry-eligible set goes through the dependency
    resolver, then the remaining ordinary scripts, then row-level
    security policies, then data inside the foreign-key guard.
    """

    before_retry: List[ScriptFile] = field(default_factory=list)
    retry_eligible: List[ScriptFile] = field(default_factory=list)
    after_retry: List[ScriptFile] = field(default_factory=list)
    security_policies: List[ScriptFile] = field(default_factory=list)
    data: List[ScriptFile] = field(default_factory=list)
    skipped: List[ScriptFile] = field(default_factory=list)

    @property
    def total(self) -> int:
        """Number of scripts that will be applied."""
        return (
            len(self.before_retry)
            + len(self.retry_eligible)
            + len(self.after_retry)
            + len(self.security_policies)
            + len(self.data)
        )


def discover_scripts(source_dir: Path) -> List[ScriptFile]:
    """
    Find every script under an export run folder.

    Args:
        source_dir: Export run folder

    Returns:
        ScriptFile list sorted by relative path, which is phase order
    """
    source_dir = Path(source_dir)
    if not source_dir.is_dir():
        raise FileNotFoundError(f"Import source folder not found: {source_dir}")

    scripts = []
    for path in source_dir.rglob("*.sql"):
        if not path.is_file():
            continue
        relative = path.relative_to(source_dir).as_posix()
        folder = relative.rsplit("/", 1)[0] if "/" in relative else ""
        kind = KindRegistry.kind_for_folder(folder)
        if kind is None:
            logger.warning(f"Script in unknown folder, applied in path order: {relative}")
        scripts.append(ScriptFile(path=path, relative_path=relative, kind=kind))

    scripts.sort(key=lambda s: s.relative_path)
    logger.info(f"Found {len(scripts)} script(s) in {source_dir}")
    return scripts


def build_import_plan(
    scripts: List[ScriptFile],
    retry_kinds: Collection[ObjectKind] = (),
    include_data: bool = False,
) -> ImportPlan:
    """
    Partition scripts into the import phases.

    Args:
        scripts: Scripts in path order
        retry_kinds: Kinds handled by the dependency resolver (empty disables it)
        include_data: Whether data scripts are loaded

    Returns:
        ImportPlan
    """
    plan = ImportPlan()
    retry_started = False

    for script in scripts:
        if script.kind == ObjectKind.TABLE_DATA:
            if include_data:
                plan.data.append(script)
            else:
                plan.skipped.append(script)
        elif script.kind == ObjectKind.SECURITY_POLICY:
            plan.security_policies.append(script)
        elif script.kind is not None and script.kind in retry_kinds:
            retry_started = True
            plan.retry_eligible.append(script)
        elif retry_started:
            plan.after_retry.append(script)
        else:
            plan.before_retry.append(script)

    logger.info(
        f"Import plan: {len(plan.before_retry)} before retry set, "
        f"{len(plan.retry_eligible)} retry-eligible, {len(plan.after_retry)} after, "
        f"{len(plan.security_policies)} security policies, {len(plan.data)} data, "
        f"{len(plan.skipped)} skipped"
    )
    return plan
