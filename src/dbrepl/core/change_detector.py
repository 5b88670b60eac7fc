"""Delta export: classify objects against the previous run and copy the unchanged ones."""

import logging
import re
import shutil
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Dict, List, Mapping, Optional, Sequence, Set

from dbrepl.config.schema import DeltaConfig, GroupingConfig, GroupingMode, ObjectKind
from dbrepl.core.metadata_store import ExportMetadata, MetadataStore, ObjectRecord
from dbrepl.objects.base import ObjectIdentifier, ObjectKey
from dbrepl.objects.registry import KindRegistry
from dbrepl.strategies.error_handling import DeltaValidationError, MetadataError

logger = logging.getLogger(__name__)

# Kinds whose catalog modification time cannot be trusted; always re-exported
ALWAYS_EXPORT_KINDS = frozenset(
    handler.kind for handler in KindRegistry.all_handlers() if not handler.timestamped
)

_DRIVE_PREFIX = re.compile(r"^[A-Za-z]:")


class DeltaCategory(str, Enum):
    """Delta classification of one object."""

    NEW = "new"
    MODIFIED = "modified"
    UNCHANGED = "unchanged"
    DELETED = "deleted"
    ALWAYS_EXPORT = "always_export"


@dataclass
class DeltaClassification:
    """
    Partition of the current and previous inventories.

    Always-export objects are also classified by comparison, so they can
    appear in ``unchanged`` too; they are excluded from the copy set.
    """

    new: Set[ObjectKey] = field(default_factory=set)
    modified: Set[ObjectKey] = field(default_factory=set)
    unchanged: Set[ObjectKey] = field(default_factory=set)
    deleted: Set[ObjectKey] = field(default_factory=set)
    always_export: Set[ObjectKey] = field(default_factory=set)

    @property
    def to_export(self) -> Set[ObjectKey]:
        """Keys scripted again in this run."""
        return self.new | self.modified | self.always_export

    @property
    def to_copy(self) -> Set[ObjectKey]:
        """Keys satisfied by copying the previous run's file."""
        return self.unchanged - self.always_export

    def category_of(self, key: ObjectKey) -> Optional[DeltaCategory]:
        """Primary category of a key (always-export wins)."""
        if key in self.always_export:
            return DeltaCategory.ALWAYS_EXPORT
        for category, keys in (
            (DeltaCategory.NEW, self.new),
            (DeltaCategory.MODIFIED, self.modified),
            (DeltaCategory.UNCHANGED, self.unchanged),
            (DeltaCategory.DELETED, self.deleted),
        ):
            if key in keys:
                return category
        return None

    def summary(self) -> str:
        """One-line summary."""
        return (
            f"{len(self.new)} new, {len(self.modified)} modified, "
            f"{len(self.unchanged)} unchanged, {len(self.deleted)} deleted, "
            f"{len(self.always_export)} always exported"
        )


@dataclass
class CopyOutcome:
    """Result of copying unchanged files from the previous run."""

    copied: List[ObjectRecord] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)


def validate_relative_path(path: str) -> PurePosixPath:
    """
    Check a metadata file path before using it.

    Args:
        path: Path recorded in metadata

    Returns:
        The path as a relative POSIX path

    Raises:
        MetadataError: If the path is absolute or climbs out of the run folder
    """
    normalized = path.replace("\\", "/")
    if not normalized or normalized.startswith("/") or _DRIVE_PREFIX.match(normalized):
        raise MetadataError(f"Refusing absolute path in export metadata: {path!r}")

    relative = PurePosixPath(normalized)
    if ".." in relative.parts:
        raise MetadataError(f"Refusing path traversal in export metadata: {path!r}")
    return relative


def is_modified_since(modified: datetime, previous: ExportMetadata) -> bool:
    """
    Compare a modification time with the previous run's start.

    Naive times are read from the server clock and compare against the
    server time recorded at the previous run's start. Metadata written
    without a server time falls back to the export machine's local start.
    Aware times compare against the UTC start time.
    """
    if modified.tzinfo is None:
        reference = previous.server_start_time or previous.export_start_time_local
        reference = reference.replace(tzinfo=None)
    else:
        reference = previous.export_start_time_utc
        if reference.tzinfo is None:
            modified = modified.replace(tzinfo=None)
    return modified > reference


class ChangeDetector:
    """
    Classifies the live inventory against the previous export's metadata.

    Usage:
        previous = ChangeDetector.validate_preconditions(delta, grouping)
        detector = ChangeDetector(previous, delta.previous_export)
        classification = detector.classify(inventory, times)
    """

    def __init__(self, previous: ExportMetadata, previous_dir: Path):
        """
        Initialize change detector.

        Args:
            previous: Metadata of the previous run
            previous_dir: Folder of the previous run
        """
        self.previous = previous
        self.previous_dir = Path(previous_dir)
        self._records = previous.records_by_key()

    @staticmethod
    def validate_preconditions(
        delta: DeltaConfig, grouping: GroupingConfig
    ) -> ExportMetadata:
        """
        Check delta preconditions without touching the database.

        Args:
            delta: Delta configuration
            grouping: Grouping configuration of the current run

        Returns:
            Metadata of the previous run

        Raises:
            DeltaValidationError: If metadata is missing or unreadable, or
                either run groups objects into shared files
        """
        if not delta.previous_export:
            raise DeltaValidationError("Delta export requires 'previous_export'")

        try:
            previous = MetadataStore.read(delta.previous_export)
        except MetadataError as e:
            raise DeltaValidationError(f"Cannot use previous export: {e}") from e

        if previous.grouping_mode != GroupingMode.SINGLE:
            raise DeltaValidationError(
                f"Previous export used grouping mode '{previous.grouping_mode.value}'; "
                f"delta export requires '{GroupingMode.SINGLE.value}'"
            )

        grouped = [
            handler.kind.value
            for handler in KindRegistry.all_handlers()
            if handler.fixed_grouping is None
            and grouping.mode_for(handler.kind) != GroupingMode.SINGLE
        ]
        if grouped:
            raise DeltaValidationError(
                f"Delta export requires grouping mode '{GroupingMode.SINGLE.value}'; "
                f"grouped kinds: {', '.join(grouped)}"
            )

        return previous

    def classify(
        self,
        inventory: Mapping[ObjectKind, Sequence[ObjectIdentifier]],
        modification_times: Mapping[ObjectKey, datetime],
    ) -> DeltaClassification:
        """
        Classify every current object.

        Args:
            inventory: Current objects by kind
            modification_times: Times from one batched catalog query

        Returns:
            DeltaClassification
        """
        result = DeltaClassification()
        current: Set[ObjectKey] = set()

        for kind, identifiers in inventory.items():
            handler = KindRegistry.get_handler(kind)
            for identifier in identifiers:
                key = handler.object_key(identifier)
                current.add(key)

                if kind in ALWAYS_EXPORT_KINDS:
                    result.always_export.add(key)

                if key not in self._records:
                    result.new.add(key)
                    continue

                modified = modification_times.get(key)
                if modified is None:
                    if kind in ALWAYS_EXPORT_KINDS:
                        result.unchanged.add(key)
                    else:
                        # Timestamped kind without a time: cannot prove unchanged
                        logger.debug(f"No modification time for {key}; treating as modified")
                        result.modified.add(key)
                elif is_modified_since(modified, self.previous):
                    result.modified.add(key)
                else:
                    result.unchanged.add(key)

        result.deleted = {
            key for key in self._records if key[0] in inventory and key not in current
        }

        logger.info(f"Delta classification: {result.summary()}")
        for key in sorted(result.deleted, key=_key_sort):
            logger.info(f"Deleted since previous export: {key[0].value} {_key_name(key)}")
        return result

    def filter_inventory(
        self,
        inventory: Mapping[ObjectKind, Sequence[ObjectIdentifier]],
        classification: DeltaClassification,
    ) -> Dict[ObjectKind, List[ObjectIdentifier]]:
        """
        Keep only the objects that must be scripted again.

        Args:
            inventory: Current objects by kind
            classification: Result of classify()

        Returns:
            Objects to export by kind
        """
        to_export = classification.to_export
        filtered: Dict[ObjectKind, List[ObjectIdentifier]] = {}
        for kind, identifiers in inventory.items():
            handler = KindRegistry.get_handler(kind)
            filtered[kind] = [
                i for i in identifiers if handler.object_key(i) in to_export
            ]
        return filtered

    def copy_unchanged(
        self, classification: DeltaClassification, output_root: Path
    ) -> CopyOutcome:
        """
        Copy the previous run's files for unchanged objects.

        Args:
            classification: Result of classify()
            output_root: Folder of the current run

        Returns:
            CopyOutcome with copied records and per-object failures
        """
        outcome = CopyOutcome()

        for key in sorted(classification.to_copy, key=_key_sort):
            record = self._records[key]
            label = f"{key[0].value} {_key_name(key)}"
            try:
                relative = validate_relative_path(record.file_path)
                source = self.previous_dir / relative
                destination = Path(output_root) / relative
                destination.parent.mkdir(parents=True, exist_ok=True)
                shutil.copyfile(source, destination)
            except (MetadataError, OSError) as e:
                logger.error(f"✗ Copy {label}: {e}")
                outcome.failed[label] = str(e)
                continue

            logger.info(f"⊘ Unchanged {label}: copied {relative}")
            outcome.copied.append(
                ObjectRecord(
                    kind=record.kind,
                    owner_group=record.owner_group,
                    name=record.name,
                    file_path=relative.as_posix(),
                )
            )

        return outcome


def _key_name(key: ObjectKey) -> str:
    kind, owner_group, name = key
    return f"{owner_group}.{name}" if owner_group else name


def _key_sort(key: ObjectKey):
    return (key[0].value, key[1] or "", key[2])
