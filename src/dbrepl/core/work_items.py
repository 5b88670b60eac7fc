"""Work item model and builder."""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from dbrepl.config.schema import (
    FilterConfig,
    GroupingConfig,
    GroupingMode,
    ObjectKind,
    SpecialHandling,
)
from dbrepl.objects.base import KindHandler, ObjectIdentifier
from dbrepl.objects.registry import KindRegistry
from dbrepl.strategies.grouping import GroupingStrategyFactory

# Import to trigger handler registration via decorators
import dbrepl.objects  # noqa: F401

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WorkItem:
    """
    One output artifact of an export run.

    ``output_path`` is relative to the run folder and unique within a run.
    """

    id: str
    kind: ObjectKind
    grouping_mode: GroupingMode
    identifiers: Tuple[ObjectIdentifier, ...]
    output_path: str
    append_to_existing_file: bool = False
    script_options: Dict[str, Any] = field(default_factory=dict, hash=False)
    special_handling: Optional[SpecialHandling] = None

    @property
    def object_count(self) -> int:
        """Number of objects written to the output file."""
        return len(self.identifiers)

    def __str__(self) -> str:
        """String representation."""
        return f"{self.id} -> {self.output_path} ({self.object_count} object(s))"


class WorkItemBuilder:
    """
    Builds work items from an inventory.

    Applies kind and name filters, chooses each kind's grouping mode and
    delegates file assignment to the grouping strategy. Paths depend only
    on kind, mode and identifiers, so an unchanged inventory always
    yields the same items.
    """

    def __init__(
        self,
        grouping: Optional[GroupingConfig] = None,
        filters: Optional[FilterConfig] = None,
        script_options: Optional[Dict[str, Any]] = None,
        include_data: bool = False,
    ):
        """
        Initialize work item builder.

        Args:
            grouping: Grouping mode per kind
            filters: Kind and name filters
            script_options: Global scripting option overrides
            include_data: Whether table data is exported
        """
        self.grouping = grouping or GroupingConfig()
        self.filters = filters or FilterConfig()
        self.script_options = dict(script_options or {})
        self.include_data = include_data

        self._include_patterns = [re.compile(p) for p in self.filters.include_patterns]
        self._exclude_patterns = [re.compile(p) for p in self.filters.exclude_patterns]

    @classmethod
    def from_settings(cls, settings) -> "WorkItemBuilder":
        """Create a builder from export settings."""
        return cls(
            grouping=settings.grouping,
            filters=settings.filters,
            script_options=settings.script_options,
            include_data=settings.include_data,
        )

    def is_kind_selected(self, kind: ObjectKind) -> bool:
        """
        Check a kind against the include/exclude kind lists.

        Args:
            kind: Object kind

        Returns:
            True if objects of this kind are exported
        """
        if kind == ObjectKind.TABLE_DATA and not self.include_data:
            return False
        if self.filters.include_kinds:
            return kind in self.filters.include_kinds
        return kind not in self.filters.exclude_kinds

    def selected_kinds(self) -> List[ObjectKind]:
        """Selected kinds in folder (dependency) order."""
        return [
            handler.kind
            for handler in KindRegistry.all_handlers()
            if self.is_kind_selected(handler.kind)
        ]

    def matches_filters(self, handler: KindHandler, identifier: ObjectIdentifier) -> bool:
        """Check an object's dotted name against the name patterns."""
        name = handler.display_name(identifier)
        if self._include_patterns and not any(
            p.match(name) for p in self._include_patterns
        ):
            return False
        return not any(p.match(name) for p in self._exclude_patterns)

    def select_objects(
        self, inventory: Mapping[ObjectKind, Sequence[ObjectIdentifier]]
    ) -> Dict[ObjectKind, List[ObjectIdentifier]]:
        """
        Apply kind and name filters to an inventory.

        Args:
            inventory: Objects by kind

        Returns:
            Selected objects by kind, selected kinds only
        """
        selected: Dict[ObjectKind, List[ObjectIdentifier]] = {}
        for kind, identifiers in inventory.items():
            if not self.is_kind_selected(kind):
                continue
            handler = KindRegistry.get_handler(kind)
            selected[kind] = [i for i in identifiers if self.matches_filters(handler, i)]
        return selected

    def mode_for(self, handler: KindHandler) -> GroupingMode:
        """Grouping mode for a kind; fixed modes ignore configuration."""
        return handler.fixed_grouping or self.grouping.mode_for(handler.kind)

    def build_for_kind(
        self, kind: ObjectKind, identifiers: Sequence[ObjectIdentifier]
    ) -> List[WorkItem]:
        """
        Build work items for the objects of one kind.

        Args:
            kind: Object kind
            identifiers: Objects of that kind from the inventory

        Returns:
            WorkItem list in deterministic order
        """
        if not self.is_kind_selected(kind):
            return []

        handler = KindRegistry.get_handler(kind)
        selected = [i for i in identifiers if self.matches_filters(handler, i)]
        if len(selected) < len(identifiers):
            logger.debug(
                f"Filtered out {len(identifiers) - len(selected)} {kind.value} object(s)"
            )

        mode = self.mode_for(handler)
        strategy = GroupingStrategyFactory.get_strategy(mode)
        options = handler.options(self.script_options)

        return [
            WorkItem(
                id=f"{kind.value}-{index:04d}",
                kind=kind,
                grouping_mode=mode,
                identifiers=assignment.identifiers,
                output_path=assignment.relative_path,
                script_options=options,
                special_handling=handler.special_handling,
            )
            for index, assignment in enumerate(strategy.assign(handler, selected), start=1)
        ]

    def build(
        self, inventory: Mapping[ObjectKind, Sequence[ObjectIdentifier]]
    ) -> List[WorkItem]:
        """
        Build work items for a whole inventory.

        Args:
            inventory: Objects by kind

        Returns:
            WorkItem list, in folder order then file order

        Raises:
            ValueError: If two items would write the same file
        """
        items: List[WorkItem] = []
        seen: Dict[str, str] = {}

        for kind in self.selected_kinds():
            for item in self.build_for_kind(kind, inventory.get(kind, [])):
                if item.output_path in seen:
                    raise ValueError(
                        f"Work items {seen[item.output_path]} and {item.id} "
                        f"both write {item.output_path}"
                    )
                seen[item.output_path] = item.id
                items.append(item)

        logger.info(f"Resolved {len(items)} work items")
        return items
