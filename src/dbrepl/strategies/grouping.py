"""Grouping strategies: how objects of one kind map onto output files."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from itertools import groupby
from typing import Dict, List, Sequence, Tuple, Type

from dbrepl.config.schema import GroupingMode
from dbrepl.objects.base import KindHandler, ObjectIdentifier, sanitize_file_name


@dataclass(frozen=True)
class FileAssignment:
    """Objects written to one output file."""

    relative_path: str
    identifiers: Tuple[ObjectIdentifier, ...]


def _sort_key(handler: KindHandler, identifier: ObjectIdentifier) -> Tuple[str, str]:
    return (identifier.owner_group or "", handler.qualified_name(identifier))


class GroupingStrategy(ABC):
    """
    Abstract base class for grouping strategies.

    File names are a pure function of kind, mode and identifiers, so an
    unchanged inventory always yields the same paths.
    """

    mode: GroupingMode

    @abstractmethod
    def assign(
        self, handler: KindHandler, identifiers: Sequence[ObjectIdentifier]
    ) -> List[FileAssignment]:
        """
        Assign objects to output files.

        Args:
            handler: Handler of the objects' kind
            identifiers: Objects of that kind

        Returns:
            FileAssignment list, in deterministic order
        """
        pass

    @staticmethod
    def _ordered(
        handler: KindHandler, identifiers: Sequence[ObjectIdentifier]
    ) -> List[ObjectIdentifier]:
        return sorted(identifiers, key=lambda i: _sort_key(handler, i))


class SingleStrategy(GroupingStrategy):
    """One file per object (default; required for delta exports)."""

    mode = GroupingMode.SINGLE

    def assign(
        self, handler: KindHandler, identifiers: Sequence[ObjectIdentifier]
    ) -> List[FileAssignment]:
        """Name each file after its object."""
        return [
            FileAssignment(
                relative_path=f"{handler.folder}/{handler.file_name(identifier)}",
                identifiers=(identifier,),
            )
            for identifier in self._ordered(handler, identifiers)
        ]


class ByGroupStrategy(GroupingStrategy):
    """One file per owner group, numbered by sorted group name."""

    mode = GroupingMode.BY_GROUP

    def assign(
        self, handler: KindHandler, identifiers: Sequence[ObjectIdentifier]
    ) -> List[FileAssignment]:
        """Combine objects sharing an owner group."""

        def group_name(identifier: ObjectIdentifier) -> str:
            return identifier.owner_group or handler.label

        ordered = sorted(
            identifiers, key=lambda i: (group_name(i), _sort_key(handler, i))
        )

        assignments = []
        for number, (group, members) in enumerate(
            groupby(ordered, key=group_name), start=1
        ):
            file_name = sanitize_file_name(f"{number:03d}_{group}.sql")
            assignments.append(
                FileAssignment(
                    relative_path=f"{handler.folder}/{file_name}",
                    identifiers=tuple(members),
                )
            )
        return assignments


class AllStrategy(GroupingStrategy):
    """Every object of the kind in one file."""

    mode = GroupingMode.ALL

    def assign(
        self, handler: KindHandler, identifiers: Sequence[ObjectIdentifier]
    ) -> List[FileAssignment]:
        """Put everything into a single numbered file."""
        if not identifiers:
            return []
        return [
            FileAssignment(
                relative_path=f"{handler.folder}/001_{handler.label}.sql",
                identifiers=tuple(self._ordered(handler, identifiers)),
            )
        ]


class GroupingStrategyFactory:
    """Factory for creating grouping strategies."""

    _strategies: Dict[GroupingMode, Type[GroupingStrategy]] = {
        GroupingMode.SINGLE: SingleStrategy,
        GroupingMode.BY_GROUP: ByGroupStrategy,
        GroupingMode.ALL: AllStrategy,
    }

    @classmethod
    def get_strategy(cls, mode: GroupingMode) -> GroupingStrategy:
        """
        Get strategy instance for the given mode.

        Args:
            mode: Grouping mode

        Returns:
            GroupingStrategy instance

        Raises:
            ValueError: If mode is not supported
        """
        strategy_class = cls._strategies.get(mode)
        if not strategy_class:
            raise ValueError(f"Unknown grouping mode: {mode}")

        return strategy_class()
