"""Base object kind handler interface."""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from dbrepl.config.schema import GroupingMode, ObjectKind, SpecialHandling

_INVALID_FILE_CHARS = re.compile(r'[\\/:*?"<>|]')

# (kind, owner group, qualified name) - the unit of delta comparison
ObjectKey = Tuple[ObjectKind, Optional[str], str]


def sanitize_file_name(text: str) -> str:
    """Replace characters that are not allowed in file names."""
    return _INVALID_FILE_CHARS.sub("_", text)


class ObjectValidationError(Exception):
    """Raised when an object identifier does not fit its kind."""

    pass


@dataclass(frozen=True)
class ObjectIdentifier:
    """
    Identifies one database object.

    ``extra`` carries child keys (constraint, index or trigger name) when
    the object is addressed through its owning table; ``name`` is then
    the parent table name.
    """

    name: str
    owner_group: Optional[str] = None
    extra: Dict[str, str] = field(default_factory=dict, hash=False)

    def __str__(self) -> str:
        parts = [p for p in (self.owner_group, self.name) if p]
        parts.extend(self.extra.values())
        return ".".join(parts)


@dataclass(frozen=True)
class ScriptTarget:
    """What the scripting service is asked to script."""

    kind: ObjectKind
    name: str
    owner_group: Optional[str] = None
    parent_name: Optional[str] = None
    special_handling: Optional[SpecialHandling] = None

    @property
    def display_name(self) -> str:
        """Dotted name including owner and parent."""
        return ".".join(p for p in (self.owner_group, self.parent_name, self.name) if p)


class KindHandler(ABC):
    """
    Abstract base class for object kind handlers.

    Each object kind has a handler that knows:
    - Which output folder (and therefore import phase) it belongs to
    - How its output files are named
    - How the scripting service addresses it (directly or through a parent)
    - Which scripting options produce its facet of the DDL
    - Whether its modification timestamp can be trusted for delta exports
    """

    # Object kind this handler is responsible for
    kind: ObjectKind

    # Output folder relative to the export root; the leading number is the phase
    folder: str

    # Human-readable label used for grouped file names
    label: str

    # Appended to the file stem, e.g. ".data"
    file_suffix: str = ""

    # Whether objects of this kind belong to an owner group (schema)
    owned: bool = True

    # Whether sys catalog modification dates are reliable for this kind
    timestamped: bool = False

    # Grouping mode that ignores configuration (single-file kinds)
    fixed_grouping: Optional[GroupingMode] = None

    special_handling: Optional[SpecialHandling] = None

    # Scripting options that select this kind's facet of the object
    script_options: Dict[str, Any] = {}

    @abstractmethod
    def resolve(self, identifier: ObjectIdentifier) -> ScriptTarget:
        """
        Turn an identifier into the target the scripting service needs.

        Args:
            identifier: Object identifier from the inventory

        Returns:
            ScriptTarget addressing the object

        Raises:
            ObjectValidationError: If the identifier is incomplete
        """
        pass

    @abstractmethod
    def qualified_name(self, identifier: ObjectIdentifier) -> str:
        """
        Get the name that identifies the object within its owner group.

        Args:
            identifier: Object identifier

        Returns:
            Name used in delta keys and metadata records
        """
        pass

    def object_key(self, identifier: ObjectIdentifier) -> ObjectKey:
        """Get the delta comparison key for an object."""
        return (self.kind, identifier.owner_group, self.qualified_name(identifier))

    def display_name(self, identifier: ObjectIdentifier) -> str:
        """Get the dotted display name used for filters and file names."""
        name = self.qualified_name(identifier)
        if self.owned and identifier.owner_group:
            return f"{identifier.owner_group}.{name}"
        return name

    def file_name(self, identifier: ObjectIdentifier) -> str:
        """Get the single-mode file name for an object."""
        return sanitize_file_name(f"{self.display_name(identifier)}{self.file_suffix}.sql")

    def options(self, overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Get scripting options for this kind.

        Kind options win over global overrides, since they select the facet.

        Args:
            overrides: Global option overrides from configuration

        Returns:
            Merged option dictionary
        """
        merged = dict(overrides or {})
        merged.update(self.script_options)
        return merged

    def __repr__(self) -> str:
        """String representation."""
        return f"<{self.__class__.__name__} kind={self.kind.value} folder={self.folder}>"


class ObjectHandler(KindHandler):
    """Handler for objects the scripting service addresses directly."""

    def resolve(self, identifier: ObjectIdentifier) -> ScriptTarget:
        """Address the object by owner and name."""
        if self.owned and not identifier.owner_group:
            raise ObjectValidationError(
                f"{self.kind.value} '{identifier.name}': missing owner group"
            )
        return ScriptTarget(
            kind=self.kind,
            name=identifier.name,
            owner_group=identifier.owner_group if self.owned else None,
            special_handling=self.special_handling,
        )

    def qualified_name(self, identifier: ObjectIdentifier) -> str:
        """Directly addressed objects are identified by their own name."""
        return identifier.name


class SubObjectHandler(KindHandler):
    """
    Handler for objects addressed through their owning table.

    Constraints, indexes and row-level triggers are scripted by asking
    the scripting service for the parent table with a child filter.
    """

    # Key in ObjectIdentifier.extra holding the child object name
    child_key: str

    def child_name(self, identifier: ObjectIdentifier) -> str:
        """
        Get the child object name.

        Raises:
            ObjectValidationError: If the child key is missing
        """
        child = identifier.extra.get(self.child_key)
        if not child:
            raise ObjectValidationError(
                f"{self.kind.value} on '{identifier.name}': missing '{self.child_key}'"
            )
        return child

    def resolve(self, identifier: ObjectIdentifier) -> ScriptTarget:
        """Address the child through its parent table."""
        return ScriptTarget(
            kind=self.kind,
            name=self.child_name(identifier),
            owner_group=identifier.owner_group,
            parent_name=identifier.name,
            special_handling=self.special_handling,
        )

    def qualified_name(self, identifier: ObjectIdentifier) -> str:
        """Sub-objects are identified as 'parent.child'."""
        return f"{identifier.name}.{self.child_name(identifier)}"
