"""Abstract base classes for database collaborators."""

from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Sequence

from dbrepl.config.schema import ConnectionConfig, ObjectKind
from dbrepl.objects.base import ObjectIdentifier, ObjectKey, ScriptTarget
from dbrepl.objects.registry import KindRegistry
from dbrepl.sources.batches import split_batches


class DataSourceError(Exception):
    """Raised when database operations fail."""

    pass


class DatabaseConnection(ABC):
    """
    Abstract base class for database connections.

    A connection is owned by exactly one thread for its whole lifetime.
    It is the SQL execution service: it runs pre-split batches with a
    command timeout and answers catalog queries.
    """

    def __init__(self, config: ConnectionConfig):
        """
        Initialize connection.

        Args:
            config: Connection configuration
        """
        self.config = config
        self._connected = False

    @property
    def server_name(self) -> str:
        """Server the connection points at."""
        return self.config.server

    @property
    def database_name(self) -> str:
        """Database the connection points at."""
        return self.config.database

    @property
    def connected(self) -> bool:
        """Whether connect() succeeded and close() was not called."""
        return self._connected

    @abstractmethod
    def connect(self) -> None:
        """
        Establish the connection.

        Raises:
            DataSourceError: If connection fails
        """
        pass

    @abstractmethod
    def close(self) -> None:
        """Close the connection."""
        pass

    @abstractmethod
    def query(self, sql: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        """
        Run a query and return its rows.

        Args:
            sql: Query text
            params: Positional parameters

        Returns:
            Rows as dictionaries keyed by column name
        """
        pass

    @abstractmethod
    def execute_batch(self, sql: str, timeout: Optional[int] = None) -> None:
        """
        Execute one batch.

        Args:
            sql: Batch text, without separators
            timeout: Command timeout in seconds (None = configured default)

        Raises:
            DataSourceError: If execution fails
        """
        pass

    def execute_batches(
        self, batches: Iterable[str], timeout: Optional[int] = None
    ) -> None:
        """Execute batches in order, stopping at the first failure."""
        for batch in batches:
            self.execute_batch(batch, timeout)

    def execute_script(self, text: str, timeout: Optional[int] = None) -> None:
        """Split a script on separator lines and execute every batch."""
        self.execute_batches(split_batches(text), timeout)

    @abstractmethod
    def create_inventory(self) -> "InventorySource":
        """Create the inventory source bound to this connection."""
        pass

    @abstractmethod
    def create_scripter(self) -> "ScriptingService":
        """Create the default scripting service bound to this connection."""
        pass

    def __enter__(self):
        """Context manager entry."""
        if not self._connected:
            self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
        return False


class InventorySource(ABC):
    """
    Abstract base class for object inventories.

    Enumerates objects with identifying keys and, for kinds that carry
    one, their last modification time.
    """

    def __init__(self, connection: DatabaseConnection):
        self.connection = connection

    @property
    @abstractmethod
    def supported_kinds(self) -> List[ObjectKind]:
        """Kinds this inventory can enumerate."""
        pass

    @abstractmethod
    def list_objects(self, kind: ObjectKind) -> List[ObjectIdentifier]:
        """
        Enumerate objects of one kind.

        Args:
            kind: Object kind

        Returns:
            Identifiers of every object of that kind
        """
        pass

    @abstractmethod
    def fetch_modification_times(self) -> Dict[ObjectKey, datetime]:
        """
        Get last-modified times for every timestamped object.

        Must be a single round-trip, never one query per object.

        Returns:
            Modification time by object key
        """
        pass

    @abstractmethod
    def fetch_server_time(self) -> datetime:
        """
        Read the server clock.

        Returns:
            Current server time on the same clock as catalog
            modification times (naive when those are naive)
        """
        pass

    @abstractmethod
    def list_file_groups(self) -> List[Dict[str, Any]]:
        """
        Describe file groups and their files.

        Returns:
            One descriptor dictionary per file group
        """
        pass


class ScriptingService(ABC):
    """
    Abstract base class for the schema scripting service.

    Turns a script target into DDL/DML text written to a file.
    """

    def __init__(self, connection: DatabaseConnection):
        self.connection = connection

    @property
    def supported_kinds(self) -> FrozenSet[ObjectKind]:
        """Kinds this service can script; objects of other kinds are skipped."""
        return frozenset(handler.kind for handler in KindRegistry.all_handlers())

    @abstractmethod
    def script(
        self,
        target: ScriptTarget,
        options: Dict[str, Any],
        output_path: Path,
        append: bool = False,
    ) -> None:
        """
        Script one object to a file.

        Args:
            target: Object to script
            options: Scripting options selecting the facet to emit
            output_path: File to write
            append: Append to the file instead of replacing it

        Raises:
            ScriptingError: If the object cannot be scripted
        """
        pass
