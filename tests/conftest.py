"""
tests/conftest.py
-----------------
Shared fixtures and in-memory fakes for the database collaborators.
No live database is needed: connections, inventories and scripters are
replaced by the fakes below.
"""
from __future__ import annotations

import re
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

import pytest

from dbrepl.config.schema import (
    ConnectionConfig,
    ExportSettings,
    ObjectKind,
    ReplicationConfig,
)
from dbrepl.objects.base import ObjectIdentifier, ScriptTarget
from dbrepl.sources.base import (
    DatabaseConnection,
    DataSourceError,
    InventorySource,
    ScriptingService,
)
from dbrepl.strategies.error_handling import ScriptingError

RUN_STARTED = datetime(2024, 3, 1, 9, 30, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class FakeDatabase:
    """State shared by every FakeConnection opened against one database."""

    def __init__(
        self,
        objects: Optional[Dict[ObjectKind, List[ObjectIdentifier]]] = None,
        modification_times: Optional[Dict[Any, datetime]] = None,
        file_groups: Optional[List[Dict[str, Any]]] = None,
        failing_objects: Sequence[str] = (),
        server_time: Optional[datetime] = None,
        scriptable_kinds: Optional[Sequence[ObjectKind]] = None,
    ) -> None:
        self.objects = objects or {}
        self.modification_times = modification_times or {}
        self.file_groups = file_groups or []
        self.failing_objects = set(failing_objects)
        self.server_time = server_time or RUN_STARTED.replace(tzinfo=None)
        self.scriptable_kinds = frozenset(scriptable_kinds) if scriptable_kinds is not None else None
        self.query_rows: List[Dict[str, Any]] = []
        self.on_batch: Optional[Callable[[str], None]] = None
        self.executed: List[str] = []
        self.connections_opened = 0
        self._lock = threading.Lock()

    def record_batch(self, sql: str) -> None:
        with self._lock:
            self.executed.append(sql)
        if self.on_batch is not None:
            self.on_batch(sql)


class FakeConnection(DatabaseConnection):
    def __init__(self, database: FakeDatabase, config: Optional[ConnectionConfig] = None) -> None:
        super().__init__(config or make_connection_config())
        self.database = database
        self.closed = False

    def connect(self) -> None:
        with self.database._lock:
            self.database.connections_opened += 1
        self._connected = True

    def close(self) -> None:
        self.closed = True
        self._connected = False

    def query(self, sql: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        return list(self.database.query_rows)

    def execute_batch(self, sql: str, timeout: Optional[int] = None) -> None:
        self.database.record_batch(sql)

    def create_inventory(self) -> "FakeInventory":
        return FakeInventory(self)

    def create_scripter(self) -> "FakeScripter":
        return FakeScripter(self)


class FakeInventory(InventorySource):
    @property
    def supported_kinds(self) -> List[ObjectKind]:
        return list(self.connection.database.objects)

    def list_objects(self, kind: ObjectKind) -> List[ObjectIdentifier]:
        return list(self.connection.database.objects.get(kind, []))

    def fetch_modification_times(self):
        return dict(self.connection.database.modification_times)

    def list_file_groups(self) -> List[Dict[str, Any]]:
        return list(self.connection.database.file_groups)

    def fetch_server_time(self) -> datetime:
        return self.connection.database.server_time


class FakeScripter(ScriptingService):
    """Writes one deterministic comment line per scripted object."""

    @property
    def supported_kinds(self):
        restricted = self.connection.database.scriptable_kinds
        return super().supported_kinds if restricted is None else restricted

    def script(
        self,
        target: ScriptTarget,
        options: Dict[str, Any],
        output_path: Path,
        append: bool = False,
    ) -> None:
        if target.display_name in self.connection.database.failing_objects:
            raise ScriptingError(
                "Scripting failed", kind=target.kind, object_name=target.display_name
            )
        facets = ",".join(sorted(k for k, v in options.items() if v is True))
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, "a" if append else "w", encoding="utf-8") as f:
            f.write(f"-- {target.kind.value} {target.display_name} [{facets}]\n")


class SimulatedTarget:
    """
    Stand-in for an empty target database.

    Understands ``CREATE <name> REQUIRES <a>,<b>`` batches: a create fails
    while any required object is missing. Every other batch succeeds
    unless it contains one of ``failing_fragments``.
    """

    CREATE = re.compile(r"^CREATE (\w+)(?: REQUIRES ([\w,]+))?", re.IGNORECASE)

    def __init__(self, failing_fragments: Sequence[str] = ()) -> None:
        self.created: List[str] = []
        self.failing_fragments = list(failing_fragments)

    def __call__(self, sql: str) -> None:
        for fragment in self.failing_fragments:
            if fragment in sql:
                raise DataSourceError(f"Statement failed: {fragment}")

        match = self.CREATE.match(sql.strip())
        if match is None:
            return
        name, requires = match.group(1), match.group(2)
        for dependency in (requires or "").split(","):
            if dependency and dependency not in self.created:
                raise DataSourceError(f"Invalid object name '{dependency}'. (208)")
        self.created.append(name)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def make_connection_config(**overrides: Any) -> ConnectionConfig:
    values = {"server": "localhost,1433", "database": "Sales", "username": "sa", "password": "secret"}
    values.update(overrides)
    return ConnectionConfig(**values)


def make_export_settings(output_dir: Path, **overrides: Any) -> ExportSettings:
    values: Dict[str, Any] = {"source": make_connection_config(), "output_dir": output_dir}
    values.update(overrides)
    return ExportSettings(**values)


def make_config(**sections: Any) -> ReplicationConfig:
    raw: Dict[str, Any] = {"metadata": {"name": "test-job"}, "retry": {"initial_delay": 0.0}}
    raw.update(sections)
    return ReplicationConfig.model_validate(raw)


def connection_dict(**overrides: Any) -> Dict[str, Any]:
    values = {"server": "localhost,1433", "database": "Sales", "username": "sa", "password": "secret"}
    values.update(overrides)
    return values


def write_script(root: Path, relative: str, text: str) -> Path:
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def sample_objects() -> Dict[ObjectKind, List[ObjectIdentifier]]:
    return {
        ObjectKind.SCHEMA: [ObjectIdentifier(name="Sales")],
        ObjectKind.TABLE: [
            ObjectIdentifier(name="Customers", owner_group="dbo"),
            ObjectIdentifier(name="Orders", owner_group="Sales"),
            ObjectIdentifier(name="Documents", owner_group="dbo"),
        ],
        ObjectKind.INDEX: [
            ObjectIdentifier(
                name="Documents", owner_group="dbo", extra={"index": "IX_Documents_FileName"}
            ),
        ],
        ObjectKind.FUNCTION: [ObjectIdentifier(name="F1", owner_group="dbo")],
        ObjectKind.VIEW: [
            ObjectIdentifier(name="V1", owner_group="dbo"),
            ObjectIdentifier(name="V2", owner_group="dbo"),
            ObjectIdentifier(name="Summary", owner_group="Sales"),
        ],
    }


@pytest.fixture
def fake_database(sample_objects) -> FakeDatabase:
    return FakeDatabase(objects=sample_objects)


@pytest.fixture
def connection_factory(fake_database) -> Callable[[], FakeConnection]:
    def factory() -> FakeConnection:
        connection = FakeConnection(fake_database)
        connection.connect()
        return connection

    return factory
