"""SQL Server connection built on pyodbc."""

import logging
from typing import Any, Dict, List, Optional, Sequence

try:
    import pyodbc
except ImportError:
    pyodbc = None

from dbrepl.config.schema import ConnectionConfig, SourceType
from dbrepl.sources.base import DatabaseConnection, DataSourceError
from dbrepl.sources.registry import SourceRegistry

logger = logging.getLogger(__name__)


def _quote_value(value: Any) -> str:
    """Quote an ODBC connection string value when it needs it."""
    text = str(value)
    if any(ch in text for ch in ";{}=") or text != text.strip():
        return "{" + text.replace("}", "}}") + "}"
    return text


def build_connection_string(config: ConnectionConfig) -> str:
    """
    Assemble an ODBC connection string.

    Args:
        config: Connection configuration

    Returns:
        Connection string for pyodbc.connect
    """
    parts: Dict[str, Any] = {
        "DRIVER": "{" + config.driver + "}",
        "SERVER": _quote_value(config.server),
        "DATABASE": _quote_value(config.database),
    }

    if config.trusted_connection:
        parts["Trusted_Connection"] = "yes"
    else:
        parts["UID"] = _quote_value(config.username)
        parts["PWD"] = _quote_value(config.password or "")

    if config.trust_server_certificate:
        parts["TrustServerCertificate"] = "yes"

    for key, value in config.properties.items():
        parts[key] = _quote_value(value)

    return ";".join(f"{key}={value}" for key, value in parts.items()) + ";"


@SourceRegistry.register(SourceType.SQLSERVER)
class SqlServerConnection(DatabaseConnection):
    """
    SQL Server connection.

    Runs in autocommit mode: every batch commits on its own, the way
    sqlcmd replays a script file.
    """

    def __init__(self, config: ConnectionConfig):
        """Initialize SQL Server connection."""
        super().__init__(config)

        if pyodbc is None:
            raise DataSourceError(
                "pyodbc is required for SQL Server connections. Install with: pip install pyodbc"
            )

        self._connection = None

    def connect(self) -> None:
        """
        Open the ODBC connection.

        Raises:
            DataSourceError: If connection fails
        """
        try:
            self._connection = pyodbc.connect(
                build_connection_string(self.config),
                timeout=self.config.connect_timeout,
                autocommit=True,
            )
            self._connection.timeout = self.config.command_timeout
            self._connected = True
            logger.debug(f"Connected to {self.server_name}/{self.database_name}")
        except pyodbc.Error as e:
            raise DataSourceError(
                f"Failed to connect to {self.server_name}/{self.database_name}: {e}"
            ) from e

    def close(self) -> None:
        """Close the ODBC connection."""
        if self._connection is not None:
            try:
                self._connection.close()
            except pyodbc.Error as e:
                logger.debug(f"Ignoring error while closing connection: {e}")
            self._connection = None
        self._connected = False

    def _require_connection(self):
        if self._connection is None:
            raise DataSourceError("Not connected. Call connect() first.")
        return self._connection

    def query(self, sql: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        """Run a query and return rows as dictionaries."""
        connection = self._require_connection()
        try:
            cursor = connection.cursor()
            try:
                if params:
                    cursor.execute(sql, list(params))
                else:
                    cursor.execute(sql)
                columns = [column[0] for column in cursor.description or []]
                return [dict(zip(columns, row)) for row in cursor.fetchall()]
            finally:
                cursor.close()
        except pyodbc.Error as e:
            raise DataSourceError(f"Query failed: {e}") from e

    def execute_batch(self, sql: str, timeout: Optional[int] = None) -> None:
        """
        Execute one batch and drain every result set.

        Errors raised by later statements in a batch only surface while
        moving through its result sets.
        """
        connection = self._require_connection()
        connection.timeout = self.config.command_timeout if timeout is None else timeout
        try:
            cursor = connection.cursor()
            try:
                cursor.execute(sql)
                while cursor.nextset():
                    pass
            finally:
                cursor.close()
        except pyodbc.Error as e:
            raise DataSourceError(str(e)) from e
        finally:
            connection.timeout = self.config.command_timeout

    def create_inventory(self):
        """Create the catalog-backed inventory."""
        from dbrepl.sources.sqlserver.inventory import SqlServerInventory

        return SqlServerInventory(self)

    def create_scripter(self):
        """Create the module-definition scripter."""
        from dbrepl.sources.sqlserver.scripter import SqlModuleScripter

        return SqlModuleScripter(self)
