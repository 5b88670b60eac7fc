"""SQL Server backend."""

from dbrepl.sources.sqlserver.connector import SqlServerConnection, build_connection_string
from dbrepl.sources.sqlserver.inventory import SqlServerInventory
from dbrepl.sources.sqlserver.scripter import SqlModuleScripter

__all__ = [
    "SqlServerConnection",
    "SqlServerInventory",
    "SqlModuleScripter",
    "build_connection_string",
]
