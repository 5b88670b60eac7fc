"""
Database backends.

Import this module to register all available backends.
"""

from dbrepl.sources.base import (
    DatabaseConnection,
    DataSourceError,
    InventorySource,
    ScriptingService,
)
from dbrepl.sources.batches import split_batches, substitute_variables
from dbrepl.sources.registry import SourceRegistry

# Import backends to trigger registration
from dbrepl.sources.sqlserver import SqlServerConnection  # noqa: F401

__all__ = [
    "DatabaseConnection",
    "DataSourceError",
    "InventorySource",
    "ScriptingService",
    "SourceRegistry",
    "SqlServerConnection",
    "split_batches",
    "substitute_variables",
]
