"""Scripting service for module-defined objects and file groups."""

import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

from dbrepl.config.schema import ObjectKind, SpecialHandling
from dbrepl.objects.base import ScriptTarget
from dbrepl.sources.base import DataSourceError, ScriptingService
from dbrepl.strategies.error_handling import ScriptingError

logger = logging.getLogger(__name__)

_MODULE_QUERY = """
    SELECT m.definition, m.uses_ansi_nulls, m.uses_quoted_identifier
    FROM sys.sql_modules m
    WHERE m.object_id = OBJECT_ID(?)
"""

_DATABASE_TRIGGER_QUERY = """
    SELECT m.definition, m.uses_ansi_nulls, m.uses_quoted_identifier
    FROM sys.sql_modules m
    JOIN sys.triggers t ON t.object_id = m.object_id
    WHERE t.parent_class = 0 AND t.name = ?
"""

_FILE_GROUP_CONTAINS = {
    "FILESTREAM_DATA_FILEGROUP": " CONTAINS FILESTREAM",
    "MEMORY_OPTIMIZED_DATA_FILEGROUP": " CONTAINS MEMORY_OPTIMIZED_DATA",
}

_FILE_GROUPS_HEADER = [
    "-- FileGroups and Files",
    "-- WARNING: Physical file paths are environment-specific",
    "-- Supply $(FG_<NAME>_PATH_FILE) through sqlcmd_variables when importing",
    "",
]


def quote_name(name: str) -> str:
    """Bracket-quote an identifier."""
    return "[" + name.replace("]", "]]") + "]"


def file_path_variable(file_group: str, index: int = 1) -> str:
    """SQLCMD variable holding the target path of a file group's n-th file."""
    stem = re.sub(r"\W", "_", file_group).upper()
    suffix = "" if index == 1 else str(index)
    return f"FG_{stem}_PATH_FILE{suffix}"


class SqlModuleScripter(ScriptingService):
    """
    Scripts module-defined objects from their stored definition.

    Functions, procedures, views and triggers come from sys.sql_modules;
    file groups are rebuilt from the catalog with their physical paths
    turned into SQLCMD variables. Other kinds need a full DDL generator
    and raise ScriptingError.
    """

    supported_kinds = frozenset(
        {
            ObjectKind.FILE_GROUP,
            ObjectKind.FUNCTION,
            ObjectKind.STORED_PROCEDURE,
            ObjectKind.VIEW,
            ObjectKind.TABLE_TRIGGER,
            ObjectKind.DATABASE_TRIGGER,
        }
    )

    def __init__(self, connection):
        super().__init__(connection)
        self._file_groups: Optional[Dict[str, Dict[str, Any]]] = None

    def script(
        self,
        target: ScriptTarget,
        options: Dict[str, Any],
        output_path: Path,
        append: bool = False,
    ) -> None:
        """Write the object's script to ``output_path``."""
        if target.kind not in self.supported_kinds:
            raise ScriptingError(
                "No scripter available for this kind",
                kind=target.kind,
                object_name=target.display_name,
            )

        try:
            if target.special_handling == SpecialHandling.FILE_GROUPS:
                lines = self._file_group_lines(target, include_header=not append)
            else:
                lines = self._module_lines(target, options)
        except DataSourceError as e:
            raise ScriptingError(
                f"Failed to read definition: {e}",
                kind=target.kind,
                object_name=target.display_name,
                original_exception=e,
            ) from e

        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, "a" if append else "w", encoding="utf-8") as f:
            f.write("\n".join(lines))

        logger.debug(f"Scripted {target.display_name} to {output_path}")

    def _module_lines(self, target: ScriptTarget, options: Dict[str, Any]) -> List[str]:
        if target.kind == ObjectKind.DATABASE_TRIGGER:
            rows = self.connection.query(_DATABASE_TRIGGER_QUERY, (target.name,))
        else:
            # Triggers live in their table's schema
            qualified = f"{quote_name(target.owner_group)}.{quote_name(target.name)}"
            rows = self.connection.query(_MODULE_QUERY, (qualified,))

        if not rows or rows[0]["definition"] is None:
            raise ScriptingError(
                "Definition not found or encrypted",
                kind=target.kind,
                object_name=target.display_name,
            )

        row = rows[0]
        lines = []
        if options.get("header", True):
            lines.append(f"-- {target.kind.value}: {target.display_name}")
        lines.extend(
            [
                f"SET ANSI_NULLS {'ON' if row['uses_ansi_nulls'] else 'OFF'}",
                "GO",
                f"SET QUOTED_IDENTIFIER {'ON' if row['uses_quoted_identifier'] else 'OFF'}",
                "GO",
                row["definition"].strip(),
                "GO",
                "",
            ]
        )
        return lines

    def _file_group_lines(self, target: ScriptTarget, include_header: bool) -> List[str]:
        if self._file_groups is None:
            inventory = self.connection.create_inventory()
            self._file_groups = {
                group["name"]: group for group in inventory.list_file_groups()
            }

        group = self._file_groups.get(target.name)
        if group is None:
            raise ScriptingError(
                "File group not found",
                kind=target.kind,
                object_name=target.name,
            )

        lines = list(_FILE_GROUPS_HEADER) if include_header else []
        lines.extend(
            [
                f"-- FileGroup: {group['name']}",
                f"-- Type: {group['type']}",
                f"ALTER DATABASE CURRENT ADD FILEGROUP {quote_name(group['name'])}"
                f"{_FILE_GROUP_CONTAINS.get(group['type'], '')};",
                "GO",
                "",
            ]
        )

        for index, file in enumerate(group["files"], start=1):
            max_size = (
                "UNLIMITED" if file["maxSizeKb"] is None else f"{file['maxSizeKb']}KB"
            )
            logical_name = file["name"].replace("'", "''")
            lines.extend(
                [
                    f"-- File: {file['name']}",
                    f"-- Original Path: {file['physicalName']}",
                    f"-- Size: {file['sizeKb']}KB, Growth: {file['growth']}, MaxSize: {max_size}",
                    "ALTER DATABASE CURRENT ADD FILE (",
                    f"    NAME = N'{logical_name}',",
                    f"    FILENAME = N'$({file_path_variable(group['name'], index)})',",
                    f"    SIZE = {file['sizeKb']}KB",
                    f"    , FILEGROWTH = {file['growth']}",
                    f"    , MAXSIZE = {max_size}",
                    f") TO FILEGROUP {quote_name(group['name'])};",
                    "GO",
                    "",
                ]
            )
        return lines
