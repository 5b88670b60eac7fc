"""Object inventory read from SQL Server catalog views."""

import logging
from datetime import datetime
from typing import Any, Dict, List

from dbrepl.config.schema import ObjectKind
from dbrepl.objects.base import ObjectIdentifier, ObjectKey, SubObjectHandler
from dbrepl.objects.registry import KindRegistry
from dbrepl.sources.base import DataSourceError, InventorySource

logger = logging.getLogger(__name__)

# Every query returns ``name`` and, where relevant, ``owner_group`` and
# ``child`` (sub-objects addressed through their parent table).
_INVENTORY_QUERIES: Dict[ObjectKind, str] = {
    ObjectKind.FILE_GROUP: """
        SELECT name FROM sys.filegroups WHERE name <> 'PRIMARY'
    """,
    ObjectKind.ROLE: """
        SELECT name FROM sys.database_principals
        WHERE type = 'R' AND is_fixed_role = 0 AND name <> 'public'
    """,
    ObjectKind.USER: """
        SELECT name FROM sys.database_principals
        WHERE type IN ('S', 'U', 'G', 'E', 'X', 'C', 'K') AND principal_id > 4
    """,
    ObjectKind.DATABASE_CONFIGURATION: """
        SELECT name FROM sys.database_scoped_configurations
        WHERE is_value_default = 0
    """,
    ObjectKind.SCHEMA: """
        SELECT name FROM sys.schemas
        WHERE schema_id < 16384
          AND name NOT IN ('dbo', 'guest', 'INFORMATION_SCHEMA', 'sys')
    """,
    ObjectKind.SEQUENCE: """
        SELECT SCHEMA_NAME(schema_id) AS owner_group, name FROM sys.sequences
    """,
    ObjectKind.PARTITION_FUNCTION: """
        SELECT name FROM sys.partition_functions
    """,
    ObjectKind.PARTITION_SCHEME: """
        SELECT name FROM sys.partition_schemes
    """,
    ObjectKind.USER_DEFINED_TYPE: """
        SELECT SCHEMA_NAME(schema_id) AS owner_group, name FROM sys.types
        WHERE is_user_defined = 1
    """,
    ObjectKind.XML_SCHEMA_COLLECTION: """
        SELECT SCHEMA_NAME(schema_id) AS owner_group, name
        FROM sys.xml_schema_collections WHERE xml_collection_id > 1
    """,
    ObjectKind.TABLE: """
        SELECT SCHEMA_NAME(schema_id) AS owner_group, name FROM sys.tables
        WHERE is_ms_shipped = 0
    """,
    ObjectKind.FOREIGN_KEY: """
        SELECT OBJECT_SCHEMA_NAME(parent_object_id) AS owner_group,
               OBJECT_NAME(parent_object_id) AS name,
               name AS child
        FROM sys.foreign_keys WHERE is_ms_shipped = 0
    """,
    ObjectKind.INDEX: """
        SELECT SCHEMA_NAME(t.schema_id) AS owner_group, t.name AS name, i.name AS child
        FROM sys.indexes i
        JOIN sys.tables t ON t.object_id = i.object_id
        WHERE t.is_ms_shipped = 0 AND i.is_primary_key = 0
          AND i.type > 0 AND i.name IS NOT NULL
    """,
    ObjectKind.DEFAULT: """
        SELECT SCHEMA_NAME(schema_id) AS owner_group, name FROM sys.objects
        WHERE type = 'D' AND parent_object_id = 0
    """,
    ObjectKind.RULE: """
        SELECT SCHEMA_NAME(schema_id) AS owner_group, name FROM sys.objects
        WHERE type = 'R'
    """,
    ObjectKind.FUNCTION: """
        SELECT SCHEMA_NAME(schema_id) AS owner_group, name FROM sys.objects
        WHERE type IN ('FN', 'IF', 'TF', 'FS', 'FT', 'AF') AND is_ms_shipped = 0
    """,
    ObjectKind.STORED_PROCEDURE: """
        SELECT SCHEMA_NAME(schema_id) AS owner_group, name FROM sys.objects
        WHERE type IN ('P', 'PC', 'X') AND is_ms_shipped = 0
    """,
    ObjectKind.TABLE_TRIGGER: """
        SELECT OBJECT_SCHEMA_NAME(parent_id) AS owner_group,
               OBJECT_NAME(parent_id) AS name,
               name AS child
        FROM sys.triggers WHERE parent_class = 1 AND is_ms_shipped = 0
    """,
    ObjectKind.VIEW: """
        SELECT SCHEMA_NAME(schema_id) AS owner_group, name FROM sys.views
        WHERE is_ms_shipped = 0
    """,
    ObjectKind.DATABASE_TRIGGER: """
        SELECT name FROM sys.triggers WHERE parent_class = 0
    """,
    ObjectKind.SYNONYM: """
        SELECT SCHEMA_NAME(schema_id) AS owner_group, name FROM sys.synonyms
    """,
    ObjectKind.FULL_TEXT_CATALOG: """
        SELECT name FROM sys.fulltext_catalogs
    """,
    ObjectKind.FULL_TEXT_STOPLIST: """
        SELECT name FROM sys.fulltext_stoplists
    """,
    ObjectKind.EXTERNAL_DATA_SOURCE: """
        SELECT name FROM sys.external_data_sources
    """,
    ObjectKind.EXTERNAL_FILE_FORMAT: """
        SELECT name FROM sys.external_file_formats
    """,
    ObjectKind.SEARCH_PROPERTY_LIST: """
        SELECT name FROM sys.registered_search_property_lists
    """,
    ObjectKind.PLAN_GUIDE: """
        SELECT name FROM sys.plan_guides
    """,
    ObjectKind.SECURITY_POLICY: """
        SELECT SCHEMA_NAME(schema_id) AS owner_group, name FROM sys.security_policies
    """,
}
_INVENTORY_QUERIES[ObjectKind.TABLE_DATA] = _INVENTORY_QUERIES[ObjectKind.TABLE]

# sys.objects type codes of timestamped kinds
TYPE_CODE_KINDS: Dict[str, ObjectKind] = {
    "SO": ObjectKind.SEQUENCE,
    "U": ObjectKind.TABLE,
    "D": ObjectKind.DEFAULT,
    "R": ObjectKind.RULE,
    "FN": ObjectKind.FUNCTION,
    "IF": ObjectKind.FUNCTION,
    "TF": ObjectKind.FUNCTION,
    "FS": ObjectKind.FUNCTION,
    "FT": ObjectKind.FUNCTION,
    "AF": ObjectKind.FUNCTION,
    "P": ObjectKind.STORED_PROCEDURE,
    "PC": ObjectKind.STORED_PROCEDURE,
    "X": ObjectKind.STORED_PROCEDURE,
    "TR": ObjectKind.TABLE_TRIGGER,
    "V": ObjectKind.VIEW,
    "SN": ObjectKind.SYNONYM,
    "SP": ObjectKind.SECURITY_POLICY,
    "DTR": ObjectKind.DATABASE_TRIGGER,
}

_MODIFICATION_TIMES_QUERY = """
    SELECT RTRIM(o.type) AS type_code,
           SCHEMA_NAME(o.schema_id) AS owner_group,
           o.name AS name,
           OBJECT_NAME(o.parent_object_id) AS parent_name,
           o.modify_date AS modify_date
    FROM sys.objects o
    WHERE o.is_ms_shipped = 0
      AND o.type IN ('SO', 'U', 'D', 'R', 'FN', 'IF', 'TF', 'FS', 'FT', 'AF',
                     'P', 'PC', 'X', 'TR', 'V', 'SN', 'SP')
      AND NOT (o.type = 'D' AND o.parent_object_id <> 0)
    UNION ALL
    SELECT 'DTR', NULL, t.name, NULL, t.modify_date
    FROM sys.triggers t
    WHERE t.parent_class = 0
"""

# modify_date is stamped from this clock, so delta references must use it too
_SERVER_TIME_QUERY = "SELECT SYSDATETIME() AS server_time"

_FILE_GROUPS_QUERY = """
    SELECT fg.name AS file_group,
           fg.type_desc AS type_desc,
           fg.is_default AS is_default,
           df.name AS file_name,
           df.physical_name AS physical_name,
           df.size AS size_pages,
           df.growth AS growth,
           df.is_percent_growth AS is_percent_growth,
           df.max_size AS max_size_pages
    FROM sys.filegroups fg
    LEFT JOIN sys.database_files df ON df.data_space_id = fg.data_space_id
    ORDER BY fg.name, df.name
"""


class SqlServerInventory(InventorySource):
    """Enumerates objects through SQL Server catalog views."""

    @property
    def supported_kinds(self) -> List[ObjectKind]:
        """Kinds with a catalog query."""
        return list(_INVENTORY_QUERIES.keys())

    def list_objects(self, kind: ObjectKind) -> List[ObjectIdentifier]:
        """
        Enumerate objects of one kind.

        Args:
            kind: Object kind

        Returns:
            Object identifiers; sub-objects carry their child name in ``extra``

        Raises:
            ValueError: If the kind has no catalog query
        """
        sql = _INVENTORY_QUERIES.get(kind)
        if sql is None:
            raise ValueError(f"No inventory query for kind: {kind.value}")

        handler = KindRegistry.get_handler(kind)
        rows = self.connection.query(sql)

        identifiers = []
        for row in rows:
            extra = {}
            if isinstance(handler, SubObjectHandler):
                extra[handler.child_key] = row["child"]
            identifiers.append(
                ObjectIdentifier(
                    name=row["name"],
                    owner_group=row.get("owner_group") if handler.owned else None,
                    extra=extra,
                )
            )

        logger.debug(f"Found {len(identifiers)} {kind.value} object(s)")
        return identifiers

    def fetch_modification_times(self) -> Dict[ObjectKey, datetime]:
        """Read modify_date for every timestamped object in one query."""
        times: Dict[ObjectKey, datetime] = {}

        for row in self.connection.query(_MODIFICATION_TIMES_QUERY):
            kind = TYPE_CODE_KINDS.get((row["type_code"] or "").strip())
            if kind is None:
                continue

            handler = KindRegistry.get_handler(kind)
            if isinstance(handler, SubObjectHandler):
                identifier = ObjectIdentifier(
                    name=row["parent_name"],
                    owner_group=row["owner_group"],
                    extra={handler.child_key: row["name"]},
                )
            else:
                identifier = ObjectIdentifier(
                    name=row["name"],
                    owner_group=row["owner_group"] if handler.owned else None,
                )
            times[handler.object_key(identifier)] = row["modify_date"]

        logger.debug(f"Read modification times for {len(times)} object(s)")
        return times

    def fetch_server_time(self) -> datetime:
        """Read SYSDATETIME(), the clock behind sys.objects.modify_date."""
        rows = self.connection.query(_SERVER_TIME_QUERY)
        if not rows:
            raise DataSourceError("Server returned no time")
        return rows[0]["server_time"]

    def list_file_groups(self) -> List[Dict[str, Any]]:
        """Describe file groups with their files (sizes in KB)."""
        groups: Dict[str, Dict[str, Any]] = {}

        for row in self.connection.query(_FILE_GROUPS_QUERY):
            group = groups.setdefault(
                row["file_group"],
                {
                    "name": row["file_group"],
                    "type": row["type_desc"],
                    "isDefault": bool(row["is_default"]),
                    "files": [],
                },
            )
            if row["file_name"] is None:
                continue

            max_size = row["max_size_pages"]
            group["files"].append(
                {
                    "name": row["file_name"],
                    "physicalName": row["physical_name"],
                    "sizeKb": row["size_pages"] * 8,
                    "growth": (
                        f"{row['growth']}%"
                        if row["is_percent_growth"]
                        else f"{row['growth'] * 8}KB"
                    ),
                    "maxSizeKb": None if max_size in (None, -1) else max_size * 8,
                }
            )

        return list(groups.values())
