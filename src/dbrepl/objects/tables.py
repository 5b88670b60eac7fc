"""Handlers for tables and the facets scripted from them."""

from dbrepl.config.schema import ObjectKind, SpecialHandling
from dbrepl.objects.base import ObjectHandler, SubObjectHandler
from dbrepl.objects.registry import KindRegistry


@KindRegistry.register(ObjectKind.TABLE)
class TableHandler(ObjectHandler):
    """
    Handler for tables.

    Scripts columns and the primary key only; foreign keys, indexes and
    triggers are separate kinds written to later phases.
    """

    kind = ObjectKind.TABLE
    folder = "08_Tables_PrimaryKey"
    label = "Tables"
    timestamped = True
    script_options = {
        "schema": True,
        "primary_keys": True,
        "foreign_keys": False,
        "indexes": False,
        "triggers": False,
        "data": False,
    }


@KindRegistry.register(ObjectKind.FOREIGN_KEY)
class ForeignKeyHandler(SubObjectHandler):
    """Handler for foreign key constraints, addressed through their table."""

    kind = ObjectKind.FOREIGN_KEY
    folder = "09_Tables_ForeignKeys"
    label = "ForeignKeys"
    child_key = "constraint"
    script_options = {
        "schema": False,
        "primary_keys": False,
        "foreign_keys": True,
        "indexes": False,
        "triggers": False,
        "data": False,
    }


@KindRegistry.register(ObjectKind.INDEX)
class IndexHandler(SubObjectHandler):
    """Handler for non-primary-key indexes, addressed through their table."""

    kind = ObjectKind.INDEX
    folder = "10_Indexes"
    label = "Indexes"
    child_key = "index"
    script_options = {
        "schema": False,
        "primary_keys": False,
        "foreign_keys": False,
        "indexes": True,
        "triggers": False,
        "data": False,
    }


@KindRegistry.register(ObjectKind.DEFAULT)
class DefaultHandler(ObjectHandler):
    """Handler for standalone (bound) defaults."""

    kind = ObjectKind.DEFAULT
    folder = "11_Defaults"
    label = "Defaults"
    timestamped = True


@KindRegistry.register(ObjectKind.RULE)
class RuleHandler(ObjectHandler):
    """Handler for rules."""

    kind = ObjectKind.RULE
    folder = "12_Rules"
    label = "Rules"
    timestamped = True


@KindRegistry.register(ObjectKind.TABLE_DATA)
class TableDataHandler(ObjectHandler):
    """
    Handler for table contents.

    Loaded last on import, inside the foreign key guard.
    """

    kind = ObjectKind.TABLE_DATA
    folder = "20_Data"
    label = "Data"
    file_suffix = ".data"
    special_handling = SpecialHandling.DATA
    script_options = {
        "schema": False,
        "primary_keys": False,
        "foreign_keys": False,
        "indexes": False,
        "triggers": False,
        "data": True,
    }
