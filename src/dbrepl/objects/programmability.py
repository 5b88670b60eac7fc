"""Handlers for programmable objects and synonyms."""

from dbrepl.config.schema import ObjectKind
from dbrepl.objects.base import ObjectHandler, SubObjectHandler
from dbrepl.objects.registry import KindRegistry


@KindRegistry.register(ObjectKind.FUNCTION)
class FunctionHandler(ObjectHandler):
    """Handler for scalar, inline and table-valued functions."""

    kind = ObjectKind.FUNCTION
    folder = "13_Programmability/02_Functions"
    label = "Functions"
    timestamped = True


@KindRegistry.register(ObjectKind.STORED_PROCEDURE)
class StoredProcedureHandler(ObjectHandler):
    """Handler for stored procedures."""

    kind = ObjectKind.STORED_PROCEDURE
    folder = "13_Programmability/03_StoredProcedures"
    label = "StoredProcedures"
    timestamped = True


@KindRegistry.register(ObjectKind.TABLE_TRIGGER)
class TableTriggerHandler(SubObjectHandler):
    """Handler for DML triggers, addressed through their table."""

    kind = ObjectKind.TABLE_TRIGGER
    folder = "13_Programmability/04_Triggers"
    label = "Triggers"
    child_key = "trigger"
    timestamped = True
    script_options = {"triggers": True}


@KindRegistry.register(ObjectKind.VIEW)
class ViewHandler(ObjectHandler):
    """Handler for views."""

    kind = ObjectKind.VIEW
    folder = "13_Programmability/05_Views"
    label = "Views"
    timestamped = True


@KindRegistry.register(ObjectKind.DATABASE_TRIGGER)
class DatabaseTriggerHandler(ObjectHandler):
    """Handler for database-level DDL triggers."""

    kind = ObjectKind.DATABASE_TRIGGER
    folder = "13_Programmability/06_DatabaseTriggers"
    label = "DatabaseTriggers"
    owned = False
    timestamped = True


@KindRegistry.register(ObjectKind.SYNONYM)
class SynonymHandler(ObjectHandler):
    """Handler for synonyms."""

    kind = ObjectKind.SYNONYM
    folder = "14_Synonyms"
    label = "Synonyms"
    timestamped = True
