"""Handlers for storage, configuration, schema and type objects."""

from dbrepl.config.schema import GroupingMode, ObjectKind, SpecialHandling
from dbrepl.objects.base import ObjectHandler
from dbrepl.objects.registry import KindRegistry


@KindRegistry.register(ObjectKind.FILE_GROUP)
class FileGroupHandler(ObjectHandler):
    """
    Handler for file groups and their files.

    Always written to one file; physical paths are parameterised with
    SQLCMD variables by the scripting service.
    """

    kind = ObjectKind.FILE_GROUP
    folder = "00_FileGroups"
    label = "FileGroups"
    owned = False
    fixed_grouping = GroupingMode.ALL
    special_handling = SpecialHandling.FILE_GROUPS


@KindRegistry.register(ObjectKind.DATABASE_CONFIGURATION)
class DatabaseConfigurationHandler(ObjectHandler):
    """Handler for database-scoped configuration settings."""

    kind = ObjectKind.DATABASE_CONFIGURATION
    folder = "02_DatabaseConfiguration"
    label = "DatabaseScopedConfigurations"
    owned = False
    fixed_grouping = GroupingMode.ALL
    special_handling = SpecialHandling.DATABASE_CONFIGURATION


@KindRegistry.register(ObjectKind.SCHEMA)
class SchemaHandler(ObjectHandler):
    """Handler for schemas (owner groups themselves)."""

    kind = ObjectKind.SCHEMA
    folder = "03_Schemas"
    label = "Schemas"
    owned = False


@KindRegistry.register(ObjectKind.SEQUENCE)
class SequenceHandler(ObjectHandler):
    """Handler for sequences."""

    kind = ObjectKind.SEQUENCE
    folder = "04_Sequences"
    label = "Sequences"
    timestamped = True


@KindRegistry.register(ObjectKind.PARTITION_FUNCTION)
class PartitionFunctionHandler(ObjectHandler):
    """Handler for partition functions."""

    kind = ObjectKind.PARTITION_FUNCTION
    folder = "05_PartitionFunctions"
    label = "PartitionFunctions"
    owned = False


@KindRegistry.register(ObjectKind.PARTITION_SCHEME)
class PartitionSchemeHandler(ObjectHandler):
    """Handler for partition schemes."""

    kind = ObjectKind.PARTITION_SCHEME
    folder = "06_PartitionSchemes"
    label = "PartitionSchemes"
    owned = False


@KindRegistry.register(ObjectKind.USER_DEFINED_TYPE)
class UserDefinedTypeHandler(ObjectHandler):
    """Handler for alias and table types."""

    kind = ObjectKind.USER_DEFINED_TYPE
    folder = "07_Types/01_UserDefinedTypes"
    label = "UserDefinedTypes"


@KindRegistry.register(ObjectKind.XML_SCHEMA_COLLECTION)
class XmlSchemaCollectionHandler(ObjectHandler):
    """Handler for XML schema collections."""

    kind = ObjectKind.XML_SCHEMA_COLLECTION
    folder = "07_Types/02_XmlSchemaCollections"
    label = "XmlSchemaCollections"
