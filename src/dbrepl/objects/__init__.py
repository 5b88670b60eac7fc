"""Object kind handlers and registry.

This module must be imported to register all kind handlers.
The handlers use the @KindRegistry.register() decorator which
executes at import time to register the handlers.
"""

# Import registry first
from dbrepl.objects.base import (
    KindHandler,
    ObjectHandler,
    ObjectIdentifier,
    ObjectKey,
    ObjectValidationError,
    ScriptTarget,
    SubObjectHandler,
    sanitize_file_name,
)
from dbrepl.objects.registry import KindRegistry

# Import all handlers to trigger their @KindRegistry.register() decorators
from dbrepl.objects.features import (
    ExternalDataSourceHandler,
    ExternalFileFormatHandler,
    FullTextCatalogHandler,
    FullTextStopListHandler,
    PlanGuideHandler,
    SearchPropertyListHandler,
)
from dbrepl.objects.infrastructure import (
    DatabaseConfigurationHandler,
    FileGroupHandler,
    PartitionFunctionHandler,
    PartitionSchemeHandler,
    SchemaHandler,
    SequenceHandler,
    UserDefinedTypeHandler,
    XmlSchemaCollectionHandler,
)
from dbrepl.objects.programmability import (
    DatabaseTriggerHandler,
    FunctionHandler,
    StoredProcedureHandler,
    SynonymHandler,
    TableTriggerHandler,
    ViewHandler,
)
from dbrepl.objects.security import (
    RoleHandler,
    SecurityPolicyHandler,
    UserHandler,
)
from dbrepl.objects.tables import (
    DefaultHandler,
    ForeignKeyHandler,
    IndexHandler,
    RuleHandler,
    TableDataHandler,
    TableHandler,
)

__all__ = [
    "KindRegistry",
    "KindHandler",
    "ObjectHandler",
    "SubObjectHandler",
    "ObjectIdentifier",
    "ObjectKey",
    "ObjectValidationError",
    "ScriptTarget",
    "sanitize_file_name",
    "FileGroupHandler",
    "RoleHandler",
    "UserHandler",
    "DatabaseConfigurationHandler",
    "SchemaHandler",
    "SequenceHandler",
    "PartitionFunctionHandler",
    "PartitionSchemeHandler",
    "UserDefinedTypeHandler",
    "XmlSchemaCollectionHandler",
    "TableHandler",
    "ForeignKeyHandler",
    "IndexHandler",
    "DefaultHandler",
    "RuleHandler",
    "FunctionHandler",
    "StoredProcedureHandler",
    "TableTriggerHandler",
    "ViewHandler",
    "DatabaseTriggerHandler",
    "SynonymHandler",
    "FullTextCatalogHandler",
    "FullTextStopListHandler",
    "ExternalDataSourceHandler",
    "ExternalFileFormatHandler",
    "SearchPropertyListHandler",
    "PlanGuideHandler",
    "SecurityPolicyHandler",
    "TableDataHandler",
]
