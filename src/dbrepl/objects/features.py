"""Handlers for full-text search, external data and plan guides."""

from dbrepl.config.schema import ObjectKind
from dbrepl.objects.base import ObjectHandler
from dbrepl.objects.registry import KindRegistry


@KindRegistry.register(ObjectKind.FULL_TEXT_CATALOG)
class FullTextCatalogHandler(ObjectHandler):
    kind = ObjectKind.FULL_TEXT_CATALOG
    folder = "15_FullTextSearch/01_Catalogs"
    label = "FullTextCatalogs"
    owned = False


@KindRegistry.register(ObjectKind.FULL_TEXT_STOPLIST)
class FullTextStopListHandler(ObjectHandler):
    kind = ObjectKind.FULL_TEXT_STOPLIST
    folder = "15_FullTextSearch/02_StopLists"
    label = "FullTextStopLists"
    owned = False


@KindRegistry.register(ObjectKind.EXTERNAL_DATA_SOURCE)
class ExternalDataSourceHandler(ObjectHandler):
    kind = ObjectKind.EXTERNAL_DATA_SOURCE
    folder = "16_ExternalData/01_DataSources"
    label = "ExternalDataSources"
    owned = False


@KindRegistry.register(ObjectKind.EXTERNAL_FILE_FORMAT)
class ExternalFileFormatHandler(ObjectHandler):
    kind = ObjectKind.EXTERNAL_FILE_FORMAT
    folder = "16_ExternalData/02_FileFormats"
    label = "ExternalFileFormats"
    owned = False


@KindRegistry.register(ObjectKind.SEARCH_PROPERTY_LIST)
class SearchPropertyListHandler(ObjectHandler):
    kind = ObjectKind.SEARCH_PROPERTY_LIST
    folder = "17_SearchPropertyLists"
    label = "SearchPropertyLists"
    owned = False


@KindRegistry.register(ObjectKind.PLAN_GUIDE)
class PlanGuideHandler(ObjectHandler):
    """Handler for plan guides; they reference procedures and run late."""

    kind = ObjectKind.PLAN_GUIDE
    folder = "18_PlanGuides"
    label = "PlanGuides"
    owned = False
