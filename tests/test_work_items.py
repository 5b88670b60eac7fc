"""
tests/test_work_items.py
------------------------
Unit tests for objects/ (kind dispatch table), strategies/grouping.py and
core/work_items.py.
"""
from __future__ import annotations

import pytest

from dbrepl.config.schema import (
    FilterConfig,
    GroupingConfig,
    GroupingMode,
    ObjectKind,
    SpecialHandling,
)
from dbrepl.core.work_items import WorkItemBuilder
from dbrepl.objects import KindRegistry, ObjectIdentifier, ObjectValidationError
from dbrepl.strategies.grouping import GroupingStrategyFactory


def views(*names: str):
    identifiers = []
    for name in names:
        owner, _, view = name.partition(".")
        identifiers.append(ObjectIdentifier(name=view, owner_group=owner))
    return identifiers


# ---------------------------------------------------------------------------
# KindRegistry
# ---------------------------------------------------------------------------

class TestKindRegistry:
    def test_every_kind_has_a_handler(self) -> None:
        for kind in ObjectKind:
            assert KindRegistry.is_registered(kind), kind

    def test_handlers_sorted_in_folder_order(self) -> None:
        folders = [h.folder for h in KindRegistry.all_handlers()]
        assert folders == sorted(folders)
        assert folders[0] == "00_FileGroups"
        assert folders[-1] == "20_Data"

    def test_folders_are_unique(self) -> None:
        folders = [h.folder for h in KindRegistry.all_handlers()]
        assert len(folders) == len(set(folders))

    def test_kind_for_folder(self) -> None:
        assert KindRegistry.kind_for_folder("13_Programmability/05_Views") == ObjectKind.VIEW
        assert KindRegistry.kind_for_folder("99_Unknown") is None

    def test_sub_object_resolves_through_parent(self) -> None:
        handler = KindRegistry.get_handler(ObjectKind.INDEX)
        identifier = ObjectIdentifier(
            name="Documents", owner_group="dbo", extra={"index": "IX_Documents_FileName"}
        )

        target = handler.resolve(identifier)

        assert target.name == "IX_Documents_FileName"
        assert target.parent_name == "Documents"
        assert target.owner_group == "dbo"
        assert handler.object_key(identifier) == (
            ObjectKind.INDEX,
            "dbo",
            "Documents.IX_Documents_FileName",
        )

    def test_sub_object_without_child_is_rejected(self) -> None:
        handler = KindRegistry.get_handler(ObjectKind.FOREIGN_KEY)
        with pytest.raises(ObjectValidationError, match="constraint"):
            handler.resolve(ObjectIdentifier(name="Orders", owner_group="Sales"))

    def test_owned_object_without_owner_is_rejected(self) -> None:
        handler = KindRegistry.get_handler(ObjectKind.VIEW)
        with pytest.raises(ObjectValidationError, match="owner group"):
            handler.resolve(ObjectIdentifier(name="V1"))

    def test_kind_options_select_facet(self) -> None:
        table = KindRegistry.get_handler(ObjectKind.TABLE).options({"indexes": True, "collation": True})
        index = KindRegistry.get_handler(ObjectKind.INDEX).options({"indexes": False})
        assert table["indexes"] is False
        assert table["collation"] is True
        assert index["indexes"] is True

    def test_file_names(self) -> None:
        data = KindRegistry.get_handler(ObjectKind.TABLE_DATA)
        policy = KindRegistry.get_handler(ObjectKind.SECURITY_POLICY)
        schema = KindRegistry.get_handler(ObjectKind.SCHEMA)

        assert data.file_name(ObjectIdentifier("Customers", "dbo")) == "dbo.Customers.data.sql"
        assert (
            policy.file_name(ObjectIdentifier("TenantSecurityPolicy", "Sales"))
            == "Sales.TenantSecurityPolicy.securitypolicy.sql"
        )
        assert schema.file_name(ObjectIdentifier("Sales")) == "Sales.sql"

    def test_invalid_file_characters_replaced(self) -> None:
        handler = KindRegistry.get_handler(ObjectKind.VIEW)
        assert handler.file_name(ObjectIdentifier('a:b*c?"d', "dbo")) == "dbo.a_b_c__d.sql"


# ---------------------------------------------------------------------------
# Grouping strategies
# ---------------------------------------------------------------------------

class TestGroupingStrategies:
    def test_single_one_file_per_object(self) -> None:
        handler = KindRegistry.get_handler(ObjectKind.VIEW)
        strategy = GroupingStrategyFactory.get_strategy(GroupingMode.SINGLE)

        assignments = strategy.assign(handler, views("dbo.V2", "dbo.V1"))

        assert [a.relative_path for a in assignments] == [
            "13_Programmability/05_Views/dbo.V1.sql",
            "13_Programmability/05_Views/dbo.V2.sql",
        ]

    def test_by_group_numbered_by_sorted_group(self) -> None:
        handler = KindRegistry.get_handler(ObjectKind.VIEW)
        strategy = GroupingStrategyFactory.get_strategy(GroupingMode.BY_GROUP)

        assignments = strategy.assign(handler, views("dbo.V2", "app.A", "dbo.V1"))

        assert [a.relative_path for a in assignments] == [
            "13_Programmability/05_Views/001_app.sql",
            "13_Programmability/05_Views/002_dbo.sql",
        ]
        assert [i.name for i in assignments[1].identifiers] == ["V1", "V2"]

    def test_all_single_file(self) -> None:
        handler = KindRegistry.get_handler(ObjectKind.VIEW)
        strategy = GroupingStrategyFactory.get_strategy(GroupingMode.ALL)

        assignments = strategy.assign(handler, views("dbo.V2", "app.A"))

        assert len(assignments) == 1
        assert assignments[0].relative_path == "13_Programmability/05_Views/001_Views.sql"
        assert assignments[0].identifiers[0].name == "A"

    def test_all_with_no_objects(self) -> None:
        handler = KindRegistry.get_handler(ObjectKind.VIEW)
        assert GroupingStrategyFactory.get_strategy(GroupingMode.ALL).assign(handler, []) == []


# ---------------------------------------------------------------------------
# WorkItemBuilder
# ---------------------------------------------------------------------------

class TestWorkItemBuilder:
    def test_build_is_deterministic(self, sample_objects) -> None:
        reordered = {kind: list(reversed(ids)) for kind, ids in reversed(list(sample_objects.items()))}

        first = WorkItemBuilder().build(sample_objects)
        second = WorkItemBuilder().build(reordered)

        assert [(i.id, i.output_path) for i in first] == [(i.id, i.output_path) for i in second]

    def test_output_paths_unique_in_every_mode(self, sample_objects) -> None:
        for mode in GroupingMode:
            items = WorkItemBuilder(grouping=GroupingConfig(default=mode)).build(sample_objects)
            paths = [i.output_path for i in items]
            assert len(paths) == len(set(paths)), mode

    def test_items_in_folder_order(self, sample_objects) -> None:
        items = WorkItemBuilder().build(sample_objects)
        paths = [i.output_path for i in items]
        assert paths[0] == "03_Schemas/Sales.sql"
        assert paths == sorted(paths)

    def test_sub_object_path(self, sample_objects) -> None:
        items = WorkItemBuilder().build(sample_objects)
        index = [i for i in items if i.kind == ObjectKind.INDEX]
        assert index[0].output_path == "10_Indexes/dbo.Documents.IX_Documents_FileName.sql"
        assert index[0].script_options["indexes"] is True

    def test_ids_numbered_per_kind(self, sample_objects) -> None:
        items = WorkItemBuilder().build(sample_objects)
        view_ids = [i.id for i in items if i.kind == ObjectKind.VIEW]
        assert view_ids == ["view-0001", "view-0002", "view-0003"]

    def test_fixed_grouping_ignores_configuration(self) -> None:
        inventory = {
            ObjectKind.FILE_GROUP: [ObjectIdentifier("ARCHIVE"), ObjectIdentifier("FG_DATA")]
        }
        items = WorkItemBuilder(grouping=GroupingConfig(default=GroupingMode.SINGLE)).build(inventory)

        assert len(items) == 1
        assert items[0].output_path == "00_FileGroups/001_FileGroups.sql"
        assert items[0].grouping_mode == GroupingMode.ALL
        assert items[0].special_handling == SpecialHandling.FILE_GROUPS
        assert items[0].object_count == 2

    def test_grouping_override_per_kind(self, sample_objects) -> None:
        grouping = GroupingConfig(overrides={ObjectKind.VIEW: GroupingMode.BY_GROUP})
        items = WorkItemBuilder(grouping=grouping).build(sample_objects)

        view_paths = [i.output_path for i in items if i.kind == ObjectKind.VIEW]
        table_items = [i for i in items if i.kind == ObjectKind.TABLE]
        assert view_paths == [
            "13_Programmability/05_Views/001_Sales.sql",
            "13_Programmability/05_Views/002_dbo.sql",
        ]
        assert all(i.grouping_mode == GroupingMode.SINGLE for i in table_items)

    def test_include_kinds(self, sample_objects) -> None:
        builder = WorkItemBuilder(filters=FilterConfig(include_kinds=[ObjectKind.VIEW]))
        items = builder.build(sample_objects)
        assert {i.kind for i in items} == {ObjectKind.VIEW}

    def test_exclude_kinds(self, sample_objects) -> None:
        builder = WorkItemBuilder(filters=FilterConfig(exclude_kinds=[ObjectKind.VIEW]))
        items = builder.build(sample_objects)
        assert ObjectKind.VIEW not in {i.kind for i in items}
        assert ObjectKind.TABLE in {i.kind for i in items}

    def test_name_patterns(self, sample_objects) -> None:
        builder = WorkItemBuilder(
            filters=FilterConfig(include_patterns=[r"dbo\."], exclude_patterns=[r".*\.V2$"])
        )
        items = builder.build({ObjectKind.VIEW: sample_objects[ObjectKind.VIEW]})
        assert [i.output_path for i in items] == ["13_Programmability/05_Views/dbo.V1.sql"]

    def test_table_data_requires_include_data(self) -> None:
        inventory = {ObjectKind.TABLE_DATA: [ObjectIdentifier("Customers", "dbo")]}

        assert WorkItemBuilder().build(inventory) == []
        items = WorkItemBuilder(include_data=True).build(inventory)
        assert [i.output_path for i in items] == ["20_Data/dbo.Customers.data.sql"]

    def test_select_objects(self, sample_objects) -> None:
        builder = WorkItemBuilder(
            filters=FilterConfig(
                include_kinds=[ObjectKind.VIEW, ObjectKind.TABLE], include_patterns=[r"Sales\."]
            )
        )
        selected = builder.select_objects(sample_objects)

        assert set(selected) == {ObjectKind.VIEW, ObjectKind.TABLE}
        assert [i.name for i in selected[ObjectKind.VIEW]] == ["Summary"]
        assert [i.name for i in selected[ObjectKind.TABLE]] == ["Orders"]

    def test_colliding_file_names_rejected(self) -> None:
        inventory = {ObjectKind.VIEW: views("dbo.a:b", "dbo.a_b")}
        with pytest.raises(ValueError, match="both write"):
            WorkItemBuilder().build(inventory)

    def test_global_script_options_merged(self) -> None:
        builder = WorkItemBuilder(script_options={"header": False})
        items = builder.build({ObjectKind.VIEW: views("dbo.V1")})
        assert items[0].script_options["header"] is False
