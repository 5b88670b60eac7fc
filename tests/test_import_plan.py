"""
tests/test_import_plan.py
-------------------------
Unit tests for core/import_plan.py (script discovery and phase partitioning).
"""
from __future__ import annotations

from pathlib import Path

import pytest

from dbrepl.config.schema import ObjectKind
from dbrepl.core.import_plan import build_import_plan, discover_scripts

from conftest import write_script


@pytest.fixture
def run_dir(tmp_path: Path) -> Path:
    run = tmp_path / "localhost_Sales_20240301_093000"
    for relative in [
        "03_Schemas/Sales.sql",
        "08_Tables_PrimaryKey/dbo.Customers.sql",
        "09_Tables_ForeignKeys/Sales.Orders.FK_Orders_Customers.sql",
        "13_Programmability/02_Functions/dbo.F1.sql",
        "13_Programmability/04_Triggers/dbo.Customers.TR_Audit.sql",
        "13_Programmability/05_Views/dbo.V1.sql",
        "14_Synonyms/dbo.Cust.sql",
        "19_SecurityPolicies/Sales.TenantSecurityPolicy.securitypolicy.sql",
        "20_Data/dbo.Customers.data.sql",
        "misc/notes.sql",
    ]:
        write_script(run, relative, "SELECT 1\nGO\n")
    (run / "_export_metadata.json").write_text("{}", encoding="utf-8")
    return run


def paths(scripts):
    return [s.relative_path for s in scripts]


class TestDiscoverScripts:
    def test_sorted_with_kinds(self, run_dir: Path) -> None:
        scripts = discover_scripts(run_dir)

        assert paths(scripts) == sorted(paths(scripts))
        assert len(scripts) == 10
        kinds = {s.relative_path: s.kind for s in scripts}
        assert kinds["13_Programmability/05_Views/dbo.V1.sql"] == ObjectKind.VIEW
        assert kinds["20_Data/dbo.Customers.data.sql"] == ObjectKind.TABLE_DATA
        assert kinds["misc/notes.sql"] is None

    def test_missing_folder(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            discover_scripts(tmp_path / "nope")

    def test_read_substitutes_variables_and_strips_bom(self, tmp_path: Path) -> None:
        path = tmp_path / "00_FileGroups" / "001_FileGroups.sql"
        path.parent.mkdir(parents=True)
        path.write_bytes("\ufeffFILENAME = N'$(FG_ARCHIVE_PATH_FILE)'".encode("utf-8"))

        script = discover_scripts(tmp_path)[0]

        assert script.read({"FG_ARCHIVE_PATH_FILE": "/data/archive.ndf"}) == "FILENAME = N'/data/archive.ndf'"


class TestBuildImportPlan:
    def test_phases(self, run_dir: Path) -> None:
        plan = build_import_plan(
            discover_scripts(run_dir),
            retry_kinds=[ObjectKind.FUNCTION, ObjectKind.VIEW, ObjectKind.STORED_PROCEDURE],
            include_data=True,
        )

        assert paths(plan.before_retry) == [
            "03_Schemas/Sales.sql",
            "08_Tables_PrimaryKey/dbo.Customers.sql",
            "09_Tables_ForeignKeys/Sales.Orders.FK_Orders_Customers.sql",
        ]
        assert paths(plan.retry_eligible) == [
            "13_Programmability/02_Functions/dbo.F1.sql",
            "13_Programmability/05_Views/dbo.V1.sql",
        ]
        assert paths(plan.after_retry) == [
            "13_Programmability/04_Triggers/dbo.Customers.TR_Audit.sql",
            "14_Synonyms/dbo.Cust.sql",
            "misc/notes.sql",
        ]
        assert paths(plan.security_policies) == [
            "19_SecurityPolicies/Sales.TenantSecurityPolicy.securitypolicy.sql"
        ]
        assert paths(plan.data) == ["20_Data/dbo.Customers.data.sql"]
        assert plan.total == 10

    def test_data_skipped_unless_included(self, run_dir: Path) -> None:
        plan = build_import_plan(discover_scripts(run_dir), retry_kinds=[ObjectKind.VIEW])

        assert plan.data == []
        assert paths(plan.skipped) == ["20_Data/dbo.Customers.data.sql"]
        assert plan.total == 9

    def test_retry_disabled_applies_everything_in_order(self, run_dir: Path) -> None:
        plan = build_import_plan(discover_scripts(run_dir), retry_kinds=[])

        assert plan.retry_eligible == []
        assert plan.after_retry == []
        assert len(plan.before_retry) == 8
