"""
tests/test_fk_guard.py
----------------------
Unit tests for core/fk_guard.py using a mock connection.
"""
from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from dbrepl.core.fk_guard import ConstraintState, FkConstraintRef, ForeignKeyGuard
from dbrepl.sources.base import DataSourceError
from dbrepl.strategies.error_handling import ReferentialIntegrityError


def fk_rows():
    return [
        {"table_owner_group": "Sales", "table_name": "Orders", "constraint_name": "FK_Orders_Customers"},
        {"table_owner_group": "Sales", "table_name": "OrderLines", "constraint_name": "FK_OrderLines_Orders"},
        {"table_owner_group": "dbo", "table_name": "Documents", "constraint_name": "FK_Documents_Owner"},
    ]


@pytest.fixture
def mock_connection() -> MagicMock:
    connection = MagicMock()
    connection.query.return_value = fk_rows()
    return connection


def executed(connection: MagicMock):
    return [c.args[0] for c in connection.execute_batch.call_args_list]


class TestFkConstraintRef:
    def test_statements(self) -> None:
        ref = FkConstraintRef("Sales", "Order]s", "FK_x")
        assert ref.suspend_sql() == "ALTER TABLE [Sales].[Order]]s] NOCHECK CONSTRAINT [FK_x]"
        assert ref.restore_sql() == "ALTER TABLE [Sales].[Order]]s] WITH CHECK CHECK CONSTRAINT [FK_x]"
        assert str(ref) == "Sales.Order]s.FK_x"
        assert ref.was_enabled_before_guard


class TestForeignKeyGuard:
    def test_suspends_and_restores_every_constraint(self, mock_connection) -> None:
        with ForeignKeyGuard(mock_connection) as guard:
            assert len(guard.report.suspended) == 3
            assert all(c.state == ConstraintState.SUSPENDED for c in guard.report.suspended)

        statements = executed(mock_connection)
        assert sum("NOCHECK CONSTRAINT" in s for s in statements) == 3
        assert sum("WITH CHECK CHECK CONSTRAINT" in s for s in statements) == 3
        assert len(guard.report.validated) == 3
        assert guard.report.errors == []

    def test_no_constraints_is_valid(self) -> None:
        connection = MagicMock()
        connection.query.return_value = []

        with ForeignKeyGuard(connection) as guard:
            pass

        assert guard.report.suspended == []
        connection.execute_batch.assert_not_called()

    def test_validation_failure_reported_by_name(self, mock_connection) -> None:
        def execute_batch(sql, timeout=None):
            if "WITH CHECK CHECK CONSTRAINT [FK_Orders_Customers]" in sql:
                raise DataSourceError(
                    "The ALTER TABLE statement conflicted with the FOREIGN KEY constraint (547)"
                )

        mock_connection.execute_batch.side_effect = execute_batch

        with ForeignKeyGuard(mock_connection) as guard:
            pass

        assert len(guard.report.errors) == 1
        error = guard.report.errors[0]
        assert isinstance(error, ReferentialIntegrityError)
        assert error.constraint == "Sales.Orders.FK_Orders_Customers"
        assert "conflicted" in str(error)
        assert [str(c) for c in guard.report.failed] == ["Sales.Orders.FK_Orders_Customers"]
        assert len(guard.report.validated) == 2

    def test_every_suspended_constraint_validated_or_reported(self, mock_connection) -> None:
        def execute_batch(sql, timeout=None):
            if "WITH CHECK" in sql and "Documents" in sql:
                raise DataSourceError("conflict")

        mock_connection.execute_batch.side_effect = execute_batch

        with ForeignKeyGuard(mock_connection) as guard:
            pass

        reported = {e.constraint for e in guard.report.errors}
        for ref in guard.report.suspended:
            assert ref.state == ConstraintState.VALIDATED or str(ref) in reported

    def test_restore_runs_when_load_raises(self, mock_connection) -> None:
        guard = ForeignKeyGuard(mock_connection)

        with pytest.raises(RuntimeError):
            with guard:
                raise RuntimeError("data load crashed")

        assert len(guard.report.validated) == 3

    def test_failed_suspend_is_not_restored(self, mock_connection) -> None:
        def execute_batch(sql, timeout=None):
            if "NOCHECK" in sql and "OrderLines" in sql:
                raise DataSourceError("permission denied")

        mock_connection.execute_batch.side_effect = execute_batch

        with ForeignKeyGuard(mock_connection) as guard:
            pass

        assert [c.constraint_name for c in guard.report.suspended] == [
            "FK_Orders_Customers",
            "FK_Documents_Owner",
        ]
        restores = [s for s in executed(mock_connection) if "WITH CHECK" in s]
        assert len(restores) == 2

    def test_restore_is_idempotent(self, mock_connection) -> None:
        guard = ForeignKeyGuard(mock_connection)
        guard.suspend()
        guard.restore()
        guard.restore()

        restores = [s for s in executed(mock_connection) if "WITH CHECK" in s]
        assert len(restores) == 3
