"""Foreign-key guard: suspend constraints for a data load, then re-validate them."""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from dbrepl.sources.base import DatabaseConnection
from dbrepl.strategies.error_handling import ReferentialIntegrityError, describe_error

logger = logging.getLogger(__name__)

ENABLED_FOREIGN_KEYS_QUERY = """
    SELECT OBJECT_SCHEMA_NAME(fk.parent_object_id) AS table_owner_group,
           OBJECT_NAME(fk.parent_object_id) AS table_name,
           fk.name AS constraint_name
    FROM sys.foreign_keys fk
    WHERE fk.is_disabled = 0
    ORDER BY table_owner_group, table_name, constraint_name
"""


def _quote(name: str) -> str:
    return "[" + name.replace("]", "]]") + "]"


class ConstraintState(str, Enum):
    """Lifecycle of a guarded constraint."""

    SUSPENDED = "suspended"
    VALIDATED = "validated"
    FAILED = "failed"


@dataclass
class FkConstraintRef:
    """A foreign key the guard disabled and must restore."""

    table_owner_group: str
    table_name: str
    constraint_name: str
    was_enabled_before_guard: bool = True
    state: ConstraintState = ConstraintState.SUSPENDED
    error: Optional[str] = None

    @property
    def qualified_table(self) -> str:
        """Bracket-quoted table name."""
        return f"{_quote(self.table_owner_group)}.{_quote(self.table_name)}"

    def suspend_sql(self) -> str:
        """Statement that disables the constraint."""
        return f"ALTER TABLE {self.qualified_table} NOCHECK CONSTRAINT {_quote(self.constraint_name)}"

    def restore_sql(self) -> str:
        """Statement that re-enables the constraint and validates existing rows."""
        return (
            f"ALTER TABLE {self.qualified_table} "
            f"WITH CHECK CHECK CONSTRAINT {_quote(self.constraint_name)}"
        )

    def __str__(self) -> str:
        """String representation."""
        return f"{self.table_owner_group}.{self.table_name}.{self.constraint_name}"


@dataclass
class GuardReport:
    """What the guard suspended and how restoration went."""

    suspended: List[FkConstraintRef] = field(default_factory=list)
    errors: List[ReferentialIntegrityError] = field(default_factory=list)

    @property
    def validated(self) -> List[FkConstraintRef]:
        """Constraints re-enabled and validated."""
        return [c for c in self.suspended if c.state == ConstraintState.VALIDATED]

    @property
    def failed(self) -> List[FkConstraintRef]:
        """Constraints that did not validate."""
        return [c for c in self.suspended if c.state == ConstraintState.FAILED]


class ForeignKeyGuard:
    """
    Brackets a bulk data load with constraint suspension and validation.

    Every enabled foreign key is disabled before the load so data scripts
    can run in any order. Afterwards each one is re-enabled WITH CHECK,
    and a validation failure is reported by constraint name. Restoration
    always runs, whatever happened during the load.

    Usage:
        with ForeignKeyGuard(connection) as guard:
            load_data()
        errors = guard.report.errors
    """

    def __init__(self, connection: DatabaseConnection):
        """
        Initialize foreign-key guard.

        Args:
            connection: Target connection (single-threaded)
        """
        self.connection = connection
        self.report = GuardReport()

    def suspend(self) -> List[FkConstraintRef]:
        """
        Disable every currently enabled foreign key.

        Returns:
            Constraints that were disabled
        """
        rows = self.connection.query(ENABLED_FOREIGN_KEYS_QUERY)

        for row in rows:
            ref = FkConstraintRef(
                table_owner_group=row["table_owner_group"],
                table_name=row["table_name"],
                constraint_name=row["constraint_name"],
            )
            try:
                self.connection.execute_batch(ref.suspend_sql())
            except Exception as e:
                # Still enabled, so nothing to restore
                logger.warning(f"Could not suspend {ref}; loading with it enabled: {e}")
                continue
            self.report.suspended.append(ref)

        logger.info(f"Suspended {len(self.report.suspended)} foreign key constraint(s)")
        return list(self.report.suspended)

    def restore(self) -> List[ReferentialIntegrityError]:
        """
        Re-enable and validate every suspended constraint.

        Returns:
            One error per constraint that failed validation
        """
        for ref in self.report.suspended:
            if ref.state != ConstraintState.SUSPENDED:
                continue
            try:
                self.connection.execute_batch(ref.restore_sql())
            except Exception as e:
                ref.state = ConstraintState.FAILED
                ref.error = describe_error(e)
                error = ReferentialIntegrityError(
                    f"Validation failed: {ref.error}", constraint=str(ref)
                )
                error.__cause__ = e
                self.report.errors.append(error)
                logger.error(f"✗ {error}")
                continue

            ref.state = ConstraintState.VALIDATED
            logger.debug(f"Validated {ref}")

        logger.info(
            f"Restored foreign keys: {len(self.report.validated)} validated, "
            f"{len(self.report.failed)} failed"
        )
        return list(self.report.errors)

    def __enter__(self):
        """Context manager entry."""
        self.suspend()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.restore()
        return False
