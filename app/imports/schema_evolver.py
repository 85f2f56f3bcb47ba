"""Column creation for spreadsheet headers that match no equipment field.

Every new column is a nullable TEXT column. Creation is idempotent: a
column that already exists, whether created by an earlier import or by
a concurrent one, is reused rather than recreated.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.db.database import get_column_names
from app.imports.mapping import (
    RESERVED_COLUMNS,
    is_valid_column_name,
    sanitize_column_name,
)
from app.imports.schemas import MappingTarget, MappingTargetKind

logger = logging.getLogger(__name__)


class ColumnChange(str, Enum):
    """Outcome of ensuring a column exists."""

    APPLIED = "applied"  # Column was created
    ALREADY_EXISTS = "already_exists"  # Column was there before
    REJECTED = "rejected"  # Name is reserved or invalid, or the DDL failed


@dataclass
class EvolutionResult:
    """Mapping after schema evolution.

    Attributes:
        columns: Header -> table column for every header that will be imported.
        columns_created: Columns added by this run, in creation order.
        dropped_headers: Headers whose new column could not be used.
    """

    columns: dict[str, str] = field(default_factory=dict)
    columns_created: list[str] = field(default_factory=list)
    dropped_headers: list[str] = field(default_factory=list)


class SchemaEvolver:
    """Adds TEXT columns to a table for headers mapped to new columns."""

    def __init__(
        self,
        db: Session,
        table_name: str = "equipment",
        reserved: frozenset[str] = RESERVED_COLUMNS,
        max_identifier_length: int = 64,
    ):
        """Initialize the evolver.

        Args:
            db: Database session.
            table_name: Table that receives new columns.
            reserved: Names that can never be created or targeted.
            max_identifier_length: Longest identifier the database accepts.
        """
        self.db = db
        self.table_name = table_name
        self.reserved = reserved
        self.max_identifier_length = max_identifier_length

    def existing_columns(self) -> set[str]:
        """Columns currently defined on the table, read from the live catalog."""
        return get_column_names(self.db.connection(), self.table_name)

    def ensure_column(self, name: str) -> ColumnChange:
        """Make sure a TEXT column with this name exists.

        Args:
            name: Sanitized column name.

        Returns:
            ColumnChange: What happened.
        """
        if (
            name in self.reserved
            or not is_valid_column_name(name)
            or sanitize_column_name(name, self.max_identifier_length) != name
        ):
            logger.warning(f"Refusing to create column {name!r} on {self.table_name}")
            return ColumnChange.REJECTED

        if name in self.existing_columns():
            return ColumnChange.ALREADY_EXISTS

        preparer = self.db.get_bind().dialect.identifier_preparer
        ddl = (
            f"ALTER TABLE {preparer.quote(self.table_name)} "
            f"ADD COLUMN {preparer.quote(name)} TEXT NULL"
        )
        try:
            self.db.execute(text(ddl))
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            # Another import may have added it in the meantime
            if name in self.existing_columns():
                return ColumnChange.ALREADY_EXISTS
            logger.warning(f"Could not add column {name!r} to {self.table_name}: {e}")
            return ColumnChange.REJECTED

        logger.info(f"Schema evolution: added column {name} to {self.table_name} as TEXT")
        return ColumnChange.APPLIED

    def evolve(
        self, headers: list[str], mapping: Mapping[str, MappingTarget]
    ) -> EvolutionResult:
        """Create the columns a confirmed mapping needs.

        Headers are handled in file order. Existing-field targets pass
        through unchanged; skipped and unmapped headers are left out. A new
        column target is sanitized (from its requested name, else from the
        header) and then:

        - dropped if the name is reserved or cannot be created,
        - reused if the column already exists, so several headers can
          converge onto one column,
        - created otherwise.

        Args:
            headers: Column headers in file order.
            mapping: Operator-confirmed target per header.

        Returns:
            EvolutionResult: Header -> column mapping plus what changed.
        """
        result = EvolutionResult()
        existing = self.existing_columns()

        for header in headers:
            target = mapping.get(header)
            if target is None or target.kind == MappingTargetKind.SKIP:
                continue

            if target.kind == MappingTargetKind.EXISTING_FIELD:
                result.columns[header] = target.field
                continue

            name = sanitize_column_name(
                target.column_name or header, self.max_identifier_length
            )
            if name in self.reserved:
                logger.info(f"Header {header!r} maps to reserved column {name!r}, dropped")
                result.dropped_headers.append(header)
                continue

            if name in existing:
                result.columns[header] = name
                continue

            change = self.ensure_column(name)
            if change == ColumnChange.REJECTED:
                result.dropped_headers.append(header)
                continue

            existing.add(name)
            result.columns[header] = name
            if change == ColumnChange.APPLIED:
                result.columns_created.append(name)

        return result
