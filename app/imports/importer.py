"""Row-by-row import into the equipment table.

Rows are processed strictly in file order and each row is committed on
its own: a failing row is recorded and skipped, it never aborts the rest
of the batch. The outcome of every row is a value, folded into a single
ImportResult at the end.
"""

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from uuid import uuid4

from sqlalchemy import Table, insert, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.db.database import reflect_table
from app.db.models import generate_uuid
from app.imports.mapping import DUPLICATE_KEY_FIELD, PRIMARY_FIELD, SECONDARY_FIELD
from app.imports.parsers import ParsedSheet
from app.imports.schemas import ImportResult, RowError, RowErrorKind

logger = logging.getLogger(__name__)


def generate_qr_code() -> str:
    """Generate the label code printed on equipment, e.g. "KB-1A2B3C4D"."""
    return f"KB-{uuid4().hex[:8].upper()}"


def placeholder_name(row_number: int) -> str:
    return f"Imported item (row {row_number})"


@dataclass(frozen=True)
class RowOutcome:
    """What happened to one row.

    Attributes:
        row_number: Spreadsheet row number.
        error: Why the row was skipped; None when it was imported.
    """

    row_number: int
    error: RowError | None = None

    @property
    def imported(self) -> bool:
        return self.error is None

    @classmethod
    def ok(cls, row_number: int) -> "RowOutcome":
        return cls(row_number=row_number)

    @classmethod
    def skipped(cls, row_number: int, kind: RowErrorKind, message: str) -> "RowOutcome":
        return cls(
            row_number=row_number,
            error=RowError(row=row_number, message=message, kind=kind),
        )


def summarize(
    outcomes: Iterable[RowOutcome], columns_created: Iterable[str] = ()
) -> ImportResult:
    """Fold row outcomes into an import result."""
    imported = 0
    errors: list[RowError] = []
    for outcome in outcomes:
        if outcome.imported:
            imported += 1
        else:
            errors.append(outcome.error)
    return ImportResult(
        imported_count=imported,
        skipped_count=len(errors),
        total_rows=imported + len(errors),
        errors=tuple(errors),
        columns_created=tuple(columns_created),
    )


class RowImporter:
    """Inserts spreadsheet rows into the equipment table."""

    def __init__(
        self,
        db: Session,
        created_by: str | None = None,
        table_name: str = "equipment",
        primary_field: str = PRIMARY_FIELD,
        secondary_field: str = SECONDARY_FIELD,
        duplicate_key_field: str = DUPLICATE_KEY_FIELD,
    ):
        """Initialize the importer.

        Args:
            db: Database session.
            created_by: ID of the acting user, stored on every row.
            table_name: Destination table.
            primary_field: Field holding the display name.
            secondary_field: Field used as display name when the primary is blank.
            duplicate_key_field: Field compared for duplicate detection.
        """
        self.db = db
        self.created_by = created_by
        self.table_name = table_name
        self.primary_field = primary_field
        self.secondary_field = secondary_field
        self.duplicate_key_field = duplicate_key_field

    def load_existing_keys(self, table: Table) -> set[str]:
        """Lower-cased duplicate keys already stored in the table."""
        column = table.c[self.duplicate_key_field]
        stmt = select(column).where(column.is_not(None), column != "")
        # Folded in Python, matching the file side; SQLite lower() is ASCII only
        return {value.lower() for value in self.db.execute(stmt).scalars() if value}

    def build_values(
        self, sheet: ParsedSheet, row: list[str], columns: Mapping[str, str]
    ) -> dict[str, str]:
        """Resolve a row into column -> value for every non-empty mapped cell.

        When several headers target the same column, the last non-empty
        one in file order wins.
        """
        values: dict[str, str] = {}
        for index, header in enumerate(sheet.headers):
            column = columns.get(header)
            if not column:
                continue
            value = sheet.cell(row, index)
            if value:
                values[column] = value
        return values

    def run(
        self,
        sheet: ParsedSheet,
        columns: Mapping[str, str],
        skip_duplicates: bool = True,
        columns_created: Iterable[str] = (),
    ) -> ImportResult:
        """Import every row of a sheet.

        Args:
            sheet: Parsed file.
            columns: Header -> table column, after schema evolution.
            skip_duplicates: Skip rows whose duplicate key was already seen,
                in the table or earlier in this file.
            columns_created: Columns created for this import, echoed in the result.

        Returns:
            ImportResult: Counts and per-row errors.
        """
        table = reflect_table(self.db.connection(), self.table_name)

        check_duplicates = skip_duplicates and self.duplicate_key_field in columns.values()
        seen_keys = self.load_existing_keys(table) if check_duplicates else None

        outcomes = []
        for row_number, row in sheet.numbered_rows():
            outcomes.append(self._import_row(table, sheet, row, row_number, columns, seen_keys))

        result = summarize(outcomes, columns_created)
        logger.info(
            f"Equipment import finished: {result.imported_count} imported, "
            f"{result.skipped_count} skipped, {len(result.columns_created)} columns created"
        )
        return result

    def _import_row(
        self,
        table: Table,
        sheet: ParsedSheet,
        row: list[str],
        row_number: int,
        columns: Mapping[str, str],
        seen_keys: set[str] | None,
    ) -> RowOutcome:
        values = self.build_values(sheet, row, columns)

        values[self.primary_field] = (
            values.get(self.primary_field)
            or values.get(self.secondary_field)
            or placeholder_name(row_number)
        )

        key = values.get(self.duplicate_key_field)
        if seen_keys is not None and key:
            if key.lower() in seen_keys:
                return RowOutcome.skipped(
                    row_number, RowErrorKind.DUPLICATE, f"Duplicate serial number: {key}"
                )

        values.update(
            id=generate_uuid(),
            qr_code=generate_qr_code(),
            created_by=self.created_by,
            is_active=True,
        )

        try:
            self.db.execute(insert(table).values(values))
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            message = str(getattr(e, "orig", None) or e)
            logger.warning(f"Import row {row_number} failed: {message}")
            return RowOutcome.skipped(row_number, RowErrorKind.INSERT_ERROR, message)

        if seen_keys is not None and key:
            seen_keys.add(key.lower())
        return RowOutcome.ok(row_number)
