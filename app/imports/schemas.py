"""Pydantic schemas for the equipment import workflow."""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class MappingTargetKind(str, Enum):
    """Where a spreadsheet column ends up."""

    EXISTING_FIELD = "existing_field"  # One of the fixed equipment fields
    NEW_COLUMN = "new_column"  # A column created on demand
    SKIP = "skip"  # Operator chose to ignore the column


class MappingSource(str, Enum):
    """Which mapper produced the proposal shown in the preview."""

    ASSISTED = "assisted"
    HEURISTIC = "heuristic"


class RowErrorKind(str, Enum):
    """Why a row was not imported."""

    DUPLICATE = "duplicate"
    INSERT_ERROR = "insert_error"


class MappingTarget(BaseModel):
    """Target of a single spreadsheet column.

    Attributes:
        kind: Target kind.
        field: Equipment field name, required when kind is existing_field.
        column_name: Column identifier for new_column targets. When the
            operator leaves it empty it is derived from the header.
    """

    kind: MappingTargetKind
    field: Optional[str] = None
    column_name: Optional[str] = None

    @model_validator(mode="after")
    def check_field_present(self) -> "MappingTarget":
        """Require a field name for existing_field targets."""
        if self.kind == MappingTargetKind.EXISTING_FIELD and not self.field:
            raise ValueError("existing_field targets require 'field'")
        return self

    @classmethod
    def existing(cls, field: str) -> "MappingTarget":
        return cls(kind=MappingTargetKind.EXISTING_FIELD, field=field)

    @classmethod
    def new_column(cls, column_name: str | None = None) -> "MappingTarget":
        return cls(kind=MappingTargetKind.NEW_COLUMN, column_name=column_name)

    @classmethod
    def skip(cls) -> "MappingTarget":
        return cls(kind=MappingTargetKind.SKIP)


def coerce_mapping_target(value: Any) -> Any:
    """Accept the shorthand string form used by older clients.

    "" / None / "skip" -> skip, "new_column" -> new column, any other
    string -> existing field of that name. Dicts and models pass through.
    """
    if value is None:
        return MappingTarget.skip()
    if isinstance(value, str):
        value = value.strip()
        if not value or value == MappingTargetKind.SKIP.value:
            return MappingTarget.skip()
        if value == MappingTargetKind.NEW_COLUMN.value:
            return MappingTarget.new_column()
        return MappingTarget.existing(value)
    return value


class FieldOption(BaseModel):
    """An existing equipment field the operator can map a column onto.

    Attributes:
        name: Field name.
        label: Display label.
        description: What the field holds.
        required: Whether the field must end up with a value.
    """

    name: str
    label: str
    description: str
    required: bool = False


class ImportPreviewResponse(BaseModel):
    """Preview returned after upload, used by the operator to confirm the mapping.

    Attributes:
        session_id: Handle to pass to execute or cancel.
        filename: Original upload filename.
        sheet_names: Sheets in the workbook (first one is imported).
        headers: Column headers in file order.
        total_rows: Number of data rows.
        sample_rows: First rows keyed by header.
        proposed_mapping: Default target per header.
        available_fields: Existing fields selectable as targets.
        reserved_columns: Names that can never be a target.
        mapping_source: Whether the proposal came from the assisted or heuristic mapper.
        mapping_confidence: Assisted mapper confidence label, if it answered.
        mapping_notes: Assisted mapper notes, if it answered.
    """

    session_id: str
    filename: str = ""
    sheet_names: list[str] = Field(default_factory=list)
    headers: list[str] = Field(default_factory=list)
    total_rows: int = 0
    sample_rows: list[dict[str, str]] = Field(default_factory=list)
    proposed_mapping: dict[str, MappingTarget] = Field(default_factory=dict)
    available_fields: list[FieldOption] = Field(default_factory=list)
    reserved_columns: list[str] = Field(default_factory=list)
    mapping_source: MappingSource = MappingSource.HEURISTIC
    mapping_confidence: Optional[str] = None
    mapping_notes: Optional[str] = None


class ImportExecuteRequest(BaseModel):
    """Request body for executing an import.

    Attributes:
        session_id: Session handle from the preview.
        mapping: Operator-confirmed target per header. Headers left out are ignored.
        skip_duplicates: Skip rows whose serial number already exists.
    """

    session_id: str
    mapping: dict[str, MappingTarget] = Field(default_factory=dict)
    skip_duplicates: bool = True

    @field_validator("mapping", mode="before")
    @classmethod
    def coerce_shorthand(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return {header: coerce_mapping_target(target) for header, target in value.items()}
        return value


class ImportCancelRequest(BaseModel):
    """Request body for cancelling an import."""

    session_id: Optional[str] = None


class ImportCancelResponse(BaseModel):
    """Cancel always succeeds."""

    success: bool = True


class RowError(BaseModel):
    """A row that was not imported.

    Attributes:
        row: 1-based spreadsheet row number (the header is row 1).
        message: Human-readable reason.
        kind: Reason category.
    """

    model_config = ConfigDict(frozen=True)

    row: int
    message: str
    kind: RowErrorKind = RowErrorKind.INSERT_ERROR


class ImportResult(BaseModel):
    """Outcome of an import execution.

    Attributes:
        imported_count: Rows inserted.
        skipped_count: Rows not inserted.
        total_rows: Data rows in the file.
        errors: Why each skipped row was skipped, in file order.
        columns_created: Columns added to the equipment table by this import.
    """

    model_config = ConfigDict(frozen=True)

    imported_count: int = 0
    skipped_count: int = 0
    total_rows: int = 0
    errors: tuple[RowError, ...] = ()
    columns_created: tuple[str, ...] = ()


class ImportFieldsResponse(BaseModel):
    """Mapping vocabulary exposed to clients."""

    available_fields: list[FieldOption] = Field(default_factory=list)
    reserved_columns: list[str] = Field(default_factory=list)
