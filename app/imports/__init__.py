"""Imports module for spreadsheet import of equipment."""

from app.imports.assisted import (
    ColumnMappingOracle,
    LLMMappingOracle,
    MappingSuggestion,
    NullMappingOracle,
    get_mapping_oracle,
    suggest_mapping,
)
from app.imports.errors import (
    ImportPipelineError,
    InvalidMappingError,
    MalformedFileError,
    SessionNotFoundError,
    UnsupportedFormatError,
    UploadTooLargeError,
)
from app.imports.importer import RowImporter
from app.imports.mapping import (
    EQUIPMENT_FIELDS,
    RESERVED_COLUMNS,
    build_column_mapping,
    normalize_column_name,
    sanitize_column_name,
)
from app.imports.parsers import ParsedSheet, parse_upload
from app.imports.router import router
from app.imports.schema_evolver import ColumnChange, SchemaEvolver
from app.imports.schemas import (
    ImportExecuteRequest,
    ImportPreviewResponse,
    ImportResult,
    MappingTarget,
    MappingTargetKind,
    RowError,
)
from app.imports.service import ImportService
from app.imports.sessions import ImportSessionStore, get_session_store

__all__ = [
    "router",
    "ImportService",
    # Parsing
    "ParsedSheet",
    "parse_upload",
    # Mapping
    "EQUIPMENT_FIELDS",
    "RESERVED_COLUMNS",
    "build_column_mapping",
    "normalize_column_name",
    "sanitize_column_name",
    "MappingTarget",
    "MappingTargetKind",
    # Assisted mapping
    "ColumnMappingOracle",
    "LLMMappingOracle",
    "MappingSuggestion",
    "NullMappingOracle",
    "get_mapping_oracle",
    "suggest_mapping",
    # Sessions
    "ImportSessionStore",
    "get_session_store",
    # Schema evolution and row import
    "ColumnChange",
    "SchemaEvolver",
    "RowImporter",
    # Results
    "ImportExecuteRequest",
    "ImportPreviewResponse",
    "ImportResult",
    "RowError",
    # Errors
    "ImportPipelineError",
    "InvalidMappingError",
    "MalformedFileError",
    "SessionNotFoundError",
    "UnsupportedFormatError",
    "UploadTooLargeError",
]
