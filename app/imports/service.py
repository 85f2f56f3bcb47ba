"""Equipment import service layer.

Ties the pipeline together across its three calls:

    preview  -> parse, propose a mapping, open a session
    execute  -> consume the session, evolve the schema, import rows
    cancel   -> discard the session
"""

import logging

from sqlalchemy.orm import Session

from app.config import Settings, get_settings
from app.imports.assisted import ColumnMappingOracle, NullMappingOracle, suggest_mapping
from app.imports.errors import InvalidMappingError, UploadTooLargeError
from app.imports.importer import RowImporter
from app.imports.mapping import (
    AVAILABLE_FIELDS,
    EQUIPMENT_FIELDS,
    RESERVED_COLUMNS,
    build_column_mapping,
    find_unknown_fields,
    resolve_proposal,
)
from app.imports.parsers import parse_upload
from app.imports.schema_evolver import SchemaEvolver
from app.imports.schemas import (
    ImportExecuteRequest,
    ImportPreviewResponse,
    ImportResult,
    MappingSource,
)
from app.imports.sessions import ImportSessionStore

logger = logging.getLogger(__name__)


class ImportService:
    """Service class for equipment import operations."""

    def __init__(
        self,
        db: Session,
        store: ImportSessionStore,
        oracle: ColumnMappingOracle | None = None,
        settings: Settings | None = None,
    ):
        """Initialize import service.

        Args:
            db: Database session.
            store: Session store bridging preview and execute.
            oracle: Assisted mapping service; a null oracle when omitted.
            settings: Application settings.
        """
        self.db = db
        self.store = store
        self.oracle = oracle or NullMappingOracle()
        self.settings = settings or get_settings()

    async def preview(
        self,
        data: bytes,
        filename: str | None,
        content_type: str | None = None,
        user_id: str | None = None,
    ) -> ImportPreviewResponse:
        """Parse an upload and propose a column mapping.

        Args:
            data: Raw file bytes.
            filename: Upload filename.
            content_type: Declared MIME type.
            user_id: Uploading user.

        Returns:
            ImportPreviewResponse: Session handle, headers, sample and proposal.

        Raises:
            UploadTooLargeError: If the file exceeds the size limit.
            UnsupportedFormatError: If the file is not a workbook or CSV.
            MalformedFileError: If the file is empty or cannot be decoded.
        """
        if len(data) > self.settings.import_max_upload_bytes:
            raise UploadTooLargeError(
                f"File is too large (limit {self.settings.import_max_upload_bytes // 1024} KB)"
            )

        sheet = parse_upload(data, filename=filename, content_type=content_type)
        sample_rows = sheet.sample(self.settings.import_sample_rows)

        heuristic, _ = build_column_mapping(sheet.headers)
        suggestion = await suggest_mapping(
            self.oracle,
            sheet.headers,
            sample_rows,
            AVAILABLE_FIELDS,
            timeout=self.settings.import_assist_timeout_seconds,
        )
        proposal = resolve_proposal(
            sheet.headers,
            heuristic,
            suggestion.mappings if suggestion else None,
            max_length=self.settings.import_max_identifier_length,
        )

        session = self.store.create(sheet, owner_id=user_id)

        return ImportPreviewResponse(
            session_id=session.session_id,
            filename=sheet.filename,
            sheet_names=sheet.sheet_names,
            headers=sheet.headers,
            total_rows=sheet.total_rows,
            sample_rows=sample_rows,
            proposed_mapping=proposal.targets,
            available_fields=EQUIPMENT_FIELDS,
            reserved_columns=sorted(RESERVED_COLUMNS),
            mapping_source=(
                MappingSource.ASSISTED if proposal.from_assisted else MappingSource.HEURISTIC
            ),
            mapping_confidence=suggestion.confidence if suggestion else None,
            mapping_notes=suggestion.notes if suggestion else None,
        )

    def execute(self, request: ImportExecuteRequest, user_id: str | None = None) -> ImportResult:
        """Import a previewed file with the operator's mapping.

        The mapping is checked before the session is consumed, so a rejected
        mapping can be corrected and resubmitted.

        Args:
            request: Session handle, mapping and duplicate policy.
            user_id: Acting user, recorded on every imported row.

        Returns:
            ImportResult: Counts, per-row errors and created columns.

        Raises:
            InvalidMappingError: If the mapping names an unknown equipment field.
            SessionNotFoundError: If the session is unknown, consumed or expired.
        """
        unknown = find_unknown_fields(request.mapping)
        if unknown:
            raise InvalidMappingError(f"Unknown equipment field(s): {', '.join(unknown)}")

        sheet = self.store.consume(request.session_id, owner_id=user_id)

        ignored = [h for h in request.mapping if h not in sheet.headers]
        if ignored:
            logger.info(f"Ignoring mapping for headers not in the file: {ignored}")

        evolver = SchemaEvolver(
            self.db,
            max_identifier_length=self.settings.import_max_identifier_length,
        )
        evolution = evolver.evolve(sheet.headers, request.mapping)

        importer = RowImporter(self.db, created_by=user_id)
        return importer.run(
            sheet,
            evolution.columns,
            skip_duplicates=request.skip_duplicates,
            columns_created=evolution.columns_created,
        )

    def cancel(self, session_id: str | None, user_id: str | None = None) -> None:
        """Discard a session. Never fails."""
        self.store.discard(session_id, owner_id=user_id)
