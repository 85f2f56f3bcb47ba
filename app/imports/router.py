"""Equipment import API routes."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, File, UploadFile

from app.dependencies import CurrentTechnician, CurrentUser, DbSession
from app.imports.assisted import ColumnMappingOracle, get_mapping_oracle
from app.imports.mapping import EQUIPMENT_FIELDS, RESERVED_COLUMNS
from app.imports.schemas import (
    ImportCancelRequest,
    ImportCancelResponse,
    ImportExecuteRequest,
    ImportFieldsResponse,
    ImportPreviewResponse,
    ImportResult,
)
from app.imports.service import ImportService
from app.imports.sessions import ImportSessionStore, get_session_store

logger = logging.getLogger(__name__)

router = APIRouter()


def get_import_service(
    db: DbSession,
    store: Annotated[ImportSessionStore, Depends(get_session_store)],
    oracle: Annotated[ColumnMappingOracle, Depends(get_mapping_oracle)],
) -> ImportService:
    """Build the import service for a request."""
    return ImportService(db, store, oracle)


ImportServiceDep = Annotated[ImportService, Depends(get_import_service)]


@router.get("/fields")
async def list_fields(current_user: CurrentUser) -> ImportFieldsResponse:
    """List the equipment fields a column can map onto.

    Returns:
        ImportFieldsResponse: Selectable fields and reserved column names.
    """
    return ImportFieldsResponse(
        available_fields=EQUIPMENT_FIELDS,
        reserved_columns=sorted(RESERVED_COLUMNS),
    )


@router.post("/preview")
async def preview_import(
    file: Annotated[UploadFile, File(description="Excel or CSV file")],
    current_user: CurrentTechnician,
    service: ImportServiceDep,
) -> ImportPreviewResponse:
    """Upload a spreadsheet and get a proposed column mapping.

    Args:
        file: Uploaded Excel or CSV file.
        current_user: Acting technician.
        service: Import service.

    Returns:
        ImportPreviewResponse: Session handle, headers, sample rows and proposal.
    """
    data = await file.read()
    return await service.preview(
        data,
        filename=file.filename,
        content_type=file.content_type,
        user_id=current_user.id,
    )


@router.post("/execute")
def execute_import(
    request: ImportExecuteRequest,
    current_user: CurrentTechnician,
    service: ImportServiceDep,
) -> ImportResult:
    """Import a previewed file using the confirmed mapping.

    Args:
        request: Session handle, mapping and duplicate policy.
        current_user: Acting technician.
        service: Import service.

    Returns:
        ImportResult: Counts, per-row errors and created columns.
    """
    return service.execute(request, user_id=current_user.id)


@router.post("/cancel")
async def cancel_import(
    request: ImportCancelRequest,
    current_user: CurrentTechnician,
    service: ImportServiceDep,
) -> ImportCancelResponse:
    """Discard a previewed file. Always succeeds.

    Args:
        request: Session handle.
        current_user: Acting technician.
        service: Import service.

    Returns:
        ImportCancelResponse: Success flag.
    """
    service.cancel(request.session_id, user_id=current_user.id)
    return ImportCancelResponse()
