"""Errors that abort an import call.

Per-row and per-column problems are not exceptions; they are recorded in
the import result and the batch carries on.
"""

from fastapi import status


class ImportPipelineError(Exception):
    """Base class for errors surfaced verbatim to the operator.

    Attributes:
        message: Operator-facing message.
        status_code: HTTP status the API layer answers with.
    """

    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class MalformedFileError(ImportPipelineError):
    """The upload is empty, has no header row, or cannot be decoded."""


class UnsupportedFormatError(ImportPipelineError):
    """The upload is neither a workbook nor delimited text."""

    status_code = status.HTTP_415_UNSUPPORTED_MEDIA_TYPE


class UploadTooLargeError(ImportPipelineError):
    """The upload exceeds the configured size limit."""

    status_code = 413


class SessionNotFoundError(ImportPipelineError):
    """The import session is unknown, already consumed, or expired."""

    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, message: str = "Import session not found or expired. Please upload again."):
        super().__init__(message)


class InvalidMappingError(ImportPipelineError):
    """The submitted mapping targets a field that does not exist."""

    status_code = 422
