"""Failure taxonomy of the upload pipeline.

Each error knows the HTTP status it maps to on the wire.
"""

from __future__ import annotations

from models import FailureKind, UploadFailure


class UploadError(Exception):
    """Base exception for upload pipeline failures."""

    kind: FailureKind = FailureKind.STORAGE_FAILURE
    status_code: int = 500

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message

    def to_failure(self) -> UploadFailure:
        return UploadFailure(kind=self.kind, status_code=self.status_code, message=self.message)


class MissingPayload(UploadError):
    """Neither inline data nor a URL was supplied."""

    kind = FailureKind.MISSING_PAYLOAD
    status_code = 400


class UnknownCall(UploadError):
    """The operation discriminator does not address this endpoint."""

    kind = FailureKind.UNKNOWN_CALL
    status_code = 400


class MalformedPayload(UploadError):
    """Inline data is empty or not decodable."""

    kind = FailureKind.MALFORMED_PAYLOAD
    status_code = 400


class UnsupportedMimeType(UploadError):
    kind = FailureKind.UNSUPPORTED_MIME_TYPE
    status_code = 415


class RemoteFetchFailure(UploadError):
    kind = FailureKind.REMOTE_FETCH_FAILURE
    status_code = 500


class PermissionDenied(UploadError):
    kind = FailureKind.PERMISSION_DENIED
    status_code = 403


class TempIOFailure(UploadError):
    """Staging the decoded bytes on local disk failed."""

    kind = FailureKind.TEMP_IO_FAILURE
    status_code = 500


class StorageFailure(UploadError):
    """The store rejected or failed the write; carries the store's message."""

    kind = FailureKind.STORAGE_FAILURE
    status_code = 500
