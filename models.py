"""
Data Models for imgpaste
========================

Pydantic models shared by the upload pipeline and the HTTP surface.
"""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class FailureKind(str, Enum):
    """Failure categories of the upload pipeline"""
    MISSING_PAYLOAD = "missing_payload"
    UNKNOWN_CALL = "unknown_call"
    MALFORMED_PAYLOAD = "malformed_payload"
    UNSUPPORTED_MIME_TYPE = "unsupported_mime_type"
    REMOTE_FETCH_FAILURE = "remote_fetch_failure"
    PERMISSION_DENIED = "permission_denied"
    TEMP_IO_FAILURE = "temp_io_failure"
    STORAGE_FAILURE = "storage_failure"


class UploadContext(BaseModel):
    """Caller-supplied context travelling with a payload; never mutated."""

    model_config = ConfigDict(frozen=True)

    context_page_id: str = Field(default="", description="Page the paste happened on")
    acting_user: str = Field(default="", description="Authenticated user, empty for anonymous")


class UploadResult(BaseModel):
    """Success payload returned to the client, one per request."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    message: str = Field(..., description="Human readable success message")
    id: str = Field(..., description="Stored media identifier")
    mime_type: str = Field(..., alias="mime", description="MIME type of the stored media")
    extension: str = Field(..., alias="ext", description="File extension of the stored media")
    url: str = Field(..., description="URL under which the media is served")

    def to_wire(self) -> Dict[str, Any]:
        """Serialize with the short field names used on the wire."""
        return self.model_dump(by_alias=True)


class UploadFailure(BaseModel):
    """Typed failure value produced at the gateway boundary."""

    model_config = ConfigDict(frozen=True)

    kind: FailureKind
    status_code: int = Field(..., ge=400, le=599)
    message: str = ""


class UploadOutcome(BaseModel):
    """Either a result or a failure, never both."""

    model_config = ConfigDict(frozen=True)

    result: Optional[UploadResult] = None
    failure: Optional[UploadFailure] = None

    @property
    def ok(self) -> bool:
        return self.failure is None and self.result is not None

    @classmethod
    def success(cls, result: UploadResult) -> "UploadOutcome":
        return cls(result=result)

    @classmethod
    def failed(cls, failure: UploadFailure) -> "UploadOutcome":
        return cls(failure=failure)
