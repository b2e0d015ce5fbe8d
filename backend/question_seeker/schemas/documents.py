"""
Pydantic Request/Response Schemas

Covers:
  - Upload lifecycle states and the allowed transitions between them
  - The upload receipt (201 Created) and the status query surface
  - Document / Question views (camelCase, as consumed by the front end)
  - Structured error bodies (404, 422, 500)
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Generic, TypeVar

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Processing pipeline state machine
# ---------------------------------------------------------------------------

class UploadStatus(str, Enum):
    """
    Maps to uploads.status.
    Transitions: pending → processing → completed | failed
    """
    PENDING     = "pending"      # staged, background task not started yet
    PROCESSING  = "processing"   # pipeline running
    COMPLETED   = "completed"    # document + questions persisted
    FAILED      = "failed"       # a stage failed; see message


ALLOWED_TRANSITIONS: dict[UploadStatus, frozenset[UploadStatus]] = {
    UploadStatus.PENDING:    frozenset({UploadStatus.PROCESSING, UploadStatus.FAILED}),
    UploadStatus.PROCESSING: frozenset({UploadStatus.COMPLETED, UploadStatus.FAILED}),
    UploadStatus.COMPLETED:  frozenset(),
    UploadStatus.FAILED:     frozenset(),
}


# ---------------------------------------------------------------------------
# Upload receipt — 201 Created
# ---------------------------------------------------------------------------

# ORM rows carry inserted_at; re-validated response bodies carry createdAt
_CREATED_AT = AliasChoices("inserted_at", "createdAt")


class _CamelModel(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class UploadView(_CamelModel):
    id:           int
    filename:     str
    file_path:    str             = Field(..., alias="filePath")
    content_type: str             = Field(..., alias="contentType")
    created_at:   datetime | None = Field(None, alias="createdAt", validation_alias=_CREATED_AT)
    document_id:  int | None      = Field(None, alias="documentId")


T = TypeVar("T")


class DataEnvelope(BaseModel, Generic[T]):
    """Every non-error body is wrapped as {"data": ...}."""
    data: T


# ---------------------------------------------------------------------------
# Status query — GET /documents/{id}/status
# ---------------------------------------------------------------------------

class UploadStatusResponse(BaseModel):
    """Pipeline state of one upload, polled by the front end."""
    model_config = ConfigDict(from_attributes=True)

    id:           int
    status:       UploadStatus
    progress:     int             = Field(0, ge=0, le=100)
    message:      str | None      = None
    filename:     str
    content_type: str
    inserted_at:  datetime | None = None
    updated_at:   datetime | None = None


# ---------------------------------------------------------------------------
# Document / Question views
# ---------------------------------------------------------------------------

class QuestionView(_CamelModel):
    id:          int
    text:        str
    answer:      str | None = None
    document_id: int        = Field(..., alias="documentId")
    created_at:  datetime | None = Field(None, alias="createdAt", validation_alias=_CREATED_AT)


class DocumentView(_CamelModel):
    id:             int
    name:           str             = Field(..., validation_alias=AliasChoices("file_name", "name"))
    file_url:       str             = Field(..., alias="fileUrl")
    extracted_text: str | None      = Field(None, alias="extractedText")
    created_at:     datetime | None = Field(None, alias="createdAt", validation_alias=_CREATED_AT)


class DocumentWithQuestionsView(DocumentView):
    questions: list[QuestionView] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Structured error bodies
# ---------------------------------------------------------------------------

class ErrorDetail(BaseModel):
    """One field-level problem inside an ErrorResponse."""
    field:   str | None = Field(None, description="Request field that caused the error, if applicable")
    message: str
    code:    str        = Field(..., description="Machine-readable error code for client handling")


class ErrorResponse(BaseModel):
    """Body of every 4xx/5xx response; `error_code` is the stable part."""
    error_code: str               = Field(..., description="Stable machine-readable code")
    message:    str               = Field(..., description="Human-readable summary")
    details:    list[ErrorDetail] = Field(default_factory=list)
    request_id: str | None        = Field(None, description="Trace ID for log correlation")


class ApiErrors:
    """ErrorResponse builders shared by the exception handlers."""

    @staticmethod
    def invalid_record(message: str, errors: dict[str, list[str]]) -> ErrorResponse:
        return ErrorResponse(
            error_code="VALIDATION_ERROR",
            message=message,
            details=[
                ErrorDetail(field=field, message=msg, code="VALIDATION_ERROR")
                for field, msgs in errors.items()
                for msg in msgs
            ],
        )

    @staticmethod
    def internal_error(request_id: str | None = None) -> ErrorResponse:
        return ErrorResponse(
            error_code="INTERNAL_ERROR",
            message="Something went wrong while handling the request.",
            request_id=request_id,
        )
