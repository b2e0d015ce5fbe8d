"""
Upload API Router

  POST /api/upload                 receive a file, start processing (201)
  GET  /api/upload                 list uploads
  GET  /api/upload/{id}            one upload
  GET  /api/documents/{id}/status  processing status of an upload

Request lifecycle (POST):
  ┌─────────────────────────────────────────────────────────┐
  │ 1. Stage the multipart file under upload_staging_dir     │
  │ 2. Insert Upload (pending, progress 0)                   │
  │ 3. Dispatch the pipeline in the background               │
  │ 4. Return 201 + Location; the caller polls /status       │
  └─────────────────────────────────────────────────────────┘
If the file cannot be recorded, the staged copy is removed. If dispatch
fails, the upload is marked failed and the 201 still carries its id.
Pipeline failures are never reported on this request; they end up on the
Upload record.
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
import shutil
import uuid

from fastapi import APIRouter, File, UploadFile, status
from fastapi.responses import JSONResponse

from question_seeker.api.dependencies import AppSettings, Dispatcher, Records
from question_seeker.schemas.documents import (
    DataEnvelope,
    ErrorResponse,
    UploadStatus,
    UploadStatusResponse,
    UploadView,
)
from question_seeker.services.pipeline import RECEIVED_MESSAGE, discard_staged_file

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Uploads"])


def _sanitize_filename(filename: str) -> str:
    """Strip path components and replace characters unsafe on disk."""
    basename = filename.replace("\\", "/").rsplit("/", 1)[-1]
    safe = re.sub(r"[^a-zA-Z0-9._\-]", "_", basename)
    return safe[:200] or "upload"


def _stage_file(upload: UploadFile, staging_dir: str) -> str:
    """Copy the spooled upload to the staging directory; blocking."""
    os.makedirs(staging_dir, exist_ok=True)
    path = os.path.join(
        staging_dir, f"{uuid.uuid4().hex}_{_sanitize_filename(upload.filename or 'upload')}",
    )
    upload.file.seek(0)
    with open(path, "wb") as out:
        shutil.copyfileobj(upload.file, out)
    return path


# ---------------------------------------------------------------------------
# POST /upload
# ---------------------------------------------------------------------------

@router.post(
    "/upload",
    status_code=status.HTTP_201_CREATED,
    response_model=DataEnvelope[UploadView],
    summary="Upload a document for question extraction",
    responses={
        201: {"description": "File received; processing started in the background"},
        422: {"model": ErrorResponse, "description": "Missing file or invalid upload record"},
        500: {"model": ErrorResponse, "description": "Internal server error"},
    },
)
async def create_upload(
    records:    Records,
    dispatcher: Dispatcher,
    settings:   AppSettings,
    upload:     UploadFile = File(..., description="Document to process"),
) -> JSONResponse:
    loop = asyncio.get_event_loop()
    file_path = await loop.run_in_executor(
        None, _stage_file, upload, settings.upload_staging_dir,
    )

    try:
        record = await records.create_upload(
            filename=upload.filename or "",
            content_type=upload.content_type or "application/octet-stream",
            file_path=file_path,
            message=RECEIVED_MESSAGE,
        )
    except Exception:
        discard_staged_file(file_path)
        raise
    logger.info(
        "Upload received | upload=%s file=%s content_type=%s",
        record.id, record.filename, record.content_type,
    )

    try:
        await dispatcher.dispatch(record.id)
    except Exception as exc:
        logger.exception("Pipeline dispatch failed | upload=%s", record.id)
        discard_staged_file(file_path)
        await records.update_upload(
            record.id,
            status=UploadStatus.FAILED,
            progress=0,
            message=f"Failed to process document: {exc}",
        )

    body = DataEnvelope[UploadView](data=UploadView.model_validate(record))
    return JSONResponse(
        status_code=status.HTTP_201_CREATED,
        content=body.model_dump(mode="json", by_alias=True),
        headers={"Location": f"/api/upload/{record.id}"},
    )


# ---------------------------------------------------------------------------
# GET /upload, /upload/{id}
# ---------------------------------------------------------------------------

@router.get("/upload", response_model=DataEnvelope[list[UploadView]])
async def list_uploads(records: Records) -> DataEnvelope[list[UploadView]]:
    uploads = await records.list_uploads()
    return DataEnvelope[list[UploadView]](data=[UploadView.model_validate(u) for u in uploads])


@router.get(
    "/upload/{upload_id}",
    response_model=DataEnvelope[UploadView],
    responses={404: {"model": ErrorResponse}},
)
async def get_upload(upload_id: int, records: Records) -> DataEnvelope[UploadView]:
    upload = await records.get_upload(upload_id)
    return DataEnvelope[UploadView](data=UploadView.model_validate(upload))


# ---------------------------------------------------------------------------
# GET /documents/{upload_id}/status
# ---------------------------------------------------------------------------

@router.get(
    "/documents/{upload_id}/status",
    response_model=UploadStatusResponse,
    summary="Poll async processing status",
    responses={404: {"model": ErrorResponse}},
)
async def get_upload_status(upload_id: int, records: Records) -> UploadStatusResponse:
    """Status, progress and message of an upload's pipeline run."""
    upload = await records.get_upload(upload_id)
    return UploadStatusResponse.model_validate(upload)
