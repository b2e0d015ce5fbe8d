"""
Exception → HTTP mapping.

  RequestValidationError  422  VALIDATION_ERROR (one detail per failing field)
  RecordNotFoundError     404  NOT_FOUND
  PersistenceError        422  VALIDATION_ERROR (one detail per field message)
  anything else           500  INTERNAL_ERROR, logged with traceback

Every body is an ErrorResponse carrying the request id set by the
request-context middleware in main.py.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from question_seeker.core.exceptions import PersistenceError, RecordNotFoundError
from question_seeker.schemas.documents import ApiErrors, ErrorDetail, ErrorResponse

logger = logging.getLogger(__name__)


def request_id_of(request: Request) -> str | None:
    return getattr(request.state, "request_id", None) or request.headers.get("X-Request-ID")


def _error_json(request: Request, status_code: int, body: ErrorResponse) -> JSONResponse:
    request_id = request_id_of(request)
    if body.request_id is None:
        body = body.model_copy(update={"request_id": request_id})
    headers = {"X-Request-ID": request_id} if request_id else None
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"), headers=headers)


async def _on_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        ErrorDetail(
            field=".".join(str(part) for part in err["loc"]),
            message=err["msg"],
            code="VALIDATION_ERROR",
        )
        for err in exc.errors()
    ]
    body = ErrorResponse(
        error_code="VALIDATION_ERROR",
        message="Request validation failed.",
        details=details,
    )
    return _error_json(request, status.HTTP_422_UNPROCESSABLE_ENTITY, body)


async def _on_not_found(request: Request, exc: RecordNotFoundError) -> JSONResponse:
    body = ErrorResponse(error_code="NOT_FOUND", message=str(exc))
    return _error_json(request, status.HTTP_404_NOT_FOUND, body)


async def _on_persistence_error(request: Request, exc: PersistenceError) -> JSONResponse:
    logger.warning("Record rejected | path=%s error=%s", request.url.path, exc)
    message = exc.args[0] if exc.args else str(exc)
    return _error_json(
        request, status.HTTP_422_UNPROCESSABLE_ENTITY, ApiErrors.invalid_record(message, exc.errors),
    )


async def _on_unhandled(request: Request, exc: Exception) -> JSONResponse:
    request_id = request_id_of(request)
    logger.exception("Unhandled exception | path=%s request_id=%s", request.url.path, request_id)
    return _error_json(
        request, status.HTTP_500_INTERNAL_SERVER_ERROR, ApiErrors.internal_error(request_id),
    )


def register_exception_handlers(app: FastAPI) -> None:
    # Starlette resolves handlers along the MRO, so RecordNotFoundError
    # wins over its PersistenceError base.
    app.add_exception_handler(RequestValidationError, _on_validation_error)
    app.add_exception_handler(RecordNotFoundError, _on_not_found)
    app.add_exception_handler(PersistenceError, _on_persistence_error)
    app.add_exception_handler(Exception, _on_unhandled)
