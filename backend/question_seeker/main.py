"""
Question Seeker API — application factory

Routes:
  /api/upload, /api/documents, /api/questions   see api/v1/
  /health, /ready                               operations probes

POST /api/upload answers 201 as soon as the file is staged and its Upload
row exists; storage, OCR and question extraction continue in the
background and report through GET /api/documents/{upload_id}/status.

Middleware (outermost first):
  request context   X-Request-ID in and out, one access log line per request
  CORS              any origin in development, none otherwise
  GZip              bodies over 1 KB
"""

from __future__ import annotations

import logging
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from question_seeker.api.dependencies import get_pipeline_dispatcher
from question_seeker.api.errors import register_exception_handlers
from question_seeker.api.v1.documents import router as documents_router
from question_seeker.api.v1.health import router as health_router
from question_seeker.api.v1.questions import router as questions_router
from question_seeker.api.v1.uploads import router as uploads_router
from question_seeker.core.config import settings
from question_seeker.db.session import get_engine, init_models

logger = logging.getLogger(__name__)

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)

SHUTDOWN_DRAIN_SECONDS = 30


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "Question Seeker starting | env=%s storage=%s pipeline=%s",
        settings.app_env, settings.storage_backend, settings.pipeline_backend,
    )
    if settings.db_create_all:
        await init_models()

    yield

    # Only drain a dispatcher that was actually built by a request
    if get_pipeline_dispatcher.cache_info().currsize:
        await get_pipeline_dispatcher().drain(timeout=SHUTDOWN_DRAIN_SECONDS)
    await get_engine().dispose()
    logger.info("Question Seeker stopped")


async def request_context(request: Request, call_next):
    """Tag the request with an id and log method, path, status and latency."""
    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
    request.state.request_id = request_id
    started = time.perf_counter()

    response = await call_next(request)

    response.headers["X-Request-ID"] = request_id
    logger.info(
        "HTTP %s %s %d %.1fms | request_id=%s",
        request.method, request.url.path, response.status_code,
        (time.perf_counter() - started) * 1000, request_id,
    )
    return response


def create_app() -> FastAPI:
    docs_enabled = not settings.is_production
    app = FastAPI(
        title="Question Seeker",
        description="Uploads documents, extracts their text and derives question/answer pairs.",
        version="1.0.0",
        docs_url="/api/docs" if docs_enabled else None,
        redoc_url="/api/redoc" if docs_enabled else None,
        openapi_url="/api/openapi.json" if docs_enabled else None,
        lifespan=lifespan,
    )

    # Added innermost first
    app.add_middleware(GZipMiddleware, minimum_size=1024)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.app_env == "development" else [],
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", "X-Request-ID"],
        expose_headers=["X-Request-ID", "Location"],
    )
    app.middleware("http")(request_context)

    register_exception_handlers(app)

    for router in (uploads_router, documents_router, questions_router):
        app.include_router(router, prefix="/api")
    app.include_router(health_router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "question_seeker.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.app_env == "development",
        log_level="debug" if settings.debug else "info",
    )
