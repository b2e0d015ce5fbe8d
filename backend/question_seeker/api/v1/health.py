"""
Operations probes (no /api prefix; used by the load balancer)

  GET /health   liveness, no external checks
  GET /ready    readiness, 503 until the database answers
"""

from __future__ import annotations

from fastapi import APIRouter, Response, status

from question_seeker.db.session import check_db_health

router = APIRouter(tags=["Operations"])


@router.get("/health", summary="Liveness probe")
async def health() -> dict:
    return {"status": "ok", "service": "question-seeker-api"}


@router.get("/ready", summary="Readiness probe")
async def ready(response: Response) -> dict:
    database = await check_db_health()
    if database["status"] != "ok":
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {"status": "not_ready", "database": database}
    return {"status": "ready", "database": database}
