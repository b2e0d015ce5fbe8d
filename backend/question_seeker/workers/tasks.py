"""
Celery Tasks — Document Pipeline

  process_upload   run the pipeline for one upload id
  health_check     worker liveness probe

Each worker process owns one event loop and one DocumentPipeline. The loop
outlives individual tasks so pooled database connections and the QA cache
stay usable across uploads. DocumentPipeline.run() never raises; the
outcome is written to the Upload row.
"""

from __future__ import annotations

import asyncio
import logging
from functools import lru_cache
from typing import Any, Coroutine

from question_seeker.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def _worker_loop() -> asyncio.AbstractEventLoop:
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    return loop


@lru_cache(maxsize=1)
def _worker_pipeline():
    from question_seeker.core.config import settings
    from question_seeker.services.pipeline import build_pipeline
    return build_pipeline(settings)


def run_on_worker_loop(coro: Coroutine[Any, Any, Any]) -> Any:
    """Drive a coroutine to completion on this process's event loop."""
    return _worker_loop().run_until_complete(coro)


@celery_app.task(
    name="question_seeker.workers.tasks.process_upload",
    acks_late=True,
    reject_on_worker_lost=True,
    max_retries=0,
)
def process_upload(*, upload_id: int) -> dict[str, Any]:
    run_on_worker_loop(_worker_pipeline().run(upload_id))
    return {"upload_id": upload_id}


@celery_app.task(name="question_seeker.workers.tasks.health_check")
def health_check() -> dict[str, str]:
    return {"status": "ok", "queue": "uploads.process"}
