"""
Celery Application Factory

Optional out-of-process execution of the document pipeline
(settings.pipeline_backend = "celery"). The API and the worker must share
the upload staging directory, since tasks carry only the upload id.

Queue topology:
  uploads.process   — one message per received upload
  system.health     — internal health-check tasks

Runs are single-attempt: a pipeline failure is recorded on the Upload, never
retried by Celery.
"""

from __future__ import annotations

import logging

from celery import Celery
from celery.signals import task_failure, task_postrun, task_prerun
from kombu import Exchange, Queue

from question_seeker.core.config import settings

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Queue and exchange definitions
# ---------------------------------------------------------------------------

UPLOADS_EXCHANGE = Exchange("uploads", type="direct", durable=True)

TASK_QUEUES = (
    Queue(
        "uploads.process",
        exchange=UPLOADS_EXCHANGE,
        routing_key="uploads.process",
        durable=True,
    ),
    Queue(
        "system.health",
        Exchange("system", type="direct"),
        routing_key="system.health",
        durable=True,
    ),
)

TASK_ROUTES = {
    "question_seeker.workers.tasks.process_upload": {"queue": "uploads.process"},
    "question_seeker.workers.tasks.health_check":   {"queue": "system.health"},
}

# ---------------------------------------------------------------------------
# Celery app factory
# ---------------------------------------------------------------------------

def create_celery_app() -> Celery:
    app = Celery("question_seeker")

    app.conf.update(
        # --- Broker / Backend ---
        broker_url=settings.celery_broker_url,
        result_backend=settings.celery_result_backend,

        # --- Serialization (reject non-JSON messages) ---
        task_serializer="json",
        result_serializer="json",
        accept_content=["json"],
        event_serializer="json",

        # --- Queues ---
        task_queues=TASK_QUEUES,
        task_routes=TASK_ROUTES,
        task_default_queue="uploads.process",
        task_default_exchange="uploads",
        task_default_routing_key="uploads.process",

        # --- Reliability ---
        task_acks_late=True,            # ack only after the run has recorded its outcome
        task_reject_on_worker_lost=True,
        worker_prefetch_multiplier=1,

        # --- Timeouts ---
        # OCR alone may poll for ~60 s; AI fallbacks add several calls on top
        task_soft_time_limit=600,
        task_time_limit=660,

        # --- Result TTL ---
        result_expires=3600,   # outcome lives on the Upload row, not in Celery results

        # --- Timezone ---
        timezone="UTC",
        enable_utc=True,

        # --- Worker ---
        worker_max_tasks_per_child=200,
    )

    app.autodiscover_tasks(["question_seeker.workers"])

    return app


celery_app = create_celery_app()


# ---------------------------------------------------------------------------
# Celery signals — structured task logging
# ---------------------------------------------------------------------------

@task_prerun.connect
def on_task_prerun(task_id, task, args, kwargs, **_):
    logger.info(
        "Task start | task_id=%s task=%s upload=%s",
        task_id, task.name, kwargs.get("upload_id", "?"),
    )


@task_postrun.connect
def on_task_postrun(task_id, task, args, kwargs, retval, state, **_):
    logger.info(
        "Task end | task_id=%s task=%s state=%s upload=%s",
        task_id, task.name, state, kwargs.get("upload_id", "?"),
    )


@task_failure.connect
def on_task_failure(task_id, exception, args, kwargs, traceback, einfo, **_):
    logger.error(
        "Task failed | task_id=%s upload=%s error=%s",
        task_id, kwargs.get("upload_id", "?"), exception,
        exc_info=True,
    )
