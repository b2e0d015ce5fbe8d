"""
Pipeline dispatch — one background run per received upload.

The HTTP layer calls dispatch() and returns immediately; it never awaits the
run or learns about its outcome.

  InProcessDispatcher  asyncio task on the API's own event loop (default)
  CeleryDispatcher     publishes process_upload to the uploads.process queue
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod

from question_seeker.core.config import Settings
from question_seeker.services.pipeline import DocumentPipeline

logger = logging.getLogger(__name__)


class PipelineDispatcher(ABC):

    @abstractmethod
    async def dispatch(self, upload_id: int) -> None:
        """Start processing the upload in the background."""

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for locally running work; no-op for out-of-process backends."""


class InProcessDispatcher(PipelineDispatcher):
    """
    Runs each pipeline as an asyncio.Task.

    Strong references are held until the task finishes; the event loop only
    keeps weak ones.
    """

    def __init__(self, pipeline: DocumentPipeline) -> None:
        self._pipeline = pipeline
        self._tasks: set[asyncio.Task] = set()

    @property
    def running(self) -> int:
        return len(self._tasks)

    async def dispatch(self, upload_id: int) -> None:
        task = asyncio.create_task(
            self._pipeline.run(upload_id), name=f"pipeline-upload-{upload_id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.info("Pipeline dispatched | upload=%s backend=inprocess", upload_id)

    async def drain(self, timeout: float | None = None) -> None:
        if not self._tasks:
            return
        logger.info("Draining pipeline tasks | running=%d", len(self._tasks))
        _, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        if pending:
            logger.warning("Pipeline tasks still running after drain | running=%d", len(pending))


class CeleryDispatcher(PipelineDispatcher):
    """
    Sends the pipeline task to the Celery broker.
    Import is deferred so the broker connection is not required at module load time.
    """

    async def dispatch(self, upload_id: int) -> None:
        from question_seeker.workers.tasks import process_upload

        # apply_async blocks on the broker connection
        loop = asyncio.get_event_loop()
        await loop.run_in_executor(
            None,
            lambda: process_upload.apply_async(kwargs={"upload_id": upload_id}),
        )
        logger.info("Pipeline dispatched | upload=%s backend=celery", upload_id)


def get_dispatcher(settings: Settings, pipeline: DocumentPipeline) -> PipelineDispatcher:
    backend = settings.pipeline_backend.lower()

    if backend == "inprocess":
        return InProcessDispatcher(pipeline)

    if backend == "celery":
        return CeleryDispatcher()

    raise ValueError(
        f"Unknown pipeline backend: '{backend}'. "
        f"Valid options: 'inprocess', 'celery'"
    )
