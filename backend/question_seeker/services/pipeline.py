"""
Document Processing Pipeline

Drives one Upload through every stage and records progress after each:

  phase                  progress  message
  ─────────────────────  ────────  ─────────────────────────────────────────
  storing                   10     Uploading document to secure storage...
  extracting_text           30     Document uploaded. Extracting text...
  analyzing                 60     Text extracted. Analyzing content...
  generating_questions      75     Generating intelligent questions from content...
  completed                100     Document processed successfully with N ...

Failure handling:
  - A stage error ends the run as failed / progress 0 with
    "<stage description>: <error detail>".
  - Anything else escaping the run is recorded as
    "Failed to process document: <error>".
  - When the whole QA fallback chain fails (QAExtractionError) the document
    still completes with three default questions.
  - run() never raises; the Upload record is the only outcome channel.

The staged file is removed as soon as the storage stage ends, whether or
not the upload to storage succeeded.

Single attempt: a failed run is not restarted.
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from enum import Enum
from typing import AsyncIterator

from question_seeker.core.config import Settings
from question_seeker.core.exceptions import PersistenceError, QAExtractionError, QuestionSeekerError
from question_seeker.llm.client import QAPair
from question_seeker.processing.ocr import BaseOCRClient
from question_seeker.qa.engine import QAExtractionEngine
from question_seeker.schemas.documents import UploadStatus
from question_seeker.services.records import RecordStore
from question_seeker.storage.base import BaseStorage

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Phases
# ---------------------------------------------------------------------------

class PipelinePhase(str, Enum):
    STORING              = "storing"
    EXTRACTING_TEXT      = "extracting_text"
    ANALYZING            = "analyzing"
    GENERATING_QUESTIONS = "generating_questions"
    COMPLETED            = "completed"


PHASE_PROGRESS: dict[PipelinePhase, int] = {
    PipelinePhase.STORING:              10,
    PipelinePhase.EXTRACTING_TEXT:      30,
    PipelinePhase.ANALYZING:            60,
    PipelinePhase.GENERATING_QUESTIONS: 75,
    PipelinePhase.COMPLETED:            100,
}

PHASE_MESSAGES: dict[PipelinePhase, str] = {
    PipelinePhase.STORING:              "Uploading document to secure storage...",
    PipelinePhase.EXTRACTING_TEXT:      "Document uploaded. Extracting text...",
    PipelinePhase.ANALYZING:            "Text extracted. Analyzing content...",
    PipelinePhase.GENERATING_QUESTIONS: "Generating intelligent questions from content...",
}

RECEIVED_MESSAGE = "File uploaded, waiting for processing..."

DEFAULT_QUESTIONS: tuple[str, ...] = (
    "What is the main topic of this document?",
    "Who is the intended audience?",
    "What key points does this document cover?",
)
DEFAULT_ANSWER = "This information couldn't be automatically determined."


def completed_message(count: int) -> str:
    return f"Document processed successfully with {count} questions and answers generated!"


def default_questions_message(count: int, reason: str) -> str:
    return f"Document processed with {count} default questions. AI generation failed: {reason}"


def discard_staged_file(path: str) -> None:
    """Remove a staged upload once storage no longer needs it."""
    try:
        if os.path.exists(path):
            os.remove(path)
    except OSError as exc:
        logger.warning("Could not remove staged file | path=%s error=%s", path, exc)


class StageFailure(Exception):
    """A stage error already rendered as the Upload's failure message."""


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

class DocumentPipeline:
    """
    Sequences Storage → OCR → QA extraction → persistence for one upload.

    Stateless apart from its collaborators, so one instance serves every
    concurrently running upload.
    """

    def __init__(
        self,
        records: RecordStore,
        storage: BaseStorage,
        ocr:     BaseOCRClient,
        qa:      QAExtractionEngine,
    ) -> None:
        self._records = records
        self._storage = storage
        self._ocr     = ocr
        self._qa      = qa

    async def run(self, upload_id: int) -> None:
        try:
            await self._run(upload_id)
        except StageFailure as exc:
            logger.error("Pipeline failed | upload=%s reason=%s", upload_id, exc)
            await self._mark_failed(upload_id, str(exc))
        except Exception as exc:
            logger.exception("Pipeline crashed | upload=%s", upload_id)
            await self._mark_failed(upload_id, f"Failed to process document: {exc}")

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _run(self, upload_id: int) -> None:
        upload = await self._records.get_upload(upload_id)
        logger.info("Pipeline start | upload=%s file=%s", upload_id, upload.filename)

        await self._advance(upload_id, PipelinePhase.STORING, status=UploadStatus.PROCESSING)
        try:
            async with _stage("Failed to upload document"):
                file_url = await self._storage.upload(upload.file_path, upload.filename)
        finally:
            discard_staged_file(upload.file_path)

        await self._advance(upload_id, PipelinePhase.EXTRACTING_TEXT)
        async with _stage("Failed to extract text"):
            text = await self._ocr.extract(file_url)

        await self._advance(upload_id, PipelinePhase.ANALYZING)
        async with _stage("Failed to create document record"):
            document = await self._records.create_document(
                file_name=upload.filename,
                file_url=file_url,
                extracted_text=text,
            )

        await self._advance(
            upload_id, PipelinePhase.GENERATING_QUESTIONS, document_id=document.id,
        )
        fallback_reason: str | None = None
        async with _stage("Failed to generate questions"):
            try:
                pairs = await self._qa.extract_questions_and_answers(text)
            except QAExtractionError as exc:
                logger.warning(
                    "QA extraction failed, storing default questions | upload=%s error=%s",
                    upload_id, exc,
                )
                fallback_reason = str(exc)
                pairs = [QAPair(question=q, answer=DEFAULT_ANSWER) for q in DEFAULT_QUESTIONS]

        rows = self._persistable(upload_id, pairs)
        async with _stage("Failed to save questions"):
            questions = await self._records.create_questions(document.id, rows)

        message = (
            completed_message(len(questions)) if fallback_reason is None
            else default_questions_message(len(questions), fallback_reason)
        )
        await self._records.update_upload(
            upload_id,
            status=UploadStatus.COMPLETED,
            progress=PHASE_PROGRESS[PipelinePhase.COMPLETED],
            message=message,
        )
        logger.info(
            "Pipeline | upload=%s phase=%s progress=%d document=%s questions=%d",
            upload_id, PipelinePhase.COMPLETED.value, 100, document.id, len(questions),
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _advance(
        self,
        upload_id: int,
        phase: PipelinePhase,
        *,
        status: UploadStatus | None = None,
        document_id: int | None = None,
    ) -> None:
        progress = PHASE_PROGRESS[phase]
        await self._records.update_upload(
            upload_id,
            status=status,
            progress=progress,
            message=PHASE_MESSAGES[phase],
            document_id=document_id,
        )
        logger.info("Pipeline | upload=%s phase=%s progress=%d", upload_id, phase.value, progress)

    @staticmethod
    def _persistable(upload_id: int, pairs: list[QAPair]) -> list[tuple[str, str | None]]:
        rows = [(p.question.strip(), p.answer) for p in pairs if p.question and p.question.strip()]
        dropped = len(pairs) - len(rows)
        if dropped:
            logger.warning("Dropped blank questions | upload=%s count=%d", upload_id, dropped)
        return rows

    async def _mark_failed(self, upload_id: int, message: str) -> None:
        try:
            await self._records.update_upload(
                upload_id, status=UploadStatus.FAILED, progress=0, message=message,
            )
        except PersistenceError:
            logger.exception("Could not record pipeline failure | upload=%s", upload_id)


@asynccontextmanager
async def _stage(description: str) -> AsyncIterator[None]:
    """Render service errors raised inside a stage as '<description>: <detail>'."""
    try:
        yield
    except QuestionSeekerError as exc:
        raise StageFailure(f"{description}: {exc}") from exc


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------

def build_pipeline(settings: Settings, records: RecordStore | None = None) -> DocumentPipeline:
    """Choose every provider once from settings and inject them."""
    from question_seeker.db.session import get_session_factory
    from question_seeker.llm.client import OpenAIQAClient
    from question_seeker.processing.ocr import TextractOCRClient
    from question_seeker.storage.factory import get_storage

    ocr = TextractOCRClient(
        region=settings.textract_region,
        access_key_id=settings.aws_access_key_id,
        secret_access_key=settings.aws_secret_access_key,
        poll_interval=settings.ocr_poll_interval_seconds,
        max_attempts=settings.ocr_max_attempts,
        connect_timeout=settings.aws_connect_timeout_seconds,
        read_timeout=settings.aws_read_timeout_seconds,
    )
    return DocumentPipeline(
        records=records or RecordStore(get_session_factory()),
        storage=get_storage(settings),
        ocr=ocr,
        qa=QAExtractionEngine(OpenAIQAClient.from_settings(settings)),
    )
