"""
Record Store — Upload / Document / Question persistence

Every public method opens its own short transaction, so pipeline status
writes are independent read-modify-write units (last writer wins) and the
status query always observes the most recent committed write.

Validation mirrors a changeset: required fields are checked before the
INSERT and reported field → messages through PersistenceError.errors.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Iterable

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from question_seeker.core.exceptions import (
    InvalidTransitionError,
    PersistenceError,
    RecordNotFoundError,
)
from question_seeker.models.documents import Document, Question, Upload
from question_seeker.schemas.documents import ALLOWED_TRANSITIONS, UploadStatus

logger = logging.getLogger(__name__)

_BLANK = "can't be blank"


def _validate_required(**fields: object) -> dict[str, list[str]]:
    """Return {field: [message]} for every missing or whitespace-only value."""
    errors: dict[str, list[str]] = {}
    for name, value in fields.items():
        if value is None or (isinstance(value, str) and not value.strip()):
            errors.setdefault(name, []).append(_BLANK)
    return errors


class RecordStore:
    """
    Thin async repository over the three tables.

    Injected with a session factory (see db.session) so tests can bind it to
    an in-memory SQLite engine.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @asynccontextmanager
    async def _transaction(self, action: str) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    yield session
        except SQLAlchemyError as exc:
            logger.error("Persistence failed | action=%s error=%s", action, exc)
            raise PersistenceError(f"Could not {action}: {exc}") from exc

    # ------------------------------------------------------------------
    # Uploads
    # ------------------------------------------------------------------

    async def create_upload(
        self,
        *,
        filename: str,
        content_type: str,
        file_path: str,
        message: str | None = None,
    ) -> Upload:
        errors = _validate_required(
            filename=filename, content_type=content_type, file_path=file_path,
        )
        if errors:
            raise PersistenceError("Invalid upload", errors)

        upload = Upload(
            filename=filename,
            content_type=content_type,
            file_path=file_path,
            status=UploadStatus.PENDING.value,
            progress=0,
            message=message,
        )
        async with self._transaction("create upload") as session:
            session.add(upload)
            await session.flush()

        logger.info("Upload created | upload=%s file=%s", upload.id, filename)
        return upload

    async def get_upload(self, upload_id: int) -> Upload:
        async with self._transaction("load upload") as session:
            upload = await session.get(Upload, upload_id)
        if upload is None:
            raise RecordNotFoundError(f"Upload {upload_id} not found")
        return upload

    async def list_uploads(self) -> list[Upload]:
        async with self._transaction("list uploads") as session:
            result = await session.execute(select(Upload).order_by(Upload.id))
            return list(result.scalars().all())

    async def update_upload(
        self,
        upload_id: int,
        *,
        status: UploadStatus | str | None = None,
        progress: int | None = None,
        message: str | None = None,
        document_id: int | None = None,
    ) -> Upload:
        """
        Apply a partial status update.

        Arguments left as None keep their stored value. Status changes must
        follow ALLOWED_TRANSITIONS; an upload in a terminal state rejects
        every further update.
        """
        if progress is not None and not 0 <= progress <= 100:
            raise PersistenceError(
                "Invalid upload", {"progress": ["must be between 0 and 100"]},
            )

        async with self._transaction("update upload") as session:
            upload = await session.get(Upload, upload_id, with_for_update=True)
            if upload is None:
                raise RecordNotFoundError(f"Upload {upload_id} not found")

            current = UploadStatus(upload.status)
            if not ALLOWED_TRANSITIONS[current]:
                raise InvalidTransitionError(
                    f"Upload {upload_id} is already {current.value}",
                    {"status": [f"cannot change a {current.value} upload"]},
                )

            if status is not None:
                target = UploadStatus(status)
                if target != current and target not in ALLOWED_TRANSITIONS[current]:
                    raise InvalidTransitionError(
                        f"Upload {upload_id} cannot move from {current.value} to {target.value}",
                        {"status": [f"invalid transition {current.value} -> {target.value}"]},
                    )
                upload.status = target.value

            if progress is not None:
                upload.progress = progress
            if message is not None:
                upload.message = message
            if document_id is not None:
                upload.document_id = document_id

        logger.debug(
            "Upload updated | upload=%s status=%s progress=%d",
            upload_id, upload.status, upload.progress,
        )
        return upload

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    async def create_document(
        self,
        *,
        file_name: str,
        file_url: str,
        extracted_text: str | None,
        status: str = "completed",
    ) -> Document:
        errors = _validate_required(file_name=file_name, file_url=file_url, status=status)
        if errors:
            raise PersistenceError("Invalid document", errors)

        document = Document(
            file_name=file_name,
            file_url=file_url,
            extracted_text=extracted_text,
            status=status,
        )
        async with self._transaction("create document") as session:
            session.add(document)
            await session.flush()

        logger.info("Document created | document=%s file=%s", document.id, file_name)
        return document

    async def get_document(self, document_id: int) -> Document:
        """Load a document with its questions eager-loaded."""
        async with self._transaction("load document") as session:
            result = await session.execute(
                select(Document)
                .where(Document.id == document_id)
                .options(selectinload(Document.questions))
            )
            document = result.scalars().first()
        if document is None:
            raise RecordNotFoundError(f"Document {document_id} not found")
        return document

    async def list_documents(self) -> list[Document]:
        async with self._transaction("list documents") as session:
            result = await session.execute(select(Document).order_by(Document.id))
            return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Questions
    # ------------------------------------------------------------------

    async def create_questions(
        self,
        document_id: int,
        pairs: Iterable[tuple[str, str | None]],
    ) -> list[Question]:
        """Insert all (text, answer) pairs for a document in one transaction."""
        pairs = list(pairs)
        for index, (text, _) in enumerate(pairs):
            errors = _validate_required(text=text)
            if errors:
                raise PersistenceError(f"Invalid question at position {index}", errors)

        async with self._transaction("create questions") as session:
            if await session.get(Document, document_id) is None:
                raise PersistenceError(
                    "Invalid question", {"document_id": ["does not exist"]},
                )
            questions = [
                Question(text=text, answer=answer, document_id=document_id)
                for text, answer in pairs
            ]
            session.add_all(questions)
            await session.flush()

        logger.info("Questions created | document=%s count=%d", document_id, len(questions))
        return questions

    async def get_question(self, question_id: int) -> Question:
        async with self._transaction("load question") as session:
            question = await session.get(Question, question_id)
        if question is None:
            raise RecordNotFoundError(f"Question {question_id} not found")
        return question

    async def list_questions(self) -> list[Question]:
        async with self._transaction("list questions") as session:
            result = await session.execute(select(Question).order_by(Question.id))
            return list(result.scalars().all())

    async def list_questions_for_document(self, document_id: int) -> list[Question]:
        async with self._transaction("list questions") as session:
            result = await session.execute(
                select(Question)
                .where(Question.document_id == document_id)
                .order_by(Question.id)
            )
            return list(result.scalars().all())
