"""
Unit Tests — Record Store
═════════════════════════
Tests for question_seeker/services/records.py (in-memory SQLite)

Coverage:
  ✅ Upload created pending / progress 0; required fields validated
  ✅ Partial updates keep unspecified fields
  ✅ Status transitions follow the state machine; terminal states are final
  ✅ Progress outside 0..100 rejected
  ✅ Unknown ids → RecordNotFoundError
  ✅ Document with questions loaded eagerly, questions in insertion order
  ✅ Blank question text and unknown document rejected
"""

from __future__ import annotations

import pytest

from question_seeker.core.exceptions import (
    InvalidTransitionError,
    PersistenceError,
    RecordNotFoundError,
)
from question_seeker.schemas.documents import UploadStatus


async def _upload(record_store, **overrides):
    fields = {"filename": "a.pdf", "content_type": "application/pdf", "file_path": "/tmp/a.pdf"}
    fields.update(overrides)
    return await record_store.create_upload(**fields)


@pytest.mark.unit
class TestUploads:

    async def test_create_defaults(self, record_store):
        upload = await _upload(record_store, message="File uploaded, waiting for processing...")

        stored = await record_store.get_upload(upload.id)
        assert stored.status == "pending"
        assert stored.progress == 0
        assert stored.message == "File uploaded, waiting for processing..."
        assert stored.document_id is None
        assert stored.inserted_at is not None

    @pytest.mark.parametrize("field", ["filename", "content_type", "file_path"])
    async def test_required_fields(self, record_store, field):
        with pytest.raises(PersistenceError) as exc_info:
            await _upload(record_store, **{field: "  "})
        assert exc_info.value.errors == {field: ["can't be blank"]}

    async def test_partial_update_keeps_other_fields(self, record_store):
        upload = await _upload(record_store, message="waiting")

        await record_store.update_upload(upload.id, status=UploadStatus.PROCESSING, progress=10)
        await record_store.update_upload(upload.id, document_id=7)

        stored = await record_store.get_upload(upload.id)
        assert (stored.status, stored.progress, stored.message, stored.document_id) == (
            "processing", 10, "waiting", 7,
        )

    async def test_progress_bounds(self, record_store):
        upload = await _upload(record_store)

        with pytest.raises(PersistenceError, match="progress"):
            await record_store.update_upload(upload.id, progress=101)
        with pytest.raises(PersistenceError):
            await record_store.update_upload(upload.id, progress=-1)

    async def test_pending_cannot_complete_directly(self, record_store):
        upload = await _upload(record_store)

        with pytest.raises(InvalidTransitionError):
            await record_store.update_upload(upload.id, status=UploadStatus.COMPLETED)

    @pytest.mark.parametrize("terminal", [UploadStatus.COMPLETED, UploadStatus.FAILED])
    async def test_terminal_state_is_final(self, record_store, terminal):
        upload = await _upload(record_store)
        await record_store.update_upload(upload.id, status=UploadStatus.PROCESSING)
        await record_store.update_upload(upload.id, status=terminal)

        with pytest.raises(InvalidTransitionError):
            await record_store.update_upload(upload.id, progress=50)

    async def test_same_status_allowed(self, record_store):
        upload = await _upload(record_store)
        await record_store.update_upload(upload.id, status="processing", progress=10)

        updated = await record_store.update_upload(upload.id, status="processing", progress=30)

        assert updated.progress == 30

    async def test_unknown_upload(self, record_store):
        with pytest.raises(RecordNotFoundError):
            await record_store.get_upload(999)
        with pytest.raises(RecordNotFoundError):
            await record_store.update_upload(999, progress=10)

    async def test_list_in_id_order(self, record_store):
        first = await _upload(record_store, filename="first.pdf")
        second = await _upload(record_store, filename="second.pdf")

        assert [u.id for u in await record_store.list_uploads()] == [first.id, second.id]


@pytest.mark.unit
class TestDocumentsAndQuestions:

    async def test_document_with_questions(self, record_store):
        document = await record_store.create_document(
            file_name="a.pdf", file_url="https://test-bucket.s3.amazonaws.com/uploads/a.pdf",
            extracted_text="What is this? It is a test.",
        )
        await record_store.create_questions(
            document.id, [("What is this?", "It is a test."), ("Who made it?", None)],
        )

        loaded = await record_store.get_document(document.id)

        assert loaded.status == "completed"
        assert [(q.text, q.answer) for q in loaded.questions] == [
            ("What is this?", "It is a test."),
            ("Who made it?", None),
        ]
        assert len(await record_store.list_questions_for_document(document.id)) == 2

    async def test_document_requires_url(self, record_store):
        with pytest.raises(PersistenceError) as exc_info:
            await record_store.create_document(file_name="a.pdf", file_url="", extracted_text="x")
        assert "file_url" in exc_info.value.errors

    async def test_blank_question_rejected(self, record_store):
        document = await record_store.create_document(
            file_name="a.pdf", file_url="https://x.s3.amazonaws.com/uploads/a.pdf", extracted_text="",
        )

        with pytest.raises(PersistenceError, match="position 1"):
            await record_store.create_questions(document.id, [("Q?", "A"), ("", "A")])
        assert await record_store.list_questions_for_document(document.id) == []

    async def test_question_for_unknown_document(self, record_store):
        with pytest.raises(PersistenceError) as exc_info:
            await record_store.create_questions(404, [("Q?", "A")])
        assert exc_info.value.errors == {"document_id": ["does not exist"]}

    async def test_unknown_document_and_question(self, record_store):
        with pytest.raises(RecordNotFoundError):
            await record_store.get_document(1)
        with pytest.raises(RecordNotFoundError):
            await record_store.get_question(1)
