"""
Integration Tests — Upload, Status, Document & Question API
═══════════════════════════════════════════════════════════
These tests exercise the FULL FastAPI routing stack, including:
  - Multipart form parsing and file staging
  - Dependency injection chain (record store, dispatcher, settings overridden)
  - Response status codes, headers and camelCase body schemas
  - Background pipeline run observed through the status endpoint
  - Staged files removed after processing or a rejected upload
  - Dispatch failure recorded on the upload

What is mocked vs real
──────────────────────
  ✅ Real: FastAPI routing, request parsing, Pydantic schemas, RecordStore
           on in-memory SQLite, DocumentPipeline, QA engine, InProcessDispatcher
  🔲 Mock: S3 storage   (FakeStorage)
  🔲 Mock: Textract     (FakeOCR)
  🔲 Mock: OpenAI       (FakeQAClient)

How to run
──────────
  pytest -m integration backend/tests/integration/test_upload_api.py -v
"""

from __future__ import annotations

import os
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from question_seeker.api.dependencies import get_pipeline_dispatcher, get_records
from question_seeker.core.config import Settings, get_settings
from question_seeker.core.exceptions import PersistenceError
from question_seeker.main import create_app
from question_seeker.services.pipeline import RECEIVED_MESSAGE
from question_seeker.workers.dispatch import InProcessDispatcher, PipelineDispatcher


# ─────────────────────────────────────────────────────────────────────────────
# Helpers / fixtures
# ─────────────────────────────────────────────────────────────────────────────

class _HeldDispatcher(PipelineDispatcher):
    """Records dispatched ids without running anything."""

    def __init__(self) -> None:
        self.dispatched: list[int] = []

    async def dispatch(self, upload_id: int) -> None:
        self.dispatched.append(upload_id)


class _BrokenDispatcher(PipelineDispatcher):
    """Fails every dispatch, like a publisher whose broker is down."""

    async def dispatch(self, upload_id: int) -> None:
        raise ConnectionError("broker unreachable")


def _files(content: bytes = b"What is this? It is a test.\n", name: str = "test.txt"):
    return {"upload": (name, content, "text/plain")}


@pytest.fixture
def staging_dir(tmp_path) -> str:
    return str(tmp_path / "staging")


@pytest.fixture
def dispatcher(pipeline) -> InProcessDispatcher:
    return InProcessDispatcher(pipeline)


@pytest.fixture
def app(record_store, dispatcher, staging_dir):
    application = create_app()
    application.dependency_overrides[get_records] = lambda: record_store
    application.dependency_overrides[get_pipeline_dispatcher] = lambda: dispatcher
    application.dependency_overrides[get_settings] = lambda: Settings(
        upload_staging_dir=staging_dir,
    )
    return application


@pytest_asyncio.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


async def _upload_and_wait(client, dispatcher) -> dict:
    response = await client.post("/api/upload", files=_files())
    assert response.status_code == 201
    await dispatcher.drain(timeout=5)
    return response.json()["data"]


# ─────────────────────────────────────────────────────────────────────────────
# POST /api/upload
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.integration
class TestUploadEndpoint:

    async def test_upload_returns_201_receipt(self, client, dispatcher, staging_dir):
        response = await client.post("/api/upload", files=_files())
        await dispatcher.drain(timeout=5)

        assert response.status_code == 201
        data = response.json()["data"]
        assert response.headers["location"] == f"/api/upload/{data['id']}"
        assert data["filename"] == "test.txt"
        assert data["contentType"] == "text/plain"
        assert data["filePath"].startswith(staging_dir)
        assert data["createdAt"] is not None
        assert "X-Request-ID" in response.headers

    async def test_file_is_staged(self, app, client):
        app.dependency_overrides[get_pipeline_dispatcher] = lambda: _HeldDispatcher()

        response = await client.post("/api/upload", files=_files(b"hello", "../../etc/notes.txt"))

        path = response.json()["data"]["filePath"]
        assert os.path.basename(path).endswith("_notes.txt")
        with open(path, "rb") as fh:
            assert fh.read() == b"hello"

    async def test_staged_file_removed_after_processing(self, client, dispatcher, staging_dir):
        data = await _upload_and_wait(client, dispatcher)

        assert not os.path.exists(data["filePath"])
        assert os.listdir(staging_dir) == []

    async def test_staged_file_removed_when_record_rejected(
        self, client, record_store, staging_dir,
    ):
        record_store.create_upload = AsyncMock(
            side_effect=PersistenceError("Invalid upload", {"filename": ["can't be blank"]}),
        )

        response = await client.post("/api/upload", files=_files())

        assert response.status_code == 422
        assert os.listdir(staging_dir) == []

    async def test_dispatch_failure_marks_upload_failed(self, app, client, staging_dir):
        app.dependency_overrides[get_pipeline_dispatcher] = lambda: _BrokenDispatcher()

        response = await client.post("/api/upload", files=_files())

        assert response.status_code == 201
        upload_id = response.json()["data"]["id"]
        status = (await client.get(f"/api/documents/{upload_id}/status")).json()
        assert status["status"] == "failed"
        assert status["progress"] == 0
        assert status["message"] == "Failed to process document: broker unreachable"
        assert os.listdir(staging_dir) == []

    async def test_missing_file_is_422(self, client):
        response = await client.post("/api/upload", data={"other": "x"})

        assert response.status_code == 422
        assert response.json()["error_code"] == "VALIDATION_ERROR"

    async def test_status_before_processing(self, app, client):
        held = _HeldDispatcher()
        app.dependency_overrides[get_pipeline_dispatcher] = lambda: held

        response = await client.post("/api/upload", files=_files())
        upload_id = response.json()["data"]["id"]
        status = (await client.get(f"/api/documents/{upload_id}/status")).json()

        assert held.dispatched == [upload_id]
        assert status["status"] == "pending"
        assert status["progress"] == 0
        assert status["message"] == RECEIVED_MESSAGE


# ─────────────────────────────────────────────────────────────────────────────
# Status polling
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.integration
class TestStatusEndpoint:

    async def test_completed_status(self, client, dispatcher):
        data = await _upload_and_wait(client, dispatcher)

        response = await client.get(f"/api/documents/{data['id']}/status")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "completed"
        assert body["progress"] == 100
        assert body["message"] == (
            "Document processed successfully with 1 questions and answers generated!"
        )
        assert body["filename"] == "test.txt"

    async def test_failed_status(self, client, dispatcher, fake_storage):
        from question_seeker.core.exceptions import StorageError

        fake_storage.error = StorageError("S3 upload failed: NoSuchBucket")
        data = await _upload_and_wait(client, dispatcher)

        body = (await client.get(f"/api/documents/{data['id']}/status")).json()

        assert body["status"] == "failed"
        assert body["progress"] == 0
        assert body["message"] == "Failed to upload document: S3 upload failed: NoSuchBucket"

    async def test_unknown_upload_is_404(self, client):
        response = await client.get("/api/documents/999/status")

        assert response.status_code == 404
        assert response.json()["error_code"] == "NOT_FOUND"


# ─────────────────────────────────────────────────────────────────────────────
# Uploads, documents & questions
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.integration
class TestRecordEndpoints:

    async def test_upload_links_document(self, client, dispatcher):
        data = await _upload_and_wait(client, dispatcher)

        upload = (await client.get(f"/api/upload/{data['id']}")).json()["data"]
        listed = (await client.get("/api/upload")).json()["data"]

        assert upload["documentId"] is not None
        assert upload["createdAt"] is not None
        assert [u["id"] for u in listed] == [data["id"]]

    async def test_document_with_questions(self, client, dispatcher, fake_storage):
        data = await _upload_and_wait(client, dispatcher)
        document_id = (await client.get(f"/api/upload/{data['id']}")).json()["data"]["documentId"]

        document = (await client.get(f"/api/documents/{document_id}")).json()["data"]

        assert document["name"] == "test.txt"
        assert document["fileUrl"] == fake_storage.url
        assert document["extractedText"] == "What is this? It is a test."
        assert document["createdAt"] is not None
        assert [(q["text"], q["answer"]) for q in document["questions"]] == [
            ("What is this?", "It is a test."),
        ]
        assert document["questions"][0]["documentId"] == document_id

    async def test_question_routes(self, client, dispatcher):
        data = await _upload_and_wait(client, dispatcher)
        document_id = (await client.get(f"/api/upload/{data['id']}")).json()["data"]["documentId"]

        for_document = (await client.get(f"/api/documents/{document_id}/questions")).json()["data"]
        all_questions = (await client.get("/api/questions")).json()["data"]
        one = (await client.get(f"/api/questions/{for_document[0]['id']}")).json()["data"]

        assert for_document == all_questions
        assert one["text"] == "What is this?"

    async def test_documents_list(self, client, dispatcher):
        await _upload_and_wait(client, dispatcher)

        documents = (await client.get("/api/documents")).json()["data"]

        assert len(documents) == 1
        assert "questions" not in documents[0]

    @pytest.mark.parametrize("path", [
        "/api/upload/404",
        "/api/documents/404",
        "/api/documents/404/questions",
        "/api/questions/404",
    ])
    async def test_missing_records_are_404(self, client, path):
        response = await client.get(path)

        assert response.status_code == 404
        assert response.json()["error_code"] == "NOT_FOUND"


@pytest.mark.integration
class TestOperations:

    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"
