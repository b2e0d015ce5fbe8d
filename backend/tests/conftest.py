"""
Root conftest.py — Shared fixtures for ALL tests (unit + integration)

Fixture hierarchy:
  function-scoped : db_engine → record_store → pipeline
                    fake_qa_client, combined_client, fake_storage, fake_ocr,
                    aws_client_mock, staged_file

Environment strategy:
  - The record store runs on an in-memory SQLite database (aiosqlite).
  - S3 / Textract clients are AsyncMock context managers; no AWS calls.
  - The AI client is a scripted BaseQAClient; no OpenAI calls.

How to run:
  pytest                          # all tests
  pytest -m unit                  # unit tests only
  pytest -m integration           # HTTP-level tests
  pytest backend/tests/unit/test_answer_locator.py
"""

from __future__ import annotations

import os
from typing import Any, AsyncGenerator, Callable

import pytest
import pytest_asyncio

# ─────────────────────────────────────────────────────────────────────────────
# Patch settings BEFORE any app imports so modules read test config
# ─────────────────────────────────────────────────────────────────────────────

os.environ.setdefault("DATABASE_URL",          "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("AWS_REGION",            "us-east-1")
os.environ.setdefault("AWS_ACCESS_KEY_ID",     "test")
os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "test")
os.environ.setdefault("S3_BUCKET",             "test-bucket")
os.environ.setdefault("STORAGE_BACKEND",       "mock")
os.environ.setdefault("OPENAI_API_KEY",        "sk-test-key")
os.environ.setdefault("CELERY_BROKER_URL",     "memory://")
os.environ.setdefault("CELERY_RESULT_BACKEND", "cache+memory://")
os.environ.setdefault("APP_ENV",               "development")

from question_seeker.core.exceptions import ProviderError  # noqa: E402
from question_seeker.llm.client import BaseQAClient, QAPair  # noqa: E402
from question_seeker.processing.ocr import BaseOCRClient  # noqa: E402
from question_seeker.storage.base import BaseStorage  # noqa: E402


# ─────────────────────────────────────────────────────────────────────────────
# Database
# ─────────────────────────────────────────────────────────────────────────────

@pytest_asyncio.fixture
async def db_engine():
    """Fresh in-memory SQLite schema per test."""
    from question_seeker.db.session import build_engine, init_models

    engine = build_engine("sqlite+aiosqlite:///:memory:")
    await init_models(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def record_store(db_engine):
    from question_seeker.db.session import build_session_factory
    from question_seeker.services.records import RecordStore

    return RecordStore(build_session_factory(db_engine))


# ─────────────────────────────────────────────────────────────────────────────
# Scripted AI client
# ─────────────────────────────────────────────────────────────────────────────

class FakeQAClient(BaseQAClient):
    """
    BaseQAClient whose operations return scripted values.

    Each keyword is an operation name mapped to a return value, an exception
    instance (raised), or a callable taking the call's arguments. Unscripted
    operations raise ProviderError. Every call is recorded in `calls`.
    """

    def __init__(self, **responses: Any) -> None:
        self.responses = responses
        self.calls: list[tuple[str, tuple]] = []

    def count(self, operation: str) -> int:
        return sum(1 for op, _ in self.calls if op == operation)

    async def _respond(self, operation: str, *args: Any) -> Any:
        self.calls.append((operation, args))
        value = self.responses.get(operation, ProviderError(f"{operation} not scripted"))
        if callable(value) and not isinstance(value, BaseException):
            value = value(*args)
        if isinstance(value, BaseException):
            raise value
        return value

    async def extract_questions_and_answers_together(self, document_text):
        return await self._respond("combined", document_text)

    async def extract_questions_only(self, document_text):
        return await self._respond("questions", document_text)

    async def generate_questions_and_answers(self, document_text):
        return await self._respond("generate", document_text)

    async def generate_answers_for_questions(self, questions, document_text):
        return await self._respond("answers", questions, document_text)

    async def generate_single_answer(self, question, document_text):
        return await self._respond("single_answer", question, document_text)


@pytest.fixture
def fake_qa_client() -> Callable[..., FakeQAClient]:
    """Factory: fake_qa_client(combined=[QAPair(...)], answers=ProviderError(...))."""
    return FakeQAClient


# ─────────────────────────────────────────────────────────────────────────────
# Fake storage / OCR providers
# ─────────────────────────────────────────────────────────────────────────────

class FakeStorage(BaseStorage):
    def __init__(self, url: str = "https://test-bucket.s3.amazonaws.com/uploads/test.txt",
                 error: Exception | None = None) -> None:
        self.url = url
        self.error = error
        self.calls: list[tuple[str, str]] = []

    async def upload(self, local_path: str, file_name: str) -> str:
        self.calls.append((local_path, file_name))
        if self.error is not None:
            raise self.error
        return self.url


class FakeOCR(BaseOCRClient):
    def __init__(self, text: str = "What is this? It is a test.",
                 error: Exception | None = None) -> None:
        self.text = text
        self.error = error
        self.calls: list[str] = []

    async def extract(self, document_url: str) -> str:
        self.calls.append(document_url)
        if self.error is not None:
            raise self.error
        return self.text


@pytest.fixture
def fake_storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def fake_ocr() -> FakeOCR:
    return FakeOCR()


@pytest.fixture
def combined_client(fake_qa_client) -> FakeQAClient:
    """AI client whose combined call answers the default OCR text."""
    return fake_qa_client(
        combined=[QAPair(question="What is this?", answer="It is a test.")],
    )


@pytest.fixture
def pipeline(record_store, fake_storage, fake_ocr, combined_client):
    from question_seeker.qa.engine import QAExtractionEngine
    from question_seeker.services.pipeline import DocumentPipeline

    return DocumentPipeline(
        records=record_store,
        storage=fake_storage,
        ocr=fake_ocr,
        qa=QAExtractionEngine(combined_client),
    )


# ─────────────────────────────────────────────────────────────────────────────
# Mock aioboto3 client
# ─────────────────────────────────────────────────────────────────────────────

def _build_aws_client_mock(**operations: Any):
    from unittest.mock import AsyncMock

    client = AsyncMock()
    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__  = AsyncMock(return_value=None)
    for name, value in operations.items():
        if isinstance(value, (list, BaseException)):
            setattr(client, name, AsyncMock(side_effect=value))
        else:
            setattr(client, name, AsyncMock(return_value=value))
    return client


@pytest.fixture
def aws_client_mock():
    """
    Factory for an AsyncMock usable as `async with session.client(...) as client`.
    Keyword arguments become AsyncMock operations (return value, or side_effect
    when given a list or an exception).
    """
    return _build_aws_client_mock


@pytest_asyncio.fixture
async def staged_file(tmp_path) -> AsyncGenerator[str, None]:
    path = tmp_path / "report.pdf"
    path.write_bytes(b"%PDF-1.4 test")
    yield str(path)
