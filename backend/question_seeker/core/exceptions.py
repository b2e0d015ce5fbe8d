"""
Exception taxonomy shared by the providers, the QA engine and the pipeline.

    QuestionSeekerError
    ├── ConfigurationError          missing credentials / bucket — fatal, never retried
    ├── ProviderError
    │   ├── TransientProviderError  5xx, throttling, timeouts — retried at the call site
    │   └── MalformedResponseError  AI content not in the expected shape — next fallback tier
    ├── StorageError                upload failed after the corrective retry
    ├── OCRError
    │   ├── PollingTimeoutError     job still running after ocr_max_attempts polls
    │   └── JobFailedError          provider reported FAILED
    ├── QAExtractionError           whole QA fallback chain exhausted
    └── PersistenceError            record validation / save failure
        ├── RecordNotFoundError
        └── InvalidTransitionError
"""

from __future__ import annotations


class QuestionSeekerError(Exception):
    """Base exception for all service errors."""


class ConfigurationError(QuestionSeekerError):
    """Raised when a provider is missing credentials or required settings."""


class ProviderError(QuestionSeekerError):
    """Raised when an external provider call fails."""


class TransientProviderError(ProviderError):
    """Raised for server-side or timeout failures that may succeed on retry."""


class MalformedResponseError(ProviderError):
    """Raised when an AI response cannot be decoded into the expected structure."""


class StorageError(QuestionSeekerError):
    """Raised when a document cannot be written to blob storage."""


class OCRError(QuestionSeekerError):
    """Raised when text detection cannot produce a result."""


class PollingTimeoutError(OCRError):
    """Raised when a text detection job does not finish within the polling budget."""


class JobFailedError(OCRError):
    """Raised when the provider reports the text detection job as failed."""


class QAExtractionError(QuestionSeekerError):
    """Raised when no tier of the question/answer fallback chain produced a result."""


class PersistenceError(QuestionSeekerError):
    """Raised when a record fails validation or cannot be saved."""

    def __init__(self, message: str, errors: dict[str, list[str]] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or {}

    def __str__(self) -> str:
        base = super().__str__()
        if not self.errors:
            return base
        detail = ", ".join(f"{field}: {'; '.join(msgs)}" for field, msgs in self.errors.items())
        return f"{base} ({detail})"


class RecordNotFoundError(PersistenceError):
    """Raised when a record id does not exist."""


class InvalidTransitionError(PersistenceError):
    """Raised when an upload status change violates the lifecycle."""
