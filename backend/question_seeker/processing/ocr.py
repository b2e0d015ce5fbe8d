"""
OCR Client — Text Detection via AWS Textract
════════════════════════════════════════════

The stored document is referenced by its S3 URL; Textract reads it
directly from the bucket, so no bytes pass through the worker.

Flow (TextractOCRClient.extract()):
  1. Parse the URL  →  bucket = host part before ".s3", key = path
  2. StartDocumentTextDetection  →  JobId
  3. Poll GetDocumentTextDetection:
       sleep poll_interval before every poll, at most max_attempts polls
       IN_PROGRESS → keep polling
       SUCCEEDED   → follow NextToken pages, keep LINE blocks in order
       PARTIAL_SUCCESS → same as SUCCEEDED; the job's Warnings are logged
       FAILED      → JobFailedError(StatusMessage)
     Budget exhausted → PollingTimeoutError
  4. Join LINE texts with "\n"

Transient poll errors (5xx, throttling, timeouts) consume one attempt and
are logged; any other provider error is terminal (OCRError).

The loop awaits asyncio.sleep, so a waiting job never blocks the event
loop for other uploads.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Awaitable, Callable
from urllib.parse import urlparse

import aioboto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError, ReadTimeoutError
from botocore.exceptions import ConnectionError as BotoConnectionError

from question_seeker.core.exceptions import JobFailedError, OCRError, PollingTimeoutError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

_TRANSIENT_ERROR_CODES = frozenset({
    "ThrottlingException",
    "ProvisionedThroughputExceededException",
    "InternalServerError",
    "ServiceUnavailable",
    "LimitExceededException",
})

Sleep = Callable[[float], Awaitable[None]]


def parse_s3_url(document_url: str) -> tuple[str, str]:
    """
    Split a virtual-hosted S3 URL into (bucket, key).

    >>> parse_s3_url("https://docs.s3.eu-west-2.amazonaws.com/uploads/a.pdf")
    ('docs', 'uploads/a.pdf')
    """
    parsed = urlparse(document_url)
    host = parsed.hostname or ""
    bucket, sep, _ = host.partition(".s3")
    key = parsed.path.lstrip("/")
    if not sep or not bucket or not key:
        raise OCRError(f"Not an S3 object URL: {document_url!r}")
    return bucket, key


def _is_transient(exc: Exception) -> bool:
    if isinstance(exc, (ReadTimeoutError, BotoConnectionError)):
        return True
    if isinstance(exc, ClientError):
        code = exc.response.get("Error", {}).get("Code", "")
        status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode", 0)
        return code in _TRANSIENT_ERROR_CODES or status >= 500
    return False


# ---------------------------------------------------------------------------
# Abstract client
# ---------------------------------------------------------------------------

class BaseOCRClient(ABC):
    """Optical text extraction for a stored document."""

    @abstractmethod
    async def extract(self, document_url: str) -> str:
        """
        Return the document's text, lines joined with "\\n" (may be empty).

        Raises:
            OCRError (or a subclass) when no text result can be produced.
        """


# ---------------------------------------------------------------------------
# AWS Textract
# ---------------------------------------------------------------------------

class TextractOCRClient(BaseOCRClient):
    """
    Asynchronous Textract job API (StartDocumentTextDetection).

    IAM permissions required on the task role:
      textract:StartDocumentTextDetection
      textract:GetDocumentTextDetection
      s3:GetObject on the uploads prefix
    """

    def __init__(
        self,
        region: str = "eu-west-2",
        access_key_id: str = "",
        secret_access_key: str = "",
        *,
        poll_interval: float = 2.0,
        max_attempts: int = 30,
        connect_timeout: float = 5.0,
        read_timeout: float = 30.0,
        session: aioboto3.Session | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._region = region
        self._access_key_id = access_key_id or None
        self._secret_access_key = secret_access_key or None
        self._poll_interval = poll_interval
        self._max_attempts = max_attempts
        self._session = session or aioboto3.Session()
        self._sleep = sleep
        self._config = Config(connect_timeout=connect_timeout, read_timeout=read_timeout)

    def _client(self):
        return self._session.client(
            "textract",
            region_name=self._region,
            aws_access_key_id=self._access_key_id,
            aws_secret_access_key=self._secret_access_key,
            config=self._config,
        )

    async def extract(self, document_url: str) -> str:
        bucket, key = parse_s3_url(document_url)
        job_id = await self.start(bucket, key)
        return await self.poll(job_id)

    async def start(self, bucket: str, key: str) -> str:
        """Start an async text detection job and return its JobId."""
        try:
            async with self._client() as textract:
                job = await textract.start_document_text_detection(
                    DocumentLocation={"S3Object": {"Bucket": bucket, "Name": key}}
                )
        except (ClientError, BotoCoreError) as exc:
            logger.error("Textract start failed | s3://%s/%s error=%s", bucket, key, exc)
            raise OCRError(f"Could not start text detection: {exc}") from exc

        job_id = job["JobId"]
        logger.info("Textract job started | job=%s s3://%s/%s", job_id, bucket, key)
        return job_id

    async def poll(self, job_id: str) -> str:
        """Wait for the job to finish and return its LINE text."""
        async with self._client() as textract:
            for attempt in range(1, self._max_attempts + 1):
                await self._sleep(self._poll_interval)
                try:
                    result = await textract.get_document_text_detection(JobId=job_id)
                except (ClientError, BotoCoreError) as exc:
                    if not _is_transient(exc):
                        logger.error("Textract poll failed | job=%s error=%s", job_id, exc)
                        raise OCRError(f"Text detection poll failed: {exc}") from exc
                    logger.warning(
                        "Textract poll transient error | job=%s attempt=%d/%d error=%s",
                        job_id, attempt, self._max_attempts, exc,
                    )
                    continue

                status = result.get("JobStatus")
                logger.debug(
                    "Textract poll | job=%s attempt=%d/%d status=%s",
                    job_id, attempt, self._max_attempts, status,
                )

                if status in ("SUCCEEDED", "PARTIAL_SUCCESS"):
                    if status == "PARTIAL_SUCCESS":
                        logger.warning(
                            "Textract job partially succeeded | job=%s warnings=%s",
                            job_id, result.get("Warnings", []),
                        )
                    blocks = list(result.get("Blocks", []))
                    next_token = result.get("NextToken")
                    while next_token:
                        page = await self._fetch_page(textract, job_id, next_token)
                        blocks.extend(page.get("Blocks", []))
                        next_token = page.get("NextToken")
                    text = self._join_lines(blocks)
                    logger.info(
                        "Textract job done | job=%s attempts=%d chars=%d",
                        job_id, attempt, len(text),
                    )
                    return text

                if status == "FAILED":
                    message = result.get("StatusMessage") or "no status message"
                    raise JobFailedError(f"Text detection job {job_id} failed: {message}")

        raise PollingTimeoutError(
            f"Text detection job {job_id} did not finish after {self._max_attempts} polls"
        )

    async def _fetch_page(self, textract, job_id: str, next_token: str) -> dict:
        try:
            return await textract.get_document_text_detection(JobId=job_id, NextToken=next_token)
        except (ClientError, BotoCoreError) as exc:
            raise OCRError(f"Could not read text detection results: {exc}") from exc

    @staticmethod
    def _join_lines(blocks: list[dict]) -> str:
        return "\n".join(
            block.get("Text", "")
            for block in blocks
            if block.get("BlockType") == "LINE"
        )
