"""
S3 Storage Service

Object layout:
    s3://<BUCKET>/uploads/<uuid4 hex><original extension>

The key is constructed server-side; only the extension of the client's
file name is carried over.

Region handling:
  The configured region may be wrong for the bucket. S3 then answers
  PutObject with a redirect (301 / PermanentRedirect /
  AuthorizationHeaderMalformed). The service looks up the bucket's true
  region with HeadBucket through a us-east-1 client, reading the
  x-amz-bucket-region header from either the success or the error
  response, remembers it and repeats the upload exactly once.

Timeouts:
  Every client carries an explicit botocore Config with connect/read
  timeouts so a hung endpoint can never stall a pipeline task.
"""

from __future__ import annotations

import asyncio
import logging
import mimetypes
import os
import uuid

import aioboto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from question_seeker.core.exceptions import ConfigurationError, StorageError
from question_seeker.storage.base import BaseStorage

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

KEY_PREFIX = "uploads"
DISCOVERY_REGION = "us-east-1"
DEFAULT_CONTENT_TYPE = "application/octet-stream"

_REDIRECT_CODES = frozenset({"301", "PermanentRedirect", "AuthorizationHeaderMalformed"})


def object_url(bucket: str, region: str, key: str) -> str:
    """Virtual-hosted style URL; us-east-1 uses the legacy global endpoint."""
    if region == "us-east-1":
        return f"https://{bucket}.s3.amazonaws.com/{key}"
    return f"https://{bucket}.s3.{region}.amazonaws.com/{key}"


def _is_redirect(exc: ClientError) -> bool:
    error = exc.response.get("Error", {})
    status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
    return error.get("Code") in _REDIRECT_CODES or status == 301


def _region_hint(response: dict) -> str | None:
    """Pull a region out of an S3 response or error body, if it carries one."""
    headers = response.get("ResponseMetadata", {}).get("HTTPHeaders", {})
    return headers.get("x-amz-bucket-region") or response.get("Error", {}).get("Region")


# ---------------------------------------------------------------------------
# S3 Service
# ---------------------------------------------------------------------------

class S3StorageService(BaseStorage):
    """
    Async S3 uploads through aioboto3.

    One instance is shared by every pipeline task; the only mutable state is
    the corrected region, which is written once after a redirect.
    """

    def __init__(
        self,
        bucket: str,
        region: str,
        access_key_id: str = "",
        secret_access_key: str = "",
        *,
        connect_timeout: float = 5.0,
        read_timeout: float = 30.0,
        session: aioboto3.Session | None = None,
    ) -> None:
        self._bucket = bucket
        self._region = region
        self._access_key_id = access_key_id
        self._secret_access_key = secret_access_key
        self._session = session or aioboto3.Session()
        self._config = Config(
            connect_timeout=connect_timeout,
            read_timeout=read_timeout,
            retries={"max_attempts": 2, "mode": "standard"},
        )

    @property
    def region(self) -> str:
        return self._region

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _client(self, region: str):
        """Return a scoped async S3 client context manager."""
        return self._session.client(
            "s3",
            region_name=region,
            aws_access_key_id=self._access_key_id,
            aws_secret_access_key=self._secret_access_key,
            config=self._config,
        )

    def _ensure_configured(self) -> None:
        missing = [
            name for name, value in (
                ("s3_bucket", self._bucket),
                ("aws_access_key_id", self._access_key_id),
                ("aws_secret_access_key", self._secret_access_key),
            )
            if not value
        ]
        if missing:
            raise ConfigurationError(f"S3 storage is not configured: missing {', '.join(missing)}")

    async def _put(self, region: str, key: str, body: bytes, content_type: str) -> None:
        async with self._client(region) as s3:
            await s3.put_object(
                Bucket=self._bucket,
                Key=key,
                Body=body,
                ContentType=content_type,
            )

    async def _discover_region(self, hint: str | None) -> str | None:
        """HeadBucket through the global endpoint; fall back to the redirect's hint."""
        try:
            async with self._client(DISCOVERY_REGION) as s3:
                try:
                    response = await s3.head_bucket(Bucket=self._bucket)
                except ClientError as exc:
                    response = exc.response
        except BotoCoreError as exc:
            logger.warning("S3 region lookup failed | bucket=%s error=%s", self._bucket, exc)
            return hint
        return _region_hint(response) or hint

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def upload(self, local_path: str, file_name: str) -> str:
        self._ensure_configured()

        loop = asyncio.get_event_loop()
        try:
            with open(local_path, "rb") as fh:
                body: bytes = await loop.run_in_executor(None, fh.read)
        except OSError as exc:
            raise StorageError(f"Cannot read staged file {local_path}: {exc}") from exc

        ext = os.path.splitext(file_name)[1]
        key = f"{KEY_PREFIX}/{uuid.uuid4().hex}{ext}"
        content_type = mimetypes.guess_type(file_name)[0] or DEFAULT_CONTENT_TYPE

        try:
            await self._put(self._region, key, body, content_type)
        except ClientError as exc:
            if not _is_redirect(exc):
                logger.error("S3 upload failed | key=%s error=%s", key, exc)
                raise StorageError(f"S3 upload failed: {exc}") from exc

            region = await self._discover_region(_region_hint(exc.response))
            if not region or region == self._region:
                raise StorageError(
                    f"S3 redirected the upload but no usable region was found: {exc}"
                ) from exc

            logger.warning(
                "S3 region corrected | bucket=%s from=%s to=%s",
                self._bucket, self._region, region,
            )
            self._region = region
            try:
                await self._put(region, key, body, content_type)
            except (ClientError, BotoCoreError) as retry_exc:
                logger.error("S3 upload retry failed | key=%s error=%s", key, retry_exc)
                raise StorageError(f"S3 upload failed after region retry: {retry_exc}") from retry_exc
        except BotoCoreError as exc:
            logger.error("S3 upload failed | key=%s error=%s", key, exc)
            raise StorageError(f"S3 upload failed: {exc}") from exc

        logger.info(
            "S3 upload ok | bucket=%s key=%s size=%d region=%s",
            self._bucket, key, len(body), self._region,
        )
        return object_url(self._bucket, self._region, key)


# ---------------------------------------------------------------------------
# Mock backend
# ---------------------------------------------------------------------------

class MockStorageService(BaseStorage):
    """Network-free backend for local development and tests."""

    async def upload(self, local_path: str, file_name: str) -> str:
        url = f"https://test-bucket.s3.amazonaws.com/{KEY_PREFIX}/{file_name}"
        logger.info("Mock S3 upload | file=%s url=%s", file_name, url)
        return url
