"""
QA result cache — memoization with per-key single-flight.

Keyed by the SHA-256 hex digest of the extracted text. Entries live for the
process lifetime (no eviction) and are immutable tuples, so callers can never
mutate a cached result.

Single-flight: the first caller for a key registers an in-flight future and
runs the computation; concurrent callers for the same key await that future
instead of starting their own AI calls. A failed computation is not cached;
its waiters receive the same exception. When the owning task is cancelled,
a waiter takes over and runs the computation itself.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
from typing import Awaitable, Callable

from question_seeker.llm.client import QAPair

logger = logging.getLogger(__name__)

Compute = Callable[[], Awaitable[list[QAPair]]]


def content_key(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


class _OwnerCancelled(Exception):
    """Set on an in-flight future whose owning task was cancelled."""


def _consume_exception(future: asyncio.Future) -> None:
    # Marks the exception as retrieved when no caller was waiting on it
    if not future.cancelled():
        future.exception()


class QAResultCache:
    """Process-wide map content-hash → finalized QA pairs."""

    def __init__(self) -> None:
        self._entries: dict[str, tuple[QAPair, ...]] = {}
        self._in_flight: dict[str, asyncio.Future] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, key: str) -> list[QAPair] | None:
        async with self._lock:
            entry = self._entries.get(key)
        return list(entry) if entry is not None else None

    async def set(self, key: str, pairs: list[QAPair]) -> None:
        """Write-through; overwrites any existing entry."""
        async with self._lock:
            self._entries[key] = tuple(pairs)

    async def get_or_compute(self, key: str, compute: Compute) -> list[QAPair]:
        while True:
            async with self._lock:
                entry = self._entries.get(key)
                if entry is not None:
                    logger.debug("QA cache hit | key=%s", key[:12])
                    return list(entry)

                future = self._in_flight.get(key)
                owner = future is None
                if owner:
                    future = asyncio.get_running_loop().create_future()
                    future.add_done_callback(_consume_exception)
                    self._in_flight[key] = future

            if owner:
                return await self._compute(key, future, compute)

            logger.debug("QA cache join in-flight | key=%s", key[:12])
            try:
                return list(await asyncio.shield(future))
            except _OwnerCancelled:
                logger.debug("QA cache owner cancelled, retrying | key=%s", key[:12])

    async def _compute(self, key: str, future: asyncio.Future, compute: Compute) -> list[QAPair]:
        logger.debug("QA cache miss | key=%s", key[:12])
        try:
            result = tuple(await compute())
        except asyncio.CancelledError:
            async with self._lock:
                self._in_flight.pop(key, None)
            # Waiters take over the computation instead of inheriting the cancel
            future.set_exception(_OwnerCancelled())
            raise
        except Exception as exc:
            async with self._lock:
                self._in_flight.pop(key, None)
            future.set_exception(exc)
            raise

        async with self._lock:
            self._entries[key] = result
            self._in_flight.pop(key, None)
        future.set_result(result)
        return list(result)
