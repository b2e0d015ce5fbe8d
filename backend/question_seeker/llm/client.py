"""
AI Text Engine Client — question/answer operations over a chat model

Five operations, each with its own model and timeout (tuned to the task):

  extract_questions_and_answers_together   combined  gpt-4          20 s
  extract_questions_only                   questions gpt-3.5-turbo  15 s
  generate_questions_and_answers           generate  gpt-4          20 s
  generate_answers_for_questions           answers   gpt-4          25 s
  generate_single_answer                   single    gpt-3.5-turbo  30 s

Retry policy (per call):
  - Retryable:     timeouts, 5xx, rate limiting, connection resets
  - Non-retryable: 4xx (bad request), malformed content
  - Authentication failures and a missing API key → ConfigurationError
  - One retry after a fixed delay (llm_max_retries / llm_retry_delay_seconds)

Every call is bounded by asyncio.wait_for, so a stalled provider surfaces
as TransientProviderError instead of hanging the pipeline task.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage

from question_seeker.core.config import Settings
from question_seeker.core.exceptions import (
    ConfigurationError,
    MalformedResponseError,
    ProviderError,
    TransientProviderError,
)
from question_seeker.llm import prompts

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Shared data types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class QAPair:
    """One question with its answer; answer None means "still needs one"."""
    question: str
    answer:   str | None = None


@dataclass(frozen=True)
class CallProfile:
    model:   str
    timeout: float


# ---------------------------------------------------------------------------
# Retryable exception detection
# ---------------------------------------------------------------------------

_RETRYABLE_EXCEPTION_TYPES = (
    # openai
    "RateLimitError",
    "APITimeoutError",
    "APIConnectionError",
    "InternalServerError",
    # httpx / generic
    "ConnectTimeout",
    "ReadTimeout",
    "RemoteProtocolError",
)

_CONFIGURATION_EXCEPTION_TYPES = (
    "AuthenticationError",
    "PermissionDeniedError",
)


def _is_retryable(exc: Exception) -> bool:
    """True if the exception class name suggests a transient provider error."""
    name = type(exc).__name__
    if any(name.endswith(r) for r in _RETRYABLE_EXCEPTION_TYPES):
        return True
    status = getattr(exc, "status_code", None)
    return isinstance(status, int) and status >= 500


def _is_configuration_error(exc: Exception) -> bool:
    name = type(exc).__name__
    return any(name.endswith(r) for r in _CONFIGURATION_EXCEPTION_TYPES)


# ---------------------------------------------------------------------------
# Response decoding
# ---------------------------------------------------------------------------

_CODE_FENCE_RE = re.compile(r"^\s*```(?:json)?\s*(.*?)\s*```\s*$", re.DOTALL)


def decode_json_array(content: str) -> list[Any]:
    """Decode a JSON array, tolerating a surrounding markdown code fence."""
    match = _CODE_FENCE_RE.match(content)
    payload = match.group(1) if match else content.strip()
    try:
        decoded = json.loads(payload)
    except json.JSONDecodeError as exc:
        raise MalformedResponseError(f"AI response is not valid JSON: {exc}") from exc
    if not isinstance(decoded, list):
        raise MalformedResponseError(
            f"AI response is a JSON {type(decoded).__name__}, expected an array"
        )
    return decoded


def _to_pairs(items: list[Any]) -> list[QAPair]:
    pairs: list[QAPair] = []
    for item in items:
        if not isinstance(item, dict) or not isinstance(item.get("question"), str):
            raise MalformedResponseError(f"Unexpected question/answer item: {item!r}")
        answer = item.get("answer")
        if answer is not None and not isinstance(answer, str):
            raise MalformedResponseError(f"Unexpected answer value: {answer!r}")
        pairs.append(QAPair(question=item["question"], answer=answer))
    return pairs


def _to_strings(items: list[Any], what: str) -> list[str]:
    if not all(isinstance(item, str) for item in items):
        raise MalformedResponseError(f"Expected a JSON array of {what} strings")
    return list(items)


# ---------------------------------------------------------------------------
# Abstract client
# ---------------------------------------------------------------------------

class BaseQAClient(ABC):
    """
    Contract of the AI text engine.

    Implementations raise ConfigurationError for missing credentials,
    MalformedResponseError for undecodable content and ProviderError
    (or TransientProviderError) for everything else.
    """

    @abstractmethod
    async def extract_questions_and_answers_together(self, document_text: str) -> list[QAPair]:
        """Questions written in the text with their answers; answer may be the NO_ANSWER sentinel."""

    @abstractmethod
    async def extract_questions_only(self, document_text: str) -> list[str]:
        """Questions written in the text, in order."""

    @abstractmethod
    async def generate_questions_and_answers(self, document_text: str) -> list[QAPair]:
        """3-5 new question/answer pairs about the text."""

    @abstractmethod
    async def generate_answers_for_questions(
        self, questions: list[str], document_text: str,
    ) -> list[str]:
        """Answers positionally aligned with `questions`."""

    @abstractmethod
    async def generate_single_answer(self, question: str, document_text: str) -> str:
        """Plain-text answer to one question."""


# ---------------------------------------------------------------------------
# OpenAI implementation
# ---------------------------------------------------------------------------

LLMFactory = Callable[[CallProfile], BaseChatModel]
Sleep = Callable[[float], Awaitable[None]]


class OpenAIQAClient(BaseQAClient):
    """
    BaseQAClient over langchain-openai's ChatOpenAI.

    The chat model is built per call profile through `llm_factory` so tests
    can substitute a fake model without touching the network.
    """

    def __init__(
        self,
        api_key: str,
        *,
        combined:      CallProfile = CallProfile("gpt-4", 20.0),
        questions:     CallProfile = CallProfile("gpt-3.5-turbo", 15.0),
        generate:      CallProfile = CallProfile("gpt-4", 20.0),
        answers:       CallProfile = CallProfile("gpt-4", 25.0),
        single_answer: CallProfile = CallProfile("gpt-3.5-turbo", 30.0),
        temperature: float = 0.7,
        max_retries: int = 1,
        retry_delay: float = 1.0,
        llm_factory: LLMFactory | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._api_key = api_key
        self._profiles = {
            "combined": combined,
            "questions": questions,
            "generate": generate,
            "answers": answers,
            "single_answer": single_answer,
        }
        self._temperature = temperature
        self._max_retries = max_retries
        self._retry_delay = retry_delay
        self._llm_factory = llm_factory or self._build_openai
        self._sleep = sleep
        self._models: dict[CallProfile, BaseChatModel] = {}

    @classmethod
    def from_settings(cls, settings: Settings) -> "OpenAIQAClient":
        return cls(
            settings.openai_api_key,
            combined=CallProfile(settings.llm_combined_model, settings.llm_combined_timeout_seconds),
            questions=CallProfile(settings.llm_questions_model, settings.llm_questions_timeout_seconds),
            generate=CallProfile(settings.llm_generate_model, settings.llm_generate_timeout_seconds),
            answers=CallProfile(settings.llm_answers_model, settings.llm_answers_timeout_seconds),
            single_answer=CallProfile(
                settings.llm_single_answer_model, settings.llm_single_answer_timeout_seconds,
            ),
            temperature=settings.llm_temperature,
            max_retries=settings.llm_max_retries,
            retry_delay=settings.llm_retry_delay_seconds,
        )

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def extract_questions_and_answers_together(self, document_text: str) -> list[QAPair]:
        content = await self._invoke(
            "combined",
            prompts.COMBINED_SYSTEM,
            prompts.COMBINED_USER.format(document_text=document_text),
        )
        return _to_pairs(decode_json_array(content))

    async def extract_questions_only(self, document_text: str) -> list[str]:
        content = await self._invoke(
            "questions",
            prompts.QUESTIONS_SYSTEM,
            prompts.QUESTIONS_USER.format(document_text=document_text),
        )
        return _to_strings(decode_json_array(content), "question")

    async def generate_questions_and_answers(self, document_text: str) -> list[QAPair]:
        content = await self._invoke(
            "generate",
            prompts.GENERATE_SYSTEM,
            prompts.GENERATE_USER.format(document_text=document_text),
        )
        return _to_pairs(decode_json_array(content))

    async def generate_answers_for_questions(
        self, questions: list[str], document_text: str,
    ) -> list[str]:
        content = await self._invoke(
            "answers",
            prompts.ANSWERS_SYSTEM,
            prompts.ANSWERS_USER.format(
                document_text=document_text,
                questions=prompts.format_question_list(questions),
            ),
        )
        return _to_strings(decode_json_array(content), "answer")

    async def generate_single_answer(self, question: str, document_text: str) -> str:
        content = await self._invoke(
            "single_answer",
            prompts.SINGLE_ANSWER_SYSTEM,
            prompts.SINGLE_ANSWER_USER.format(document_text=document_text, question=question),
        )
        answer = content.strip()
        if not answer:
            raise MalformedResponseError("AI returned an empty answer")
        return answer

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _build_openai(self, profile: CallProfile) -> BaseChatModel:
        from langchain_openai import ChatOpenAI
        return ChatOpenAI(
            model=profile.model,
            api_key=self._api_key,
            temperature=self._temperature,
            timeout=profile.timeout,
            max_retries=0,        # retries are handled in _invoke
        )

    def _model_for(self, profile: CallProfile) -> BaseChatModel:
        if profile not in self._models:
            self._models[profile] = self._llm_factory(profile)
        return self._models[profile]

    async def _invoke(self, operation: str, system_prompt: str, user_prompt: str) -> str:
        if not self._api_key:
            logger.error("OpenAI API key not configured")
            raise ConfigurationError("OpenAI API key not configured")

        profile = self._profiles[operation]
        llm = self._model_for(profile)
        messages: list[BaseMessage] = [
            SystemMessage(content=system_prompt),
            HumanMessage(content=user_prompt),
        ]

        attempt = 0
        while True:
            logger.debug(
                "LLM call | op=%s model=%s timeout=%.0fs attempt=%d",
                operation, profile.model, profile.timeout, attempt + 1,
            )
            try:
                result = await asyncio.wait_for(llm.ainvoke(messages), timeout=profile.timeout)
                return str(result.content)

            except asyncio.TimeoutError:
                error: ProviderError = TransientProviderError(
                    f"{operation}: timed out after {profile.timeout:.0f}s"
                )

            except Exception as exc:
                if _is_configuration_error(exc):
                    raise ConfigurationError(f"{operation}: {type(exc).__name__}: {exc}") from exc
                if not _is_retryable(exc):
                    raise ProviderError(f"{operation}: {type(exc).__name__}: {exc}") from exc
                error = TransientProviderError(f"{operation}: {type(exc).__name__}: {exc}")
                error.__cause__ = exc

            if attempt >= self._max_retries:
                logger.error("LLM call failed | op=%s error=%s", operation, error)
                raise error

            attempt += 1
            logger.warning(
                "LLM call retrying | op=%s error=%s retries_left=%d",
                operation, error, self._max_retries - attempt + 1,
            )
            await self._sleep(self._retry_delay)
