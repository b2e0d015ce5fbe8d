"""
QA Extraction Engine — question/answer pairs for a document's text

Fallback chain:

  combined call ──error──▶ traditional path
      │                       extract_questions_only ──error──▶ QAExtractionError
      │                          │ none found → generate_questions_and_answers
      │                          │               (error → QAExtractionError)
      │                          ▼
      │                       Answer Locator per question (no AI cost)
      ▼                          │
  zero pairs → generate_questions_and_answers (error → [])
      │                          │
      ▼                          ▼
  questions still missing an answer
      batched generate_answers_for_questions, merged by position
      ──error──▶ generate_single_answer per question
                 (individual failure → "No answer available.")

ConfigurationError is never absorbed by a fallback tier.

Results are memoized per text (SHA-256) through QAResultCache.get_or_compute,
which also collapses concurrent identical requests into one computation.
"""

from __future__ import annotations

import logging

from question_seeker.core.exceptions import ConfigurationError, ProviderError, QAExtractionError
from question_seeker.llm.client import BaseQAClient, QAPair
from question_seeker.llm.prompts import NO_ANSWER_SENTINEL
from question_seeker.qa.cache import QAResultCache, content_key
from question_seeker.qa.locator import locate

logger = logging.getLogger(__name__)

NO_ANSWER_PLACEHOLDER = "No answer available."


def _needs_answer(answer: str | None) -> bool:
    return answer is None or answer.strip() in ("", NO_ANSWER_SENTINEL)


class QAExtractionEngine:
    """
    Produces finalized QAPairs for a text.

    One instance (and therefore one cache) is shared by every pipeline task
    in the process.
    """

    def __init__(self, client: BaseQAClient, cache: QAResultCache | None = None) -> None:
        self._client = client
        self._cache = cache if cache is not None else QAResultCache()

    @property
    def cache(self) -> QAResultCache:
        return self._cache

    async def extract_questions_and_answers(self, text: str) -> list[QAPair]:
        if not text or not text.strip():
            logger.info("QA extraction skipped | reason=empty_text")
            return []
        return await self._cache.get_or_compute(content_key(text), lambda: self._compute(text))

    # ------------------------------------------------------------------
    # Combined path
    # ------------------------------------------------------------------

    async def _compute(self, text: str) -> list[QAPair]:
        try:
            pairs = await self._client.extract_questions_and_answers_together(text)
        except ConfigurationError:
            raise
        except ProviderError as exc:
            logger.warning("Combined extraction failed, using traditional path | error=%s", exc)
            return await self._traditional(text)

        logger.info("Combined extraction | pairs=%d", len(pairs))
        if not pairs:
            try:
                return await self._client.generate_questions_and_answers(text)
            except ConfigurationError:
                raise
            except ProviderError as exc:
                logger.warning("Question generation failed | error=%s", exc)
                return []

        return await self._fill_missing_answers(pairs, text)

    # ------------------------------------------------------------------
    # Traditional path
    # ------------------------------------------------------------------

    async def _traditional(self, text: str) -> list[QAPair]:
        try:
            questions = await self._client.extract_questions_only(text)
        except ConfigurationError:
            raise
        except ProviderError as exc:
            raise QAExtractionError(f"Question extraction failed: {exc}") from exc

        if not questions:
            logger.info("No questions in document, generating")
            try:
                return await self._client.generate_questions_and_answers(text)
            except ConfigurationError:
                raise
            except ProviderError as exc:
                raise QAExtractionError(f"Question generation failed: {exc}") from exc

        pairs = [QAPair(question=q, answer=locate(q, text)) for q in questions]
        located = sum(1 for p in pairs if not _needs_answer(p.answer))
        logger.info("Traditional extraction | questions=%d located=%d", len(pairs), located)
        return await self._fill_missing_answers(pairs, text)

    # ------------------------------------------------------------------
    # Answer generation
    # ------------------------------------------------------------------

    async def _fill_missing_answers(self, pairs: list[QAPair], text: str) -> list[QAPair]:
        missing = [i for i, pair in enumerate(pairs) if _needs_answer(pair.answer)]
        if not missing:
            return pairs

        questions = [pairs[i].question for i in missing]
        try:
            answers = await self._client.generate_answers_for_questions(questions, text)
        except ConfigurationError:
            raise
        except ProviderError as exc:
            logger.warning(
                "Batched answer generation failed, answering one by one | questions=%d error=%s",
                len(questions), exc,
            )
            answers = await self._answer_individually(questions, text)

        if len(answers) != len(questions):
            logger.warning(
                "Batched answer count mismatch | expected=%d got=%d",
                len(questions), len(answers),
            )

        filled = list(pairs)
        for position, index in enumerate(missing):
            answer = answers[position] if position < len(answers) else None
            if answer is None or not answer.strip():
                answer = NO_ANSWER_PLACEHOLDER
            filled[index] = QAPair(question=pairs[index].question, answer=answer)
        return filled

    async def _answer_individually(self, questions: list[str], text: str) -> list[str]:
        answers: list[str] = []
        for question in questions:
            try:
                answers.append(await self._client.generate_single_answer(question, text))
            except ConfigurationError:
                raise
            except ProviderError as exc:
                logger.warning("Single answer failed | question=%.50s error=%s", question, exc)
                answers.append(NO_ANSWER_PLACEHOLDER)
        return answers
