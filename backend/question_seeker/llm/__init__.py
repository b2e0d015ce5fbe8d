"""
AI Text Engine Package

Provides the question/answer operations the extraction engine relies on,
behind a provider-agnostic interface:
  - BaseQAClient    abstract contract (five async operations)
  - OpenAIQAClient  langchain-openai ChatOpenAI implementation

Public API::

    from question_seeker.llm import OpenAIQAClient

    client = OpenAIQAClient.from_settings(settings)
    pairs = await client.extract_questions_and_answers_together(text)
"""

from question_seeker.llm.client import BaseQAClient, CallProfile, OpenAIQAClient, QAPair
from question_seeker.llm.prompts import NO_ANSWER_SENTINEL

__all__ = [
    "BaseQAClient",
    "CallProfile",
    "NO_ANSWER_SENTINEL",
    "OpenAIQAClient",
    "QAPair",
]
