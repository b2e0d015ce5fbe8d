"""
Answer Locator — find a question's answer in the text that follows it.

Two tiers, tried in order:

  1. Pattern: <question> \\s* ([^?\\n]+) (\\?|\\n|$), case-insensitive.
     A run that stops at "?" ends with the next question; its trailing
     sentence (after the last "." or "!" followed by whitespace) is dropped.
  2. Literal split on the first occurrence of the question; the remainder is
     cut at the first newline or "?" and leading punctuation is stripped.

Pure functions; no I/O.
"""

from __future__ import annotations

import re

_SENTENCE_END_RE = re.compile(r"[.!](?=\s|$)")
_LEADING_NOISE_RE = re.compile(r"^[\s.,:;]+")
_CUT_RE = re.compile(r"[\n?]")


def _drop_trailing_question(run: str) -> str:
    ends = list(_SENTENCE_END_RE.finditer(run))
    if not ends:
        return ""
    return run[: ends[-1].end()]


def _pattern_match(question: str, text: str) -> str | None:
    pattern = re.compile(re.escape(question) + r"\s*([^?\n]+)(\?|\n|$)", re.IGNORECASE)
    match = pattern.search(text)
    if match is None:
        return None
    run = match.group(1)
    if match.group(2) == "?":
        run = _drop_trailing_question(run)
    return run.strip() or None


def _split_match(question: str, text: str) -> str | None:
    _, found, remainder = text.partition(question)
    if not found:
        return None
    candidate = _CUT_RE.split(remainder, maxsplit=1)[0]
    candidate = _LEADING_NOISE_RE.sub("", candidate).strip()
    return candidate or None


def locate(question: str, text: str) -> str | None:
    """Return the answer text following `question` in `text`, or None."""
    question = question.strip()
    if not question or not text:
        return None
    return _pattern_match(question, text) or _split_match(question, text)
