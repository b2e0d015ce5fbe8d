"""
Prompt templates for question/answer extraction.

Each operation has a system template and a user template. User templates
are rendered with str.format, so literal JSON braces are doubled.
"""

from __future__ import annotations

from typing import Final

NO_ANSWER_SENTINEL: Final[str] = "[NO_ANSWER]"

# ---------------------------------------------------------------------------
# Combined extraction — questions with their in-document answers
# ---------------------------------------------------------------------------

COMBINED_SYSTEM: Final[str] = """\
You are an intelligent assistant that identifies both questions and their answers in documents.
For each question found in the document, also extract the answer that appears after the question.
If a question doesn't have an answer in the document, indicate that with "[NO_ANSWER]".
Format your response as a valid JSON array of objects, where each object has "question" and "answer" fields.
"""

COMBINED_USER: Final[str] = """\
Extract all questions AND their answers from the following document:

{document_text}

Instructions:
1. Include ONLY questions explicitly written in the document.
2. For each question, extract the answer text that follows it, up until the next question or paragraph break.
3. If no answer is found for a question in the document, mark it as "[NO_ANSWER]".

Return your response in this JSON format:
[
  {{"question": "First question?", "answer": "Answer text to first question."}},
  {{"question": "Second question?", "answer": "[NO_ANSWER]"}},
  ...
]

If no questions are found, return an empty array: []
"""

# ---------------------------------------------------------------------------
# Questions only
# ---------------------------------------------------------------------------

QUESTIONS_SYSTEM: Final[str] = """\
You are an intelligent assistant that identifies questions present in documents.
Extract only the actual questions that appear in the document - do not generate new questions.
Format your response as a valid JSON array of strings, where each string is a question.
"""

QUESTIONS_USER: Final[str] = """\
Extract all questions from the following document. Return ONLY questions that are explicitly written in the document:

{document_text}

Return your response as a JSON array of question strings:
["First question from document?", "Second question from document?", ...]

If no questions are found, return an empty array: []
"""

# ---------------------------------------------------------------------------
# Generation — for documents without explicit questions
# ---------------------------------------------------------------------------

GENERATE_SYSTEM: Final[str] = """\
You are an intelligent assistant that generates relevant questions and answers based on document content.
Generate 3-5 insightful questions that someone might ask about this document, and provide detailed, accurate answers for each question.
Focus on the most important information in the document.
Format your response as a valid JSON array containing objects with "question" and "answer" fields.
"""

GENERATE_USER: Final[str] = """\
Based on the following document, generate 3-5 insightful questions and provide detailed answers:

{document_text}

Generate questions that:
1. Cover the most important information in the document
2. Would be helpful for someone trying to understand the document
3. Address different aspects of the document content

Return your response in the following JSON format:
[
  {{
    "question": "First question here?",
    "answer": "Detailed answer to the first question here."
  }},
  ... additional questions and answers ...
]
"""

# ---------------------------------------------------------------------------
# Answers — batched and single
# ---------------------------------------------------------------------------

ANSWERS_SYSTEM: Final[str] = """\
You are an intelligent assistant that generates accurate answers to questions.
Use the provided context if relevant, or your general knowledge if not.
Provide concise yet informative answers for each question.
Format your response as a valid JSON array of strings, where each string is an answer.
"""

ANSWERS_USER: Final[str] = """\
Context: {document_text}

Please provide answers to the following questions:
{questions}

Instructions:
1. Base your answers on the provided context when possible
2. Keep answers concise but informative
3. If the document doesn't contain information for a question, provide a reasonable answer

Return your response as a JSON array of answers in the same order as the questions:
["Answer to first question", "Answer to second question", ...]
"""

SINGLE_ANSWER_SYSTEM: Final[str] = """\
You are an intelligent assistant that provides concise, accurate answers to questions.
"""

SINGLE_ANSWER_USER: Final[str] = """\
Based on the following context, please answer this question:

Context: {document_text}

Question: {question}

Provide a direct, concise answer.
"""


def format_question_list(questions: list[str]) -> str:
    return "\n".join(f"- {q}" for q in questions)
