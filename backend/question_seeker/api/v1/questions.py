"""
Question API Router

  GET /api/questions                          list questions
  GET /api/questions/{id}                     one question
  GET /api/documents/{document_id}/questions  questions of one document
"""

from __future__ import annotations

from fastapi import APIRouter

from question_seeker.api.dependencies import Records
from question_seeker.schemas.documents import DataEnvelope, ErrorResponse, QuestionView

router = APIRouter(tags=["Questions"])


@router.get("/questions", response_model=DataEnvelope[list[QuestionView]])
async def list_questions(records: Records) -> DataEnvelope[list[QuestionView]]:
    questions = await records.list_questions()
    return DataEnvelope[list[QuestionView]](data=[QuestionView.model_validate(q) for q in questions])


@router.get(
    "/questions/{question_id}",
    response_model=DataEnvelope[QuestionView],
    responses={404: {"model": ErrorResponse}},
)
async def get_question(question_id: int, records: Records) -> DataEnvelope[QuestionView]:
    question = await records.get_question(question_id)
    return DataEnvelope[QuestionView](data=QuestionView.model_validate(question))


@router.get(
    "/documents/{document_id}/questions",
    response_model=DataEnvelope[list[QuestionView]],
    responses={404: {"model": ErrorResponse}},
)
async def list_document_questions(
    document_id: int, records: Records,
) -> DataEnvelope[list[QuestionView]]:
    await records.get_document(document_id)
    questions = await records.list_questions_for_document(document_id)
    return DataEnvelope[list[QuestionView]](data=[QuestionView.model_validate(q) for q in questions])
