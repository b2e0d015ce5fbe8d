"""
Document API Router

  GET /api/documents        list documents
  GET /api/documents/{id}   one document with its questions
"""

from __future__ import annotations

from fastapi import APIRouter

from question_seeker.api.dependencies import Records
from question_seeker.schemas.documents import (
    DataEnvelope,
    DocumentView,
    DocumentWithQuestionsView,
    ErrorResponse,
)

router = APIRouter(prefix="/documents", tags=["Documents"])


@router.get("", response_model=DataEnvelope[list[DocumentView]])
async def list_documents(records: Records) -> DataEnvelope[list[DocumentView]]:
    documents = await records.list_documents()
    return DataEnvelope[list[DocumentView]](
        data=[DocumentView.model_validate(d) for d in documents],
    )


@router.get(
    "/{document_id}",
    response_model=DataEnvelope[DocumentWithQuestionsView],
    responses={404: {"model": ErrorResponse}},
)
async def get_document(document_id: int, records: Records) -> DataEnvelope[DocumentWithQuestionsView]:
    document = await records.get_document(document_id)
    return DataEnvelope[DocumentWithQuestionsView](
        data=DocumentWithQuestionsView.model_validate(document),
    )
