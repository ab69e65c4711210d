"""Request and response models for the HTTP API."""
from typing import List

from pydantic import BaseModel, Field

from knowhub import config
from knowhub.models import Document, QueryRecord
from knowhub.rag.answerer import QueryAnswer


class QueryRequest(BaseModel):
    question: str = Field(min_length=1, max_length=config.MAX_QUESTION_LENGTH)


class QueryResponse(BaseModel):
    answer: str
    context_documents: List[str]

    @classmethod
    def from_answer(cls, answer: QueryAnswer) -> "QueryResponse":
        return cls(answer=answer.answer, context_documents=answer.context_documents)


class DocumentResponse(BaseModel):
    id: int
    filename: str
    content_type: str
    file_size: int
    uploaded_at: str

    @classmethod
    def from_document(cls, document: Document) -> "DocumentResponse":
        return cls(
            id=document.id,
            filename=document.original_filename,
            content_type=document.content_type,
            file_size=document.file_size,
            uploaded_at=document.created_at,
        )


class QueryHistoryResponse(BaseModel):
    id: int
    question: str
    answer: str
    context_documents: List[str]
    created_at: str

    @classmethod
    def from_record(cls, record: QueryRecord) -> "QueryHistoryResponse":
        return cls(
            id=record.id,
            question=record.question,
            answer=record.answer,
            context_documents=record.context_documents,
            created_at=record.created_at,
        )
