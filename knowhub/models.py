"""Domain records loaded from the database."""
from dataclasses import dataclass
from typing import Any, Dict, List


@dataclass(frozen=True)
class Document:
    """An uploaded document and its extracted text."""

    id: int
    filename: str
    original_filename: str
    content_type: str
    file_size: int
    file_path: str
    extracted_text: str
    created_at: str

    @property
    def display_name(self) -> str:
        return self.original_filename

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Document":
        return cls(
            id=row["id"],
            filename=row["filename"],
            original_filename=row["original_filename"],
            content_type=row["content_type"],
            file_size=row["file_size"],
            file_path=row["file_path"],
            extracted_text=row["extracted_text"] or "",
            created_at=row["created_at"],
        )


@dataclass(frozen=True)
class QueryRecord:
    """One question/answer interaction."""

    id: int
    question: str
    answer: str
    context_documents: List[str]
    created_at: str

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "QueryRecord":
        return cls(
            id=row["id"],
            question=row["question"],
            answer=row["answer"],
            context_documents=list(row["context_documents"]),
            created_at=row["created_at"],
        )
