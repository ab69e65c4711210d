"""Text extraction for uploaded files.

The content type is resolved once, at upload, into a ContentKind; every
kind has exactly one extraction handler.
"""
import io
import zipfile
from enum import Enum
from typing import assert_never

import structlog
from docx import Document as DocxDocument
from docx.opc.exceptions import PackageNotFoundError
from pypdf import PdfReader
from pypdf.errors import PyPdfError

from knowhub.errors import DocumentProcessingError, ValidationError

logger = structlog.get_logger()

UNSUPPORTED_FILE_TYPE = "Unsupported file type. Only PDF, DOCX, and TXT files are allowed."


class ContentKind(str, Enum):
    PDF = "application/pdf"
    DOCX = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
    PLAIN_TEXT = "text/plain"

    @classmethod
    def from_content_type(cls, content_type: str) -> "ContentKind":
        """Resolve a MIME type (parameters such as charset are ignored).

        Raises:
            ValidationError: If the type is not one of the supported kinds
        """
        mime = (content_type or "").split(";", 1)[0].strip().lower()
        try:
            return cls(mime)
        except ValueError:
            raise ValidationError(UNSUPPORTED_FILE_TYPE) from None


def _extract_pdf_text(data: bytes) -> str:
    reader = PdfReader(io.BytesIO(data))
    return "\n".join(page.extract_text() or "" for page in reader.pages)


def _extract_docx_text(data: bytes) -> str:
    doc = DocxDocument(io.BytesIO(data))
    return "\n".join(para.text for para in doc.paragraphs).strip()


def _extract_plain_text(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


def extract_text(kind: ContentKind, data: bytes) -> str:
    """Extract text from raw file bytes.

    Raises:
        DocumentProcessingError: If the file cannot be parsed
    """
    try:
        match kind:
            case ContentKind.PDF:
                text = _extract_pdf_text(data)
            case ContentKind.DOCX:
                text = _extract_docx_text(data)
            case ContentKind.PLAIN_TEXT:
                text = _extract_plain_text(data)
            case _:
                assert_never(kind)
    except (PyPdfError, PackageNotFoundError, zipfile.BadZipFile, OSError, KeyError, ValueError) as e:
        logger.error("text_extraction_failed", kind=kind.name, error=str(e))
        raise DocumentProcessingError(f"Text extraction failed: {e}") from e

    logger.debug("text_extracted", kind=kind.name, text_length=len(text))
    return text
