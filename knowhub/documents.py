"""Document upload, listing and deletion.

Upload stores the file, extracts its text and hands the document to the
ingestion coordinator in the background. Deletion removes the chunk rows
before the document row, then makes a best-effort attempt to remove the
stored file.
"""
import uuid
from pathlib import Path
from typing import List
import structlog

from knowhub import config, db
from knowhub.cache import DocumentListCache
from knowhub.errors import NotFoundError, StorageError, ValidationError
from knowhub.models import Document
from knowhub.rag.extractor import ContentKind, extract_text
from knowhub.rag.ingest import IngestionCoordinator
from knowhub.rag.store import VectorStore

logger = structlog.get_logger()

FILE_EMPTY = "File is empty"
DOCUMENT_NOT_FOUND = "Document not found"

_LIST_KEY = "all"


class DocumentService:
    """Manages the document lifecycle around the RAG core."""

    def __init__(
        self,
        vector_store: VectorStore,
        ingestion: IngestionCoordinator,
        upload_dir: Path = None,
        cache: DocumentListCache = None,
    ):
        self.vector_store = vector_store
        self.ingestion = ingestion
        self.upload_dir = upload_dir or config.UPLOAD_DIR
        self.cache = cache or DocumentListCache()

    async def upload(self, filename: str, content_type: str, data: bytes) -> Document:
        """Validate, store and extract an uploaded file, then start ingestion.

        The file type is checked here and only here; extraction trusts the
        resolved ContentKind.

        Args:
            filename: Original filename as supplied by the client
            content_type: MIME type as supplied by the client
            data: Raw file bytes

        Returns:
            The created Document (ingestion continues in the background)

        Raises:
            ValidationError: If the file is empty, of an unsupported type or
                cannot be parsed
            StorageError: If the file or its row cannot be saved
        """
        if not data:
            raise ValidationError(FILE_EMPTY)

        kind = ContentKind.from_content_type(content_type)
        original_filename = Path(filename or "upload").name

        text = extract_text(kind, data)

        stored_name = f"{uuid.uuid4()}_{original_filename}"
        file_path = self.upload_dir / stored_name
        try:
            self.upload_dir.mkdir(parents=True, exist_ok=True)
            file_path.write_bytes(data)
        except OSError as e:
            logger.error("document_file_write_failed", path=str(file_path), error=str(e))
            raise StorageError(f"Failed to upload document: {e}") from e

        try:
            row = db.insert_document(
                filename=stored_name,
                original_filename=original_filename,
                content_type=kind.value,
                file_size=len(data),
                file_path=str(file_path),
                extracted_text=text,
            )
        except StorageError:
            self._remove_file(file_path)
            raise

        document = Document.from_row(row)
        self.cache.invalidate()

        logger.info(
            "document_uploaded",
            document_id=document.id,
            filename=original_filename,
            kind=kind.name,
            file_size=len(data),
            text_length=len(text),
        )

        self.ingestion.submit(document)
        return document

    def list_documents(self) -> List[Document]:
        """All documents, newest first."""
        documents = self.cache.get(_LIST_KEY)
        if documents is None:
            documents = [Document.from_row(row) for row in db.list_documents()]
            self.cache.set(_LIST_KEY, documents)
        return list(documents)

    def get_document(self, document_id: int) -> Document:
        """Raises NotFoundError if the document doesn't exist."""
        row = db.get_document(document_id)
        if row is None:
            raise NotFoundError(DOCUMENT_NOT_FOUND)
        return Document.from_row(row)

    async def delete_document(self, document_id: int) -> None:
        """Delete a document, its chunks and its stored file.

        Raises:
            NotFoundError: If the document doesn't exist
            StorageError: If the chunk or document rows cannot be deleted
        """
        document = self.get_document(document_id)

        removed = await self.vector_store.delete_by_document(document_id)
        db.delete_document(document_id)
        self.cache.invalidate()

        self._remove_file(Path(document.file_path))

        logger.info("document_deleted", document_id=document_id, chunks_removed=removed)

    def _remove_file(self, path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("document_file_cleanup_failed", path=str(path), error=str(e))
