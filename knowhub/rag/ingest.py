"""Ingestion of uploaded documents into the vector store.

Orchestrates:
- Text chunking
- Embedding generation (one provider call per chunk, in order)
- A single all-or-nothing batch write per document
- Background execution with observable task handles
"""
import asyncio
from typing import Set
import structlog

from knowhub import config
from knowhub.errors import NotFoundError
from knowhub.llm_client import EmbeddingProvider
from knowhub.models import Document
from knowhub.rag.chunker import TextChunker
from knowhub.rag.store import VectorStore

logger = structlog.get_logger()


class IngestionCoordinator:
    """Chunks, embeds and stores documents, in the foreground or as background tasks.

    If a document is deleted while its ingestion is in flight, the batch
    write finds the document gone and the ingested chunks are discarded;
    no chunk row can outlive its document.
    """

    def __init__(
        self,
        vector_store: VectorStore,
        embedder: EmbeddingProvider,
        chunker: TextChunker = None,
        max_workers: int = None,
    ):
        """Initialize the coordinator.

        Args:
            vector_store: Destination for chunk vectors
            embedder: Embedding provider for chunk texts
            chunker: Text chunker (default sizes from config)
            max_workers: Maximum concurrently running background ingestions
        """
        self.vector_store = vector_store
        self.embedder = embedder
        self.chunker = chunker or TextChunker()
        self.max_workers = max_workers or config.INGEST_MAX_WORKERS

        self._slots = asyncio.Semaphore(self.max_workers)
        self._tasks: Set[asyncio.Task] = set()

        self.stats = {
            "documents_ingested": 0,
            "documents_failed": 0,
            "documents_discarded": 0,
            "chunks_created": 0,
            "embeddings_generated": 0,
        }

    async def ingest(self, document: Document) -> int:
        """Ingest one document.

        Args:
            document: Document whose extracted text should be indexed

        Returns:
            Number of chunks written (0 for empty text or a deleted document)

        Raises:
            ProviderError: If any chunk embedding fails (nothing is written)
            StorageError: If the batch write fails (nothing is written)
        """
        text = document.extracted_text
        if not text or not text.strip():
            logger.info("ingestion_skipped_empty_text", document_id=document.id)
            return 0

        chunks = self.chunker.chunk_text(text)
        if not chunks:
            return 0

        logger.info(
            "ingesting_document",
            document_id=document.id,
            filename=document.display_name,
            chunk_count=len(chunks),
        )

        rows = []
        for chunk in chunks:
            try:
                vector = await self.embedder.embed(chunk.content)
            except Exception as e:
                logger.error(
                    "ingestion_abandoned",
                    document_id=document.id,
                    chunk_index=chunk.chunk_index,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise
            self.stats["embeddings_generated"] += 1
            rows.append((chunk.content, vector, chunk.chunk_index))

        try:
            await self.vector_store.upsert_batch(document.id, rows)
        except NotFoundError:
            logger.info("ingestion_discarded_document_deleted", document_id=document.id)
            self.stats["documents_discarded"] += 1
            return 0

        self.stats["documents_ingested"] += 1
        self.stats["chunks_created"] += len(rows)

        logger.info(
            "document_ingested",
            document_id=document.id,
            chunks_created=len(rows),
        )
        return len(rows)

    async def _run(self, document: Document) -> int:
        async with self._slots:
            return await self.ingest(document)

    def submit(self, document: Document) -> asyncio.Task:
        """Schedule ingestion in the background without waiting for it.

        Must be called from a running event loop. The returned task's
        outcome is logged when it finishes.
        """
        task = asyncio.create_task(self._run(document), name=f"ingest-document-{document.id}")
        self._tasks.add(task)
        task.add_done_callback(lambda t: self._on_done(t, document.id))

        logger.info("ingestion_submitted", document_id=document.id, in_flight=len(self._tasks))
        return task

    def _on_done(self, task: asyncio.Task, document_id: int) -> None:
        self._tasks.discard(task)

        if task.cancelled():
            logger.warning("ingestion_task_cancelled", document_id=document_id)
            return

        error = task.exception()
        if error is not None:
            self.stats["documents_failed"] += 1
            logger.error(
                "ingestion_task_failed",
                document_id=document_id,
                error=str(error),
                error_type=type(error).__name__,
            )
        else:
            logger.info("ingestion_task_completed", document_id=document_id, chunks=task.result())

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every submitted ingestion to finish (failures included)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
