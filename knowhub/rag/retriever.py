"""Retriever for semantic search over ingested documents.

Handles:
- Query embedding generation (one provider call per query)
- Vector store similarity search
"""
from typing import List, Optional
import structlog

from knowhub import config
from knowhub.llm_client import EmbeddingProvider
from knowhub.rag.store import ChunkMatch, VectorStore

logger = structlog.get_logger()


class Retriever:
    """Semantic retriever for the RAG pipeline."""

    def __init__(
        self,
        vector_store: VectorStore,
        embedder: EmbeddingProvider,
        top_k: int = None,
    ):
        """Initialize the retriever.

        Args:
            vector_store: Store holding the chunk vectors
            embedder: Embedding provider used for queries
            top_k: Number of results to retrieve (default from config)
        """
        self.vector_store = vector_store
        self.embedder = embedder
        self.top_k = top_k or config.RETRIEVAL_TOP_K

    async def embed_query(self, query: str) -> List[float]:
        """Embed the query text.

        Raises:
            ProviderError: If the embedding backend fails
        """
        embedding = await self.embedder.embed(query)
        logger.debug("query_embedded", dimension=len(embedding))
        return embedding

    async def search(
        self, query_embedding: List[float], top_k: Optional[int] = None
    ) -> List[ChunkMatch]:
        """Fetch the chunks closest to an already-embedded query, best first."""
        top_k = top_k or self.top_k
        results = await self.vector_store.query(query_embedding, top_k)

        logger.info(
            "retrieval_completed",
            top_k=top_k,
            results_returned=len(results),
            top_distance=results[0].distance if results else None,
        )
        return results
