"""FAISS-backed vector store for cosine similarity search.

Handles:
- Durable chunk rows in SQLite (the source of truth)
- An in-memory FAISS inner-product index over L2-normalised vectors,
  keyed by chunk row id and rebuilt whenever the rows' generation moves
  on without it (another process or worker wrote)
- Exact cosine ranking with ties broken by insertion order
"""
from dataclasses import dataclass
from typing import Iterable, List, Dict, Any, Optional, Sequence, Tuple
import numpy as np
import faiss
import structlog

from knowhub import db
from knowhub.errors import ConfigurationError, ValidationError

logger = structlog.get_logger()

# Scores within this distance of each other are treated as ties
TIE_EPSILON = 1e-6


@dataclass
class ChunkMatch:
    """A stored chunk returned by a similarity query."""

    chunk_id: int
    document_id: int
    document_name: str
    content: str
    chunk_index: int
    distance: float


def _normalize(vectors: np.ndarray) -> np.ndarray:
    """L2-normalise rows; zero rows stay zero (cosine distance 1 to everything)."""
    norms = np.linalg.norm(vectors, axis=1, keepdims=True)
    norms[norms == 0] = 1.0
    return np.ascontiguousarray(vectors / norms, dtype=np.float32)


def _rank(pairs: Iterable[Tuple[float, int]]) -> List[Tuple[float, int]]:
    """Order (score, chunk_id) pairs best first.

    Scores within TIE_EPSILON of the best score of their group are ties:
    they take that score and are ordered by ascending chunk id.
    """
    ranked: List[Tuple[float, int]] = []
    group: List[int] = []
    group_score = 0.0

    for score, chunk_id in sorted(pairs, key=lambda pair: -pair[0]):
        if group and group_score - score > TIE_EPSILON:
            ranked.extend((group_score, member) for member in sorted(group))
            group = []
        if not group:
            group_score = score
        group.append(chunk_id)

    ranked.extend((group_score, member) for member in sorted(group))
    return ranked


class VectorStore:
    """Chunk rows plus a FAISS IndexIDMap2(IndexFlatIP) for exact search."""

    def __init__(self, dimension: int):
        """Initialize an empty store.

        The index is filled from SQLite by load(), or lazily by the first
        query or write.

        Args:
            dimension: Length every stored and queried vector must have
        """
        if dimension <= 0:
            raise ConfigurationError(f"Embedding dimension must be positive, got {dimension}")

        self.dimension = dimension
        self.index = faiss.IndexIDMap2(faiss.IndexFlatIP(dimension))
        self._generation: Optional[int] = None

        logger.info("vector_store_initialized", dimension=dimension, index_type="IndexFlatIP")

    def _as_matrix(self, vectors: Sequence[Sequence[float]]) -> np.ndarray:
        try:
            matrix = np.asarray(vectors, dtype=np.float32)
        except ValueError as e:
            raise ValidationError(f"Malformed embedding vectors: {e}") from e
        if matrix.ndim != 2 or matrix.shape[1] != self.dimension:
            width = matrix.shape[-1] if matrix.ndim else 0
            raise ValidationError(
                f"Embedding dimension mismatch: expected {self.dimension}, got {width}"
            )
        return matrix

    def _rebuild(self) -> None:
        generation, rows = db.get_chunk_snapshot()
        self.index.reset()

        mismatched = {dim for _, dim, _ in rows if dim != self.dimension}
        if mismatched:
            self._generation = None
            raise ConfigurationError(
                f"Dimension mismatch: stored chunks have dim={sorted(mismatched)}, "
                f"but the current embedding model has dim={self.dimension}. "
                "Please rebuild the index."
            )

        if rows:
            ids = np.array([row_id for row_id, _, _ in rows], dtype=np.int64)
            vectors = np.vstack([np.frombuffer(blob, dtype=np.float32) for _, _, blob in rows])
            self.index.add_with_ids(_normalize(vectors), ids)

        self._generation = generation
        logger.info("vector_store_loaded", vector_count=self.index.ntotal, generation=generation)

    def _sync(self) -> None:
        """Reload the index if chunk rows changed since it was built."""
        if db.get_chunk_generation() != self._generation:
            logger.info("vector_index_stale", generation=self._generation)
            self._rebuild()

    async def load(self) -> None:
        """Rebuild the in-memory index from the chunk rows in SQLite.

        Raises:
            ConfigurationError: If stored vectors were built with another dimension
        """
        self._rebuild()

    async def upsert_batch(
        self,
        document_id: int,
        rows: Sequence[Tuple[str, Sequence[float], int]],
    ) -> List[int]:
        """Write every chunk of a document, or none of them.

        Existing chunks of the document are replaced.

        Args:
            document_id: Owning document
            rows: (text, vector, index) tuples; indices must be 0..n-1

        Returns:
            Chunk row IDs in the order of rows

        Raises:
            ValidationError: On a wrong vector length or non-sequential indices
            NotFoundError: If the document was deleted (nothing written)
            StorageError: If the write fails (nothing written)
        """
        indices = sorted(index for _, _, index in rows)
        if indices != list(range(len(rows))):
            raise ValidationError("Chunk indices must be unique and sequential from 0")

        matrix = self._as_matrix([vector for _, vector, _ in rows]) if rows else None

        db_rows = [
            (text, index, self.dimension, matrix[i].tobytes())
            for i, (text, _, index) in enumerate(rows)
        ]
        write = db.replace_document_chunks(document_id, db_rows)

        # Committed: make it visible to subsequent queries
        if write.generation_before == self._generation:
            if write.removed_ids:
                self.index.remove_ids(np.array(write.removed_ids, dtype=np.int64))
            if write.inserted_ids:
                self.index.add_with_ids(
                    _normalize(matrix), np.array(write.inserted_ids, dtype=np.int64)
                )
            self._generation = write.generation_after
        else:
            self._rebuild()

        logger.info(
            "chunk_batch_upserted",
            document_id=document_id,
            inserted=len(write.inserted_ids),
            replaced=len(write.removed_ids),
            total_vectors=self.index.ntotal,
        )

        return write.inserted_ids

    async def delete_by_document(self, document_id: int) -> int:
        """Remove all chunks of a document. Idempotent.

        Returns:
            Number of chunks removed
        """
        write = db.delete_chunks_by_document(document_id)
        if write.generation_before == self._generation:
            if write.removed_ids:
                self.index.remove_ids(np.array(write.removed_ids, dtype=np.int64))
            self._generation = write.generation_after
        else:
            self._rebuild()

        logger.info(
            "document_chunks_deleted",
            document_id=document_id,
            removed=len(write.removed_ids),
        )
        return len(write.removed_ids)

    def _search(self, query_vector: np.ndarray, k: int) -> List[Tuple[float, int]]:
        total = self.index.ntotal
        if total == 0:
            return []

        scores, _ = self.index.search(query_vector, min(k, total))
        kth_score = float(scores[0][-1])

        # Widen to every row tied with the k-th score so that insertion
        # order, not index internals, decides which ties make the cut
        lims, range_scores, range_ids = self.index.range_search(
            query_vector, kth_score - TIE_EPSILON
        )
        pairs = zip(range_scores[lims[0]:lims[1]].tolist(), range_ids[lims[0]:lims[1]].tolist())
        return _rank(pairs)[:k]

    async def query(self, vector: Sequence[float], k: int) -> List[ChunkMatch]:
        """Find the k chunks closest to vector by cosine distance.

        Args:
            vector: Query vector of length dimension
            k: Maximum number of results

        Returns:
            Matches ordered by ascending distance, then ascending insertion
            order; fewer than k if the store holds fewer rows

        Raises:
            ValidationError: If k <= 0 or the vector has the wrong length
        """
        if k <= 0:
            raise ValidationError(f"k must be positive, got {k}")

        query_vector = _normalize(self._as_matrix([vector]))

        self._sync()
        candidates = self._search(query_vector, k)
        chunks = db.get_chunks_by_ids([chunk_id for _, chunk_id in candidates])

        if len(chunks) < len(candidates):
            # Rows changed between the generation check and the read
            self._rebuild()
            candidates = self._search(query_vector, k)
            chunks = db.get_chunks_by_ids([chunk_id for _, chunk_id in candidates])

        matches = []
        for score, chunk_id in candidates:
            chunk = chunks.get(chunk_id)
            if chunk is None:
                logger.warning("chunk_not_found_for_vector", chunk_id=chunk_id)
                continue
            matches.append(
                ChunkMatch(
                    chunk_id=chunk_id,
                    document_id=chunk["document_id"],
                    document_name=chunk["document_name"],
                    content=chunk["content"],
                    chunk_index=chunk["chunk_index"],
                    distance=1.0 - score,
                )
            )

        logger.info(
            "vector_search_completed",
            k=k,
            results_found=len(matches),
        )

        return matches

    def get_stats(self) -> Dict[str, Any]:
        """Get statistics about the vector store."""
        return {
            "vector_count": self.index.ntotal,
            "dimension": self.dimension,
            "index_type": "IndexFlatIP",
            "generation": self._generation,
        }
