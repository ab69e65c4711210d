"""Database initialization and helpers for KnowHub.

SQLite database for storing:
- Uploaded documents and their extracted text
- Chunk rows (text + raw embedding vector) owned by the vector store
- Question/answer history
"""
import sqlite3
import json
from typing import Optional, List, Dict, Any, NamedTuple, Sequence, Tuple
from datetime import datetime, timezone
import structlog

from knowhub import config
from knowhub.errors import NotFoundError, StorageError

logger = structlog.get_logger()

DB_PATH = config.DB_PATH


class ChunkWrite(NamedTuple):
    """Outcome of a chunk write and the chunk generation around it."""

    removed_ids: List[int]
    inserted_ids: List[int]
    generation_before: int
    generation_after: int


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def get_connection() -> sqlite3.Connection:
    """Get a connection to the SQLite database.

    Returns:
        sqlite3.Connection with row_factory set to sqlite3.Row and
        foreign keys enforced
    """
    conn = sqlite3.connect(DB_PATH)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def init_database() -> None:
    """Initialize the database schema.

    Creates tables if they don't exist:
    - documents: uploaded files and extracted text
    - chunks: text chunks with their embedding vectors
    - query_history: answered questions with their source documents
    """
    DB_PATH.parent.mkdir(parents=True, exist_ok=True)
    conn = get_connection()
    cursor = conn.cursor()

    try:
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS documents (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                filename TEXT NOT NULL,
                original_filename TEXT NOT NULL,
                content_type TEXT NOT NULL,
                file_size INTEGER NOT NULL,
                file_path TEXT NOT NULL,
                extracted_text TEXT,
                created_at TEXT NOT NULL
            )
        """)

        # AUTOINCREMENT keeps row ids monotonic, which is the tie-break
        # order for similarity search
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS chunks (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                document_id INTEGER NOT NULL
                    REFERENCES documents(id) ON DELETE CASCADE,
                chunk_index INTEGER NOT NULL,
                content TEXT NOT NULL,
                dimension INTEGER NOT NULL,
                embedding BLOB NOT NULL,
                created_at TEXT NOT NULL,
                UNIQUE(document_id, chunk_index)
            )
        """)

        # Bumped by triggers on every chunk insert or delete, including
        # cascades, so any process can tell its in-memory index is stale
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS chunk_generation (
                id INTEGER PRIMARY KEY CHECK (id = 1),
                value INTEGER NOT NULL
            )
        """)

        cursor.execute("""
            INSERT OR IGNORE INTO chunk_generation (id, value) VALUES (1, 0)
        """)

        cursor.execute("""
            CREATE TRIGGER IF NOT EXISTS chunks_generation_insert
            AFTER INSERT ON chunks
            BEGIN
                UPDATE chunk_generation SET value = value + 1 WHERE id = 1;
            END
        """)

        cursor.execute("""
            CREATE TRIGGER IF NOT EXISTS chunks_generation_delete
            AFTER DELETE ON chunks
            BEGIN
                UPDATE chunk_generation SET value = value + 1 WHERE id = 1;
            END
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS query_history (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                question TEXT NOT NULL,
                answer TEXT NOT NULL,
                context_documents_json TEXT NOT NULL,
                created_at TEXT NOT NULL
            )
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_documents_created_at
            ON documents(created_at DESC)
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_chunks_document_id
            ON chunks(document_id)
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_query_history_created_at
            ON query_history(created_at DESC)
        """)

        conn.commit()
        logger.info("database_initialized", db_path=str(DB_PATH))

    except sqlite3.Error as e:
        conn.rollback()
        logger.error("database_init_failed", error=str(e))
        raise StorageError(f"Failed to initialize database: {e}") from e
    finally:
        conn.close()


# Documents


def insert_document(
    filename: str,
    original_filename: str,
    content_type: str,
    file_size: int,
    file_path: str,
    extracted_text: str,
) -> Dict[str, Any]:
    """Insert an uploaded document.

    Returns:
        The inserted row as a dictionary
    """
    conn = get_connection()
    cursor = conn.cursor()
    created_at = _now()

    try:
        cursor.execute("""
            INSERT INTO documents (
                filename, original_filename, content_type, file_size,
                file_path, extracted_text, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
        """, (
            filename,
            original_filename,
            content_type,
            file_size,
            file_path,
            extracted_text,
            created_at,
        ))

        conn.commit()
        row_id = cursor.lastrowid
        logger.info("document_inserted", id=row_id, filename=original_filename)

        return {
            "id": row_id,
            "filename": filename,
            "original_filename": original_filename,
            "content_type": content_type,
            "file_size": file_size,
            "file_path": file_path,
            "extracted_text": extracted_text,
            "created_at": created_at,
        }

    except sqlite3.Error as e:
        conn.rollback()
        logger.error("document_insert_failed", error=str(e), filename=original_filename)
        raise StorageError(f"Failed to save document: {e}") from e
    finally:
        conn.close()


def get_document(document_id: int) -> Optional[Dict[str, Any]]:
    """Get a document row by ID, or None if it doesn't exist."""
    conn = get_connection()
    try:
        row = conn.execute(
            "SELECT * FROM documents WHERE id = ?", (document_id,)
        ).fetchone()
        return dict(row) if row else None
    except sqlite3.Error as e:
        logger.error("document_retrieval_failed", error=str(e), document_id=document_id)
        raise StorageError(f"Failed to read document: {e}") from e
    finally:
        conn.close()


def list_documents() -> List[Dict[str, Any]]:
    """List all documents, newest first."""
    conn = get_connection()
    try:
        rows = conn.execute(
            "SELECT * FROM documents ORDER BY created_at DESC, id DESC"
        ).fetchall()
        return [dict(row) for row in rows]
    except sqlite3.Error as e:
        logger.error("documents_list_failed", error=str(e))
        raise StorageError(f"Failed to list documents: {e}") from e
    finally:
        conn.close()


def delete_document(document_id: int) -> bool:
    """Delete a document row.

    Returns:
        True if deleted, False if not found
    """
    conn = get_connection()
    try:
        cursor = conn.execute("DELETE FROM documents WHERE id = ?", (document_id,))
        conn.commit()
        return cursor.rowcount > 0
    except sqlite3.Error as e:
        conn.rollback()
        logger.error("document_delete_failed", error=str(e), document_id=document_id)
        raise StorageError(f"Failed to delete document: {e}") from e
    finally:
        conn.close()


# Chunks


def _read_generation(conn: sqlite3.Connection) -> int:
    return conn.execute("SELECT value FROM chunk_generation WHERE id = 1").fetchone()[0]


def get_chunk_generation() -> int:
    """Current chunk generation; changes whenever any chunk row changes."""
    conn = get_connection()
    try:
        return _read_generation(conn)
    except sqlite3.Error as e:
        logger.error("chunk_generation_read_failed", error=str(e))
        raise StorageError(f"Failed to read chunk generation: {e}") from e
    finally:
        conn.close()


def replace_document_chunks(
    document_id: int,
    rows: Sequence[Tuple[str, int, int, bytes]],
) -> ChunkWrite:
    """Atomically replace every chunk row of a document.

    The existence check, the delete of the old rows and the insert of the
    new ones run in one IMMEDIATE transaction, so a concurrent document
    deletion either happens before (NotFoundError, nothing written) or
    after (cascade removes the new rows).

    Args:
        document_id: Owning document
        rows: (content, chunk_index, dimension, embedding_bytes) tuples

    Returns:
        ChunkWrite with the removed ids, the inserted ids in row order and
        the chunk generation before and after the write

    Raises:
        NotFoundError: If the document no longer exists
        StorageError: If the write fails (nothing is written)
    """
    conn = get_connection()
    conn.isolation_level = None
    created_at = _now()

    try:
        conn.execute("BEGIN IMMEDIATE")

        exists = conn.execute(
            "SELECT 1 FROM documents WHERE id = ?", (document_id,)
        ).fetchone()
        if not exists:
            conn.execute("ROLLBACK")
            raise NotFoundError(f"Document {document_id} not found")

        generation_before = _read_generation(conn)
        removed_ids = [
            row["id"]
            for row in conn.execute(
                "SELECT id FROM chunks WHERE document_id = ? ORDER BY id",
                (document_id,),
            )
        ]
        conn.execute("DELETE FROM chunks WHERE document_id = ?", (document_id,))

        inserted_ids = []
        for content, chunk_index, dimension, embedding in rows:
            cursor = conn.execute("""
                INSERT INTO chunks (
                    document_id, chunk_index, content, dimension,
                    embedding, created_at
                ) VALUES (?, ?, ?, ?, ?, ?)
            """, (document_id, chunk_index, content, dimension, embedding, created_at))
            inserted_ids.append(cursor.lastrowid)

        generation_after = _read_generation(conn)
        conn.execute("COMMIT")
        return ChunkWrite(removed_ids, inserted_ids, generation_before, generation_after)

    except sqlite3.Error as e:
        if conn.in_transaction:
            conn.execute("ROLLBACK")
        logger.error("chunk_batch_write_failed", error=str(e), document_id=document_id)
        raise StorageError(f"Failed to write chunks: {e}") from e
    finally:
        conn.close()


def delete_chunks_by_document(document_id: int) -> ChunkWrite:
    """Delete all chunks of a document.

    Returns:
        ChunkWrite whose removed_ids lists the deleted rows (empty if
        there were none)
    """
    conn = get_connection()
    conn.isolation_level = None
    try:
        conn.execute("BEGIN IMMEDIATE")
        generation_before = _read_generation(conn)
        ids = [
            row["id"]
            for row in conn.execute(
                "SELECT id FROM chunks WHERE document_id = ?", (document_id,)
            )
        ]
        conn.execute("DELETE FROM chunks WHERE document_id = ?", (document_id,))
        generation_after = _read_generation(conn)
        conn.execute("COMMIT")
        return ChunkWrite(ids, [], generation_before, generation_after)
    except sqlite3.Error as e:
        if conn.in_transaction:
            conn.execute("ROLLBACK")
        logger.error("chunks_delete_failed", error=str(e), document_id=document_id)
        raise StorageError(f"Failed to delete chunks: {e}") from e
    finally:
        conn.close()


def get_chunks_by_ids(chunk_ids: List[int]) -> Dict[int, Dict[str, Any]]:
    """Retrieve chunks with their owning document's display name.

    Args:
        chunk_ids: Chunk row IDs to retrieve

    Returns:
        Mapping of chunk id to chunk dictionary
    """
    if not chunk_ids:
        return {}

    conn = get_connection()
    try:
        placeholders = ",".join("?" * len(chunk_ids))
        rows = conn.execute(f"""
            SELECT
                c.id, c.document_id, c.chunk_index, c.content,
                d.original_filename AS document_name
            FROM chunks c
            JOIN documents d ON d.id = c.document_id
            WHERE c.id IN ({placeholders})
        """, chunk_ids).fetchall()
        return {row["id"]: dict(row) for row in rows}
    except sqlite3.Error as e:
        logger.error("chunks_retrieval_failed", error=str(e))
        raise StorageError(f"Failed to read chunks: {e}") from e
    finally:
        conn.close()


def get_chunk_snapshot() -> Tuple[int, List[Tuple[int, int, bytes]]]:
    """Return the chunk generation and (id, dimension, embedding_bytes) for
    every chunk, by id, read in one transaction."""
    conn = get_connection()
    conn.isolation_level = None
    try:
        conn.execute("BEGIN")
        generation = _read_generation(conn)
        rows = conn.execute(
            "SELECT id, dimension, embedding FROM chunks ORDER BY id"
        ).fetchall()
        conn.execute("COMMIT")
        return generation, [(row["id"], row["dimension"], row["embedding"]) for row in rows]
    except sqlite3.Error as e:
        if conn.in_transaction:
            conn.execute("ROLLBACK")
        logger.error("chunk_vectors_retrieval_failed", error=str(e))
        raise StorageError(f"Failed to read chunk vectors: {e}") from e
    finally:
        conn.close()


def get_chunk_count(document_id: Optional[int] = None) -> int:
    """Get the number of chunks, optionally for one document."""
    conn = get_connection()
    try:
        if document_id is None:
            row = conn.execute("SELECT COUNT(*) FROM chunks").fetchone()
        else:
            row = conn.execute(
                "SELECT COUNT(*) FROM chunks WHERE document_id = ?", (document_id,)
            ).fetchone()
        return row[0]
    except sqlite3.Error as e:
        logger.error("chunk_count_failed", error=str(e))
        raise StorageError(f"Failed to count chunks: {e}") from e
    finally:
        conn.close()


def clear_all_chunks() -> int:
    """Delete all chunks from the database.

    Used when rebuilding the index from scratch.

    Returns:
        Number of chunks deleted
    """
    conn = get_connection()
    try:
        count = conn.execute("SELECT COUNT(*) FROM chunks").fetchone()[0]
        conn.execute("DELETE FROM chunks")
        conn.commit()
        logger.info("chunks_cleared", count=count)
        return count
    except sqlite3.Error as e:
        conn.rollback()
        logger.error("chunks_clear_failed", error=str(e))
        raise StorageError(f"Failed to clear chunks: {e}") from e
    finally:
        conn.close()


# Query history


def insert_query_record(
    question: str,
    answer: str,
    context_documents: List[str],
    created_at: Optional[str] = None,
) -> Dict[str, Any]:
    """Append a question/answer interaction.

    Args:
        question: The user's question
        answer: The answer returned to the user
        context_documents: Ordered, distinct source document names
        created_at: ISO timestamp (defaults to now, UTC)

    Returns:
        The inserted row as a dictionary
    """
    conn = get_connection()
    cursor = conn.cursor()
    created_at = created_at or _now()

    try:
        cursor.execute("""
            INSERT INTO query_history (
                question, answer, context_documents_json, created_at
            ) VALUES (?, ?, ?, ?)
        """, (question, answer, json.dumps(context_documents), created_at))

        conn.commit()
        return {
            "id": cursor.lastrowid,
            "question": question,
            "answer": answer,
            "context_documents": list(context_documents),
            "created_at": created_at,
        }

    except sqlite3.Error as e:
        conn.rollback()
        logger.error("query_record_insert_failed", error=str(e))
        raise StorageError(f"Failed to save query history: {e}") from e
    finally:
        conn.close()


def get_recent_query_records(limit: int) -> List[Dict[str, Any]]:
    """Get the most recent query records, newest first."""
    conn = get_connection()
    try:
        rows = conn.execute("""
            SELECT * FROM query_history
            ORDER BY created_at DESC, id DESC
            LIMIT ?
        """, (limit,)).fetchall()

        records = []
        for row in rows:
            record = dict(row)
            record["context_documents"] = json.loads(record.pop("context_documents_json"))
            records.append(record)
        return records

    except sqlite3.Error as e:
        logger.error("query_history_retrieval_failed", error=str(e))
        raise StorageError(f"Failed to read query history: {e}") from e
    finally:
        conn.close()
