"""Application configuration with sensible defaults."""
import os
from pathlib import Path

# Paths
BASE_DIR = Path(__file__).parent.parent
DATA_DIR = Path(os.getenv("KNOWHUB_DATA_DIR", str(BASE_DIR / "data")))
UPLOAD_DIR = Path(os.getenv("KNOWHUB_UPLOAD_DIR", str(DATA_DIR / "uploads")))

# Database
DB_PATH = DATA_DIR / "knowhub.sqlite"

# Ollama configuration
OLLAMA_BASE_URL = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
OLLAMA_TIMEOUT = float(os.getenv("OLLAMA_TIMEOUT", "60.0"))
CHAT_MODEL = os.getenv("CHAT_MODEL", "gemma3:12b")
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "mxbai-embed-large:latest")
# 0 means "ask the embedding model at startup"
EMBEDDING_DIMENSION = int(os.getenv("EMBEDDING_DIMENSION", "0"))

# RAG parameters (character-based, overlap is carried over as words)
CHUNK_SIZE = int(os.getenv("CHUNK_SIZE", "1000"))
CHUNK_OVERLAP = int(os.getenv("CHUNK_OVERLAP", "200"))
RETRIEVAL_TOP_K = int(os.getenv("RETRIEVAL_TOP_K", "5"))
HISTORY_LIMIT = int(os.getenv("HISTORY_LIMIT", "20"))

# Background ingestion
INGEST_MAX_WORKERS = int(os.getenv("INGEST_MAX_WORKERS", "4"))

# Document list cache
DOCUMENT_CACHE_TTL = float(os.getenv("DOCUMENT_CACHE_TTL", "300"))
DOCUMENT_CACHE_MAX_ENTRIES = int(os.getenv("DOCUMENT_CACHE_MAX_ENTRIES", "16"))

# Request limits
MAX_QUESTION_LENGTH = int(os.getenv("MAX_QUESTION_LENGTH", "2000"))
MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))

# Prompting
NO_CONTEXT_ANSWER = (
    "I don't have any relevant documents to answer your question. "
    "Please upload some documents first."
)

PROMPT_TEMPLATE = """You are a helpful AI assistant that answers questions based on the provided context.
Use the following context to answer the user's question accurately and concisely.
If the context doesn't contain enough information to answer the question, say so clearly.

Context:
{context}

Question: {question}

Answer:
"""

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


def ensure_directories() -> None:
    """Create the data and upload directories if they don't exist."""
    DATA_DIR.mkdir(parents=True, exist_ok=True)
    UPLOAD_DIR.mkdir(parents=True, exist_ok=True)
