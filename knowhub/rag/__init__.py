"""RAG (Retrieval-Augmented Generation) pipeline components.

This package contains modules for:
- Text extraction from uploaded files
- Sentence-based chunking with overlap
- FAISS-backed vector storage and cosine search
- Semantic retrieval and context assembly
- Background ingestion and question answering
"""
