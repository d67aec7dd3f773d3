"""RAG (Retrieval-Augmented Generation) pipeline components.

This package contains modules for:
- PDF text extraction
- Word-based document chunking
- Embedding generation
- Document, chunk and query-log storage (SQLite/FAISS or Supabase)
- Ingestion and query orchestration
"""
