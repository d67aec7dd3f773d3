"""SQLite storage with FAISS similarity search.

Local backend used for development and tests. Stores:
- Uploaded documents and their ingestion status
- Chunk text with float32 embeddings (cascade-deleted with the document)
- Query logs

Search loads the stored vectors into an exact inner-product FAISS index over
L2-normalised vectors, so scores are cosine similarities.
"""
import sqlite3
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

import faiss
import numpy as np
import structlog

from ascleon import config
from ascleon.errors import StoreError
from ascleon.rag.models import Document, DocumentStatus, QueryLog, QueryType

logger = structlog.get_logger()

SCHEMA = """
CREATE TABLE IF NOT EXISTS documents (
    id TEXT PRIMARY KEY,
    filename TEXT NOT NULL,
    original_name TEXT NOT NULL,
    file_size INTEGER NOT NULL DEFAULT 0,
    status TEXT NOT NULL DEFAULT 'processing',
    chunks_expected INTEGER NOT NULL DEFAULT 0,
    chunks_written INTEGER NOT NULL DEFAULT 0,
    uploaded_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS embeddings (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    document_id TEXT NOT NULL REFERENCES documents(id) ON DELETE CASCADE,
    chunk_text TEXT NOT NULL,
    chunk_index INTEGER NOT NULL,
    embedding BLOB NOT NULL,
    dimension INTEGER NOT NULL,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_embeddings_document_id ON embeddings(document_id);

CREATE TABLE IF NOT EXISTS queries (
    id TEXT PRIMARY KEY,
    user_id TEXT,
    question TEXT NOT NULL,
    answer TEXT NOT NULL,
    language TEXT NOT NULL DEFAULT 'en',
    query_type TEXT NOT NULL,
    created_at TEXT NOT NULL
);
"""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SQLiteVectorStore:
    """SQLite + FAISS implementation of the store contract."""

    def __init__(self, db_path: Path = None):
        """Initialize the store and create the schema if needed.

        Args:
            db_path: SQLite database file (default from config)
        """
        self.db_path = Path(db_path or config.DB_PATH)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.init_schema()

    def get_connection(self) -> sqlite3.Connection:
        """Get a connection with foreign keys enforced and dict-like rows.

        Raises:
            StoreError: If the database cannot be opened
        """
        try:
            conn = sqlite3.connect(self.db_path)
        except sqlite3.Error as e:
            logger.error("database_connect_failed", error=str(e), db_path=str(self.db_path))
            raise StoreError(f"Failed to open database: {e}") from e

        conn.row_factory = sqlite3.Row
        try:
            conn.execute("PRAGMA foreign_keys = ON")
        except sqlite3.Error as e:
            conn.close()
            logger.error("database_connect_failed", error=str(e), db_path=str(self.db_path))
            raise StoreError(f"Failed to configure database connection: {e}") from e
        return conn

    def init_schema(self) -> None:
        conn = self.get_connection()
        try:
            conn.executescript(SCHEMA)
            conn.commit()
            logger.info("database_initialized", db_path=str(self.db_path))
        except sqlite3.Error as e:
            conn.rollback()
            logger.error("database_init_failed", error=str(e))
            raise StoreError(f"Failed to initialize database: {e}") from e
        finally:
            conn.close()

    async def create_document(
        self, document_id: str, original_name: str, file_size: int
    ) -> Document:
        document = Document(
            id=document_id,
            original_name=original_name,
            stored_filename=f"{document_id}.pdf",
            file_size=file_size,
            status=DocumentStatus.PROCESSING.value,
            uploaded_at=_now(),
        )

        conn = self.get_connection()
        try:
            conn.execute(
                """
                INSERT INTO documents (
                    id, filename, original_name, file_size, status, uploaded_at
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    document.id,
                    document.stored_filename,
                    document.original_name,
                    document.file_size,
                    document.status,
                    document.uploaded_at,
                ),
            )
            conn.commit()
            logger.info("document_created", document_id=document_id)
            return document

        except sqlite3.Error as e:
            conn.rollback()
            logger.error("document_create_failed", error=str(e), document_id=document_id)
            raise StoreError(f"Failed to create document record: {e}") from e
        finally:
            conn.close()

    async def update_document_status(
        self,
        document_id: str,
        status: DocumentStatus,
        chunks_expected: Optional[int] = None,
        chunks_written: Optional[int] = None,
    ) -> None:
        conn = self.get_connection()
        try:
            conn.execute(
                """
                UPDATE documents SET
                    status = ?,
                    chunks_expected = COALESCE(?, chunks_expected),
                    chunks_written = COALESCE(?, chunks_written)
                WHERE id = ?
                """,
                (DocumentStatus(status).value, chunks_expected, chunks_written, document_id),
            )
            conn.commit()
            logger.info("document_status_updated", document_id=document_id, status=status)

        except sqlite3.Error as e:
            conn.rollback()
            logger.error("document_status_update_failed", error=str(e), document_id=document_id)
            raise StoreError(f"Failed to update document status: {e}") from e
        finally:
            conn.close()

    async def get_document(self, document_id: str) -> Optional[Document]:
        conn = self.get_connection()
        try:
            row = conn.execute(
                "SELECT * FROM documents WHERE id = ?", (document_id,)
            ).fetchone()
            return Document.from_row(dict(row)) if row else None
        except sqlite3.Error as e:
            logger.error("document_get_failed", error=str(e), document_id=document_id)
            raise StoreError(f"Failed to load document: {e}") from e
        finally:
            conn.close()

    async def list_documents(self) -> List[Document]:
        conn = self.get_connection()
        try:
            rows = conn.execute(
                "SELECT * FROM documents ORDER BY uploaded_at DESC, rowid DESC"
            ).fetchall()
            return [Document.from_row(dict(row)) for row in rows]
        except sqlite3.Error as e:
            logger.error("documents_list_failed", error=str(e))
            raise StoreError(f"Failed to list documents: {e}") from e
        finally:
            conn.close()

    async def delete_document(self, document_id: str) -> bool:
        """Delete a document; its chunks go with it via ON DELETE CASCADE.

        Returns:
            True if a document was deleted
        """
        conn = self.get_connection()
        try:
            cursor = conn.execute("DELETE FROM documents WHERE id = ?", (document_id,))
            conn.commit()
            deleted = cursor.rowcount > 0
            logger.info("document_deleted", document_id=document_id, deleted=deleted)
            return deleted
        except sqlite3.Error as e:
            conn.rollback()
            logger.error("document_delete_failed", error=str(e), document_id=document_id)
            raise StoreError(f"Failed to delete document: {e}") from e
        finally:
            conn.close()

    async def insert_chunk(
        self,
        document_id: str,
        chunk_text: str,
        chunk_index: int,
        embedding: List[float],
    ) -> None:
        vector = np.asarray(embedding, dtype=np.float32)
        if vector.ndim != 1 or vector.size == 0:
            raise StoreError(f"Embedding must be a non-empty vector, got shape {vector.shape}")

        conn = self.get_connection()
        try:
            conn.execute(
                """
                INSERT INTO embeddings (
                    document_id, chunk_text, chunk_index, embedding, dimension, created_at
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    document_id,
                    chunk_text,
                    chunk_index,
                    vector.tobytes(),
                    int(vector.size),
                    _now(),
                ),
            )
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            logger.error(
                "chunk_insert_failed",
                error=str(e),
                document_id=document_id,
                chunk_index=chunk_index,
            )
            raise StoreError(f"Failed to insert chunk {chunk_index}: {e}") from e
        finally:
            conn.close()

    async def count_chunks(self, document_id: Optional[str] = None) -> int:
        conn = self.get_connection()
        try:
            if document_id is None:
                row = conn.execute("SELECT COUNT(*) FROM embeddings").fetchone()
            else:
                row = conn.execute(
                    "SELECT COUNT(*) FROM embeddings WHERE document_id = ?",
                    (document_id,),
                ).fetchone()
            return row[0]
        except sqlite3.Error as e:
            logger.error("chunk_count_failed", error=str(e))
            raise StoreError(f"Failed to count chunks: {e}") from e
        finally:
            conn.close()

    async def get_chunks(self, document_id: str) -> List[Dict]:
        """Chunk rows of a document ordered by chunk_index (without vectors)."""
        conn = self.get_connection()
        try:
            rows = conn.execute(
                """
                SELECT id, document_id, chunk_text, chunk_index, dimension
                FROM embeddings WHERE document_id = ?
                ORDER BY chunk_index
                """,
                (document_id,),
            ).fetchall()
            return [dict(row) for row in rows]
        except sqlite3.Error as e:
            logger.error("chunks_retrieval_failed", error=str(e), document_id=document_id)
            raise StoreError(f"Failed to load chunks: {e}") from e
        finally:
            conn.close()

    async def search(
        self,
        query_embedding: List[float],
        similarity_threshold: float,
        top_k: int,
    ) -> List[str]:
        """Cosine-similarity search over stored chunks.

        Rows whose dimension differs from the query are ignored. Ties are
        broken by insertion order.
        """
        try:
            return self._search(query_embedding, similarity_threshold, top_k)
        except Exception as e:
            logger.error("vector_search_failed", error=str(e), error_type=type(e).__name__)
            return []

    def _search(
        self,
        query_embedding: List[float],
        similarity_threshold: float,
        top_k: int,
    ) -> List[str]:
        query = np.asarray([query_embedding], dtype=np.float32)
        dimension = query.shape[1]

        if top_k <= 0 or dimension == 0:
            return []

        conn = self.get_connection()
        try:
            rows = conn.execute(
                "SELECT id, chunk_text, embedding FROM embeddings WHERE dimension = ? ORDER BY id",
                (dimension,),
            ).fetchall()
        finally:
            conn.close()

        if not rows:
            logger.info("vector_search_empty_store", dimension=dimension)
            return []

        vectors = np.vstack(
            [np.frombuffer(row["embedding"], dtype=np.float32) for row in rows]
        ).copy()
        faiss.normalize_L2(vectors)
        faiss.normalize_L2(query)

        index = faiss.IndexFlatIP(dimension)
        index.add(vectors)

        # Search everything so ties at the cut-off are resolved by row id below
        scores, positions = index.search(query, len(rows))

        matches = [
            (float(score), rows[position]["id"], rows[position]["chunk_text"])
            for score, position in zip(scores[0].tolist(), positions[0].tolist())
            if position >= 0 and score > similarity_threshold
        ]
        matches.sort(key=lambda match: (-match[0], match[1]))
        results = [text for _, _, text in matches[:top_k]]

        logger.info(
            "vector_search_completed",
            candidates=len(rows),
            above_threshold=len(matches),
            results_returned=len(results),
            top_score=matches[0][0] if matches else None,
        )
        return results

    async def insert_query_log(
        self,
        user_id: str,
        question: str,
        answer: str,
        language: str,
        query_type: QueryType,
    ) -> None:
        conn = self.get_connection()
        try:
            conn.execute(
                """
                INSERT INTO queries (
                    id, user_id, question, answer, language, query_type, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    str(uuid.uuid4()),
                    user_id,
                    question,
                    answer,
                    language,
                    QueryType(query_type).value,
                    _now(),
                ),
            )
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            logger.error("query_log_insert_failed", error=str(e))
            raise StoreError(f"Failed to insert query log: {e}") from e
        finally:
            conn.close()

    async def list_query_logs(self, limit: int = 50) -> List[QueryLog]:
        conn = self.get_connection()
        try:
            rows = conn.execute(
                "SELECT * FROM queries ORDER BY created_at DESC, rowid DESC LIMIT ?",
                (limit,),
            ).fetchall()
            return [QueryLog.from_row(dict(row)) for row in rows]
        except sqlite3.Error as e:
            logger.error("query_logs_list_failed", error=str(e))
            raise StoreError(f"Failed to list query logs: {e}") from e
        finally:
            conn.close()

    async def stats(self) -> Dict[str, int]:
        conn = self.get_connection()
        try:
            tables = {"documents": "documents", "chunks": "embeddings", "queries": "queries"}
            return {
                key: conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
                for key, table in tables.items()
            }
        except sqlite3.Error as e:
            logger.error("stats_failed", error=str(e))
            raise StoreError(f"Failed to compute stats: {e}") from e
        finally:
            conn.close()

    async def ping(self) -> bool:
        try:
            conn = self.get_connection()
        except StoreError:
            return False
        try:
            conn.execute("SELECT 1").fetchone()
            return True
        except sqlite3.Error as e:
            logger.error("database_ping_failed", error=str(e))
            return False
        finally:
            conn.close()

    async def close(self) -> None:
        """Connections are per-call; nothing to release."""
