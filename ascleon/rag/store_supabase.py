"""Supabase (PostgREST + pgvector) storage backend.

Talks to the hosted project's REST endpoint with the service-role key:
- ``documents``, ``embeddings`` and ``queries`` tables
- ``match_embeddings`` stored procedure for similarity search

Cascade deletion of embeddings and the similarity metric live in the
database (see ``sql/supabase_schema.sql``).
"""
import uuid
from typing import Any, Dict, List, Optional

import httpx
import structlog

from ascleon import config
from ascleon.errors import StoreError
from ascleon.rag.models import Document, DocumentStatus, QueryLog, QueryType

logger = structlog.get_logger()


class SupabaseVectorStore:
    """PostgREST implementation of the store contract."""

    def __init__(
        self,
        url: str = None,
        service_key: str = None,
        timeout: float = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the Supabase store.

        Args:
            url: Project URL (defaults to config.SUPABASE_URL)
            service_key: Service-role key (defaults to config.SUPABASE_SERVICE_ROLE_KEY)
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.url = (url or config.SUPABASE_URL).rstrip("/")
        self.service_key = service_key or config.SUPABASE_SERVICE_ROLE_KEY
        self.timeout = timeout if timeout is not None else config.SUPABASE_TIMEOUT
        self._transport = transport

        if not self.url or not self.service_key:
            raise StoreError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set")

        logger.info("supabase_store_initialized", url=self.url)

    @property
    def rest_url(self) -> str:
        return f"{self.url}/rest/v1"

    def _headers(self, prefer: Optional[str] = None) -> Dict[str, str]:
        headers = {
            "apikey": self.service_key,
            "Authorization": f"Bearer {self.service_key}",
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
        prefer: Optional[str] = None,
    ) -> httpx.Response:
        """Send a PostgREST request and raise StoreError on failure."""
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.request(
                    method,
                    f"{self.rest_url}/{path}",
                    params=params,
                    json=json,
                    headers=self._headers(prefer),
                )
                response.raise_for_status()
                return response

        except httpx.HTTPStatusError as e:
            logger.error(
                "supabase_http_error",
                method=method,
                path=path,
                status_code=e.response.status_code,
                body=e.response.text[:500],
            )
            raise StoreError(
                f"Supabase {method} {path} returned {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            logger.error("supabase_connection_error", method=method, path=path, error=str(e))
            raise StoreError(f"Supabase {method} {path} failed: {e}") from e

    async def _count(self, table: str, params: Optional[Dict[str, str]] = None) -> int:
        """Exact row count via the Content-Range header (``*/N`` or ``0-9/N``)."""
        query = {"select": "id"}
        query.update(params or {})
        response = await self._request("HEAD", table, params=query, prefer="count=exact")
        content_range = response.headers.get("content-range", "")
        total = content_range.rpartition("/")[2]
        if not total.isdigit():
            raise StoreError(f"Missing row count for {table}: {content_range!r}")
        return int(total)

    async def create_document(
        self, document_id: str, original_name: str, file_size: int
    ) -> Document:
        response = await self._request(
            "POST",
            "documents",
            json={
                "id": document_id,
                "filename": f"{document_id}.pdf",
                "original_name": original_name,
                "file_size": file_size,
                "status": DocumentStatus.PROCESSING.value,
            },
            prefer="return=representation",
        )
        rows = response.json()
        if not rows:
            raise StoreError("Document insert returned no representation")

        logger.info("document_created", document_id=document_id)
        return Document.from_row(rows[0])

    async def update_document_status(
        self,
        document_id: str,
        status: DocumentStatus,
        chunks_expected: Optional[int] = None,
        chunks_written: Optional[int] = None,
    ) -> None:
        body: Dict[str, Any] = {"status": DocumentStatus(status).value}
        if chunks_expected is not None:
            body["chunks_expected"] = chunks_expected
        if chunks_written is not None:
            body["chunks_written"] = chunks_written

        await self._request(
            "PATCH", "documents", params={"id": f"eq.{document_id}"}, json=body
        )
        logger.info("document_status_updated", document_id=document_id, status=status)

    async def get_document(self, document_id: str) -> Optional[Document]:
        response = await self._request(
            "GET", "documents", params={"select": "*", "id": f"eq.{document_id}"}
        )
        rows = response.json()
        return Document.from_row(rows[0]) if rows else None

    async def list_documents(self) -> List[Document]:
        response = await self._request(
            "GET", "documents", params={"select": "*", "order": "uploaded_at.desc"}
        )
        return [Document.from_row(row) for row in response.json()]

    async def delete_document(self, document_id: str) -> bool:
        response = await self._request(
            "DELETE",
            "documents",
            params={"id": f"eq.{document_id}"},
            prefer="return=representation",
        )
        deleted = bool(response.json())
        logger.info("document_deleted", document_id=document_id, deleted=deleted)
        return deleted

    async def insert_chunk(
        self,
        document_id: str,
        chunk_text: str,
        chunk_index: int,
        embedding: List[float],
    ) -> None:
        await self._request(
            "POST",
            "embeddings",
            json={
                "document_id": document_id,
                "chunk_text": chunk_text,
                "chunk_index": chunk_index,
                "embedding": list(embedding),
            },
            prefer="return=minimal",
        )

    async def count_chunks(self, document_id: Optional[str] = None) -> int:
        params = {"document_id": f"eq.{document_id}"} if document_id else None
        return await self._count("embeddings", params)

    async def search(
        self,
        query_embedding: List[float],
        similarity_threshold: float,
        top_k: int,
    ) -> List[str]:
        try:
            response = await self._request(
                "POST",
                "rpc/match_embeddings",
                json={
                    "query_embedding": list(query_embedding),
                    "match_threshold": similarity_threshold,
                    "match_count": top_k,
                },
            )
            results = [row["chunk_text"] for row in response.json()][:top_k]
        except (StoreError, ValueError, KeyError, TypeError) as e:
            logger.error("vector_search_failed", error=str(e), error_type=type(e).__name__)
            return []

        logger.info("vector_search_completed", results_returned=len(results))
        return results

    async def insert_query_log(
        self,
        user_id: str,
        question: str,
        answer: str,
        language: str,
        query_type: QueryType,
    ) -> None:
        await self._request(
            "POST",
            "queries",
            json={
                "id": str(uuid.uuid4()),
                "user_id": user_id,
                "question": question,
                "answer": answer,
                "language": language,
                "query_type": QueryType(query_type).value,
            },
            prefer="return=minimal",
        )

    async def list_query_logs(self, limit: int = 50) -> List[QueryLog]:
        response = await self._request(
            "GET",
            "queries",
            params={
                "select": "id,user_id,question,answer,language,query_type,created_at",
                "order": "created_at.desc",
                "limit": str(limit),
            },
        )
        return [QueryLog.from_row(row) for row in response.json()]

    async def stats(self) -> Dict[str, int]:
        return {
            "documents": await self._count("documents"),
            "chunks": await self._count("embeddings"),
            "queries": await self._count("queries"),
        }

    async def ping(self) -> bool:
        try:
            await self._request("GET", "documents", params={"select": "id", "limit": "1"})
            return True
        except StoreError:
            return False

    async def close(self) -> None:
        """Clients are per-request; nothing to release."""
