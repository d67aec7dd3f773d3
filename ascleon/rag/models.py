"""Records persisted by the storage backends and the store contract."""
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Protocol


class DocumentStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"


class QueryType(str, Enum):
    MEDICAL = "medical"
    EMERGENCY = "emergency"
    SKIN = "skin"


@dataclass
class Document:
    """An uploaded source document."""

    id: str
    original_name: str
    stored_filename: str
    file_size: int
    status: str
    uploaded_at: str
    chunks_expected: int = 0
    chunks_written: int = 0

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Document":
        return cls(
            id=str(row["id"]),
            original_name=row["original_name"],
            stored_filename=row["filename"],
            file_size=row["file_size"] or 0,
            status=row["status"],
            uploaded_at=str(row["uploaded_at"]),
            chunks_expected=row.get("chunks_expected") or 0,
            chunks_written=row.get("chunks_written") or 0,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class QueryLog:
    """One answered interaction."""

    id: str
    user_id: Optional[str]
    question: str
    answer: str
    language: str
    query_type: str
    created_at: str

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "QueryLog":
        return cls(
            id=str(row["id"]),
            user_id=str(row["user_id"]) if row.get("user_id") is not None else None,
            question=row["question"],
            answer=row.get("answer") or "",
            language=row.get("language") or "en",
            query_type=row["query_type"],
            created_at=str(row["created_at"]),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class VectorStore(Protocol):
    """Operations every storage backend provides.

    ``search`` must return chunk texts ordered by descending similarity,
    at most ``top_k`` of them, each strictly above ``similarity_threshold``,
    and must return an empty list instead of raising on backend failure.
    """

    async def create_document(
        self, document_id: str, original_name: str, file_size: int
    ) -> Document: ...

    async def update_document_status(
        self,
        document_id: str,
        status: DocumentStatus,
        chunks_expected: Optional[int] = None,
        chunks_written: Optional[int] = None,
    ) -> None: ...

    async def get_document(self, document_id: str) -> Optional[Document]: ...

    async def list_documents(self) -> List[Document]: ...

    async def delete_document(self, document_id: str) -> bool: ...

    async def insert_chunk(
        self,
        document_id: str,
        chunk_text: str,
        chunk_index: int,
        embedding: List[float],
    ) -> None: ...

    async def count_chunks(self, document_id: Optional[str] = None) -> int: ...

    async def search(
        self,
        query_embedding: List[float],
        similarity_threshold: float,
        top_k: int,
    ) -> List[str]: ...

    async def insert_query_log(
        self,
        user_id: str,
        question: str,
        answer: str,
        language: str,
        query_type: QueryType,
    ) -> None: ...

    async def list_query_logs(self, limit: int = 50) -> List[QueryLog]: ...

    async def stats(self) -> Dict[str, int]: ...

    async def ping(self) -> bool: ...

    async def close(self) -> None: ...
