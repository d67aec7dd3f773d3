"""Exception hierarchy shared by the RAG pipeline and the HTTP layer."""
from typing import Optional


class AscleonError(Exception):
    """Base class for all application errors."""


class GeminiError(AscleonError):
    """Gemini API call failed (transport error, non-2xx, or malformed body)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ExtractionError(AscleonError):
    """Document text could not be extracted."""


class IngestionError(AscleonError):
    """Ingestion run aborted before any chunk could be processed."""

    def __init__(self, message: str, document_id: Optional[str] = None):
        super().__init__(message)
        self.document_id = document_id


class QueryError(AscleonError):
    """Answer generation failed."""


class TriageError(AscleonError):
    """Skin image analysis failed."""


class StoreError(AscleonError):
    """Storage backend rejected or failed an operation."""
