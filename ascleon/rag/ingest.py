"""Ingest pipeline for uploaded documents.

Orchestrates:
- Document record creation
- Text extraction
- Word chunking
- Per-chunk embedding and storage
- Final document status
"""
import asyncio
import uuid
from dataclasses import dataclass
from typing import Optional

import structlog

from ascleon import config
from ascleon.errors import ExtractionError, IngestionError, StoreError
from ascleon.rag.chunker import TextChunk, TextChunker
from ascleon.rag.embedder import Embedder
from ascleon.rag.extractor import DocumentExtractor
from ascleon.rag.models import DocumentStatus, VectorStore

logger = structlog.get_logger()


@dataclass
class IngestResult:
    """Outcome of one ingestion run."""

    document_id: str
    chunk_count: int
    chunks_expected: int
    status: str


def resolve_status(chunks_expected: int, chunks_written: int) -> DocumentStatus:
    """Terminal status for a run given how many chunks made it to the store."""
    if chunks_written >= chunks_expected:
        return DocumentStatus.COMPLETED
    if chunks_written == 0:
        return DocumentStatus.FAILED
    return DocumentStatus.PARTIAL


class IngestPipeline:
    """Pipeline for turning an uploaded document into searchable chunks."""

    def __init__(
        self,
        store: VectorStore,
        extractor: DocumentExtractor,
        embedder: Embedder,
        chunker: Optional[TextChunker] = None,
        concurrency: int = None,
    ):
        """Initialize the ingest pipeline.

        Args:
            store: Storage backend for documents and chunks
            extractor: Document text extractor
            embedder: Best-effort embedder
            chunker: Word chunker (default size from config)
            concurrency: Chunks embedded and stored at once (default from config)
        """
        self.store = store
        self.extractor = extractor
        self.embedder = embedder
        self.chunker = chunker or TextChunker()
        self.concurrency = max(1, concurrency or config.INGEST_CONCURRENCY)

        logger.info(
            "ingest_pipeline_initialized",
            chunk_size=self.chunker.chunk_size,
            concurrency=self.concurrency,
        )

    async def ingest(
        self,
        data: bytes,
        display_name: str,
        size: Optional[int] = None,
        mime_type: str = "application/pdf",
    ) -> IngestResult:
        """Ingest a single document.

        Args:
            data: Raw document bytes
            display_name: Original file name shown to admins
            size: Reported file size (defaults to len(data))
            mime_type: MIME type of the document

        Returns:
            IngestResult with the number of chunk rows actually written

        Raises:
            IngestionError: If the document record cannot be created or text
                extraction fails
        """
        document_id = str(uuid.uuid4())
        file_size = size if size is not None else len(data)

        logger.info(
            "ingesting_document",
            document_id=document_id,
            name=display_name,
            size=file_size,
        )

        try:
            await self.store.create_document(document_id, display_name, file_size)
        except StoreError as e:
            raise IngestionError(f"Failed to create document record: {e}") from e

        try:
            text = await self.extractor.extract(data, mime_type=mime_type)
        except ExtractionError as e:
            await self._mark(document_id, DocumentStatus.FAILED, 0, 0)
            raise IngestionError(str(e), document_id=document_id) from e

        chunks = self.chunker.chunk_text(text)

        semaphore = asyncio.Semaphore(self.concurrency)
        outcomes = await asyncio.gather(
            *(self._store_chunk(document_id, chunk, semaphore) for chunk in chunks)
        )
        written = sum(1 for ok in outcomes if ok)

        status = resolve_status(len(chunks), written)
        await self._mark(document_id, status, len(chunks), written)

        log = logger.info if status is DocumentStatus.COMPLETED else logger.warning
        log(
            "document_ingested",
            document_id=document_id,
            status=status.value,
            chunks_expected=len(chunks),
            chunks_written=written,
            **self.chunker.get_chunk_stats(chunks),
        )

        return IngestResult(
            document_id=document_id,
            chunk_count=written,
            chunks_expected=len(chunks),
            status=status.value,
        )

    async def _store_chunk(
        self, document_id: str, chunk: TextChunk, semaphore: asyncio.Semaphore
    ) -> bool:
        """Embed and insert one chunk. Failures are logged, never raised."""
        async with semaphore:
            embedding = await self.embedder.embed(chunk.content)
            if embedding is None:
                logger.error(
                    "chunk_embedding_missing",
                    document_id=document_id,
                    chunk_index=chunk.chunk_index,
                )
                return False

            try:
                await self.store.insert_chunk(
                    document_id, chunk.content, chunk.chunk_index, embedding
                )
            except StoreError as e:
                logger.error(
                    "chunk_store_failed",
                    document_id=document_id,
                    chunk_index=chunk.chunk_index,
                    error=str(e),
                )
                return False

            return True

    async def _mark(
        self,
        document_id: str,
        status: DocumentStatus,
        chunks_expected: int,
        chunks_written: int,
    ) -> None:
        try:
            await self.store.update_document_status(
                document_id,
                status,
                chunks_expected=chunks_expected,
                chunks_written=chunks_written,
            )
        except StoreError as e:
            # The run's outcome is still reported to the caller
            logger.error(
                "document_status_update_failed",
                document_id=document_id,
                status=status.value,
                error=str(e),
            )
