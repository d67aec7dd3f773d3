"""Construction of the service graph.

Every component receives its collaborators explicitly; the HTTP layer holds
exactly one :class:`Services` bundle, and tests build their own.
"""
from dataclasses import dataclass

import structlog

from ascleon import config
from ascleon.llm_client import GeminiClient
from ascleon.query_log import QueryLogWriter
from ascleon.rag.embedder import Embedder
from ascleon.rag.extractor import DocumentExtractor
from ascleon.rag.ingest import IngestPipeline
from ascleon.rag.models import VectorStore
from ascleon.rag.query import QueryPipeline
from ascleon.rag.store_sqlite import SQLiteVectorStore
from ascleon.rag.store_supabase import SupabaseVectorStore
from ascleon.triage import SkinTriage

logger = structlog.get_logger()


@dataclass
class Services:
    store: VectorStore
    ingest: IngestPipeline
    query: QueryPipeline
    triage: SkinTriage
    query_log: QueryLogWriter

    async def aclose(self) -> None:
        await self.query_log.drain()
        await self.store.close()


def build_store(backend: str = None) -> VectorStore:
    """Create the configured storage backend ("sqlite" or "supabase")."""
    backend = (backend or config.STORE_BACKEND).lower()
    if backend == "supabase":
        return SupabaseVectorStore()
    if backend == "sqlite":
        return SQLiteVectorStore()
    raise ValueError(f"Unknown STORE_BACKEND: {backend!r}")


def build_services(client: GeminiClient = None, store: VectorStore = None) -> Services:
    client = client or GeminiClient()
    store = store or build_store()

    embedder = Embedder(client)
    query_log = QueryLogWriter(store)

    services = Services(
        store=store,
        ingest=IngestPipeline(store, DocumentExtractor(client), embedder),
        query=QueryPipeline(client, embedder, store, query_log),
        triage=SkinTriage(client, query_log),
        query_log=query_log,
    )
    logger.info("services_built", store=type(store).__name__)
    return services
