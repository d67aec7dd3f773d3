"""Best-effort text embedding."""
from typing import List, Optional

import structlog

from ascleon.errors import GeminiError
from ascleon.llm_client import GeminiClient

logger = structlog.get_logger()


class Embedder:
    """Wraps the embedding API so that failures degrade to "no embedding".

    Ingestion skips chunks without an embedding and queries proceed without
    retrieval context, so :meth:`embed` never raises for remote errors.
    """

    def __init__(self, client: GeminiClient):
        self.client = client

    async def embed(self, text: str) -> Optional[List[float]]:
        if not text or not text.strip():
            logger.warning("embedding_skipped_empty_text")
            return None

        try:
            return await self.client.embed_content(text)
        except GeminiError as e:
            logger.warning(
                "embedding_failed",
                error=str(e),
                status_code=e.status_code,
                text_preview=text[:100],
            )
            return None
