"""Fire-and-forget query log writes.

Answers are returned before their log row is written. Each write runs as a
background task; failures are logged and dropped so they can never change
what the user sees.
"""
import asyncio
from typing import Optional, Set

import structlog

from ascleon.rag.models import QueryType, VectorStore

logger = structlog.get_logger()


class QueryLogWriter:
    """Dispatches query-log inserts without making callers wait for them."""

    def __init__(self, store: VectorStore):
        self.store = store
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def submit(
        self,
        user_id: Optional[str],
        question: str,
        answer: str,
        language: str,
        query_type: QueryType,
    ) -> Optional[asyncio.Task]:
        """Schedule a log write. Anonymous interactions are not logged.

        Must be called from a running event loop.
        """
        if not user_id:
            logger.debug("query_log_skipped_anonymous", query_type=QueryType(query_type).value)
            return None

        task = asyncio.create_task(
            self._write(user_id, question, answer, language, QueryType(query_type))
        )
        # Keep a reference until done so the task is not garbage collected
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _write(
        self,
        user_id: str,
        question: str,
        answer: str,
        language: str,
        query_type: QueryType,
    ) -> None:
        try:
            await self.store.insert_query_log(user_id, question, answer, language, query_type)
            logger.info("query_logged", user_id=user_id, query_type=query_type.value)
        except Exception as e:
            logger.error(
                "query_log_write_failed",
                user_id=user_id,
                query_type=query_type.value,
                error=str(e),
                error_type=type(e).__name__,
            )

    async def drain(self) -> None:
        """Wait for outstanding writes (used at shutdown and in tests)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
