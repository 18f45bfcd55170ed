"""Best-effort insight cache in front of the insight store.

Nothing here ever raises into a transformation: store and embedding failures
are logged and turned into cache misses or dropped writes.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from ..models.insight import Insight, InsightCreate
from ..models.transformation import SourceType
from .embedding_service import EmbeddingService
from .insight_store import InsightStore

logger = logging.getLogger(__name__)


class PersistenceQueue:
    """Serial background writer for insights.

    Writes are queued on an ``asyncio.Queue`` and applied by a single worker
    task so enqueueing never waits on the store.
    """

    def __init__(self, cache: "InsightCache") -> None:
        self._cache = cache
        self._queue: Optional[asyncio.Queue[InsightCreate]] = None
        self._worker: Optional[asyncio.Task[None]] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def _ensure_worker(self) -> asyncio.Queue[InsightCreate]:
        loop = asyncio.get_running_loop()
        if self._queue is None or self._loop is not loop:
            self._queue = asyncio.Queue()
            self._loop = loop
            self._worker = None
        if self._worker is None or self._worker.done():
            self._worker = loop.create_task(self._run(self._queue))
        return self._queue

    async def _run(self, queue: asyncio.Queue[InsightCreate]) -> None:
        while True:
            insight = await queue.get()
            try:
                await self._cache.store(insight)
            except Exception:
                logger.exception("Background insight write failed for %s", insight.source_path)
            finally:
                queue.task_done()

    def enqueue(self, insight: InsightCreate) -> None:
        """Schedule ``insight`` for storage. Must be called from a running loop."""
        self._ensure_worker().put_nowait(insight)

    @property
    def pending(self) -> int:
        return self._queue.qsize() if self._queue is not None else 0

    async def drain(self) -> None:
        """Wait until every queued write has been attempted."""
        if self._queue is not None and self._loop is asyncio.get_running_loop():
            await self._queue.join()

    async def close(self) -> None:
        """Finish pending writes and stop the worker."""
        await self.drain()
        if self._worker is not None and not self._worker.done():
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
        self._worker = None


class InsightCache:
    """Look up and store insights keyed by (source path, modification stamp, kind).

    The cache is disabled when the embedding backend is not configured, since
    stored insights are only useful to semantic search with a vector.
    """

    def __init__(self, store: Optional[InsightStore], embeddings: Optional[EmbeddingService]) -> None:
        self.store_backend = store
        self.embeddings = embeddings
        self.queue = PersistenceQueue(self)

    @property
    def enabled(self) -> bool:
        return (
            self.store_backend is not None
            and self.embeddings is not None
            and self.embeddings.is_configured
        )

    async def lookup(self, source_path: str, modification_stamp: int, kind: str) -> Optional[Insight]:
        """Return the cached insight for exactly this source version, or None.

        Any failure reading the store, including rows that no longer parse, is
        logged and treated as a miss.
        """
        if not self.enabled:
            return None
        try:
            insight = await asyncio.to_thread(
                self.store_backend.find_matching, source_path, modification_stamp, kind
            )
        except Exception as exc:
            logger.warning("Insight cache lookup failed for %s: %s", source_path, exc)
            return None
        if insight is not None:
            logger.info("Insight cache hit for %s (%s)", source_path, kind)
        return insight

    async def store(self, insight: InsightCreate) -> Optional[Insight]:
        """Embed and append ``insight``. Returns None when anything fails."""
        if not self.enabled:
            return None
        try:
            embedding = await self.embeddings.embed(insight.text)
            record = insight.model_copy(update={"embedding": embedding})
            stored = await asyncio.to_thread(self.store_backend.store, record)
        except Exception as exc:
            logger.warning(
                "Failed to persist %s insight for %s: %s",
                insight.kind,
                insight.source_path,
                exc,
            )
            return None
        logger.debug("Persisted %s insight %s for %s", stored.kind, stored.id, stored.source_path)
        return stored

    def persist_in_background(
        self,
        *,
        kind: str,
        text: str,
        source_type: SourceType,
        source_path: str,
        source_mtime: int,
    ) -> None:
        """Queue an insight for storage without waiting for it."""
        if not self.enabled:
            return
        self.queue.enqueue(
            InsightCreate(
                kind=kind,
                text=text,
                source_type=source_type,
                source_path=source_path,
                source_mtime=source_mtime,
            )
        )

    async def drain(self) -> None:
        await self.queue.drain()

    async def close(self) -> None:
        await self.queue.close()


__all__ = ["InsightCache", "PersistenceQueue"]
