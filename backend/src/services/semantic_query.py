"""Semantic search over cached insights."""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional, Sequence

from ..models.insight import QueryScope, ScoredInsight
from .embedding_service import EmbeddingService
from .errors import InsightEngineError
from .insight_store import InsightStore
from .transformation_engine import get_transformation_engine
from .vault import VaultService, normalize_vault_path

logger = logging.getLogger(__name__)


class SemanticQueryService:
    """Embed a question and rank stored insights by cosine similarity.

    Querying is a soft capability: a missing embedding backend or any
    embedding or store failure yields an empty list.
    """

    def __init__(
        self,
        store: InsightStore,
        embeddings: EmbeddingService,
        vault: VaultService,
    ) -> None:
        self.store = store
        self.embeddings = embeddings
        self.vault = vault

    def expand_scope(self, scope: QueryScope) -> List[str]:
        """Allow-list of source paths covered by ``scope``.

        Folder entries contribute the folder itself, every document under it
        and every subfolder between them, so folder insights match too.
        Raises ValueError when a folder resolves outside the vault.
        """
        paths: List[str] = [normalize_vault_path(path) for path in scope.files if path]
        for folder in scope.folders:
            folder = normalize_vault_path(folder)
            paths.append(folder or "/")
            paths.extend(self.vault.list_files_under_prefix(folder))
            paths.extend(self.vault.list_folders_under_prefix(folder))
        return list(dict.fromkeys(path for path in paths if path))

    async def query(
        self,
        text: str,
        scope: Optional[QueryScope] = None,
        limit: int = 20,
        min_similarity: float = 0.3,
        kinds: Optional[Sequence[str]] = None,
    ) -> List[ScoredInsight]:
        """Insights most similar to ``text``, highest similarity first."""
        if not self.embeddings.is_configured:
            logger.info("Semantic query skipped: embedding backend not configured")
            return []

        source_paths: Optional[List[str]] = None
        try:
            if scope is not None:
                source_paths = await asyncio.to_thread(self.expand_scope, scope)
                if not source_paths:
                    return []

            vector = await self.embeddings.embed(text)
            if vector is None:
                return []
            return await asyncio.to_thread(
                self.store.similarity_search,
                vector,
                min_similarity,
                limit,
                source_paths,
                list(kinds) if kinds else None,
            )
        except ValueError as exc:
            logger.warning("Semantic query scope rejected: %s", exc)
            return []
        except InsightEngineError as exc:
            logger.warning("Semantic query failed: %s", exc)
            return []


# Singleton instance
_semantic_query_service: Optional[SemanticQueryService] = None


def get_semantic_query_service() -> SemanticQueryService:
    """Get or create the query service, sharing the engine's collaborators."""
    global _semantic_query_service
    engine = get_transformation_engine()
    if (
        _semantic_query_service is None
        or _semantic_query_service.store is not engine.store
        or _semantic_query_service.embeddings is not engine.embeddings
        or _semantic_query_service.vault is not engine.vault
    ):
        _semantic_query_service = SemanticQueryService(engine.store, engine.embeddings, engine.vault)
    return _semantic_query_service


__all__ = ["SemanticQueryService", "get_semantic_query_service"]
