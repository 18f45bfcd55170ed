"""Transformation engine: turns sources into LLM-derived insights.

A run resolves the source, checks the insight cache, acquires content
(document text, or composed child summaries for folders and workspaces),
validates and truncates it, calls the model, post-processes the answer and
optionally persists it in the background. Failures come back as
``TransformationResult(success=False)``; nothing escapes ``run``.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from typing import Dict, List, Optional, Sequence, Tuple, Union

from ..models.insight import Insight, InsightStats
from ..models.settings import ModelRef
from ..models.transformation import (
    AvailableTransformation,
    CollectionSource,
    CollectionSpec,
    DocumentSource,
    ErrorCode,
    FolderSource,
    SourceType,
    TransformationDefinition,
    TransformationKind,
    TransformationOptions,
    TransformationResult,
)
from .aggregator import HierarchicalAggregator
from .completion_service import CompletionService
from .concurrency import ConcurrencyLimiter
from .config import AppConfig, get_config
from .content_processor import ContentProcessor, ProcessedContent
from .embedding_service import EmbeddingService
from .errors import (
    AbortedError,
    CompletionError,
    EmptyContentError,
    InsightEngineError,
    ModelCallFailedError,
    SourceNotFoundError,
    UnsupportedSourceError,
)
from .insight_cache import InsightCache
from .insight_store import InsightStore
from .prompt_loader import PromptLoader
from .transformation_registry import TransformationRegistry, parse_kind
from .vault import VaultService, normalize_vault_path

logger = logging.getLogger(__name__)

FENCE_START = re.compile(r"^```\w*\n")
FENCE_END = re.compile(r"\n```$")
PAPER_SECTIONS = ("PURPOSE", "CONTRIBUTION", "KEY FINDINGS", "IMPLICATIONS", "LIMITATIONS")
PAPER_INCOMPLETE_WARNING = (
    "*Note: some analysis sections may be incomplete. "
    "Consider re-running the analysis or checking the source content.*"
)

SourceRef = Union[DocumentSource, FolderSource, CollectionSource]


def _now_ms() -> int:
    return int(time.time() * 1000)


def post_process_result(text: str, kind: Union[str, TransformationKind]) -> str:
    """Normalize a model answer for ``kind``. Applying it twice is a no-op."""
    processed = text.strip()
    processed = FENCE_START.sub("", processed, count=1)
    processed = FENCE_END.sub("", processed, count=1)

    kind = parse_kind(kind)
    if kind == TransformationKind.KEY_INSIGHTS:
        if "INSIGHTS" not in processed:
            processed = f"# INSIGHTS\n\n{processed}"
    elif kind == TransformationKind.REFLECTIONS:
        if "REFLECTIONS" not in processed:
            processed = f"# REFLECTIONS\n\n{processed}"
    elif kind == TransformationKind.PAPER_ANALYSIS:
        upper = processed.upper()
        complete = all(section in upper for section in PAPER_SECTIONS)
        if not complete and PAPER_INCOMPLETE_WARNING not in processed:
            processed += f"\n\n{PAPER_INCOMPLETE_WARNING}"
    return processed


def _diagnostics(processed: Optional[ProcessedContent]) -> Dict[str, object]:
    if processed is None:
        return {}
    return {
        "truncated": processed.truncated,
        "original_tokens": processed.original_tokens,
        "processed_tokens": processed.processed_tokens,
    }


class TransformationEngine:
    """Run transformations over documents, folders and workspaces.

    Collaborators are passed in explicitly; ``reconfigure`` swaps only the ones
    whose settings changed.
    """

    def __init__(
        self,
        config: AppConfig,
        *,
        vault: VaultService,
        store: InsightStore,
        completion: CompletionService,
        embeddings: EmbeddingService,
        registry: Optional[TransformationRegistry] = None,
        processor: Optional[ContentProcessor] = None,
        limiter: Optional[ConcurrencyLimiter] = None,
    ) -> None:
        self.config = config
        self.vault = vault
        self.store = store
        self.completion = completion
        self.embeddings = embeddings
        self.registry = registry or TransformationRegistry(
            PromptLoader(config.prompts_dir), config.user_language
        )
        self.processor = processor or ContentProcessor()
        self.limiter = limiter or ConcurrencyLimiter(config.max_concurrency)
        self.cache = InsightCache(store, embeddings)
        self._retired_caches: List[InsightCache] = []
        self.aggregator = HierarchicalAggregator(self, vault)

    @classmethod
    def from_config(cls, config: AppConfig) -> "TransformationEngine":
        return cls(
            config,
            vault=VaultService(config),
            store=InsightStore(config.insight_db_path),
            completion=CompletionService.from_config(config),
            embeddings=EmbeddingService.from_config(config),
        )

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def reconfigure(self, config: AppConfig) -> None:
        """Apply new settings, rebuilding only the affected collaborators."""
        old = self.config
        rebuilt: List[str] = []

        if (
            config.openrouter_api_key != old.openrouter_api_key
            or config.google_api_key != old.google_api_key
            or config.openrouter_base_url != old.openrouter_base_url
            or config.request_timeout != old.request_timeout
        ):
            self.completion = CompletionService.from_config(config)
            rebuilt.append("completion")

        store_changed = config.insight_db_path != old.insight_db_path
        if store_changed:
            self.store = InsightStore(config.insight_db_path)
            rebuilt.append("store")

        if (
            store_changed
            or config.openrouter_api_key != old.openrouter_api_key
            or config.embedding_model != old.embedding_model
            or config.openrouter_base_url != old.openrouter_base_url
        ):
            self.embeddings = EmbeddingService.from_config(config)
            # Queued writes of the old cache still target the old store.
            self._retired_caches.append(self.cache)
            self.cache = InsightCache(self.store, self.embeddings)
            rebuilt.append("embeddings")

        if config.max_concurrency != old.max_concurrency:
            self.limiter = ConcurrencyLimiter(config.max_concurrency)
            rebuilt.append("limiter")

        if config.user_language != old.user_language or config.prompts_dir != old.prompts_dir:
            self.registry = TransformationRegistry(
                PromptLoader(config.prompts_dir), config.user_language
            )
            rebuilt.append("registry")

        if config.vault_base_path != old.vault_base_path:
            self.vault = VaultService(config)
            self.aggregator = HierarchicalAggregator(self, self.vault)
            rebuilt.append("vault")

        self.config = config
        if rebuilt:
            logger.info("Transformation engine reconfigured: %s", ", ".join(rebuilt))

    @property
    def default_model(self) -> ModelRef:
        return self.config.default_model

    def list_available(self) -> List[AvailableTransformation]:
        return self.registry.list_available()

    # ------------------------------------------------------------------
    # Running transformations
    # ------------------------------------------------------------------

    async def run(
        self,
        source: SourceRef,
        kind: Union[str, TransformationKind],
        options: Optional[TransformationOptions] = None,
        *,
        signal: Optional[asyncio.Event] = None,
    ) -> TransformationResult:
        """Run one transformation. Never raises; failures are reported in the result."""
        options = options or TransformationOptions()
        try:
            definition = self.registry.get(kind)
            return await self._run(source, definition, options, signal)
        except InsightEngineError as exc:
            logger.info("Transformation %s failed: %s", kind, exc.message)
            return TransformationResult.failure(exc.message, exc.code, **exc.details.get("diagnostics", {}))
        except Exception as exc:
            logger.exception("Unexpected transformation failure for %s", kind)
            return TransformationResult.failure(f"Transformation failed: {exc}", ErrorCode.INTERNAL)

    async def run_batch(
        self,
        source: SourceRef,
        kinds: Sequence[Union[str, TransformationKind]],
        options: Optional[TransformationOptions] = None,
        *,
        signal: Optional[asyncio.Event] = None,
    ) -> Dict[str, TransformationResult]:
        """Run several kinds concurrently on one source; failures stay per kind."""
        keys = [k.value if isinstance(k, TransformationKind) else str(k) for k in kinds]
        keys = list(dict.fromkeys(keys))
        results = await asyncio.gather(
            *(self.run(source, key, options, signal=signal) for key in keys)
        )
        return dict(zip(keys, results))

    async def _run(
        self,
        source: SourceRef,
        definition: TransformationDefinition,
        options: TransformationOptions,
        signal: Optional[asyncio.Event],
    ) -> TransformationResult:
        if signal is not None and signal.is_set():
            raise AbortedError("Operation aborted")

        locator, source_type, stamp = await self._identify(source)

        cached = await self.cache.lookup(locator, stamp, definition.kind.value)
        if cached is not None:
            return TransformationResult(success=True, result=cached.text, from_cache=True)

        content = await self._acquire(source, options.model, signal)
        text, processed = await self._transform(
            content, definition, options.model, options.max_content_tokens
        )

        if options.persist:
            self.cache.persist_in_background(
                kind=definition.kind.value,
                text=text,
                source_type=source_type,
                source_path=locator,
                source_mtime=stamp,
            )

        return TransformationResult(success=True, result=text, **_diagnostics(processed))

    async def _identify(self, source: SourceRef) -> Tuple[str, SourceType, int]:
        """Cache identity of a source: (locator, source type, modification stamp)."""
        if isinstance(source, DocumentSource):
            path = normalize_vault_path(source.path)
            if not await asyncio.to_thread(self.vault.exists, path):
                raise SourceNotFoundError(f"Source not found: {source.path}", {"path": source.path})
            try:
                mtime = await asyncio.to_thread(self.vault.get_modification_time, path)
            except (FileNotFoundError, ValueError) as exc:
                raise SourceNotFoundError(f"Source not found: {source.path}") from exc
            return path, SourceType.DOCUMENT, mtime
        if isinstance(source, FolderSource):
            return source.locator, SourceType.FOLDER, _now_ms()
        if isinstance(source, CollectionSource):
            return source.locator, SourceType.WORKSPACE, _now_ms()
        raise UnsupportedSourceError(f"Unsupported content type: {type(source).__name__}")

    async def _acquire(
        self, source: SourceRef, model: Optional[ModelRef], signal: Optional[asyncio.Event]
    ) -> str:
        if isinstance(source, DocumentSource):
            try:
                return await asyncio.to_thread(self.vault.read, normalize_vault_path(source.path))
            except (FileNotFoundError, ValueError) as exc:
                raise SourceNotFoundError(f"Source not found: {source.path}") from exc
        if isinstance(source, FolderSource):
            content = await self.aggregator.collect_folder_content(
                source.path, self.limiter, signal, model
            )
        elif isinstance(source, CollectionSource):
            content = await self.aggregator.collect_collection_content(
                source.spec, self.limiter, signal, model
            )
        else:
            raise UnsupportedSourceError(f"Unsupported content type: {type(source).__name__}")
        if content is None:
            raise EmptyContentError(f"No content found in {source.locator}")
        return content

    async def _transform(
        self,
        content: str,
        definition: TransformationDefinition,
        model: Optional[ModelRef],
        max_content_tokens: Optional[int] = None,
        validate: bool = True,
    ) -> Tuple[str, ProcessedContent]:
        """Validate, truncate, invoke the model and post-process."""
        if validate:
            self.processor.validate_content(content)
        processed = await asyncio.to_thread(
            self.processor.process_content,
            content,
            max_content_tokens or definition.max_content_tokens,
        )
        messages = [
            {"role": "system", "content": definition.prompt_template},
            {"role": "user", "content": processed.text},
        ]
        try:
            answer = await self.completion.complete(model or self.default_model, messages)
        except CompletionError as exc:
            raise ModelCallFailedError(
                f"Model call failed: {exc.message}",
                {**exc.details, "diagnostics": _diagnostics(processed)},
            ) from exc
        if not answer.strip():
            raise ModelCallFailedError(
                "Model call failed: empty response", {"diagnostics": _diagnostics(processed)}
            )
        return post_process_result(answer, definition.kind), processed

    # ------------------------------------------------------------------
    # Aggregator backend
    # ------------------------------------------------------------------

    async def summarize_file(self, path: str, model: Optional[ModelRef]) -> str:
        """Concise summary of one document, served from cache when fresh."""
        definition = self.registry.get(TransformationKind.CONCISE_DENSE_SUMMARY)
        result = await self._run(
            DocumentSource(path=path),
            definition,
            TransformationOptions(model=model, persist=True),
            None,
        )
        return result.result or ""

    async def combine_folder(self, folder: str, content: str, model: Optional[ModelRef]) -> str:
        """Hierarchical summary of a folder's composed child sections."""
        definition = self.registry.get(TransformationKind.HIERARCHICAL_SUMMARY)
        text, _ = await self._transform(content, definition, model, validate=False)
        self.cache.persist_in_background(
            kind=definition.kind.value,
            text=text,
            source_type=SourceType.FOLDER,
            source_path=folder or "/",
            source_mtime=_now_ms(),
        )
        return text

    # ------------------------------------------------------------------
    # Insight management
    # ------------------------------------------------------------------

    async def list_insights(self, limit: Optional[int] = None) -> List[Insight]:
        return await asyncio.to_thread(self.store.get_all, limit)

    async def get_insight_stats(self) -> InsightStats:
        return await asyncio.to_thread(self.store.get_stats)

    async def delete_insight(self, insight_id: int) -> int:
        return await asyncio.to_thread(self.store.delete_by_id, insight_id)

    async def delete_insights_for_path(self, path: str) -> int:
        return await asyncio.to_thread(self.store.delete_by_path, path)

    async def delete_insights_for_paths(self, paths: Sequence[str]) -> int:
        return await asyncio.to_thread(self.store.delete_by_paths, list(paths))

    async def delete_workspace_insights(self, spec: CollectionSpec) -> int:
        """Delete insights of a workspace and of everything it covers."""
        tags = spec.tags

        def _collect() -> List[str]:
            paths = [spec.locator]
            for folder in spec.folders:
                folder = normalize_vault_path(folder)
                try:
                    files = self.vault.list_files_under_prefix(folder)
                    folders = self.vault.list_folders_under_prefix(folder)
                except ValueError as exc:
                    logger.warning("Skipping workspace folder %s: %s", folder, exc)
                    continue
                paths.append(folder or "/")
                paths.extend(files)
                paths.extend(folders)
            if tags:
                for path in self.vault.list_files_under_prefix(""):
                    file_tags = self.vault.get_tags_for_file(path)
                    if any(t == tag or t.startswith(f"{tag}/") for t in file_tags for tag in tags):
                        paths.append(path)
            return paths

        paths = await asyncio.to_thread(_collect)
        deleted = await asyncio.to_thread(self.store.delete_by_paths, paths)
        logger.info("Deleted %d insights for workspace %s", deleted, spec.name)
        return deleted

    async def clear_all_insights(self) -> int:
        return await asyncio.to_thread(self.store.clear_all)

    async def handle_file_renamed(self, old_path: str, new_path: str) -> int:
        return await asyncio.to_thread(
            self.store.update_source_path,
            normalize_vault_path(old_path),
            normalize_vault_path(new_path),
        )

    async def handle_file_deleted(self, path: str) -> int:
        return await asyncio.to_thread(self.store.delete_by_path, normalize_vault_path(path))

    async def clean_orphaned_insights(self) -> int:
        return await asyncio.to_thread(self.store.clean_orphans, self.vault.exists)

    async def drain(self) -> None:
        """Wait for background insight writes to finish, including those queued
        before the last ``reconfigure``."""
        await self._close_retired_caches()
        await self.cache.drain()

    async def close(self) -> None:
        await self._close_retired_caches()
        await self.cache.close()

    async def _close_retired_caches(self) -> None:
        retired, self._retired_caches = self._retired_caches, []
        for cache in retired:
            await cache.close()


# Singleton instance
_transformation_engine: Optional[TransformationEngine] = None


def get_transformation_engine() -> TransformationEngine:
    """Get or create the transformation engine singleton."""
    global _transformation_engine
    if _transformation_engine is None:
        _transformation_engine = TransformationEngine.from_config(get_config())
    return _transformation_engine


__all__ = [
    "TransformationEngine",
    "get_transformation_engine",
    "post_process_result",
    "PAPER_SECTIONS",
    "PAPER_INCOMPLETE_WARNING",
]
