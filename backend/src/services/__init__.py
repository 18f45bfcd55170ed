"""Service layer for transformations, insight storage and external integrations."""

from .aggregator import ChildSummary, HierarchicalAggregator, compose_sections
from .completion_service import CompletionService
from .concurrency import ConcurrencyLimiter
from .config import AppConfig, get_config, reload_config
from .content_processor import ContentProcessor, ProcessedContent
from .embedding_service import EmbeddingService
from .errors import (
    AbortedError,
    CompletionError,
    ContentTooShortError,
    EmbeddingError,
    EmptyContentError,
    InsightEngineError,
    ModelCallFailedError,
    SourceNotFoundError,
    StorageUnavailableError,
    UnsupportedKindError,
    UnsupportedSourceError,
)
from .insight_cache import InsightCache, PersistenceQueue
from .insight_store import InsightStore
from .prompt_loader import PromptLoader, PromptLoaderError
from .semantic_query import SemanticQueryService, get_semantic_query_service
from .transformation_engine import (
    TransformationEngine,
    get_transformation_engine,
    post_process_result,
)
from .transformation_registry import TransformationRegistry
from .vault import FolderListing, VaultService, sanitize_path

__all__ = [
    "AppConfig",
    "get_config",
    "reload_config",
    "VaultService",
    "FolderListing",
    "sanitize_path",
    "PromptLoader",
    "PromptLoaderError",
    "ContentProcessor",
    "ProcessedContent",
    "ConcurrencyLimiter",
    "TransformationRegistry",
    "CompletionService",
    "EmbeddingService",
    "InsightStore",
    "InsightCache",
    "PersistenceQueue",
    "HierarchicalAggregator",
    "ChildSummary",
    "compose_sections",
    "TransformationEngine",
    "get_transformation_engine",
    "post_process_result",
    "SemanticQueryService",
    "get_semantic_query_service",
    "InsightEngineError",
    "SourceNotFoundError",
    "EmptyContentError",
    "ContentTooShortError",
    "UnsupportedKindError",
    "UnsupportedSourceError",
    "ModelCallFailedError",
    "AbortedError",
    "StorageUnavailableError",
    "CompletionError",
    "EmbeddingError",
]
