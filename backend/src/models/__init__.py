"""Pydantic models for data validation and serialization."""

from .insight import (
    DeleteResponse,
    Insight,
    InsightCreate,
    InsightQueryRequest,
    InsightStats,
    QueryScope,
    ScoredInsight,
)
from .settings import ModelProvider, ModelRef
from .transformation import (
    AvailableTransformation,
    BatchTransformRequest,
    CollectionItem,
    CollectionSource,
    CollectionSpec,
    DocumentSource,
    ErrorCode,
    FolderSource,
    SourceReference,
    SourceType,
    TransformationDefinition,
    TransformationKind,
    TransformationOptions,
    TransformationResult,
    TransformRequest,
)

__all__ = [
    "Insight",
    "InsightCreate",
    "ScoredInsight",
    "InsightStats",
    "QueryScope",
    "InsightQueryRequest",
    "DeleteResponse",
    "ModelProvider",
    "ModelRef",
    "TransformationKind",
    "TransformationDefinition",
    "SourceType",
    "ErrorCode",
    "CollectionItem",
    "CollectionSpec",
    "DocumentSource",
    "FolderSource",
    "CollectionSource",
    "SourceReference",
    "TransformationOptions",
    "TransformationResult",
    "TransformRequest",
    "BatchTransformRequest",
    "AvailableTransformation",
]
