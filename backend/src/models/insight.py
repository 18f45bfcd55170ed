"""Pydantic models for cached insights and semantic queries."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from .transformation import SourceType


class InsightCreate(BaseModel):
    """A new insight, before the store assigns an id."""

    kind: str = Field(..., description="Transformation kind that produced the insight")
    text: str = Field(..., description="Insight body")
    source_type: SourceType
    source_path: str = Field(..., description="Path or synthetic locator of the source")
    source_mtime: int = Field(..., description="Modification stamp (ms) the insight was computed for")
    embedding: Optional[List[float]] = Field(None, description="Embedding vector of the text")


class Insight(InsightCreate):
    """A stored insight. Never mutated in place by the engine."""

    id: int
    created_at: datetime
    updated_at: datetime


class ScoredInsight(BaseModel):
    """An insight returned from a similarity search (embedding omitted)."""

    id: int
    kind: str
    text: str
    source_type: SourceType
    source_path: str
    source_mtime: int
    created_at: datetime
    updated_at: datetime
    similarity: float


class InsightStats(BaseModel):
    """Counts of stored insights."""

    total: int = 0
    by_kind: Dict[str, int] = Field(default_factory=dict)
    by_source_type: Dict[str, int] = Field(default_factory=dict)


class QueryScope(BaseModel):
    """Restricts a semantic query to files and folders."""

    files: List[str] = Field(default_factory=list)
    folders: List[str] = Field(default_factory=list)


class InsightQueryRequest(BaseModel):
    """Request body for a semantic query over cached insights."""

    query: str = Field(..., min_length=1, max_length=2000)
    scope: Optional[QueryScope] = None
    limit: int = Field(20, ge=1, le=200)
    min_similarity: float = Field(0.3, ge=-1.0, le=1.0)
    kinds: Optional[List[str]] = None


class DeleteResponse(BaseModel):
    """Number of insights removed by a delete operation."""

    deleted: int


__all__ = [
    "InsightCreate",
    "Insight",
    "ScoredInsight",
    "InsightStats",
    "QueryScope",
    "InsightQueryRequest",
    "DeleteResponse",
]
