"""HTTP API routes for cached insights and semantic queries.

Store failures propagate as StorageUnavailableError and are rendered as 503
responses by the shared error handlers.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ...models.insight import (
    DeleteResponse,
    Insight,
    InsightQueryRequest,
    InsightStats,
    ScoredInsight,
)
from ...models.transformation import CollectionSpec
from ...services.semantic_query import SemanticQueryService, get_semantic_query_service
from ...services.transformation_engine import TransformationEngine, get_transformation_engine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/insights", tags=["insights"])


@router.post("/query", response_model=List[ScoredInsight])
async def query_insights(
    request: InsightQueryRequest,
    service: SemanticQueryService = Depends(get_semantic_query_service),
):
    """Semantic search over cached insights. Returns [] when search is unavailable."""
    return await service.query(
        request.query,
        scope=request.scope,
        limit=request.limit,
        min_similarity=request.min_similarity,
        kinds=request.kinds,
    )


@router.get("", response_model=List[Insight])
async def list_insights(
    limit: Optional[int] = Query(None, ge=1, le=1000),
    engine: TransformationEngine = Depends(get_transformation_engine),
):
    """List stored insights, newest first."""
    return await engine.list_insights(limit)


@router.get("/stats", response_model=InsightStats)
async def insight_stats(engine: TransformationEngine = Depends(get_transformation_engine)):
    """Counts of stored insights by kind and source type."""
    return await engine.get_insight_stats()


@router.delete("/all", response_model=DeleteResponse)
async def clear_insights(engine: TransformationEngine = Depends(get_transformation_engine)):
    """Delete every stored insight."""
    deleted = await engine.clear_all_insights()
    logger.info("Cleared %d insights", deleted)
    return DeleteResponse(deleted=deleted)


@router.delete("/{insight_id}", response_model=DeleteResponse)
async def delete_insight(
    insight_id: int,
    engine: TransformationEngine = Depends(get_transformation_engine),
):
    """Delete one insight by id."""
    deleted = await engine.delete_insight(insight_id)
    if not deleted:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "not_found", "message": f"Insight {insight_id} not found"},
        )
    return DeleteResponse(deleted=deleted)


@router.delete("", response_model=DeleteResponse)
async def delete_insights_for_path(
    path: str = Query(..., min_length=1),
    engine: TransformationEngine = Depends(get_transformation_engine),
):
    """Delete every insight derived from ``path``."""
    return DeleteResponse(deleted=await engine.delete_insights_for_path(path))


@router.post("/workspace/delete", response_model=DeleteResponse)
async def delete_workspace_insights(
    spec: CollectionSpec,
    engine: TransformationEngine = Depends(get_transformation_engine),
):
    """Delete the insights of a workspace and of the folders and files it covers."""
    return DeleteResponse(deleted=await engine.delete_workspace_insights(spec))


__all__ = ["router"]
