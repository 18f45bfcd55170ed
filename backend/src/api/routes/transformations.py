"""HTTP API routes for running transformations."""

from __future__ import annotations

import logging
from typing import Dict, List

from fastapi import APIRouter, Depends

from ...models.transformation import (
    AvailableTransformation,
    BatchTransformRequest,
    TransformationResult,
    TransformRequest,
)
from ...services.transformation_engine import TransformationEngine, get_transformation_engine
from ...services.transformation_registry import parse_kind

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/transformations", tags=["transformations"])


@router.get("", response_model=List[AvailableTransformation])
async def list_transformations(
    engine: TransformationEngine = Depends(get_transformation_engine),
):
    """List the transformation kinds the engine can run."""
    return engine.list_available()


@router.post("/run", response_model=TransformationResult)
async def run_transformation(
    request: TransformRequest,
    engine: TransformationEngine = Depends(get_transformation_engine),
):
    """Run one transformation.

    An unknown kind is rejected with 400; every other failure comes back as a result.
    """
    kind = parse_kind(request.kind)
    logger.info("Running %s on %s", kind.value, request.source.locator)
    return await engine.run(request.source, kind, request.options)


@router.post("/batch", response_model=Dict[str, TransformationResult])
async def run_batch_transformations(
    request: BatchTransformRequest,
    engine: TransformationEngine = Depends(get_transformation_engine),
):
    """Run several kinds on one source; each kind succeeds or fails on its own."""
    logger.info("Running batch %s on %s", ", ".join(request.kinds), request.source.locator)
    return await engine.run_batch(request.source, request.kinds, request.options)


__all__ = ["router"]
