"""FastAPI application main entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

load_dotenv()

from .middleware import register_error_handlers  # noqa: E402
from .routes import insights, transformations  # noqa: E402
from ..services.errors import StorageUnavailableError  # noqa: E402
from ..services.transformation_engine import get_transformation_engine  # noqa: E402

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan handler to prepare the insight store and flush pending writes."""
    engine = get_transformation_engine()
    try:
        engine.store.initialize()
        logger.info("Insight store ready at %s", engine.store.db_path)
    except StorageUnavailableError as exc:
        logger.error("Starting without insight store: %s", exc)
    yield
    await engine.close()


def create_app() -> FastAPI:
    """Build the FastAPI application with routers and error handlers."""
    app = FastAPI(
        title="Vault Insights API",
        description="Transformations and cached insights over a note vault",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173", "http://localhost:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)

    app.include_router(transformations.router)
    app.include_router(insights.router)

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"status": "healthy"}

    return app


app = create_app()

__all__ = ["app", "create_app"]
