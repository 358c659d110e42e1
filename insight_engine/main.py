"""
FastAPI application entry point for the Insight Engine API.

This module wires the service together: it configures logging and CORS,
builds the long-lived services in the lifespan, and registers the routers.

Service construction (once per process, stored on app.state):
- cache: InsightCache sized and timed from Settings
- generation client: Anthropic narration when a key is configured,
  template narration otherwise
- pipeline: InsightPipeline composing slicer, estimator and assembler
- orchestrator: RequestOrchestrator tracking one request per section
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from insight_engine import __version__
from insight_engine.api.insights import router as insights_router
from insight_engine.core.config import get_settings
from insight_engine.services.cache import InsightCache
from insight_engine.services.generation import build_generation_client
from insight_engine.services.orchestrator import RequestOrchestrator
from insight_engine.services.pipeline import InsightPipeline

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Lifespan context manager for FastAPI application startup and shutdown events.

    On startup:
        - Build cache, narration client, pipeline and orchestrator
        - Log startup message

    On shutdown:
        - Log cache counters
        - Drop cached entries
    """
    # Startup
    settings = get_settings()
    logger.info("Insight Engine API starting")

    cache = InsightCache(
        ttl_seconds=settings.cache_ttl_seconds,
        empty_ttl_seconds=settings.cache_empty_ttl_seconds,
        max_entries=settings.cache_max_entries,
    )
    pipeline = InsightPipeline(
        cache=cache,
        generation_client=build_generation_client(settings),
        settings=settings,
    )
    app.state.cache = cache
    app.state.pipeline = pipeline
    app.state.orchestrator = RequestOrchestrator(pipeline)

    yield

    # Shutdown
    stats = cache.stats()
    logger.info(
        f"Insight Engine API shutting down "
        f"(cache size={stats.size}, hits={stats.hits}, misses={stats.misses})"
    )
    cache.clear()


# Create FastAPI application
app = FastAPI(
    title="Insight Engine API",
    version=__version__,
    description=(
        "Generates capped, conservatively-priced recommendations for "
        "completed business audit sections."
    ),
    lifespan=lifespan,
)

# Configure CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register API routers
app.include_router(insights_router, tags=["insights"])  # Has its own /insights prefix


@app.get("/health")
async def health_check():
    """
    Health check endpoint for monitoring and load balancer probes.

    Returns:
        Dict with status 'healthy'
    """
    return {"status": "healthy"}


@app.get("/")
async def root():
    """
    Root endpoint providing API information.

    Returns:
        Dict with API name and version
    """
    return {
        "name": "Insight Engine API",
        "version": __version__,
        "docs": "/docs",
        "openapi": "/openapi.json",
    }


# Run with uvicorn when executed directly
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "insight_engine.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
