"""
FastAPI dependency injection module for the Insight Engine.

This module provides reusable FastAPI dependencies for the long-lived
services built in the application lifespan. It keeps endpoint handlers
loosely coupled from how those services are constructed.

Key Dependencies Provided:
- get_orchestrator: Returns the RequestOrchestrator stored on app.state
- get_cache: Returns the InsightCache stored on app.state
- OrchestratorDep / CacheDep: Annotated aliases for endpoints

Design Pattern:
The cache, narration client, pipeline and orchestrator are created exactly
once per process in `insight_engine.main.lifespan` and attached to
`app.state`. Nothing is module-global, so every TestClient gets fresh state.

Usage Examples:
    @router.get("/insights/cache/stats")
    async def cache_stats(cache: CacheDep) -> CacheStats:
        return cache.stats()

    # Overriding in tests
    app.dependency_overrides[get_cache] = lambda: InsightCache(ttl_seconds=1)
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request

from insight_engine.services.cache import InsightCache
from insight_engine.services.orchestrator import RequestOrchestrator


# =============================================================================
# Service Dependencies
# =============================================================================

def get_orchestrator(request: Request) -> RequestOrchestrator:
    """
    Return the request orchestrator built during application startup.

    Raises:
        HTTPException 503: If the lifespan has not initialized the services.
    """
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="Insight services are not initialized")
    return orchestrator


def get_cache(request: Request) -> InsightCache:
    """
    Return the insight cache built during application startup.

    Raises:
        HTTPException 503: If the lifespan has not initialized the services.
    """
    cache = getattr(request.app.state, "cache", None)
    if cache is None:
        raise HTTPException(status_code=503, detail="Insight services are not initialized")
    return cache


# =============================================================================
# Type Aliases for Dependency Injection
# =============================================================================

# Usage: async def endpoint(orchestrator: OrchestratorDep)
OrchestratorDep = Annotated[RequestOrchestrator, Depends(get_orchestrator)]

# Usage: async def endpoint(cache: CacheDep)
CacheDep = Annotated[InsightCache, Depends(get_cache)]
