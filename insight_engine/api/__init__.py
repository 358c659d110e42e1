"""
Insight Engine API package initialization.

This package contains the FastAPI router modules of the service:
- insights: section / audit submission, status side channel, cache maintenance
"""

from fastapi import APIRouter

# Import router modules
from insight_engine.api.insights import router as insights_router

# Create main API router
api_router = APIRouter()

# insights router has its own /insights prefix
api_router.include_router(insights_router)

# Export all routers for selective imports
__all__ = [
    "api_router",
    "insights_router",
]
