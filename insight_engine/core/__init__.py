"""
Core infrastructure package for the Insight Engine.

Provides:
- Configuration management via pydantic-settings
- Domain exceptions of the insight pipeline
- FastAPI dependency injection utilities

This module re-exports key components from submodules for convenient importing
by other modules throughout the service. This allows simplified imports like:

    from insight_engine.core import get_settings, InsightValidationError

Instead of:

    from insight_engine.core.config import get_settings
    from insight_engine.core.exceptions import InsightValidationError

The dependency aliases (OrchestratorDep, CacheDep) live in
insight_engine.core.dependencies and are imported from there by the routers,
since they depend on the services package.
"""

# =============================================================================
# Re-exports from insight_engine.core.config
# =============================================================================
from insight_engine.core.config import Settings, get_settings

# =============================================================================
# Re-exports from insight_engine.core.exceptions
# =============================================================================
from insight_engine.core.exceptions import (
    InsightEngineError,
    InsightGenerationError,
    InsightValidationError,
    RemoteCallError,
    RequestCancelled,
)

# =============================================================================
# Public API Definition
# =============================================================================

__all__ = [
    # Configuration management (from config.py)
    'Settings',
    'get_settings',
    # Error taxonomy (from exceptions.py)
    'InsightEngineError',
    'InsightGenerationError',
    'InsightValidationError',
    'RemoteCallError',
    'RequestCancelled',
]
