"""
Settings and environment management module for the Insight Engine.

This module provides centralized configuration management using pydantic-settings,
which automatically loads settings from environment variables and .env files.

Key Features:
- Environment variable validation and type coercion
- Sensible defaults for development
- Singleton pattern via @lru_cache for efficient access
- Optional Anthropic credentials (template narration is used without them)
- Pipeline policy defaults: gate threshold, cache TTLs, retry budget

Environment Variables:
- ANTHROPIC_API_KEY: Enables remote narration of insights (optional)
- GENERATION_MODEL: Model name used for narration
- GENERATION_TIMEOUT_SECONDS: Deadline of one narration call (default: 1.2)
- CACHE_TTL_SECONDS: Lifetime of a non-empty cached result (default: 300)
- CACHE_EMPTY_TTL_SECONDS: Lifetime of a cached empty result (default: 60)

Usage:
    from insight_engine.core.config import get_settings

    settings = get_settings()
    ttl = settings.cache_ttl_seconds
"""

from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    The class inherits from pydantic-settings BaseSettings which provides:
    - Automatic loading from environment variables (case-insensitive)
    - Support for .env file loading
    - Type validation and coercion
    - Default values for optional settings

    Attributes:
        anthropic_api_key: Anthropic API key for remote narration.
        generation_model: Model used for narration.
        generation_max_tokens: Token budget of one narration reply.
        generation_temperature: Sampling temperature for narration.
        generation_timeout_seconds: Deadline of a single narration attempt.
        generation_max_attempts: Total narration attempts before failing.
        generation_backoff_seconds: Fixed pause between attempts.
        cache_ttl_seconds: TTL of cached non-empty results.
        cache_empty_ttl_seconds: TTL of cached empty results.
        cache_max_entries: Entry ceiling; oldest entries are evicted past it.
        gate_min_responses: Meaningful responses required before generating.
        cors_origins: Origins allowed by the CORS middleware.
    """

    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        extra='ignore',  # Ignore extra environment variables not defined in this class
        case_sensitive=False,  # Allow ANTHROPIC_API_KEY or anthropic_api_key
    )

    # =========================================================================
    # Narration Client
    # =========================================================================

    # Without a key the deterministic template narrator is used
    anthropic_api_key: Optional[str] = None

    generation_model: str = 'claude-sonnet-4-5-20250929'
    generation_max_tokens: int = 1200
    generation_temperature: float = 0.2

    # Each narration attempt is deadline-bound; exceeding it counts as a
    # failed attempt and feeds the retry budget below
    generation_timeout_seconds: float = 1.2
    generation_max_attempts: int = 2
    generation_backoff_seconds: float = 0.3

    # =========================================================================
    # Cache
    # =========================================================================

    cache_ttl_seconds: float = 300.0

    # Empty results re-check sooner as more audit data arrives
    cache_empty_ttl_seconds: float = 60.0

    cache_max_entries: int = 200

    # =========================================================================
    # Pipeline Policy
    # =========================================================================

    # Sections with fewer non-null responses produce no insights
    gate_min_responses: int = 3

    # =========================================================================
    # HTTP
    # =========================================================================

    cors_origins: List[str] = [
        'http://localhost:3000',  # audit UI dev server
        'http://127.0.0.1:3000',
    ]


@lru_cache()
def get_settings() -> Settings:
    """
    Get the application settings singleton.

    This function returns a cached Settings instance, ensuring that environment
    variables are only loaded once during the application lifecycle.

    Returns:
        Settings: The application settings instance with all configuration values.

    Raises:
        pydantic.ValidationError: If an environment variable has an invalid value
            (e.g., GENERATION_TIMEOUT_SECONDS=abc).

    Example:
        >>> settings = get_settings()
        >>> settings.cache_ttl_seconds
        300.0

    Note:
        To refresh settings in tests, you can clear the cache:
        >>> get_settings.cache_clear()
    """
    return Settings()
