"""
Insight Engine Services Module

This module contains the business logic of the insight pipeline. The pure
services are stateless and testable in isolation; the cache and the request
orchestrator are the only stateful services and are constructed explicitly
(see insight_engine.main.lifespan).

Services:
- kb_slicer: Vertical/tag filtering of the skill catalog
- signals: Deterministic audit-answer -> problem-tag rules
- impact_estimator: Conservative monthly ROI and confidence scoring
- assembler: Key normalization, dedup and run caps
- validation: Schema-checked parsing of request/response payloads
- cache: TTL cache with entry ceiling and access bookkeeping
- generation: Narration clients (Anthropic and template)
- pipeline: End-to-end generation for completed sections
- orchestrator: One in-flight request per (audit, section) with cancellation

All services are designed to be consumed by the API layer (insight_engine/api/).
"""

# =============================================================================
# Knowledge Base Slicer Exports
# =============================================================================

from insight_engine.services.kb_slicer import slice_knowledge_base

# =============================================================================
# Signal Detection Exports
# =============================================================================

from insight_engine.services.signals import (
    SIGNAL_RULES,
    THRESHOLDS,
    SignalRule,
    detect_signals,
    signals_by_tag,
)

# =============================================================================
# Impact Estimator Exports
# =============================================================================

from insight_engine.services.impact_estimator import (
    BASE_CONFIDENCE,
    CONFIDENCE_CEILING,
    estimate_impact,
    loss_area_matches,
    match_loss_records,
    score_confidence,
)

# =============================================================================
# Assembler Exports
# =============================================================================

from insight_engine.services.assembler import (
    InsightCandidate,
    assemble_insights,
    normalize_key,
)

# =============================================================================
# Validation Boundary Exports
# =============================================================================

from insight_engine.services.validation import (
    parse_audit_request,
    parse_generation_reply,
    parse_request,
    parse_response,
)

# =============================================================================
# Cache Exports
# =============================================================================

from insight_engine.services.cache import (
    CacheEntry,
    InsightCache,
    build_cache_key,
)

# =============================================================================
# Generation / Pipeline / Orchestrator Exports
# =============================================================================

from insight_engine.services.cancellation import CancellationToken
from insight_engine.services.generation import (
    AnthropicGenerationClient,
    GenerationClient,
    TemplateGenerationClient,
    build_generation_client,
)
from insight_engine.services.pipeline import (
    InsightPipeline,
    impact_band,
    urgency_band,
)
from insight_engine.services.orchestrator import RequestOrchestrator


__all__ = [
    # KB slicer
    "slice_knowledge_base",
    # Signals
    "SIGNAL_RULES",
    "THRESHOLDS",
    "SignalRule",
    "detect_signals",
    "signals_by_tag",
    # Impact estimator
    "BASE_CONFIDENCE",
    "CONFIDENCE_CEILING",
    "estimate_impact",
    "loss_area_matches",
    "match_loss_records",
    "score_confidence",
    # Assembler
    "InsightCandidate",
    "assemble_insights",
    "normalize_key",
    # Validation
    "parse_audit_request",
    "parse_generation_reply",
    "parse_request",
    "parse_response",
    # Cache
    "CacheEntry",
    "InsightCache",
    "build_cache_key",
    # Generation / pipeline / orchestrator
    "CancellationToken",
    "AnthropicGenerationClient",
    "GenerationClient",
    "TemplateGenerationClient",
    "build_generation_client",
    "InsightPipeline",
    "impact_band",
    "urgency_band",
    "RequestOrchestrator",
]
