"""
Package initialization file for Insight Engine models.

This module exports all Pydantic schemas and enumerations from schemas.py and enums.py,
making them importable from insight_engine.models directly. This provides a clean public
API for the services and routers without needing to know the internal module structure.

Usage:
    from insight_engine.models import (
        Vertical,
        InsightRequest,
        Insight,
        InsightResponse,
        # ... etc
    )
"""

# =============================================================================
# Enums - Import and re-export all enumerations from enums.py
# =============================================================================

from insight_engine.models.enums import (
    Vertical,
    SkillTarget,
    InsightCategory,
    ImpactBand,
    UrgencyBand,
    Currency,
    RequestState,
    SignalSource,
)

# =============================================================================
# Schemas - Import and re-export all Pydantic models from schemas.py
# =============================================================================

from insight_engine.models.schemas import (
    MAX_INSIGHTS_PER_RUN,
    MAX_INSIGHTS_PER_SECTION,
    # Request
    BusinessSize,
    BusinessProfile,
    RequestSettings,
    BusinessContext,
    AuditResponse,
    AuditSnapshot,
    LossRecord,
    LossSummary,
    AuditHistory,
    InsightRequest,
    AuditInsightRequest,
    # Knowledge base
    Skill,
    KBSlice,
    Signal,
    ImpactEstimate,
    # Output
    SkillMatch,
    Insight,
    InsightResponse,
    SectionStatus,
    CacheStats,
    ValidationErrorDetail,
    # Generation
    NarrationTopic,
    NarrationRequest,
    NarrativeItem,
    GenerationReply,
)


__all__ = [
    # =========================================================================
    # Enums
    # =========================================================================
    "Vertical",
    "SkillTarget",
    "InsightCategory",
    "ImpactBand",
    "UrgencyBand",
    "Currency",
    "RequestState",
    "SignalSource",

    # =========================================================================
    # Schemas - Request
    # =========================================================================
    "MAX_INSIGHTS_PER_RUN",
    "MAX_INSIGHTS_PER_SECTION",
    "BusinessSize",
    "BusinessProfile",
    "RequestSettings",
    "BusinessContext",
    "AuditResponse",
    "AuditSnapshot",
    "LossRecord",
    "LossSummary",
    "AuditHistory",
    "InsightRequest",
    "AuditInsightRequest",

    # =========================================================================
    # Schemas - Knowledge Base
    # =========================================================================
    "Skill",
    "KBSlice",
    "Signal",
    "ImpactEstimate",

    # =========================================================================
    # Schemas - Output
    # =========================================================================
    "SkillMatch",
    "Insight",
    "InsightResponse",
    "SectionStatus",
    "CacheStats",
    "ValidationErrorDetail",

    # =========================================================================
    # Schemas - Generation
    # =========================================================================
    "NarrationTopic",
    "NarrationRequest",
    "NarrativeItem",
    "GenerationReply",
]
