"""
Static knowledge base of the Insight Engine.

Provides read-only reference data for the pipeline:
- catalog: remediation skills and approved marketing claims
- sections: audit section profiles, recovery rates and loss-area aliases

Nothing in this package is mutated at runtime. Filtering happens in
insight_engine.services.kb_slicer.

Example usage:
    from insight_engine.kb import SKILL_CATALOG, get_section_profile

    profile = get_section_profile('scheduling-noshows')
    profile.tags
    ('no-shows',)
"""

# =============================================================================
# CATALOG - Skills and approved claims
# =============================================================================

from insight_engine.kb.catalog import (
    APPROVED_CLAIMS,
    KB_VERSION,
    SERVICES,
    SKILL_CATALOG,
)

# =============================================================================
# SECTIONS - Section profiles, recovery rates, loss-area aliases
# =============================================================================

from insight_engine.kb.sections import (
    LOSS_AREA_TAGS,
    RECOVERY_RATES,
    SECTION_PROFILES,
    SectionProfile,
    get_section_profile,
)


__all__ = [
    # Catalog
    "APPROVED_CLAIMS",
    "KB_VERSION",
    "SERVICES",
    "SKILL_CATALOG",
    # Sections
    "LOSS_AREA_TAGS",
    "RECOVERY_RATES",
    "SECTION_PROFILES",
    "SectionProfile",
    "get_section_profile",
]
