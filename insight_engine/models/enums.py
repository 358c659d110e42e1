"""
Enumeration definitions for the Insight Engine.

This module provides the closed value sets used across the insight pipeline:
verticals, knowledge-base targets, insight categories, impact and urgency
bands, currencies and the per-section request lifecycle states.

All enums inherit from both `str` and `Enum` to ensure JSON serialization compatibility
with Pydantic models, enabling automatic serialization/deserialization in API responses.
"""

from enum import Enum


class Vertical(str, Enum):
    """
    Business verticals supported by the audit.

    Values: 'dental' | 'hvac'

    The vertical selects which knowledge-base skills, section profiles and
    signal rules apply to a request.
    """
    DENTAL = "dental"
    HVAC = "hvac"


class SkillTarget(str, Enum):
    """
    Vertical a knowledge-base skill is written for.

    Values: 'dental' | 'hvac' | 'both'

    Catalog data uses title case ("Dental", "Both"); parsing is
    case-insensitive so both spellings are accepted.
    """
    DENTAL = "dental"
    HVAC = "hvac"
    BOTH = "both"


class InsightCategory(str, Enum):
    """
    High-level framing of an insight.

    - revenue-opportunity: money currently left on the table
    - operational-risk: a process gap that leaks revenue when it fails
    """
    REVENUE_OPPORTUNITY = "revenue-opportunity"
    OPERATIONAL_RISK = "operational-risk"


class ImpactBand(str, Enum):
    """
    Monetary impact band derived from the conservative monthly estimate.

    Thresholds (monthly, in request currency):
    - very-high: >= 10,000
    - high: >= 5,000
    - medium: >= 2,000
    - low: anything below
    """
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    VERY_HIGH = "very-high"


class UrgencyBand(str, Enum):
    """Urgency band of an insight (low, medium, high)."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Currency(str, Enum):
    """
    Currencies accepted in request settings.

    USD is the default when the caller omits the currency.
    """
    USD = "USD"
    EUR = "EUR"


class RequestState(str, Enum):
    """
    Lifecycle state of a generation request for one (audit, section) key.

    idle -> in-flight -> {resolved, cancelled, failed}

    - idle: nothing tracked for the key
    - in-flight: a request is being computed
    - resolved: the latest request completed with a result
    - cancelled: the latest request was superseded or aborted
    - failed: the latest request ended with an error
    """
    IDLE = "idle"
    IN_FLIGHT = "in-flight"
    RESOLVED = "resolved"
    CANCELLED = "cancelled"
    FAILED = "failed"


class SignalSource(str, Enum):
    """
    How an audit signal was obtained.

    - direct: a numeric count reported by the business
    - inferred: derived from a bucketed multiple-choice answer
    """
    DIRECT = "direct"
    INFERRED = "inferred"
