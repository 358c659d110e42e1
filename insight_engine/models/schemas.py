"""
Pydantic request/response models for the Insight Engine.

This module provides type-safe data validation and serialization for every
payload that crosses the pipeline boundary:

- Request side: business context, audit snapshot, loss summary, history
- Knowledge base: skills and the sliced view handed to the estimator
- Output side: insights, the response envelope, per-section status
- Generation: the topics sent to the narration client and its reply

Field names use camelCase to match the wire format consumed by the audit UI.
All models use Pydantic v2 syntax with proper field validation and examples.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from insight_engine.models.enums import (
    Currency,
    ImpactBand,
    InsightCategory,
    RequestState,
    SignalSource,
    SkillTarget,
    UrgencyBand,
    Vertical,
)


# Hard ceilings on insights returned by a single run
MAX_INSIGHTS_PER_RUN = 4
MAX_INSIGHTS_PER_SECTION = 1


# =============================================================================
# Request Models
# =============================================================================


class BusinessSize(BaseModel):
    """
    Vertical-specific size descriptor.

    Dental practices report chairs, HVAC companies report technicians.
    Both are optional; the descriptor only informs narration.
    """
    chairs: Optional[int] = Field(
        default=None,
        ge=0,
        description="Number of operatory chairs (dental)"
    )
    techs: Optional[int] = Field(
        default=None,
        ge=0,
        description="Number of field technicians (hvac)"
    )


class BusinessProfile(BaseModel):
    """Identity and location of the audited business."""
    name: str = Field(
        ...,
        min_length=1,
        description="Business display name"
    )
    location: Optional[str] = Field(
        default=None,
        description="City / region of the business"
    )
    size: Optional[BusinessSize] = Field(
        default=None,
        description="Vertical-specific size descriptor"
    )


class RequestSettings(BaseModel):
    """
    Output formatting settings.

    Missing currency defaults to USD and missing locale defaults to en-US;
    these are the only defaults applied to a request.
    """
    currency: Currency = Field(
        default=Currency.USD,
        description="Currency used for every monetary field of the response"
    )
    locale: str = Field(
        default="en-US",
        min_length=2,
        description="BCP-47 locale used by narration"
    )


class BusinessContext(BaseModel):
    """
    Caller-supplied context of one section-completion event.

    Immutable per request: the pipeline never rewrites any of these fields.
    """
    model_config = ConfigDict(
        frozen=True,
        str_strip_whitespace=True,
        json_schema_extra={
            "example": {
                "auditId": "aud_7f3c",
                "vertical": "dental",
                "sectionId": "scheduling-noshows",
                "business": {
                    "name": "Bright Smiles Dental",
                    "location": "Austin, TX",
                    "size": {"chairs": 6}
                },
                "settings": {"currency": "USD", "locale": "en-US"}
            }
        }
    )

    auditId: str = Field(
        ...,
        min_length=1,
        description="Identifier of the audit the section belongs to"
    )
    vertical: Vertical = Field(
        ...,
        description="Business vertical (dental, hvac)"
    )
    sectionId: str = Field(
        ...,
        min_length=1,
        description="Identifier of the just-completed audit section"
    )
    business: BusinessProfile = Field(
        ...,
        description="Business identity, location and size"
    )
    settings: RequestSettings = Field(
        default_factory=RequestSettings,
        description="Currency and locale settings"
    )


class AuditResponse(BaseModel):
    """A single answered audit question."""
    key: str = Field(
        ...,
        min_length=1,
        description="Question key, e.g. 'weekly_no_shows'"
    )
    value: Any = Field(
        default=None,
        description="Answer value; null means the question was skipped"
    )


class AuditSnapshot(BaseModel):
    """
    Responses of the just-completed section plus optional scores.

    Duplicate keys are tolerated. The last occurrence of a key is
    authoritative, see `answers()`.
    """
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "responses": [
                    {"key": "weekly_no_shows", "value": 6},
                    {"key": "weekly_no_shows_choice", "value": "4_6"},
                    {"key": "reminder_channel_choice", "value": "manual_calls"}
                ],
                "readinessScore": 42,
                "sectionScores": {"scheduling-noshows": 35}
            }
        }
    )

    responses: List[AuditResponse] = Field(
        ...,
        description="Ordered (key, value) responses of the section"
    )
    readinessScore: Optional[float] = Field(
        default=None,
        ge=0,
        le=100,
        description="Overall AI-readiness score (0-100)"
    )
    sectionScores: Dict[str, float] = Field(
        default_factory=dict,
        description="Per-section score map"
    )

    def answers(self) -> Dict[str, Any]:
        """
        Collapse responses to a key -> value map.

        Later occurrences overwrite earlier ones, so the last answer given
        for a key wins. Insertion order follows first appearance.
        """
        collapsed: Dict[str, Any] = {}
        for response in self.responses:
            collapsed[response.key] = response.value
        return collapsed

    def meaningful_count(self) -> int:
        """Number of distinct keys whose authoritative value is not null."""
        return sum(1 for value in self.answers().values() if value is not None)


class LossRecord(BaseModel):
    """
    A monthly monetary loss attributed to one operational area.

    Produced by the upstream loss calculator, e.g.
    area='No-Shows Revenue Loss', resultMonthly=5000.
    """
    area: str = Field(
        ...,
        min_length=1,
        description="Loss area label"
    )
    formula: str = Field(
        default="",
        description="Formula used by the loss calculator"
    )
    assumptions: List[str] = Field(
        default_factory=list,
        description="Assumptions behind the figure"
    )
    resultMonthly: float = Field(
        ...,
        ge=0,
        description="Monthly loss in request currency"
    )
    confidence: Optional[float] = Field(
        default=None,
        ge=0,
        le=100,
        description="Confidence of the loss figure (0-100)"
    )


class LossSummary(BaseModel):
    """Set of loss records with their total."""
    items: List[LossRecord] = Field(
        default_factory=list,
        description="Loss records"
    )
    totalMonthly: float = Field(
        default=0.0,
        ge=0,
        description="Sum of all monthly losses"
    )


class AuditHistory(BaseModel):
    """Keys of insights already shown for this audit (cross-run dedup)."""
    previousKeys: List[str] = Field(
        default_factory=list,
        description="Normalized keys of insights produced by earlier runs"
    )
    lastTriggered: Optional[datetime] = Field(
        default=None,
        description="When generation last ran for this audit"
    )


class InsightRequest(BaseModel):
    """
    Section-completion event submitted to the pipeline.

    Only `context` and `audit` are required; a missing loss summary is a
    valid state and degrades estimation rather than failing it.
    """
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "context": BusinessContext.model_config["json_schema_extra"]["example"],
                "audit": AuditSnapshot.model_config["json_schema_extra"]["example"],
                "lossSummary": {
                    "items": [
                        {
                            "area": "No-Shows Revenue Loss",
                            "formula": "6 x 4.3 x 190",
                            "assumptions": ["Average visit value $190"],
                            "resultMonthly": 5000,
                            "confidence": 70
                        }
                    ],
                    "totalMonthly": 5000
                },
                "history": {"previousKeys": []}
            }
        }
    )

    context: BusinessContext
    audit: AuditSnapshot
    lossSummary: Optional[LossSummary] = None
    history: AuditHistory = Field(default_factory=AuditHistory)


class AuditInsightRequest(BaseModel):
    """
    Several completed sections of the same audit processed in one run.

    The run-wide caps (4 insights, 1 per section) and key dedup apply across
    all sections of the batch.
    """
    sections: List[InsightRequest] = Field(
        ...,
        min_length=1,
        description="Per-section requests, in processing order"
    )

    @model_validator(mode="after")
    def _same_audit(self) -> "AuditInsightRequest":
        audit_ids = {section.context.auditId for section in self.sections}
        if len(audit_ids) > 1:
            raise ValueError("all sections must belong to the same auditId")
        verticals = {section.context.vertical for section in self.sections}
        if len(verticals) > 1:
            raise ValueError("all sections must share one vertical")
        return self


# =============================================================================
# Knowledge Base Models
# =============================================================================


class Skill(BaseModel):
    """
    Remediation offering from the static knowledge base.

    Read-only reference data: skills are filtered, never created or mutated.
    """
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    target: SkillTarget
    problem: str = Field(default="")
    how: str = Field(default="")
    roiRangeMonthly: Optional[Tuple[float, float]] = Field(
        default=None,
        description="Conservative [low, high] monthly ROI range"
    )
    tags: Tuple[str, ...] = Field(default=())

    @field_validator("target", mode="before")
    @classmethod
    def _lowercase_target(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("roiRangeMonthly")
    @classmethod
    def _ordered_range(cls, value: Optional[Tuple[float, float]]) -> Optional[Tuple[float, float]]:
        if value is None:
            return value
        low, high = value
        if low < 0 or high < 0:
            raise ValueError("ROI range bounds must be non-negative")
        if low > high:
            raise ValueError("ROI range low bound exceeds high bound")
        return value

    @field_validator("tags", mode="before")
    @classmethod
    def _lowercase_tags(cls, value: Any) -> Any:
        if isinstance(value, (list, tuple)):
            return tuple(str(tag).strip().lower() for tag in value)
        return value

    def matches_vertical(self, vertical: Vertical) -> bool:
        return self.target == SkillTarget.BOTH or self.target.value == vertical.value


class KBSlice(BaseModel):
    """Skills relevant to one request plus the claims narration may cite."""
    skills: List[Skill] = Field(default_factory=list)
    approvedClaims: List[str] = Field(default_factory=list)


class Signal(BaseModel):
    """
    One audit answer indicating an operational problem.

    Example: weekly_no_shows=6 against a benchmark of at most 4 per week.
    """
    model_config = ConfigDict(frozen=True)

    tag: str = Field(..., description="Problem tag the signal supports")
    field: str = Field(..., description="Audit response key")
    value: Any = None
    source: SignalSource = SignalSource.DIRECT
    benchmarkNote: str = Field(default="")


class ImpactEstimate(BaseModel):
    """
    Conservative monthly impact and confidence for one skill.

    monthlyImpact == 0 means the caller must suppress the insight.
    """
    monthlyImpact: float = Field(..., ge=0)
    confidence: int = Field(..., ge=0, le=100)
    formula: str = Field(default="")
    assumptions: List[str] = Field(default_factory=list)
    recoveryRate: float = Field(default=0.0, ge=0, le=1)
    matchedLossMonthly: float = Field(
        default=0.0,
        ge=0,
        description="Sum of the matched loss records, 0 when none matched"
    )
    usedLossMatch: bool = False


# =============================================================================
# Output Models
# =============================================================================


class SkillMatch(BaseModel):
    """Reference to the skill an insight recommends."""
    name: str
    why: str = ""
    proofPoints: List[str] = Field(default_factory=list)


class Insight(BaseModel):
    """
    Output unit of the pipeline.

    Invariants: confidence in [0, 100]; monthlyImpact >= 0; at most one
    insight per normalized key and at most four per run (enforced by
    `InsightResponse`).
    """
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": "8d0f1a7e-6a57-5c1d-9c0b-2a6c1f0f4e21",
                "key": "no_shows",
                "sectionId": "scheduling-noshows",
                "category": "revenue-opportunity",
                "title": "Recover revenue lost to no-shows",
                "description": "Six weekly no-shows exceed the four-per-week benchmark.",
                "impact": "medium",
                "urgency": "medium",
                "monthlyImpact": 3000,
                "currency": "USD",
                "recoveryRate": 0.6,
                "formula": "0.60 x 5,000 = 3,000",
                "assumptions": ["60% of no-show revenue is recoverable"],
                "confidence": 80,
                "skill": {
                    "name": "Appointment Reminder System",
                    "why": "Automated confirmations cut no-shows",
                    "proofPoints": ["Reduces no-shows by up to 40% with smart reminders"]
                },
                "actionItems": ["Turn on two-step confirmations"],
                "benchmarkNote": "Healthy practices see at most 4 no-shows per week",
                "dataUsed": ["weekly_no_shows"],
                "missingData": [],
                "createdAt": "2026-01-15T10:30:00Z"
            }
        }
    )

    id: str
    key: str = Field(..., min_length=1)
    sectionId: str = Field(..., min_length=1)
    category: InsightCategory
    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    impact: ImpactBand
    urgency: UrgencyBand
    monthlyImpact: float = Field(..., ge=0)
    currency: Currency
    recoveryRate: float = Field(..., ge=0, le=1)
    formula: str
    assumptions: List[str] = Field(default_factory=list)
    confidence: int = Field(..., ge=0, le=100)
    skill: SkillMatch
    actionItems: List[str] = Field(default_factory=list)
    benchmarkNote: str = ""
    dataUsed: List[str] = Field(default_factory=list)
    missingData: List[str] = Field(default_factory=list)
    createdAt: datetime


class InsightResponse(BaseModel):
    """
    Envelope returned for a run and stored verbatim in the cache.

    Re-validating a response enforces the run invariants: no more than four
    insights, unique keys, and at most one insight per section.
    """
    auditId: str = Field(..., min_length=1)
    insights: List[Insight] = Field(
        default_factory=list,
        max_length=MAX_INSIGHTS_PER_RUN
    )

    @model_validator(mode="after")
    def _run_invariants(self) -> "InsightResponse":
        seen_keys = set()
        seen_sections: Dict[str, int] = {}
        for insight in self.insights:
            if insight.key in seen_keys:
                raise ValueError(f"duplicate insight key '{insight.key}'")
            per_section = seen_sections.get(insight.sectionId, 0)
            if per_section >= MAX_INSIGHTS_PER_SECTION:
                raise ValueError(f"more than {MAX_INSIGHTS_PER_SECTION} insight(s) for section '{insight.sectionId}'")
            seen_keys.add(insight.key)
            seen_sections[insight.sectionId] = per_section + 1
        return self


class SectionStatus(BaseModel):
    """Side-channel view of the latest request for one (audit, section) key."""
    auditId: str
    sectionId: str
    state: RequestState = RequestState.IDLE
    inFlight: bool = False
    lastError: Optional[str] = None
    updatedAt: Optional[datetime] = None


class CacheStats(BaseModel):
    """Point-in-time cache counters."""
    size: int
    maxEntries: int
    hits: int
    misses: int
    evictions: int
    expired: int
    ttlSeconds: float
    emptyTtlSeconds: float


class ValidationErrorDetail(BaseModel):
    """Structured validation failure returned with HTTP 422."""
    field: str
    reason: str


# =============================================================================
# Generation Models
# =============================================================================


class NarrationTopic(BaseModel):
    """One assembled candidate the narration client must describe."""
    key: str
    sectionId: str
    skillName: str
    problem: str = ""
    how: str = ""
    monthlyImpact: float = Field(..., ge=0)
    currency: Currency
    formula: str = ""
    signals: List[str] = Field(
        default_factory=list,
        description="Human-readable evidence, e.g. 'weekly_no_shows=6'"
    )
    benchmarkNote: str = ""


class NarrationRequest(BaseModel):
    """Input of the remote narration call."""
    vertical: Vertical
    businessName: str
    locale: str
    topics: List[NarrationTopic]
    approvedClaims: List[str] = Field(default_factory=list)


class NarrativeItem(BaseModel):
    """Narration for one topic, matched back by key."""
    key: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    actionItems: List[str] = Field(default_factory=list)
    benchmarkNote: str = ""
    why: str = ""
    proofPoints: List[str] = Field(default_factory=list)


class GenerationReply(BaseModel):
    """Validated reply of the narration client."""
    items: List[NarrativeItem] = Field(default_factory=list)

    def by_key(self) -> Dict[str, NarrativeItem]:
        """First narrative per key wins."""
        mapped: Dict[str, NarrativeItem] = {}
        for item in self.items:
            mapped.setdefault(item.key, item)
        return mapped
