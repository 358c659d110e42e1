"""
Pipeline Coordinator - end-to-end insight generation for completed sections.

Invoked once per section-completion event (or once per batch of sections):

    gate-check -> cache -> slice -> estimate-per-candidate -> assemble
               -> narrate (remote call) -> re-validate -> cache write

1. GATE CHECK - fewer than 3 meaningful (non-null) responses: return [] at
   once, without consulting the cache
2. CACHE - identical inputs within the TTL return the stored response
3. SLICE - knowledge base filtered by vertical and the section's problem tags
4. ESTIMATE - every reachable skill with audit evidence is priced; zero-impact
   skills are dropped, a failing skill is logged and skipped
5. ASSEMBLE - candidates sorted by impact then confidence within each
   section, then deduplicated and capped (4 per run, 1 per section)
6. NARRATE - one deadline-bound remote call with a fixed retry budget; the
   cancellation token is checked right before every attempt
7. RESPOND - the response is re-validated at the boundary (fatal on
   failure), then cached (shorter TTL for empty results) unless cancelled

Failure semantics:
- Per-candidate failures are absorbed
- InsightValidationError and exhausted RemoteCallError propagate
- RequestCancelled propagates to the orchestrator, which resolves it to []
"""

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from insight_engine.core.config import Settings, get_settings
from insight_engine.core.exceptions import RemoteCallError
from insight_engine.kb.catalog import SKILL_CATALOG
from insight_engine.kb.sections import RECOVERY_RATES, SectionProfile, get_section_profile
from insight_engine.models import (
    AuditInsightRequest,
    Currency,
    GenerationReply,
    ImpactBand,
    Insight,
    InsightRequest,
    LossRecord,
    NarrationRequest,
    NarrationTopic,
    NarrativeItem,
    Signal,
    SignalSource,
    Skill,
    SkillMatch,
    UrgencyBand,
)
from insight_engine.services.assembler import InsightCandidate, assemble_insights, normalize_key
from insight_engine.services.cache import InsightCache, build_cache_key
from insight_engine.services.cancellation import CancellationToken
from insight_engine.services.generation import GenerationClient, TemplateGenerationClient
from insight_engine.services.impact_estimator import estimate_impact, match_loss_records
from insight_engine.services.kb_slicer import slice_knowledge_base
from insight_engine.services.signals import detect_signals, signals_by_tag
from insight_engine.services.validation import parse_audit_request, parse_request, parse_response

logger = logging.getLogger(__name__)


# Stable namespace for deterministic insight ids
INSIGHT_ID_NAMESPACE = uuid.UUID("6f1c3a52-9b7e-4d0a-8f1e-2c5d7a9b4e10")

# Monthly impact thresholds of the impact bands, highest first
IMPACT_BANDS: Tuple[Tuple[float, ImpactBand], ...] = (
    (10000, ImpactBand.VERY_HIGH),
    (5000, ImpactBand.HIGH),
    (2000, ImpactBand.MEDIUM),
)

HIGH_URGENCY_IMPACT = 5000


def impact_band(monthly_impact: float) -> ImpactBand:
    """
    Map a monthly amount to its impact band.

    Example:
        >>> impact_band(3000)
        <ImpactBand.MEDIUM: 'medium'>
    """
    for threshold, band in IMPACT_BANDS:
        if monthly_impact >= threshold:
            return band
    return ImpactBand.LOW


def urgency_band(monthly_impact: float, signals: Sequence[Signal]) -> UrgencyBand:
    """
    High when the amount is large or the problem is corroborated by a direct
    count; medium when any signal supports it; low otherwise.
    """
    has_direct = any(signal.source == SignalSource.DIRECT for signal in signals)
    if monthly_impact >= HIGH_URGENCY_IMPACT or (len(signals) >= 2 and has_direct):
        return UrgencyBand.HIGH
    if signals:
        return UrgencyBand.MEDIUM
    return UrgencyBand.LOW


def _dedupe(values: Sequence[str]) -> List[str]:
    return list(dict.fromkeys(values))


class InsightPipeline:
    """
    Composes slicer, estimator and assembler behind the cache and the
    validation boundary.

    Args:
        cache: Injected cache instance.
        generation_client: Narration client (remote or template).
        settings: Policy settings; defaults to get_settings().
        catalog: Raw skill catalog; defaults to the bundled catalog.
        recovery_rates: Problem tag -> recoverable share.
        clock: Returns the creation timestamp of new insights.
    """

    def __init__(
        self,
        cache: InsightCache,
        generation_client: GenerationClient,
        settings: Optional[Settings] = None,
        catalog: Optional[Mapping[str, Any]] = None,
        recovery_rates: Optional[Mapping[str, float]] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self._cache = cache
        self._client = generation_client
        self._settings = settings or get_settings()
        self._catalog = SKILL_CATALOG if catalog is None else catalog
        self._recovery_rates = RECOVERY_RATES if recovery_rates is None else recovery_rates
        self._clock = clock
        self._template = TemplateGenerationClient()

    @property
    def cache(self) -> InsightCache:
        return self._cache

    # =========================================================================
    # Public entry points
    # =========================================================================

    async def generate_insights(
        self,
        request: Union[InsightRequest, Dict[str, Any]],
        token: Optional[CancellationToken] = None,
    ) -> List[Insight]:
        """
        Generate insights for one completed section.

        Args:
            request: Validated request, or a raw payload to validate.
            token: Cancellation token checked before the remote call and
                before the cache write.

        Returns:
            List[Insight]: 0-4 insights (at most 1 for a single section).

        Raises:
            InsightValidationError: Malformed request or response.
            RemoteCallError: Narration failed after the retry budget.
            RequestCancelled: The token was cancelled.
        """
        if not isinstance(request, InsightRequest):
            request = parse_request(request)
        return await self._run([request], token)

    async def generate_audit_insights(
        self,
        request: Union[AuditInsightRequest, Dict[str, Any]],
        token: Optional[CancellationToken] = None,
    ) -> List[Insight]:
        """
        Generate insights for several sections of one audit in a single run.

        Sections failing the gate are skipped. The run-wide caps and key
        dedup apply across all remaining sections, in the given order.
        """
        if not isinstance(request, AuditInsightRequest):
            request = parse_audit_request(request)
        return await self._run(list(request.sections), token)

    # =========================================================================
    # Run
    # =========================================================================

    def passes_gate(self, request: InsightRequest) -> bool:
        """True when the section has enough meaningful responses."""
        return request.audit.meaningful_count() >= self._settings.gate_min_responses

    async def _run(
        self,
        requests: List[InsightRequest],
        token: Optional[CancellationToken],
    ) -> List[Insight]:
        audit_id = requests[0].context.auditId

        eligible = []
        for request in requests:
            if self.passes_gate(request):
                eligible.append(request)
            else:
                logger.info(
                    f"Gate not met for {audit_id}/{request.context.sectionId}: "
                    f"{request.audit.meaningful_count()} meaningful response(s)"
                )
        if not eligible:
            return []

        cache_key = self._cache_key(eligible)
        cached = self._cache.get(cache_key)
        if cached is not None:
            logger.info(f"Cache hit for {audit_id} ({len(eligible)} section(s))")
            return parse_response(cached).insights

        candidates: List[InsightCandidate] = []
        approved_claims: List[str] = []
        previous_keys: List[str] = []
        for request in eligible:
            section_candidates, claims = self._build_candidates(request)
            candidates.extend(section_candidates)
            approved_claims = approved_claims or claims
            previous_keys.extend(request.history.previousKeys)

        selected = assemble_insights(candidates, previous_keys)
        logger.info(
            f"Assembled {len(selected)} of {len(candidates)} candidate(s) for {audit_id}"
        )

        context = eligible[0].context
        insights: List[Insight] = []
        if selected:
            reply = await self._narrate(eligible[0], selected, approved_claims, token)
            narratives = reply.by_key()
            created_at = self._clock()
            insights = [
                self._to_insight(
                    audit_id,
                    candidate,
                    narratives.get(candidate.key),
                    approved_claims,
                    context.settings.currency,
                    created_at,
                )
                for candidate in selected
            ]

        response = parse_response(
            {
                "auditId": audit_id,
                "insights": [insight.model_dump(mode="json") for insight in insights],
            }
        )

        if token is not None:
            token.raise_if_cancelled()

        ttl = (
            self._settings.cache_ttl_seconds
            if response.insights
            else self._settings.cache_empty_ttl_seconds
        )
        self._cache.put(cache_key, response.model_dump(mode="json"), ttl=ttl)
        return response.insights

    def _cache_key(self, requests: List[InsightRequest]) -> str:
        first = requests[0].context
        return build_cache_key(
            audit_id=first.auditId,
            section_id=",".join(request.context.sectionId for request in requests),
            currency=first.settings.currency.value,
            locale=first.settings.locale,
            vertical=first.vertical.value,
            business=first.business.model_dump(mode="json"),
            responses=[request.audit.answers() for request in requests],
            lossSummaries=[
                request.lossSummary.model_dump(mode="json") if request.lossSummary else None
                for request in requests
            ],
            previousKeys=sorted(
                {normalize_key(key) for request in requests for key in request.history.previousKeys}
            ),
            kbVersion=self._catalog.get("version") if isinstance(self._catalog, Mapping) else None,
        )

    # =========================================================================
    # Slice + estimate
    # =========================================================================

    def _build_candidates(self, request: InsightRequest) -> Tuple[List[InsightCandidate], List[str]]:
        context = request.context
        profile = get_section_profile(context.sectionId)
        if profile is None or profile.vertical != context.vertical:
            logger.warning(
                f"No {context.vertical.value} section profile for '{context.sectionId}'; no candidates"
            )
            return [], []

        answers = request.audit.answers()
        grouped = signals_by_tag(detect_signals(context.vertical, answers, profile.tags))
        loss_records = request.lossSummary.items if request.lossSummary else []

        kb = slice_knowledge_base(context.vertical, profile.tags, catalog=self._catalog)

        candidates: List[InsightCandidate] = []
        for skill in kb.skills:
            try:
                candidate = self._estimate_candidate(skill, profile, grouped, loss_records, answers)
            except Exception as e:
                logger.warning(
                    f"Skipping skill '{skill.name}' for section {profile.section_id}: {e}",
                    exc_info=True,
                )
                continue
            if candidate is not None:
                candidates.append(candidate)

        # Stable sort keeps catalog order between equal candidates
        candidates.sort(key=lambda c: (-c.estimate.monthlyImpact, -c.estimate.confidence))
        return candidates, kb.approvedClaims

    def _estimate_candidate(
        self,
        skill: Skill,
        profile: SectionProfile,
        grouped: Dict[str, List[Signal]],
        loss_records: Sequence[LossRecord],
        answers: Dict[str, Any],
    ) -> Optional[InsightCandidate]:
        reachable = [tag for tag in profile.tags if tag in skill.tags]
        if not reachable:
            return None

        # The subject is the first reachable problem with evidence behind it
        subject = None
        matched_records: List[LossRecord] = []
        for tag in reachable:
            records, _ = match_loss_records([tag], loss_records)
            if tag in grouped or records:
                subject, matched_records = tag, records
                break
        if subject is None:
            return None

        tag_signals = grouped.get(subject, [])
        inferred = bool(tag_signals) and not any(
            signal.source == SignalSource.DIRECT for signal in tag_signals
        )

        estimate = estimate_impact(
            skill,
            matched_records,
            self._recovery_rates,
            matched_tag=subject,
            corroborating_signals=len(tag_signals),
            inferred=inferred,
        )
        if estimate.monthlyImpact <= 0:
            logger.debug(f"Suppressing zero-impact skill '{skill.name}' ({subject})")
            return None

        data_used = _dedupe(
            [signal.field for signal in tag_signals]
            + [f"lossSummary.{record.area}" for record in matched_records]
        )
        missing_data = [field for field in profile.expected_fields if answers.get(field) is None]

        return InsightCandidate(
            subject=subject,
            section=profile,
            skill=skill,
            estimate=estimate,
            signals=list(tag_signals),
            data_used=data_used,
            missing_data=missing_data,
        )

    # =========================================================================
    # Narrate
    # =========================================================================

    async def _narrate(
        self,
        request: InsightRequest,
        selected: List[InsightCandidate],
        approved_claims: List[str],
        token: Optional[CancellationToken],
    ) -> GenerationReply:
        context = request.context
        narration_request = NarrationRequest(
            vertical=context.vertical,
            businessName=context.business.name,
            locale=context.settings.locale,
            topics=[
                self._topic(candidate, context.settings.currency) for candidate in selected
            ],
            approvedClaims=approved_claims,
        )

        attempts = max(1, self._settings.generation_max_attempts)
        last_error: Optional[BaseException] = None
        for attempt in range(1, attempts + 1):
            if token is not None:
                token.raise_if_cancelled()
            try:
                return await asyncio.wait_for(
                    self._client.narrate(narration_request),
                    timeout=self._settings.generation_timeout_seconds,
                )
            except asyncio.TimeoutError as e:
                last_error = e
                logger.warning(
                    f"Narration attempt {attempt}/{attempts} timed out after "
                    f"{self._settings.generation_timeout_seconds}s"
                )
            except RemoteCallError as e:
                last_error = e
                logger.warning(f"Narration attempt {attempt}/{attempts} failed: {e}")
            if attempt < attempts:
                await asyncio.sleep(self._settings.generation_backoff_seconds)

        raise RemoteCallError(
            f"Narration failed after {attempts} attempt(s): {last_error or 'timeout'}",
            attempts=attempts,
        ) from last_error

    @staticmethod
    def _topic(candidate: InsightCandidate, currency: Currency) -> NarrationTopic:
        return NarrationTopic(
            key=candidate.key,
            sectionId=candidate.section_id,
            skillName=candidate.skill.name,
            problem=candidate.skill.problem,
            how=candidate.skill.how,
            monthlyImpact=candidate.estimate.monthlyImpact,
            currency=currency,
            formula=candidate.estimate.formula,
            signals=[f"{signal.field}={signal.value}" for signal in candidate.signals],
            benchmarkNote=candidate.signals[0].benchmarkNote if candidate.signals else "",
        )

    def _to_insight(
        self,
        audit_id: str,
        candidate: InsightCandidate,
        narrative: Optional[NarrativeItem],
        approved_claims: List[str],
        currency: Currency,
        created_at: datetime,
    ) -> Insight:
        if narrative is None:
            narrative = self._template.narrate_topic(self._topic(candidate, currency), approved_claims)

        estimate = candidate.estimate
        benchmark_note = narrative.benchmarkNote or (
            candidate.signals[0].benchmarkNote if candidate.signals else ""
        )
        allowed_claims = set(approved_claims)

        return Insight(
            id=str(uuid.uuid5(INSIGHT_ID_NAMESPACE, f"{audit_id}:{candidate.section_id}:{candidate.key}")),
            key=candidate.key,
            sectionId=candidate.section_id,
            category=candidate.section.category,
            title=narrative.title,
            description=narrative.description,
            impact=impact_band(estimate.monthlyImpact),
            urgency=urgency_band(estimate.monthlyImpact, candidate.signals),
            monthlyImpact=estimate.monthlyImpact,
            currency=currency,
            recoveryRate=estimate.recoveryRate,
            formula=estimate.formula,
            assumptions=list(estimate.assumptions),
            confidence=estimate.confidence,
            skill=SkillMatch(
                name=candidate.skill.name,
                why=narrative.why or candidate.skill.how,
                proofPoints=[point for point in narrative.proofPoints if point in allowed_claims],
            ),
            actionItems=list(narrative.actionItems),
            benchmarkNote=benchmark_note,
            dataUsed=list(candidate.data_used),
            missingData=list(candidate.missing_data),
            createdAt=created_at,
        )


__all__ = [
    "INSIGHT_ID_NAMESPACE",
    "InsightPipeline",
    "impact_band",
    "urgency_band",
]
