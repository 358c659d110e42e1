"""
Pytest test module for the end-to-end insight pipeline.

Scenarios:
- Gate: fewer than 3 meaningful responses returns [] without touching the
  cache or the narration client
- Pricing: 600 (ROI low bound wins) and 3000 (no ROI range, 0.6 x 5000)
- Idempotence: identical inputs within the TTL reuse the cached response
- Dedup: the same problem surfaced by two sections yields one insight, and
  keys shown by earlier runs are never repeated
- Caps: at most 4 insights per run, 1 per section
- Retry budget: narration failures and timeouts raise RemoteCallError after
  the configured number of attempts
"""

import asyncio
from typing import Any, Dict, List

import pytest

from insight_engine.core.config import Settings
from insight_engine.core.exceptions import RemoteCallError, RequestCancelled
from insight_engine.models import (
    AuditInsightRequest,
    GenerationReply,
    ImpactBand,
    InsightCategory,
    NarrativeItem,
    UrgencyBand,
)
from insight_engine.services.cancellation import CancellationToken
from insight_engine.services.pipeline import InsightPipeline, impact_band, urgency_band
from insight_engine.tests.conftest import FIXED_CREATED_AT, FailingGenerationClient


# =============================================================================
# Section answer sets
# =============================================================================

DENTAL_CALL_HANDLING: Dict[str, Any] = {
    "daily_unanswered_calls": 8,
    "website_scheduling_connection_choice": "not_connected",
    "avg_new_patient_value_usd": 250,
}

# Only missed-call evidence: the after-hours problem itself is not indicated
DENTAL_AFTER_HOURS: Dict[str, Any] = {
    "after_hours_coverage_choice": "answering_service",
    "weekly_after_hours_calls": 2,
    "daily_unanswered_calls_choice": "11_20",
}

HVAC_SECTIONS: List[Dict[str, Any]] = [
    {
        "section_id": "service-calls",
        "responses": {
            "hvac_daily_unanswered_calls": 2,
            "website_system_connection_choice": "connected",
            "avg_service_call_value_usd": 350,
        },
    },
    {
        "section_id": "emergency-dispatch",
        "responses": {
            "weekly_missed_emergency_calls": 3,
            "after_hours_coverage_choice": "voicemail",
            "avg_emergency_job_value_usd": 600,
        },
    },
    {
        "section_id": "job-cancellations",
        "responses": {
            "weekly_job_cancellations": 4,
            "weekly_job_cancellations_choice": "3_5",
            "avg_job_value_usd": 300,
        },
    },
    {
        "section_id": "pending-quotes",
        "responses": {
            "monthly_pending_quotes": 30,
            "immediate_quote_acceptance_choice": "0_2",
            "average_pending_quote_value_usd": 2500,
        },
    },
    {
        "section_id": "maintenance-contracts",
        "responses": {
            "maintenance_agreement_choice": "none",
            "maintenance_members": 0,
            "monthly_review_requests": 3,
        },
    },
]


def _hvac_batch(build_request) -> AuditInsightRequest:
    return AuditInsightRequest(sections=[
        build_request(
            vertical="hvac",
            business_name="Polar Air HVAC",
            audit_id="aud_hvac",
            **section,
        )
        for section in HVAC_SECTIONS
    ])


# =============================================================================
# Band helpers
# =============================================================================


class TestBands:
    """Impact and urgency bands."""

    @pytest.mark.parametrize("amount,band", [
        (0, ImpactBand.LOW),
        (600, ImpactBand.LOW),
        (2000, ImpactBand.MEDIUM),
        (5000, ImpactBand.HIGH),
        (12000, ImpactBand.VERY_HIGH),
    ])
    def test_impact_band(self, amount: float, band: ImpactBand) -> None:
        assert impact_band(amount) == band

    def test_urgency_band(self) -> None:
        assert urgency_band(600, []) == UrgencyBand.LOW
        assert urgency_band(6000, []) == UrgencyBand.HIGH


# =============================================================================
# Gate
# =============================================================================


class TestGate:
    """Insufficient data is an empty result, not an error."""

    @pytest.mark.asyncio
    async def test_too_few_meaningful_responses(self, pipeline: InsightPipeline, build_request, recording_client) -> None:
        request = build_request(responses={
            "weekly_no_shows": 9,
            "avg_appointment_value_usd": 190,
            "reminder_channel_choice": None,
        })

        assert await pipeline.generate_insights(request) == []
        assert recording_client.calls == 0
        stats = pipeline.cache.stats()
        assert (stats.hits, stats.misses, stats.size) == (0, 0, 0), "Gate must not consult the cache"

    @pytest.mark.asyncio
    async def test_accepts_raw_payload(self, pipeline: InsightPipeline, request_payload) -> None:
        """Dict payloads are validated on entry."""
        insights = await pipeline.generate_insights(request_payload())
        assert len(insights) == 1


# =============================================================================
# Pricing scenarios
# =============================================================================


class TestPricing:
    """End-to-end conservative pricing."""

    @pytest.mark.asyncio
    async def test_roi_low_bound_wins(self, pipeline: InsightPipeline, build_request, no_show_loss) -> None:
        """Appointment reminders: min(600, 0.6 x 5000) = 600."""
        insights = await pipeline.generate_insights(build_request(loss_items=no_show_loss))

        assert len(insights) == 1
        insight = insights[0]
        assert insight.key == "no_shows"
        assert insight.sectionId == "scheduling-noshows"
        assert insight.skill.name == "Appointment Reminder System"
        assert insight.monthlyImpact == 600, f"Expected 600, got {insight.monthlyImpact}"
        assert insight.formula == "min(0.60 x 5,000, ROI low 600) = 600"
        assert insight.confidence == 80
        assert insight.impact == ImpactBand.LOW
        assert insight.urgency == UrgencyBand.MEDIUM
        assert insight.category == InsightCategory.REVENUE_OPPORTUNITY
        assert insight.createdAt == FIXED_CREATED_AT
        assert "weekly_no_shows" in insight.dataUsed
        assert "lossSummary.No-Shows Revenue Loss" in insight.dataUsed
        assert insight.missingData == ["weekly_no_shows_choice"]

    @pytest.mark.asyncio
    async def test_recovery_when_no_roi_range(
        self, cache, recording_client, settings, no_roi_catalog, build_request, no_show_loss
    ) -> None:
        """No ROI range: 0.6 x 5000 = 3000."""
        pipeline = InsightPipeline(cache, recording_client, settings=settings, catalog=no_roi_catalog)

        insights = await pipeline.generate_insights(build_request(loss_items=no_show_loss))

        assert len(insights) == 1
        assert insights[0].monthlyImpact == 3000, f"Expected 3000, got {insights[0].monthlyImpact}"
        assert insights[0].formula == "0.60 x 5,000 = 3,000"
        assert insights[0].recoveryRate == pytest.approx(0.6)

    @pytest.mark.asyncio
    async def test_no_evidence_no_insight(
        self, cache, recording_client, settings, no_roi_catalog, build_request
    ) -> None:
        """No ROI range and no loss record: the candidate is suppressed."""
        pipeline = InsightPipeline(cache, recording_client, settings=settings, catalog=no_roi_catalog)

        assert await pipeline.generate_insights(build_request()) == []
        assert recording_client.calls == 0

    @pytest.mark.asyncio
    async def test_confidence_ceiling(self, pipeline: InsightPipeline, build_request) -> None:
        """Loss match plus two corroborating signals stops at 95."""
        request = build_request(
            section_id="call-handling",
            responses={
                "daily_unanswered_calls": 8,
                "daily_unanswered_calls_choice": "11_20",
                "avg_new_patient_value_usd": 250,
            },
            loss_items=[{"area": "Missed Calls Revenue Loss", "resultMonthly": 4000}],
        )

        insights = await pipeline.generate_insights(request)

        assert insights[0].key == "missed_calls"
        assert insights[0].confidence == 95
        assert insights[0].monthlyImpact == 800

    @pytest.mark.asyncio
    async def test_unknown_section_is_empty(self, pipeline: InsightPipeline, build_request) -> None:
        assert await pipeline.generate_insights(build_request(section_id="no-such-section")) == []

    @pytest.mark.asyncio
    async def test_proof_points_restricted_to_approved_claims(
        self, cache, settings, build_request, no_show_loss
    ) -> None:
        """Claims invented by the narrator are dropped."""
        class InventiveClient:
            async def narrate(self, request):
                return GenerationReply(items=[NarrativeItem(
                    key=request.topics[0].key,
                    title="Stop losing patients",
                    description="Reminders fix this.",
                    proofPoints=["Guaranteed 300% ROI", request.approvedClaims[1]],
                )])

        pipeline = InsightPipeline(cache, InventiveClient(), settings=settings)
        insights = await pipeline.generate_insights(build_request(loss_items=no_show_loss))

        assert insights[0].title == "Stop losing patients"
        assert insights[0].skill.proofPoints == [
            "Increase appointment confirmations by 45% through automated reminders"
        ]

    @pytest.mark.asyncio
    async def test_missing_narrative_falls_back_to_template(self, cache, settings, build_request) -> None:
        class SilentClient:
            async def narrate(self, request):
                return GenerationReply()

        pipeline = InsightPipeline(cache, SilentClient(), settings=settings)
        insights = await pipeline.generate_insights(build_request())

        assert insights[0].title == "Recover $600/month lost to no shows"


# =============================================================================
# Caching
# =============================================================================


class TestCaching:
    """Idempotence within the TTL."""

    @pytest.mark.asyncio
    async def test_identical_inputs_hit_cache(self, pipeline: InsightPipeline, build_request, recording_client, no_show_loss) -> None:
        request = build_request(loss_items=no_show_loss)

        first = await pipeline.generate_insights(request)
        second = await pipeline.generate_insights(request)

        assert first == second
        assert recording_client.calls == 1, "Second call should be served from cache"
        assert pipeline.cache.stats().hits == 1

    @pytest.mark.asyncio
    async def test_expired_entry_recomputes(self, pipeline: InsightPipeline, build_request, recording_client, fake_clock) -> None:
        request = build_request()

        await pipeline.generate_insights(request)
        fake_clock.advance(301)
        await pipeline.generate_insights(request)

        assert recording_client.calls == 2

    @pytest.mark.asyncio
    async def test_changed_answers_miss_cache(self, pipeline: InsightPipeline, build_request, recording_client) -> None:
        await pipeline.generate_insights(build_request())
        await pipeline.generate_insights(build_request(responses={
            "weekly_no_shows": 9,
            "avg_appointment_value_usd": 190,
            "reminder_channel_choice": "manual_calls",
        }))

        assert recording_client.calls == 2

    @pytest.mark.asyncio
    async def test_empty_results_use_short_ttl(self, pipeline: InsightPipeline, build_request, fake_clock) -> None:
        request = build_request(responses={
            "weekly_no_shows": 2,
            "avg_appointment_value_usd": 190,
            "reminder_channel_choice": "automated",
        })

        assert await pipeline.generate_insights(request) == []
        assert len(pipeline.cache) == 1
        fake_clock.advance(61)
        assert pipeline.cache.purge_expired() == 1

    @pytest.mark.asyncio
    async def test_cancelled_run_does_not_write_cache(self, pipeline: InsightPipeline, build_request, recording_client) -> None:
        token = CancellationToken()
        token.cancel()

        with pytest.raises(RequestCancelled):
            await pipeline.generate_insights(build_request(), token=token)
        assert recording_client.calls == 0
        assert len(pipeline.cache) == 0


# =============================================================================
# Dedup and caps
# =============================================================================


class TestDedupAndCaps:
    """Run-wide selection."""

    @pytest.mark.asyncio
    async def test_after_hours_alone_surfaces_missed_calls(self, pipeline: InsightPipeline, build_request) -> None:
        insights = await pipeline.generate_insights(
            build_request(section_id="after-hours", responses=DENTAL_AFTER_HOURS)
        )
        assert [insight.key for insight in insights] == ["missed_calls"]
        assert insights[0].category == InsightCategory.OPERATIONAL_RISK

    @pytest.mark.asyncio
    async def test_same_problem_across_sections_once(self, pipeline: InsightPipeline, build_request) -> None:
        """Two sections indicating missed calls produce a single insight."""
        batch = AuditInsightRequest(sections=[
            build_request(section_id="call-handling", responses=DENTAL_CALL_HANDLING),
            build_request(section_id="after-hours", responses=DENTAL_AFTER_HOURS),
        ])

        insights = await pipeline.generate_audit_insights(batch)

        keys = [insight.key for insight in insights]
        assert keys.count("missed_calls") == 1, f"Got keys {keys}"
        assert insights[0].sectionId == "call-handling"
        assert all(insight.sectionId != "after-hours" for insight in insights)

    @pytest.mark.asyncio
    async def test_capped_problem_surfaces_in_later_section(self, pipeline: InsightPipeline, build_request) -> None:
        """Missed calls lose the emergency section's slot but still surface for service calls."""
        missed_service_calls = [
            {
                "area": "Missed Service Calls Loss",
                "formula": "5 x 22 x 350 x 0.1",
                "assumptions": ["Average service call $350"],
                "resultMonthly": 4000,
                "confidence": 70,
            }
        ]
        batch = AuditInsightRequest(sections=[
            build_request(
                vertical="hvac",
                audit_id="aud_hvac",
                section_id="emergency-dispatch",
                responses=HVAC_SECTIONS[1]["responses"],
                loss_items=missed_service_calls,
            ),
            build_request(
                vertical="hvac",
                audit_id="aud_hvac",
                section_id="service-calls",
                responses={
                    "hvac_daily_unanswered_calls": 5,
                    "website_system_connection_choice": "connected",
                    "avg_service_call_value_usd": 350,
                },
                loss_items=missed_service_calls,
            ),
        ])

        insights = await pipeline.generate_audit_insights(batch)

        assert [(insight.key, insight.sectionId) for insight in insights] == [
            ("emergency", "emergency-dispatch"),
            ("missed_calls", "service-calls"),
        ]

    @pytest.mark.asyncio
    async def test_previous_keys_not_repeated(self, pipeline: InsightPipeline, build_request) -> None:
        """A key shown by an earlier run yields the next problem instead."""
        insights = await pipeline.generate_insights(build_request(
            section_id="call-handling",
            responses=DENTAL_CALL_HANDLING,
            previous_keys=["Missed Calls"],
        ))

        assert [insight.key for insight in insights] == ["online_booking"]
        assert insights[0].skill.name == "Lead Follow-up Assistant"
        assert insights[0].confidence == 40, "Inferred-only evidence is penalized"

    @pytest.mark.asyncio
    async def test_run_cap(self, pipeline: InsightPipeline, build_request, recording_client) -> None:
        """Five eligible sections: four insights, one per section, in order."""
        insights = await pipeline.generate_audit_insights(_hvac_batch(build_request))

        assert len(insights) == 4
        assert [insight.sectionId for insight in insights] == [
            "service-calls",
            "emergency-dispatch",
            "job-cancellations",
            "pending-quotes",
        ]
        assert [insight.key for insight in insights] == [
            "missed_calls",
            "emergency",
            "job_cancellations",
            "pending_quotes",
        ]
        assert all(insight.confidence <= 95 for insight in insights)
        assert recording_client.calls == 1, "One narration call per run"

    @pytest.mark.asyncio
    async def test_caps_not_configurable(self, cache, recording_client, build_request) -> None:
        """Cap overrides in the environment are ignored; the section still yields one insight."""
        settings = Settings(
            _env_file=None,
            anthropic_api_key=None,
            max_insights_per_section=2,
            max_insights_per_run=8,
        )
        assert not hasattr(settings, "max_insights_per_section")
        pipeline = InsightPipeline(cache, recording_client, settings=settings)

        insights = await pipeline.generate_insights(
            build_request(section_id="call-handling", responses=DENTAL_CALL_HANDLING)
        )

        assert [insight.key for insight in insights] == ["missed_calls"]

    @pytest.mark.asyncio
    async def test_gated_sections_skipped_in_batch(self, pipeline: InsightPipeline, build_request) -> None:
        batch = AuditInsightRequest(sections=[
            build_request(section_id="after-hours", responses={"after_hours_coverage_choice": "voicemail"}),
            build_request(section_id="call-handling", responses=DENTAL_CALL_HANDLING),
        ])
        insights = await pipeline.generate_audit_insights(batch)

        assert [insight.sectionId for insight in insights] == ["call-handling"]


# =============================================================================
# Retry budget
# =============================================================================


class TestRetryBudget:
    """Deadline-bound narration with a fixed number of attempts."""

    @pytest.mark.asyncio
    async def test_persistent_failure(self, cache, settings, build_request) -> None:
        client = FailingGenerationClient()
        pipeline = InsightPipeline(cache, client, settings=settings)

        with pytest.raises(RemoteCallError) as exc_info:
            await pipeline.generate_insights(build_request())

        assert client.calls == 2
        assert exc_info.value.attempts == 2
        assert len(cache) == 0, "Failures are never cached"

    @pytest.mark.asyncio
    async def test_recovers_on_second_attempt(self, cache, settings, build_request) -> None:
        client = FailingGenerationClient(failures=1)
        pipeline = InsightPipeline(cache, client, settings=settings)

        insights = await pipeline.generate_insights(build_request())

        assert len(insights) == 1
        assert client.calls == 2

    @pytest.mark.asyncio
    async def test_timeout_counts_as_failure(self, cache, settings, build_request) -> None:
        class SlowClient:
            calls = 0

            async def narrate(self, request):
                SlowClient.calls += 1
                await asyncio.sleep(5)

        fast_settings = settings.model_copy(update={"generation_timeout_seconds": 0.05})
        pipeline = InsightPipeline(cache, SlowClient(), settings=fast_settings)

        with pytest.raises(RemoteCallError):
            await pipeline.generate_insights(build_request())
        assert SlowClient.calls == 2
