"""
Signal detection - deterministic mapping of audit answers to problem tags.

A signal says "this answer indicates problem X". Two kinds exist:

- direct: a numeric count reported by the business, compared against a
  benchmark threshold (e.g. weekly_no_shows > 4)
- inferred: a bucketed multiple-choice answer (e.g. weekly_no_shows_choice
  in '7_10' / '11_plus'); the pipeline penalizes confidence for estimates
  that rest only on inferred signals

Signals decide which candidate skills are worth estimating, feed the
corroboration bonus (two or more signals for one problem) and supply the
benchmark note attached to an insight.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from insight_engine.models import Signal, SignalSource, Vertical

logger = logging.getLogger(__name__)


# =============================================================================
# Benchmark thresholds
# =============================================================================

THRESHOLDS: Dict[str, float] = {
    "MISSED_CALLS_DAILY": 3,        # > 3 unanswered calls per day
    "HVAC_MISSED_CALLS_DAILY": 0,   # any unanswered service call
    "NO_SHOWS_WEEKLY": 4,           # > 4 no-shows per week
    "JOB_CANCELLATIONS_WEEKLY": 2,  # > 2 last-minute cancellations per week
    "COLD_PLANS_MONTHLY": 10,       # > 10 cold treatment plans per month
    "PENDING_QUOTES_MONTHLY": 20,   # > 20 open quotes per month
    "AFTER_HOURS_CALLS_WEEKLY": 5,  # > 5 after-hours calls per week
    "EMERGENCY_MISSED_WEEKLY": 0,   # any missed emergency call
    "OVERDUE_RECALLS": 50,          # > 50 patients overdue for recall
    "REVIEW_REQUESTS_MONTHLY": 10,  # < 10 review requests per month
}


@dataclass(frozen=True)
class SignalRule:
    """
    One rule over a single response key.

    Attributes:
        tag: Problem tag raised by the rule.
        field: Response key the rule reads.
        source: Whether the answer is a direct count or an inferred bucket.
        predicate: Returns True when the answer indicates the problem.
        benchmark: Benchmark note attached to the signal.
        vertical: Restricts the rule to one vertical; None means both.
    """
    tag: str
    field: str
    source: SignalSource
    predicate: Callable[[Any], bool]
    benchmark: str
    vertical: Optional[Vertical] = None


def _to_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip().replace(",", ""))
        except ValueError:
            return None
    return None


def _above(threshold: float) -> Callable[[Any], bool]:
    def predicate(value: Any) -> bool:
        number = _to_number(value)
        return number is not None and number > threshold
    return predicate


def _below(threshold: float) -> Callable[[Any], bool]:
    def predicate(value: Any) -> bool:
        number = _to_number(value)
        return number is not None and number < threshold
    return predicate


def _one_of(*choices: str) -> Callable[[Any], bool]:
    allowed = frozenset(choices)

    def predicate(value: Any) -> bool:
        return isinstance(value, str) and value.strip().lower() in allowed
    return predicate


SIGNAL_RULES: Tuple[SignalRule, ...] = (
    # === MISSED CALLS ===
    SignalRule(
        tag="missed-calls",
        field="daily_unanswered_calls",
        source=SignalSource.DIRECT,
        predicate=_above(THRESHOLDS["MISSED_CALLS_DAILY"]),
        benchmark="Well-run practices leave at most 3 calls a day unanswered",
        vertical=Vertical.DENTAL,
    ),
    SignalRule(
        tag="missed-calls",
        field="daily_unanswered_calls_choice",
        source=SignalSource.INFERRED,
        predicate=_one_of("4_10", "11_20", "21_plus"),
        benchmark="Well-run practices leave at most 3 calls a day unanswered",
        vertical=Vertical.DENTAL,
    ),
    SignalRule(
        tag="missed-calls",
        field="hvac_daily_unanswered_calls",
        source=SignalSource.DIRECT,
        predicate=_above(THRESHOLDS["HVAC_MISSED_CALLS_DAILY"]),
        benchmark="Top HVAC shops answer every service call live",
        vertical=Vertical.HVAC,
    ),
    SignalRule(
        tag="missed-calls",
        field="hvac_daily_unanswered_calls_choice",
        source=SignalSource.INFERRED,
        predicate=_one_of("1_3", "4_6", "gt_6"),
        benchmark="Top HVAC shops answer every service call live",
        vertical=Vertical.HVAC,
    ),
    # === NO-SHOWS / CANCELLATIONS ===
    SignalRule(
        tag="no-shows",
        field="weekly_no_shows",
        source=SignalSource.DIRECT,
        predicate=_above(THRESHOLDS["NO_SHOWS_WEEKLY"]),
        benchmark="Healthy practices see at most 4 no-shows per week",
        vertical=Vertical.DENTAL,
    ),
    SignalRule(
        tag="no-shows",
        field="weekly_no_shows_choice",
        source=SignalSource.INFERRED,
        predicate=_one_of("7_10", "11_plus"),
        benchmark="Healthy practices see at most 4 no-shows per week",
        vertical=Vertical.DENTAL,
    ),
    SignalRule(
        tag="job-cancellations",
        field="weekly_job_cancellations",
        source=SignalSource.DIRECT,
        predicate=_above(THRESHOLDS["JOB_CANCELLATIONS_WEEKLY"]),
        benchmark="Confirmed schedules keep cancellations to 2 or fewer per week",
        vertical=Vertical.HVAC,
    ),
    SignalRule(
        tag="job-cancellations",
        field="weekly_job_cancellations_choice",
        source=SignalSource.INFERRED,
        predicate=_one_of("3_5", "gt_5"),
        benchmark="Confirmed schedules keep cancellations to 2 or fewer per week",
        vertical=Vertical.HVAC,
    ),
    # === TREATMENT PLANS / QUOTES ===
    SignalRule(
        tag="treatment-plans",
        field="monthly_cold_treatment_plans",
        source=SignalSource.DIRECT,
        predicate=_above(THRESHOLDS["COLD_PLANS_MONTHLY"]),
        benchmark="Fewer than 10 treatment plans a month should go cold",
        vertical=Vertical.DENTAL,
    ),
    SignalRule(
        tag="treatment-plans",
        field="treatment_acceptance_rate_choice",
        source=SignalSource.INFERRED,
        predicate=_one_of("lt_30", "30_60"),
        benchmark="Strong practices accept more than 60% of presented plans",
        vertical=Vertical.DENTAL,
    ),
    SignalRule(
        tag="pending-quotes",
        field="monthly_pending_quotes",
        source=SignalSource.DIRECT,
        predicate=_above(THRESHOLDS["PENDING_QUOTES_MONTHLY"]),
        benchmark="Fewer than 20 quotes a month should sit without follow-up",
        vertical=Vertical.HVAC,
    ),
    SignalRule(
        tag="pending-quotes",
        field="immediate_quote_acceptance_choice",
        source=SignalSource.INFERRED,
        predicate=_one_of("0_2", "3_5"),
        benchmark="Top contractors close more than 5 in 10 quotes on the spot",
        vertical=Vertical.HVAC,
    ),
    # === AFTER HOURS / EMERGENCY ===
    SignalRule(
        tag="after-hours",
        field="weekly_after_hours_calls",
        source=SignalSource.DIRECT,
        predicate=_above(THRESHOLDS["AFTER_HOURS_CALLS_WEEKLY"]),
        benchmark="More than 5 after-hours calls a week justifies live coverage",
    ),
    SignalRule(
        tag="after-hours",
        field="after_hours_coverage_choice",
        source=SignalSource.INFERRED,
        predicate=_one_of("voicemail", "none"),
        benchmark="After-hours callers reaching voicemail rarely call back",
    ),
    SignalRule(
        tag="emergency",
        field="weekly_missed_emergency_calls",
        source=SignalSource.DIRECT,
        predicate=_above(THRESHOLDS["EMERGENCY_MISSED_WEEKLY"]),
        benchmark="Emergency calls should never go unanswered",
        vertical=Vertical.HVAC,
    ),
    # === RETENTION ===
    SignalRule(
        tag="reactivation",
        field="overdue_recall_patients",
        source=SignalSource.DIRECT,
        predicate=_above(THRESHOLDS["OVERDUE_RECALLS"]),
        benchmark="Active recall programs keep overdue patients under 50",
        vertical=Vertical.DENTAL,
    ),
    SignalRule(
        tag="reactivation",
        field="recall_outreach_choice",
        source=SignalSource.INFERRED,
        predicate=_one_of("none", "manual"),
        benchmark="Automated recall outreach reactivates lapsed patients",
        vertical=Vertical.DENTAL,
    ),
    SignalRule(
        tag="maintenance",
        field="maintenance_agreement_choice",
        source=SignalSource.INFERRED,
        predicate=_one_of("none", "informal"),
        benchmark="Maintenance agreements smooth revenue through the off-season",
        vertical=Vertical.HVAC,
    ),
    SignalRule(
        tag="reviews",
        field="monthly_review_requests",
        source=SignalSource.DIRECT,
        predicate=_below(THRESHOLDS["REVIEW_REQUESTS_MONTHLY"]),
        benchmark="Asking every customer for a review yields 10+ requests a month",
    ),
    # === ONLINE BOOKING ===
    SignalRule(
        tag="online-booking",
        field="website_scheduling_connection_choice",
        source=SignalSource.INFERRED,
        predicate=_one_of("not_connected", "no_website"),
        benchmark="Online booking captures patients outside office hours",
        vertical=Vertical.DENTAL,
    ),
    SignalRule(
        tag="online-booking",
        field="website_system_connection_choice",
        source=SignalSource.INFERRED,
        predicate=_one_of("not_connected", "no_website"),
        benchmark="Online booking captures jobs outside office hours",
        vertical=Vertical.HVAC,
    ),
)


def detect_signals(
    vertical: Vertical,
    answers: Dict[str, Any],
    tags: Optional[Tuple[str, ...]] = None,
    rules: Tuple[SignalRule, ...] = SIGNAL_RULES,
) -> List[Signal]:
    """
    Evaluate signal rules against collapsed audit answers.

    Args:
        vertical: Business vertical; rules restricted to another vertical
            are skipped.
        answers: Response key -> authoritative value (see AuditSnapshot.answers).
        tags: When given, only rules raising one of these tags are evaluated.
        rules: Rule table, defaults to SIGNAL_RULES.

    Returns:
        List[Signal]: Fired signals in rule-table order. A rule whose
        predicate raises is logged and skipped.
    """
    wanted = set(tags) if tags else None
    signals: List[Signal] = []

    for rule in rules:
        if rule.vertical is not None and rule.vertical != vertical:
            continue
        if wanted is not None and rule.tag not in wanted:
            continue
        if rule.field not in answers:
            continue
        value = answers[rule.field]
        if value is None:
            continue
        try:
            fired = rule.predicate(value)
        except Exception as e:
            logger.warning(f"Signal rule {rule.tag}/{rule.field} failed on {value!r}: {e}")
            continue
        if fired:
            signals.append(
                Signal(
                    tag=rule.tag,
                    field=rule.field,
                    value=value,
                    source=rule.source,
                    benchmarkNote=rule.benchmark,
                )
            )

    return signals


def signals_by_tag(signals: List[Signal]) -> Dict[str, List[Signal]]:
    """Group signals by problem tag, preserving order."""
    grouped: Dict[str, List[Signal]] = {}
    for signal in signals:
        grouped.setdefault(signal.tag, []).append(signal)
    return grouped


__all__ = [
    "THRESHOLDS",
    "SignalRule",
    "SIGNAL_RULES",
    "detect_signals",
    "signals_by_tag",
]
