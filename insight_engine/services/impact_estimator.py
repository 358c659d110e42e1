"""
Impact Estimator - conservative monthly ROI and confidence scoring.

Computes, for one candidate skill, the monthly amount an insight may claim and
how confident the pipeline is in that figure.

Conservative-ROI rule:
    candidates = [ROI range low bound]                    if the skill has a range
               + [recovery_rate(tag) x sum(matched loss)] if any loss record matched
    monthly impact = min(candidates), never above sum(matched loss)

    With neither an ROI range nor a matched loss record the impact is exactly
    0 and the caller suppresses the insight ("prefer silence over noise").

Confidence scoring:
    base 60
    +20 when a real loss record was matched
    +15 when two or more metrics independently indicate the problem
    -20 when the evidence is only inferred (bucketed answers)
    clamped to [0, 95]; full certainty is never claimed
"""

import re
from typing import Iterable, List, Mapping, Optional, Sequence, Tuple

from insight_engine.kb.sections import LOSS_AREA_TAGS
from insight_engine.models import ImpactEstimate, LossRecord, Skill


# =============================================================================
# Confidence Policy Constants
# =============================================================================

BASE_CONFIDENCE = 60
LOSS_MATCH_BONUS = 20
CORROBORATION_BONUS = 15
CORROBORATION_MIN_SIGNALS = 2
INFERRED_PENALTY = 20
CONFIDENCE_FLOOR = 0
CONFIDENCE_CEILING = 95


# =============================================================================
# Loss Record Matching
# =============================================================================

_WORD_SPLIT = re.compile(r"[^a-z0-9]+")


def _normalize_phrase(text: str) -> str:
    """
    Lower-case, split on non-alphanumerics and singularize plural words.

    'No-Shows Revenue Loss' -> 'no show revenue loss'
    """
    words = []
    for word in _WORD_SPLIT.split(text.lower()):
        if not word:
            continue
        if len(word) > 3 and word.endswith("s") and not word.endswith("ss"):
            word = word[:-1]
        words.append(word)
    return " ".join(words)


def loss_area_matches(
    area: str,
    tag: str,
    area_tags: Mapping[str, str] = LOSS_AREA_TAGS,
) -> bool:
    """
    Whether a loss area label refers to a problem tag.

    Matches either through the known area-label table (tag equality) or when
    the normalized tag phrase appears as a whole-word substring of the
    normalized area label (case-insensitive).
    """
    if area_tags.get(area.strip().lower()) == tag:
        return True
    tag_phrase = _normalize_phrase(tag)
    if not tag_phrase:
        return False
    return f" {tag_phrase} " in f" {_normalize_phrase(area)} "


def match_loss_records(
    tags: Iterable[str],
    loss_records: Sequence[LossRecord],
    area_tags: Mapping[str, str] = LOSS_AREA_TAGS,
) -> Tuple[List[LossRecord], Optional[str]]:
    """
    Find the loss records that support one of the given tags.

    Tags are tried in order; the first tag with at least one matching record
    wins and all records matching it are returned.

    Args:
        tags: Problem tags, most specific first.
        loss_records: Loss records of the request.
        area_tags: Known area label -> tag table.

    Returns:
        Tuple of (matched records, matched tag). ([], None) when nothing matches.
    """
    for tag in tags:
        matched = [record for record in loss_records if loss_area_matches(record.area, tag, area_tags)]
        if matched:
            return matched, tag
    return [], None


# =============================================================================
# Estimation
# =============================================================================


def score_confidence(
    used_loss_match: bool,
    corroborating_signals: int,
    inferred: bool,
) -> int:
    """
    Apply the confidence policy.

    Example:
        >>> score_confidence(True, 2, False)
        95
        >>> score_confidence(False, 1, True)
        40
    """
    confidence = BASE_CONFIDENCE
    if used_loss_match:
        confidence += LOSS_MATCH_BONUS
    if corroborating_signals >= CORROBORATION_MIN_SIGNALS:
        confidence += CORROBORATION_BONUS
    if inferred:
        confidence -= INFERRED_PENALTY
    return max(CONFIDENCE_FLOOR, min(CONFIDENCE_CEILING, confidence))


def estimate_impact(
    skill: Skill,
    matched_loss_records: Sequence[LossRecord],
    recovery_rates: Mapping[str, float],
    matched_tag: Optional[str] = None,
    corroborating_signals: int = 0,
    inferred: bool = False,
) -> ImpactEstimate:
    """
    Estimate the conservative monthly impact of recommending a skill.

    Args:
        skill: Candidate skill.
        matched_loss_records: Loss records whose area matched the skill's tags.
        recovery_rates: Problem tag -> recoverable share; missing tags count as 0.
        matched_tag: Tag used to look up the recovery rate.
        corroborating_signals: Number of metrics indicating the problem.
        inferred: True when the evidence is only inferred.

    Returns:
        ImpactEstimate: impact > 0 always carries a formula and at least one
        assumption; impact == 0 carries an empty formula and an explanation.

    Example:
        >>> record = LossRecord(area="No-Show Revenue Loss", resultMonthly=5000)
        >>> skill = Skill(name="Reminders", target="dental", tags=["no-shows"])
        >>> estimate_impact(skill, [record], {"no-shows": 0.6}, "no-shows").monthlyImpact
        3000.0
    """
    used_loss_match = bool(matched_loss_records)
    loss_sum = float(sum(record.resultMonthly for record in matched_loss_records))
    rate = float(recovery_rates.get(matched_tag, 0.0)) if matched_tag else 0.0
    rate = max(0.0, min(1.0, rate))

    confidence = score_confidence(used_loss_match, corroborating_signals, inferred)

    roi_low: Optional[float] = None
    roi_high: Optional[float] = None
    if skill.roiRangeMonthly is not None:
        roi_low, roi_high = skill.roiRangeMonthly

    recovered: Optional[float] = rate * loss_sum if used_loss_match else None

    candidates = [value for value in (roi_low, recovered) if value is not None]
    if not candidates:
        return ImpactEstimate(
            monthlyImpact=0.0,
            confidence=confidence,
            formula="",
            assumptions=[
                f"No ROI range for {skill.name} and no matching loss record; impact not estimated"
            ],
            recoveryRate=rate,
        )

    impact = min(candidates)
    capped = False
    if used_loss_match and impact > loss_sum:
        impact = loss_sum
        capped = True
    impact = round(impact, 2)

    if impact <= 0:
        if used_loss_match and rate == 0:
            reason = f"No recovery rate is defined for '{matched_tag}'"
        elif used_loss_match:
            reason = "Matched loss is zero"
        else:
            reason = f"ROI range of {skill.name} starts at zero"
        return ImpactEstimate(
            monthlyImpact=0.0,
            confidence=confidence,
            formula="",
            assumptions=[f"{reason}; impact not estimated"],
            recoveryRate=rate,
            matchedLossMonthly=loss_sum,
            usedLossMatch=used_loss_match,
        )

    assumptions: List[str] = []
    if roi_low is not None and recovered is not None:
        formula = f"min({rate:.2f} x {loss_sum:,.0f}, ROI low {roi_low:,.0f}) = {impact:,.0f}"
    elif recovered is not None:
        formula = f"{rate:.2f} x {loss_sum:,.0f} = {impact:,.0f}"
    else:
        formula = f"ROI low bound = {impact:,.0f}"

    if recovered is not None:
        areas = ", ".join(sorted({record.area for record in matched_loss_records}))
        assumptions.append(f"{rate:.0%} of the monthly loss in {areas} is recoverable")
        assumptions.append(
            f"Matched loss of {loss_sum:,.0f}/month from {len(matched_loss_records)} record(s)"
        )
    if roi_low is not None:
        assumptions.append(
            f"Low end of the {roi_low:,.0f}-{roi_high:,.0f} monthly ROI range for {skill.name}"
        )
    if capped:
        assumptions.append("Capped at the matched monthly loss")

    return ImpactEstimate(
        monthlyImpact=impact,
        confidence=confidence,
        formula=formula,
        assumptions=assumptions,
        recoveryRate=rate,
        matchedLossMonthly=loss_sum,
        usedLossMatch=used_loss_match,
    )


__all__ = [
    "BASE_CONFIDENCE",
    "CONFIDENCE_CEILING",
    "loss_area_matches",
    "match_loss_records",
    "score_confidence",
    "estimate_impact",
]
