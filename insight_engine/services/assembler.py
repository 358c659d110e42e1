"""
Deduplicator / Assembler - final selection of insights for a run.

Policy, applied in input order:
1. Normalize each candidate's subject into a canonical key
   ('Missed Calls' / 'missed-calls' -> 'missed_calls')
2. Keep the first surviving candidate per key, drop later ones. A candidate
   dropped by the per-section cap does not claim its key
3. Drop candidates whose key was already produced by an earlier run
4. Keep at most `max_per_section` candidates per section id
5. Keep at most `max_total` candidates overall

Surviving candidates keep their input order. There is no re-ranking here;
callers wanting the most valuable insights first pre-sort before calling.
The assembler is total: it never raises and returns [] when nothing survives.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, TypeVar

from insight_engine.kb.sections import SectionProfile
from insight_engine.models import (
    MAX_INSIGHTS_PER_RUN,
    MAX_INSIGHTS_PER_SECTION,
    ImpactEstimate,
    Signal,
    Skill,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOTAL = MAX_INSIGHTS_PER_RUN
DEFAULT_MAX_PER_SECTION = MAX_INSIGHTS_PER_SECTION

_NON_ALNUM = re.compile(r"[^a-z0-9]+")

T = TypeVar("T")


def normalize_key(subject: str) -> str:
    """
    Canonical dedup key of a problem subject.

    Example:
        >>> normalize_key('Missed-Calls')
        'missed_calls'
        >>> normalize_key('  pending quotes ')
        'pending_quotes'
    """
    return _NON_ALNUM.sub("_", str(subject).strip().lower()).strip("_")


@dataclass
class InsightCandidate:
    """
    A priced recommendation awaiting assembly and narration.

    Attributes:
        subject: Problem tag the candidate addresses; its normalized form is
            the dedup key.
        section: Profile of the section that produced the candidate.
        skill: Recommended skill.
        estimate: Conservative impact estimate (monthlyImpact > 0).
        signals: Audit signals supporting the problem.
        data_used: Response keys and loss areas the estimate relied on.
        missing_data: Expected response keys that were not answered.
    """
    subject: str
    section: SectionProfile
    skill: Skill
    estimate: ImpactEstimate
    signals: List[Signal] = field(default_factory=list)
    data_used: List[str] = field(default_factory=list)
    missing_data: List[str] = field(default_factory=list)

    @property
    def key(self) -> str:
        return normalize_key(self.subject)

    @property
    def section_id(self) -> str:
        return self.section.section_id


def _candidate_key(candidate: Any) -> str:
    subject = getattr(candidate, "subject", None) or getattr(candidate, "key")
    return normalize_key(subject)


def _candidate_section(candidate: Any) -> str:
    section_id = getattr(candidate, "section_id", None)
    if section_id is None:
        section_id = getattr(candidate, "sectionId")
    return str(section_id)


def assemble_insights(
    candidates: Sequence[T],
    previously_seen_keys: Optional[Iterable[str]] = None,
    max_total: int = DEFAULT_MAX_TOTAL,
    max_per_section: int = DEFAULT_MAX_PER_SECTION,
) -> List[T]:
    """
    Deduplicate and cap candidates.

    Works on any object exposing a subject (`subject` or `key`) and a section
    id (`section_id` or `sectionId`), so both InsightCandidate and Insight
    instances can be assembled.

    Args:
        candidates: Candidates in priority order.
        previously_seen_keys: Keys already produced by earlier runs.
        max_total: Cap across all sections of the invocation.
        max_per_section: Cap per section id.

    Returns:
        List of surviving candidates, in input order.
    """
    seen_keys = {normalize_key(key) for key in (previously_seen_keys or []) if key}
    per_section: Dict[str, int] = {}
    survivors: List[T] = []

    if max_total <= 0 or max_per_section <= 0:
        return survivors

    for candidate in candidates:
        if len(survivors) >= max_total:
            break
        try:
            key = _candidate_key(candidate)
            section_id = _candidate_section(candidate)
        except (AttributeError, TypeError) as e:
            logger.warning(f"Skipping candidate without key/section: {e}")
            continue

        if not key or key in seen_keys:
            continue
        # Only survivors claim a key; a capped candidate leaves it to later sections
        if per_section.get(section_id, 0) >= max_per_section:
            continue

        seen_keys.add(key)
        per_section[section_id] = per_section.get(section_id, 0) + 1
        survivors.append(candidate)

    return survivors


__all__ = [
    "DEFAULT_MAX_TOTAL",
    "DEFAULT_MAX_PER_SECTION",
    "InsightCandidate",
    "normalize_key",
    "assemble_insights",
]
