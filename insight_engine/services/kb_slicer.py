"""
Knowledge Base Slicer - vertical and tag filtering of the skill catalog.

Narrows the static catalog down to the skills relevant to one business:

1. VERTICAL FILTER - keep skills targeting the requested vertical or 'both'
2. TAG FILTER - when a non-empty tag filter is given, keep skills whose tag
   set intersects it; an empty filter is a no-op
3. EXTRA FILTERS - drop excluded skill names, truncate to a maximum count

The slicer never invents entries and never reorders them: the output is a
subsequence of the catalog. Absent or malformed catalog data yields an empty
slice instead of an error, because "no matching skill" is a legitimate
outcome downstream.
"""

import logging
from typing import Any, Iterable, List, Mapping, Optional

from pydantic import ValidationError

from insight_engine.kb.catalog import SKILL_CATALOG
from insight_engine.models import KBSlice, Skill, Vertical

logger = logging.getLogger(__name__)


def _coerce_skills(raw_services: Any) -> List[Skill]:
    """
    Validate raw catalog entries into Skill models.

    Entries failing validation are skipped with a warning; a non-list input
    yields an empty list.
    """
    if not isinstance(raw_services, (list, tuple)):
        if raw_services is not None:
            logger.warning(f"Skill catalog 'services' is not a list: {type(raw_services).__name__}")
        return []

    skills: List[Skill] = []
    for index, entry in enumerate(raw_services):
        if isinstance(entry, Skill):
            skills.append(entry)
            continue
        try:
            skills.append(Skill.model_validate(entry))
        except ValidationError as e:
            logger.warning(f"Skipping malformed skill catalog entry #{index}: {e.error_count()} error(s)")
    return skills


def _coerce_claims(raw_claims: Any) -> List[str]:
    if not isinstance(raw_claims, (list, tuple)):
        return []
    return [claim for claim in raw_claims if isinstance(claim, str) and claim.strip()]


def slice_knowledge_base(
    vertical: Vertical,
    tag_filter: Optional[Iterable[str]] = None,
    catalog: Optional[Mapping[str, Any]] = None,
    exclude_names: Optional[Iterable[str]] = None,
    max_skills: Optional[int] = None,
) -> KBSlice:
    """
    Filter the skill catalog for one vertical and tag set.

    Args:
        vertical: Business vertical; skills targeting it or 'both' survive.
        tag_filter: Problem/capability tags. None or empty means no tag
            filtering. Matching is case-insensitive.
        catalog: Raw catalog mapping with 'services' and 'approved_claims'.
            Defaults to the bundled SKILL_CATALOG.
        exclude_names: Skill names to drop (case-insensitive).
        max_skills: Keep at most this many skills after filtering.

    Returns:
        KBSlice: Surviving skills in catalog order plus approved claims.

    Example:
        >>> kb = slice_knowledge_base(Vertical.DENTAL, ['no-shows'])
        >>> [skill.name for skill in kb.skills]
        ['Appointment Reminder System']
    """
    if catalog is None:
        catalog = SKILL_CATALOG
    if not isinstance(catalog, Mapping):
        logger.warning(f"Skill catalog is not a mapping: {type(catalog).__name__}")
        return KBSlice()

    skills = _coerce_skills(catalog.get("services"))
    claims = _coerce_claims(catalog.get("approved_claims"))

    selected = [skill for skill in skills if skill.matches_vertical(vertical)]

    wanted_tags = {tag.strip().lower() for tag in (tag_filter or []) if isinstance(tag, str)}
    if wanted_tags:
        selected = [skill for skill in selected if wanted_tags.intersection(skill.tags)]

    excluded = {name.strip().lower() for name in (exclude_names or []) if isinstance(name, str)}
    if excluded:
        selected = [skill for skill in selected if skill.name.lower() not in excluded]

    if max_skills is not None and max_skills >= 0:
        selected = selected[:max_skills]

    return KBSlice(skills=selected, approvedClaims=claims)


__all__ = ["slice_knowledge_base"]
