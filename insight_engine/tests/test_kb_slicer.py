"""
Pytest test module for the knowledge base slicer.

Verifies that slicing:
- keeps skills targeting the vertical or 'both'
- applies a non-empty tag filter by intersection (case-insensitive)
- treats an empty tag filter as no filter
- returns a subsequence of the catalog, never reordering or inventing
- degrades to an empty slice on malformed catalog data
"""

from typing import Any, Dict

import pytest

from insight_engine.kb.catalog import APPROVED_CLAIMS, SERVICES
from insight_engine.models import KBSlice, SkillTarget, Vertical
from insight_engine.services.kb_slicer import slice_knowledge_base


def _names(kb: KBSlice):
    return [skill.name for skill in kb.skills]


class TestVerticalFilter:
    """Tests for vertical targeting."""

    def test_dental_keeps_dental_and_both(self) -> None:
        """Dental slice contains only dental and cross-vertical skills."""
        kb = slice_knowledge_base(Vertical.DENTAL)

        assert kb.skills, "Expected dental skills in the bundled catalog"
        for skill in kb.skills:
            assert skill.target in (SkillTarget.DENTAL, SkillTarget.BOTH), (
                f"{skill.name} targets {skill.target}"
            )
        assert "Quote Follow-up System" not in _names(kb)

    def test_hvac_keeps_hvac_and_both(self) -> None:
        """HVAC slice excludes dental-only skills."""
        kb = slice_knowledge_base(Vertical.HVAC)

        names = _names(kb)
        assert "Emergency Response System" in names
        assert "Reception 24/7 Agent" in names
        assert "Appointment Reminder System" not in names

    def test_approved_claims_passed_through(self) -> None:
        """Approved claims are returned unchanged."""
        kb = slice_knowledge_base(Vertical.DENTAL)
        assert kb.approvedClaims == APPROVED_CLAIMS


class TestTagFilter:
    """Tests for problem-tag filtering."""

    def test_no_shows_dental(self) -> None:
        """Only the reminder system remediates dental no-shows."""
        kb = slice_knowledge_base(Vertical.DENTAL, ["no-shows"])
        assert _names(kb) == ["Appointment Reminder System"]

    def test_no_shows_hvac_is_empty(self) -> None:
        """A tag with no skill in the vertical yields no skills, not an error."""
        kb = slice_knowledge_base(Vertical.HVAC, ["no-shows"])
        assert kb.skills == []

    def test_tag_match_is_case_insensitive(self) -> None:
        """Tag filters are lower-cased before matching."""
        upper = slice_knowledge_base(Vertical.DENTAL, ["NO-SHOWS"])
        lower = slice_knowledge_base(Vertical.DENTAL, ["no-shows"])
        assert _names(upper) == _names(lower)

    @pytest.mark.parametrize("empty_filter", [None, [], ()])
    def test_empty_filter_is_no_op(self, empty_filter) -> None:
        """None and empty tag filters keep every vertical skill."""
        assert _names(slice_knowledge_base(Vertical.HVAC, empty_filter)) == _names(
            slice_knowledge_base(Vertical.HVAC)
        )

    def test_output_is_catalog_subsequence(self) -> None:
        """Surviving skills keep catalog order."""
        catalog_order = [service["name"] for service in SERVICES]
        names = _names(slice_knowledge_base(Vertical.HVAC, ["missed-calls", "online-booking"]))

        positions = [catalog_order.index(name) for name in names]
        assert positions == sorted(positions), f"Catalog order not preserved: {names}"

    def test_exclude_and_max_skills(self) -> None:
        """Excluded names are dropped before truncation."""
        kb = slice_knowledge_base(
            Vertical.HVAC,
            exclude_names=["reception 24/7 agent"],
            max_skills=2,
        )
        assert len(kb.skills) == 2
        assert "Reception 24/7 Agent" not in _names(kb)


class TestMalformedCatalog:
    """The slicer never raises on malformed catalog data."""

    def test_non_mapping_catalog(self) -> None:
        """A catalog that is not a mapping yields an empty slice."""
        kb = slice_knowledge_base(Vertical.DENTAL, catalog=["not", "a", "catalog"])
        assert kb == KBSlice()

    def test_services_not_a_list(self) -> None:
        """Non-list services yield no skills but keep valid claims."""
        kb = slice_knowledge_base(
            Vertical.DENTAL,
            catalog={"services": "oops", "approved_claims": ["Claim A", 3, "  "]},
        )
        assert kb.skills == []
        assert kb.approvedClaims == ["Claim A"]

    def test_invalid_entries_are_skipped(self) -> None:
        """Entries failing validation are dropped, valid ones survive."""
        catalog: Dict[str, Any] = {
            "services": [
                {"name": "Good Skill", "target": "Dental", "tags": ["no-shows"]},
                {"name": "Bad Target", "target": "Plumbing", "tags": ["no-shows"]},
                {"target": "Both", "tags": ["no-shows"]},
                {"name": "Bad Range", "target": "Both", "roiRangeMonthly": [900, 100]},
                "not-a-dict",
            ],
        }
        kb = slice_knowledge_base(Vertical.DENTAL, catalog=catalog)
        assert _names(kb) == ["Good Skill"]
        assert kb.approvedClaims == []
