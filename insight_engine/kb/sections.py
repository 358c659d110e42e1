"""
Section, recovery-rate and loss-area tables of the knowledge base.

Section profiles (10 fixed entries, 5 per vertical):
    Each audit section maps to the problem tags it can surface, the insight
    category those problems fall under, and the response keys the section
    normally collects (used to report missing data).

Recovery rates:
    Share of a matched monthly loss that a remediation can conservatively
    recover, per problem tag. Tags without an entry recover nothing.

Loss-area tags:
    Loss calculator area labels whose wording does not contain the problem
    tag (e.g. 'Missed Service Calls Loss' for 'missed-calls').
"""

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from insight_engine.models.enums import InsightCategory, Vertical


@dataclass(frozen=True)
class SectionProfile:
    """
    Static description of one audit section.

    Attributes:
        section_id: Section identifier sent by the audit UI.
        vertical: Vertical the section belongs to.
        title: Display title.
        tags: Problem tags, most specific first.
        category: Category of insights produced for the section.
        expected_fields: Response keys the section normally collects.
    """
    section_id: str
    vertical: Vertical
    title: str
    tags: Tuple[str, ...]
    category: InsightCategory
    expected_fields: Tuple[str, ...] = ()


SECTION_PROFILES: Tuple[SectionProfile, ...] = (
    # =========================================================================
    # Dental
    # =========================================================================
    SectionProfile(
        section_id="call-handling",
        vertical=Vertical.DENTAL,
        title="Call Handling",
        tags=("missed-calls", "online-booking"),
        category=InsightCategory.REVENUE_OPPORTUNITY,
        expected_fields=(
            "daily_unanswered_calls",
            "daily_unanswered_calls_choice",
            "website_scheduling_connection_choice",
            "avg_new_patient_value_usd",
        ),
    ),
    SectionProfile(
        section_id="after-hours",
        vertical=Vertical.DENTAL,
        title="After-Hours Coverage",
        tags=("after-hours", "missed-calls"),
        category=InsightCategory.OPERATIONAL_RISK,
        expected_fields=(
            "after_hours_coverage_choice",
            "weekly_after_hours_calls",
            "daily_unanswered_calls_choice",
        ),
    ),
    SectionProfile(
        section_id="scheduling-noshows",
        vertical=Vertical.DENTAL,
        title="Scheduling & No-Shows",
        tags=("no-shows",),
        category=InsightCategory.REVENUE_OPPORTUNITY,
        expected_fields=(
            "weekly_no_shows",
            "weekly_no_shows_choice",
            "avg_appointment_value_usd",
            "reminder_channel_choice",
        ),
    ),
    SectionProfile(
        section_id="treatment-plans",
        vertical=Vertical.DENTAL,
        title="Treatment Plans",
        tags=("treatment-plans",),
        category=InsightCategory.REVENUE_OPPORTUNITY,
        expected_fields=(
            "monthly_cold_treatment_plans",
            "treatment_acceptance_rate_choice",
            "avg_unaccepted_plan_value_usd",
        ),
    ),
    SectionProfile(
        section_id="patient-retention",
        vertical=Vertical.DENTAL,
        title="Patient Retention",
        tags=("reactivation", "reviews"),
        category=InsightCategory.REVENUE_OPPORTUNITY,
        expected_fields=(
            "overdue_recall_patients",
            "recall_outreach_choice",
            "monthly_review_requests",
        ),
    ),
    # =========================================================================
    # HVAC
    # =========================================================================
    SectionProfile(
        section_id="service-calls",
        vertical=Vertical.HVAC,
        title="Service Calls",
        tags=("missed-calls", "online-booking"),
        category=InsightCategory.REVENUE_OPPORTUNITY,
        expected_fields=(
            "hvac_daily_unanswered_calls",
            "hvac_daily_unanswered_calls_choice",
            "website_system_connection_choice",
            "avg_service_call_value_usd",
        ),
    ),
    SectionProfile(
        section_id="emergency-dispatch",
        vertical=Vertical.HVAC,
        title="Emergency Dispatch",
        tags=("emergency", "missed-calls"),
        category=InsightCategory.OPERATIONAL_RISK,
        expected_fields=(
            "weekly_missed_emergency_calls",
            "after_hours_coverage_choice",
            "avg_emergency_job_value_usd",
        ),
    ),
    SectionProfile(
        section_id="job-cancellations",
        vertical=Vertical.HVAC,
        title="Job Cancellations",
        tags=("job-cancellations",),
        category=InsightCategory.OPERATIONAL_RISK,
        expected_fields=(
            "weekly_job_cancellations",
            "weekly_job_cancellations_choice",
            "avg_job_value_usd",
        ),
    ),
    SectionProfile(
        section_id="pending-quotes",
        vertical=Vertical.HVAC,
        title="Pending Quotes",
        tags=("pending-quotes",),
        category=InsightCategory.REVENUE_OPPORTUNITY,
        expected_fields=(
            "monthly_pending_quotes",
            "immediate_quote_acceptance_choice",
            "average_pending_quote_value_usd",
        ),
    ),
    SectionProfile(
        section_id="maintenance-contracts",
        vertical=Vertical.HVAC,
        title="Maintenance Contracts",
        tags=("maintenance", "reviews"),
        category=InsightCategory.REVENUE_OPPORTUNITY,
        expected_fields=(
            "maintenance_agreement_choice",
            "maintenance_members",
            "monthly_review_requests",
        ),
    ),
)


_PROFILES_BY_ID: Dict[str, SectionProfile] = {
    profile.section_id: profile for profile in SECTION_PROFILES
}


RECOVERY_RATES: Dict[str, float] = {
    "missed-calls": 0.70,
    "no-shows": 0.60,
    "after-hours": 0.60,
    "emergency": 0.70,
    "job-cancellations": 0.50,
    "treatment-plans": 0.25,
    "pending-quotes": 0.25,
    "maintenance": 0.30,
    "reactivation": 0.20,
    "online-booking": 0.15,
    "reviews": 0.05,
}


# Keys are lower-cased area labels
LOSS_AREA_TAGS: Dict[str, str] = {
    "missed calls revenue loss": "missed-calls",
    "missed service calls loss": "missed-calls",
    "no-shows revenue loss": "no-shows",
    "no-show revenue loss": "no-shows",
    "treatment plans revenue loss": "treatment-plans",
    "last-minute cancellations loss": "job-cancellations",
    "pending quotes revenue loss": "pending-quotes",
}


def get_section_profile(section_id: str) -> Optional[SectionProfile]:
    """Return the profile for a section id, or None for unknown sections."""
    return _PROFILES_BY_ID.get(section_id)
