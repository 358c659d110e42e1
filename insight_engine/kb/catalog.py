"""
Static skill catalog of the knowledge base.

The catalog is kept in its raw, JSON-like shape (plain dicts and lists) so
that it can be swapped for externally loaded data. It is only ever read
through `insight_engine.services.kb_slicer.slice_knowledge_base`, which
validates each entry and tolerates malformed data.

Catalog shape:
    {
        "version": str,
        "services": [ {name, target, problem, how, roiRangeMonthly, tags}, ... ],
        "approved_claims": [str, ...],
    }

Tags:
    Each service carries the problem tags it remediates (e.g. 'no-shows',
    'missed-calls') followed by descriptive capability tags. Problem tags
    are the vocabulary shared with the section table and signal rules in
    `insight_engine.kb.sections`.
"""

from typing import Any, Dict, List


# Bumped whenever catalog content changes; part of every cache key
KB_VERSION = "2026.1"


SERVICES: List[Dict[str, Any]] = [
    {
        "name": "Reception 24/7 Agent",
        "target": "Both",
        "problem": "Missed calls leading to lost revenue and poor customer experience",
        "how": (
            "AI-powered call handling that answers every call, schedules "
            "appointments, and qualifies leads automatically"
        ),
        "roiRangeMonthly": [800, 2400],
        "tags": ["missed-calls", "after-hours", "call-handling", "scheduling", "lead-qualification"],
    },
    {
        "name": "Appointment Reminder System",
        "target": "Dental",
        "problem": "High no-show rates reducing practice efficiency and revenue",
        "how": (
            "Intelligent reminder sequence via calls, texts, and emails with "
            "confirmation tracking"
        ),
        "roiRangeMonthly": [600, 1800],
        "tags": ["no-shows", "reminders", "confirmations"],
    },
    {
        "name": "Treatment Plan Presenter",
        "target": "Dental",
        "problem": "Low treatment plan acceptance rates and poor follow-up",
        "how": "AI-powered treatment plan explanations and automated follow-up sequences",
        "roiRangeMonthly": [1200, 3600],
        "tags": ["treatment-plans", "case-acceptance", "follow-up"],
    },
    {
        "name": "Emergency Response System",
        "target": "HVAC",
        "problem": "Missed emergency calls and slow response times",
        "how": "Priority call routing with immediate dispatch and customer communication",
        "roiRangeMonthly": [1000, 3000],
        "tags": ["emergency", "missed-calls", "dispatch", "routing"],
    },
    {
        "name": "Lead Follow-up Assistant",
        "target": "Both",
        "problem": "Poor lead nurturing and conversion rates",
        "how": "Automated multi-touch follow-up campaigns with personalized messaging",
        "roiRangeMonthly": [500, 1500],
        "tags": ["online-booking", "lead-nurturing", "conversion", "automation"],
    },
    {
        "name": "Quote Follow-up System",
        "target": "HVAC",
        "problem": "Pending quotes going cold and lost sales opportunities",
        "how": "Systematic quote follow-up with decision-making assistance and urgency building",
        "roiRangeMonthly": [900, 2700],
        "tags": ["pending-quotes", "quotes", "sales", "follow-up"],
    },
    {
        "name": "Job Confirmation Assistant",
        "target": "HVAC",
        "problem": "Last-minute job cancellations leaving technicians idle",
        "how": "Day-before confirmations with one-tap rescheduling and waitlist backfill",
        "roiRangeMonthly": [700, 2100],
        "tags": ["job-cancellations", "reminders", "confirmations"],
    },
    {
        "name": "Customer Retention Assistant",
        "target": "Both",
        "problem": "Low customer lifetime value and poor retention rates",
        "how": "Proactive outreach for maintenance, recalls, and service reminders",
        "roiRangeMonthly": [700, 2100],
        "tags": ["reactivation", "maintenance", "retention", "recalls"],
    },
    {
        "name": "Quality Assurance Monitor",
        "target": "Both",
        "problem": "Inconsistent service quality and missed feedback opportunities",
        "how": "Automated post-service surveys and issue resolution workflows",
        "roiRangeMonthly": [300, 900],
        "tags": ["reviews", "quality", "surveys", "feedback"],
    },
]


APPROVED_CLAIMS: List[str] = [
    "Reduce missed calls by up to 60% with 24/7 AI call handling",
    "Increase appointment confirmations by 45% through automated reminders",
    "Recover 35-50% of lost revenue from improved follow-up processes",
    "Achieve 2-4 week implementation with minimal operational disruption",
    "HIPAA compliant and enterprise-grade security standards",
    "Integrate seamlessly with existing practice management systems",
    "Scale automatically during peak seasons and emergency situations",
    "Provide multilingual support for diverse customer bases",
    "Track and optimize performance with real-time analytics dashboards",
    "Reduce staff workload by automating routine administrative tasks",
]


SKILL_CATALOG: Dict[str, Any] = {
    "version": KB_VERSION,
    "services": SERVICES,
    "approved_claims": APPROVED_CLAIMS,
}
