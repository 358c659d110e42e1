"""
Pytest Configuration and Shared Fixtures for Insight Engine Tests.

This module provides fixtures and configuration for all insight engine tests:
- Async test execution with pytest-asyncio
- Deterministic time: a manually advanced monotonic clock for the cache and
  a fixed creation timestamp for insights
- Narration fakes: a recording template narrator, a failing narrator and a
  narrator that blocks until released (cancellation tests)
- Request builders producing validated InsightRequest instances
- A custom skill catalog whose skills carry no ROI range

Test Categories:
- KB slicer: vertical/tag filtering, tolerant parsing
- Signals: rule thresholds, vertical restriction
- Impact estimator: conservative ROI rule, confidence policy
- Assembler: key normalization, dedup, caps
- Validation: field paths of failures, response invariants
- Cache: TTL expiry, eviction, counters
- Pipeline: gate, caching, end-to-end scenarios, retry budget
- Orchestrator: supersession, failure, status side channel
- API: HTTP surface through TestClient
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import pytest

from insight_engine.core.config import Settings
from insight_engine.core.exceptions import RemoteCallError
from insight_engine.kb.catalog import APPROVED_CLAIMS
from insight_engine.models import GenerationReply, InsightRequest, NarrationRequest
from insight_engine.services.cache import InsightCache
from insight_engine.services.generation import TemplateGenerationClient
from insight_engine.services.pipeline import InsightPipeline
from insight_engine.services.validation import parse_request


# ============================================================
# PYTEST HOOKS
# ============================================================

def pytest_configure(config) -> None:
    """
    Configure custom pytest markers for test organization.

    Custom markers defined:
    - slow: Marks tests as slow (deselect with -m "not slow")
    - integration: Marks tests exercising the full HTTP stack

    Args:
        config: Pytest configuration object
    """
    config.addinivalue_line(
        'markers',
        'slow: marks tests as slow (deselect with -m "not slow")'
    )
    config.addinivalue_line(
        'markers',
        'integration: marks tests exercising the full HTTP stack'
    )


# ============================================================
# TIME FIXTURES
# ============================================================

FIXED_CREATED_AT = datetime(2026, 1, 15, 10, 30, tzinfo=timezone.utc)


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_clock() -> FakeClock:
    """Manually advanced clock injected into the cache."""
    return FakeClock()


# ============================================================
# SETTINGS / CACHE FIXTURES
# ============================================================

@pytest.fixture
def settings() -> Settings:
    """
    Settings isolated from the environment and any .env file.

    No API key (template narration), a short narration deadline and no
    backoff so retry tests stay fast.
    """
    return Settings(
        _env_file=None,
        anthropic_api_key=None,
        generation_timeout_seconds=0.5,
        generation_max_attempts=2,
        generation_backoff_seconds=0.0,
    )


@pytest.fixture
def cache(fake_clock: FakeClock) -> InsightCache:
    """Fresh cache per test, driven by the fake clock."""
    return InsightCache(
        ttl_seconds=300,
        empty_ttl_seconds=60,
        max_entries=200,
        clock=fake_clock,
    )


# ============================================================
# NARRATION CLIENT FAKES
# ============================================================

class RecordingGenerationClient:
    """Template narrator that records every request it receives."""

    def __init__(self) -> None:
        self.requests: List[NarrationRequest] = []
        self._template = TemplateGenerationClient()

    @property
    def calls(self) -> int:
        return len(self.requests)

    async def narrate(self, request: NarrationRequest) -> GenerationReply:
        self.requests.append(request)
        return await self._template.narrate(request)


class FailingGenerationClient:
    """Narrator whose first `failures` calls raise RemoteCallError."""

    def __init__(self, failures: int = 10**6) -> None:
        self.failures = failures
        self.calls = 0
        self._template = TemplateGenerationClient()

    async def narrate(self, request: NarrationRequest) -> GenerationReply:
        self.calls += 1
        if self.calls <= self.failures:
            raise RemoteCallError("upstream unavailable")
        return await self._template.narrate(request)


class BlockingGenerationClient:
    """
    Narrator whose first call blocks until `release` is set.

    Later calls answer immediately, so a superseding request can complete
    while the first one is still suspended.
    """

    def __init__(self) -> None:
        self.started = asyncio.Event()
        self.release = asyncio.Event()
        self.calls = 0
        self._template = TemplateGenerationClient()

    async def narrate(self, request: NarrationRequest) -> GenerationReply:
        self.calls += 1
        if self.calls == 1:
            self.started.set()
            await self.release.wait()
        return await self._template.narrate(request)


@pytest.fixture
def recording_client() -> RecordingGenerationClient:
    """Template narrator with a call log."""
    return RecordingGenerationClient()


@pytest.fixture
def pipeline(
    cache: InsightCache,
    recording_client: RecordingGenerationClient,
    settings: Settings,
) -> InsightPipeline:
    """Pipeline over the bundled knowledge base with template narration."""
    return InsightPipeline(
        cache=cache,
        generation_client=recording_client,
        settings=settings,
        clock=lambda: FIXED_CREATED_AT,
    )


# ============================================================
# KNOWLEDGE BASE FIXTURES
# ============================================================

@pytest.fixture
def no_roi_catalog() -> Dict[str, Any]:
    """
    Catalog whose skills carry no ROI range.

    Impact then rests entirely on recovery rate x matched loss.
    """
    return {
        "version": "test-no-roi",
        "services": [
            {
                "name": "Appointment Reminder System",
                "target": "Dental",
                "problem": "High no-show rates reducing practice efficiency and revenue",
                "how": "Reminder sequence via calls, texts, and emails",
                "tags": ["no-shows", "reminders"],
            },
        ],
        "approved_claims": list(APPROVED_CLAIMS),
    }


# ============================================================
# REQUEST BUILDERS
# ============================================================

def _build_request_payload(
    section_id: str = "scheduling-noshows",
    responses: Optional[Dict[str, Any]] = None,
    vertical: str = "dental",
    audit_id: str = "aud_test",
    loss_items: Optional[List[Dict[str, Any]]] = None,
    previous_keys: Optional[List[str]] = None,
    business_name: str = "Bright Smiles Dental",
) -> Dict[str, Any]:
    if responses is None:
        responses = {
            "weekly_no_shows": 6,
            "avg_appointment_value_usd": 190,
            "reminder_channel_choice": "manual_calls",
        }
    payload: Dict[str, Any] = {
        "context": {
            "auditId": audit_id,
            "vertical": vertical,
            "sectionId": section_id,
            "business": {"name": business_name, "location": "Austin, TX"},
        },
        "audit": {
            "responses": [{"key": key, "value": value} for key, value in responses.items()],
        },
        "history": {"previousKeys": previous_keys or []},
    }
    if loss_items is not None:
        payload["lossSummary"] = {
            "items": loss_items,
            "totalMonthly": sum(item["resultMonthly"] for item in loss_items),
        }
    return payload


@pytest.fixture
def request_payload() -> Callable[..., Dict[str, Any]]:
    """
    Factory for raw request payloads (dicts, as sent over HTTP).

    Defaults to a dental scheduling section reporting 6 weekly no-shows.
    """
    return _build_request_payload


@pytest.fixture
def build_request() -> Callable[..., InsightRequest]:
    """Factory for validated InsightRequest instances."""
    def _build(**kwargs: Any) -> InsightRequest:
        return parse_request(_build_request_payload(**kwargs))
    return _build


@pytest.fixture
def no_show_loss() -> List[Dict[str, Any]]:
    """A single 5,000/month no-show loss record."""
    return [
        {
            "area": "No-Shows Revenue Loss",
            "formula": "6 x 4.3 x 190",
            "assumptions": ["Average visit value $190"],
            "resultMonthly": 5000,
            "confidence": 70,
        }
    ]
