"""
Narration clients - the remote generative step of the pipeline.

The pipeline prices and selects insights deterministically; the generative
model only writes the words around them (title, description, action items,
rationale). It receives the assembled topics plus the approved claims and
must answer with JSON:

    {"items": [{"key", "title", "description", "actionItems",
                "benchmarkNote", "why", "proofPoints"}]}

Clients:
- AnthropicGenerationClient: Claude via the anthropic SDK. SDK retries are
  disabled; the pipeline owns the deadline and the retry budget.
- TemplateGenerationClient: deterministic wording, used when no API key is
  configured and for topics the model left out.
"""

import json
import logging
import re
from typing import Any, Dict, List, Optional, Protocol

from anthropic import APIError, AsyncAnthropic

from insight_engine.core.config import Settings
from insight_engine.core.exceptions import RemoteCallError
from insight_engine.models import (
    Currency,
    GenerationReply,
    NarrationRequest,
    NarrationTopic,
    NarrativeItem,
)
from insight_engine.services.validation import parse_generation_reply

logger = logging.getLogger(__name__)


CURRENCY_SYMBOLS: Dict[Currency, str] = {
    Currency.USD: "$",
    Currency.EUR: "€",
}


def format_money(amount: float, currency: Currency) -> str:
    """format_money(3000, Currency.USD) -> '$3,000'"""
    return f"{CURRENCY_SYMBOLS.get(currency, '')}{amount:,.0f}"


class GenerationClient(Protocol):
    """Anything that can narrate assembled topics."""

    async def narrate(self, request: NarrationRequest) -> GenerationReply:
        ...


# =============================================================================
# Template narration
# =============================================================================


_WORD = re.compile(r"[a-z]+")


def _claim_matches(claim: str, words: List[str]) -> bool:
    lowered = claim.lower()
    return any(word in lowered for word in words)


class TemplateGenerationClient:
    """
    Deterministic narrator.

    Builds every field from the topic itself, picks up to two approved claims
    sharing vocabulary with the skill, and never performs I/O.
    """

    max_proof_points = 2

    def narrate_topic(self, topic: NarrationTopic, approved_claims: List[str]) -> NarrativeItem:
        problem = topic.key.replace("_", " ")
        amount = format_money(topic.monthlyImpact, topic.currency)

        description = f"Up to {amount} a month is at risk from {problem}."
        if topic.signals:
            description += f" Your answers show {', '.join(topic.signals)}."
        if topic.problem:
            description += f" {topic.problem.rstrip('.')}."

        words = [
            word
            for word in _WORD.findall(f"{topic.key} {topic.skillName}".lower())
            if len(word) > 4
        ]
        proof_points = [
            claim for claim in approved_claims if _claim_matches(claim, words)
        ][: self.max_proof_points]

        return NarrativeItem(
            key=topic.key,
            title=f"Recover {amount}/month lost to {problem}",
            description=description,
            actionItems=[
                f"Pilot {topic.skillName} for 30 days",
                f"Track {problem} weekly against the benchmark",
            ],
            benchmarkNote=topic.benchmarkNote,
            why=topic.how or f"{topic.skillName} addresses {problem} directly",
            proofPoints=proof_points,
        )

    async def narrate(self, request: NarrationRequest) -> GenerationReply:
        return GenerationReply(
            items=[self.narrate_topic(topic, request.approvedClaims) for topic in request.topics]
        )


# =============================================================================
# Anthropic narration
# =============================================================================


SYSTEM_PROMPT = (
    "You write short, concrete business recommendations for {vertical} owners. "
    "For every topic you receive, return one item with the same key. "
    "Never change or invent numbers: restate monthlyImpact and formula as given. "
    "proofPoints may only quote strings from approvedClaims verbatim. "
    "Write in locale {locale}. "
    'Answer with JSON only: {{"items": [{{"key": str, "title": str, "description": str, '
    '"actionItems": [str], "benchmarkNote": str, "why": str, "proofPoints": [str]}}]}}'
)


def parse_json_response(text: str) -> Any:
    """
    Parse JSON from a model reply, tolerating markdown fences and prose.

    Raises:
        ValueError: When no JSON object can be recovered.
    """
    candidate = text
    if "```json" in candidate:
        candidate = candidate.split("```json")[1].split("```")[0]
    elif "```" in candidate:
        candidate = candidate.split("```")[1].split("```")[0]
    try:
        return json.loads(candidate.strip())
    except (json.JSONDecodeError, IndexError):
        pass

    match = re.search(r"\{[\s\S]*\}", text)
    if match:
        try:
            return json.loads(match.group())
        except json.JSONDecodeError:
            pass

    raise ValueError("no JSON object found in model reply")


class AnthropicGenerationClient:
    """
    Narrator backed by Claude.

    Args:
        api_key: Anthropic API key.
        model: Model name.
        max_tokens: Reply token budget.
        temperature: Sampling temperature.
        client: Pre-built AsyncAnthropic client (tests inject a mock).
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "claude-sonnet-4-5-20250929",
        max_tokens: int = 1200,
        temperature: float = 0.2,
        client: Optional[AsyncAnthropic] = None,
    ):
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self._client = client or AsyncAnthropic(api_key=api_key, max_retries=0)

    def _render_prompt(self, request: NarrationRequest) -> str:
        payload = {
            "business": request.businessName,
            "topics": [topic.model_dump(mode="json") for topic in request.topics],
            "approvedClaims": request.approvedClaims,
        }
        return json.dumps(payload, indent=2)

    async def narrate(self, request: NarrationRequest) -> GenerationReply:
        try:
            response = await self._client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                system=SYSTEM_PROMPT.format(vertical=request.vertical.value, locale=request.locale),
                messages=[{"role": "user", "content": self._render_prompt(request)}],
            )
        except APIError as e:
            raise RemoteCallError(f"Narration call failed: {e}") from e

        text = response.content[0].text if response.content else ""
        try:
            raw = parse_json_response(text)
        except ValueError:
            logger.warning(f"Unparseable narration reply ({len(text)} chars)")
            raw = text
        return parse_generation_reply(raw)


def build_generation_client(settings: Settings) -> GenerationClient:
    """Anthropic narration when a key is configured, template narration otherwise."""
    if settings.anthropic_api_key:
        logger.info(f"Using Anthropic narration ({settings.generation_model})")
        return AnthropicGenerationClient(
            api_key=settings.anthropic_api_key,
            model=settings.generation_model,
            max_tokens=settings.generation_max_tokens,
            temperature=settings.generation_temperature,
        )
    logger.info("No Anthropic API key configured; using template narration")
    return TemplateGenerationClient()


__all__ = [
    "GenerationClient",
    "TemplateGenerationClient",
    "AnthropicGenerationClient",
    "build_generation_client",
    "format_money",
    "parse_json_response",
]
