"""
Validation Boundary - schema-checked parsing of pipeline payloads.

Every payload entering or leaving the pipeline passes through here:
- parse_request: section-completion events from the audit UI
- parse_audit_request: multi-section batch events
- parse_response: the envelope returned to callers and stored in the cache
- parse_generation_reply: the narration client's reply

Failures raise InsightValidationError carrying the first failing field path
(dotted, e.g. 'context.vertical') and pydantic's human-readable reason.
Payloads are never partially accepted.
"""

import json
from typing import Any, Type, TypeVar

from pydantic import BaseModel, ValidationError

from insight_engine.core.exceptions import InsightValidationError
from insight_engine.models import (
    AuditInsightRequest,
    GenerationReply,
    InsightRequest,
    InsightResponse,
)

ModelT = TypeVar("ModelT", bound=BaseModel)


def _field_path(loc: tuple) -> str:
    """('audit', 'responses', 0, 'key') -> 'audit.responses[0].key'"""
    path = ""
    for part in loc:
        if isinstance(part, int):
            path += f"[{part}]"
        else:
            path = f"{path}.{part}" if path else str(part)
    return path or "<root>"


def _parse(model: Type[ModelT], raw: Any) -> ModelT:
    if isinstance(raw, model):
        raw = raw.model_dump(mode="json")
    try:
        if isinstance(raw, (str, bytes, bytearray)):
            return model.model_validate_json(raw)
        return model.model_validate(raw)
    except ValidationError as e:
        first = e.errors(include_url=False)[0]
        raise InsightValidationError(_field_path(tuple(first.get("loc", ()))), first.get("msg", "invalid value")) from e


def parse_request(raw: Any) -> InsightRequest:
    """
    Validate a section-completion event.

    Args:
        raw: Mapping, JSON string/bytes, or an InsightRequest to re-validate.

    Returns:
        InsightRequest with defaults applied (currency USD, locale en-US).

    Raises:
        InsightValidationError: On the first failing field.

    Example:
        >>> parse_request({"context": {}, "audit": {"responses": []}})
        Traceback (most recent call last):
        ...
        InsightValidationError: context.auditId: Field required
    """
    return _parse(InsightRequest, raw)


def parse_audit_request(raw: Any) -> AuditInsightRequest:
    """Validate a multi-section batch event."""
    return _parse(AuditInsightRequest, raw)


def parse_response(raw: Any) -> InsightResponse:
    """
    Validate (or re-validate) a response envelope.

    Enforces field ranges plus the run invariants: at most four insights,
    unique keys, at most one insight per section.
    """
    return _parse(InsightResponse, raw)


def parse_generation_reply(raw: Any) -> GenerationReply:
    """
    Validate the narration client's reply.

    Accepts a bare list of items as shorthand for {"items": [...]}.
    """
    if isinstance(raw, (str, bytes, bytearray)):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            raise InsightValidationError("<root>", f"reply is not valid JSON: {e.msg}") from e
    if isinstance(raw, list):
        raw = {"items": raw}
    return _parse(GenerationReply, raw)


__all__ = [
    "parse_request",
    "parse_audit_request",
    "parse_response",
    "parse_generation_reply",
]
