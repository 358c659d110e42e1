"""
Domain exceptions raised by the insight pipeline.

Error taxonomy:
- InsightValidationError: malformed request, response or narration payload.
  Fatal for the invocation, never retried.
- RemoteCallError: the narration call timed out or failed in transport.
  Retried a fixed number of times by the pipeline, then raised.
- RequestCancelled: the request was superseded by a newer one for the same
  (audit, section) key. Resolved silently as an empty result.
- InsightGenerationError: what the request orchestrator raises to its caller
  for any failed terminal state.

An insufficient-data gate is not an error; it is an empty result.
"""

from typing import Optional


class InsightEngineError(RuntimeError):
    """Base class of every error raised by the insight pipeline."""


class InsightValidationError(InsightEngineError):
    """
    Payload failed schema validation.

    Attributes:
        field: Dotted path of the first failing field, e.g. 'context.vertical'.
        reason: Human-readable reason for the failure.
    """

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"{field}: {reason}")


class RemoteCallError(InsightEngineError):
    """Narration call failed after the retry budget was exhausted."""

    def __init__(self, message: str, attempts: int = 1):
        self.attempts = attempts
        super().__init__(message)


class RequestCancelled(InsightEngineError):
    """Request was superseded before it reached a terminal state."""


class InsightGenerationError(InsightEngineError):
    """
    Failed terminal state surfaced by the request orchestrator.

    Attributes:
        audit_id: Audit of the failed request.
        section_id: Section of the failed request.
        cause: Underlying pipeline error, when there is one.
    """

    def __init__(
        self,
        audit_id: str,
        section_id: str,
        message: str,
        cause: Optional[BaseException] = None,
    ):
        self.audit_id = audit_id
        self.section_id = section_id
        self.cause = cause
        super().__init__(message)


__all__ = [
    "InsightEngineError",
    "InsightValidationError",
    "RemoteCallError",
    "RequestCancelled",
    "InsightGenerationError",
]
