"""
Request Orchestrator - one in-flight request per (audit id, section id).

State machine per key:

    idle -> in-flight -> {resolved, cancelled, failed}

- Submitting while a request for the same key is in flight cancels the
  older request's token first. Its late result, if any, is discarded and
  never overwrites state recorded for the newer request.
- cancelled resolves silently to [] (the request was superseded).
- failed raises InsightGenerationError to the caller. There is no automatic
  retry here; the pipeline owns the narration retry budget.
- Every terminal state removes the per-key tracking entry, but only when the
  entry still belongs to the finishing request.

Keys never interact: requests for different (audit, section) pairs never
cancel or observe each other. A batch holds one entry per section it covers,
all sharing its token. The in-flight map is guarded by a lock.
"""

import itertools
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from insight_engine.core.exceptions import InsightGenerationError, RequestCancelled
from insight_engine.models import (
    AuditInsightRequest,
    Insight,
    InsightRequest,
    RequestState,
    SectionStatus,
)
from insight_engine.services.cancellation import CancellationToken
from insight_engine.services.pipeline import InsightPipeline

logger = logging.getLogger(__name__)

RequestKey = Tuple[str, str]


@dataclass(frozen=True)
class InFlightHandle:
    """Tracking entry of the current request for one key."""
    token: CancellationToken
    generation: int
    started_at: datetime


@dataclass(frozen=True)
class TerminalRecord:
    """Last terminal outcome recorded for a key."""
    state: RequestState
    error: Optional[str]
    finished_at: datetime


def _now() -> datetime:
    return datetime.now(timezone.utc)


class RequestOrchestrator:
    """
    Client-facing coordinator in front of the pipeline.

    Args:
        pipeline: Pipeline that computes insights.

    Example:
        >>> orchestrator = RequestOrchestrator(pipeline)
        >>> insights = await orchestrator.submit(request)
        >>> orchestrator.status("aud_1", "scheduling-noshows").state
        <RequestState.RESOLVED: 'resolved'>
    """

    def __init__(self, pipeline: InsightPipeline):
        self._pipeline = pipeline
        self._lock = threading.Lock()
        self._in_flight: Dict[RequestKey, InFlightHandle] = {}
        self._last: Dict[RequestKey, TerminalRecord] = {}
        self._generations = itertools.count(1)

    # =========================================================================
    # Submission
    # =========================================================================

    async def submit(self, request: InsightRequest) -> List[Insight]:
        """
        Submit a section-completion event.

        Returns:
            List[Insight]: The insights, or [] when the request was superseded.

        Raises:
            InsightGenerationError: The request failed (validation or narration).
        """
        keys = [(request.context.auditId, request.context.sectionId)]
        return await self._track(keys, lambda token: self._pipeline.generate_insights(request, token=token))

    async def submit_audit(self, request: AuditInsightRequest) -> List[Insight]:
        """
        Submit a multi-section batch.

        The batch is tracked under every (audit, section) key it covers with
        one shared token: it reports in flight for each of its sections, and a
        later submission for any of them supersedes the whole batch.
        """
        keys = list(dict.fromkeys(
            (section.context.auditId, section.context.sectionId) for section in request.sections
        ))
        return await self._track(
            keys,
            lambda token: self._pipeline.generate_audit_insights(request, token=token),
        )

    async def _track(
        self,
        keys: List[RequestKey],
        run: Callable[[CancellationToken], Awaitable[List[Insight]]],
    ) -> List[Insight]:
        handle = self._begin(keys)
        audit_id = keys[0][0]
        section_id = ",".join(section for _, section in keys)

        try:
            insights = await run(handle.token)
        except RequestCancelled:
            logger.info(f"Request #{handle.generation} for {audit_id}/{section_id} cancelled")
            self._finish(keys, handle, RequestState.CANCELLED)
            return []
        except Exception as e:
            if handle.token.cancelled:
                # Superseded requests resolve empty even when they fail
                self._finish(keys, handle, RequestState.CANCELLED)
                return []
            logger.error(f"Insight generation failed for {audit_id}/{section_id}: {e}", exc_info=True)
            self._finish(keys, handle, RequestState.FAILED, error=str(e))
            raise InsightGenerationError(
                audit_id,
                section_id,
                f"Insight generation failed for section '{section_id}': {e}",
                cause=e,
            ) from e
        except BaseException:
            # asyncio.CancelledError from the caller's task
            self._finish(keys, handle, RequestState.CANCELLED)
            raise

        if handle.token.cancelled:
            self._finish(keys, handle, RequestState.CANCELLED)
            return []

        self._finish(keys, handle, RequestState.RESOLVED)
        return insights

    def _begin(self, keys: List[RequestKey]) -> InFlightHandle:
        with self._lock:
            handle = InFlightHandle(
                token=CancellationToken(),
                generation=next(self._generations),
                started_at=_now(),
            )
            for key in keys:
                previous = self._in_flight.get(key)
                if previous is not None and not previous.token.cancelled:
                    previous.token.cancel()
                    logger.info(f"Cancelled superseded request #{previous.generation} for {key[0]}/{key[1]}")
                self._in_flight[key] = handle
        return handle

    def _finish(
        self,
        keys: List[RequestKey],
        handle: InFlightHandle,
        state: RequestState,
        error: Optional[str] = None,
    ) -> None:
        finished_at = _now()
        with self._lock:
            for key in keys:
                # Only the current request may move a key to a terminal state
                if self._in_flight.get(key) is not handle:
                    continue
                del self._in_flight[key]
                self._last[key] = TerminalRecord(state=state, error=error, finished_at=finished_at)

    # =========================================================================
    # Side channel
    # =========================================================================

    def cancel(self, audit_id: str, section_id: str) -> bool:
        """Cancel the in-flight request for a key; False when none is in flight."""
        with self._lock:
            handle = self._in_flight.get((audit_id, section_id))
            if handle is None:
                return False
            handle.token.cancel()
            return True

    def is_in_flight(self, audit_id: str, section_id: str) -> bool:
        with self._lock:
            return (audit_id, section_id) in self._in_flight

    def status(self, audit_id: str, section_id: str) -> SectionStatus:
        """
        Loading/error state of a section without triggering generation.

        In-flight keys report 'in-flight'; otherwise the last terminal state
        (or 'idle' when nothing was ever submitted) is reported.
        """
        key = (audit_id, section_id)
        with self._lock:
            handle = self._in_flight.get(key)
            record = self._last.get(key)
        if handle is not None:
            return SectionStatus(
                auditId=audit_id,
                sectionId=section_id,
                state=RequestState.IN_FLIGHT,
                inFlight=True,
                lastError=record.error if record else None,
                updatedAt=handle.started_at,
            )
        if record is not None:
            return SectionStatus(
                auditId=audit_id,
                sectionId=section_id,
                state=record.state,
                inFlight=False,
                lastError=record.error,
                updatedAt=record.finished_at,
            )
        return SectionStatus(auditId=audit_id, sectionId=section_id)

    def clear_error(self, audit_id: str, section_id: str) -> None:
        """Dismiss a recorded failure; the key reports idle afterwards."""
        with self._lock:
            record = self._last.get((audit_id, section_id))
            if record is not None and record.state == RequestState.FAILED:
                del self._last[(audit_id, section_id)]


__all__ = [
    "InFlightHandle",
    "RequestOrchestrator",
]
