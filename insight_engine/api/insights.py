"""
FastAPI router module for insight generation endpoints.

This module implements endpoints for:
- Section submission: generate insights for one just-completed audit section
- Audit submission: generate insights for several sections in one capped run
- Status side channel: loading / error state of a section without re-triggering
- Cache maintenance: counters and purge of expired entries

Error mapping:
- 422: request failed validation (detail carries field path and reason)
- 502: narration call failed after the retry budget
- 500: any other pipeline failure (e.g. response re-validation)

A superseded request is not an error: it answers 200 with an empty list.
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Body, HTTPException

from insight_engine.core.dependencies import CacheDep, OrchestratorDep
from insight_engine.core.exceptions import (
    InsightGenerationError,
    InsightValidationError,
    RemoteCallError,
)
from insight_engine.models import CacheStats, InsightResponse, SectionStatus, ValidationErrorDetail
from insight_engine.services.validation import parse_audit_request, parse_request

# Configure logging
logger = logging.getLogger(__name__)

# Create router with prefix and tags for OpenAPI documentation
router = APIRouter(prefix="/insights", tags=["insights"])


# =============================================================================
# Helper Functions
# =============================================================================


def _validation_http_error(error: InsightValidationError) -> HTTPException:
    """Translate a validation failure into HTTP 422 with a structured detail."""
    return HTTPException(
        status_code=422,
        detail=ValidationErrorDetail(field=error.field, reason=error.reason).model_dump(),
    )


def _generation_http_error(error: InsightGenerationError) -> HTTPException:
    """
    Translate a failed terminal state into an HTTP error.

    Narration failures map to 502 (upstream dependency), everything else
    to 500.
    """
    status_code = 502 if isinstance(error.cause, RemoteCallError) else 500
    return HTTPException(status_code=status_code, detail=str(error))


# =============================================================================
# Submission Endpoints
# =============================================================================


@router.post("/sections", response_model=InsightResponse)
async def submit_section(
    orchestrator: OrchestratorDep,
    payload: Dict[str, Any] = Body(...),
) -> InsightResponse:
    """
    Generate insights for a just-completed audit section.

    Submitting again for the same (auditId, sectionId) while a previous
    submission is still computing cancels the previous one; the cancelled
    call answers with an empty list.

    Request Body:
        InsightRequest payload (context, audit, optional lossSummary, history)

    Returns:
        InsightResponse with 0-1 insights for the section

    Raises:
        HTTPException 422: Payload failed validation
        HTTPException 502: Narration call failed
        HTTPException 500: Any other generation failure
    """
    try:
        request = parse_request(payload)
        insights = await orchestrator.submit(request)
        return InsightResponse(auditId=request.context.auditId, insights=insights)
    except InsightValidationError as e:
        logger.info(f"Rejected section submission: {e}")
        raise _validation_http_error(e)
    except InsightGenerationError as e:
        raise _generation_http_error(e)
    except Exception as e:
        logger.error(f"Unexpected error in section submission: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Insight generation failed: {str(e)}")


@router.post("/audit", response_model=InsightResponse)
async def submit_audit(
    orchestrator: OrchestratorDep,
    payload: Dict[str, Any] = Body(...),
) -> InsightResponse:
    """
    Generate insights for several completed sections of one audit.

    The four-per-run and one-per-section caps, and dedup by problem key,
    apply across all sections of the payload.

    Request Body:
        {"sections": [InsightRequest, ...]}

    Returns:
        InsightResponse with 0-4 insights

    Raises:
        HTTPException 422: Payload failed validation
        HTTPException 502: Narration call failed
        HTTPException 500: Any other generation failure
    """
    try:
        request = parse_audit_request(payload)
        insights = await orchestrator.submit_audit(request)
        return InsightResponse(auditId=request.sections[0].context.auditId, insights=insights)
    except InsightValidationError as e:
        logger.info(f"Rejected audit submission: {e}")
        raise _validation_http_error(e)
    except InsightGenerationError as e:
        raise _generation_http_error(e)
    except Exception as e:
        logger.error(f"Unexpected error in audit submission: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Insight generation failed: {str(e)}")


# =============================================================================
# Status Side Channel
# =============================================================================


@router.get("/status/{audit_id}/{section_id}", response_model=SectionStatus)
async def get_section_status(
    audit_id: str,
    section_id: str,
    orchestrator: OrchestratorDep,
) -> SectionStatus:
    """
    Report whether generation is in flight for a section, or whether its last
    attempt failed. Never triggers generation.
    """
    return orchestrator.status(audit_id, section_id)


@router.delete("/status/{audit_id}/{section_id}/error", response_model=SectionStatus)
async def dismiss_section_error(
    audit_id: str,
    section_id: str,
    orchestrator: OrchestratorDep,
) -> SectionStatus:
    """Dismiss the recorded failure of a section."""
    orchestrator.clear_error(audit_id, section_id)
    return orchestrator.status(audit_id, section_id)


# =============================================================================
# Cache Maintenance
# =============================================================================


@router.get("/cache/stats", response_model=CacheStats)
async def get_cache_stats(cache: CacheDep) -> CacheStats:
    """
    Return cache counters: size, ceiling, hits, misses, evictions, expirations
    and the configured TTLs.
    """
    return cache.stats()


@router.post("/cache/purge")
async def purge_cache(cache: CacheDep) -> Dict[str, int]:
    """Remove every expired entry."""
    purged = cache.purge_expired()
    return {"purged": purged, "size": len(cache)}
