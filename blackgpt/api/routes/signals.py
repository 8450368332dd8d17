"""
Signal management endpoints.
"""
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Body, Depends, Query

from blackgpt.api.dependencies import get_lifecycle
from blackgpt.api.schemas import (
    AuditResponse,
    ContradictionResponse,
    CorrelationJobResponse,
    Pagination,
    ResearchRequest,
    ResearchResponse,
    SignalDetailResponse,
    SignalListResponse,
    SignalResponse,
    SignalUploadRequest,
    VerifyRequest,
)
from blackgpt.core.signal_lifecycle import SignalFilters, SignalInput, SignalLifecycleManager
from blackgpt.models.signals import SignalStatus
from blackgpt.utils.constants import DEFAULT_PAGE_SIZE, RECENT_AUDIT_LIMIT, RECENT_JOB_LIMIT

router = APIRouter()

def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Timestamps are stored as naive UTC."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)

@router.post("/upload", response_model=SignalResponse, status_code=201)
def upload_signal(request: SignalUploadRequest, lifecycle: SignalLifecycleManager = Depends(get_lifecycle)):
    """
    Upload a new signal.
    Missing observation dates default to the upload time.
    """
    now = datetime.utcnow()
    date_from = to_naive_utc(request.date_from) or now
    date_to = to_naive_utc(request.date_to) or max(now, date_from)

    return lifecycle.create_signal(SignalInput(
        script_name=request.script_name,
        date_from=date_from,
        date_to=date_to,
        gist_text=request.gist_text,
        provenance_tags=request.provenance_tags,
        created_by=request.uploader_id,
        source_type=request.source_type,
        confidence_score=request.confidence_score,
    ))

@router.get("", response_model=SignalListResponse)
@router.get("/", response_model=SignalListResponse, include_in_schema=False)
def list_signals(
    status: Optional[SignalStatus] = Query(None, description="Filter by status"),
    date_from: Optional[datetime] = Query(None, alias="dateFrom", description="Created at or after"),
    date_to: Optional[datetime] = Query(None, alias="dateTo", description="Created at or before"),
    min_confidence: Optional[float] = Query(None, alias="minConfidence", ge=0.0, le=1.0),
    max_confidence: Optional[float] = Query(None, alias="maxConfidence", ge=0.0, le=1.0),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, description="Page size, capped at 100"),
    lifecycle: SignalLifecycleManager = Depends(get_lifecycle)
):
    """
    List signals with optional filters, newest first.
    """
    result = lifecycle.list_signals(SignalFilters(
        status=status,
        date_from=to_naive_utc(date_from),
        date_to=to_naive_utc(date_to),
        min_confidence=min_confidence,
        max_confidence=max_confidence,
        page=page,
        limit=limit,
    ))

    return SignalListResponse(
        signals=[SignalResponse.model_validate(s) for s in result.signals],
        pagination=Pagination(
            page=result.page,
            limit=result.limit,
            total=result.total,
            total_pages=result.total_pages,
        ),
    )

@router.get("/stats/summary")
def signal_stats(lifecycle: SignalLifecycleManager = Depends(get_lifecycle)):
    """
    Get signal statistics summary.
    """
    stats = lifecycle.signal_stats()
    return {
        "total": stats["total"],
        "requiresAttention": stats["requires_attention"],
        "byStatus": stats["by_status"],
    }

@router.get("/{signal_id}", response_model=SignalDetailResponse)
def get_signal(signal_id: str, lifecycle: SignalLifecycleManager = Depends(get_lifecycle)):
    """
    Get a signal with its most recent audit entries and correlation jobs.
    """
    signal = lifecycle.get_signal(signal_id)
    detail = SignalDetailResponse.model_validate(signal)
    detail.audits = detail.audits[:RECENT_AUDIT_LIMIT]
    detail.correlation_jobs = detail.correlation_jobs[:RECENT_JOB_LIMIT]
    return detail

@router.post("/{signal_id}/verify", response_model=SignalResponse)
def verify_signal(signal_id: str, request: VerifyRequest,
                  lifecycle: SignalLifecycleManager = Depends(get_lifecycle)):
    """
    Apply a reviewer decision: accept, reject or followup.
    """
    return lifecycle.verify_signal(signal_id, request.reviewer_id, request.action, notes=request.notes)

@router.post("/{signal_id}/research-public", response_model=ResearchResponse)
async def research_public(signal_id: str, request: Optional[ResearchRequest] = Body(None),
                          lifecycle: SignalLifecycleManager = Depends(get_lifecycle)):
    """
    Correlate a signal against public sources.
    Runs inside the request; returns once every connector has answered or timed out.
    """
    request = request or ResearchRequest()
    outcome = await lifecycle.research_public_web(signal_id, request.initiated_by)
    contradiction = outcome.contradiction

    return ResearchResponse(
        job=CorrelationJobResponse.model_validate(outcome.job),
        summary=outcome.summary,
        contradiction=ContradictionResponse(**contradiction.to_dict()),
        sources=outcome.sources,
        confidence=outcome.confidence,
    )

@router.get("/{signal_id}/audit", response_model=List[AuditResponse])
def get_audit_trail(signal_id: str, lifecycle: SignalLifecycleManager = Depends(get_lifecycle)):
    """
    Full audit trail for a signal, newest first.
    """
    return lifecycle.get_audit_trail(signal_id)
