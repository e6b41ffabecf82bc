"""
Escalation Controllers (API Routes)
===================================

FastAPI routes for the operator escalation surface.

Controllers are thin - they delegate to the engine and the scheduler held
in application state. Authentication is handled upstream.
"""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from src.core import (
    ComplaintAlreadyResolvedException,
    ConcurrentSweepRejectedException,
    ResourceNotFoundException,
    StoreUnavailableException,
    ValidationException,
)
from src.escalation.application import (
    AssignmentRequest,
    AssignmentResponse,
    EscalatedComplaintResponse,
    EscalationEngine,
    EscalationStatsResponse,
    HistoryEntryResponse,
    ManualEscalationRequest,
    ManualEscalationResponse,
    SchedulerStatusResponse,
    SweepResponse,
)
from src.escalation.infrastructure.scheduler import EscalationScheduler
from src.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/escalations", tags=["Escalations"])


# ========== Example payloads for Swagger ==========

SWEEP_RESPONSE_EXAMPLE = {
    "processed": 12,
    "escalated": 2,
    "failed": 0,
    "notified": 2,
    "started_at": "2024-01-15T10:00:00Z",
    "finished_at": "2024-01-15T10:00:01Z"
}

STATS_RESPONSE_EXAMPLE = {
    "total_unresolved": 12,
    "total_escalated": 4,
    "critical_escalations": 1,
    "avg_escalation_level": 0.58,
    "by_priority": [
        {"priority": "high", "count": 5, "escalated": 3},
        {"priority": "medium", "count": 4, "escalated": 1},
        {"priority": "low", "count": 3, "escalated": 0}
    ]
}


# ========== Dependencies ==========

def get_engine(request: Request) -> EscalationEngine:
    engine = getattr(request.app.state, "escalation_engine", None)
    if engine is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Escalation engine not initialized"
        )
    return engine


def get_scheduler(request: Request) -> EscalationScheduler:
    scheduler = getattr(request.app.state, "escalation_scheduler", None)
    if scheduler is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Escalation scheduler not initialized"
        )
    return scheduler


def _not_found(e: ResourceNotFoundException) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)


def _store_down(e: StoreUnavailableException) -> HTTPException:
    logger.error("Escalation store unavailable", extra={"operation": e.operation})
    return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Escalation store unavailable")


# ========== Route Handlers ==========

@router.post(
    "/sweep",
    response_model=SweepResponse,
    summary="Run an escalation sweep now",
    description="""
    Evaluate every unresolved complaint against the SLA table immediately.

    Shares the single-flight guard with the hourly timer: if a sweep is
    already running the request is rejected with **409** rather than queued.
    Idempotent within the cooldown window.
    """,
    responses={
        200: {"content": {"application/json": {"example": SWEEP_RESPONSE_EXAMPLE}}},
        409: {"description": "Sweep already in progress"},
        503: {"description": "Escalation store unavailable"},
    }
)
async def trigger_sweep(scheduler: EscalationScheduler = Depends(get_scheduler)):
    try:
        summary = await scheduler.trigger_now()
    except ConcurrentSweepRejectedException as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=e.message)
    except StoreUnavailableException as e:
        raise _store_down(e)
    return SweepResponse.from_summary(summary)


@router.get(
    "/stats",
    response_model=EscalationStatsResponse,
    summary="Escalation statistics",
    responses={200: {"content": {"application/json": {"example": STATS_RESPONSE_EXAMPLE}}}}
)
async def get_stats(engine: EscalationEngine = Depends(get_engine)):
    try:
        stats = await engine.get_stats()
    except StoreUnavailableException as e:
        raise _store_down(e)
    return EscalationStatsResponse.from_stats(stats)


@router.get(
    "/complaints",
    response_model=List[EscalatedComplaintResponse],
    summary="List escalated complaints",
    description="""
    Complaints with an escalation level above zero, highest level first.

    Admin view excludes resolved complaints; pass `include_resolved=true`
    for the superadmin view.
    """
)
async def list_escalated(
    include_resolved: bool = Query(False, description="Include resolved complaints"),
    engine: EscalationEngine = Depends(get_engine)
):
    try:
        complaints = await engine.list_escalated(include_resolved)
    except StoreUnavailableException as e:
        raise _store_down(e)
    return [EscalatedComplaintResponse.from_domain(c) for c in complaints]


@router.get(
    "/complaints/{complaint_id}/history",
    response_model=List[HistoryEntryResponse],
    summary="Escalation history of a complaint",
    responses={404: {"description": "Complaint not found"}}
)
async def get_history(complaint_id: int, engine: EscalationEngine = Depends(get_engine)):
    try:
        entries = await engine.get_history(complaint_id)
    except ResourceNotFoundException as e:
        raise _not_found(e)
    except StoreUnavailableException as e:
        raise _store_down(e)
    return [HistoryEntryResponse.from_entry(entry) for entry in entries]


@router.post(
    "/complaints/{complaint_id}/escalate",
    response_model=ManualEscalationResponse,
    summary="Escalate a complaint manually",
    description="""
    Raise the complaint's escalation level by exactly one, bypassing the
    automatic cooldown. The operator is recorded in the history reason.
    """,
    responses={
        404: {"description": "Complaint not found"},
        409: {"description": "Complaint already resolved or changed concurrently"},
    }
)
async def escalate_complaint(
    complaint_id: int,
    body: ManualEscalationRequest,
    engine: EscalationEngine = Depends(get_engine)
):
    try:
        outcome = await engine.manual_escalate(complaint_id, body.operator, body.reason)
    except ResourceNotFoundException as e:
        raise _not_found(e)
    except ComplaintAlreadyResolvedException as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=e.message)
    except ValidationException as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=e.message)
    except StoreUnavailableException as e:
        raise _store_down(e)
    return ManualEscalationResponse.from_outcome(outcome)


@router.post(
    "/complaints/{complaint_id}/assign",
    response_model=AssignmentResponse,
    summary="Assign a complaint to an admin",
    responses={
        404: {"description": "Complaint not found"},
        409: {"description": "Complaint already resolved"},
    }
)
async def assign_complaint(
    complaint_id: int,
    body: AssignmentRequest,
    engine: EscalationEngine = Depends(get_engine)
):
    try:
        entry = await engine.assign_complaint(complaint_id, body.admin_id, body.operator, body.note)
    except ResourceNotFoundException as e:
        raise _not_found(e)
    except ComplaintAlreadyResolvedException as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=e.message)
    except ValidationException as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=e.message)
    except StoreUnavailableException as e:
        raise _store_down(e)
    return AssignmentResponse.from_entry(entry)


@router.get(
    "/scheduler",
    response_model=SchedulerStatusResponse,
    summary="Escalation scheduler status"
)
async def scheduler_status(scheduler: EscalationScheduler = Depends(get_scheduler)):
    current = scheduler.status()
    summary = current.pop("last_summary")
    return SchedulerStatusResponse(
        **current,
        last_summary=SweepResponse.from_summary(summary) if summary else None,
    )


# Export router for inclusion in main app
escalation_router = router
