"""
SLA Controllers (API Routes)
=============================

FastAPI routes for complaint SLA tracking.

Controllers are thin - they delegate to application services. The
services and the clock are created once at startup and read from
`app.state`.
"""

from datetime import datetime, timezone
from typing import Callable

from fastapi import APIRouter, Depends, HTTPException, Request, status

from src.core.exceptions import (
    ApplicationException,
    ConcurrencyConflictException,
    DomainException,
    ResourceNotFoundException,
)
from src.shared.infrastructure.logging import get_logger
from src.sla.application import (
    AssignmentRequest,
    ComplaintSLAResponse,
    ComplaintSLAService,
    ComplaintSubmitRequest,
    EscalationTriggerResponse,
    PriorityChangeRequest,
    SLAConfigResponse,
    SLAMetricsResponse,
    StatusChangeRequest,
    TriageAlertsResponse,
)
from src.sla.domain import Complaint

logger = get_logger(__name__)
router = APIRouter(prefix="/sla", tags=["SLA Tracking"])


# ========== Example payloads for Swagger ==========

COMPLAINT_SLA_RESPONSE_EXAMPLE = {
    "id": "123e4567-e89b-12d3-a456-426614174000",
    "title": "Street light out on Main St",
    "status": "assigned",
    "priority": "high",
    "sla_phase": "resolution",
    "submitted_at": "2024-01-15T10:00:00Z",
    "sla_start": "2024-01-15T14:00:00Z",
    "triage_sla_due": "2024-01-16T10:00:00Z",
    "resolution_sla_due": "2024-01-16T14:00:00Z",
    "sla_due": "2024-01-16T14:00:00Z",
    "response_sla_due": "2024-01-15T16:00:00Z",
    "triage_breached": False,
    "priority_set_at": "2024-01-15T14:00:00Z",
    "assigned_to": "officer-7",
    "assigned_at": "2024-01-15T14:00:00Z",
    "closed_at": None,
    "escalation_level": 0,
    "escalation_history": [],
    "is_breached": False,
    "hours_remaining": 20,
    "hours_until_sla_breach": 20,
    "version": 2
}

_ERROR_RESPONSES = {
    404: {"description": "Complaint not found"},
    409: {"description": "Complaint was modified concurrently; re-read and retry"},
}


# ========== Dependencies ==========

def get_sla_service(request: Request) -> ComplaintSLAService:
    """Get the SLA service created at startup."""
    service = getattr(request.app.state, "sla_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="SLA service not initialized"
        )
    return service


def get_now(request: Request) -> datetime:
    """Current time from the app clock (UTC wall clock unless overridden)."""
    clock: Callable[[], datetime] = getattr(
        request.app.state, "clock", lambda: datetime.now(timezone.utc)
    )
    return clock()


def _http_error(exc: ApplicationException) -> HTTPException:
    """Map application errors onto HTTP status codes."""
    if isinstance(exc, ResourceNotFoundException):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.message)
    if isinstance(exc, ConcurrencyConflictException):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=exc.message)
    if isinstance(exc, DomainException):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.message)

    logger.error(
        "SLA request failed",
        extra={"error_type": type(exc).__name__, "error": exc.message}
    )
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Internal server error"
    )


# ========== Route Handlers ==========

@router.post(
    "/complaints",
    response_model=ComplaintSLAResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit a complaint",
    description="""
    Register a new complaint and start its triage clock.

    The triage deadline is `submitted_at + SLA_TRIAGE_HOURS`; the complaint
    stays in the triage phase until an officer is assigned with a priority.
    """,
)
async def submit_complaint(
    payload: ComplaintSubmitRequest,
    sla_service: ComplaintSLAService = Depends(get_sla_service),
    now: datetime = Depends(get_now)
):
    complaint = Complaint(
        title=payload.title,
        description=payload.description,
        category=payload.category,
        submitted_by=payload.submitted_by,
    )
    try:
        saved = await sla_service.submit(complaint, now)
    except ApplicationException as e:
        raise _http_error(e) from e
    return sla_service.to_response(saved, now)


@router.post(
    "/complaints/{complaint_id}/assign",
    response_model=ComplaintSLAResponse,
    summary="Assign an officer with a priority",
    description="""
    Move the complaint from triage to resolution.

    The resolution clock starts now, sized by the priority:
    high 24h, medium 72h, low 168h (defaults).
    Assigning after the triage deadline marks `triage_breached`.
    """,
    responses={
        **_ERROR_RESPONSES,
        400: {"description": "Complaint is already in the resolution phase"},
    }
)
async def assign_complaint(
    complaint_id: str,
    payload: AssignmentRequest,
    sla_service: ComplaintSLAService = Depends(get_sla_service),
    now: datetime = Depends(get_now)
):
    try:
        saved = await sla_service.assign_with_priority(
            complaint_id, payload.officer, payload.priority, now
        )
    except ApplicationException as e:
        raise _http_error(e) from e
    return sla_service.to_response(saved, now)


@router.patch(
    "/complaints/{complaint_id}/priority",
    response_model=ComplaintSLAResponse,
    summary="Change complaint priority",
    description="""
    Change priority. During resolution this restarts the resolution clock
    from now with the new priority's duration; during triage it only
    records the priority.
    """,
    responses=_ERROR_RESPONSES
)
async def change_priority(
    complaint_id: str,
    payload: PriorityChangeRequest,
    sla_service: ComplaintSLAService = Depends(get_sla_service),
    now: datetime = Depends(get_now)
):
    try:
        saved = await sla_service.change_priority(complaint_id, payload.priority, now)
    except ApplicationException as e:
        raise _http_error(e) from e
    return sla_service.to_response(saved, now)


@router.patch(
    "/complaints/{complaint_id}/status",
    response_model=ComplaintSLAResponse,
    summary="Change complaint status",
    responses={
        **_ERROR_RESPONSES,
        400: {"description": "Resolution requested without a filed report"},
    }
)
async def update_status(
    complaint_id: str,
    payload: StatusChangeRequest,
    sla_service: ComplaintSLAService = Depends(get_sla_service),
    now: datetime = Depends(get_now)
):
    try:
        saved = await sla_service.update_status(complaint_id, payload.status, now)
    except ApplicationException as e:
        raise _http_error(e) from e
    return sla_service.to_response(saved, now)


@router.post(
    "/complaints/{complaint_id}/resolve",
    response_model=ComplaintSLAResponse,
    summary="Resolve a complaint",
    description="Resolve the complaint. Requires an officer report to have been filed.",
    responses={
        **_ERROR_RESPONSES,
        400: {"description": "No report filed for the complaint"},
    }
)
async def resolve_complaint(
    complaint_id: str,
    sla_service: ComplaintSLAService = Depends(get_sla_service),
    now: datetime = Depends(get_now)
):
    try:
        saved = await sla_service.resolve(complaint_id, now)
    except ApplicationException as e:
        raise _http_error(e) from e
    return sla_service.to_response(saved, now)


@router.get(
    "/complaints/{complaint_id}",
    response_model=ComplaintSLAResponse,
    summary="Get complaint SLA status",
    responses={
        200: {
            "description": "Complaint SLA information",
            "content": {
                "application/json": {
                    "example": COMPLAINT_SLA_RESPONSE_EXAMPLE
                }
            }
        },
        404: {"description": "Complaint not found"}
    }
)
async def get_complaint_sla(
    complaint_id: str,
    sla_service: ComplaintSLAService = Depends(get_sla_service),
    now: datetime = Depends(get_now)
):
    try:
        complaint = await sla_service.get(complaint_id)
    except ApplicationException as e:
        raise _http_error(e) from e
    return sla_service.to_response(complaint, now)


@router.get(
    "/metrics",
    response_model=SLAMetricsResponse,
    summary="SLA compliance metrics",
    description="""
    Aggregate figures over all complaints:
    totals, overdue counts (overall and per priority), on-time vs late
    resolutions, compliance rate (0 when nothing is resolved yet) and
    mean resolution time in hours.
    """
)
async def get_metrics(
    sla_service: ComplaintSLAService = Depends(get_sla_service),
    now: datetime = Depends(get_now)
):
    try:
        return await sla_service.metrics(now)
    except ApplicationException as e:
        raise _http_error(e) from e


@router.post(
    "/escalate",
    response_model=EscalationTriggerResponse,
    summary="Run an escalation scan now",
    description="Runs both escalation passes synchronously and reports how many complaints were escalated."
)
async def trigger_escalation(
    request: Request,
    now: datetime = Depends(get_now)
):
    escalation_service = getattr(request.app.state, "escalation_service", None)
    if escalation_service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Escalation service not initialized"
        )

    try:
        result = await escalation_service.run_escalation_scan(now)
    except ApplicationException as e:
        raise _http_error(e) from e
    return EscalationTriggerResponse(
        message=f"Escalated {result.escalated} complaints",
        escalated=result.escalated,
        deferred=result.deferred,
        failed=result.failed,
    )


@router.get(
    "/config",
    response_model=SLAConfigResponse,
    summary="Active SLA policy"
)
async def get_sla_config(
    sla_service: ComplaintSLAService = Depends(get_sla_service)
):
    return SLAConfigResponse.from_policy(sla_service.policy)


@router.get(
    "/alerts/triage",
    response_model=TriageAlertsResponse,
    summary="Triage alerts",
    description="""
    Pending complaints still waiting for triage:
    - `critical`: due within the alert window, not yet overdue
    - `overdue`: triage deadline reached
    """
)
async def get_triage_alerts(
    sla_service: ComplaintSLAService = Depends(get_sla_service),
    now: datetime = Depends(get_now)
):
    try:
        return await sla_service.triage_alerts(now)
    except ApplicationException as e:
        raise _http_error(e) from e


# Export router
sla_router = router
