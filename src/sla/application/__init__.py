"""
SLA Application Layer
======================

Application layer for the complaint SLA module.

Contains:
- Services: Orchestrate business logic and coordinate with repositories
- DTOs: Data transfer objects for API serialization

This layer depends on the domain layer and repository interfaces,
but not on concrete infrastructure implementations.
"""

from src.sla.application.dto import (
    ComplaintSubmitRequest,
    AssignmentRequest,
    PriorityChangeRequest,
    StatusChangeRequest,
    EscalationEventResponse,
    ComplaintSLAResponse,
    SLAMetricsResponse,
    EscalationRunResult,
    EscalationTriggerResponse,
    TriageAlertsResponse,
    SLAConfigResponse,
)
from src.sla.application.services import (
    ComplaintSLAService,
    EscalationService,
    WorkflowGuard,
    IComplaintRepository,
    IReportDirectory,
    IEscalationNotifier,
)

__all__ = [
    # DTOs
    "ComplaintSubmitRequest",
    "AssignmentRequest",
    "PriorityChangeRequest",
    "StatusChangeRequest",
    "EscalationEventResponse",
    "ComplaintSLAResponse",
    "SLAMetricsResponse",
    "EscalationRunResult",
    "EscalationTriggerResponse",
    "TriageAlertsResponse",
    "SLAConfigResponse",
    # Services
    "ComplaintSLAService",
    "EscalationService",
    "WorkflowGuard",
    # Repository Interfaces
    "IComplaintRepository",
    "IReportDirectory",
    "IEscalationNotifier",
]
