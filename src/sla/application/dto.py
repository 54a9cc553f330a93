"""
SLA Application DTOs
=====================

Data Transfer Objects for the SLA API layer.

These Pydantic models handle serialization/deserialization and validation
for API requests and responses.
"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from src.config import ComplaintStatus, Priority, SLAPhase
from src.sla.domain import Complaint, EscalationEvent, SLAPolicy


# ========== Request DTOs ==========

class ComplaintSubmitRequest(BaseModel):
    """Request model for submitting a complaint."""
    title: str = Field(..., min_length=1, max_length=500, description="Complaint title")
    description: str = Field(default="", description="Complaint details")
    category: Optional[str] = Field(None, max_length=100, description="Complaint category")
    submitted_by: Optional[str] = Field(None, description="Submitter identity")


class AssignmentRequest(BaseModel):
    """Assign an officer and set the priority that starts the resolution clock."""
    officer: str = Field(..., min_length=1, description="Officer identity")
    priority: Priority = Field(..., description="Complaint priority")


class PriorityChangeRequest(BaseModel):
    priority: Priority


class StatusChangeRequest(BaseModel):
    status: ComplaintStatus


# ========== Response DTOs ==========

class EscalationEventResponse(BaseModel):
    """One escalation ledger entry."""
    escalated_at: datetime
    level: int
    reason: str

    @classmethod
    def from_domain(cls, event: EscalationEvent) -> "EscalationEventResponse":
        return cls(escalated_at=event.escalated_at, level=event.level, reason=event.reason)


class ComplaintSLAResponse(BaseModel):
    """Response model for complaint SLA information."""
    id: str
    title: str
    status: ComplaintStatus
    priority: Priority
    sla_phase: SLAPhase
    submitted_at: Optional[datetime] = None
    sla_start: Optional[datetime] = None
    triage_sla_due: Optional[datetime] = None
    resolution_sla_due: Optional[datetime] = None
    sla_due: Optional[datetime] = None
    response_sla_due: Optional[datetime] = None
    triage_breached: bool = False
    priority_set_at: Optional[datetime] = None
    assigned_to: Optional[str] = None
    assigned_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    escalation_level: int = Field(..., ge=0, le=3)
    escalation_history: List[EscalationEventResponse] = Field(default_factory=list)
    is_breached: bool = Field(..., description="Active deadline passed while unresolved")
    hours_remaining: Optional[int] = Field(None, description="Whole hours left in the active phase")
    hours_until_sla_breach: Optional[int] = Field(None, description="Whole hours until the current due date")
    version: int

    @classmethod
    def from_domain(
        cls,
        complaint: Complaint,
        is_breached: bool,
        now: datetime
    ) -> "ComplaintSLAResponse":
        return cls(
            id=complaint.id,
            title=complaint.title,
            status=complaint.status,
            priority=complaint.priority,
            sla_phase=complaint.sla_phase,
            submitted_at=complaint.submitted_at,
            sla_start=complaint.sla_start,
            triage_sla_due=complaint.triage_sla_due,
            resolution_sla_due=complaint.resolution_sla_due,
            sla_due=complaint.sla_due,
            response_sla_due=complaint.response_sla_due,
            triage_breached=complaint.triage_breached,
            priority_set_at=complaint.priority_set_at,
            assigned_to=complaint.assigned_to,
            assigned_at=complaint.assigned_at,
            closed_at=complaint.closed_at,
            escalation_level=complaint.escalation_level,
            escalation_history=[
                EscalationEventResponse.from_domain(e) for e in complaint.escalation_history
            ],
            is_breached=is_breached,
            hours_remaining=complaint.hours_remaining(now),
            hours_until_sla_breach=complaint.hours_until_sla_breach(now),
            version=complaint.version,
        )


class SLAMetricsResponse(BaseModel):
    """Aggregate SLA compliance figures."""
    total_complaints: int
    overdue_complaints: int
    resolved_on_time: int
    resolved_late: int
    sla_compliance_rate: float = Field(..., description="Percentage resolved on time")
    avg_resolution_hours: Optional[float] = None
    overdue_by_priority: Dict[Priority, int] = Field(default_factory=dict)


class EscalationRunResult(BaseModel):
    """Outcome of one escalation scan."""
    started_at: datetime
    breach_escalations: int = 0
    triage_escalations: int = 0
    triage_marked: int = Field(default=0, description="Triage breaches flagged without a level change")
    deferred: int = Field(default=0, description="Skipped after a repeated version conflict")
    failed: int = 0

    @property
    def escalated(self) -> int:
        return self.breach_escalations + self.triage_escalations


class EscalationTriggerResponse(BaseModel):
    """Response for a manually triggered escalation scan."""
    message: str
    escalated: int
    deferred: int = 0
    failed: int = 0


class TriageAlertsResponse(BaseModel):
    """Pending triage complaints close to or past their deadline."""
    critical: List[ComplaintSLAResponse] = Field(default_factory=list)
    overdue: List[ComplaintSLAResponse] = Field(default_factory=list)
    counts: Dict[str, int] = Field(default_factory=dict)


class SLAConfigResponse(BaseModel):
    """The active SLA policy in hours."""
    triage_hours: int
    triage_alert_lead_hours: int
    triage_alert_window_hours: int
    resolution_hours: Dict[Priority, int]
    response_hours: Dict[Priority, int]

    @classmethod
    def from_policy(cls, policy: SLAPolicy) -> "SLAConfigResponse":
        return cls(
            triage_hours=policy.triage_hours,
            triage_alert_lead_hours=policy.triage_alert_lead_hours,
            triage_alert_window_hours=policy.triage_alert_window_hours,
            resolution_hours=dict(policy.resolution_hours_by_priority),
            response_hours=dict(policy.response_hours_by_priority),
        )
