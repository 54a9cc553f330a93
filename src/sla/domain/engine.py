"""
SLA Engine
==========

Decision logic over a single complaint: phase transitions, deadline
computation, breach and escalation predicates.

The engine never touches storage. Callers load a complaint, apply one
engine operation and persist the result with the version they read.

Phase state machine:

    TRIAGE --transition_to_resolution--> RESOLUTION

RESOLUTION is terminal; there is no way back to TRIAGE.
"""

from datetime import datetime, timedelta
from typing import Optional

from src.config import (
    ComplaintStatus, Priority, SLAPhase,
    MAX_ESCALATION_LEVEL, TRIAGE_BREACH_REASON,
)
from src.core.exceptions import DomainException, InvalidTransitionException
from src.sla.domain.entities import Complaint
from src.sla.domain.value_objects import EscalationEvent, SLAPolicy


class SLAEngine:
    """
    Applies an SLAPolicy to complaints.

    Stateless apart from the shared, immutable policy, so one instance
    serves the API path and the scheduler alike.
    """

    def __init__(self, policy: SLAPolicy, escalation_window: timedelta = timedelta(hours=1)):
        self._policy = policy
        self._escalation_window = escalation_window

    @property
    def policy(self) -> SLAPolicy:
        return self._policy

    @property
    def escalation_window(self) -> timedelta:
        return self._escalation_window

    # ========== Phase transitions ==========

    def initialize_triage(self, complaint: Complaint, now: datetime) -> None:
        """Start the triage clock. Called once, at submission."""
        if (complaint.triage_sla_due is not None
                or complaint.sla_phase is not SLAPhase.TRIAGE
                or complaint.escalation_level):
            raise InvalidTransitionException(complaint.id, "triage SLA is already initialized")

        complaint.sla_phase = SLAPhase.TRIAGE
        complaint.sla_start = now
        complaint.submitted_at = now
        complaint.triage_sla_due = self._policy.triage_deadline(now)
        complaint.sla_due = complaint.triage_sla_due
        complaint.triage_breached = False

    def transition_to_resolution(
        self,
        complaint: Complaint,
        priority: Priority,
        now: datetime
    ) -> None:
        """
        Leave triage and start the resolution clock from `now`.

        A late transition is allowed but flags `triage_breached`.
        """
        phase = complaint.sla_phase
        if phase is SLAPhase.RESOLUTION:
            raise InvalidTransitionException(
                complaint.id, "complaint is already in the resolution phase"
            )
        if phase is not SLAPhase.TRIAGE:
            raise DomainException(f"Unknown SLA phase: {phase!r}")

        if complaint.triage_sla_due is not None and now > complaint.triage_sla_due:
            complaint.triage_breached = True

        complaint.sla_phase = SLAPhase.RESOLUTION
        self._start_resolution_clock(complaint, priority, now)

    def recalculate_on_priority_change(
        self,
        complaint: Complaint,
        new_priority: Priority,
        now: datetime
    ) -> bool:
        """
        Record a priority edit.

        Returns True if the resolution clock was restarted, False if the
        complaint is still in triage and the priority is inert.
        """
        phase = complaint.sla_phase
        if phase is SLAPhase.TRIAGE:
            complaint.priority = new_priority
            return False
        if phase is SLAPhase.RESOLUTION:
            self._start_resolution_clock(complaint, new_priority, now)
            return True
        raise DomainException(f"Unknown SLA phase: {phase!r}")

    def _start_resolution_clock(
        self,
        complaint: Complaint,
        priority: Priority,
        now: datetime
    ) -> None:
        complaint.priority = priority
        complaint.priority_set_at = now
        complaint.resolution_sla_due = self._policy.resolution_deadline(priority, now)
        complaint.sla_due = complaint.resolution_sla_due
        complaint.response_sla_due = self._policy.response_deadline(priority, now)

    # ========== Predicates ==========

    def is_breached(self, complaint: Complaint, now: datetime) -> bool:
        """Active deadline strictly passed on an unresolved complaint."""
        return (
            complaint.sla_due is not None
            and now > complaint.sla_due
            and complaint.status != ComplaintStatus.RESOLVED
        )

    def needs_escalation(self, complaint: Complaint, now: datetime) -> bool:
        return (
            self.is_breached(complaint, now)
            and complaint.escalation_level < MAX_ESCALATION_LEVEL
        )

    def escalation_due(self, complaint: Complaint, now: datetime) -> bool:
        """
        needs_escalation, and nothing was escalated within the current window.

        The window is measured from the minute of the last escalation, so a
        scheduled run that starts a few milliseconds earlier past the hour
        than the previous one still escalates. Repeated scans at the same
        instant do not double-escalate.
        """
        if not self.needs_escalation(complaint, now):
            return False

        latest = complaint.escalation_history.latest
        if latest is None:
            return True
        window_start = latest.escalated_at.replace(second=0, microsecond=0)
        return window_start + self._escalation_window <= now

    def triage_critical(self, complaint: Complaint, now: datetime) -> bool:
        """Pending triage with at most `triage_alert_window_hours` left, not yet overdue."""
        if not self._pending_in_triage(complaint):
            return False

        remaining = complaint.triage_sla_due - now
        return (
            now < complaint.triage_sla_due
            and remaining <= timedelta(hours=self._policy.triage_alert_window_hours)
        )

    def triage_overdue(self, complaint: Complaint, now: datetime) -> bool:
        return self._pending_in_triage(complaint) and now >= complaint.triage_sla_due

    def _pending_in_triage(self, complaint: Complaint) -> bool:
        return (
            complaint.sla_phase is SLAPhase.TRIAGE
            and complaint.status == ComplaintStatus.PENDING
            and complaint.triage_sla_due is not None
        )

    # ========== Escalation ==========

    def escalate(
        self,
        complaint: Complaint,
        now: datetime,
        reason: str
    ) -> Optional[EscalationEvent]:
        """
        Raise the escalation level by one and record it in the ledger.

        No-op at the maximum level. Returns the recorded event, if any.
        """
        if complaint.escalation_level >= MAX_ESCALATION_LEVEL:
            return None

        event = EscalationEvent(
            escalated_at=now,
            level=complaint.escalation_level + 1,
            reason=reason,
        )
        complaint.escalation_history.append(event)
        return event

    def record_triage_breach(
        self,
        complaint: Complaint,
        now: datetime
    ) -> Optional[EscalationEvent]:
        """
        Mark a triage breach and make sure the complaint is at least level 1.

        Complaints already escalated only get the flag.
        """
        complaint.triage_breached = True

        if complaint.escalation_level > 0:
            return None

        event = EscalationEvent(escalated_at=now, level=1, reason=TRIAGE_BREACH_REASON)
        complaint.escalation_history.append(event)
        return event
