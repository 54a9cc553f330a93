"""
SLA Domain Entities
====================

Pure Python domain entities for complaint SLA tracking.

Following Domain-Driven Design principles, these entities contain
business logic and are free of infrastructure concerns.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from src.config import ComplaintStatus, Priority, SLAPhase
from src.core.exceptions import DomainException
from src.sla.domain.value_objects import EscalationEvent


class EscalationLedger:
    """
    Append-only, ordered history of escalation events.

    Each appended event must reach exactly the next level, so the ledger
    length always equals the complaint's escalation level.
    """

    def __init__(self, events: Iterable[EscalationEvent] = ()):
        self._events: List[EscalationEvent] = []
        for event in events:
            self.append(event)

    def append(self, event: EscalationEvent) -> None:
        expected_level = len(self._events) + 1
        if event.level != expected_level:
            raise DomainException(
                f"Escalation event level {event.level} does not follow ledger "
                f"length {len(self._events)}",
                {"expected_level": expected_level, "level": event.level}
            )
        self._events.append(event)

    def all(self) -> Tuple[EscalationEvent, ...]:
        """All events in insertion order."""
        return tuple(self._events)

    @property
    def latest(self) -> Optional[EscalationEvent]:
        return self._events[-1] if self._events else None

    def to_records(self) -> List[Dict[str, Any]]:
        return [event.to_record() for event in self._events]

    @classmethod
    def from_records(cls, records: Optional[Iterable[Dict[str, Any]]]) -> "EscalationLedger":
        return cls(EscalationEvent.from_record(r) for r in (records or []))

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self) -> Iterator[EscalationEvent]:
        return iter(tuple(self._events))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, EscalationLedger):
            return NotImplemented
        return self._events == other._events

    def __repr__(self) -> str:
        return f"EscalationLedger({self._events!r})"


@dataclass
class Complaint:
    """
    Complaint aggregate as seen by the SLA core.

    SLA fields are only mutated through SLAEngine; `version` is owned by
    the repository and bumped on every successful save.
    """

    id: Optional[str] = None
    title: str = ""
    description: str = ""
    category: Optional[str] = None
    submitted_by: Optional[str] = None

    status: ComplaintStatus = ComplaintStatus.PENDING
    # Placeholder until an officer is assigned; inert during triage
    priority: Priority = Priority.MEDIUM

    # SLA clock
    sla_phase: SLAPhase = SLAPhase.TRIAGE
    sla_start: Optional[datetime] = None
    triage_sla_due: Optional[datetime] = None
    resolution_sla_due: Optional[datetime] = None
    sla_due: Optional[datetime] = None
    response_sla_due: Optional[datetime] = None
    triage_breached: bool = False
    priority_set_at: Optional[datetime] = None

    escalation_history: EscalationLedger = field(default_factory=EscalationLedger)

    # Workflow timestamps
    assigned_to: Optional[str] = None
    assigned_at: Optional[datetime] = None
    acknowledged_at: Optional[datetime] = None
    submitted_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    version: int = 0

    @property
    def escalation_level(self) -> int:
        """Number of escalations recorded so far (0-3)."""
        return len(self.escalation_history)

    @property
    def is_resolved(self) -> bool:
        return self.status == ComplaintStatus.RESOLVED

    @property
    def active_deadline(self) -> Optional[datetime]:
        """Deadline of the phase the SLA clock is currently in."""
        if self.sla_phase is SLAPhase.TRIAGE:
            return self.triage_sla_due
        if self.sla_phase is SLAPhase.RESOLUTION:
            return self.resolution_sla_due
        raise DomainException(f"Unknown SLA phase: {self.sla_phase!r}")

    def hours_remaining(self, now: datetime) -> Optional[int]:
        """Whole hours left in the active phase, negative once past."""
        deadline = self.active_deadline
        if deadline is None:
            return None
        return int((deadline - now).total_seconds() / 3600)

    def hours_until_sla_breach(self, now: datetime) -> Optional[int]:
        if self.sla_due is None:
            return None
        return int((self.sla_due - now).total_seconds() / 3600)

    @property
    def resolution_time_hours(self) -> Optional[int]:
        if self.closed_at is None or self.submitted_at is None:
            return None
        return int((self.closed_at - self.submitted_at).total_seconds() / 3600)
