"""
SLA Application Services
=========================

Application services orchestrate business logic and coordinate between
domain entities and repositories.

Following SOLID principles:
- Single Responsibility: Each service has one clear purpose
- Dependency Inversion: Depend on abstractions (repositories), not concrete implementations
"""

from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from src.config import ComplaintStatus, Priority, BREACH_REASON
from src.core.exceptions import ConcurrencyConflictException, InvalidTransitionException
from src.shared.infrastructure.logging import get_logger, log_latency
from src.sla.application.dto import (
    ComplaintSLAResponse,
    EscalationRunResult,
    SLAMetricsResponse,
    TriageAlertsResponse,
)
from src.sla.domain import Complaint, EscalationEvent, SLAEngine, SLAPolicy

logger = get_logger(__name__)


# ========== Repository Interfaces (Dependency Inversion) ==========

class IComplaintRepository(ABC):
    """
    Interface for complaint data access.

    Writes are compare-and-swap: `save` succeeds only when the stored
    version still equals `expected_version`.
    """

    @abstractmethod
    async def get(self, complaint_id: str) -> Complaint:
        """Get complaint by ID. Raises ResourceNotFoundException."""

    @abstractmethod
    async def create(self, complaint: Complaint) -> Complaint:
        """Persist a new complaint."""

    @abstractmethod
    async def save(self, complaint: Complaint, expected_version: int) -> Complaint:
        """Update a complaint. Raises ConcurrencyConflictException on a stale version."""

    @abstractmethod
    async def query_breached(self, now: datetime) -> List[Complaint]:
        """Unresolved complaints with sla_due < now, most urgent first."""

    @abstractmethod
    async def query_triage_overdue(self, now: datetime) -> List[Complaint]:
        """Pending triage complaints with triage_sla_due <= now."""

    @abstractmethod
    async def query_triage_critical(self, now: datetime, window_hours: int) -> List[Complaint]:
        """Pending triage complaints due within `window_hours` and not yet overdue."""

    @abstractmethod
    async def count_total(self) -> int:
        """Count all complaints."""

    @abstractmethod
    async def count_overdue(self, now: datetime) -> int:
        """Count unresolved complaints with sla_due < now."""

    @abstractmethod
    async def count_overdue_by_priority(self, now: datetime) -> Dict[Priority, int]:
        """Overdue counts keyed by priority."""

    @abstractmethod
    async def count_resolved_on_time(self) -> int:
        """Resolved complaints with closed_at <= sla_due."""

    @abstractmethod
    async def count_resolved_late(self) -> int:
        """Resolved complaints with closed_at > sla_due."""

    @abstractmethod
    async def average_resolution_hours(self) -> Optional[float]:
        """Mean submitted->closed duration of resolved complaints."""


class IReportDirectory(ABC):
    """Read-only view of the reporting subsystem."""

    @abstractmethod
    async def report_exists(self, complaint_id: str) -> bool:
        """Whether an officer report has been filed for the complaint."""


class IEscalationNotifier(ABC):
    """Extension point called after an escalation has been persisted."""

    @abstractmethod
    async def notify_escalation(self, complaint: Complaint, event: EscalationEvent) -> None:
        """A complaint reached a new escalation level."""

    @abstractmethod
    async def notify_triage_breach(self, complaint: Complaint) -> None:
        """A complaint was not triaged in time."""


# ========== Workflow Guard ==========

class WorkflowGuard:
    """
    Single workflow rule owned by the SLA core: no resolution without a report.

    Status ordering (pending -> assigned -> in progress) is the calling
    workflow's business, not the guard's.
    """

    def __init__(self, report_directory: IReportDirectory):
        self._reports = report_directory

    async def ensure_can_resolve(self, complaint_id: str) -> None:
        if not await self._reports.report_exists(complaint_id):
            raise InvalidTransitionException(
                complaint_id,
                "cannot resolve complaint without submitting a report"
            )

    async def resolve(self, complaint: Complaint, now: datetime) -> None:
        """Move the complaint to RESOLVED, stamping closed_at."""
        await self.ensure_can_resolve(complaint.id)
        complaint.status = ComplaintStatus.RESOLVED
        complaint.closed_at = now


# ========== Application Services ==========

class _StepOutcome(str, Enum):
    ESCALATED = "escalated"
    TRIAGE_ESCALATED = "triage_escalated"
    TRIAGE_MARKED = "triage_marked"
    SKIPPED = "skipped"
    DEFERRED = "deferred"


_Step = Callable[[Complaint, datetime], Tuple[_StepOutcome, Optional[EscalationEvent]]]


class EscalationService:
    """
    Applies the escalation policy to every eligible complaint.

    Two passes per scan, both evaluated against the same `now`:
    1. general breach pass (ascending sla_due)
    2. triage breach pass

    Per-complaint failures never abort the batch.
    """

    def __init__(
        self,
        repository: IComplaintRepository,
        engine: SLAEngine,
        notifier: Optional[IEscalationNotifier] = None
    ):
        self._repository = repository
        self._engine = engine
        self._notifier = notifier

    async def run_escalation_scan(self, now: datetime) -> EscalationRunResult:
        result = EscalationRunResult(started_at=now)

        with log_latency(logger, "escalation_scan", now=now.isoformat()):
            breached = await self._repository.query_breached(now)
            for complaint in breached:
                outcome = await self._process(complaint, now, self._breach_step)
                if outcome is _StepOutcome.ESCALATED:
                    result.breach_escalations += 1
                self._tally(result, outcome)

            overdue = await self._repository.query_triage_overdue(now)
            for complaint in overdue:
                outcome = await self._process(complaint, now, self._triage_step)
                if outcome is _StepOutcome.TRIAGE_ESCALATED:
                    result.triage_escalations += 1
                elif outcome is _StepOutcome.TRIAGE_MARKED:
                    result.triage_marked += 1
                self._tally(result, outcome)

        logger.info(
            "Escalation scan finished",
            extra={
                "escalated": result.escalated,
                "breach_escalations": result.breach_escalations,
                "triage_escalations": result.triage_escalations,
                "triage_marked": result.triage_marked,
                "deferred": result.deferred,
                "failed": result.failed,
            }
        )
        return result

    @staticmethod
    def _tally(result: EscalationRunResult, outcome: Optional[_StepOutcome]) -> None:
        if outcome is None:
            result.failed += 1
        elif outcome is _StepOutcome.DEFERRED:
            result.deferred += 1

    async def _process(
        self,
        complaint: Complaint,
        now: datetime,
        step: _Step
    ) -> Optional[_StepOutcome]:
        """Run one step for one complaint; None means it failed."""
        try:
            return await self._apply_with_retry(complaint, now, step)
        except Exception as e:
            logger.error(
                "Escalation failed for complaint",
                extra={
                    "complaint_id": complaint.id,
                    "error_type": type(e).__name__,
                    "error": str(e),
                }
            )
            return None

    async def _apply_with_retry(
        self,
        complaint: Complaint,
        now: datetime,
        step: _Step
    ) -> _StepOutcome:
        """
        Apply `step` and save; on a version conflict re-read and try once more.

        The step re-checks its predicate on the fresh copy, so a complaint
        escalated or resolved by the other writer is not touched again.
        """
        for attempt in range(2):
            if attempt:
                complaint = await self._repository.get(complaint.id)

            expected_version = complaint.version
            outcome, event = step(complaint, now)
            if outcome is _StepOutcome.SKIPPED:
                return outcome

            try:
                saved = await self._repository.save(complaint, expected_version)
            except ConcurrencyConflictException:
                if attempt == 0:
                    logger.warning(
                        "Version conflict during escalation, retrying",
                        extra={"complaint_id": complaint.id, "version": expected_version}
                    )
                    continue
                logger.warning(
                    "Version conflict persisted, deferring complaint to next run",
                    extra={"complaint_id": complaint.id}
                )
                return _StepOutcome.DEFERRED

            await self._notify(saved, outcome, event)
            return outcome

        return _StepOutcome.DEFERRED

    def _breach_step(
        self,
        complaint: Complaint,
        now: datetime
    ) -> Tuple[_StepOutcome, Optional[EscalationEvent]]:
        if not self._engine.escalation_due(complaint, now):
            return _StepOutcome.SKIPPED, None

        event = self._engine.escalate(complaint, now, BREACH_REASON)
        logger.warning(
            "Complaint escalated",
            extra={"complaint_id": complaint.id, "level": event.level, "reason": event.reason}
        )
        return _StepOutcome.ESCALATED, event

    def _triage_step(
        self,
        complaint: Complaint,
        now: datetime
    ) -> Tuple[_StepOutcome, Optional[EscalationEvent]]:
        if complaint.triage_breached or not self._engine.triage_overdue(complaint, now):
            return _StepOutcome.SKIPPED, None

        event = self._engine.record_triage_breach(complaint, now)
        logger.error(
            "Triage breach: complaint not assigned in time",
            extra={
                "complaint_id": complaint.id,
                "triage_sla_due": complaint.triage_sla_due.isoformat(),
                "level": complaint.escalation_level,
            }
        )
        if event is None:
            return _StepOutcome.TRIAGE_MARKED, None
        return _StepOutcome.TRIAGE_ESCALATED, event

    async def _notify(
        self,
        complaint: Complaint,
        outcome: _StepOutcome,
        event: Optional[EscalationEvent]
    ) -> None:
        if self._notifier is None:
            return
        try:
            if event is not None:
                await self._notifier.notify_escalation(complaint, event)
            if outcome in (_StepOutcome.TRIAGE_ESCALATED, _StepOutcome.TRIAGE_MARKED):
                await self._notifier.notify_triage_breach(complaint)
        except Exception as e:
            logger.error(
                "Escalation notifier failed",
                extra={"complaint_id": complaint.id, "error": str(e)}
            )


class ComplaintSLAService:
    """
    Operations the SLA core exposes to the API layer.

    Each mutation loads one complaint, applies the engine, and saves it
    with the version it was read at. Conflicts propagate to the caller.
    """

    def __init__(
        self,
        repository: IComplaintRepository,
        engine: SLAEngine,
        guard: WorkflowGuard,
        escalation_service: EscalationService
    ):
        self._repository = repository
        self._engine = engine
        self._guard = guard
        self._escalation = escalation_service

    @property
    def policy(self) -> SLAPolicy:
        return self._engine.policy

    async def get(self, complaint_id: str) -> Complaint:
        return await self._repository.get(complaint_id)

    @staticmethod
    def _ensure_open(complaint: Complaint) -> None:
        # Resolved is terminal for every workflow edit
        if complaint.is_resolved:
            raise InvalidTransitionException(complaint.id, "complaint is already resolved")

    async def submit(self, complaint: Complaint, now: datetime) -> Complaint:
        """Create a complaint with a running triage clock."""
        complaint.status = ComplaintStatus.PENDING
        self._engine.initialize_triage(complaint, now)
        complaint.updated_at = now

        saved = await self._repository.create(complaint)
        logger.info(
            "Complaint submitted",
            extra={"complaint_id": saved.id, "triage_sla_due": saved.triage_sla_due.isoformat()}
        )
        return saved

    async def assign_with_priority(
        self,
        complaint_id: str,
        officer: str,
        priority: Priority,
        now: datetime
    ) -> Complaint:
        """Assign an officer and start the resolution clock."""
        complaint = await self._repository.get(complaint_id)
        self._ensure_open(complaint)
        expected_version = complaint.version
        already_breached = complaint.triage_breached

        self._engine.transition_to_resolution(complaint, priority, now)
        complaint.assigned_to = officer
        complaint.assigned_at = now
        complaint.status = ComplaintStatus.ASSIGNED
        complaint.updated_at = now

        if complaint.triage_breached and not already_breached:
            logger.warning(
                "Complaint assigned after triage breach",
                extra={"complaint_id": complaint_id, "triage_sla_due": complaint.triage_sla_due.isoformat()}
            )

        saved = await self._repository.save(complaint, expected_version)
        logger.info(
            "Complaint moved to resolution phase",
            extra={
                "complaint_id": complaint_id,
                "officer": officer,
                "priority": priority.value,
                "resolution_sla_due": saved.resolution_sla_due.isoformat(),
            }
        )
        return saved

    async def change_priority(
        self,
        complaint_id: str,
        priority: Priority,
        now: datetime
    ) -> Complaint:
        """Change priority; in the resolution phase this restarts the clock."""
        complaint = await self._repository.get(complaint_id)
        if complaint.priority == priority:
            return complaint

        expected_version = complaint.version
        old_priority = complaint.priority
        reset = self._engine.recalculate_on_priority_change(complaint, priority, now)
        complaint.updated_at = now

        saved = await self._repository.save(complaint, expected_version)
        logger.info(
            "Complaint priority changed",
            extra={
                "complaint_id": complaint_id,
                "old_priority": old_priority.value,
                "new_priority": priority.value,
                "sla_recalculated": reset,
            }
        )
        return saved

    async def update_status(
        self,
        complaint_id: str,
        status: ComplaintStatus,
        now: datetime
    ) -> Complaint:
        """Change workflow status; RESOLVED goes through the workflow guard."""
        complaint = await self._repository.get(complaint_id)
        self._ensure_open(complaint)
        expected_version = complaint.version
        old_status = complaint.status

        if status == ComplaintStatus.RESOLVED:
            await self._guard.resolve(complaint, now)
        else:
            complaint.status = status
            if status == ComplaintStatus.ASSIGNED and complaint.assigned_at is None:
                complaint.assigned_at = now
            elif status == ComplaintStatus.IN_PROGRESS and complaint.acknowledged_at is None:
                complaint.acknowledged_at = now
        complaint.updated_at = now

        saved = await self._repository.save(complaint, expected_version)
        logger.info(
            "Complaint status changed",
            extra={"complaint_id": complaint_id, "old_status": old_status.value, "new_status": status.value}
        )
        return saved

    async def resolve(self, complaint_id: str, now: datetime) -> Complaint:
        return await self.update_status(complaint_id, ComplaintStatus.RESOLVED, now)

    async def run_escalation_scan(self, now: datetime) -> int:
        """Run both escalation passes synchronously; returns the escalated count."""
        result = await self._escalation.run_escalation_scan(now)
        return result.escalated

    def to_response(self, complaint: Complaint, now: datetime) -> ComplaintSLAResponse:
        return ComplaintSLAResponse.from_domain(
            complaint, self._engine.is_breached(complaint, now), now
        )

    async def metrics(self, now: datetime) -> SLAMetricsResponse:
        total = await self._repository.count_total()
        overdue = await self._repository.count_overdue(now)
        on_time = await self._repository.count_resolved_on_time()
        late = await self._repository.count_resolved_late()

        resolved = on_time + late
        compliance_rate = (on_time / resolved) * 100 if resolved else 0.0

        return SLAMetricsResponse(
            total_complaints=total,
            overdue_complaints=overdue,
            resolved_on_time=on_time,
            resolved_late=late,
            sla_compliance_rate=round(compliance_rate, 2),
            avg_resolution_hours=await self._repository.average_resolution_hours(),
            overdue_by_priority=await self._repository.count_overdue_by_priority(now),
        )

    async def triage_alerts(self, now: datetime) -> TriageAlertsResponse:
        """Pending triage complaints that are critical (close to due) or overdue."""
        critical = await self._repository.query_triage_critical(
            now, self._engine.policy.triage_alert_window_hours
        )
        overdue = await self._repository.query_triage_overdue(now)

        return TriageAlertsResponse(
            critical=[self.to_response(c, now) for c in critical],
            overdue=[self.to_response(c, now) for c in overdue],
            counts={"critical": len(critical), "overdue": len(overdue)},
        )
