"""
SLA External Service Integrations
==================================

Background and outbound integrations for SLA monitoring:
- APScheduler for the periodic escalation scan and the daily SLA report
- Logging escalation notifier (default notification channel)
"""

from datetime import datetime, timezone
from typing import Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from src.core.exceptions import ConfigurationException
from src.shared.infrastructure.logging import get_logger
from src.sla.application import (
    ComplaintSLAService,
    EscalationRunResult,
    EscalationService,
    IEscalationNotifier,
    SLAMetricsResponse,
)
from src.sla.domain import Complaint, EscalationEvent

logger = get_logger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class LoggingEscalationNotifier(IEscalationNotifier):
    """
    Writes escalations to the log.

    Stand-in for a real channel (mail, chat); anything that needs to
    react to an escalation should implement IEscalationNotifier.
    """

    async def notify_escalation(self, complaint: Complaint, event: EscalationEvent) -> None:
        logger.warning(
            "Escalation notification",
            extra={
                "complaint_id": complaint.id,
                "level": event.level,
                "reason": event.reason,
                "escalated_at": event.escalated_at.isoformat(),
                "assigned_to": complaint.assigned_to,
            }
        )

    async def notify_triage_breach(self, complaint: Complaint) -> None:
        logger.warning(
            "Triage breach notification",
            extra={
                "complaint_id": complaint.id,
                "triage_sla_due": complaint.triage_sla_due.isoformat() if complaint.triage_sla_due else None,
            }
        )


class EscalationScheduler:
    """
    Wrapper for APScheduler running the SLA jobs.

    Jobs:
    - escalation scan, cron `escalation_cron` (hourly by default)
    - SLA report, cron `report_cron` (daily 09:00 by default)

    A job never raises into the scheduler: failures are logged and the
    next tick runs as usual.
    """

    def __init__(
        self,
        escalation_service: EscalationService,
        sla_service: ComplaintSLAService,
        escalation_cron: str = "0 * * * *",
        report_cron: str = "0 9 * * *",
        clock: Callable[[], datetime] = utc_now,
    ):
        self._escalation = escalation_service
        self._sla_service = sla_service
        self._escalation_trigger = self._build_trigger(escalation_cron, "escalation")
        self._report_trigger = self._build_trigger(report_cron, "report")
        self._clock = clock
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    @staticmethod
    def _build_trigger(expression: str, job: str) -> CronTrigger:
        try:
            return CronTrigger.from_crontab(expression, timezone=timezone.utc)
        except ValueError as e:
            raise ConfigurationException(
                f"Invalid {job} cron expression '{expression}': {e}"
            ) from e

    async def run_escalation_job(self) -> Optional[EscalationRunResult]:
        """One escalation scan at the current clock time."""
        now = self._clock()
        try:
            return await self._escalation.run_escalation_scan(now)
        except Exception as e:
            logger.error(
                "Escalation job failed",
                extra={"error_type": type(e).__name__, "error": str(e)}
            )
            return None

    async def run_report_job(self) -> Optional[SLAMetricsResponse]:
        """Log the SLA compliance summary and the triage alert counts."""
        now = self._clock()
        try:
            metrics = await self._sla_service.metrics(now)
            alerts = await self._sla_service.triage_alerts(now)
        except Exception as e:
            logger.error(
                "SLA report job failed",
                extra={"error_type": type(e).__name__, "error": str(e)}
            )
            return None

        logger.info(
            "Daily SLA report",
            extra={
                "total_complaints": metrics.total_complaints,
                "overdue_complaints": metrics.overdue_complaints,
                "resolved_on_time": metrics.resolved_on_time,
                "resolved_late": metrics.resolved_late,
                "sla_compliance_rate": metrics.sla_compliance_rate,
                "avg_resolution_hours": metrics.avg_resolution_hours,
                "overdue_by_priority": {p.value: n for p, n in metrics.overdue_by_priority.items()},
                "triage_critical": alerts.counts.get("critical", 0),
                "triage_overdue": alerts.counts.get("overdue", 0),
            }
        )
        return metrics

    async def start(self) -> None:
        """Start the scheduler. Must be called from a running event loop."""
        if self._running:
            logger.warning("Escalation scheduler already running")
            return

        self._scheduler = AsyncIOScheduler(timezone=timezone.utc)

        self._scheduler.add_job(
            self.run_escalation_job,
            self._escalation_trigger,
            id="sla_escalation",
            name="SLA Escalation Job",
            misfire_grace_time=300,
            coalesce=True,
            max_instances=1,
            replace_existing=True
        )
        self._scheduler.add_job(
            self.run_report_job,
            self._report_trigger,
            id="sla_report",
            name="SLA Report Job",
            misfire_grace_time=3600,
            coalesce=True,
            max_instances=1,
            replace_existing=True
        )

        self._scheduler.start()
        self._running = True

        logger.info(
            "Escalation scheduler started",
            extra={
                "escalation_trigger": str(self._escalation_trigger),
                "report_trigger": str(self._report_trigger),
            }
        )

    async def stop(self) -> None:
        """Stop the scheduler gracefully."""
        if not self._running:
            return

        if self._scheduler:
            self._scheduler.shutdown(wait=True)

        self._running = False
        logger.info("Escalation scheduler stopped")

    @property
    def is_running(self) -> bool:
        """Check if scheduler is running."""
        return self._running
