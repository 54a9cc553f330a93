"""Tests for the APScheduler wrapper and the logging notifier."""

from __future__ import annotations

import logging
from datetime import timedelta

import pytest

from src.config import ComplaintStatus, Priority
from src.core.exceptions import ConfigurationException
from src.sla.domain import Complaint, EscalationEvent
from src.sla.infrastructure import EscalationScheduler, LoggingEscalationNotifier


class _BrokenEscalation:
    async def run_escalation_scan(self, now):
        raise RuntimeError("database unavailable")


@pytest.fixture
def scheduler(escalation_service, sla_service, now):
    return EscalationScheduler(escalation_service, sla_service, clock=lambda: now)


class TestConstruction:
    def test_invalid_cron_rejected(self, escalation_service, sla_service):
        with pytest.raises(ConfigurationException):
            EscalationScheduler(escalation_service, sla_service, escalation_cron="every hour")

    def test_not_running_until_started(self, scheduler):
        assert scheduler.is_running is False


@pytest.mark.asyncio
class TestJobs:
    async def test_escalation_job_uses_clock(self, scheduler, repository, engine, now):
        complaint = Complaint(title="c")
        engine.initialize_triage(complaint, now - timedelta(hours=30))
        engine.transition_to_resolution(complaint, Priority.HIGH, now - timedelta(hours=30))
        complaint.status = ComplaintStatus.ASSIGNED
        saved = await repository.create(complaint)

        result = await scheduler.run_escalation_job()

        assert result.started_at == now
        assert result.breach_escalations == 1
        assert (await repository.get(saved.id)).escalation_level == 1

    async def test_escalation_job_swallows_and_logs_failure(self, sla_service, now, caplog):
        scheduler = EscalationScheduler(_BrokenEscalation(), sla_service, clock=lambda: now)

        with caplog.at_level(logging.ERROR):
            assert await scheduler.run_escalation_job() is None

        assert "Escalation job failed" in caplog.text

    async def test_report_job_returns_metrics(self, scheduler, sla_service, new_complaint, now):
        await sla_service.submit(new_complaint(), now)

        metrics = await scheduler.run_report_job()

        assert metrics.total_complaints == 1

    async def test_start_and_stop(self, scheduler):
        await scheduler.start()
        assert scheduler.is_running is True

        await scheduler.start()  # second start is a no-op
        assert scheduler.is_running is True

        await scheduler.stop()
        assert scheduler.is_running is False


@pytest.mark.asyncio
class TestLoggingNotifier:
    async def test_escalation_logged(self, now, caplog):
        complaint = Complaint(id="c-1", triage_sla_due=now)
        notifier = LoggingEscalationNotifier()

        with caplog.at_level(logging.WARNING):
            await notifier.notify_escalation(complaint, EscalationEvent(now, 2, "SLA breach"))
            await notifier.notify_triage_breach(complaint)

        messages = [r.getMessage() for r in caplog.records]
        assert "Escalation notification" in messages
        assert "Triage breach notification" in messages
        escalation_record = next(r for r in caplog.records if r.getMessage() == "Escalation notification")
        assert escalation_record.level == 2
        assert escalation_record.complaint_id == "c-1"
