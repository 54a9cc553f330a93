"""Tests for SLAEngine phase transitions, predicates and escalation."""

from __future__ import annotations

from datetime import timedelta

import pytest

from src.config import ComplaintStatus, Priority, SLAPhase, TRIAGE_BREACH_REASON
from src.core.exceptions import InvalidTransitionException
from src.sla.domain import Complaint


def _triaged(engine, now, **kwargs):
    complaint = Complaint(id="c-1", **kwargs)
    engine.initialize_triage(complaint, now)
    return complaint


def _assigned(engine, now, priority=Priority.HIGH):
    complaint = _triaged(engine, now)
    engine.transition_to_resolution(complaint, priority, now + timedelta(hours=2))
    complaint.status = ComplaintStatus.ASSIGNED
    return complaint


class TestTriage:
    def test_triage_deadline_is_submission_plus_24h(self, engine, now):
        complaint = _triaged(engine, now)
        assert complaint.sla_phase is SLAPhase.TRIAGE
        assert complaint.submitted_at == now
        assert complaint.sla_start == now
        assert complaint.triage_sla_due == now + timedelta(hours=24)
        assert complaint.sla_due == complaint.triage_sla_due
        assert complaint.escalation_level == 0

    def test_preset_submission_time_is_overwritten(self, engine, now):
        complaint = _triaged(engine, now, submitted_at=now - timedelta(hours=6))
        assert complaint.submitted_at == now
        assert complaint.triage_sla_due == complaint.submitted_at + timedelta(hours=24)

    def test_initialize_twice_rejected(self, engine, now):
        complaint = _triaged(engine, now)
        with pytest.raises(InvalidTransitionException):
            engine.initialize_triage(complaint, now)


class TestResolution:
    @pytest.mark.parametrize("priority,hours", [
        (Priority.HIGH, 24), (Priority.MEDIUM, 72), (Priority.LOW, 168),
    ])
    def test_resolution_deadline_by_priority(self, engine, now, priority, hours):
        complaint = _triaged(engine, now)
        assigned_at = now + timedelta(hours=3)
        engine.transition_to_resolution(complaint, priority, assigned_at)

        assert complaint.sla_phase is SLAPhase.RESOLUTION
        assert complaint.priority is priority
        assert complaint.priority_set_at == assigned_at
        assert complaint.resolution_sla_due == assigned_at + timedelta(hours=hours)
        assert complaint.sla_due == complaint.resolution_sla_due
        assert complaint.triage_sla_due == now + timedelta(hours=24)
        assert complaint.triage_breached is False

    def test_response_deadline_set_on_assignment(self, engine, now):
        complaint = _triaged(engine, now)
        engine.transition_to_resolution(complaint, Priority.MEDIUM, now)
        assert complaint.response_sla_due == now + timedelta(hours=8)

    def test_transition_only_once(self, engine, now):
        complaint = _assigned(engine, now)
        with pytest.raises(InvalidTransitionException):
            engine.transition_to_resolution(complaint, Priority.LOW, now + timedelta(hours=5))
        assert complaint.priority is Priority.HIGH

    def test_late_assignment_flags_triage_breach(self, engine, now):
        complaint = _triaged(engine, now)
        assigned_at = now + timedelta(hours=30)
        engine.transition_to_resolution(complaint, Priority.MEDIUM, assigned_at)
        assert complaint.triage_breached is True
        assert complaint.resolution_sla_due == assigned_at + timedelta(hours=72)
        assert complaint.sla_phase is SLAPhase.RESOLUTION

    def test_assignment_exactly_at_deadline_is_not_late(self, engine, now):
        complaint = _triaged(engine, now)
        engine.transition_to_resolution(complaint, Priority.LOW, now + timedelta(hours=24))
        assert complaint.triage_breached is False


class TestPriorityChange:
    def test_resolution_clock_restarts(self, engine, now):
        complaint = _assigned(engine, now, Priority.LOW)
        changed_at = now + timedelta(hours=50)

        assert engine.recalculate_on_priority_change(complaint, Priority.HIGH, changed_at) is True
        assert complaint.priority is Priority.HIGH
        assert complaint.priority_set_at == changed_at
        assert complaint.sla_due == changed_at + timedelta(hours=24)
        assert complaint.resolution_sla_due == complaint.sla_due

    def test_triage_priority_is_inert(self, engine, now):
        complaint = _triaged(engine, now)
        due = complaint.sla_due

        assert engine.recalculate_on_priority_change(complaint, Priority.HIGH, now + timedelta(hours=1)) is False
        assert complaint.priority is Priority.HIGH
        assert complaint.sla_due == due
        assert complaint.triage_sla_due == due
        assert complaint.resolution_sla_due is None


class TestBreach:
    def test_breach_is_strict(self, engine, now):
        complaint = _assigned(engine, now)
        assert engine.is_breached(complaint, complaint.sla_due) is False
        assert engine.is_breached(complaint, complaint.sla_due + timedelta(seconds=1)) is True

    def test_resolved_never_breached(self, engine, now):
        complaint = _assigned(engine, now)
        complaint.status = ComplaintStatus.RESOLVED
        assert engine.is_breached(complaint, complaint.sla_due + timedelta(days=30)) is False

    def test_triage_deadline_counts_while_in_triage(self, engine, now):
        complaint = _triaged(engine, now)
        assert engine.is_breached(complaint, now + timedelta(hours=25)) is True

    def test_without_deadline_not_breached(self, engine, now):
        assert engine.is_breached(Complaint(id="c-2"), now) is False


class TestEscalation:
    def test_level_capped_at_three(self, engine, now):
        complaint = _assigned(engine, now)
        later = complaint.sla_due + timedelta(hours=1)

        events = [engine.escalate(complaint, later + timedelta(hours=i), "SLA breach") for i in range(5)]

        assert [e.level for e in events[:3]] == [1, 2, 3]
        assert events[3] is None and events[4] is None
        assert complaint.escalation_level == 3
        assert len(complaint.escalation_history) == complaint.escalation_level

    def test_needs_escalation_stops_at_max(self, engine, now):
        complaint = _assigned(engine, now)
        later = complaint.sla_due + timedelta(hours=1)
        for _ in range(3):
            engine.escalate(complaint, later, "SLA breach")
        assert engine.is_breached(complaint, later) is True
        assert engine.needs_escalation(complaint, later) is False

    def test_escalation_due_respects_window(self, engine, now):
        complaint = _assigned(engine, now)
        first = complaint.sla_due + timedelta(minutes=1)

        assert engine.escalation_due(complaint, first) is True
        engine.escalate(complaint, first, "SLA breach")

        assert engine.escalation_due(complaint, first) is False
        assert engine.escalation_due(complaint, first + timedelta(minutes=59)) is False
        assert engine.escalation_due(complaint, first + timedelta(hours=1)) is True

    def test_hourly_runs_escalate_despite_start_jitter(self, engine, now):
        complaint = _assigned(engine, now)
        first = complaint.sla_due + timedelta(hours=4, milliseconds=12)
        engine.escalate(complaint, first, "SLA breach")

        assert engine.escalation_due(complaint, first) is False
        assert engine.escalation_due(complaint, first + timedelta(minutes=30)) is False
        next_run = complaint.sla_due + timedelta(hours=5, milliseconds=8)
        assert engine.escalation_due(complaint, next_run) is True


class TestTriageAlerts:
    def test_critical_from_lead_hours(self, engine, now):
        complaint = _triaged(engine, now)
        assert engine.triage_critical(complaint, now + timedelta(hours=14, minutes=59)) is False
        assert engine.triage_critical(complaint, now + timedelta(hours=15)) is True
        assert engine.triage_critical(complaint, now + timedelta(hours=16)) is True
        assert engine.triage_overdue(complaint, now + timedelta(hours=16)) is False
        assert engine.triage_critical(complaint, now + timedelta(hours=25)) is False
        assert engine.triage_overdue(complaint, now + timedelta(hours=25)) is True
        assert engine.triage_critical(complaint, now + timedelta(hours=23)) is True

    def test_overdue_at_deadline(self, engine, now):
        complaint = _triaged(engine, now)
        due = now + timedelta(hours=24)
        assert engine.triage_critical(complaint, due) is False
        assert engine.triage_overdue(complaint, due) is True
        assert engine.triage_overdue(complaint, due - timedelta(seconds=1)) is False

    def test_assigned_complaint_not_in_triage_alerts(self, engine, now):
        complaint = _assigned(engine, now)
        assert engine.triage_critical(complaint, now + timedelta(hours=20)) is False
        assert engine.triage_overdue(complaint, now + timedelta(hours=30)) is False

    def test_record_triage_breach_escalates_to_level_one(self, engine, now):
        complaint = _triaged(engine, now)
        event = engine.record_triage_breach(complaint, now + timedelta(hours=25))

        assert complaint.triage_breached is True
        assert event.level == 1
        assert event.reason == TRIAGE_BREACH_REASON
        assert complaint.escalation_level == 1

    def test_record_triage_breach_keeps_existing_level(self, engine, now):
        complaint = _triaged(engine, now)
        later = now + timedelta(hours=25)
        engine.escalate(complaint, later, "SLA breach")

        assert engine.record_triage_breach(complaint, later) is None
        assert complaint.triage_breached is True
        assert complaint.escalation_level == 1


class TestDerivedHours:
    def test_hours_remaining_uses_active_phase(self, engine, now):
        complaint = _triaged(engine, now)
        assert complaint.hours_remaining(now + timedelta(hours=4)) == 20

        engine.transition_to_resolution(complaint, Priority.MEDIUM, now + timedelta(hours=4))
        assert complaint.hours_remaining(now + timedelta(hours=4)) == 72

    def test_resolution_time_hours(self, engine, now):
        complaint = _assigned(engine, now)
        complaint.closed_at = now + timedelta(hours=10, minutes=30)
        assert complaint.resolution_time_hours == 10
