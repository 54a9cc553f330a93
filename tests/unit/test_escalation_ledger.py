"""Tests for the escalation ledger and its record layout."""

from __future__ import annotations

from datetime import timedelta

import pytest

from src.core.exceptions import DomainException
from src.sla.domain import EscalationEvent, EscalationLedger


class TestAppend:
    def test_levels_must_be_consecutive(self, now):
        ledger = EscalationLedger()
        ledger.append(EscalationEvent(now, 1, "SLA breach"))
        with pytest.raises(DomainException):
            ledger.append(EscalationEvent(now, 3, "SLA breach"))
        assert len(ledger) == 1

    def test_first_event_must_be_level_one(self, now):
        with pytest.raises(DomainException):
            EscalationLedger([EscalationEvent(now, 2, "SLA breach")])

    def test_latest_and_order(self, now):
        ledger = EscalationLedger()
        assert ledger.latest is None
        for level in (1, 2, 3):
            ledger.append(EscalationEvent(now + timedelta(hours=level), level, "SLA breach"))
        assert [e.level for e in ledger] == [1, 2, 3]
        assert ledger.latest.level == 3

    def test_all_returns_snapshot(self, now):
        ledger = EscalationLedger([EscalationEvent(now, 1, "SLA breach")])
        snapshot = ledger.all()
        ledger.append(EscalationEvent(now, 2, "SLA breach"))
        assert len(snapshot) == 1


class TestRecords:
    def test_record_layout(self, now):
        record = EscalationEvent(now, 1, "Triage SLA breach - no officer assigned").to_record()
        assert record == {
            "escalated_at": now.isoformat(),
            "level": 1,
            "reason": "Triage SLA breach - no officer assigned",
        }

    def test_from_records_restores_equal_ledger(self, now):
        ledger = EscalationLedger([
            EscalationEvent(now, 1, "SLA breach"),
            EscalationEvent(now + timedelta(hours=1), 2, "SLA breach"),
        ])
        assert EscalationLedger.from_records(ledger.to_records()) == ledger

    def test_naive_timestamp_read_as_utc(self, now):
        event = EscalationEvent.from_record(
            {"escalated_at": "2024-01-15T10:00:00", "level": 1, "reason": "SLA breach"}
        )
        assert event.escalated_at == now

    def test_empty_records(self):
        assert len(EscalationLedger.from_records(None)) == 0
