"""Shared test doubles: memory backends plus recording and failing variants."""

from __future__ import annotations

from src.core.exceptions import ConcurrencyConflictException
from src.sla.application import IEscalationNotifier
from src.sla.infrastructure.memory import InMemoryComplaintRepository, InMemoryReportDirectory


class RecordingNotifier(IEscalationNotifier):
    """Keeps every notification for assertions."""

    def __init__(self, fail: bool = False):
        self.escalations = []
        self.triage_breaches = []
        self.fail = fail

    async def notify_escalation(self, complaint, event):
        if self.fail:
            raise RuntimeError("notifier down")
        self.escalations.append((complaint.id, event.level, event.reason))

    async def notify_triage_breach(self, complaint):
        if self.fail:
            raise RuntimeError("notifier down")
        self.triage_breaches.append(complaint.id)


class ConflictingRepository(InMemoryComplaintRepository):
    """Raises a version conflict on the first `conflicts` saves of a complaint.

    `on_conflict` runs before raising, to simulate the other writer's change.
    """

    def __init__(self, conflicts: int = 1, on_conflict=None):
        super().__init__()
        self.conflicts = conflicts
        self.on_conflict = on_conflict
        self.save_attempts = 0

    async def save(self, complaint, expected_version):
        self.save_attempts += 1
        if self.conflicts > 0:
            self.conflicts -= 1
            if self.on_conflict is not None:
                await self.on_conflict(self, complaint.id)
            raise ConcurrencyConflictException(complaint.id, expected_version)
        return await super().save(complaint, expected_version)


class FailingRepository(InMemoryComplaintRepository):
    """Fails every save of the listed complaint ids."""

    def __init__(self, failing_ids=()):
        super().__init__()
        self.failing_ids = set(failing_ids)

    async def save(self, complaint, expected_version):
        if complaint.id in self.failing_ids:
            raise RuntimeError(f"storage unavailable for {complaint.id}")
        return await super().save(complaint, expected_version)


__all__ = [
    "InMemoryComplaintRepository",
    "InMemoryReportDirectory",
    "RecordingNotifier",
    "ConflictingRepository",
    "FailingRepository",
]
