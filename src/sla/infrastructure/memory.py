"""
In-memory SLA backends.

Same contract as the SQLAlchemy repository, including compare-and-swap
saves, for tests and local runs without a database.
"""

import asyncio
from copy import deepcopy
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Set
from uuid import uuid4

from src.config import ComplaintStatus, Priority, SLAPhase, VALID_PRIORITIES
from src.core.exceptions import (
    ConcurrencyConflictException,
    RepositoryException,
    ResourceNotFoundException,
)
from src.sla.application import IComplaintRepository, IReportDirectory
from src.sla.domain import Complaint


class InMemoryComplaintRepository(IComplaintRepository):
    """Dict-backed complaint store; callers always receive copies."""

    def __init__(self):
        self._complaints: Dict[str, Complaint] = {}
        self._lock = asyncio.Lock()

    async def _select(
        self,
        predicate: Callable[[Complaint], bool],
        key: Callable[[Complaint], datetime]
    ) -> List[Complaint]:
        async with self._lock:
            matches = [c for c in self._complaints.values() if predicate(c)]
        return [deepcopy(c) for c in sorted(matches, key=key)]

    @staticmethod
    def _is_overdue(complaint: Complaint, now: datetime) -> bool:
        return (
            complaint.sla_due is not None
            and complaint.sla_due < now
            and complaint.status != ComplaintStatus.RESOLVED
        )

    @staticmethod
    def _pending_triage(complaint: Complaint) -> bool:
        return (
            complaint.sla_phase == SLAPhase.TRIAGE
            and complaint.status == ComplaintStatus.PENDING
            and complaint.triage_sla_due is not None
        )

    async def get(self, complaint_id: str) -> Complaint:
        async with self._lock:
            complaint = self._complaints.get(complaint_id)
            if complaint is None:
                raise ResourceNotFoundException("Complaint", complaint_id)
            return deepcopy(complaint)

    async def create(self, complaint: Complaint) -> Complaint:
        async with self._lock:
            if complaint.id is None:
                complaint.id = str(uuid4())
            elif complaint.id in self._complaints:
                raise RepositoryException(f"Complaint {complaint.id} already exists")
            complaint.version = 1
            self._complaints[complaint.id] = deepcopy(complaint)
        return complaint

    async def save(self, complaint: Complaint, expected_version: int) -> Complaint:
        async with self._lock:
            current = self._complaints.get(complaint.id)
            if current is None:
                raise ResourceNotFoundException("Complaint", complaint.id)
            if current.version != expected_version:
                raise ConcurrencyConflictException(
                    complaint.id, expected_version, current.version
                )
            complaint.version = expected_version + 1
            self._complaints[complaint.id] = deepcopy(complaint)
        return complaint

    async def query_breached(self, now: datetime) -> List[Complaint]:
        return await self._select(lambda c: self._is_overdue(c, now), key=lambda c: c.sla_due)

    async def query_triage_overdue(self, now: datetime) -> List[Complaint]:
        return await self._select(
            lambda c: self._pending_triage(c) and c.triage_sla_due <= now,
            key=lambda c: c.triage_sla_due,
        )

    async def query_triage_critical(self, now: datetime, window_hours: int) -> List[Complaint]:
        horizon = now + timedelta(hours=window_hours)
        return await self._select(
            lambda c: self._pending_triage(c) and now < c.triage_sla_due <= horizon,
            key=lambda c: c.triage_sla_due,
        )

    async def count_total(self) -> int:
        async with self._lock:
            return len(self._complaints)

    async def count_overdue(self, now: datetime) -> int:
        async with self._lock:
            return sum(1 for c in self._complaints.values() if self._is_overdue(c, now))

    async def count_overdue_by_priority(self, now: datetime) -> Dict[Priority, int]:
        counts = {priority: 0 for priority in VALID_PRIORITIES}
        async with self._lock:
            for c in self._complaints.values():
                if self._is_overdue(c, now):
                    counts[c.priority] += 1
        return counts

    def _resolved(self) -> List[Complaint]:
        return [
            c for c in self._complaints.values()
            if c.status == ComplaintStatus.RESOLVED
            and c.closed_at is not None
            and c.sla_due is not None
        ]

    async def count_resolved_on_time(self) -> int:
        async with self._lock:
            return sum(1 for c in self._resolved() if c.closed_at <= c.sla_due)

    async def count_resolved_late(self) -> int:
        async with self._lock:
            return sum(1 for c in self._resolved() if c.closed_at > c.sla_due)

    async def average_resolution_hours(self) -> Optional[float]:
        async with self._lock:
            hours = [
                c.resolution_time_hours for c in self._complaints.values()
                if c.status == ComplaintStatus.RESOLVED and c.resolution_time_hours is not None
            ]
        if not hours:
            return None
        return round(sum(hours) / len(hours), 2)


class InMemoryReportDirectory(IReportDirectory):
    """Set of complaint ids with a filed report."""

    def __init__(self, complaint_ids: Optional[Set[str]] = None):
        self._reported: Set[str] = set(complaint_ids or ())

    def add_report(self, complaint_id: str) -> None:
        self._reported.add(complaint_id)

    async def report_exists(self, complaint_id: str) -> bool:
        return complaint_id in self._reported
