"""Shared fixtures: a fixed clock, the default policy and in-memory backends."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from src.sla.application import ComplaintSLAService, EscalationService, WorkflowGuard
from src.sla.domain import Complaint, SLAEngine, SLAPolicy
from tests.fakes import InMemoryComplaintRepository, InMemoryReportDirectory, RecordingNotifier

NOW = datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def policy():
    return SLAPolicy()


@pytest.fixture
def engine(policy):
    return SLAEngine(policy)


@pytest.fixture
def repository():
    return InMemoryComplaintRepository()


@pytest.fixture
def reports():
    return InMemoryReportDirectory()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def escalation_service(repository, engine, notifier):
    return EscalationService(repository, engine, notifier)


@pytest.fixture
def sla_service(repository, engine, reports, escalation_service):
    return ComplaintSLAService(repository, engine, WorkflowGuard(reports), escalation_service)


@pytest.fixture
def new_complaint():
    def _make(title="Pothole on Elm St"):
        return Complaint(title=title, description="Large pothole", category="roads", submitted_by="citizen-1")
    return _make
