"""HTTP API tests through FastAPI's TestClient."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from src.config import Settings
from src.core.exceptions import RepositoryException
from src.main import build_sla_services, create_app
from tests.fakes import InMemoryComplaintRepository, InMemoryReportDirectory


class _Clock:
    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


class _BrokenEscalationService:
    async def run_escalation_scan(self, now):
        raise RepositoryException("Failed to query complaints: connection refused")


@pytest.fixture
def clock(now):
    return _Clock(now)


@pytest.fixture
def reports():
    return InMemoryReportDirectory()


@pytest.fixture
def client(policy, clock, reports):
    app = create_app(Settings(environment="testing"), clock=clock)
    sla_service, escalation_service = build_sla_services(
        policy, InMemoryComplaintRepository(), reports
    )
    app.state.sla_service = sla_service
    app.state.escalation_service = escalation_service
    # No context manager: the lifespan (database, scheduler) is not run
    return TestClient(app)


def _submit(client, title="Broken street light"):
    response = client.post("/sla/complaints", json={"title": title, "category": "lighting"})
    assert response.status_code == 201
    return response.json()


class TestComplaintLifecycle:
    def test_submit_returns_triage_deadline(self, client, now):
        body = _submit(client)

        assert body["sla_phase"] == "triage"
        assert body["status"] == "pending"
        assert body["escalation_level"] == 0
        assert datetime.fromisoformat(body["triage_sla_due"].replace("Z", "+00:00")) == now + timedelta(hours=24)
        assert body["hours_remaining"] == 24

    def test_submit_requires_title(self, client):
        assert client.post("/sla/complaints", json={"title": ""}).status_code == 422

    def test_assign_then_get(self, client, clock):
        complaint_id = _submit(client)["id"]
        clock.advance(hours=2)

        response = client.post(
            f"/sla/complaints/{complaint_id}/assign",
            json={"officer": "officer-7", "priority": "high"},
        )
        assert response.status_code == 200
        assert response.json()["sla_phase"] == "resolution"

        body = client.get(f"/sla/complaints/{complaint_id}").json()
        assert body["assigned_to"] == "officer-7"
        assert body["priority"] == "high"
        assert body["hours_remaining"] == 24
        assert body["hours_until_sla_breach"] == 24
        assert body["is_breached"] is False

    def test_second_assign_is_bad_request(self, client):
        complaint_id = _submit(client)["id"]
        payload = {"officer": "officer-7", "priority": "low"}
        assert client.post(f"/sla/complaints/{complaint_id}/assign", json=payload).status_code == 200
        assert client.post(f"/sla/complaints/{complaint_id}/assign", json=payload).status_code == 400

    def test_invalid_priority_rejected(self, client):
        complaint_id = _submit(client)["id"]
        response = client.post(
            f"/sla/complaints/{complaint_id}/assign",
            json={"officer": "officer-7", "priority": "urgent"},
        )
        assert response.status_code == 422

    def test_priority_change_restarts_clock(self, client, clock):
        complaint_id = _submit(client)["id"]
        client.post(f"/sla/complaints/{complaint_id}/assign", json={"officer": "o", "priority": "low"})
        clock.advance(hours=10)

        body = client.patch(f"/sla/complaints/{complaint_id}/priority", json={"priority": "high"}).json()

        assert body["priority"] == "high"
        assert body["hours_remaining"] == 24

    def test_resolve_requires_report(self, client, reports):
        complaint_id = _submit(client)["id"]
        client.post(f"/sla/complaints/{complaint_id}/assign", json={"officer": "o", "priority": "high"})

        denied = client.post(f"/sla/complaints/{complaint_id}/resolve")
        assert denied.status_code == 400
        assert "report" in denied.json()["detail"]

        reports.add_report(complaint_id)
        resolved = client.post(f"/sla/complaints/{complaint_id}/resolve")
        assert resolved.status_code == 200
        assert resolved.json()["status"] == "resolved"

    def test_resolved_complaint_status_is_final(self, client, reports):
        complaint_id = _submit(client)["id"]
        client.post(f"/sla/complaints/{complaint_id}/assign", json={"officer": "o", "priority": "high"})
        reports.add_report(complaint_id)
        assert client.post(f"/sla/complaints/{complaint_id}/resolve").status_code == 200

        reopened = client.patch(f"/sla/complaints/{complaint_id}/status", json={"status": "in_progress"})
        assert reopened.status_code == 400
        assert "already resolved" in reopened.json()["detail"]
        assert client.post(f"/sla/complaints/{complaint_id}/resolve").status_code == 400
        assert client.get(f"/sla/complaints/{complaint_id}").json()["status"] == "resolved"

    def test_status_update(self, client):
        complaint_id = _submit(client)["id"]
        response = client.patch(f"/sla/complaints/{complaint_id}/status", json={"status": "in_progress"})
        assert response.status_code == 200
        assert response.json()["status"] == "in_progress"

    def test_unknown_complaint_is_404(self, client):
        assert client.get("/sla/complaints/does-not-exist").status_code == 404
        assert client.post("/sla/complaints/does-not-exist/resolve").status_code == 404


class TestEscalationEndpoints:
    def test_manual_escalation(self, client, clock):
        complaint_id = _submit(client)["id"]
        client.post(f"/sla/complaints/{complaint_id}/assign", json={"officer": "o", "priority": "high"})
        clock.advance(hours=25)

        first = client.post("/sla/escalate").json()
        second = client.post("/sla/escalate").json()

        assert first["escalated"] == 1
        assert first["message"] == "Escalated 1 complaints"
        assert second["escalated"] == 0

        body = client.get(f"/sla/complaints/{complaint_id}").json()
        assert body["is_breached"] is True
        assert body["escalation_level"] == 1
        assert body["escalation_history"][0]["reason"] == "SLA breach"

    def test_triage_alerts(self, client, clock):
        overdue_id = _submit(client, "first")["id"]
        clock.advance(hours=10)
        critical_id = _submit(client, "second")["id"]
        clock.advance(hours=15)

        body = client.get("/sla/alerts/triage").json()

        assert [c["id"] for c in body["overdue"]] == [overdue_id]
        assert [c["id"] for c in body["critical"]] == [critical_id]
        assert body["counts"] == {"critical": 1, "overdue": 1}

    def test_failed_scan_returns_error_summary(self, client):
        client.app.state.escalation_service = _BrokenEscalationService()

        response = client.post("/sla/escalate")

        assert response.status_code == 500
        assert response.json()["detail"] == "Internal server error"


class TestReadOnlyEndpoints:
    def test_config(self, client):
        body = client.get("/sla/config").json()
        assert body["triage_hours"] == 24
        assert body["triage_alert_window_hours"] == 9
        assert body["resolution_hours"] == {"high": 24, "medium": 72, "low": 168}

    def test_metrics(self, client):
        _submit(client)
        body = client.get("/sla/metrics").json()
        assert body["total_complaints"] == 1
        assert body["sla_compliance_rate"] == 0.0

    def test_health_and_correlation_id(self, client):
        response = client.get("/health", headers={"X-Correlation-ID": "abc-123"})
        assert response.status_code == 200
        assert response.headers["X-Correlation-ID"] == "abc-123"
        assert response.json()["checks"]["sla_service"] == "ready"


class TestLifespan:
    def test_startup_wires_database_backed_services(self, tmp_path):
        settings = Settings(
            environment="testing",
            database_url=f"sqlite+aiosqlite:///{tmp_path / 'app.db'}",
            escalation_enabled=False,
        )
        app = create_app(settings, clock=lambda: datetime(2024, 1, 15, 10, tzinfo=timezone.utc))

        with TestClient(app) as client:
            created = client.post("/sla/complaints", json={"title": "Noise complaint"})
            assert created.status_code == 201

            fetched = client.get(f"/sla/complaints/{created.json()['id']}")
            assert fetched.status_code == 200
            assert fetched.json()["version"] == 1
            assert client.get("/health").json()["checks"]["escalation_scheduler"] == "stopped"
