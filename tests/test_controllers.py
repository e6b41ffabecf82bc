"""Tests for the operator HTTP surface."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from src.config import ComplaintStatus, Priority
from src.core import (
    ApplicationException,
    ComplaintAlreadyResolvedException,
    ConcurrentSweepRejectedException,
    ResourceNotFoundException,
    StoreUnavailableException,
    ValidationException,
)
from src.escalation.application import EscalationEngine
from src.escalation.domain import BreachEvaluator, Complaint, SLAPolicy
from src.escalation.infrastructure import EscalationScheduler, InMemoryEscalationStore
from src.escalation.interfaces import escalation_router
from src.shared.api.middleware import (
    CorrelationIDMiddleware,
    application_exception_handler,
    status_code_for,
)

from tests.conftest import T0, RecordingNotifier, SimulatedClock, hours


@pytest.fixture
def api_store():
    store = InMemoryEscalationStore()
    store.add_complaint(Complaint(id=1, priority=Priority.HIGH, status=ComplaintStatus.NEW, created_at=T0))
    store.add_complaint(Complaint(id=2, priority=Priority.LOW, status=ComplaintStatus.RESOLVED, created_at=T0))
    return store


@pytest.fixture
def app(api_store):
    engine = EscalationEngine(
        store=api_store,
        notifier=RecordingNotifier(),
        evaluator=BreachEvaluator(SLAPolicy()),
        clock=SimulatedClock(T0 + hours(25)),
    )
    application = FastAPI()
    application.add_middleware(CorrelationIDMiddleware)
    application.add_exception_handler(ApplicationException, application_exception_handler)
    application.include_router(escalation_router)
    application.state.escalation_engine = engine
    application.state.escalation_scheduler = EscalationScheduler(engine, interval_seconds=0)
    return application


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


class TestSweepEndpoint:
    def test_sweep_escalates(self, client, api_store):
        response = client.post("/escalations/sweep")

        assert response.status_code == 200
        body = response.json()
        assert body["processed"] == 1
        assert body["escalated"] == 1
        assert body["notified"] == 1

    def test_sweep_rejected_while_busy(self, app, client):
        scheduler = MagicMock()
        scheduler.trigger_now = AsyncMock(side_effect=ConcurrentSweepRejectedException())
        app.state.escalation_scheduler = scheduler

        response = client.post("/escalations/sweep")

        assert response.status_code == 409
        assert response.json()["detail"] == "Escalation sweep already in progress"

    def test_sweep_store_down(self, app, client):
        scheduler = MagicMock()
        scheduler.trigger_now = AsyncMock(side_effect=StoreUnavailableException("list_open_complaints"))
        app.state.escalation_scheduler = scheduler

        response = client.post("/escalations/sweep")
        assert response.status_code == 503

    def test_not_initialized(self, app, client):
        del app.state.escalation_scheduler
        response = client.post("/escalations/sweep")
        assert response.status_code == 503


class TestComplaintEndpoints:
    def test_manual_escalation(self, client):
        response = client.post(
            "/escalations/complaints/1/escalate",
            json={"operator": "alice", "reason": "customer called"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["complaint_id"] == 1
        assert body["new_level"] == 1
        assert body["reason"] == "Manual escalation by alice: customer called"
        assert body["notified"] is True

    def test_manual_escalation_unknown(self, client):
        response = client.post("/escalations/complaints/99/escalate", json={"operator": "alice"})
        assert response.status_code == 404

    def test_manual_escalation_resolved(self, client):
        response = client.post("/escalations/complaints/2/escalate", json={"operator": "alice"})
        assert response.status_code == 409

    def test_manual_escalation_blank_operator(self, client):
        response = client.post("/escalations/complaints/1/escalate", json={"operator": "  "})
        assert response.status_code == 422

    def test_history(self, client):
        client.post("/escalations/complaints/1/escalate", json={"operator": "alice"})
        client.post("/escalations/complaints/1/escalate", json={"operator": "bob"})

        response = client.get("/escalations/complaints/1/history")

        assert response.status_code == 200
        entries = response.json()
        assert [e["level"] for e in entries] == [1, 2]
        assert entries[1]["reason"] == "Manual escalation by bob"
        assert entries[0]["notified_at"] is not None

    def test_history_unknown(self, client):
        assert client.get("/escalations/complaints/99/history").status_code == 404

    def test_assign(self, client, api_store):
        response = client.post(
            "/escalations/complaints/1/assign",
            json={"admin_id": 5, "operator": "alice", "note": "billing team"},
        )

        assert response.status_code == 200
        assert response.json()["admin_id"] == 5
        assert response.json()["assigned_by"] == "alice"

    def test_assign_invalid_admin(self, client):
        response = client.post("/escalations/complaints/1/assign", json={"admin_id": 0, "operator": "alice"})
        assert response.status_code == 422

    def test_assign_resolved(self, client):
        response = client.post("/escalations/complaints/2/assign", json={"admin_id": 5, "operator": "alice"})
        assert response.status_code == 409

    def test_escalated_list_and_stats(self, client):
        client.post("/escalations/sweep")

        listed = client.get("/escalations/complaints").json()
        stats = client.get("/escalations/stats").json()

        assert [c["id"] for c in listed] == [1]
        assert listed[0]["escalation_level"] == 1
        assert stats["total_unresolved"] == 1
        assert stats["total_escalated"] == 1
        assert stats["by_priority"] == [{"priority": "high", "count": 1, "escalated": 1}]


class TestSchedulerEndpoint:
    def test_status_after_sweep(self, client):
        client.post("/escalations/sweep")
        body = client.get("/escalations/scheduler").json()

        assert body["state"] == "stopped"
        assert body["interval_seconds"] == 0
        assert body["last_summary"]["escalated"] == 1
        assert body["last_error"] is None

    def test_correlation_id_echoed(self, client):
        response = client.get("/escalations/scheduler", headers={"X-Correlation-ID": "req-1"})
        assert response.headers["X-Correlation-ID"] == "req-1"


class TestExceptionMapping:
    def test_status_codes(self):
        assert status_code_for(ResourceNotFoundException("Complaint", 1)) == 404
        assert status_code_for(ComplaintAlreadyResolvedException(1)) == 409
        assert status_code_for(ConcurrentSweepRejectedException()) == 409
        assert status_code_for(ValidationException("bad")) == 422
        assert status_code_for(StoreUnavailableException("get_stats")) == 503
        assert status_code_for(ApplicationException("other")) == 500

    def test_unhandled_application_exception(self, app, client):
        @app.get("/boom")
        async def boom():
            raise StoreUnavailableException("get_stats")

        response = client.get("/boom", headers={"X-Correlation-ID": "req-2"})

        assert response.status_code == 503
        assert response.json()["correlation_id"] == "req-2"
