"""Tests for the sync API (workflow starts are faked)."""

import pytest
from fastapi.testclient import TestClient

from api.server import app
from api.services.workflow_starter import WorkflowAlreadyRunning, get_workflow_starter
from workflows.sync_workflows import StockDriftSyncWorkflow, WorkOrderSyncWorkflowInput


class FakeStarter:
    """Records workflow starts instead of talking to Temporal."""

    def __init__(self, running=()):
        self.started = []
        self.running = set(running)

    async def start(self, workflow_run, workflow_id, arg=None):
        if workflow_id in self.running:
            raise WorkflowAlreadyRunning(workflow_id)
        self.started.append((workflow_run, workflow_id, arg))
        return "run-1"


@pytest.fixture
def starter():
    return FakeStarter()


@pytest.fixture
def client(starter):
    app.dependency_overrides[get_workflow_starter] = lambda: starter
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


class TestHealth:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["pipelines"]["stock_sync"] == "StockDriftSyncWorkflow"

    def test_readiness_and_liveness(self, client):
        assert client.get("/ready").json() == {"status": "ready"}
        assert client.get("/live").json() == {"status": "alive"}


class TestWorkOrderWebhook:

    def test_starts_workflow(self, client, starter):
        response = client.post("/webhooks/work-orders", json={"data": {"id": 77, "type": "failures"}})

        assert response.status_code == 202
        assert response.json() == {"workflow_id": "work-order-failures-77", "status": "started", "run_id": "run-1"}
        _, workflow_id, arg = starter.started[0]
        assert workflow_id == "work-order-failures-77"
        assert arg == WorkOrderSyncWorkflowInput(order_id="77", resource_type="failures")

    def test_envelope_body(self, client, starter):
        response = client.post("/webhooks/work-orders", json={"body": '{"data": {"id": "88", "type": "works"}}'})
        assert response.status_code == 202
        assert starter.started[0][1] == "work-order-works-88"

    @pytest.mark.parametrize("payload", [{}, {"data": {"id": 77}}, {"data": {"type": "failures"}}, [1, 2]])
    def test_malformed_payload(self, client, starter, payload):
        response = client.post("/webhooks/work-orders", json=payload)
        assert response.status_code == 400
        assert starter.started == []

    def test_invalid_json(self, client):
        response = client.post(
            "/webhooks/work-orders",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )
        assert response.status_code == 400

    def test_duplicate_delivery(self, client, starter):
        starter.running.add("work-order-failures-77")

        response = client.post("/webhooks/work-orders", json={"data": {"id": "77", "type": "failures"}})

        assert response.status_code == 200
        assert response.json()["status"] == "already_running"


class TestManualRuns:

    def test_start_pipeline(self, client, starter):
        response = client.post("/runs/stock_sync")

        assert response.status_code == 202
        workflow_run, workflow_id, arg = starter.started[0]
        assert workflow_run == StockDriftSyncWorkflow.run
        assert workflow_id.startswith("stock_sync-manual-")
        assert arg is None

    def test_unknown_pipeline(self, client, starter):
        response = client.post("/runs/payroll")
        assert response.status_code == 404
        assert "material_requests" in response.json()["detail"]
        assert starter.started == []
