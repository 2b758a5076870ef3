"""Tests for the FastAPI boundary."""

import asyncio

import pytest
from fastapi.testclient import TestClient

from autoflow import EventBus, Workflow
from autoflow.server import create_app

EVENT_WORKFLOW = {
    "name": "On task created",
    "enabled": True,
    "nodes": [
        {"id": "on-created", "type": "trigger_event", "config": {"eventType": "task_created"}},
        {"id": "shape", "type": "transform", "config": {"functionBody": "return input.taskId;"}},
    ],
    "edges": [
        {
            "id": "e1",
            "sourceNodeId": "on-created",
            "sourcePort": "trigger_out",
            "targetNodeId": "shape",
            "targetPort": "data_in",
        }
    ],
}


@pytest.fixture
def bus(engine, store, settings):
    return EventBus(engine, store, settings=settings)


@pytest.fixture
def client(bus, engine, store):
    with TestClient(create_app(bus, engine, store)) as test_client:
        yield test_client


class TestEventsApi:
    """Tests for /api/events."""

    def test_emit_event(self, client):
        response = client.post(
            "/api/events",
            json={"type": "task_created", "source": "api", "data": {"taskId": "t-1"}, "project": "web"},
        )

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["event"]["type"] == "task_created"
        assert body["event"]["data"] == {"taskId": "t-1"}
        assert body["event"]["project"] == "web"

    @pytest.mark.parametrize(
        "payload,detail",
        [
            ({"type": "nope", "source": "api", "data": {}}, "Invalid event type. Must be one of: "),
            ({"source": "api", "data": {}}, "Invalid event type"),
            ({"type": "task_created", "data": {}}, "source is required (string)"),
            ({"type": "task_created", "source": 5, "data": {}}, "source is required (string)"),
            ({"type": "task_created", "source": "api"}, "data is required (object)"),
            ({"type": "task_created", "source": "api", "data": [1]}, "data is required (object)"),
        ],
    )
    def test_rejects_invalid_events(self, client, bus, payload, detail):
        response = client.post("/api/events", json=payload)

        assert response.status_code == 400
        assert response.json()["detail"].startswith(detail)
        assert len(bus) == 0

    def test_rejects_malformed_json(self, client):
        response = client.post(
            "/api/events", content=b"{not json", headers={"content-type": "application/json"}
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid JSON body"

    def test_list_events(self, client):
        for event_type in ("task_created", "task_closed", "task_created"):
            client.post("/api/events", json={"type": event_type, "source": "api", "data": {}})

        everything = client.get("/api/events").json()
        closed = client.get("/api/events", params={"type": "task_closed"}).json()
        limited = client.get("/api/events", params={"limit": 1}).json()
        unknown = client.get("/api/events", params={"type": "bogus"}).json()

        assert everything["count"] == 3
        assert [e["type"] for e in everything["events"]] == ["task_created", "task_closed", "task_created"]
        assert closed["count"] == 1
        assert limited["count"] == 1
        assert unknown["count"] == 3

    def test_event_dispatches_matching_workflow(self, bus, engine, store):
        with TestClient(create_app(bus, engine, store)) as client:
            assert client.put("/api/workflows/wf-created", json=EVENT_WORKFLOW).status_code == 200
            client.post("/api/events", json={"type": "task_created", "source": "api", "data": {"taskId": "t-9"}})

        # Leaving the client waits for in-flight dispatches
        assert len(store.runs) == 1
        run = store.runs[0]
        assert run.workflow_id == "wf-created"
        assert run.node_results["shape"].output == "t-9"


class TestWorkflowsApi:
    """Tests for /api/workflows."""

    def test_put_and_get(self, client):
        saved = client.put("/api/workflows/wf-created", json=EVENT_WORKFLOW)
        loaded = client.get("/api/workflows/wf-created")

        assert saved.status_code == 200
        assert loaded.status_code == 200
        assert loaded.json()["id"] == "wf-created"
        assert loaded.json()["nodes"][1]["config"] == {"functionBody": "return input.taskId;"}

    def test_get_unknown_workflow(self, client):
        response = client.get("/api/workflows/missing")

        assert response.status_code == 404
        assert response.json()["detail"] == "Workflow not found"

    def test_put_reports_validation_issues(self, client):
        body = {
            "name": "Broken",
            "nodes": [{"id": "cmd", "type": "action_run_bash", "config": {}}],
            "edges": [],
        }

        response = client.put("/api/workflows/wf-broken", json=body)

        assert response.status_code == 400
        assert {"path": "nodes[0].config.command", "message": "Command is required"} in response.json()["detail"]

    def test_put_rejects_unknown_node_type(self, client):
        body = {"name": "Broken", "nodes": [{"id": "x", "type": "teleport", "config": {}}]}

        response = client.put("/api/workflows/wf-broken", json=body)

        assert response.status_code == 400
        assert isinstance(response.json()["detail"], list)

    def test_run_unknown_workflow(self, client):
        assert client.post("/api/workflows/missing/run").status_code == 404

    def test_run_rejects_invalid_stored_workflow(self, client, store):
        broken = Workflow.model_validate(
            {
                "id": "wf-broken",
                "name": "Broken",
                "nodes": [{"id": "cmd", "type": "action_run_bash", "config": {}}],
            }
        )
        asyncio.run(store.save_workflow(broken))

        response = client.post("/api/workflows/wf-broken/run")

        assert response.status_code == 400
        detail = response.json()["detail"]
        assert detail["error"] == "Workflow has validation errors"
        assert detail["validationErrors"] == [
            {"path": "nodes[0].config.command", "message": "Command is required"}
        ]
        assert store.runs == []

    def test_manual_run_and_history(self, client):
        client.put("/api/workflows/wf-created", json=EVENT_WORKFLOW)

        run = client.post(
            "/api/workflows/wf-created/run",
            json={"dryRun": True, "eventData": {"taskId": "t-2"}},
        ).json()
        history = client.get("/api/workflows/wf-created/runs").json()

        assert run["status"] == "success"
        assert run["trigger"] == "manual"
        assert run["nodeResults"]["on-created"]["output"] == {"taskId": "t-2", "dryRun": True}
        assert run["nodeResults"]["shape"]["output"]["dryRun"] is True
        assert [r["id"] for r in history["runs"]] == [run["id"]]

    def test_run_without_body(self, client):
        client.put("/api/workflows/wf-created", json=EVENT_WORKFLOW)

        response = client.post("/api/workflows/wf-created/run")

        assert response.status_code == 200
        results = response.json()["nodeResults"]
        assert results["on-created"]["output"]["triggered"] is True
        assert results["shape"]["status"] == "success"
        assert "output" not in results["shape"]


class TestHealth:
    def test_health(self, client):
        client.post("/api/events", json={"type": "file_changed", "source": "watcher", "data": {}})

        body = client.get("/health").json()

        assert body == {"status": "healthy", "events": 1, "scheduler": False}
