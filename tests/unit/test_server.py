from __future__ import annotations

from typing import Any
from unittest.mock import Mock

import pytest
import requests
from fastapi.testclient import TestClient

from medicine_agent_orchestrator.core.config import OrchestratorConfig, ToolsConfig
from medicine_agent_orchestrator.server import app as app_module
from medicine_agent_orchestrator.server.app import create_app
from medicine_agent_orchestrator.server.config import ServerSettings
from medicine_agent_orchestrator.tools.medical_retrieval import medical_retrieval_tool
from medicine_agent_orchestrator.workflow.builder import create_workflow
from medicine_agent_orchestrator.workflow.engine import RunEngine
from medicine_agent_orchestrator.workflow.schema import Field, Schema
from medicine_agent_orchestrator.workflow.step import StepContext, create_step
from medicine_agent_orchestrator.workflow.streaming import QueueSink
from medicine_agent_orchestrator.workflows.dosage import build_dosage_workflow

Text = Schema({"text": Field("string")})


def _shout(data: dict[str, Any], ctx: StepContext) -> dict[str, Any]:
    ctx.emit(f"echo:{data['text']}")
    return {"text": data["text"].upper()}


def _explode(data: dict[str, Any], ctx: StepContext) -> dict[str, Any]:
    raise RuntimeError("agent unavailable")


@pytest.fixture
def client(monkeypatch: pytest.MonkeyPatch, orchestrator_config: OrchestratorConfig) -> TestClient:
    monkeypatch.delenv("OPENFDA_API_KEY", raising=False)
    workflows = {
        "echo": create_workflow(id="echo-workflow", input_schema=Text, output_schema=Text)
        .then(create_step(id="shout", input_schema=Text, output_schema=Text, execute=_shout))
        .commit(),
        "broken": create_workflow(id="broken-workflow", input_schema=Text, output_schema=Text)
        .then(create_step(id="explode", input_schema=Text, output_schema=Text, execute=_explode))
        .commit(),
        "dosage": build_dosage_workflow(
            medical_retrieval_tool(ToolsConfig(), session=Mock(spec=requests.Session))
        ),
    }
    app = create_app(
        orchestrator_config,
        engine=RunEngine(),
        workflows=workflows,
        settings=ServerSettings(),
    )
    return TestClient(app)


def test_health_and_workflow_listing(client: TestClient) -> None:
    health = client.get("/api/health").json()
    assert health["status"] == "ok"
    assert health["workflows"] == 3
    assert "version" in health

    listing = {w["path"]: w for w in client.get("/api/workflows").json()}
    assert sorted(listing) == ["broken", "dosage", "echo"]
    assert listing["echo"]["id"] == "echo-workflow"
    assert listing["echo"]["inputSchema"]["required"] == ["text"]
    assert listing["dosage"]["stages"] == ["lookup-label", "confirm-dosage"]


def test_run_workflow_success(client: TestClient) -> None:
    response = client.post("/api/workflows/echo", json={"text": "hi"})

    assert response.status_code == 200
    assert response.json() == {"text": "HI"}


def test_run_workflow_error_statuses(client: TestClient) -> None:
    invalid = client.post("/api/workflows/echo", json={"text": 1})
    assert invalid.status_code == 400
    assert "input of workflow 'echo-workflow'" in invalid.json()["error"]

    not_an_object = client.post("/api/workflows/echo", json=["hi"])
    assert not_an_object.status_code == 400
    assert "error" in not_an_object.json()

    unknown = client.post("/api/workflows/nope", json={"text": "hi"})
    assert unknown.status_code == 404
    assert unknown.json() == {"error": "Unknown workflow: nope"}

    failed = client.post("/api/workflows/broken", json={"text": "hi"})
    assert failed.status_code == 500
    assert "agent unavailable" in failed.json()["error"]


def test_suspend_resume_over_http(client: TestClient) -> None:
    started = client.post("/api/workflows/dosage", json={"drug": "ibuprofen", "dosage": "200mg"})

    assert started.status_code == 200
    body = started.json()
    assert body["status"] == "suspended"
    assert body["resume_token"] == body["run_id"]
    assert body["payload"]["question"] == "Confirm dosage?"

    run = client.get(f"/api/runs/{body['run_id']}").json()
    assert run["status"] == "suspended"
    assert run["suspended_step_id"] == "confirm-dosage"

    bad_answer = client.post(f"/api/runs/{body['run_id']}/resume", json={"answer": 1})
    assert bad_answer.status_code == 400

    resumed = client.post(f"/api/runs/{body['run_id']}/resume", json={"answer": "yes"})
    assert resumed.status_code == 200
    assert resumed.json()["confirmed"] is True
    assert "API Error" in resumed.json()["output"]

    again = client.post(f"/api/runs/{body['run_id']}/resume", json={"answer": "yes"})
    assert again.status_code == 409
    assert "already terminated" in again.json()["error"]


def test_cancel_and_unknown_runs(client: TestClient) -> None:
    started = client.post("/api/workflows/dosage", json={"drug": "x", "dosage": "1g"}).json()

    cancelled = client.post(f"/api/runs/{started['run_id']}/cancel")
    assert cancelled.status_code == 200
    assert cancelled.json()["status"] == "failed"
    assert cancelled.json()["error_kind"] == "Cancelled"

    assert client.get(f"/api/runs/{started['run_id']}").json()["error_kind"] == "Cancelled"
    assert client.post("/api/runs/missing/resume", json={"answer": "yes"}).status_code == 404
    assert client.get("/api/runs/missing").json() == {"error": "Unknown run: missing"}


def test_stream_emits_chunks_then_done(client: TestClient) -> None:
    response = client.post("/api/workflows/echo/stream", json={"text": "hi"})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    assert "data: echo:hi\n\n" in response.text
    assert "event: done\n" in response.text
    assert '"status": "success"' in response.text
    assert response.text.index("data: echo:hi") < response.text.index("event: done")


def test_stream_closes_the_queue_once(
    client: TestClient, monkeypatch: pytest.MonkeyPatch
) -> None:
    closes: list[int] = []

    class CountingQueueSink(QueueSink):
        def close(self) -> None:
            closes.append(1)
            super().close()

    monkeypatch.setattr(app_module, "QueueSink", CountingQueueSink)

    response = client.post("/api/workflows/echo/stream", json={"text": "hi"})

    assert "event: done\n" in response.text
    assert closes == [1]


def test_stream_reports_failures(client: TestClient) -> None:
    response = client.post("/api/workflows/broken/stream", json={"text": "hi"})

    assert response.status_code == 200
    assert "event: error\n" in response.text
    assert "agent unavailable" in response.text


def test_stream_rejects_invalid_input_before_streaming(client: TestClient) -> None:
    response = client.post("/api/workflows/echo/stream", json={})

    assert response.status_code == 400
    assert "required field is missing" in response.json()["error"]
