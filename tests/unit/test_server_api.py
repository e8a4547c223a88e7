from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from anvil_workflows.server.app import create_app
from anvil_workflows.server.config import ServerSettings


@pytest.fixture(autouse=True)
def _env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("LOG_LEVEL", "ANVIL_WORKSPACE", "ANVIL_WORKFLOWS_DIR", "ANVIL_CORS_ORIGINS"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


def _release() -> dict[str, object]:
    return {
        "id": "release",
        "name": "Release",
        "steps": [
            {"id": "s1", "title": "Tag", "command": "git tag {{version}}"},
            {"id": "s2", "title": "Push", "command": "git push", "requires_approval": False},
            {"id": "s3", "title": "Announce", "command": "echo shipped {{version}}"},
        ],
    }


@pytest.fixture
def client(workspace: str, channel) -> TestClient:
    settings = ServerSettings(ANVIL_WORKSPACE=Path(workspace), LOG_LEVEL="WARNING")
    return TestClient(create_app(settings=settings, channel=channel))


def test_health(client: TestClient) -> None:
    health = client.get("/api/health").json()

    assert health["status"] == "ok"
    assert health["ok"] is True
    assert "version" in health


def test_workflow_crud(client: TestClient) -> None:
    created = client.post("/api/workflows", json=_release())
    assert created.status_code == 200
    assert created.json()["version"] == 1

    listing = client.get("/api/workflows").json()
    assert listing == [
        {"id": "release", "name": "Release", "description": None, "step_count": 3}
    ]

    assert client.get("/api/workflows/release").json()["steps"][1]["requires_approval"] is False

    assert client.delete("/api/workflows/release").json() == {"ok": True, "id": "release"}
    assert client.get("/api/workflows/release").status_code == 404
    assert client.delete("/api/workflows/release").status_code == 404


def test_save_validation_error(client: TestClient) -> None:
    response = client.post("/api/workflows", json={"id": "x", "name": "X", "steps": []})

    assert response.status_code == 422
    assert "step" in response.json()["detail"]


def test_preview(client: TestClient, workspace: str) -> None:
    client.post("/api/workflows", json=_release())

    preview = client.post("/api/workflows/release/preview", json={"values": {}}).json()

    assert preview["param_keys"] == ["version"]
    assert preview["missing_params"] == ["version"]
    assert preview["commands"][0] == "git tag <version>"


def test_run_approve_decline_flow(client: TestClient, channel) -> None:
    client.post("/api/workflows", json=_release())

    needs = client.post("/api/workflows/release/run", json={"values": {}}).json()
    assert needs["status"] == "needs_parameters"
    assert needs["missing_params"] == ["version"]

    paused = client.post("/api/workflows/release/run", json={"values": {"version": "v1"}}).json()
    assert paused["status"] == "awaiting_approval"
    assert paused["pending_command"] == "git tag v1"

    busy = client.post("/api/workflows/release/run", json={"values": {"version": "v1"}})
    assert busy.status_code == 409

    run = client.get("/api/runs/release").json()
    assert run["phase"] == "awaiting_approval"
    assert run["resolved_commands"] == ["git tag v1", "git push", "echo shipped v1"]

    approved = client.post("/api/runs/release/approve").json()
    assert approved["status"] == "awaiting_approval"
    assert approved["step_index"] == 2
    assert approved["dispatched"] == ["git tag v1", "git push"]

    declined = client.post("/api/runs/release/decline").json()
    assert declined["status"] == "cancelled"
    assert channel.writes == ["git tag v1\n", "git push\n"]

    assert client.get("/api/runs").json() == []
    assert client.get("/api/runs/release").status_code == 404
    assert client.post("/api/runs/release/approve").status_code == 409


def test_stop_run(client: TestClient) -> None:
    client.post("/api/workflows", json=_release())
    client.post("/api/workflows/release/run", json={"values": {"version": "v1"}})

    stopped = client.post("/api/runs/release/stop").json()

    assert stopped["status"] == "stopped"
    assert client.post("/api/runs/release/stop").status_code == 409


def test_run_unknown_workflow(client: TestClient) -> None:
    response = client.post("/api/workflows/ghost/run", json={"values": {}})

    assert response.status_code == 404


def test_channel_failure_is_service_unavailable(client: TestClient, channel) -> None:
    channel.fail = True
    client.post("/api/workflows", json=_release())
    client.post("/api/workflows/release/run", json={"values": {"version": "v1"}})

    response = client.post("/api/runs/release/approve")

    assert response.status_code == 503
    assert client.get("/api/runs/release").status_code == 404


def test_workspace_required_without_default(channel) -> None:
    settings = ServerSettings(LOG_LEVEL="WARNING")
    client = TestClient(create_app(settings=settings, channel=channel))

    assert client.get("/api/workflows").status_code == 400


def test_run_rejects_path_like_workflow_id(client: TestClient) -> None:
    response = client.post("/api/workflows/a..b/run", json={"values": {}})

    assert response.status_code == 422
    assert "a..b" in response.json()["detail"]
    assert client.get("/api/runs").json() == []
