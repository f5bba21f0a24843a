from pathlib import Path

from starlette.testclient import TestClient

from conftest import ScriptedLLM, make_manager
from navia.llm.dummy import DummyLLM
from navia.web.app import create_app

TOOL_CODE = "def run(session, context):\n    return session.title()\n"


def _client(settings, store, planner=None):
    manager = make_manager(settings, store, planner or DummyLLM())
    return TestClient(create_app(manager)), manager


def test_api_health_and_idle_status(settings, store):
    client, _ = _client(settings, store)
    r = client.get("/api/health")
    assert r.status_code == 200 and r.json()["status"] == "ok"

    r = client.get("/api/agent/status")
    assert r.status_code == 200
    assert r.json() == {"status": "idle", "current_task": "No agent running", "run_id": None, "run_details": None}

    r = client.post("/api/agent/stop")
    assert r.status_code == 409


def test_start_validation(settings, store):
    client, _ = _client(settings, store)
    assert client.post("/api/agent/start", json={}).status_code == 400
    assert client.post("/api/agent/start", json={"goal": 5}).status_code == 400
    assert client.post("/api/agent/start", json={"goal": "x" * 1001}).status_code == 400


def test_run_lifecycle_over_http(settings, store):
    client, manager = _client(settings, store)
    r = client.post("/api/agent/start", json={"goal": "read inbox"})
    assert r.status_code == 201
    run_id = r.json()["run_id"]
    assert r.json()["status"] == "running"
    assert manager.wait(5)

    js = client.get("/api/agent/status").json()
    assert js["status"] == "completed" and js["run_id"] == run_id
    assert js["run_details"]["goal"] == "read inbox"

    js = client.get("/api/agent/runs").json()
    assert [i["run_id"] for i in js["items"]] == [run_id]
    assert js["pagination"]["total"] == 1 and js["pagination"]["has_more"] is False

    js = client.get(f"/api/agent/runs/{run_id}").json()
    assert js["memories"][0]["content"] == "Agent started with goal: read inbox"
    assert client.get("/api/agent/runs/run_missing").status_code == 404

    rows = client.get("/api/memory", params={"run_id": run_id, "type": "action"}).json()
    assert rows and all(m["type"] == "action" for m in rows)
    assert client.get("/api/memory", params={"type": "bogus"}).status_code == 400


def test_conflict_then_stop(settings, store):
    planner = ScriptedLLM([{"thought": "w", "action": "wait"}], pause_on=2)
    client, manager = _client(settings, store, planner)
    assert client.post("/api/agent/start", json={"goal": "first"}).status_code == 201
    assert planner.reached.wait(5)

    r = client.post("/api/agent/start", json={"goal": "second"})
    assert r.status_code == 409
    assert r.json()["detail"]["current_run"]["status"] == "running"

    r = client.post("/api/agent/stop")
    assert r.status_code == 200
    assert r.json()["current_task"] == "Stop requested"

    planner.release.set()
    assert manager.wait(5)
    assert client.get("/api/agent/status").json()["status"] == "stopped"


def test_tools_endpoints(settings, store):
    client, _ = _client(settings, store)
    names = {t["name"] for t in client.get("/api/tools").json()}
    assert {"screenshot", "extract_text", "check_element_exists"} <= names

    body = {"name": "page_title", "description": "Reads the title", "code": TOOL_CODE}
    r = client.post("/api/tools", json=body)
    assert r.status_code == 201 and r.json()["is_active"] is True
    assert client.post("/api/tools", json=body).status_code == 409
    assert client.post("/api/tools", json={**body, "name": "bad", "code": "import os"}).status_code == 400
    assert client.post("/api/tools", json={"name": "nocode"}).status_code == 400

    client.post("/api/tools", json={**body, "name": "off", "is_active": False})
    assert "off" not in {t["name"] for t in client.get("/api/tools").json()}
    assert "off" in {t["name"] for t in client.get("/api/tools", params={"active": "all"}).json()}
    assert [t["name"] for t in client.get("/api/tools", params={"active": "false"}).json()] == ["off"]


def test_kill_endpoint(settings, store):
    client, _ = _client(settings, store)
    r = client.post("/api/kill")
    assert r.status_code == 200
    assert Path(settings.general.kill_switch_path).exists()
