import pytest
from fastapi.testclient import TestClient

from accessai.runtime import build_web_sight_controller
from accessai.server import create_app

from .conftest import FakePageDriver, ScriptedCompletions, completion


@pytest.fixture
def client(tmp_path):
    completions = ScriptedCompletions([completion("Opened Courses.")])
    controller = build_web_sight_controller(
        FakePageDriver(),
        completions=completions,
        history_path=tmp_path / "history.json",
    )
    controller.loop.settle_delay = 0
    with TestClient(create_app(controller=controller)) as test_client:
        yield test_client


def test_root_and_health(client):
    info = client.get("/").json()
    assert info["status"] == "running"
    assert info["mode"] == "web-sight"
    assert client.get("/health").json() == {"status": "healthy"}


def test_command_runs_the_agent(client):
    response = client.post("/command", json={"text": "open courses"})
    assert response.status_code == 200
    assert response.json() == {
        "status": "completed",
        "response": "Opened Courses.",
        "actions": [],
        "pending_confirmation": False,
    }

    entries = client.get("/history").json()["entries"]
    assert [(e["role"], e["text"]) for e in entries] == [
        ("user", "open courses"),
        ("assistant", "Opened Courses."),
    ]


def test_purchase_needs_confirmation(client):
    body = client.post("/command", json={"text": "checkout my basket"}).json()
    assert body["status"] == "confirmation_required"
    assert body["pending_confirmation"] is True


def test_clear_history(client):
    client.post("/command", json={"text": "open courses"})
    assert client.delete("/history").json() == {"status": "cleared"}
    assert client.get("/history").json() == {"entries": []}


def test_missing_text_is_rejected(client):
    assert client.post("/command", json={}).status_code == 422
