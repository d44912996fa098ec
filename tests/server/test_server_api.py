import time

import pytest
from fastapi.testclient import TestClient

from clipflow.app import build_app_context
from clipflow.config.config import load_config
from clipflow.providers.base import ProviderKind
from clipflow.server import create_app


@pytest.fixture
def providers(make_provider):
    return {
        ProviderKind.GROK: make_provider(ProviderKind.GROK),
        ProviderKind.DEMO: make_provider(ProviderKind.DEMO),
    }


@pytest.fixture
def app_ctx(tmp_path, providers):
    config = load_config(config_path=tmp_path / "missing.yaml", environ={})
    config.update(
        settings_file=str(tmp_path / "settings.toml"),
        sessions_db=str(tmp_path / "sessions.db"),
        results_dir=str(tmp_path / "results"),
        log_file=str(tmp_path / "clipflow.log"),
        progress_tick_sec=0.05,
    )
    ctx = build_app_context(config=config, environ={}, providers=providers, owner="alice", setup_logging=False)
    yield ctx
    ctx.close()


@pytest.fixture
def client(app_ctx):
    with TestClient(create_app(app_ctx)) as c:
        yield c


def _configure(client):
    resp = client.put(
        "/provider/config",
        json={"endpoint": "https://API.example.com/v1/generate/", "api_key": "secret"},
    )
    assert resp.status_code == 200
    return resp.json()


def _wait_idle(client, timeout=5.0):
    deadline = time.monotonic() + timeout
    while True:
        state = client.get("/generation").json()
        if not state["is_generating"]:
            return state
        assert time.monotonic() < deadline, "generation did not finish"
        time.sleep(0.01)


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"


def test_provider_lifecycle(client):
    state = client.get("/provider").json()
    assert state["active"] == "demo"
    assert state["grok_configured"] is False

    assert client.put("/provider", json={"provider": "grok"}).status_code == 409

    bad = client.put("/provider/config", json={"endpoint": "ftp://x", "api_key": "k"})
    assert bad.status_code == 422
    assert bad.json()["detail"]["kind"] == "malformed_endpoint"
    assert client.get("/provider").json()["grok_configured"] is False

    state = _configure(client)
    assert state["active"] == "grok"
    assert state["endpoint"] == "https://api.example.com/v1/generate"
    assert state["config_source"] == "runtime"

    state = client.put("/provider", json={"provider": "demo"}).json()
    assert state["active"] == "demo"
    assert state["explicit_opt_in"] is True

    state = client.delete("/provider/config").json()
    assert state["active"] == "demo"
    assert state["explicit_opt_in"] is False
    assert state["grok_configured"] is False


def test_generation_with_failed_segment_and_retry(client, providers, app_ctx):
    _configure(client)
    providers[ProviderKind.GROK].failures[1] = "Grok API request failed (500)"

    resp = client.post("/generation", json={"prompt": "sunset", "clip_count": 3, "per_clip_duration": 20})
    assert resp.status_code == 200
    session_id = resp.json()["session_id"]

    state = _wait_idle(client)
    assert state["session_id"] == session_id
    assert [s["status"] for s in state["segments"]] == ["completed", "failed", "completed"]
    assert state["segments"][1]["reason"] == "Grok API request failed (500)"
    assert state["segments"][1]["clip"] is None
    assert state["progress"] == 100
    assert state["label"] == "2 of 3 clips completed"

    retry = client.post("/generation/segments/1/retry")
    assert retry.status_code == 202
    assert retry.json() == {"index": 1, "scheduled": True}

    state = _wait_idle(client)
    assert [s["status"] for s in state["segments"]] == ["completed", "completed", "completed"]
    assert state["label"] == "All 3 clips completed"

    again = client.post("/generation/segments/1/retry")
    assert again.json()["scheduled"] is False
    assert client.post("/generation/segments/9/retry").status_code == 404

    sessions = client.get("/sessions", params={"owner": "alice"}).json()
    assert [s["session_id"] for s in sessions] == [session_id]
    assert sessions[0]["segment_count"] == 3

    detail = client.get(f"/sessions/{session_id}").json()
    assert [s["status"] for s in detail["segments"]] == ["completed", "completed", "completed"]
    assert client.get("/sessions/9999").status_code == 404

    state = client.post("/generation/reset").json()
    assert state["session_id"] is None
    assert state["segments"] == []
    assert client.post("/generation/segments/0/retry").status_code == 404


@pytest.mark.parametrize(
    "body",
    [
        {"prompt": "   ", "clip_count": 3, "per_clip_duration": 20},
        {"prompt": "sunset", "clip_count": 2, "per_clip_duration": 10},
        {"prompt": "sunset", "clip_count": 0, "per_clip_duration": 20},
        {"prompt": "sunset", "clip_count": 1, "per_clip_duration": 500},
    ],
)
def test_generation_request_validation(client, providers, body):
    assert client.post("/generation", json=body).status_code == 422
    assert providers[ProviderKind.DEMO].calls == []


def test_unconfigured_provider_is_a_conflict(client, providers):
    providers[ProviderKind.DEMO].configured = False

    resp = client.post("/generation", json={"prompt": "sunset", "clip_count": 1, "per_clip_duration": 30})

    assert resp.status_code == 409
    assert resp.json()["detail"]["type"] == "configuration_error"


def test_duration_rejection_suggests_a_clip_count(client):
    resp = client.post("/generation", json={"prompt": "sunset", "clip_count": 2, "per_clip_duration": 10})

    assert resp.status_code == 422
    detail = resp.json()["detail"]
    assert "at least 55" in detail["message"]
    assert detail["suggested_clip_count"] == 6


def test_non_image_reference_is_rejected(client, providers):
    body = {
        "prompt": "sunset",
        "clip_count": 1,
        "per_clip_duration": 30,
        "reference_images": [{"data": "eA==", "mime_type": "text/plain", "filename": "x.exe", "size": 999_999_999}],
    }

    assert client.post("/generation", json=body).status_code == 422
    assert providers[ProviderKind.DEMO].calls == []
