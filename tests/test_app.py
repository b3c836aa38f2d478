from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from poseoverlay.media.video_source import CameraAccessError
from poseoverlay.server import app as app_module
from poseoverlay.server.session import OverlaySession
from tests.conftest import CONFIG_DIR
from tests.fakes import FakeEstimator, FakeMediaSource, make_pose


def _session(source_factory=None) -> OverlaySession:
    return OverlaySession(
        CONFIG_DIR / "runtime.yaml",
        CONFIG_DIR / "sports.yaml",
        source_factory=source_factory or (lambda target, cfg: FakeMediaSource()),
        estimator_factory=lambda cfg: FakeEstimator(make_pose()),
    )


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setattr(app_module, "session_manager", _session())
    with TestClient(app_module.app) as test_client:
        yield test_client


def test_list_sports(client):
    response = client.get("/api/sports")
    assert response.status_code == 200
    sports = {sport["id"]: sport for sport in response.json()["sports"]}
    assert set(sports) == {"golf", "sprint", "cricket", "baseball", "tennis", "squat"}
    assert sports["golf"]["metrics"] == ["Shoulder line", "Hip line", "X-factor", "Tempo"]


def test_session_lifecycle(client):
    assert client.get("/api/session/status").json()["running"] is False

    started = client.post("/api/session/start", json={"source": "clip.mp4", "sport": "squat", "autoplay": False})
    assert started.status_code == 200
    body = started.json()
    assert body["running"] is True
    assert body["sport"] == "squat"
    assert body["source"] == "clip.mp4"
    assert body["state"] == "ready"

    assert client.post("/api/session/start", json={}).status_code == 409

    played = client.post("/api/session/transport", json={"action": "play"})
    assert played.json()["state"] == "playing"
    paused = client.post("/api/session/transport", json={"action": "pause"})
    assert paused.json()["state"] == "paused"
    seeking = client.post("/api/session/transport", json={"action": "seek", "seconds": 2.5})
    assert seeking.json()["state"] == "seeking"

    changed = client.post("/api/session/sport", json={"sport": "golf"})
    assert changed.status_code == 200
    assert changed.json()["sport"] == "golf"
    assert changed.json()["repCount"] == 0

    assert client.post("/api/session/stop").json() == {"status": "stopped"}
    assert client.post("/api/session/stop").json() == {"status": "idle"}


def test_controls_need_a_session(client):
    assert client.post("/api/session/transport", json={"action": "play"}).status_code == 409
    assert client.post("/api/session/sport", json={"sport": "golf"}).status_code == 409


def test_request_validation(client):
    assert client.post("/api/session/transport", json={"action": "rewind"}).status_code == 422
    assert client.post("/api/session/start", json={"sport": "curling"}).status_code == 422
    client.post("/api/session/start", json={"source": "clip.mp4", "autoplay": False})
    assert client.post("/api/session/transport", json={"action": "seek"}).status_code == 400


def test_refused_camera_maps_to_403(monkeypatch):
    def refuse(target, cfg):
        raise CameraAccessError("Unable to open camera 0")

    session = _session(source_factory=refuse)
    monkeypatch.setattr(app_module, "session_manager", session)
    with TestClient(app_module.app) as test_client:
        response = test_client.post("/api/session/start", json={"camera_index": 0})
        assert response.status_code == 403
        assert session.is_running() is False
