"""Training API behavior tests."""

from __future__ import annotations

from contextlib import ExitStack

import pytest
from fastapi import WebSocketDisconnect
from fastapi.testclient import TestClient

from arstudio.main import app

BASE = "/api/v1/training"


def test_start_session_returns_training_session() -> None:
    """Starting a session merges config overrides and tracks default sub-models."""
    with TestClient(app) as client:
        response = client.post(f"{BASE}/sessions", json={"config": {"training": {"epochs": 4}}})

        assert response.status_code == 201
        payload = response.json()
        assert payload["id"].startswith("session_")
        assert payload["status"] == "training"
        assert payload["model_types"] == ["gesture", "objectDetection", "voiceRecognition"]
        assert payload["config"]["training"] == {"epochs": 4}
        assert payload["config"]["validation"]["accuracyThreshold"] == 0.85

        status_response = client.get(f"{BASE}/status")
        assert status_response.json()["status"] == "training"
        assert status_response.json()["session"]["id"] == payload["id"]


def test_second_start_conflicts_with_active_session() -> None:
    """Only one session may be active at a time."""
    with TestClient(app) as client:
        first = client.post(f"{BASE}/sessions", json={})
        second = client.post(f"{BASE}/sessions", json={})
        status_response = client.get(f"{BASE}/status")

    assert first.status_code == 201
    assert second.status_code == 409
    assert first.json()["id"] in second.json()["detail"]
    assert status_response.json()["session"]["id"] == first.json()["id"]


def test_start_rejects_unknown_sensor() -> None:
    """Config groups are validated before anything starts."""
    with TestClient(app) as client:
        response = client.post(
            f"{BASE}/sessions",
            json={"config": {"dataCollection": {"sensors": ["lidar"]}}},
        )
        status_response = client.get(f"{BASE}/status")

    assert response.status_code == 422
    assert status_response.json() == {"status": "idle", "session": None}


def test_start_failure_maps_to_bad_gateway(monkeypatch) -> None:
    """A collaborator failing during start-up leaves the coordinator idle."""

    async def _refuse(session) -> None:
        raise RuntimeError("accelerator unavailable")

    with TestClient(app) as client:
        monkeypatch.setattr(app.state.coordinator._training, "begin_training", _refuse)
        response = client.post(f"{BASE}/sessions", json={})
        status_response = client.get(f"{BASE}/status")
        history = client.get(f"{BASE}/sessions")

    assert response.status_code == 502
    assert "begin_training" in response.json()["detail"]
    assert status_response.json()["status"] == "idle"
    assert [item["status"] for item in history.json()] == ["failed"]


def test_stop_session_completes_and_records_history() -> None:
    """Stopping returns the finalized session and stores it."""
    with TestClient(app) as client:
        started = client.post(f"{BASE}/sessions", json={}).json()
        stopped = client.post(f"{BASE}/sessions/stop")
        history = client.get(f"{BASE}/sessions")
        progress = client.get(f"{BASE}/progress")

    assert stopped.status_code == 200
    body = stopped.json()
    assert body["status"] == "completed"
    assert body["session"]["id"] == started["id"]
    assert body["session"]["end_time"] is not None
    assert body["warnings"] == []

    assert [item["id"] for item in history.json()] == [started["id"]]
    assert history.json()[0]["status"] == "completed"

    assert progress.json()["status"] == "idle"
    assert progress.json()["percentage"] == 0.0
    assert progress.json()["session_id"] is None


def test_stop_without_active_session_is_idle() -> None:
    """Stopping with nothing running succeeds without side effects."""
    with TestClient(app) as client:
        response = client.post(f"{BASE}/sessions/stop")
        history = client.get(f"{BASE}/sessions")

    assert response.status_code == 200
    assert response.json() == {"status": "idle", "session": None, "warnings": []}
    assert history.json() == []


def test_progress_reports_every_tracked_model() -> None:
    """Polling progress includes the aggregate and each sub-model."""
    with TestClient(app) as client:
        idle = client.get(f"{BASE}/progress").json()
        session = client.post(f"{BASE}/sessions", json={"model_types": ["a", "b"]}).json()
        active = client.get(f"{BASE}/progress").json()

    assert idle["status"] == "idle"
    assert idle["models"] == []
    assert idle["estimated_remaining"]

    assert active["session_id"] == session["id"]
    assert active["status"] in {"training", "completed"}
    assert sorted(item["name"] for item in active["models"]) == ["a", "b"]
    for item in active["models"]:
        assert 0.0 <= item["percentage"] <= 100.0
    mean = sum(item["percentage"] for item in active["models"]) / 2
    assert abs(active["percentage"] - mean) < 1e-6


def test_config_patch_applies_to_next_session() -> None:
    """Config updates merge per group and persist across restarts."""
    with TestClient(app) as client:
        defaults = client.get(f"{BASE}/config").json()
        updated = client.patch(f"{BASE}/config", json={"training": {"epochs": 7}})

    assert defaults["training"]["epochs"] == 50
    assert updated.status_code == 200
    assert updated.json()["training"] == {"epochs": 7}
    assert updated.json()["deployment"] == defaults["deployment"]

    with TestClient(app) as client:
        reloaded = client.get(f"{BASE}/config").json()
        session = client.post(f"{BASE}/sessions", json={}).json()

    assert reloaded["training"] == {"epochs": 7}
    assert session["config"]["training"] == {"epochs": 7}


def test_config_patch_validates_ranges() -> None:
    """Out-of-range thresholds are rejected."""
    with TestClient(app) as client:
        response = client.patch(f"{BASE}/config", json={"validation": {"accuracyThreshold": 1.5}})

    assert response.status_code == 422


def test_custom_model_is_deployed_when_valid() -> None:
    """A custom model passing validation shows up in the deployed list."""
    samples = [[float(i), float(i % 4), 0.5] for i in range(30)]
    with TestClient(app) as client:
        client.patch(
            f"{BASE}/config",
            json={"validation": {"accuracyThreshold": 0.0, "confidenceThreshold": 0.0}},
        )
        response = client.post(
            f"{BASE}/models",
            json={"model_type": "gesture", "name": "pinch", "samples": samples},
        )
        deployed = client.get(f"{BASE}/models")

    assert response.status_code == 200
    assert response.json()["success"] is True
    assert response.json()["deployment"]["version"] == 1
    assert [item["name"] for item in deployed.json()] == ["pinch"]


def test_custom_model_rejects_ragged_samples() -> None:
    """Preprocessing failures surface as 422."""
    with TestClient(app) as client:
        response = client.post(
            f"{BASE}/models",
            json={"model_type": "behavior", "name": "pace", "samples": [[1.0, 2.0], [3.0]]},
        )

    assert response.status_code == 422
    assert "equal length" in response.json()["detail"]


def test_custom_model_rejects_unknown_type() -> None:
    """Only gesture, eye tracking and behavior models can be trained."""
    with TestClient(app) as client:
        response = client.post(
            f"{BASE}/models",
            json={"model_type": "voice", "name": "hello", "samples": [[1.0]]},
        )

    assert response.status_code == 422


def test_progress_live_streams_snapshot_then_events() -> None:
    """The live channel sends the current snapshot, then per-model events."""
    with TestClient(app) as client:
        with client.websocket_connect(f"{BASE}/progress/live") as websocket:
            initial = websocket.receive_json()
            session = client.post(f"{BASE}/sessions", json={"model_types": ["gesture"]}).json()
            event = websocket.receive_json()
            while event.get("sessionId") != session["id"]:
                event = websocket.receive_json()

        client.post(f"{BASE}/sessions/stop")

    assert initial == {"percentage": 0.0, "status": "idle", "sessionId": None}
    assert event["modelType"] == "gesture"
    assert 0.0 <= event["modelProgress"] <= 100.0
    assert event["percentage"] == event["modelProgress"]
    assert "model_type" not in event
    assert event["status"] in {"training", "completed"}


def test_progress_live_limits_connections_per_client() -> None:
    """Connections beyond the per-client cap are closed before accept."""
    with TestClient(app) as client, ExitStack() as stack:
        for _ in range(3):
            websocket = stack.enter_context(client.websocket_connect(f"{BASE}/progress/live"))
            websocket.receive_json()

        with pytest.raises(WebSocketDisconnect) as excinfo:
            with client.websocket_connect(f"{BASE}/progress/live"):
                pass

    assert excinfo.value.code == 1013
