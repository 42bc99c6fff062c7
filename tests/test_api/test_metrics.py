"""Monitoring endpoint tests."""

from __future__ import annotations

from fastapi.testclient import TestClient

from arstudio.main import app


def test_metrics_endpoint_exposes_prometheus_payload() -> None:
    """`/metrics` should return a Prometheus-compatible text payload."""
    with TestClient(app) as client:
        client.post("/api/v1/training/sessions", json={"model_types": ["gesture"]})
        client.post("/api/v1/training/sessions/stop")
        response = client.get("/metrics")

    assert response.status_code == 200
    assert "text/plain" in response.headers.get("content-type", "")
    assert 'arstudio_training_sessions_total{outcome="completed"} 1.0' in response.text
    assert "arstudio_training_progress_percent" in response.text
