"""Training-session metrics with Prometheus export."""

from __future__ import annotations

import structlog
from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Counter, Gauge, generate_latest

from arstudio.ml.progress import ProgressEvent

logger = structlog.get_logger(__name__)


class TrainingMetricsCollector:
    """Collect and expose session lifecycle and progress metrics."""

    def __init__(self) -> None:
        registry = CollectorRegistry()
        self._registry = registry
        self._sessions_total = Counter(
            "arstudio_training_sessions_total",
            "Training sessions by final outcome.",
            labelnames=("outcome",),
            registry=registry,
        )
        self._teardown_warnings = Counter(
            "arstudio_teardown_warnings_total",
            "Collaborator failures swallowed while stopping a session.",
            labelnames=("step",),
            registry=registry,
        )
        self._aggregate_progress = Gauge(
            "arstudio_training_progress_percent",
            "Latest aggregate training progress.",
            registry=registry,
        )
        self._model_progress = Gauge(
            "arstudio_model_progress_percent",
            "Latest progress per tracked sub-model.",
            labelnames=("model_type",),
            registry=registry,
        )

    @staticmethod
    def _normalize(value: str | None, default: str) -> str:
        normalized = str(value or default).strip()
        return normalized or default

    def record_session(self, *, outcome: str) -> None:
        """Record one session reaching a terminal state."""
        self._sessions_total.labels(outcome=self._normalize(outcome, "unknown")).inc()

    def record_teardown_warning(self, *, step: str) -> None:
        """Record one swallowed teardown failure."""
        self._teardown_warnings.labels(step=self._normalize(step, "unknown")).inc()

    def observe_progress(self, event: ProgressEvent) -> None:
        """Progress listener that mirrors events into gauges."""
        self._aggregate_progress.set(float(event.percentage))
        if event.model_type is not None and event.model_progress is not None:
            self._model_progress.labels(model_type=event.model_type).set(float(event.model_progress))

    def render_latest(self) -> tuple[bytes, str]:
        """Render all metrics in Prometheus text exposition format."""
        return generate_latest(self._registry), CONTENT_TYPE_LATEST
