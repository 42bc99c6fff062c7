"""Tests for the Prometheus training metrics collector."""

from __future__ import annotations

from arstudio.ml.metrics import TrainingMetricsCollector
from arstudio.ml.progress import ProgressEvent, ProgressStatus
from arstudio.ml.utils import estimate_remaining_time


def test_collectors_do_not_share_registries() -> None:
    first = TrainingMetricsCollector()
    second = TrainingMetricsCollector()

    first.record_session(outcome="completed")

    assert b'outcome="completed"} 1.0' in first.render_latest()[0]
    assert b'outcome="completed"}' not in second.render_latest()[0]


def test_observe_progress_sets_gauges() -> None:
    collector = TrainingMetricsCollector()
    collector.observe_progress(
        ProgressEvent(
            percentage=42.5,
            status=ProgressStatus.TRAINING,
            session_id="s1",
            model_type="gesture",
            model_progress=85.0,
            model_status=ProgressStatus.TRAINING,
        )
    )

    payload, content_type = collector.render_latest()

    assert "text/plain" in content_type
    assert b"arstudio_training_progress_percent 42.5" in payload
    assert b'arstudio_model_progress_percent{model_type="gesture"} 85.0' in payload


def test_blank_labels_fall_back_to_unknown() -> None:
    collector = TrainingMetricsCollector()
    collector.record_teardown_warning(step="  ")

    assert b'arstudio_teardown_warnings_total{step="unknown"} 1.0' in collector.render_latest()[0]


def test_estimate_remaining_time() -> None:
    assert estimate_remaining_time(100.0, tick_seconds=0.3, max_step=5.0) == "0s"
    assert estimate_remaining_time(50.0, tick_seconds=0.3, max_step=5.0) == "~6s"
    assert estimate_remaining_time(0.0, tick_seconds=0.3, max_step=0.0) == "unknown"
    assert estimate_remaining_time(0.0, tick_seconds=3.0, max_step=5.0) == "~2m"
