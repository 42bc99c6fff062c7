"""Simulated sensor data collection for training sessions."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import numpy as np
import structlog

from arstudio.schemas.training import KNOWN_SENSORS

logger = structlog.get_logger(__name__)


class DataCollector:
    """
    Collect mock camera / IMU / eye / hand tracking samples.

    Sample counts are drawn once per sensor when collection starts, scaled by
    the configured sample rate, so the same seed always yields the same data.
    """

    def __init__(self, *, seed: int | None = None) -> None:
        self._rng = np.random.default_rng(seed)
        self.is_collecting = False
        self.config: dict[str, Any] = {}
        self.collected_data: dict[str, int] = {sensor: 0 for sensor in KNOWN_SENSORS}
        self.quality_metrics: dict[str, float] = {}
        self._started_at: datetime | None = None
        self._stopped_at: datetime | None = None

    async def begin_data_collection(self, config: dict[str, Any]) -> None:
        """Start capturing from every configured sensor."""
        if self.is_collecting:
            raise RuntimeError("Data collection already in progress")

        collection = dict(config.get("dataCollection") or {})
        sensors = list(collection.get("sensors") or [])
        unknown = [name for name in sensors if name not in KNOWN_SENSORS]
        if unknown:
            raise ValueError(f"Unsupported sensors: {', '.join(unknown)}")

        sample_rate = int(collection.get("sampleRate", 30))
        threshold = float(collection.get("qualityThreshold", 0.8))

        self.clear_collected_data()
        self.config = collection
        self.is_collecting = True
        self._started_at = datetime.now(timezone.utc)

        for sensor in sensors:
            # Roughly one second of buffered samples per sensor at start-up.
            self.collected_data[sensor] = int(self._rng.poisson(max(1, sample_rate)))
            quality = float(np.clip(self._rng.normal(0.9, 0.05), 0.0, 1.0))
            self.quality_metrics[sensor] = quality
            if quality < threshold:
                logger.warning(
                    "sensor_quality_below_threshold",
                    sensor=sensor,
                    quality=round(quality, 3),
                    threshold=threshold,
                )

        logger.info("data_collection_started", sensors=sensors, sample_rate=sample_rate)

    async def end_data_collection(self) -> None:
        """Stop all sensor streams; a no-op when nothing is being collected."""
        if not self.is_collecting:
            return
        self.is_collecting = False
        self._stopped_at = datetime.now(timezone.utc)
        logger.info("data_collection_stopped", total_samples=self.total_samples())

    async def preprocess_samples(self, samples: list[list[float]]) -> np.ndarray:
        """Drop non-finite rows and min-max normalize each feature column."""
        if not samples:
            raise ValueError("No samples to preprocess")
        width = len(samples[0])
        if width == 0 or any(len(row) != width for row in samples):
            raise ValueError("Samples must be non-empty rows of equal length")

        data = np.asarray(samples, dtype=np.float32)
        data = data[np.isfinite(data).all(axis=1)]
        if data.size == 0:
            raise ValueError("All samples were rejected by the quality filter")

        lo = data.min(axis=0)
        span = data.max(axis=0) - lo
        span[span == 0] = 1.0
        return (data - lo) / span

    def total_samples(self) -> int:
        return int(sum(self.collected_data.values()))

    def collection_duration(self) -> float:
        """Seconds spent collecting, up to now while collection is running."""
        if self._started_at is None:
            return 0.0
        end = self._stopped_at if not self.is_collecting and self._stopped_at else datetime.now(timezone.utc)
        return max(0.0, (end - self._started_at).total_seconds())

    def get_collected_data(self) -> dict[str, Any]:
        return {
            "samples": dict(self.collected_data),
            "total_samples": self.total_samples(),
            "quality": dict(self.quality_metrics),
            "duration_seconds": self.collection_duration(),
            "is_collecting": self.is_collecting,
        }

    def clear_collected_data(self) -> None:
        self.collected_data = {sensor: 0 for sensor in KNOWN_SENSORS}
        self.quality_metrics = {}
        self._started_at = None
        self._stopped_at = None

    async def cleanup(self) -> None:
        await self.end_data_collection()
        self.clear_collected_data()
        logger.info("data_collector_cleanup_completed")
