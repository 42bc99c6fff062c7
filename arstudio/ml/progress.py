"""Per-model training progress tracking with an aggregate view."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Callable

import numpy as np
import structlog

logger = structlog.get_logger(__name__)

DEFAULT_TICK_SECONDS = 0.3
DEFAULT_MAX_STEP = 5.0
MAX_PERCENTAGE = 100.0


class ProgressStatus(str, Enum):
    """Progress states shared by sub-models and the aggregate."""

    IDLE = "idle"
    TRAINING = "training"
    COMPLETED = "completed"


@dataclass
class ModelProgress:
    """Progress entry for one tracked sub-model."""

    name: str
    percentage: float = 0.0
    status: ProgressStatus = ProgressStatus.IDLE


@dataclass(frozen=True)
class ProgressSnapshot:
    """Session-level progress as last computed."""

    percentage: float = 0.0
    status: ProgressStatus = ProgressStatus.IDLE
    session_id: str | None = None

    def to_dict(self) -> dict:
        """Serialize with the dashboard's camelCase keys."""
        return {
            "percentage": self.percentage,
            "status": self.status.value,
            "sessionId": self.session_id,
        }


@dataclass(frozen=True)
class ProgressEvent:
    """Payload delivered to progress observers."""

    percentage: float
    status: ProgressStatus
    session_id: str | None = None
    model_type: str | None = None
    model_progress: float | None = None
    model_status: ProgressStatus | None = None

    def to_dict(self) -> dict:
        """Serialize with camelCase keys, omitting unset model fields."""
        payload: dict = {
            "percentage": self.percentage,
            "status": self.status.value,
            "sessionId": self.session_id,
        }
        if self.model_type is not None:
            payload["modelType"] = self.model_type
            payload["modelProgress"] = self.model_progress
            payload["modelStatus"] = self.model_status.value if self.model_status else None
        return payload


ProgressListener = Callable[[ProgressEvent], None]
IncrementSource = Callable[[float], float]


class RandomIncrements:
    """Uniform random increments in ``[0, max_step]`` from a seedable generator."""

    def __init__(self, seed: int | None = None) -> None:
        self._rng = np.random.default_rng(seed)

    def __call__(self, max_step: float) -> float:
        return float(self._rng.uniform(0.0, max_step))


class ProgressAggregator:
    """
    Track independent progress per named sub-model and report the mean.

    Each tracked model owns one asyncio task that ticks every
    ``tick_interval`` seconds. Ticks of one model never overlap; ticks of
    different models interleave in any order. Every tick recomputes the
    aggregate from the latest recorded percentages before notifying observers.

    ``stop_tracking`` only resets the session-level state; per-model schedules
    keep running until ``stop_model_tracking`` or ``reset_progress``.
    """

    def __init__(
        self,
        *,
        tick_interval: float = DEFAULT_TICK_SECONDS,
        max_step: float = DEFAULT_MAX_STEP,
        increment_source: IncrementSource | None = None,
        auto_advance: bool = True,
    ) -> None:
        if tick_interval <= 0:
            raise ValueError("tick_interval must be positive")
        if max_step < 0:
            raise ValueError("max_step must be non-negative")

        self.tick_interval = float(tick_interval)
        self.max_step = float(max_step)
        self.auto_advance = auto_advance
        self._increments: IncrementSource = increment_source or RandomIncrements()

        self._snapshot = ProgressSnapshot()
        self._tracking_active = False
        self._models: dict[str, ModelProgress] = {}
        self._tasks: dict[str, asyncio.Task] = {}

        # Single-slot observer kept for dashboard parity; ``subscribe`` adds more.
        self.on_progress_update: ProgressListener | None = None
        self._listeners: list[ProgressListener] = []
        self._dispatching = False
        self._pending: list[ProgressEvent] = []

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def subscribe(self, listener: ProgressListener) -> Callable[[], None]:
        """Register a listener and return a callable that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, event: ProgressEvent) -> None:
        # Events raised from inside a listener are queued and delivered after
        # the current dispatch so listeners always see them in order.
        self._pending.append(event)
        if self._dispatching:
            return

        self._dispatching = True
        try:
            while self._pending:
                current = self._pending.pop(0)
                targets = list(self._listeners)
                if self.on_progress_update is not None:
                    targets.insert(0, self.on_progress_update)
                for listener in targets:
                    try:
                        listener(current)
                    except Exception as exc:  # noqa: BLE001
                        logger.warning(
                            "progress_listener_failed",
                            model_type=current.model_type,
                            error=str(exc),
                            exc_info=True,
                        )
        finally:
            self._dispatching = False

    # ------------------------------------------------------------------
    # Session-level tracking
    # ------------------------------------------------------------------

    def start_tracking(self, session_id: str) -> None:
        """Begin a tracking session; per-model entries are left untouched."""
        self._tracking_active = True
        self._snapshot = ProgressSnapshot(
            percentage=0.0,
            status=ProgressStatus.TRAINING,
            session_id=session_id,
        )
        logger.info("progress_tracking_started", session_id=session_id)

    def stop_tracking(self) -> None:
        """Reset session-level progress without touching per-model schedules."""
        session_id = self._snapshot.session_id
        self._tracking_active = False
        self._snapshot = ProgressSnapshot()
        logger.info("progress_tracking_stopped", session_id=session_id)

    def reset_progress(self) -> None:
        """Stop session tracking and every per-model schedule."""
        self.stop_tracking()
        for name in list(self._models):
            self.stop_model_tracking(name)

    # ------------------------------------------------------------------
    # Per-model tracking
    # ------------------------------------------------------------------

    def start_model_tracking(self, name: str) -> None:
        """Create or re-arm the entry for ``name`` at 0% and schedule its ticks."""
        if not name:
            raise ValueError("model name must be a non-empty string")

        loop = asyncio.get_running_loop() if self.auto_advance else None
        self._cancel_schedule(name)
        entry = ModelProgress(name=name, percentage=0.0, status=ProgressStatus.TRAINING)
        self._models[name] = entry
        self._refresh_snapshot()

        if loop is not None:
            self._tasks[name] = loop.create_task(
                self._run_schedule(entry),
                name=f"progress:{name}",
            )
        logger.debug("model_tracking_started", model_type=name)

    def stop_model_tracking(self, name: str) -> None:
        """Cancel the schedule for ``name`` and reset its entry to idle."""
        self._cancel_schedule(name)
        if name in self._models:
            # A fresh object so any in-flight reference from the old schedule is stale.
            self._models[name] = ModelProgress(name=name)
            self._refresh_snapshot()
            logger.debug("model_tracking_stopped", model_type=name)

    def _cancel_schedule(self, name: str) -> None:
        task = self._tasks.pop(name, None)
        if task is not None and not task.done():
            task.cancel()

    async def _run_schedule(self, entry: ModelProgress) -> None:
        while self._models.get(entry.name) is entry and entry.status is ProgressStatus.TRAINING:
            await asyncio.sleep(self.tick_interval)
            if self._models.get(entry.name) is not entry:
                break
            self._tick(entry)

        if self._tasks.get(entry.name) is asyncio.current_task():
            self._tasks.pop(entry.name, None)

    def advance(self, name: str) -> ProgressEvent | None:
        """Run one tick for ``name``; returns the emitted event, if any."""
        entry = self._models.get(name)
        if entry is None or entry.status is not ProgressStatus.TRAINING:
            return None
        return self._tick(entry)

    def _tick(self, entry: ModelProgress) -> ProgressEvent | None:
        if entry.status is not ProgressStatus.TRAINING:
            return None

        step = max(0.0, float(self._increments(self.max_step)))
        entry.percentage = min(MAX_PERCENTAGE, entry.percentage + step)
        if entry.percentage >= MAX_PERCENTAGE:
            entry.percentage = MAX_PERCENTAGE
            entry.status = ProgressStatus.COMPLETED
            logger.info("model_training_completed", model_type=entry.name)

        self._refresh_snapshot()
        event = ProgressEvent(
            percentage=self._aggregate_percentage(),
            status=self._aggregate_status(),
            session_id=self._snapshot.session_id,
            model_type=entry.name,
            model_progress=entry.percentage,
            model_status=entry.status,
        )
        self._emit(event)
        return event

    # ------------------------------------------------------------------
    # Aggregation
    # ------------------------------------------------------------------

    def _tracked_entries(self) -> list[ModelProgress]:
        return [entry for entry in self._models.values() if entry.status is not ProgressStatus.IDLE]

    def _aggregate_percentage(self) -> float:
        tracked = self._tracked_entries()
        if not tracked:
            return 0.0
        return float(np.mean([entry.percentage for entry in tracked]))

    def _aggregate_status(self) -> ProgressStatus:
        if not self._tracking_active:
            return ProgressStatus.IDLE
        tracked = self._tracked_entries()
        if tracked and all(entry.status is ProgressStatus.COMPLETED for entry in tracked):
            return ProgressStatus.COMPLETED
        return ProgressStatus.TRAINING

    def _refresh_snapshot(self) -> None:
        if not self._tracking_active:
            return
        previous = self._snapshot.status
        self._snapshot = ProgressSnapshot(
            percentage=self._aggregate_percentage(),
            status=self._aggregate_status(),
            session_id=self._snapshot.session_id,
        )
        if previous is not ProgressStatus.COMPLETED and self._snapshot.status is ProgressStatus.COMPLETED:
            logger.info("progress_tracking_completed", session_id=self._snapshot.session_id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_progress(self, name: str) -> float:
        """Return the percentage for ``name`` or 0 when untracked."""
        entry = self._models.get(name)
        return entry.percentage if entry is not None else 0.0

    def get_current_progress(self) -> ProgressSnapshot:
        """Return the last computed session-level snapshot."""
        return self._snapshot

    def get_all_model_progress(self) -> dict[str, ModelProgress]:
        """Return copies of every known per-model entry."""
        return {
            name: ModelProgress(name=entry.name, percentage=entry.percentage, status=entry.status)
            for name, entry in self._models.items()
        }

    def scheduled_models(self) -> list[str]:
        """Names whose advancement schedule is still pending."""
        return [name for name, task in self._tasks.items() if not task.done()]

    async def cleanup(self) -> None:
        """Cancel every schedule and reset all progress."""
        tasks = [task for task in self._tasks.values() if not task.done()]
        self.reset_progress()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("progress_aggregator_cleanup_completed")
