"""Simulated model training loop and custom model fitting."""

from __future__ import annotations

import asyncio
import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

import numpy as np
import structlog

if TYPE_CHECKING:
    from arstudio.services.training_service import SessionRecord

logger = structlog.get_logger(__name__)


class ModelTrainer:
    """Runs a timed epoch loop per session and fits mock custom models."""

    def __init__(self, *, epoch_delay: float = 0.1, seed: int | None = None) -> None:
        self.epoch_delay = max(0.0, float(epoch_delay))
        self._rng = np.random.default_rng(seed)
        self.is_training = False
        self.current_session_id: str | None = None
        self.completed_epochs = 0
        self.total_epochs = 0
        self._loop_task: asyncio.Task | None = None
        self.models: dict[str, dict[str, Any]] = {}

    async def begin_training(self, session: "SessionRecord") -> None:
        """Start the epoch loop for ``session`` in the background."""
        if self.is_training:
            raise RuntimeError("Training already in progress")

        params = dict(session.config.get("training") or {})
        epochs = int(params.get("epochs", 50))
        if epochs < 1:
            raise ValueError("training.epochs must be at least 1")

        self.is_training = True
        self.current_session_id = session.id
        self.completed_epochs = 0
        self.total_epochs = epochs
        self._loop_task = asyncio.get_running_loop().create_task(
            self._run_training_loop(epochs),
            name=f"training-loop:{session.id}",
        )
        logger.info("model_training_started", session_id=session.id, epochs=epochs)

    async def _run_training_loop(self, epochs: int) -> None:
        for epoch in range(epochs):
            if not self.is_training:
                break
            await asyncio.sleep(self.epoch_delay)
            self.completed_epochs = epoch + 1
            logger.debug("training_epoch_completed", epoch=self.completed_epochs, epochs=epochs)
        logger.info("training_loop_completed", epochs=self.completed_epochs)

    async def end_training(self) -> None:
        """Cancel the epoch loop; a no-op when idle."""
        if not self.is_training:
            return

        self.is_training = False
        task = self._loop_task
        self._loop_task = None
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        logger.info(
            "model_training_stopped",
            session_id=self.current_session_id,
            completed_epochs=self.completed_epochs,
        )
        self.current_session_id = None

    async def train_model(self, model_type: str, name: str, features: np.ndarray) -> dict[str, Any]:
        """Fit a mock model on preprocessed features."""
        if features.ndim != 2 or features.shape[0] == 0:
            raise ValueError("features must be a non-empty 2D array")

        # More samples nudge accuracy up; capped below 1.
        sample_bonus = min(0.08, 0.002 * features.shape[0])
        accuracy = float(np.clip(self._rng.normal(0.86, 0.03) + sample_bonus, 0.0, 0.99))
        confidence = float(np.clip(accuracy - abs(self._rng.normal(0.02, 0.01)), 0.0, 0.99))

        model = {
            "id": f"{model_type}_{name}_{uuid.uuid4().hex[:8]}",
            "name": name,
            "type": model_type,
            "accuracy": accuracy,
            "confidence": confidence,
            "num_samples": int(features.shape[0]),
            "num_features": int(features.shape[1]),
            "trained_at": datetime.now(timezone.utc).isoformat(),
        }
        self.models[model["id"]] = model
        logger.info("custom_model_trained", model_id=model["id"], accuracy=round(accuracy, 3))
        return model

    async def cleanup(self) -> None:
        await self.end_training()
        self.models.clear()
        logger.info("model_trainer_cleanup_completed")
