"""Threshold-based validation of trained models."""

from __future__ import annotations

from typing import Any

import structlog

logger = structlog.get_logger(__name__)


class ValidationEngine:
    """Checks model accuracy and confidence against configured thresholds."""

    def __init__(self) -> None:
        self.history: list[dict[str, Any]] = []

    async def validate_model(self, model: dict[str, Any], config: dict[str, Any]) -> dict[str, Any]:
        validation = dict(config.get("validation") or {})
        accuracy_threshold = float(validation.get("accuracyThreshold", 0.85))
        confidence_threshold = float(validation.get("confidenceThreshold", 0.8))

        accuracy = float(model.get("accuracy", 0.0))
        confidence = float(model.get("confidence", 0.0))

        errors: list[str] = []
        if accuracy < accuracy_threshold:
            errors.append(f"accuracy {accuracy:.3f} below threshold {accuracy_threshold:.3f}")
        if confidence < confidence_threshold:
            errors.append(f"confidence {confidence:.3f} below threshold {confidence_threshold:.3f}")

        results = {
            "model_id": model.get("id"),
            "is_valid": not errors,
            "accuracy": accuracy,
            "confidence": confidence,
            "errors": errors,
        }
        self.history.append(results)
        logger.info("model_validated", model_id=model.get("id"), is_valid=results["is_valid"])
        return results

    async def cleanup(self) -> None:
        self.history.clear()
