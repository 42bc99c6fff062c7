"""Mock deployment registry for validated models."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import structlog

logger = structlog.get_logger(__name__)


class DeploymentManager:
    """Keeps the list of deployed models; one active version per model name."""

    def __init__(self) -> None:
        self.deployed_models: list[dict[str, Any]] = []

    async def deploy_model(self, model: dict[str, Any], *, version_control: bool = True) -> dict[str, Any]:
        """Deploy ``model``; without version control earlier versions are dropped."""
        name = str(model.get("name") or "default")
        model_type = str(model.get("type") or "generic")

        if not version_control:
            self.deployed_models = [
                item for item in self.deployed_models if not (item["name"] == name and item["type"] == model_type)
            ]
        for item in self.deployed_models:
            if item["name"] == name and item["type"] == model_type:
                item["active"] = False

        version = 1 + sum(1 for item in self.deployed_models if item["name"] == name and item["type"] == model_type)
        deployed = {
            "model_id": model.get("id") or f"{model_type}_{name}",
            "name": name,
            "type": model_type,
            "version": version,
            "accuracy": float(model.get("accuracy", 0.0)),
            "deployed_at": datetime.now(timezone.utc).isoformat(),
            "active": True,
        }
        self.deployed_models.append(deployed)
        logger.info("model_deployed", model_id=deployed["model_id"], version=version)
        return deployed

    async def get_deployed_models(self) -> list[dict[str, Any]]:
        return [dict(item) for item in self.deployed_models]

    async def cleanup(self) -> None:
        self.deployed_models = []
        logger.info("deployment_manager_cleanup_completed")
