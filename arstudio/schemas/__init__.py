"""Pydantic schema exports for API contracts."""

from __future__ import annotations

from arstudio.schemas.training import (
    CustomModelRequest,
    DataCollectionConfig,
    DeploymentConfig,
    ModelProgressItem,
    TrainingConfigPatch,
    TrainingParams,
    TrainingProgress,
    TrainingSession,
    TrainingSessionCreate,
    ValidationConfig,
)

__all__ = [
    "CustomModelRequest",
    "DataCollectionConfig",
    "DeploymentConfig",
    "ModelProgressItem",
    "TrainingConfigPatch",
    "TrainingParams",
    "TrainingProgress",
    "TrainingSession",
    "TrainingSessionCreate",
    "ValidationConfig",
]
