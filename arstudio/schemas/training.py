"""Pydantic schemas and default configuration for training orchestration."""

from __future__ import annotations

import copy
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

CONFIG_GROUPS = ("dataCollection", "training", "validation", "deployment")
KNOWN_SENSORS = ("camera", "imu", "eyeTracking", "handTracking", "environmental")


def default_training_config() -> dict[str, Any]:
    """Return a fresh copy of the default training configuration."""
    return {
        "dataCollection": {
            "sampleRate": 30,  # Hz
            "duration": 60,  # seconds
            "sensors": ["camera", "imu", "eyeTracking", "handTracking"],
            "qualityThreshold": 0.8,
        },
        "training": {
            "epochs": 50,
            "batchSize": 32,
            "learningRate": 0.001,
            "validationSplit": 0.2,
            "earlyStopping": True,
        },
        "validation": {
            "accuracyThreshold": 0.85,
            "confidenceThreshold": 0.8,
            "crossValidation": True,
        },
        "deployment": {
            "autoDeploy": True,
            "versionControl": True,
            "rollbackOnFailure": True,
        },
    }


def merge_config(base: dict[str, Any], overrides: dict[str, Any] | None) -> dict[str, Any]:
    """
    Shallow merge per top-level key.

    A group present in ``overrides`` replaces the whole group from ``base``;
    unknown top-level keys are carried through untouched.
    """
    merged = copy.deepcopy(base)
    for key, value in (overrides or {}).items():
        merged[key] = copy.deepcopy(value)
    return merged


class DataCollectionConfig(BaseModel):
    """Sensor capture settings."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    sample_rate: int = Field(default=30, ge=1, le=1000, alias="sampleRate")
    duration: int = Field(default=60, ge=1, le=3600)
    sensors: list[str] = Field(default_factory=lambda: ["camera", "imu", "eyeTracking", "handTracking"])
    quality_threshold: float = Field(default=0.8, ge=0.0, le=1.0, alias="qualityThreshold")

    @field_validator("sensors")
    @classmethod
    def validate_sensors(cls, sensors: list[str]) -> list[str]:
        unknown = [name for name in sensors if name not in KNOWN_SENSORS]
        if unknown:
            raise ValueError(f"Unknown sensors: {', '.join(unknown)}")
        return sensors


class TrainingParams(BaseModel):
    """Hyperparameters for the simulated training loop."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    epochs: int = Field(default=50, ge=1, le=500)
    batch_size: int = Field(default=32, ge=1, le=4096, alias="batchSize")
    learning_rate: float = Field(default=0.001, gt=0, le=1, alias="learningRate")
    validation_split: float = Field(default=0.2, ge=0.0, lt=1.0, alias="validationSplit")
    early_stopping: bool = Field(default=True, alias="earlyStopping")


class ValidationConfig(BaseModel):
    """Acceptance thresholds for trained models."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    accuracy_threshold: float = Field(default=0.85, ge=0.0, le=1.0, alias="accuracyThreshold")
    confidence_threshold: float = Field(default=0.8, ge=0.0, le=1.0, alias="confidenceThreshold")
    cross_validation: bool = Field(default=True, alias="crossValidation")


class DeploymentConfig(BaseModel):
    """Deployment behavior after successful validation."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    auto_deploy: bool = Field(default=True, alias="autoDeploy")
    version_control: bool = Field(default=True, alias="versionControl")
    rollback_on_failure: bool = Field(default=True, alias="rollbackOnFailure")


class TrainingConfigPatch(BaseModel):
    """Partial training configuration as sent by the dashboard."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    data_collection: DataCollectionConfig | None = Field(default=None, alias="dataCollection")
    training: TrainingParams | None = None
    validation: ValidationConfig | None = None
    deployment: DeploymentConfig | None = None

    def to_overrides(self) -> dict[str, Any]:
        """Return only the groups the caller sent, keyed as the dashboard keys them."""
        return self.model_dump(by_alias=True, exclude_unset=True)


class TrainingSessionCreate(BaseModel):
    """Payload for starting a training session."""

    model_config = ConfigDict(protected_namespaces=())

    config: TrainingConfigPatch = Field(default_factory=TrainingConfigPatch)
    model_types: list[str] | None = Field(default=None, min_length=1)

    @field_validator("model_types")
    @classmethod
    def validate_model_types(cls, model_types: list[str] | None) -> list[str] | None:
        if model_types is None:
            return None
        cleaned = [name.strip() for name in model_types]
        if any(not name for name in cleaned):
            raise ValueError("model_types must not contain empty names")
        if len(set(cleaned)) != len(cleaned):
            raise ValueError("model_types must be unique")
        return cleaned


class TrainingSession(BaseModel):
    """Training session state returned by API."""

    model_config = ConfigDict(protected_namespaces=())

    id: str
    status: Literal["idle", "initializing", "training", "completed", "failed"]
    config: dict[str, Any]
    model_types: list[str] = Field(default_factory=list)
    start_time: datetime
    end_time: datetime | None = None
    error_message: str | None = None


class ModelProgressItem(BaseModel):
    """Progress of one tracked sub-model."""

    name: str
    percentage: float
    status: Literal["idle", "training", "completed"]


class TrainingProgress(BaseModel):
    """Aggregate progress payload for polling clients."""

    percentage: float
    status: Literal["idle", "training", "completed"]
    session_id: str | None = None
    models: list[ModelProgressItem] = Field(default_factory=list)
    estimated_remaining: str


class CustomModelRequest(BaseModel):
    """Payload for training and deploying one custom model."""

    model_config = ConfigDict(protected_namespaces=())

    model_type: Literal["gesture", "eyeTracking", "behavior"]
    name: str = Field(min_length=1, max_length=64)
    samples: list[list[float]] = Field(min_length=1)
