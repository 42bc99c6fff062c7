"""Simulated collaborator behavior tests."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import numpy as np
import pytest

from arstudio.schemas.training import default_training_config
from arstudio.services.data_collector import DataCollector
from arstudio.services.deployment_manager import DeploymentManager
from arstudio.services.model_trainer import ModelTrainer
from arstudio.services.training_service import SessionRecord
from arstudio.services.validation_engine import ValidationEngine


def _session(epochs: int = 3) -> SessionRecord:
    config = default_training_config()
    config["training"]["epochs"] = epochs
    return SessionRecord(id="session_test", start_time=datetime.now(timezone.utc), config=config)


def test_data_collector_samples_configured_sensors() -> None:
    collector = DataCollector(seed=3)

    async def scenario() -> dict:
        await collector.begin_data_collection(default_training_config())
        snapshot = collector.get_collected_data()
        await collector.end_data_collection()
        return snapshot

    snapshot = asyncio.run(scenario())

    assert snapshot["is_collecting"] is True
    assert snapshot["samples"]["environmental"] == 0
    assert all(snapshot["samples"][sensor] > 0 for sensor in ("camera", "imu", "eyeTracking", "handTracking"))
    assert snapshot["total_samples"] == sum(snapshot["samples"].values())
    assert collector.is_collecting is False


def test_data_collector_same_seed_same_samples() -> None:
    async def collect(seed: int) -> dict:
        collector = DataCollector(seed=seed)
        await collector.begin_data_collection(default_training_config())
        return collector.get_collected_data()["samples"]

    assert asyncio.run(collect(5)) == asyncio.run(collect(5))


def test_data_collector_rejects_double_start_and_unknown_sensors() -> None:
    collector = DataCollector(seed=1)

    async def scenario() -> None:
        with pytest.raises(ValueError, match="lidar"):
            await collector.begin_data_collection({"dataCollection": {"sensors": ["lidar"]}})
        assert collector.is_collecting is False

        await collector.begin_data_collection(default_training_config())
        with pytest.raises(RuntimeError):
            await collector.begin_data_collection(default_training_config())

    asyncio.run(scenario())


def test_preprocess_normalizes_columns_and_drops_non_finite_rows() -> None:
    collector = DataCollector()
    samples = [[0.0, 5.0], [10.0, 5.0], [float("nan"), 1.0], [5.0, 5.0]]

    features = asyncio.run(collector.preprocess_samples(samples))

    assert features.shape == (3, 2)
    np.testing.assert_allclose(features[:, 0], [0.0, 1.0, 0.5])
    np.testing.assert_allclose(features[:, 1], [0.0, 0.0, 0.0])


def test_preprocess_rejects_empty_input() -> None:
    with pytest.raises(ValueError):
        asyncio.run(DataCollector().preprocess_samples([]))


def test_model_trainer_runs_epochs_until_stopped() -> None:
    trainer = ModelTrainer(epoch_delay=0.001, seed=2)

    async def scenario() -> int:
        await trainer.begin_training(_session(epochs=3))
        with pytest.raises(RuntimeError):
            await trainer.begin_training(_session())
        await asyncio.sleep(0.05)
        completed = trainer.completed_epochs
        await trainer.end_training()
        return completed

    assert asyncio.run(scenario()) == 3
    assert trainer.is_training is False


def test_model_trainer_rejects_zero_epochs() -> None:
    trainer = ModelTrainer(epoch_delay=0.001)

    with pytest.raises(ValueError):
        asyncio.run(trainer.begin_training(_session(epochs=0)))
    assert trainer.is_training is False


def test_train_model_reports_bounded_scores() -> None:
    trainer = ModelTrainer(seed=4)
    features = np.random.default_rng(0).random((40, 6), dtype=np.float32)

    model = asyncio.run(trainer.train_model("eyeTracking", "gaze", features))

    assert model["type"] == "eyeTracking"
    assert model["num_samples"] == 40
    assert model["num_features"] == 6
    assert 0.0 <= model["confidence"] <= model["accuracy"] <= 0.99


def test_validation_engine_applies_thresholds() -> None:
    engine = ValidationEngine()
    model = {"id": "m1", "accuracy": 0.9, "confidence": 0.7}

    result = asyncio.run(engine.validate_model(model, default_training_config()))

    assert result["is_valid"] is False
    assert len(result["errors"]) == 1
    assert "confidence" in result["errors"][0]
    assert engine.history == [result]


def test_deployment_manager_versions_models() -> None:
    manager = DeploymentManager()
    model = {"id": "gesture_pinch", "name": "pinch", "type": "gesture", "accuracy": 0.9}

    async def scenario() -> list[dict]:
        await manager.deploy_model(model)
        await manager.deploy_model(model)
        return await manager.get_deployed_models()

    deployed = asyncio.run(scenario())

    assert [item["version"] for item in deployed] == [1, 2]
    assert [item["active"] for item in deployed] == [False, True]


def test_deployment_without_version_control_replaces_previous() -> None:
    manager = DeploymentManager()
    model = {"id": "behavior_pace", "name": "pace", "type": "behavior", "accuracy": 0.9}

    async def scenario() -> list[dict]:
        await manager.deploy_model(model)
        await manager.deploy_model(model, version_control=False)
        return await manager.get_deployed_models()

    deployed = asyncio.run(scenario())

    assert len(deployed) == 1
    assert deployed[0]["version"] == 1
    assert deployed[0]["active"] is True
