"""Service layer for the training session lifecycle."""

from __future__ import annotations

import copy
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Protocol

import numpy as np
import structlog

from arstudio.config import Settings
from arstudio.ml.metrics import TrainingMetricsCollector
from arstudio.ml.progress import ProgressAggregator, ProgressSnapshot, RandomIncrements
from arstudio.schemas.training import default_training_config, merge_config
from arstudio.storage.base import SessionStore, SettingsStore

logger = structlog.get_logger(__name__)

CONFIG_SETTINGS_KEY = "ai_training_config"
DEFAULT_MODEL_TYPES = ("gesture", "objectDetection", "voiceRecognition")


class SessionStatus(str, Enum):
    """Lifecycle states of a training session."""

    IDLE = "idle"
    INITIALIZING = "initializing"
    TRAINING = "training"
    COMPLETED = "completed"
    FAILED = "failed"


ACTIVE_STATUSES = frozenset({SessionStatus.INITIALIZING, SessionStatus.TRAINING})


class AlreadyActiveError(RuntimeError):
    """Raised when a session is started while another one is active."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Training session {session_id} is already in progress")
        self.session_id = session_id


class InitializationError(RuntimeError):
    """Raised when a collaborator fails while a session is starting."""

    def __init__(self, session_id: str, step: str, cause: BaseException) -> None:
        super().__init__(f"Failed to start training session {session_id} during {step}: {cause}")
        self.session_id = session_id
        self.step = step


class TeardownWarning(UserWarning):
    """A collaborator failed while a session was being stopped."""

    def __init__(self, session_id: str, step: str, cause: BaseException) -> None:
        super().__init__(f"{step} failed for session {session_id}: {cause}")
        self.session_id = session_id
        self.step = step
        self.cause = cause


class DataCollectionCapability(Protocol):
    async def begin_data_collection(self, config: dict[str, Any]) -> None: ...

    async def end_data_collection(self) -> None: ...

    async def preprocess_samples(self, samples: list[list[float]]) -> np.ndarray: ...

    async def cleanup(self) -> None: ...


class TrainingCapability(Protocol):
    async def begin_training(self, session: "SessionRecord") -> None: ...

    async def end_training(self) -> None: ...

    async def train_model(self, model_type: str, name: str, features: np.ndarray) -> dict[str, Any]: ...

    async def cleanup(self) -> None: ...


class ValidationCapability(Protocol):
    async def validate_model(self, model: dict[str, Any], config: dict[str, Any]) -> dict[str, Any]: ...

    async def cleanup(self) -> None: ...


class DeploymentCapability(Protocol):
    async def deploy_model(self, model: dict[str, Any], *, version_control: bool = True) -> dict[str, Any]: ...

    async def get_deployed_models(self) -> list[dict[str, Any]]: ...

    async def cleanup(self) -> None: ...


@dataclass
class SessionRecord:
    """One end-to-end training attempt."""

    id: str
    start_time: datetime
    config: dict[str, Any]
    status: SessionStatus = SessionStatus.INITIALIZING
    model_types: list[str] = field(default_factory=list)
    end_time: datetime | None = None
    error_message: str | None = None

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "status": self.status.value,
            "config": copy.deepcopy(self.config),
            "model_types": list(self.model_types),
            "start_time": self.start_time,
            "end_time": self.end_time,
            "error_message": self.error_message,
        }


def generate_session_id() -> str:
    """Millisecond timestamp plus a random suffix."""
    return f"session_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


class SessionCoordinator:
    """
    Single owner of the active training session.

    ``start`` merges configuration, brings up data collection and training,
    then arms one progress schedule per sub-model. ``stop`` tears everything
    down best-effort, marks the session completed and persists it.
    """

    def __init__(
        self,
        *,
        data_collection: DataCollectionCapability,
        training: TrainingCapability,
        validation: ValidationCapability,
        deployment: DeploymentCapability,
        aggregator: ProgressAggregator,
        session_store: SessionStore,
        settings_store: SettingsStore | None = None,
        metrics: TrainingMetricsCollector | None = None,
        default_model_types: list[str] | tuple[str, ...] = DEFAULT_MODEL_TYPES,
        default_config: dict[str, Any] | None = None,
    ) -> None:
        self._data_collection = data_collection
        self._training = training
        self._validation = validation
        self._deployment = deployment
        self._aggregator = aggregator
        self._session_store = session_store
        self._settings_store = settings_store
        self._metrics = metrics

        self.default_model_types = self._normalize_model_types(default_model_types)
        self._default_config = copy.deepcopy(default_config) if default_config else default_training_config()
        self._session: SessionRecord | None = None
        self._stopping: SessionRecord | None = None
        self.last_teardown_warnings: list[TeardownWarning] = []

    @property
    def aggregator(self) -> ProgressAggregator:
        return self._aggregator

    @property
    def current_session(self) -> SessionRecord | None:
        return self._session

    @staticmethod
    def _normalize_model_types(model_types: list[str] | tuple[str, ...]) -> list[str]:
        names = [str(name).strip() for name in model_types]
        if not names or any(not name for name in names):
            raise ValueError("model_types must be a non-empty list of non-empty names")
        if len(set(names)) != len(names):
            raise ValueError("model_types must be unique")
        return names

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def get_config(self) -> dict[str, Any]:
        """Return a copy of the defaults used by the next ``start``."""
        return copy.deepcopy(self._default_config)

    def update_config(self, partial: dict[str, Any]) -> dict[str, Any]:
        """Merge ``partial`` into the defaults; an active session keeps its own copy."""
        self._default_config = merge_config(self._default_config, partial)
        if self._settings_store is not None:
            try:
                self._settings_store.save(CONFIG_SETTINGS_KEY, self._default_config)
            except Exception as exc:  # noqa: BLE001
                logger.error("training_config_save_failed", error=str(exc), exc_info=True)
        logger.info("training_config_updated", groups=sorted(partial))
        return self.get_config()

    def load_saved_config(self) -> dict[str, Any]:
        """Merge persisted overrides into the defaults, if any were saved."""
        if self._settings_store is None:
            return self.get_config()
        try:
            saved = self._settings_store.load(CONFIG_SETTINGS_KEY)
        except Exception as exc:  # noqa: BLE001
            logger.error("training_config_load_failed", error=str(exc), exc_info=True)
            return self.get_config()
        if saved:
            self._default_config = merge_config(self._default_config, saved)
            logger.info("training_config_loaded", groups=sorted(saved))
        return self.get_config()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def current_status(self) -> SessionStatus:
        """Status of the active session, idle when there is none."""
        if self._session is None:
            return SessionStatus.IDLE
        return self._session.status

    def is_active(self) -> bool:
        return self._session is not None and self._session.is_active

    async def start(
        self,
        override_config: dict[str, Any] | None = None,
        model_types: list[str] | None = None,
    ) -> str:
        """Start a new session and return its id."""
        if self._session is not None and self._session.is_active:
            raise AlreadyActiveError(self._session.id)

        names = self._normalize_model_types(model_types) if model_types is not None else list(self.default_model_types)
        session = SessionRecord(
            id=generate_session_id(),
            start_time=datetime.now(timezone.utc),
            config=merge_config(self._default_config, override_config),
            status=SessionStatus.INITIALIZING,
            model_types=names,
        )
        # Claimed before the first await so a concurrent start sees it.
        self._session = session
        self.last_teardown_warnings = []
        logger.info("training_session_starting", session_id=session.id, model_types=names)

        step = "begin_data_collection"
        collection_started = False
        training_started = False
        try:
            await self._data_collection.begin_data_collection(session.config)
            collection_started = True
            if not self._start_superseded(session):
                step = "begin_training"
                await self._training.begin_training(session)
                training_started = True
        except Exception as exc:
            await self._fail_start(session, step, exc, collection_started=collection_started)
            raise InitializationError(session.id, step, exc) from exc

        if self._start_superseded(session):
            # stop() ran while a collaborator was starting; undo what came up after its teardown.
            logger.warning("training_session_start_aborted", session_id=session.id, step=step)
            await self._teardown(
                session,
                collection_started=collection_started,
                training_started=training_started,
            )
            cause = RuntimeError("session was stopped during initialization")
            raise InitializationError(session.id, step, cause)

        self._aggregator.start_tracking(session.id)
        for name in names:
            self._aggregator.start_model_tracking(name)

        session.status = SessionStatus.TRAINING
        logger.info("training_session_started", session_id=session.id)
        return session.id

    def _start_superseded(self, session: SessionRecord) -> bool:
        return self._session is not session or self._stopping is session

    async def _teardown(self, session: SessionRecord, *, collection_started: bool, training_started: bool) -> None:
        if collection_started:
            await self._best_effort(session, "end_data_collection", self._data_collection.end_data_collection)
        if training_started:
            await self._best_effort(session, "end_training", self._training.end_training)

    async def _fail_start(
        self,
        session: SessionRecord,
        step: str,
        exc: BaseException,
        *,
        collection_started: bool,
    ) -> None:
        logger.error("training_session_start_failed", session_id=session.id, step=step, error=str(exc))
        if self._start_superseded(session):
            # stop() owns finalizing this session.
            await self._teardown(session, collection_started=collection_started, training_started=False)
            return

        session.status = SessionStatus.FAILED
        session.error_message = f"{step} failed: {exc}"
        session.end_time = datetime.now(timezone.utc)

        await self._teardown(session, collection_started=collection_started, training_started=True)
        self._persist(session)

        if self._metrics is not None:
            self._metrics.record_session(outcome=SessionStatus.FAILED.value)
        if self._session is session:
            self._session = None

    async def stop(self) -> SessionRecord | None:
        """Stop the active session; returns it finalized, or None when idle."""
        session = self._session
        if session is None or not session.is_active or self._stopping is session:
            return None

        # Claimed before the first await so a concurrent stop takes the no-op branch.
        self._stopping = session
        try:
            logger.info("training_session_stopping", session_id=session.id)
            self.last_teardown_warnings = []
            await self._teardown(session, collection_started=True, training_started=True)

            self._aggregator.reset_progress()

            session.status = SessionStatus.COMPLETED
            session.end_time = datetime.now(timezone.utc)
            self._persist(session)

            if self._metrics is not None:
                self._metrics.record_session(outcome=SessionStatus.COMPLETED.value)
            if self._session is session:
                self._session = None
        finally:
            self._stopping = None

        logger.info(
            "training_session_completed",
            session_id=session.id,
            teardown_warnings=len(self.last_teardown_warnings),
        )
        return session

    async def _best_effort(self, session: SessionRecord, step: str, call) -> None:
        try:
            await call()
        except Exception as exc:  # noqa: BLE001
            self._record_teardown_warning(session, step, exc)

    def _persist(self, session: SessionRecord) -> None:
        try:
            self._session_store.persist(session)
        except Exception as exc:  # noqa: BLE001
            self._record_teardown_warning(session, "persist", exc)

    def _record_teardown_warning(self, session: SessionRecord, step: str, exc: BaseException) -> None:
        warning = TeardownWarning(session.id, step, exc)
        self.last_teardown_warnings.append(warning)
        if self._metrics is not None:
            self._metrics.record_teardown_warning(step=step)
        logger.warning("training_teardown_failed", session_id=session.id, step=step, error=str(exc))

    def get_training_progress(self) -> ProgressSnapshot:
        return self._aggregator.get_current_progress()

    # ------------------------------------------------------------------
    # Custom models
    # ------------------------------------------------------------------

    async def train_custom_model(self, model_type: str, name: str, samples: list[list[float]]) -> dict[str, Any]:
        """Preprocess, train, validate and (optionally) deploy one custom model."""
        config = self.get_config()
        deployment = dict(config.get("deployment") or {})
        logger.info("custom_model_training_started", model_type=model_type, name=name)
        try:
            features = await self._data_collection.preprocess_samples(samples)
            model = await self._training.train_model(model_type, name, features)
            validation = await self._validation.validate_model(model, config)
            if not validation["is_valid"]:
                logger.warning("custom_model_validation_failed", model_id=model["id"], errors=validation["errors"])
                return {"success": False, "model": model, "validation": validation, "errors": validation["errors"]}

            deployed = None
            if deployment.get("autoDeploy", True):
                deployed = await self._deployment.deploy_model(
                    model,
                    version_control=bool(deployment.get("versionControl", True)),
                )
            return {"success": True, "model": model, "validation": validation, "deployment": deployed}
        except Exception as exc:  # noqa: BLE001
            logger.error("custom_model_training_failed", model_type=model_type, name=name, error=str(exc))
            return {"success": False, "error": str(exc)}

    async def get_available_models(self) -> list[dict[str, Any]]:
        return await self._deployment.get_deployed_models()

    async def cleanup(self) -> None:
        """Stop any active session and release every collaborator."""
        if self.is_active():
            await self.stop()

        for label, collaborator in (
            ("data_collection", self._data_collection),
            ("training", self._training),
            ("validation", self._validation),
            ("deployment", self._deployment),
        ):
            try:
                await collaborator.cleanup()
            except Exception as exc:  # noqa: BLE001
                logger.warning("collaborator_cleanup_failed", collaborator=label, error=str(exc))
        await self._aggregator.cleanup()
        logger.info("session_coordinator_cleanup_completed")


def build_coordinator(
    settings: Settings,
    *,
    session_store: SessionStore,
    settings_store: SettingsStore | None = None,
    metrics: TrainingMetricsCollector | None = None,
) -> SessionCoordinator:
    """Wire the simulated collaborators into a coordinator from settings."""
    from arstudio.services.data_collector import DataCollector
    from arstudio.services.deployment_manager import DeploymentManager
    from arstudio.services.model_trainer import ModelTrainer
    from arstudio.services.validation_engine import ValidationEngine

    aggregator = ProgressAggregator(
        tick_interval=settings.progress_tick_seconds,
        max_step=settings.progress_max_step,
        increment_source=RandomIncrements(settings.progress_seed),
    )
    if metrics is not None:
        aggregator.subscribe(metrics.observe_progress)

    return SessionCoordinator(
        data_collection=DataCollector(seed=settings.data_collection_seed),
        training=ModelTrainer(epoch_delay=settings.training_epoch_delay_seconds, seed=settings.data_collection_seed),
        validation=ValidationEngine(),
        deployment=DeploymentManager(),
        aggregator=aggregator,
        session_store=session_store,
        settings_store=settings_store,
        metrics=metrics,
        default_model_types=settings.tracked_model_type_list,
    )
