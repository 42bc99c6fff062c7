"""REST and WebSocket endpoints for training session orchestration."""

from __future__ import annotations

import asyncio
from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect, status

from arstudio.api.deps import (
    acquire_ws_slot,
    enforce_write_rate_limit,
    get_app_settings,
    get_coordinator,
    get_session_store,
    release_ws_slot,
)
from arstudio.config import Settings, get_settings
from arstudio.ml.progress import ProgressEvent
from arstudio.ml.utils import estimate_remaining_time
from arstudio.schemas.training import (
    CustomModelRequest,
    ModelProgressItem,
    TrainingConfigPatch,
    TrainingProgress,
    TrainingSession,
    TrainingSessionCreate,
)
from arstudio.services.training_service import (
    AlreadyActiveError,
    InitializationError,
    SessionCoordinator,
    SessionRecord,
)
from arstudio.storage.base import SessionStore

logger = structlog.get_logger(__name__)

router = APIRouter()

LIVE_QUEUE_SIZE = 256


def _serialize_session(session: SessionRecord) -> TrainingSession:
    """Convert a session record into the response schema."""
    return TrainingSession(**session.to_dict())


@router.post(
    "/sessions",
    response_model=TrainingSession,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(enforce_write_rate_limit)],
)
async def start_training_session(
    payload: TrainingSessionCreate,
    coordinator: SessionCoordinator = Depends(get_coordinator),
) -> TrainingSession:
    """Start a training session with config overrides merged over the defaults."""
    try:
        await coordinator.start(payload.config.to_overrides(), model_types=payload.model_types)
    except AlreadyActiveError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except InitializationError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc

    session = coordinator.current_session
    if session is None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Session stopped during start-up")
    return _serialize_session(session)


@router.post("/sessions/stop", dependencies=[Depends(enforce_write_rate_limit)])
async def stop_training_session(coordinator: SessionCoordinator = Depends(get_coordinator)) -> dict:
    """Stop the active session; succeeds with an idle status when nothing runs."""
    session = await coordinator.stop()
    if session is None:
        return {"status": "idle", "session": None, "warnings": []}
    return {
        "status": session.status.value,
        "session": _serialize_session(session).model_dump(mode="json"),
        "warnings": [str(warning) for warning in coordinator.last_teardown_warnings],
    }


@router.get("/sessions", response_model=list[TrainingSession])
def list_training_sessions(store: SessionStore = Depends(get_session_store)) -> list[TrainingSession]:
    """List finished training sessions, newest first."""
    return [TrainingSession(**item) for item in store.list_sessions()]


@router.get("/status")
def get_training_status(coordinator: SessionCoordinator = Depends(get_coordinator)) -> dict:
    """Current session status, idle when none is active."""
    session = coordinator.current_session
    return {
        "status": coordinator.current_status().value,
        "session": _serialize_session(session).model_dump(mode="json") if session else None,
    }


@router.get("/progress", response_model=TrainingProgress)
def get_training_progress(
    coordinator: SessionCoordinator = Depends(get_coordinator),
    settings: Settings = Depends(get_app_settings),
) -> TrainingProgress:
    """Aggregate progress snapshot plus every per-model entry."""
    snapshot = coordinator.get_training_progress()
    models = [
        ModelProgressItem(name=entry.name, percentage=entry.percentage, status=entry.status.value)
        for entry in coordinator.aggregator.get_all_model_progress().values()
    ]
    return TrainingProgress(
        percentage=snapshot.percentage,
        status=snapshot.status.value,
        session_id=snapshot.session_id,
        models=models,
        estimated_remaining=estimate_remaining_time(
            snapshot.percentage,
            tick_seconds=settings.progress_tick_seconds,
            max_step=settings.progress_max_step,
        ),
    )


@router.get("/config")
def get_training_config(coordinator: SessionCoordinator = Depends(get_coordinator)) -> dict[str, Any]:
    """Defaults applied to the next session."""
    return coordinator.get_config()


@router.patch("/config", dependencies=[Depends(enforce_write_rate_limit)])
def update_training_config(
    payload: TrainingConfigPatch,
    coordinator: SessionCoordinator = Depends(get_coordinator),
) -> dict[str, Any]:
    """Merge groups into the defaults; the active session is unaffected."""
    return coordinator.update_config(payload.to_overrides())


@router.post("/models", dependencies=[Depends(enforce_write_rate_limit)])
async def train_custom_model(
    payload: CustomModelRequest,
    coordinator: SessionCoordinator = Depends(get_coordinator),
) -> dict[str, Any]:
    """Train, validate and deploy one custom model."""
    result = await coordinator.train_custom_model(payload.model_type, payload.name, payload.samples)
    if not result["success"] and "error" in result:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=result["error"])
    return result


@router.get("/models")
async def list_deployed_models(coordinator: SessionCoordinator = Depends(get_coordinator)) -> list[dict[str, Any]]:
    """Models deployed by custom training runs."""
    return await coordinator.get_available_models()


@router.websocket("/progress/live")
async def training_progress_live(websocket: WebSocket) -> None:
    """Push the current snapshot, then every progress event as it happens."""
    settings = get_settings()
    slot_key = None
    try:
        slot_key = acquire_ws_slot(websocket, settings=settings, endpoint="training-progress")
    except HTTPException as exc:
        await websocket.close(code=1013, reason=str(exc.detail))
        return

    coordinator: SessionCoordinator = websocket.app.state.coordinator
    queue: asyncio.Queue[dict] = asyncio.Queue(maxsize=LIVE_QUEUE_SIZE)

    def enqueue(event: ProgressEvent) -> None:
        if queue.full():
            # Slow client: drop the oldest event, the next one supersedes it.
            queue.get_nowait()
        queue.put_nowait(event.to_dict())

    async def pump() -> None:
        while True:
            payload = await queue.get()
            await websocket.send_json(payload)

    await websocket.accept()
    unsubscribe = coordinator.aggregator.subscribe(enqueue)
    sender: asyncio.Task | None = None
    try:
        await websocket.send_json(coordinator.get_training_progress().to_dict())
        sender = asyncio.create_task(pump())
        # Client messages are ignored; reading only detects the disconnect.
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
    except WebSocketDisconnect:
        pass
    finally:
        unsubscribe()
        if sender is not None:
            sender.cancel()
            await asyncio.gather(sender, return_exceptions=True)
        release_ws_slot(slot_key)
        logger.debug("training_progress_client_disconnected")
