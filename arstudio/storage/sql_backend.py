"""SQLAlchemy-backed session and settings stores."""

from __future__ import annotations

import copy
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from arstudio.models.setting import Setting
from arstudio.models.training import TrainingSession

from .base import SessionStore, SettingsStore

if TYPE_CHECKING:
    from arstudio.services.training_service import SessionRecord

logger = structlog.get_logger(__name__)


def serialize_row(row: TrainingSession) -> dict[str, Any]:
    """Convert a stored session row into the API dictionary shape."""
    return {
        "id": row.id,
        "status": row.status,
        "config": row.config or {},
        "model_types": row.model_types or [],
        "start_time": row.started_at,
        "end_time": row.completed_at,
        "error_message": row.error_message,
    }


class SqlSessionStore(SessionStore):
    """Writes finished sessions to the ``training_sessions`` table."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def persist(self, session: "SessionRecord") -> None:
        with self._session_factory() as db:
            row = db.get(TrainingSession, session.id)
            if row is None:
                row = TrainingSession(id=session.id, started_at=session.start_time)
                db.add(row)
            row.status = session.status.value
            row.config = copy.deepcopy(session.config)
            row.model_types = list(session.model_types)
            row.completed_at = session.end_time
            row.error_message = (session.error_message or "")[:500] or None
            db.commit()
        logger.debug("sql_store.session_persisted", session_id=session.id, status=session.status.value)

    def list_sessions(self) -> list[dict[str, Any]]:
        with self._session_factory() as db:
            rows = db.scalars(select(TrainingSession).order_by(TrainingSession.started_at.desc())).all()
            return [serialize_row(row) for row in rows]


class SqlSettingsStore(SettingsStore):
    """Key/value rows in the ``settings`` table."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def load(self, key: str) -> dict[str, Any] | None:
        with self._session_factory() as db:
            row = db.get(Setting, key)
            return copy.deepcopy(row.value) if row is not None else None

    def save(self, key: str, value: dict[str, Any]) -> None:
        with self._session_factory() as db:
            row = db.get(Setting, key)
            if row is None:
                row = Setting(key=key)
                db.add(row)
            row.value = copy.deepcopy(value)
            db.commit()
        logger.debug("sql_store.setting_saved", key=key)
