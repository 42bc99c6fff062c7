"""In-process stores for tests and throwaway runs."""

from __future__ import annotations

import copy
from typing import TYPE_CHECKING, Any

from .base import SessionStore, SettingsStore

if TYPE_CHECKING:
    from arstudio.services.training_service import SessionRecord


class MemorySessionStore(SessionStore):
    """Keeps finished sessions in a dict keyed by session id."""

    def __init__(self) -> None:
        self._sessions: dict[str, dict[str, Any]] = {}

    def persist(self, session: "SessionRecord") -> None:
        self._sessions[session.id] = session.to_dict()

    def list_sessions(self) -> list[dict[str, Any]]:
        items = [copy.deepcopy(item) for item in self._sessions.values()]
        return sorted(items, key=lambda item: item["start_time"], reverse=True)


class MemorySettingsStore(SettingsStore):
    """Dict-backed settings."""

    def __init__(self) -> None:
        self._values: dict[str, dict[str, Any]] = {}

    def load(self, key: str) -> dict[str, Any] | None:
        value = self._values.get(key)
        return copy.deepcopy(value) if value is not None else None

    def save(self, key: str, value: dict[str, Any]) -> None:
        self._values[key] = copy.deepcopy(value)
