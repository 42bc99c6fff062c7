"""Abstract interfaces for session and settings persistence."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from arstudio.services.training_service import SessionRecord


class SessionStore(ABC):
    """Persists training sessions once they reach a terminal state."""

    @abstractmethod
    def persist(self, session: "SessionRecord") -> None:
        """Store (or overwrite) one finished session."""

    @abstractmethod
    def list_sessions(self) -> list[dict[str, Any]]:
        """Return stored sessions, newest first."""


class SettingsStore(ABC):
    """Key/value store for dashboard settings."""

    @abstractmethod
    def load(self, key: str) -> dict[str, Any] | None:
        """Return the stored value for ``key`` or None."""

    @abstractmethod
    def save(self, key: str, value: dict[str, Any]) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""
