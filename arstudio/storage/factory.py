"""Factory for the configured persistence backends."""

from __future__ import annotations

from arstudio.config import Settings

from .base import SessionStore, SettingsStore


def build_stores(settings: Settings) -> tuple[SessionStore, SettingsStore]:
    """
    Build the session and settings stores for the configured backend.

    - SESSION_STORE=sql    → SQLAlchemy tables on DATABASE_URL
    - SESSION_STORE=memory → process-local dicts, lost on restart
    """
    if settings.session_store == "memory":
        from .memory_backend import MemorySessionStore, MemorySettingsStore

        return MemorySessionStore(), MemorySettingsStore()

    from arstudio.database import SessionLocal

    from .sql_backend import SqlSessionStore, SqlSettingsStore

    return SqlSessionStore(SessionLocal), SqlSettingsStore(SessionLocal)
