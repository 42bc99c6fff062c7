"""Persistence backends for AR Training Studio: SQL (default) and in-memory."""

from .base import SessionStore, SettingsStore
from .factory import build_stores

__all__ = ["SessionStore", "SettingsStore", "build_stores"]
