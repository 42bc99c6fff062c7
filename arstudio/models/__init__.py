"""SQLAlchemy model exports."""

from __future__ import annotations

from arstudio.models.setting import Setting
from arstudio.models.training import TrainingSession

__all__ = ["Setting", "TrainingSession"]
