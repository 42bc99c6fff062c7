"""Application settings and environment configuration."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_MODEL_TYPES = "gesture,objectDetection,voiceRecognition"


class Settings(BaseSettings):
    """Runtime settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False)

    env: str = "development"
    app_name: str = "AR Training Studio API"
    api_v1_prefix: str = "/api/v1"

    database_url: str = "sqlite:///./data/arstudio.db"
    session_store: Literal["sql", "memory"] = "sql"

    cors_origins: str = Field(default="http://localhost:5173,http://127.0.0.1:5173")
    trusted_hosts: str = Field(default="localhost,127.0.0.1,testserver")
    enable_docs: bool | None = None
    ws_max_connections_per_ip: int = Field(default=3, ge=1, le=100)
    write_rate_limit_per_minute: int = Field(default=120, ge=1, le=10000)

    # Simulated progress advancement
    progress_tick_seconds: float = Field(default=0.3, gt=0.0, le=60.0)
    progress_max_step: float = Field(default=5.0, ge=0.0, le=100.0)
    progress_seed: int | None = None
    tracked_model_types: str = Field(default=DEFAULT_MODEL_TYPES)

    # Simulated collaborators
    training_epoch_delay_seconds: float = Field(default=0.1, ge=0.0, le=60.0)
    data_collection_seed: int | None = None

    @model_validator(mode="after")
    def validate_model_types(self) -> "Settings":
        """At least one sub-model must be tracked per session."""
        if not self.tracked_model_type_list:
            raise ValueError("TRACKED_MODEL_TYPES must name at least one model type.")
        return self

    @property
    def tracked_model_type_list(self) -> list[str]:
        """Parse comma-separated default sub-model names, keeping order."""
        names: list[str] = []
        for name in self.tracked_model_types.split(","):
            name = name.strip()
            if name and name not in names:
                names.append(name)
        return names

    @property
    def cors_origin_list(self) -> list[str]:
        """Parse comma-separated CORS origins for the dashboard client."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def trusted_host_list(self) -> list[str]:
        """Parse comma-separated trusted hostnames for Host header validation."""
        hosts = [host.strip() for host in self.trusted_hosts.split(",") if host.strip()]
        return hosts or ["localhost", "127.0.0.1"]

    @property
    def docs_enabled(self) -> bool:
        """Enable docs by default in non-production environments only."""
        if self.enable_docs is not None:
            return bool(self.enable_docs)
        return self.env.lower() != "production"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
