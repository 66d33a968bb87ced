# src/config/settings.py — v2
"""Typed configuration loaded from .env via pydantic-settings.

Single source of truth for all deployment-specific settings.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when configuration is internally inconsistent."""


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === Titler connection ===
    titler_host: str = "localhost"
    titler_port: int = 9023
    reconnect_interval_s: float = 5.0

    # === Feedback cache ===
    cache_rebuild_interval_s: float = 0.5
    registry_refresh_debounce_s: float = 1.0

    # === Images ===
    image_set_tag: str = "automation.glow.base"
    include_mime_prefix: bool = False
    layer_state_key: str = "newblue.automation.layerstate"

    # === Client identity (announced once per connection) ===
    client_id: str = "com.newbluefx.companion-module"
    client_version: str = "1.0"

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "json"
    log_file: Path | None = None
    log_rotation: str = "10MB"
    log_retention: int = 30

    # --- Validators ---

    @field_validator("titler_port")
    @classmethod
    def validate_port(cls, v: int) -> int:  # noqa: N805
        if not 1 <= v <= 65535:
            raise ValueError("titler_port must be between 1 and 65535")
        return v

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Timers must tick forward and the remote must be addressable."""
        errors: list[str] = []

        if not self.titler_host.strip():
            errors.append("TITLER_HOST must not be empty")

        for name in (
            "reconnect_interval_s",
            "cache_rebuild_interval_s",
            "registry_refresh_debounce_s",
        ):
            if getattr(self, name) <= 0:
                errors.append(f"{name.upper()} must be > 0")

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self

    # --- Helpers ---

    @property
    def websocket_url(self) -> str:
        """WebSocket endpoint of the Titler automation scheduler."""
        return f"ws://{self.titler_host}:{self.titler_port}"


def load_settings(**overrides: object) -> Settings:
    """Load settings from .env with optional overrides.

    Args:
        **overrides: Field-level overrides (CLI flags or tests).

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]
