"""Client configuration (environment, .env and config.json)."""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class ClientSettings(BaseSettings):
    """Settings for the bridge companion client."""

    model_config = SettingsConfigDict(
        env_prefix="PEBBLECODE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Bridge
    bridge_host: str = "192.168.1.118"
    bridge_port: int = 8080
    tailnet_suffix: str = ".taildd7ed4.ts.net"

    # Connection
    reconnect_delay_ms: int = 3000
    open_timeout_s: float = 10.0
    ping_interval_s: float | None = 20.0

    # Session state
    history_limit: int = 50

    # Logs
    log_dir: str | None = None
    log_level: str = "INFO"
    log_rotate_mb: int = 5
    log_retention_days: int = 7

    @property
    def reconnect_delay(self) -> float:
        """Reconnect delay in seconds."""
        return self.reconnect_delay_ms / 1000.0

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            cls.json_config_settings_source,
            file_secret_settings,
        )

    @staticmethod
    def json_config_settings_source() -> dict[str, object]:
        """Load config.json from the working directory when present."""
        config_path = Path.cwd() / "config.json"
        if config_path.is_file():
            try:
                return json.loads(config_path.read_text(encoding="utf-8"))
            except ValueError:
                return {}
        return {}


@lru_cache()
def get_settings() -> ClientSettings:
    """Return a cached ClientSettings instance."""
    return ClientSettings()
