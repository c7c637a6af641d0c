"""ChatWave application configuration.

Loads settings from a single YAML file:
  * chatwave.settings.yaml: non-secret configuration

The file location can be overridden with the ``CHATWAVE_SETTINGS`` environment
variable. A missing file is not an error; every section has defaults.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SETTINGS_FILE = Path("chatwave.settings.yaml")
SETTINGS_ENV_VAR = "CHATWAVE_SETTINGS"

IN_MEMORY_DB = ":memory:"


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.warning("Config file not found: %s", path)
        return {}
    with path.open(encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------


class ServerSettings(BaseModel):
    host: str = "0.0.0.0"
    port: int = 8080


class LoggingSettings(BaseModel):
    level: str = "info"


class ChatSettings(BaseModel):
    """Limits applied by the connection lifecycle coordinator."""
    history_limit:      int = Field(default=50, ge=1)
    max_content_length: int = Field(default=2000, ge=1)
    system_sender:      str = "System"


class PersistenceSettings(BaseModel):
    """Background persistence worker pool."""
    workers:    int = Field(default=2, ge=1)
    queue_size: int = Field(default=1000, ge=1)


class StorageSettings(BaseModel):
    db_path: str = "chatwave.duckdb"


class RoomSeedSettings(BaseModel):
    seed_defaults:         bool = True
    seed_welcome_messages: bool = True


class AppConfig(BaseModel):
    server:      ServerSettings      = Field(default_factory=ServerSettings)
    logging:     LoggingSettings     = Field(default_factory=LoggingSettings)
    chat:        ChatSettings        = Field(default_factory=ChatSettings)
    persistence: PersistenceSettings = Field(default_factory=PersistenceSettings)
    storage:     StorageSettings     = Field(default_factory=StorageSettings)
    rooms:       RoomSeedSettings    = Field(default_factory=RoomSeedSettings)

    @field_validator("logging")
    @classmethod
    def _known_log_level(cls, value: LoggingSettings) -> LoggingSettings:
        if not isinstance(getattr(logging, value.level.upper(), None), int):
            raise ValueError(f"Unknown log level: {value.level}")
        return value


# ---------------------------------------------------------------------------
# Path resolution
# ---------------------------------------------------------------------------


def _resolve_db_path(db_path: str, settings_path: Path) -> str:
    """Resolve a relative database path against the settings file directory."""
    if db_path == IN_MEMORY_DB:
        return db_path
    path = Path(db_path).expanduser()
    if path.is_absolute():
        return str(path)
    return str(settings_path.parent.resolve() / path)


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def load_config(settings_path: Optional[Path] = None) -> AppConfig:
    """Load settings into a fresh *AppConfig* object."""
    if settings_path is None:
        settings_path = Path(os.environ.get(SETTINGS_ENV_VAR, SETTINGS_FILE))
    settings_path = Path(settings_path)

    config = AppConfig(**_load_yaml(settings_path))
    config.storage.db_path = _resolve_db_path(config.storage.db_path, settings_path)

    logger.info(
        "Settings loaded (server=%s:%s, db_path=%s, history_limit=%d)",
        config.server.host,
        config.server.port,
        config.storage.db_path,
        config.chat.history_limit,
    )
    return config


_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Return the process-wide configuration, loading it on first use."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def set_config(config: AppConfig) -> None:
    global _config
    _config = config


def reset_config() -> None:
    """Drop the cached configuration so the next call reloads it."""
    global _config
    _config = None
