"""Chat relay configuration.

Loads settings from two YAML files:
  * relay.settings.yaml : non-secret configuration
  * relay.secrets.yaml  : secrets such as the Redis URL (never committed)

Environment overrides:
  * REDISURI          : store address (``host:port`` or ``redis://`` URL)
  * SOCKET_CLIENT_URL : allowed client origin for CORS
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SETTINGS_FILE = Path("relay.settings.yaml")
SECRETS_FILE  = Path("relay.secrets.yaml")


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.warning("Config file not found: %s", path)
        return {}
    with path.open(encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


# ---------------------------------------------------------------------------
# Secrets models
# ---------------------------------------------------------------------------


class RedisSecrets(BaseModel):
    url: Optional[str] = None


class Secrets(BaseModel):
    redis: RedisSecrets = Field(default_factory=RedisSecrets)


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------


class ServerSettings(BaseModel):
    host:            str       = "0.0.0.0"
    port:            int       = 8080
    allowed_origins: List[str] = Field(default_factory=list)
    static_dir:      str       = "./public"


class StoreSettings(BaseModel):
    """Where room history is persisted."""
    backend:         Literal["memory", "redis"] = "memory"
    key_prefix:      str                        = "room:"
    socket_timeout:  float                      = 5.0
    connect_timeout: float                      = 5.0

    @field_validator("key_prefix")
    @classmethod
    def _prefix_not_empty(cls, value: str) -> str:
        if not value:
            raise ValueError("key_prefix must not be empty")
        return value


class RelaySettings(BaseModel):
    """Per-connection delivery limits."""
    outbound_queue_size:  int   = Field(default=256, gt=0)
    send_timeout_seconds: float = Field(default=10.0, gt=0)


class LoggingSettings(BaseModel):
    level: str = "info"


class AppSettings(BaseModel):
    server:  ServerSettings  = Field(default_factory=ServerSettings)
    store:   StoreSettings   = Field(default_factory=StoreSettings)
    relay:   RelaySettings   = Field(default_factory=RelaySettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    secrets: Secrets         = Field(default_factory=Secrets)


# ---------------------------------------------------------------------------
# Environment variable overrides
# ---------------------------------------------------------------------------


def _apply_env_overrides(settings: AppSettings) -> None:
    """Apply the REDISURI / SOCKET_CLIENT_URL variables on top of the YAML files.

    Setting REDISURI switches the store backend to redis, since that is the
    only thing the variable was ever used for.
    """
    redis_uri = os.environ.get("REDISURI")
    if redis_uri:
        settings.secrets.redis.url = redis_uri
        settings.store.backend = "redis"
        logger.info("Store address taken from REDISURI")

    client_url = os.environ.get("SOCKET_CLIENT_URL")
    if client_url and client_url not in settings.server.allowed_origins:
        settings.server.allowed_origins.append(client_url)
        logger.info("Allowed client origin taken from SOCKET_CLIENT_URL: %s", client_url)


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def load_settings(
    settings_file: Optional[Path] = None,
    secrets_file: Optional[Path] = None,
) -> AppSettings:
    """Load and merge settings + secrets into a single *AppSettings* object."""
    settings_path = settings_file or Path(os.environ.get("RELAY_SETTINGS_FILE", SETTINGS_FILE))
    secrets_path  = secrets_file or Path(os.environ.get("RELAY_SECRETS_FILE", SECRETS_FILE))

    settings_data = _load_yaml(settings_path)
    secrets_data  = _load_yaml(secrets_path)

    # Merge: secrets live under the "secrets" key in AppSettings
    settings_data["secrets"] = secrets_data

    app_settings = AppSettings(**settings_data)
    _apply_env_overrides(app_settings)
    logger.info(
        "Settings loaded (server=%s:%s, store.backend=%s)",
        app_settings.server.host,
        app_settings.server.port,
        app_settings.store.backend,
    )
    return app_settings


_config: Optional[AppSettings] = None


def get_config() -> AppSettings:
    """Return the process-wide settings, loading them on first use."""
    global _config
    if _config is None:
        _config = load_settings()
    return _config


def reset_config() -> None:
    """Forget the cached settings so the next get_config() reloads them."""
    global _config
    _config = None
