"""hometrack configuration system.

Loads and validates configuration from ~/.hometrack/config.json.
Uses Pydantic for schema validation with sensible defaults.

Supports migration from older config versions while preserving existing values.

Usage:
    from hometrack.config import get_config, save_config

    config = get_config()
    print(config.sync.max_retries)

    config.remote.base_url = "https://tracker.example.com/api"
    save_config(config)
"""

from __future__ import annotations

import json
import logging
import os
import threading
from collections.abc import Callable
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".hometrack"
CONFIG_PATH = CONFIG_DIR / "config.json"

# Current config schema version for migration tracking
CONFIG_VERSION = 1


class StorageConfig(BaseModel):
    """Local store settings.

    Attributes:
        db_path: SQLite file backing the durable local store.
    """

    db_path: str = str(CONFIG_DIR / "local_store.db")


class SyncConfig(BaseModel):
    """Mutation queue and drain settings.

    Attributes:
        max_retries: Failed attempts after which a queued mutation is dropped.
        drain_debounce_seconds: Delay between a trigger firing and the drain.
        min_drain_interval_seconds: Minimum spacing between drain attempts.
        periodic_interval_seconds: Period of the background drain check.
        collapse_duplicates: Replace queued same-type mutations on the same
            target instead of appending a second item.
    """

    max_retries: int = Field(default=3, ge=1, le=20)
    drain_debounce_seconds: float = Field(default=1.0, ge=0.0, le=60.0)
    min_drain_interval_seconds: float = Field(default=2.0, ge=0.0, le=300.0)
    periodic_interval_seconds: float = Field(default=30.0, ge=1.0, le=3600.0)
    collapse_duplicates: bool = True


class SessionConfig(BaseModel):
    """Remote session acquisition settings.

    Attributes:
        timeout_seconds: Elapsed time after which a connecting session may degrade.
        grace_seconds: Required time without state progress before degrading.
        max_attempts: Cap for the displayed attempt number.
        attempt_boundaries: Elapsed seconds at which the displayed attempt
            number advances (1, 2, 3, ...).
        retry_delays: Delays between connect attempts.
        degraded_retry_seconds: Delay before a degraded session reconnects on
            its own (None disables automatic recovery).
    """

    timeout_seconds: float = Field(default=12.0, gt=0.0)
    grace_seconds: float = Field(default=5.0, ge=0.0)
    max_attempts: int = Field(default=5, ge=1, le=20)
    attempt_boundaries: list[float] = Field(default_factory=lambda: [1.0, 3.0, 7.0, 11.0, 15.0])
    retry_delays: list[float] = Field(default_factory=lambda: [1.0, 2.0, 4.0, 4.0, 4.0])
    degraded_retry_seconds: float | None = Field(default=60.0, gt=0.0)

    @field_validator("attempt_boundaries")
    @classmethod
    def _boundaries_ascending(cls, value: list[float]) -> list[float]:
        if value != sorted(value):
            raise ValueError("attempt_boundaries must be ascending")
        return value


class RemoteConfig(BaseModel):
    """Remote service endpoint settings."""

    base_url: str = "http://localhost:8080/api"
    connect_timeout: float = Field(default=5.0, gt=0.0, le=60.0)
    read_timeout: float = Field(default=30.0, gt=0.0, le=300.0)
    user_agent: str = "hometrack/0.30"


class HometrackConfig(BaseModel):
    """hometrack configuration schema.

    Attributes:
        config_version: Schema version for migration tracking.
        storage: Local store settings.
        sync: Mutation queue and drain settings.
        session: Remote session acquisition settings.
        remote: Remote service endpoint settings.
    """

    config_version: int = CONFIG_VERSION
    storage: StorageConfig = Field(default_factory=StorageConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    remote: RemoteConfig = Field(default_factory=RemoteConfig)


# Module-level singleton with thread safety
_config: HometrackConfig | None = None
_config_lock = threading.Lock()


# Upgrade steps keyed by the version they produce. Each takes the raw dict
# read from disk and returns it in the next schema.
_MIGRATIONS: dict[int, Callable[[dict[str, Any]], dict[str, Any]]] = {}


def _migrate_config(data: dict[str, Any]) -> dict[str, Any]:
    """Bring raw config data up to CONFIG_VERSION."""
    version = data.get("config_version", CONFIG_VERSION)
    if version > CONFIG_VERSION:
        logger.warning(
            f"Config version {version} is newer than supported {CONFIG_VERSION}, "
            "unknown settings are ignored"
        )

    for target in sorted(v for v in _MIGRATIONS if v > version):
        logger.info(f"Migrating config from version {version} to {target}")
        data = _MIGRATIONS[target](data)
        version = target

    data["config_version"] = CONFIG_VERSION
    return data


def _read_config_file(path: Path) -> dict[str, Any] | None:
    try:
        data = json.loads(path.read_text())
    except json.JSONDecodeError as e:
        logger.warning(f"Invalid JSON in config file {path}: {e}, using defaults")
        return None
    except OSError as e:
        logger.warning(f"Cannot read config file {path}: {e}, using defaults")
        return None

    if not isinstance(data, dict):
        logger.warning(f"Config file {path} does not hold an object, using defaults")
        return None
    if not isinstance(data.get("config_version", CONFIG_VERSION), int):
        logger.warning(f"Config file {path} has a malformed config_version, using defaults")
        return None
    return data


def load_config(config_path: Path | None = None) -> HometrackConfig:
    """Load configuration from file, falling back to defaults.

    A missing, unreadable or invalid file never raises. Files written by an
    older schema are upgraded and saved back.

    Args:
        config_path: Optional path to config file. Defaults to ~/.hometrack/config.json.
    """
    path = config_path or CONFIG_PATH
    if not path.exists():
        logger.debug(f"Config file not found at {path}, using defaults")
        return HometrackConfig()

    data = _read_config_file(path)
    if data is None:
        return HometrackConfig()

    stored_version = data.get("config_version", CONFIG_VERSION)
    try:
        config = HometrackConfig.model_validate(_migrate_config(data))
    except ValidationError as e:
        logger.warning(f"Config validation failed: {e}, using defaults")
        return HometrackConfig()

    if stored_version < CONFIG_VERSION:
        save_config(config, path)
    return config


def save_config(config: HometrackConfig, config_path: Path | None = None) -> bool:
    """Save configuration to file.

    Args:
        config: Configuration to save.
        config_path: Optional path to config file. Defaults to ~/.hometrack/config.json.

    Returns:
        True if saved successfully, False otherwise.
    """
    path = config_path or CONFIG_PATH

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w") as f:
            json.dump(config.model_dump(), f, indent=2)
        os.chmod(path, 0o600)
        logger.debug(f"Configuration saved to {path}")
        return True
    except OSError as e:
        logger.error(f"Failed to save config to {path}: {e}")
        return False


def get_config() -> HometrackConfig:
    """Get singleton configuration instance.

    Uses double-check locking for thread safety.
    """
    global _config
    if _config is None:
        with _config_lock:
            if _config is None:
                _config = load_config()
    return _config


def reset_config() -> None:
    """Reset singleton configuration for testing."""
    global _config
    with _config_lock:
        _config = None
