"""Runtime settings and project configuration for NotNow."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict

from notnow import __version__

CONFIG_FILENAME = "notnow.yaml"
DEFAULT_SNAPSHOT_MAX_AGE = timedelta(hours=1)


class ConfigError(RuntimeError):
    """Raised when the NotNow configuration file is invalid."""


@dataclass(frozen=True)
class RuntimeSettings:
    home_dir: Path
    state_dir: Path
    log_dir: Path
    config_path: Path
    cli_version: str = __version__


@dataclass(frozen=True)
class NotNowConfig:
    backend: Dict[str, Any]
    client_id: str = "notnow"
    snapshot_max_age: timedelta = DEFAULT_SNAPSHOT_MAX_AGE
    extra: Dict[str, Any] = field(default_factory=dict)


def _default_home_dir() -> Path:
    override = os.environ.get("NOTNOW_HOME")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".notnow"


def load_settings() -> RuntimeSettings:
    base = _default_home_dir()
    return RuntimeSettings(
        home_dir=base,
        state_dir=base / "state",
        log_dir=base / "logs",
        config_path=base / CONFIG_FILENAME,
    )


def load_config(path: Path) -> NotNowConfig:
    import yaml  # lazy import to keep import cost low

    if not path.exists():
        raise ConfigError(f"NotNow configuration missing: {path}")
    data = yaml.safe_load(path.read_text("utf-8")) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"Invalid {path.name} structure: root is not a mapping")

    backend = data.get("backend")
    if not isinstance(backend, dict):
        raise ConfigError(f"Invalid {path.name} structure: backend is not a mapping")
    if not isinstance(backend.get("type"), str) or not backend["type"].strip():
        raise ConfigError(f"Invalid {path.name} structure: backend.type must be a string")

    client_id = data.get("client_id", "notnow")
    if not isinstance(client_id, str) or not client_id.strip():
        raise ConfigError(f"Invalid {path.name} structure: client_id must be a non-empty string")

    snapshot = data.get("snapshot") or {}
    if not isinstance(snapshot, dict):
        raise ConfigError(f"Invalid {path.name} structure: snapshot is not a mapping")
    max_age = DEFAULT_SNAPSHOT_MAX_AGE
    if "max_age_seconds" in snapshot:
        raw_age = snapshot["max_age_seconds"]
        if isinstance(raw_age, bool) or not isinstance(raw_age, (int, float)) or raw_age < 0:
            raise ConfigError("snapshot.max_age_seconds must be a non-negative number")
        max_age = timedelta(seconds=raw_age)

    extra = {k: v for k, v in data.items() if k not in {"backend", "client_id", "snapshot"}}
    return NotNowConfig(backend=dict(backend), client_id=client_id, snapshot_max_age=max_age, extra=extra)


SETTINGS = load_settings()
