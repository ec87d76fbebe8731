"""User settings — sync preference, identity, remote endpoint and active preset."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

_DEFAULT_CONFIG_DIR = Path.home() / ".config" / "phasetimer"
_SETTINGS_FILE = "settings.json"

ENV_CONFIG_DIR = "PHASETIMER_CONFIG_DIR"
ENV_USER_ID = "PHASETIMER_USER_ID"
ENV_SYNC_URL = "PHASETIMER_SYNC_URL"
ENV_SYNC_TOKEN = "PHASETIMER_SYNC_TOKEN"


class ConfigError(Exception):
    """Raised when the settings file cannot be parsed."""


@dataclass
class Settings:
    """Settings stored in ``<config_dir>/settings.json``.

    ``user_id`` is the opaque identity of the signed-in user, or ``None``
    when nobody is signed in.  Without it the timer is local-only whatever
    ``sync_enabled`` says.
    """

    config_dir: Path
    user_id: str | None = None
    sync_enabled: bool = False
    sync_url: str | None = None
    sync_token: str | None = None
    active_preset_id: str | None = None

    @property
    def can_sync(self) -> bool:
        return self.sync_enabled and bool(self.user_id) and bool(self.sync_url)

    def to_dict(self) -> dict[str, Any]:
        return {
            "userId": self.user_id,
            "syncTimerState": self.sync_enabled,
            "syncUrl": self.sync_url,
            "syncToken": self.sync_token,
            "activePresetId": self.active_preset_id,
        }


def resolve_config_dir(config_dir: Path | None = None) -> Path:
    if config_dir is not None:
        return config_dir
    env_dir = os.environ.get(ENV_CONFIG_DIR)
    return Path(env_dir) if env_dir else _DEFAULT_CONFIG_DIR


def load_settings(config_dir: Path | None = None) -> Settings:
    """Read settings from disk, then apply environment overrides."""
    config_dir = resolve_config_dir(config_dir)
    path = config_dir / _SETTINGS_FILE
    data: dict[str, Any] = {}
    if path.exists():
        try:
            data = json.loads(path.read_text())
        except json.JSONDecodeError as exc:
            raise ConfigError(f"{path} is not valid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigError(f"{path} must hold a JSON object")

    return Settings(
        config_dir=config_dir,
        user_id=os.environ.get(ENV_USER_ID) or data.get("userId"),
        sync_enabled=bool(data.get("syncTimerState", False)),
        sync_url=os.environ.get(ENV_SYNC_URL) or data.get("syncUrl"),
        sync_token=os.environ.get(ENV_SYNC_TOKEN) or data.get("syncToken"),
        active_preset_id=data.get("activePresetId"),
    )


def save_settings(settings: Settings) -> None:
    settings.config_dir.mkdir(parents=True, exist_ok=True)
    path = settings.config_dir / _SETTINGS_FILE
    path.write_text(json.dumps(settings.to_dict(), indent=2))
