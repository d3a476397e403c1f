"""Persisted user configuration: default render options and custom CSS."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path

from PySide6.QtCore import QObject, QTimer, Signal

from mdmindmap.log import get_logger

logger = get_logger(__name__)

CONFIG_FILE_NAME = ".mdmindmap.json"
CONFIG_ENV_VAR = "MDMINDMAP_CONFIG"
DEFAULT_OPTIONS_KEY = "defaultOptions"
CUSTOM_CSS_KEY = "customCSS"
SETTINGS_WATCH_INTERVAL_MS = 1200


def _config_file_path() -> Path:
    env_value = os.environ.get(CONFIG_ENV_VAR, "").strip()
    if env_value:
        return Path(env_value).expanduser()
    return Path.home() / CONFIG_FILE_NAME


@dataclass(frozen=True)
class SettingsSnapshot:
    default_options_raw: str | None = None
    custom_css: str | None = None

    def diff(self, other: "SettingsSnapshot") -> frozenset[str]:
        changed: set[str] = set()
        if self.default_options_raw != other.default_options_raw:
            changed.add(DEFAULT_OPTIONS_KEY)
        if self.custom_css != other.custom_css:
            changed.add(CUSTOM_CSS_KEY)
        return frozenset(changed)


def _string_or_none(payload: dict, key: str) -> str | None:
    value = payload.get(key)
    if isinstance(value, str):
        return value
    if value is not None:
        logger.warning("Config key %r should be a string, ignoring %s value", key, type(value).__name__)
    return None


def read_settings(path: Path) -> SettingsSnapshot:
    """Read the config file; missing or malformed files yield empty settings."""
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return SettingsSnapshot()
    except OSError as exc:
        logger.warning("Cannot read config %s: %s", path, exc)
        return SettingsSnapshot()

    if not raw.strip():
        return SettingsSnapshot()
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        logger.warning("Config %s is not valid JSON: %s", path, exc)
        return SettingsSnapshot()
    if not isinstance(payload, dict):
        logger.warning("Config %s must hold a JSON object", path)
        return SettingsSnapshot()

    return SettingsSnapshot(
        default_options_raw=_string_or_none(payload, DEFAULT_OPTIONS_KEY),
        custom_css=_string_or_none(payload, CUSTOM_CSS_KEY),
    )


class SettingsStore(QObject):
    """Read-only view of the config file that notifies on change."""

    changed = Signal(object)

    def __init__(self, path: Path | None = None, poll_interval_ms: int = SETTINGS_WATCH_INTERVAL_MS, parent=None):
        super().__init__(parent)
        self.path = path if path is not None else _config_file_path()
        self._snapshot = read_settings(self.path)
        self._signature = self._read_signature()
        self._watch_timer = QTimer(self)
        self._watch_timer.setInterval(poll_interval_ms)
        self._watch_timer.timeout.connect(self._on_watch_tick)

    @property
    def snapshot(self) -> SettingsSnapshot:
        return self._snapshot

    def start(self) -> None:
        self._watch_timer.start()

    def stop(self) -> None:
        self._watch_timer.stop()

    def reload(self) -> frozenset[str]:
        """Re-read the file and emit `changed` with the keys that differ."""
        previous = self._snapshot
        self._snapshot = read_settings(self.path)
        self._signature = self._read_signature()
        keys = previous.diff(self._snapshot)
        if keys:
            logger.debug("Settings changed: %s", ", ".join(sorted(keys)))
            self.changed.emit(keys)
        return keys

    def _read_signature(self) -> tuple[int, int] | None:
        try:
            stat = self.path.stat()
        except OSError:
            return None
        return stat.st_mtime_ns, stat.st_size

    def _on_watch_tick(self) -> None:
        if self._read_signature() != self._signature:
            self.reload()
