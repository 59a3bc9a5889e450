"""Simple JSON-based config store."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from interfaces import ConfigStore

logger = logging.getLogger(__name__)

DEFAULT_LANGUAGE = "en-US"
DEFAULT_HOTKEY = "Key.alt_l"
DEFAULT_DEBOUNCE_MS = 100
DEFAULT_KEEP_ALIVE_S = 10.0
DEFAULT_SPEECH_RATE = 160


@dataclass(frozen=True)
class SpeechSettings:
    api_key: str = ""
    language: str = DEFAULT_LANGUAGE
    hotkey: str = DEFAULT_HOTKEY
    debounce_s: float = DEFAULT_DEBOUNCE_MS / 1000.0
    keep_alive_s: float = DEFAULT_KEEP_ALIVE_S
    speech_rate: int = DEFAULT_SPEECH_RATE


class JsonConfigStore:
    def __init__(self, path: Path | None = None) -> None:
        self._path = path or Path.home() / ".config" / "speech_practice" / "config.json"
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def get_api_key(self) -> str:
        data = self._read_all()
        return str(data.get("api_key", "") or os.getenv("DASHSCOPE_API_KEY", ""))

    def set_api_key(self, key: str) -> None:
        self.set_value("api_key", key)

    def get_hotkey(self) -> str:
        return str(self.get_value("hotkey", DEFAULT_HOTKEY))

    def set_hotkey(self, hotkey: str) -> None:
        self.set_value("hotkey", hotkey)

    def get_language(self) -> str:
        return str(self.get_value("language", DEFAULT_LANGUAGE))

    def get_value(self, key: str, default: Optional[object] = None) -> object:
        return self._read_all().get(key, default)

    def set_value(self, key: str, value: object) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    def load_settings(self) -> SpeechSettings:
        return load_settings(self)

    def _read_all(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning("Ignoring unreadable config %s: %s", self._path, exc)
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict) -> None:
        self._path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")


def load_settings(store: ConfigStore) -> SpeechSettings:
    """Collect the runtime settings from any config store, defaulting bad values."""
    return SpeechSettings(
        api_key=store.get_api_key(),
        language=store.get_language(),
        hotkey=store.get_hotkey(),
        debounce_s=_non_negative(store.get_value("debounce_ms"), DEFAULT_DEBOUNCE_MS) / 1000.0,
        keep_alive_s=_non_negative(store.get_value("keep_alive_s"), DEFAULT_KEEP_ALIVE_S),
        speech_rate=int(_non_negative(store.get_value("speech_rate"), DEFAULT_SPEECH_RATE)),
    )


def _non_negative(value: object, default: float) -> float:
    if value is None:
        return float(default)
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        logger.warning("Invalid numeric config value %r, using %s", value, default)
        return float(default)
    return number if number >= 0 else float(default)
