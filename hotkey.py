"""Push-to-talk hotkey based on pynput."""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Optional

try:
    from pynput import keyboard
except Exception:  # pragma: no cover
    keyboard = None  # type: ignore

logger = logging.getLogger(__name__)


def parse_key(name: str) -> Any:
    """Turn ``Key.alt_l`` or a single character into a pynput key object."""
    if keyboard is None:
        raise RuntimeError("pynput is not installed")
    if name.startswith("Key."):
        try:
            return getattr(keyboard.Key, name[len("Key."):])
        except AttributeError:
            raise ValueError(f"unknown key name: {name}") from None
    if len(name) == 1:
        return keyboard.KeyCode.from_char(name)
    raise ValueError(f"unsupported hotkey: {name}")


class PushToTalkHotkey:
    """Fires ``on_press`` once when the key goes down and ``on_release`` when it comes up."""

    def __init__(self, hotkey_name: str = "Key.alt_l") -> None:
        self._hotkey_name = hotkey_name
        self._listener: Optional[Any] = None
        self._held = False
        self._lock = threading.Lock()

    def start(self, on_press: Callable[[], None], on_release: Callable[[], None]) -> None:
        target = parse_key(self._hotkey_name)

        def _on_press(key: Any) -> None:
            if key != target:
                return
            with self._lock:
                if self._held:
                    return
                self._held = True
            on_press()

        def _on_release(key: Any) -> None:
            if key != target:
                return
            with self._lock:
                if not self._held:
                    return
                self._held = False
            on_release()

        self._listener = keyboard.Listener(on_press=_on_press, on_release=_on_release)
        self._listener.start()
        logger.info("Push-to-talk bound to %s", self._hotkey_name)

    def stop(self) -> None:
        listener, self._listener = self._listener, None
        if listener is not None:
            listener.stop()
