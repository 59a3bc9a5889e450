"""Thread-based timers for debounce and keep-alive."""

from __future__ import annotations

import logging
import threading
from typing import Callable

logger = logging.getLogger(__name__)


class _RepeatingTimer:
    def __init__(self, interval_s: float, fn: Callable[[], None]) -> None:
        self._interval_s = interval_s
        self._fn = fn
        self._stopped = threading.Event()
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

    def cancel(self) -> None:
        self._stopped.set()

    def _run(self) -> None:
        while not self._stopped.wait(self._interval_s):
            try:
                self._fn()
            except Exception:
                logger.exception("Repeating timer callback failed")


class ThreadingScheduler:
    def call_later(self, delay_s: float, fn: Callable[[], None]) -> threading.Timer:
        timer = threading.Timer(max(0.0, delay_s), fn)
        timer.daemon = True
        timer.start()
        return timer

    def call_every(self, interval_s: float, fn: Callable[[], None]) -> _RepeatingTimer:
        if interval_s <= 0:
            raise ValueError("interval must be positive")
        return _RepeatingTimer(interval_s, fn)
