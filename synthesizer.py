"""Local speech synthesis engine backed by pyttsx3."""

from __future__ import annotations

import logging
import threading
from queue import Empty, Queue
from typing import Any, Callable, Optional

from errors import ENGINE_CANCELED, ENGINE_INTERRUPTED
from models import Utterance, VoiceDescriptor

try:
    import pyttsx3
except Exception:  # pragma: no cover
    pyttsx3 = None  # type: ignore

logger = logging.getLogger(__name__)


def language_tag(voice: Any) -> str:
    """Best-effort BCP-47 tag from a driver voice (``b'\\x05en-us'`` -> ``en-US``)."""
    for raw in getattr(voice, "languages", None) or []:
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8", "ignore")
        tag = "".join(ch for ch in str(raw) if ch.isprintable()).strip().replace("_", "-")
        if tag:
            lang, _, region = tag.partition("-")
            return f"{lang.lower()}-{region.upper()}" if region else lang.lower()
    return ""


def to_descriptor(voice: Any) -> VoiceDescriptor:
    return VoiceDescriptor(
        name=str(getattr(voice, "name", "") or ""),
        lang=language_tag(voice),
        voice_id=str(getattr(voice, "id", "") or ""),
    )


class Pyttsx3SynthesisEngine:
    """Runs the pyttsx3 driver on its own thread, one utterance at a time.

    pyttsx3 has no pause state, so ``resume()`` is a no-op.
    """

    def __init__(self, rate: int = 160, volume: float = 1.0) -> None:
        self._rate = rate
        self._volume = volume
        self._queue: Queue[tuple[int, Utterance] | None] = Queue()
        self._lock = threading.Lock()
        self._voices: list[VoiceDescriptor] = []
        self._listeners: list[Callable[[], None]] = []
        self._driver: Any = None
        self._current: Optional[Utterance] = None
        self._interrupted = False
        self._enqueued = 0
        self._canceled_through = 0
        self._thread: Optional[threading.Thread] = None

    @staticmethod
    def is_available() -> bool:
        return pyttsx3 is not None

    @property
    def speaking(self) -> bool:
        return self._current is not None

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        if pyttsx3 is None:
            raise RuntimeError("pyttsx3 is not installed")
        self._thread = threading.Thread(target=self._worker, daemon=True)
        self._thread.start()

    def close(self) -> None:
        self.cancel()
        self._queue.put(None)

    def speak(self, utterance: Utterance) -> None:
        with self._lock:
            self._enqueued += 1
            self._queue.put((self._enqueued, utterance))

    def cancel(self) -> None:
        """Drop everything spoken so far, including an utterance the worker has just dequeued."""
        dropped: list[Utterance] = []
        driver = None
        with self._lock:
            self._canceled_through = self._enqueued
            while True:
                try:
                    item = self._queue.get_nowait()
                except Empty:
                    break
                if item is None:
                    self._queue.put(None)
                    break
                dropped.append(item[1])
            if self._current is not None and self._driver is not None:
                self._interrupted = True
                driver = self._driver
        if driver is not None:
            driver.stop()
        for utterance in dropped:
            if utterance.on_error:
                utterance.on_error(ENGINE_CANCELED)

    def resume(self) -> None:
        return None

    def get_voices(self) -> list[VoiceDescriptor]:
        with self._lock:
            return list(self._voices)

    def add_voices_listener(self, listener: Callable[[], None]) -> None:
        with self._lock:
            self._listeners.append(listener)

    def remove_voices_listener(self, listener: Callable[[], None]) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    # ------------------------------------------------------------------
    # Driver thread
    # ------------------------------------------------------------------

    def _worker(self) -> None:
        driver = pyttsx3.init()
        driver.setProperty("rate", self._rate)
        driver.setProperty("volume", self._volume)
        driver.connect("started-utterance", self._on_started)
        driver.connect("finished-utterance", self._on_finished)
        driver.connect("error", self._on_driver_error)

        voices = [to_descriptor(v) for v in driver.getProperty("voices") or []]
        with self._lock:
            self._driver = driver
            self._voices = voices
            listeners = list(self._listeners)
        logger.debug("Loaded %d synthesis voices", len(voices))
        for listener in listeners:
            listener()

        while True:
            item = self._queue.get()
            if item is None:
                break
            utterance = self._take(item)
            if utterance is None:
                continue
            if utterance.voice is not None and utterance.voice.voice_id:
                driver.setProperty("voice", utterance.voice.voice_id)
            driver.say(utterance.text)
            try:
                driver.runAndWait()
            except RuntimeError as exc:
                logger.error("Synthesis driver failed: %s", exc)
                self._finish(str(exc))
            self._finish(None)

    def _take(self, item: tuple[int, Utterance]) -> Optional[Utterance]:
        seq, utterance = item
        with self._lock:
            if seq > self._canceled_through:
                self._current = utterance
                self._interrupted = False
                return utterance
        if utterance.on_error:
            utterance.on_error(ENGINE_CANCELED)
        return None

    def _on_started(self, name: Optional[str] = None) -> None:
        utterance = self._current
        if utterance is not None and utterance.on_start:
            utterance.on_start()

    def _on_finished(self, name: Optional[str] = None, completed: bool = True) -> None:
        if completed and not self._interrupted:
            self._finish(None)
        else:
            self._finish(ENGINE_INTERRUPTED)

    def _on_driver_error(self, name: Optional[str] = None, exception: Optional[Exception] = None) -> None:
        self._finish(str(exception) if exception else "synthesis-failed")

    def _finish(self, error_code: Optional[str]) -> None:
        with self._lock:
            utterance, self._current = self._current, None
        if utterance is None:
            return
        if error_code is None:
            if utterance.on_end:
                utterance.on_end()
        elif utterance.on_error:
            utterance.on_error(error_code)
