"""Microphone recorder adapter."""

from __future__ import annotations

import logging
import threading
from queue import Full, Queue
from typing import Any, Optional

try:
    import numpy as np
except Exception:  # pragma: no cover
    np = None  # type: ignore

try:
    import sounddevice as sd
except Exception:  # pragma: no cover
    sd = None  # type: ignore

logger = logging.getLogger(__name__)


class SoundDeviceRecorder:
    """Pushes raw int16 PCM chunks into a queue, ``None`` once stopped."""

    def __init__(
        self,
        sample_rate: int = 16000,
        channels: int = 1,
        chunk_ms: int = 100,
        device: Optional[int | str] = None,
    ) -> None:
        self.sample_rate = sample_rate
        self.channels = channels
        self.chunk_ms = chunk_ms
        self.device = device
        self.dropped_chunks = 0
        self._stream: Any = None
        self._running = False
        self._lock = threading.Lock()
        self._audio_queue: Queue[bytes | None] | None = None

    @staticmethod
    def is_available() -> bool:
        return sd is not None and np is not None

    @property
    def bytes_per_second(self) -> int:
        return self.sample_rate * self.channels * 2

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self, audio_queue: Queue[bytes | None]) -> None:
        with self._lock:
            if self._running:
                return
            if not self.is_available():
                raise RuntimeError("sounddevice/numpy is not installed")
            self._audio_queue = audio_queue
            self.dropped_chunks = 0
            self._stream = sd.InputStream(
                samplerate=self.sample_rate,
                channels=self.channels,
                dtype="int16",
                blocksize=int(self.sample_rate * self.chunk_ms / 1000),
                device=self.device,
                callback=self._on_audio,
            )
            self._stream.start()
            self._running = True

    def stop(self) -> None:
        with self._lock:
            if self._running:
                self._running = False
                self._close_stream()
                if self.dropped_chunks:
                    logger.warning("Recorder dropped %d audio chunks", self.dropped_chunks)
            self._put_sentinel()

    def _close_stream(self) -> None:
        stream, self._stream = self._stream, None
        if stream is None:
            return
        try:
            stream.stop()
        finally:
            stream.close()

    def _on_audio(self, indata: Any, frames: int, time_info: Any, status: Any) -> None:
        if status:
            logger.debug("Input stream status: %s", status)
        if not self._running or self._audio_queue is None:
            return
        try:
            self._audio_queue.put_nowait(np.asarray(indata, dtype=np.int16).tobytes())
        except Full:
            self.dropped_chunks += 1

    def _put_sentinel(self) -> None:
        if self._audio_queue is None:
            return
        try:
            self._audio_queue.put_nowait(None)
        except Full:
            logger.warning("Audio queue full, end-of-audio marker not delivered")
