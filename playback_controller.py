"""Single-utterance speech playback on top of a synthesis engine."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional, Union

from errors import ENGINE_CANCELED, ENGINE_INTERRUPTED
from interfaces import Scheduler, SynthesisEngine, TimerHandle
from models import Gender, PlaybackRequest, PlaybackState, Utterance, VoiceDescriptor
from scheduler import ThreadingScheduler
from voices import select_voice

logger = logging.getLogger(__name__)

SpeakingCallback = Callable[[Optional[str]], None]

DEFAULT_DEBOUNCE_S = 0.1
DEFAULT_KEEP_ALIVE_S = 10.0

_EXPECTED_ENGINE_ERRORS = (ENGINE_CANCELED, ENGINE_INTERRUPTED)


class SpeechPlaybackController:
    """Speak text under a caller-chosen id, or stop it.

    Every ``speak`` and ``cancel`` bumps a generation counter; engine
    callbacks from an older generation are ignored so a superseded
    utterance cannot clear the state of its successor.
    """

    def __init__(
        self,
        engine: Optional[SynthesisEngine],
        scheduler: Optional[Scheduler] = None,
        language: str = "en-US",
        debounce_s: float = DEFAULT_DEBOUNCE_S,
        keep_alive_s: float = DEFAULT_KEEP_ALIVE_S,
        on_speaking_change: Optional[SpeakingCallback] = None,
    ) -> None:
        self._engine = engine
        self._scheduler = scheduler or ThreadingScheduler()
        self._language = language
        self._debounce_s = debounce_s
        self._keep_alive_s = keep_alive_s
        self._on_speaking_change = on_speaking_change

        self._lock = threading.RLock()
        self._state = PlaybackState.IDLE
        self._voices: list[VoiceDescriptor] = []
        self._ready = False
        self._generation = 0
        self._request: Optional[PlaybackRequest] = None
        self._speaking_id: Optional[str] = None
        self._pending: Optional[TimerHandle] = None
        self._keep_alive: Optional[TimerHandle] = None
        self._disposed = False

        if engine is not None:
            engine.add_voices_listener(self._load_voices)
            self._load_voices()

    @property
    def state(self) -> PlaybackState:
        return self._state

    @property
    def speaking_id(self) -> Optional[str]:
        return self._speaking_id

    @property
    def is_supported(self) -> bool:
        return self._engine is not None

    @property
    def is_ready(self) -> bool:
        return self._ready

    @property
    def voices(self) -> list[VoiceDescriptor]:
        return list(self._voices)

    def speak(
        self,
        text: str,
        utterance_id: str,
        gender: Union[Gender, str] = Gender.FEMALE,
        on_start: Optional[Callable[[], None]] = None,
    ) -> None:
        with self._lock:
            if self._engine is None or self._disposed or not self._ready or not text:
                return
            if self._speaking_id == utterance_id:
                self.cancel()
                return

            self._clear_pending()
            self._stop_keep_alive()
            self._generation += 1
            request = PlaybackRequest(
                utterance_id=utterance_id,
                text=text,
                gender=Gender(gender),
                generation=self._generation,
            )
            self._request = request
            self._set_speaking_id(None)
            self._safe_engine_call("cancel")
            self._state = PlaybackState.SCHEDULED
            self._pending = self._scheduler.call_later(
                self._debounce_s, lambda: self._speak_now(request, on_start)
            )

    def cancel(self) -> None:
        with self._lock:
            self._generation += 1
            self._clear_pending()
            self._stop_keep_alive()
            self._request = None
            self._state = PlaybackState.IDLE
            self._set_speaking_id(None)
            if self._engine is not None:
                self._safe_engine_call("cancel")

    def dispose(self) -> None:
        with self._lock:
            if self._disposed:
                return
            self.cancel()
            self._disposed = True
            if self._engine is not None:
                try:
                    self._engine.remove_voices_listener(self._load_voices)
                except Exception:
                    logger.exception("Could not detach voices listener")

    # ------------------------------------------------------------------
    # Scheduled work and engine events
    # ------------------------------------------------------------------

    def _speak_now(self, request: PlaybackRequest, on_start: Optional[Callable[[], None]]) -> None:
        with self._lock:
            if self._is_stale(request) or self._engine is None:
                return
            self._pending = None
            utterance = Utterance(
                text=request.text,
                voice=select_voice(self._voices, request.gender, self._language),
                on_start=lambda: self._handle_start(request, on_start),
                on_end=lambda: self._handle_finish(request, None),
                on_error=lambda code: self._handle_finish(request, code),
            )
            try:
                self._engine.speak(utterance)
            except Exception:
                logger.exception("Speech synthesis could not start utterance %s", request.utterance_id)
                self._state = PlaybackState.IDLE
                self._request = None

    def _handle_start(self, request: PlaybackRequest, on_start: Optional[Callable[[], None]]) -> None:
        with self._lock:
            if self._is_stale(request):
                return
            self._state = PlaybackState.SPEAKING
            self._set_speaking_id(request.utterance_id)
            self._stop_keep_alive()
            if self._keep_alive_s > 0:
                self._keep_alive = self._scheduler.call_every(self._keep_alive_s, self._keep_alive_tick)
        if on_start is not None:
            try:
                on_start()
            except Exception:
                logger.exception("on_start callback failed for %s", request.utterance_id)

    def _handle_finish(self, request: PlaybackRequest, error_code: Optional[str]) -> None:
        if error_code is not None and error_code not in _EXPECTED_ENGINE_ERRORS:
            logger.error("Speech synthesis error for %s: %s", request.utterance_id, error_code)
        with self._lock:
            if self._is_stale(request):
                return
            self._stop_keep_alive()
            self._request = None
            self._state = PlaybackState.IDLE
            if self._speaking_id == request.utterance_id:
                self._set_speaking_id(None)

    def _keep_alive_tick(self) -> None:
        engine = self._engine
        if engine is not None and engine.speaking:
            engine.resume()

    def _load_voices(self) -> None:
        if self._engine is None:
            return
        try:
            voices = list(self._engine.get_voices())
        except Exception:
            logger.exception("Could not read the voice catalogue")
            return
        with self._lock:
            if voices:
                self._voices = voices
                self._ready = True

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _is_stale(self, request: PlaybackRequest) -> bool:
        return request.generation != self._generation

    def _clear_pending(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

    def _stop_keep_alive(self) -> None:
        if self._keep_alive is not None:
            self._keep_alive.cancel()
            self._keep_alive = None

    def _set_speaking_id(self, utterance_id: Optional[str]) -> None:
        if utterance_id == self._speaking_id:
            return
        self._speaking_id = utterance_id
        if self._on_speaking_change:
            self._on_speaking_change(utterance_id)

    def _safe_engine_call(self, name: str) -> None:
        try:
            getattr(self._engine, name)()
        except Exception:
            logger.exception("Speech synthesis engine %s() failed", name)
