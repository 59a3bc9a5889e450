"""State-machine based speech capture."""

from __future__ import annotations

import logging
import threading
from functools import partial
from typing import Callable, Optional, Sequence

from errors import (
    ALREADY_LISTENING,
    COULD_NOT_START,
    UNSUPPORTED,
    CaptureError,
    map_recognition_error,
)
from interfaces import RecognitionEngine
from models import CaptureState, RecognitionResult

logger = logging.getLogger(__name__)

StateCallback = Callable[[CaptureState, CaptureState], None]
TranscriptCallback = Callable[[str], None]
ErrorCallback = Callable[[CaptureError], None]


class SpeechCaptureController:
    """Owns one continuous recognition session at a time.

    The transcript is replaced on every result event with the concatenation
    of each result's best alternative. Engine ``aborted`` errors are the echo
    of our own stop/teardown and are never recorded. Each start binds handlers
    tagged with a new session number, so late events from a superseded session
    are dropped.
    """

    def __init__(
        self,
        engine: Optional[RecognitionEngine],
        language: str = "en-US",
        on_state_change: Optional[StateCallback] = None,
        on_transcript: Optional[TranscriptCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        self._engine = engine
        self._on_state_change = on_state_change
        self._on_transcript = on_transcript
        self._on_error = on_error

        self._lock = threading.RLock()
        self._state = CaptureState.IDLE
        self._text = ""
        self._error: Optional[CaptureError] = None
        self._engine_engaged = False
        self._disposed = False
        self._session = 0

        if engine is not None:
            engine.configure(language=language, continuous=True, interim_results=True)
            self._bind_session(self._session)

    @property
    def state(self) -> CaptureState:
        return self._state

    @property
    def text(self) -> str:
        return self._text

    @property
    def error(self) -> Optional[CaptureError]:
        return self._error

    @property
    def is_listening(self) -> bool:
        return self._state == CaptureState.LISTENING

    @property
    def has_support(self) -> bool:
        return self._engine is not None

    def start(self) -> Optional[CaptureError]:
        """Begin a capture session; returns the error when it could not start."""
        with self._lock:
            if self._state == CaptureState.LISTENING:
                logger.warning("start() ignored: already listening")
                return CaptureError(ALREADY_LISTENING)
            if self._engine is None:
                return self._record_error(CaptureError(UNSUPPORTED))
            if self._disposed:
                return self._record_error(CaptureError(COULD_NOT_START, "controller disposed"))

            self._session += 1
            if self._engine_engaged:
                # the previous session is still delivering its final pass
                self._engine_engaged = False
                self._safe_engine_call("abort")
            self._bind_session(self._session)
            self._set_text("")
            self._error = None
            try:
                self._engine.start()
            except Exception as exc:
                logger.error("Could not start recognition: %s", exc)
                return self._record_error(CaptureError(COULD_NOT_START, str(exc)))

            self._engine_engaged = True
            self._transition(CaptureState.LISTENING)
            return None

    def stop(self) -> None:
        with self._lock:
            if self._state != CaptureState.LISTENING:
                return
            self._transition(CaptureState.IDLE)
            self._safe_engine_call("stop")

    def reset_transcript(self) -> None:
        with self._lock:
            self._set_text("")

    def dispose(self) -> None:
        with self._lock:
            if self._disposed:
                return
            self._disposed = True
            if self._engine_engaged:
                self._safe_engine_call("abort")
                self._engine_engaged = False
            self._transition(CaptureState.IDLE)

    # ------------------------------------------------------------------
    # Engine events
    # ------------------------------------------------------------------

    def _bind_session(self, session: int) -> None:
        self._engine.bind(
            partial(self._handle_result, session),
            partial(self._handle_error, session),
            partial(self._handle_end, session),
        )

    def _is_current(self, session: int) -> bool:
        return not self._disposed and session == self._session

    def _handle_result(self, session: int, results: Sequence[RecognitionResult]) -> None:
        with self._lock:
            if not self._is_current(session) or not self._engine_engaged:
                return
            self._set_text("".join(result.best for result in results))

    def _handle_error(self, session: int, code: str) -> None:
        with self._lock:
            if not self._is_current(session):
                return
            self._engine_engaged = False
            error = map_recognition_error(code)
            if error is None:
                self._transition(CaptureState.IDLE)
                return
            logger.error("Speech recognition error: %s", code)
            if self._state == CaptureState.LISTENING:
                self._transition(CaptureState.ERRORING)
            self._record_error(error)
            self._transition(CaptureState.IDLE)

    def _handle_end(self, session: int) -> None:
        with self._lock:
            if not self._is_current(session):
                return
            self._engine_engaged = False
            self._transition(CaptureState.IDLE)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _record_error(self, error: CaptureError) -> CaptureError:
        self._error = error
        if self._on_error:
            self._on_error(error)
        return error

    def _set_text(self, text: str) -> None:
        if text == self._text:
            return
        self._text = text
        if self._on_transcript:
            self._on_transcript(text)

    def _safe_engine_call(self, name: str) -> None:
        try:
            getattr(self._engine, name)()
        except Exception:
            logger.exception("Recognition engine %s() failed", name)

    def _transition(self, to_state: CaptureState) -> None:
        from_state = self._state
        if from_state == to_state:
            return
        self._state = to_state
        if self._on_state_change:
            self._on_state_change(from_state, to_state)
