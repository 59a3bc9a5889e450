"""Continuous recognition engine on top of DashScope qwen3-asr-flash.

The model accepts complete audio and streams back recognition text via
``stream=True``. Microphone PCM is accumulated while the session runs; every
``interim_interval_s`` of new audio the whole buffer is re-recognised to
produce interim results, and ``stop()`` triggers the final pass. Events are
reported through the handlers given to ``bind()`` using the browser-style
engine codes from :mod:`errors`.
"""

from __future__ import annotations

import base64
import io
import logging
import os
import threading
import wave
from queue import Empty, Queue
from typing import Optional

from errors import (
    ENGINE_ABORTED,
    ENGINE_ASR_PROTOCOL,
    ENGINE_NETWORK,
    ENGINE_NO_SPEECH,
    ENGINE_SERVICE_NOT_ALLOWED,
)
from interfaces import EndHandler, ErrorHandler, Recorder, ResultHandler
from models import RecognitionResult
from recorder import SoundDeviceRecorder

try:
    import dashscope
except Exception:  # pragma: no cover
    dashscope = None  # type: ignore

logger = logging.getLogger(__name__)


class RecognitionFailed(Exception):
    def __init__(self, code: str, message: str = "") -> None:
        super().__init__(message or code)
        self.code = code


def _pcm_to_wav_data_uri(
    pcm: bytes,
    sample_rate: int = 16000,
    channels: int = 1,
    sample_width: int = 2,
) -> str:
    """Wrap raw PCM bytes in a WAV container and encode it as a data URI."""
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(sample_width)
        wf.setframerate(sample_rate)
        wf.writeframes(pcm)
    encoded = base64.b64encode(buf.getvalue()).decode("ascii")
    return f"data:audio/wav;base64,{encoded}"


def _error_code_for(exc: Exception) -> str:
    low = str(exc).lower()
    if "401" in low or "403" in low or "auth" in low or "api key" in low:
        return ENGINE_SERVICE_NOT_ALLOWED
    if "timeout" in low or "network" in low or "connection" in low:
        return ENGINE_NETWORK
    return ENGINE_ASR_PROTOCOL


class _Session:
    """Per-start worker state; the handlers are captured when the session begins."""

    def __init__(
        self,
        on_result: Optional[ResultHandler],
        on_error: Optional[ErrorHandler],
        on_end: Optional[EndHandler],
    ) -> None:
        self.on_result = on_result
        self.on_error = on_error
        self.on_end = on_end
        self.stop_requested = threading.Event()
        self.abort_requested = threading.Event()
        self.thread: Optional[threading.Thread] = None

    @property
    def is_alive(self) -> bool:
        return self.thread is not None and self.thread.is_alive()


class DashscopeRecognitionEngine:
    def __init__(
        self,
        api_key: str,
        recorder: Optional[Recorder] = None,
        model: str = "qwen3-asr-flash",
        request_timeout_s: float = 10.0,
        interim_interval_s: float = 2.0,
        sample_rate: int = 16000,
        channels: int = 1,
        queue_maxsize: int = 600,
    ) -> None:
        self._api_key = api_key
        self._recorder: Recorder = recorder or SoundDeviceRecorder(sample_rate=sample_rate, channels=channels)
        self._model = model
        self._request_timeout_s = request_timeout_s
        self._interim_interval_s = interim_interval_s
        self._sample_rate = sample_rate
        self._channels = channels
        self._queue_maxsize = queue_maxsize

        self._language = "en-US"
        self._continuous = True
        self._interim_results = True
        self._on_result: Optional[ResultHandler] = None
        self._on_error: Optional[ErrorHandler] = None
        self._on_end: Optional[EndHandler] = None

        self._lock = threading.Lock()
        self._session: Optional[_Session] = None

    @staticmethod
    def is_available() -> bool:
        return dashscope is not None and SoundDeviceRecorder.is_available()

    def configure(self, *, language: str, continuous: bool, interim_results: bool) -> None:
        self._language = language
        self._continuous = continuous
        self._interim_results = interim_results

    def bind(self, on_result: ResultHandler, on_error: ErrorHandler, on_end: EndHandler) -> None:
        """Set the handlers for sessions started from now on."""
        self._on_result = on_result
        self._on_error = on_error
        self._on_end = on_end

    def start(self) -> None:
        """Start a session; a previous one still running is aborted first."""
        with self._lock:
            previous = self._session
            if previous is not None and previous.is_alive:
                logger.info("Aborting previous recognition session")
                previous.abort_requested.set()
                previous.stop_requested.set()
                self._safe_stop_recorder()
            session = _Session(self._on_result, self._on_error, self._on_end)
            audio_queue: Queue[bytes | None] = Queue(maxsize=self._queue_maxsize)
            self._recorder.start(audio_queue)
            session.thread = threading.Thread(target=self._worker, args=(session, audio_queue), daemon=True)
            self._session = session
            session.thread.start()

    def stop(self) -> None:
        session = self._session
        if session is not None:
            session.stop_requested.set()
        self._safe_stop_recorder()

    def abort(self) -> None:
        session = self._session
        if session is not None:
            session.abort_requested.set()
            session.stop_requested.set()
        self._safe_stop_recorder()

    def join(self, timeout: Optional[float] = None) -> None:
        session = self._session
        if session is not None and session.thread is not None:
            session.thread.join(timeout)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _worker(self, session: _Session, audio_queue: Queue[bytes | None]) -> None:
        pcm = bytearray()
        interim_bytes = int(self._interim_interval_s * self._sample_rate * self._channels * 2)
        recognised_up_to = 0

        try:
            while not session.abort_requested.is_set():
                try:
                    chunk = audio_queue.get(timeout=0.2)
                except Empty:
                    if session.stop_requested.is_set():
                        break
                    continue
                if chunk is None:
                    break
                pcm.extend(chunk)
                if interim_bytes and len(pcm) - recognised_up_to >= interim_bytes:
                    recognised_up_to = len(pcm)
                    if not self._continuous:
                        self._stop_recorder_for(session)
                    elif self._interim_results:
                        self._recognize(session, bytes(pcm), final=False)

            if session.abort_requested.is_set():
                self._emit_error(session, ENGINE_ABORTED)
            elif not pcm:
                self._emit_error(session, ENGINE_NO_SPEECH)
            else:
                self._recognize(session, bytes(pcm), final=True)
        except RecognitionFailed as exc:
            logger.warning("Recognition failed (%s): %s", exc.code, exc)
            self._stop_recorder_for(session)
            self._emit_error(session, exc.code)
        finally:
            if session.on_end:
                session.on_end()

    def _recognize(self, session: _Session, pcm: bytes, final: bool) -> None:
        if dashscope is None:
            raise RecognitionFailed(ENGINE_ASR_PROTOCOL, "dashscope is not installed")
        api_key = self._api_key or os.getenv("DASHSCOPE_API_KEY", "")
        if not api_key:
            raise RecognitionFailed(ENGINE_SERVICE_NOT_ALLOWED, "No API key configured")

        try:
            response = dashscope.MultiModalConversation.call(
                api_key=api_key,
                model=self._model,
                messages=[
                    {"role": "system", "content": [{"text": ""}]},
                    {"role": "user", "content": [{"audio": _pcm_to_wav_data_uri(pcm, self._sample_rate, self._channels)}]},
                ],
                result_format="message",
                asr_options={"enable_itn": False, "language": self._language.split("-")[0]},
                stream=True,
                timeout=self._request_timeout_s,
            )
            latest = ""
            for chunk in response:
                if session.abort_requested.is_set():
                    return
                text = self._extract_text(chunk)
                if text:
                    latest = text
                    if self._interim_results:
                        self._emit_result(session, text, is_final=False)
        except RecognitionFailed:
            raise
        except Exception as exc:
            raise RecognitionFailed(_error_code_for(exc), str(exc)) from exc

        if final and latest:
            self._emit_result(session, latest, is_final=True)
        elif final:
            self._emit_error(session, ENGINE_NO_SPEECH)

    def _extract_text(self, chunk: object) -> str:
        """Pull text from a dashscope streaming chunk dict."""
        if not isinstance(chunk, dict):
            return ""
        status = chunk.get("status_code")
        if status is not None and status != 200:
            raise RecognitionFailed(
                _error_code_for(Exception(f"{status} {chunk.get('code', '')} {chunk.get('message', '')}")),
                str(chunk.get("message", status)),
            )
        choices = (chunk.get("output") or {}).get("choices") or []
        if not choices:
            return ""
        content = (choices[0].get("message") or {}).get("content") or []
        if not content or not isinstance(content[0], dict):
            return ""
        return str(content[0].get("text", ""))

    def _emit_result(self, session: _Session, text: str, is_final: bool) -> None:
        if session.on_result:
            session.on_result([RecognitionResult(transcripts=(text,), is_final=is_final)])

    def _emit_error(self, session: _Session, code: str) -> None:
        if session.on_error:
            session.on_error(code)

    def _stop_recorder_for(self, session: _Session) -> None:
        # The recorder belongs to whichever session started last.
        if self._session is session:
            self._safe_stop_recorder()

    def _safe_stop_recorder(self) -> None:
        try:
            self._recorder.stop()
        except Exception:
            logger.exception("Recorder stop failed")
