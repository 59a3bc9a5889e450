"""Protocol interfaces used by the speech controllers."""

from __future__ import annotations

from queue import Queue
from typing import Callable, Optional, Protocol, Sequence

from models import RecognitionResult, Utterance, VoiceDescriptor

ResultHandler = Callable[[Sequence[RecognitionResult]], None]
ErrorHandler = Callable[[str], None]
EndHandler = Callable[[], None]


class Recorder(Protocol):
    def start(self, audio_queue: Queue) -> None: ...

    def stop(self) -> None: ...


class RecognitionEngine(Protocol):
    def configure(self, *, language: str, continuous: bool, interim_results: bool) -> None: ...

    def bind(self, on_result: ResultHandler, on_error: ErrorHandler, on_end: EndHandler) -> None: ...

    def start(self) -> None: ...

    def stop(self) -> None: ...

    def abort(self) -> None: ...


class SynthesisEngine(Protocol):
    @property
    def speaking(self) -> bool: ...

    def speak(self, utterance: Utterance) -> None: ...

    def cancel(self) -> None: ...

    def resume(self) -> None: ...

    def get_voices(self) -> list[VoiceDescriptor]: ...

    def add_voices_listener(self, listener: Callable[[], None]) -> None: ...

    def remove_voices_listener(self, listener: Callable[[], None]) -> None: ...


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay_s: float, fn: Callable[[], None]) -> TimerHandle: ...

    def call_every(self, interval_s: float, fn: Callable[[], None]) -> TimerHandle: ...


class ConfigStore(Protocol):
    def get_api_key(self) -> str: ...

    def set_api_key(self, key: str) -> None: ...

    def get_hotkey(self) -> str: ...

    def set_hotkey(self, hotkey: str) -> None: ...

    def get_language(self) -> str: ...

    def get_value(self, key: str, default: Optional[object] = None) -> object: ...
