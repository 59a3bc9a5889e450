from __future__ import annotations

import logging
from typing import Callable, Optional

import pytest

from models import Gender, PlaybackState, Utterance, VoiceDescriptor
from playback_controller import SpeechPlaybackController

VOICES = [
    VoiceDescriptor("Microsoft David - English (United States)", "en-US", "david"),
    VoiceDescriptor("Samantha", "en-US", "samantha"),
    VoiceDescriptor("Google UK English Female", "en-GB", "uk-female"),
]


class _FakeTimer:
    def __init__(self, due: float, fn: Callable[[], None], interval: Optional[float]) -> None:
        self.due = due
        self.fn = fn
        self.interval = interval
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler:
    """Manual clock: callbacks only run inside advance()."""

    def __init__(self) -> None:
        self.now = 0.0
        self.timers: list[_FakeTimer] = []

    def call_later(self, delay_s: float, fn: Callable[[], None]) -> _FakeTimer:
        timer = _FakeTimer(self.now + delay_s, fn, None)
        self.timers.append(timer)
        return timer

    def call_every(self, interval_s: float, fn: Callable[[], None]) -> _FakeTimer:
        timer = _FakeTimer(self.now + interval_s, fn, interval_s)
        self.timers.append(timer)
        return timer

    def active(self) -> list[_FakeTimer]:
        return [t for t in self.timers if not t.cancelled]

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            due = [t for t in self.active() if t.due <= target]
            if not due:
                break
            timer = min(due, key=lambda t: t.due)
            self.now = timer.due
            if timer.interval:
                timer.due += timer.interval
            else:
                timer.cancelled = True
            timer.fn()
        self.now = target


class FakeSynthesisEngine:
    def __init__(self, voices: Optional[list[VoiceDescriptor]] = None) -> None:
        self.voices = list(VOICES if voices is None else voices)
        self.spoken: list[Utterance] = []
        self.cancel_calls = 0
        self.resume_calls = 0
        self.speaking = False
        self.listeners: list[Callable[[], None]] = []
        self.fail_speak = False

    def speak(self, utterance: Utterance) -> None:
        if self.fail_speak:
            raise RuntimeError("driver gone")
        self.spoken.append(utterance)

    def cancel(self) -> None:
        self.cancel_calls += 1

    def resume(self) -> None:
        self.resume_calls += 1

    def get_voices(self) -> list[VoiceDescriptor]:
        return list(self.voices)

    def add_voices_listener(self, listener: Callable[[], None]) -> None:
        self.listeners.append(listener)

    def remove_voices_listener(self, listener: Callable[[], None]) -> None:
        self.listeners.remove(listener)

    def announce(self, voices: list[VoiceDescriptor]) -> None:
        self.voices = list(voices)
        for listener in list(self.listeners):
            listener()


def _make(engine: Optional[FakeSynthesisEngine] = None, **kwargs):  # noqa: ANN003
    engine = engine if engine is not None else FakeSynthesisEngine()
    scheduler = FakeScheduler()
    controller = SpeechPlaybackController(engine, scheduler=scheduler, **kwargs)
    return controller, engine, scheduler


# ---------------------------------------------------------------
# Readiness and no-op cases
# ---------------------------------------------------------------

def test_not_ready_until_voices_announced() -> None:
    controller, engine, scheduler = _make(FakeSynthesisEngine(voices=[]))

    assert controller.is_supported is True
    assert controller.is_ready is False
    controller.speak("hello", "m1")
    scheduler.advance(1.0)
    assert engine.spoken == []

    engine.announce(VOICES)
    assert controller.is_ready is True
    controller.speak("hello", "m1")
    scheduler.advance(1.0)
    assert len(engine.spoken) == 1


def test_unsupported_engine_is_silent_noop() -> None:
    controller = SpeechPlaybackController(None, scheduler=FakeScheduler())

    assert controller.is_supported is False
    assert controller.is_ready is False
    controller.speak("hello", "m1")
    controller.cancel()
    assert controller.speaking_id is None


def test_empty_text_is_ignored() -> None:
    controller, engine, scheduler = _make()

    controller.speak("", "m1")
    scheduler.advance(1.0)

    assert engine.spoken == []
    assert engine.cancel_calls == 0


# ---------------------------------------------------------------
# Debounce and lifecycle
# ---------------------------------------------------------------

def test_speak_cancels_then_waits_for_debounce() -> None:
    controller, engine, scheduler = _make()

    controller.speak("hello there", "m1")
    assert engine.cancel_calls == 1
    assert controller.state == PlaybackState.SCHEDULED

    scheduler.advance(0.09)
    assert engine.spoken == []
    scheduler.advance(0.02)
    assert [u.text for u in engine.spoken] == ["hello there"]


def test_start_and_end_events_drive_speaking_id() -> None:
    started: list[str] = []
    changes: list[Optional[str]] = []
    controller, engine, scheduler = _make(on_speaking_change=changes.append)

    controller.speak("hello", "m1", on_start=lambda: started.append("m1"))
    scheduler.advance(0.1)
    engine.spoken[0].on_start()

    assert controller.speaking_id == "m1"
    assert controller.state == PlaybackState.SPEAKING
    assert started == ["m1"]

    engine.spoken[0].on_end()
    assert controller.speaking_id is None
    assert controller.state == PlaybackState.IDLE
    assert changes == ["m1", None]


def test_same_id_toggles_playback_off() -> None:
    controller, engine, scheduler = _make()
    controller.speak("hello", "id1", Gender.FEMALE)
    scheduler.advance(0.1)
    engine.spoken[0].on_start()
    cancels_before = engine.cancel_calls

    controller.speak("hello", "id1", Gender.FEMALE)
    scheduler.advance(1.0)

    assert controller.speaking_id is None
    assert len(engine.spoken) == 1
    assert engine.cancel_calls == cancels_before + 1


def test_rapid_speak_only_plays_latest() -> None:
    changes: list[Optional[str]] = []
    controller, engine, scheduler = _make(on_speaking_change=changes.append)

    controller.speak("first", "id1")
    controller.speak("second", "id2")
    scheduler.advance(0.5)

    assert [u.text for u in engine.spoken] == ["second"]
    engine.spoken[0].on_start()
    assert changes == ["id2"]


def test_superseded_utterance_callbacks_do_not_clobber_successor() -> None:
    controller, engine, scheduler = _make()
    controller.speak("first", "id1")
    scheduler.advance(0.1)
    first = engine.spoken[0]
    first.on_start()

    controller.speak("second", "id2")
    assert controller.speaking_id is None
    scheduler.advance(0.1)
    second = engine.spoken[1]
    second.on_start()

    first.on_error("interrupted")
    first.on_end()
    first.on_start()

    assert controller.speaking_id == "id2"
    second.on_end()
    assert controller.speaking_id is None


def test_same_id_after_toggle_ignores_old_completion() -> None:
    controller, engine, scheduler = _make()
    controller.speak("hello", "id1")
    scheduler.advance(0.1)
    old = engine.spoken[0]
    old.on_start()
    controller.speak("hello", "id1")  # toggle off

    controller.speak("hello", "id1")
    scheduler.advance(0.1)
    engine.spoken[1].on_start()
    old.on_end()

    assert controller.speaking_id == "id1"


def test_zero_debounce_still_supersedes() -> None:
    controller, engine, scheduler = _make(debounce_s=0.0)

    controller.speak("first", "id1")
    controller.speak("second", "id2")
    scheduler.advance(0.0)

    assert [u.text for u in engine.spoken] == ["second"]


# ---------------------------------------------------------------
# Keep-alive
# ---------------------------------------------------------------

def test_keep_alive_resumes_only_while_speaking() -> None:
    controller, engine, scheduler = _make(keep_alive_s=10.0)
    controller.speak("a long paragraph", "m1")
    scheduler.advance(0.1)
    engine.spoken[0].on_start()

    engine.speaking = True
    scheduler.advance(10.0)
    assert engine.resume_calls == 1

    engine.speaking = False
    scheduler.advance(10.0)
    assert engine.resume_calls == 1

    engine.speaking = True
    scheduler.advance(10.0)
    assert engine.resume_calls == 2

    engine.spoken[0].on_end()
    scheduler.advance(60.0)
    assert engine.resume_calls == 2
    assert scheduler.active() == []


def test_keep_alive_disabled_with_zero_interval() -> None:
    controller, engine, scheduler = _make(keep_alive_s=0)
    controller.speak("hello", "m1")
    scheduler.advance(0.1)
    engine.spoken[0].on_start()

    assert scheduler.active() == []


# ---------------------------------------------------------------
# Errors, cancel and teardown
# ---------------------------------------------------------------

def test_unexpected_engine_error_is_logged_and_clears_state(caplog: pytest.LogCaptureFixture) -> None:
    controller, engine, scheduler = _make()
    controller.speak("hello", "m1")
    scheduler.advance(0.1)
    engine.spoken[0].on_start()

    with caplog.at_level(logging.ERROR, logger="playback_controller"):
        engine.spoken[0].on_error("synthesis-failed")

    assert controller.speaking_id is None
    assert any("synthesis-failed" in r.getMessage() for r in caplog.records)


def test_expected_cancellation_errors_are_not_logged(caplog: pytest.LogCaptureFixture) -> None:
    controller, engine, scheduler = _make()
    controller.speak("hello", "m1")
    scheduler.advance(0.1)
    engine.spoken[0].on_start()

    with caplog.at_level(logging.ERROR, logger="playback_controller"):
        engine.spoken[0].on_error("canceled")

    assert controller.speaking_id is None
    assert caplog.records == []


def test_engine_speak_failure_does_not_raise() -> None:
    engine = FakeSynthesisEngine()
    engine.fail_speak = True
    controller, engine, scheduler = _make(engine)

    controller.speak("hello", "m1")
    scheduler.advance(0.1)

    assert controller.state == PlaybackState.IDLE
    assert controller.speaking_id is None


def test_cancel_is_idempotent() -> None:
    controller, engine, scheduler = _make()

    controller.cancel()
    controller.cancel()

    assert engine.cancel_calls == 2
    assert controller.speaking_id is None


def test_cancel_drops_pending_utterance() -> None:
    controller, engine, scheduler = _make()
    controller.speak("hello", "m1")

    controller.cancel()
    scheduler.advance(1.0)

    assert engine.spoken == []
    assert controller.state == PlaybackState.IDLE


def test_dispose_releases_timers_and_listener() -> None:
    controller, engine, scheduler = _make()
    controller.speak("hello", "m1")
    scheduler.advance(0.1)
    engine.spoken[0].on_start()
    assert scheduler.active()

    controller.dispose()
    controller.speak("again", "m2")
    scheduler.advance(60.0)

    assert scheduler.active() == []
    assert engine.listeners == []
    assert len(engine.spoken) == 1
    assert controller.speaking_id is None


# ---------------------------------------------------------------
# Voice selection
# ---------------------------------------------------------------

@pytest.mark.parametrize("gender,voice_id", [(Gender.MALE, "david"), (Gender.FEMALE, "samantha"), ("female", "samantha")])
def test_voice_selected_by_gender(gender, voice_id: str) -> None:  # noqa: ANN001
    controller, engine, scheduler = _make()

    controller.speak("hello", "m1", gender)
    scheduler.advance(0.1)

    assert engine.spoken[0].voice is not None
    assert engine.spoken[0].voice.voice_id == voice_id
