"""Command-line pronunciation practice."""

from __future__ import annotations

import argparse
import logging
import sys
import threading
import time
from typing import Optional, Sequence, Union

from capture_controller import SpeechCaptureController
from config import JsonConfigStore, SpeechSettings, load_settings
from errors import CaptureError
from hotkey import PushToTalkHotkey
from interfaces import ConfigStore
from models import CaptureState, Gender, PracticeMode, SentenceFeedback, VocabularyFeedback
from playback_controller import SpeechPlaybackController
from recognizer import DashscopeRecognitionEngine
from scorer import compare
from synthesizer import Pyttsx3SynthesisEngine

logger = logging.getLogger(__name__)

Feedback = Union[SentenceFeedback, VocabularyFeedback]


def format_feedback(feedback: Feedback) -> str:
    if isinstance(feedback, VocabularyFeedback):
        verdict = "correct" if feedback.is_match else "try again"
        return (
            f"{verdict}: accuracy {feedback.accuracy_score}, "
            f"pronunciation {feedback.pronunciation_score}, stress {feedback.stress_score}"
        )
    marked = " ".join(
        word if ok else f"[{word}]"
        for word, ok in zip(feedback.target_words, feedback.per_word_correctness)
    )
    return f"{marked}\naccuracy {feedback.accuracy}%"


class PracticeSession:
    """Wires playback, capture and scoring the way the reading practice page does."""

    def __init__(
        self,
        target: str,
        mode: PracticeMode,
        gender: Gender,
        settings: SpeechSettings,
        capture_engine: Optional[DashscopeRecognitionEngine],
        synthesis_engine: Optional[Pyttsx3SynthesisEngine],
    ) -> None:
        self.target = target
        self.mode = mode
        self.gender = gender
        self.last_feedback: Optional[Feedback] = None

        self.capture = SpeechCaptureController(
            capture_engine,
            language=settings.language,
            on_state_change=self._on_capture_state,
            on_transcript=self._on_transcript,
            on_error=self._on_capture_error,
        )
        self.playback = SpeechPlaybackController(
            synthesis_engine,
            language=settings.language,
            debounce_s=settings.debounce_s,
            keep_alive_s=settings.keep_alive_s,
        )

    def wait_until_ready(self, timeout_s: float = 3.0) -> bool:
        deadline = time.monotonic() + timeout_s
        while not self.playback.is_ready and time.monotonic() < deadline:
            time.sleep(0.05)
        return self.playback.is_ready

    def read_target(self) -> None:
        self.playback.speak(self.target, self.target, self.gender)

    def begin_attempt(self) -> None:
        self.playback.cancel()
        self.capture.reset_transcript()
        self.capture.start()

    def end_attempt(self) -> None:
        self.capture.stop()

    def close(self) -> None:
        self.playback.dispose()
        self.capture.dispose()

    def _on_capture_state(self, from_state: CaptureState, to_state: CaptureState) -> None:
        if to_state == CaptureState.LISTENING:
            print("Listening...")

    def _on_transcript(self, text: str) -> None:
        if text:
            print(f"  > {text}")

    def _on_capture_error(self, error: CaptureError) -> None:
        print(f"! {error.message}", file=sys.stderr)

    def score(self) -> Optional[Feedback]:
        transcript = self.capture.text
        if not transcript or self.capture.is_listening:
            return None
        self.last_feedback = compare(self.mode, self.target, transcript)
        return self.last_feedback


def build_engines(
    settings: SpeechSettings,
) -> tuple[Optional[DashscopeRecognitionEngine], Optional[Pyttsx3SynthesisEngine]]:
    capture_engine = None
    if DashscopeRecognitionEngine.is_available():
        capture_engine = DashscopeRecognitionEngine(api_key=settings.api_key)
    else:
        logger.warning("dashscope/sounddevice missing, speech capture disabled")

    synthesis_engine = None
    if Pyttsx3SynthesisEngine.is_available():
        synthesis_engine = Pyttsx3SynthesisEngine(rate=settings.speech_rate)
        try:
            synthesis_engine.start()
        except RuntimeError as exc:
            logger.warning("Speech synthesis disabled: %s", exc)
            synthesis_engine = None
    return capture_engine, synthesis_engine


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Practise reading a sentence or a word aloud.")
    parser.add_argument("target", nargs="?", help="text to practise")
    parser.add_argument("--mode", choices=[m.value for m in PracticeMode], default=PracticeMode.SENTENCE.value)
    parser.add_argument("--gender", choices=[g.value for g in Gender], default=Gender.FEMALE.value)
    parser.add_argument("--no-playback", action="store_true", help="do not read the target aloud first")
    parser.add_argument("--set-api-key", metavar="KEY", help="store the DashScope API key and exit")
    parser.add_argument("--list-voices", action="store_true", help="print the synthesis voices and exit")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    store: ConfigStore = JsonConfigStore()
    if args.set_api_key is not None:
        store.set_api_key(args.set_api_key)
        print("API key saved.")
        return 0
    if not args.target and not args.list_voices:
        print("Nothing to practise: pass the target text.", file=sys.stderr)
        return 2

    settings = load_settings(store)
    capture_engine, synthesis_engine = build_engines(settings)
    session = PracticeSession(
        target=args.target or "",
        mode=PracticeMode(args.mode),
        gender=Gender(args.gender),
        settings=settings,
        capture_engine=capture_engine,
        synthesis_engine=synthesis_engine,
    )

    if synthesis_engine is not None:
        session.wait_until_ready()

    if args.list_voices:
        for voice in session.playback.voices:
            print(f"{voice.lang:8} {voice.name}")
        session.close()
        return 0
    if not session.capture.has_support:
        print("Speech recognition is not available on this system.", file=sys.stderr)
        session.close()
        return 1

    def on_release() -> None:
        session.end_attempt()
        if capture_engine is not None:
            capture_engine.join(timeout=30.0)
        feedback = session.score()
        if feedback is not None:
            print(format_feedback(feedback))

    hotkey = PushToTalkHotkey(hotkey_name=settings.hotkey)
    hotkey.start(
        on_press=session.begin_attempt,
        on_release=lambda: threading.Thread(target=on_release, daemon=True).start(),
    )
    if not args.no_playback and session.playback.is_supported:
        session.read_target()
    print(f"Hold {settings.hotkey} and read: {session.target}  (Ctrl+C to quit)")

    try:
        while True:
            time.sleep(1.0)
    except KeyboardInterrupt:
        pass
    finally:
        hotkey.stop()
        session.close()
        if synthesis_engine is not None:
            synthesis_engine.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
