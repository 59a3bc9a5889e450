"""Core data models for speech practice."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

HIGH_QUALITY_VENDORS = re.compile(r"google|microsoft", re.IGNORECASE)


class CaptureState(str, Enum):
    IDLE = "IDLE"
    LISTENING = "LISTENING"
    ERRORING = "ERRORING"


class PlaybackState(str, Enum):
    IDLE = "IDLE"
    SCHEDULED = "SCHEDULED"
    SPEAKING = "SPEAKING"


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"

    @property
    def opposite(self) -> "Gender":
        return Gender.FEMALE if self is Gender.MALE else Gender.MALE


class PracticeMode(str, Enum):
    SENTENCE = "sentence"
    VOCABULARY = "vocabulary"


@dataclass(frozen=True)
class RecognitionResult:
    transcripts: tuple[str, ...]
    is_final: bool = False

    @property
    def best(self) -> str:
        return self.transcripts[0] if self.transcripts else ""


@dataclass(frozen=True)
class VoiceDescriptor:
    name: str
    lang: str
    voice_id: str = ""

    @property
    def is_high_quality(self) -> bool:
        return bool(HIGH_QUALITY_VENDORS.search(self.name))


@dataclass
class Utterance:
    text: str
    voice: Optional[VoiceDescriptor] = None
    on_start: Optional[Callable[[], None]] = None
    on_end: Optional[Callable[[], None]] = None
    on_error: Optional[Callable[[str], None]] = None


@dataclass(frozen=True)
class PlaybackRequest:
    utterance_id: str
    text: str
    gender: Gender = Gender.FEMALE
    generation: int = 0


@dataclass(frozen=True)
class SentenceFeedback:
    per_word_correctness: tuple[bool, ...]
    accuracy: int
    target_words: tuple[str, ...] = field(default_factory=tuple)

    @property
    def incorrect_indices(self) -> list[int]:
        return [i for i, ok in enumerate(self.per_word_correctness) if not ok]


@dataclass(frozen=True)
class VocabularyFeedback:
    is_match: bool
    accuracy_score: int
    pronunciation_score: int
    stress_score: int
    similarity: int
