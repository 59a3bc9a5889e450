"""Voice selection for speech synthesis."""

from __future__ import annotations

import re
from typing import Optional, Sequence

from models import Gender, VoiceDescriptor

# Best-effort name keywords; word boundaries keep "Female" out of the male set.
GENDER_KEYWORDS = {
    Gender.FEMALE: re.compile(
        r"\b(female|woman|zira|susan|eva|linda|heather|samantha|nuance)\b", re.IGNORECASE
    ),
    Gender.MALE: re.compile(r"\b(male|man|david|mark|tom|alex|daniel)\b", re.IGNORECASE),
}


def _base_language(tag: str) -> str:
    return tag.replace("_", "-").split("-")[0].lower()


def language_candidates(voices: Sequence[VoiceDescriptor], language: str) -> list[VoiceDescriptor]:
    """Narrow the catalogue to the target language, then to its exact region."""
    base = language.split("-")[0].lower()
    matching = [v for v in voices if _base_language(v.lang) == base]
    if not matching:
        matching = list(voices)
    regional = [v for v in matching if v.lang.lower() == language.lower()]
    return regional or matching


def select_voice(
    voices: Sequence[VoiceDescriptor],
    gender: Gender,
    language: str = "en-US",
) -> Optional[VoiceDescriptor]:
    candidates = language_candidates(voices, language)
    if not candidates:
        return None

    wanted = GENDER_KEYWORDS[gender]
    opposite = GENDER_KEYWORDS[gender.opposite]

    cascade = (
        lambda v: v.is_high_quality and bool(wanted.search(v.name)),
        lambda v: bool(wanted.search(v.name)),
        lambda v: v.is_high_quality and not opposite.search(v.name),
        lambda v: not opposite.search(v.name),
    )
    for matches in cascade:
        for voice in candidates:
            if matches(voice):
                return voice
    return candidates[0]
