"""Textual pronunciation scoring against a target phrase.

Two comparison modes are offered:

* sentence mode: strict positional word matching for reading practice;
* vocabulary mode: character-level similarity for a single word, turned
  into accuracy, pronunciation and stress scores.

Everything here is pure and deterministic unless a ``random.Random`` is
passed to :func:`compare_word`.
"""

from __future__ import annotations

import math
import random
from typing import Optional, Union

from edit_distance import round_half_up, similarity as text_similarity
from models import PracticeMode, SentenceFeedback, VocabularyFeedback
from normalizer import clean_word, normalize_phrase, tokenize

ACCURACY_THRESHOLD = 75

# (pronunciation above, stress low, stress high)
STRESS_BANDS = (
    (90, 90, 100),
    (70, 75, 95),
    (40, 50, 75),
    (-1, 20, 50),
)

PERFECT_PRONUNCIATION = (96, 100)
PERFECT_STRESS = (91, 100)
JITTER_WINDOW = (50, 98)


def clamp_score(value: float) -> int:
    return int(min(100, max(0, value)))


def compare_sentence(target: str, spoken: str) -> SentenceFeedback:
    target_words = tokenize(target)
    spoken_words = tokenize(spoken)

    correctness = []
    for index, word in enumerate(target_words):
        said = spoken_words[index] if index < len(spoken_words) else ""
        correctness.append(clean_word(word) == clean_word(said))

    if not target_words:
        accuracy = 100
    else:
        accuracy = round_half_up(sum(correctness) / len(target_words) * 100)

    return SentenceFeedback(
        per_word_correctness=tuple(correctness),
        accuracy=clamp_score(accuracy),
        target_words=tuple(target_words),
    )


def accuracy_from_similarity(similarity: int) -> int:
    if similarity > ACCURACY_THRESHOLD:
        return 85 + math.floor((similarity - ACCURACY_THRESHOLD) / 25 * 15)
    return math.floor(similarity * 0.9)


def stress_from_pronunciation(pronunciation: int, rng: Optional[random.Random] = None) -> int:
    """Bucket a pronunciation score into its stress band.

    Without ``rng`` the stress score follows the pronunciation score,
    clamped into the band, which keeps the mapping monotonic. With it the
    score is drawn uniformly from the band.
    """
    for above, low, high in STRESS_BANDS:
        if pronunciation > above:
            if rng is not None:
                return rng.randint(low, high)
            return min(high, max(low, pronunciation))
    return STRESS_BANDS[-1][1]


def compare_word(
    target: str,
    spoken: str,
    rng: Optional[random.Random] = None,
) -> VocabularyFeedback:
    target_clean = normalize_phrase(target)
    spoken_clean = normalize_phrase(spoken)

    similarity = text_similarity(target_clean, spoken_clean)
    is_match = target_clean == spoken_clean

    if is_match:
        accuracy = 100
        if rng is not None:
            pronunciation = rng.randint(*PERFECT_PRONUNCIATION)
            stress = rng.randint(*PERFECT_STRESS)
        else:
            pronunciation = PERFECT_PRONUNCIATION[1]
            stress = PERFECT_STRESS[1]
    else:
        accuracy = accuracy_from_similarity(similarity)
        pronunciation = similarity
        if rng is not None and JITTER_WINDOW[0] < pronunciation < JITTER_WINDOW[1]:
            pronunciation += rng.randint(-3, 2)
        stress = stress_from_pronunciation(pronunciation, rng)

    return VocabularyFeedback(
        is_match=is_match,
        accuracy_score=clamp_score(accuracy),
        pronunciation_score=clamp_score(pronunciation),
        stress_score=clamp_score(stress),
        similarity=similarity,
    )


def compare(
    mode: Union[PracticeMode, str],
    target: str,
    spoken: str,
) -> Union[SentenceFeedback, VocabularyFeedback]:
    if PracticeMode(mode) is PracticeMode.VOCABULARY:
        return compare_word(target, spoken)
    return compare_sentence(target, spoken)
