"""Character-level edit distance and similarity."""

from __future__ import annotations

import math


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive values, as score displays expect."""
    return int(math.floor(value + 0.5))


def levenshtein(a: str, b: str) -> int:
    """Classic Levenshtein distance keeping only two rows of the table.

    The longer string drives the outer loop so the rows are sized by the
    shorter one.
    """
    if len(a) < len(b):
        a, b = b, a
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a):
        current = [i + 1]
        for j, cb in enumerate(b):
            insertions = previous[j + 1] + 1
            deletions = current[j] + 1
            substitutions = previous[j] + (ca != cb)
            current.append(min(insertions, deletions, substitutions))
        previous = current
    return previous[-1]


def similarity(a: str, b: str) -> int:
    """Normalized inverse edit distance in [0, 100]."""
    max_len = max(len(a), len(b))
    if max_len == 0:
        return 100
    distance = levenshtein(a, b)
    return round_half_up(max(0.0, 1 - distance / max_len) * 100)
