"""Token normalization for transcript comparison."""

from __future__ import annotations

import re
from typing import List, Optional

PUNCTUATION = '.,!?;:"“”'

_PUNCTUATION_RE = re.compile("[" + re.escape(PUNCTUATION) + "]")


def clean_word(word: Optional[str]) -> str:
    """Lowercase a token and strip the comparison punctuation set."""
    if not word:
        return ""
    return _PUNCTUATION_RE.sub("", word.lower())


def tokenize(text: Optional[str]) -> List[str]:
    """Split on whitespace, keeping original casing and punctuation."""
    if not text:
        return []
    return text.split()


def normalize_phrase(text: Optional[str]) -> str:
    return " ".join(token for token in (clean_word(t) for t in tokenize(text)) if token)
