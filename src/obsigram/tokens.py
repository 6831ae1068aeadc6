"""
Tokenizer and overlap scoring shared by the classifier and graph linker.
"""

import re
from typing import Collection, Iterable

_ALNUM_SPLIT = re.compile(r"[^a-z0-9]+")
_WORD_SPLIT = re.compile(r"[\s,./:;!?()\[\]{}\"']+")
_WORD_STRIP = re.compile(r"[^a-z0-9\u4e00-\u9fff-]")


def normalize(text: str) -> str:
    return text.lower()


def tokenize(text: str) -> list[str]:
    """Split text into lower-case [a-z0-9] runs, dropping single characters."""
    return [token for token in _ALNUM_SPLIT.split(normalize(text)) if len(token) > 1]


def normalize_word(word: str) -> str:
    """Lower-case a word and keep only letters, digits, hyphens and CJK."""
    return _WORD_STRIP.sub("", word.lower())


def tokenize_words(text: str) -> list[str]:
    """
    Split prose on whitespace and punctuation.

    Hyphenated words stay whole, so "react-doctor" is one token here while
    tokenize() would give two.
    """
    words = (normalize_word(piece) for piece in _WORD_SPLIT.split(text))
    return [word for word in words if len(word) > 1]


def count_hits(tokens: Collection[str], vocabulary: Iterable[str]) -> int:
    """Count vocabulary entries present in tokens."""
    return sum(1 for word in vocabulary if word in tokens)


def overlap_score(tokens: Iterable[str], vocabulary: Collection[str], weight: int) -> int:
    """Score `weight` for every token (with repeats) found in vocabulary."""
    return sum(weight for token in tokens if token in vocabulary)
