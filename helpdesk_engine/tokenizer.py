"""Text normalisation shared by indexing, scoring and keyword extraction."""
from __future__ import annotations

import re
from typing import FrozenSet, Iterable, List, Optional

PUNCTUATION_PATTERN = re.compile(r"[^\w\s]|_")
MIN_TOKEN_LENGTH = 3

ENGLISH_STOP_WORDS: FrozenSet[str] = frozenset(
    {
        "a", "about", "after", "again", "all", "also", "am", "an", "and", "any",
        "are", "as", "at", "be", "been", "before", "being", "but", "by", "can",
        "could", "did", "do", "does", "doing", "for", "from", "get", "gets", "getting",
        "had", "has", "have", "having", "he", "her", "here", "him", "his", "how",
        "i", "if", "in", "into", "is", "it", "its", "just", "me", "my", "no", "of",
        "on", "or", "our", "out", "over", "please", "she", "should", "so", "some",
        "than", "that", "the", "their", "them", "then", "there", "these", "they",
        "this", "those", "to", "too", "up", "very", "was", "we", "were", "what",
        "when", "where", "which", "while", "who", "why", "will", "with", "would",
        "you", "your",
    }
)

DOMAIN_FILLER_WORDS: FrozenSet[str] = frozenset(
    {"issue", "problem", "error", "not", "working", "cannot", "unable", "access", "the"}
)

STOP_WORDS: FrozenSet[str] = ENGLISH_STOP_WORDS | DOMAIN_FILLER_WORDS

# Word clouds keep domain vocabulary such as "error" or "access".
WORD_CLOUD_STOP_WORDS: FrozenSet[str] = ENGLISH_STOP_WORDS


def normalize_text(text: Optional[str]) -> str:
    """Lowercase ``text`` and strip everything but letters, digits and whitespace."""
    return PUNCTUATION_PATTERN.sub("", (text or "").lower())


def tokenize(text: Optional[str], *, stop_words: Iterable[str] = STOP_WORDS) -> List[str]:
    """Split ``text`` into significant terms, preserving order.

    Tokens shorter than three characters and members of ``stop_words`` are
    dropped. No stemming is applied.
    """
    excluded = stop_words if isinstance(stop_words, (set, frozenset)) else frozenset(stop_words)
    return [
        token
        for token in normalize_text(text).split()
        if len(token) >= MIN_TOKEN_LENGTH and token not in excluded
    ]


def unique_terms(tokens: Iterable[str]) -> List[str]:
    """Deduplicate ``tokens`` keeping first occurrence order."""
    seen: set[str] = set()
    ordered: List[str] = []
    for token in tokens:
        if token not in seen:
            seen.add(token)
            ordered.append(token)
    return ordered
