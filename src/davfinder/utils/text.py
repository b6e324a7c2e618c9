"""Text helpers for query tokenising, content cleaning and match snippets."""

from __future__ import annotations

import re
from typing import Iterable, List

STOP_WORDS = frozenset(
    {
        "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
        "of", "with", "by", "is", "are", "was", "were", "be", "been", "have",
        "has", "had", "do", "does", "did", "will", "would", "could", "should",
        "this", "that", "these", "those",
    }
)

MAX_CONTENT_CHARS = 100_000

_NON_WORD = re.compile(r"[^\w\s]")
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_WHITESPACE = re.compile(r"\s+")


def tokenize_query(query: str) -> List[str]:
    """Lowercase alphanumeric terms of ``query`` minus stop words."""
    cleaned = _NON_WORD.sub(" ", query.lower())
    return [term for term in cleaned.split() if term not in STOP_WORDS]


def clean_text_content(text: str, *, max_chars: int = MAX_CONTENT_CHARS) -> str:
    """Strip control characters, collapse whitespace and bound the length."""
    text = _CONTROL_CHARS.sub("", text)
    text = _WHITESPACE.sub(" ", text)
    return text[:max_chars].strip()


def count_occurrences(text: str, term: str) -> int:
    if not term:
        return 0
    return text.lower().count(term.lower())


def find_highlights(text: str, terms: Iterable[str]) -> List[str]:
    """Return the literal text matched by each term (first occurrence), deduplicated."""
    lowered = text.lower()
    highlights: List[str] = []
    for term in terms:
        index = lowered.find(term.lower())
        if index == -1:
            continue
        actual = text[index : index + len(term)]
        if actual not in highlights:
            highlights.append(actual)
    return highlights


def find_context(
    content: str, term: str, *, context_size: int = 50, max_contexts: int = 5
) -> List[str]:
    """Snippets of ``content`` surrounding each occurrence of ``term``."""
    contexts: List[str] = []
    if not term:
        return contexts

    lowered = content.lower()
    needle = term.lower()
    index = lowered.find(needle)
    while index != -1 and len(contexts) < max_contexts:
        start = max(0, index - context_size)
        end = min(len(content), index + len(needle) + context_size)
        contexts.append(content[start:end].strip())
        index = lowered.find(needle, index + len(needle))
    return contexts
