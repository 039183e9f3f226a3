"""Rule-of-thumb text measurements shared by the filter, sanitizer and optimizer.

These are heuristics for English prose, not linguistic analysis.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

_SENTENCE_SPLIT = re.compile(r"[.!?]+")
_VOWEL_GROUPS = re.compile(r"[aeiouy]+")
_NON_ALPHA = re.compile(r"[^a-z]")
# Placeholders written by earlier rewrite stages, e.g. "[removed]".
_PLACEHOLDER = re.compile(r"\[[^\]]*\]")


def split_sentences(text: str) -> list[str]:
    """Split on runs of terminal punctuation, dropping blank pieces."""
    return [s.strip() for s in _SENTENCE_SPLIT.split(text) if s.strip()]


def split_words(text: str) -> list[str]:
    return text.split()


def count_syllables(word: str) -> int:
    """Approximate syllables by counting vowel groups.

    Words of three characters or fewer count as one syllable; a word with
    no letters at all counts as zero.
    """
    if len(word) <= 3:
        return 1
    letters = _NON_ALPHA.sub("", word.lower())
    if not letters:
        return 0
    syllables = len(_VOWEL_GROUPS.findall(letters))
    if letters.endswith("e") and syllables > 1:
        syllables -= 1  # silent e
    return max(1, syllables)


def strip_placeholders(text: str) -> str:
    return _PLACEHOLDER.sub(" ", text)


# --- Span bookkeeping ---


@dataclass
class Span:
    """A matched region of a string, carrying an opaque payload."""

    start: int
    end: int
    payload: object = None


def merge_overlapping(spans: list[Span], combine) -> list[Span]:
    """Collapse overlapping spans, left to right.

    ``combine(kept, other)`` returns the payload for the merged span. The
    merged span covers the union of both regions.
    """
    merged: list[Span] = []
    for span in sorted(spans, key=lambda s: (s.start, -(s.end - s.start))):
        if merged and span.start < merged[-1].end:
            last = merged[-1]
            last.payload = combine(last.payload, span.payload)
            last.end = max(last.end, span.end)
        else:
            merged.append(Span(span.start, span.end, span.payload))
    return merged


def rewrite_spans(text: str, replacements: list[tuple[Span, str]]) -> str:
    """Replace non-overlapping spans in one pass, right to left."""
    for span, new_text in sorted(replacements, key=lambda r: r[0].start, reverse=True):
        text = text[: span.start] + new_text + text[span.end:]
    return text
