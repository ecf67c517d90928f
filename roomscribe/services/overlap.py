"""Overlap removal and ordered assembly for chunked transcripts.

Chunks are recorded with a deliberate tail overlap so no speech is lost at the
boundary. The price is that the beginning of chunk N repeats the end of chunk
N-1. ``stitch`` finds the longest word-level overlap (exact or fuzzy) and
drops it from the newer fragment; ``assemble_transcript`` applies it across an
index-ordered list of chunks.
"""

from __future__ import annotations

import re
from typing import Iterable, Optional

from roomscribe.config import OverlapConfig

_WHITESPACE_RE = re.compile(r"\s+")
_BRACKETED_RE = re.compile(r"\[.*?\]")
_PARENTHESISED_RE = re.compile(r"\(.*?\)")

DEFAULT_OVERLAP = OverlapConfig()


def levenshtein_distance(a: str, b: str) -> int:
    """Character edit distance between ``a`` and ``b``."""
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)
    if len(a) < len(b):
        a, b = b, a

    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            cost = 0 if char_a == char_b else 1
            current.append(
                min(
                    previous[j] + 1,
                    current[j - 1] + 1,
                    previous[j - 1] + cost,
                )
            )
        previous = current
    return previous[-1]


def similarity(a: str, b: str) -> float:
    """Normalized similarity in [0, 1]: ``(max_len - distance) / max_len``."""
    max_len = max(len(a), len(b))
    if max_len == 0:
        return 1.0
    return (max_len - levenshtein_distance(a, b)) / max_len


def clean_transcript_text(text: str) -> str:
    """Drop non-speech annotations like ``[Music]`` or ``(laughs)`` and collapse whitespace."""
    text = _BRACKETED_RE.sub("", text)
    text = _PARENTHESISED_RE.sub("", text)
    return _WHITESPACE_RE.sub(" ", text).strip()


def _phrases_match(a: str, b: str, words: int, config: OverlapConfig) -> bool:
    if a == b:
        return True
    if words < config.fuzzy_min_words:
        return False
    return similarity(a, b) >= config.similarity_threshold


def stitch(
    previous_text: str,
    new_text: str,
    config: Optional[OverlapConfig] = None,
) -> str:
    """Return ``new_text`` without the words it repeats from ``previous_text``.

    Args:
        previous_text: Raw transcript of the temporally preceding chunk
        new_text: Raw transcript of the chunk being appended
        config: Overlap thresholds (defaults to ``OverlapConfig()``)

    Returns:
        ``new_text`` with its leading overlap removed, or ``new_text``
        unchanged when no overlap of at least ``min_overlap_words`` is found.
    """
    config = config or DEFAULT_OVERLAP
    if not previous_text or not new_text:
        return new_text

    prev_words = previous_text.split()[-config.context_words:]
    new_words = new_text.split()
    if len(prev_words) < config.min_overlap_words or len(new_words) < config.min_overlap_words:
        return new_text

    largest = min(config.max_overlap_words, len(prev_words), len(new_words))
    for size in range(largest, config.min_overlap_words - 1, -1):
        prev_end = " ".join(prev_words[-size:]).lower()
        new_start = " ".join(new_words[:size]).lower()
        if _phrases_match(prev_end, new_start, size, config):
            return " ".join(new_words[size:])

    return new_text


def assemble_transcript(
    ordered_chunks: Iterable[tuple[int, str]],
    config: Optional[OverlapConfig] = None,
    no_overlap_indices: Optional[set[int]] = None,
) -> str:
    """Join index-ordered chunk texts into one transcript.

    Each chunk after the first is stitched against the previous chunk's *raw*
    text, not against the running output. Chunks listed in
    ``no_overlap_indices`` were recorded without overlap and are appended as-is.
    Missing indices are simply gaps.
    """
    no_overlap_indices = no_overlap_indices or set()
    parts: list[str] = []
    last_text = ""

    for index, text in ordered_chunks:
        if last_text and index not in no_overlap_indices:
            cleaned = stitch(last_text, text, config)
        else:
            cleaned = text
        if cleaned and cleaned.strip():
            parts.append(cleaned)
        last_text = text

    return _WHITESPACE_RE.sub(" ", " ".join(parts)).strip()
