"""Similarity primitives for thread matching.

All scores are normalized to [0, 1]:
- Subject similarity: edit distance over normalized subjects
- Participant overlap: Jaccard index over case-folded addresses
- Time proximity: linear decay inside a time window

Usage:
    from threadhub.engine.similarity import subject_similarity

    subject_similarity("Re: Project Kickoff", "project kickoff")  # 1.0
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

import regex

# Regex timeout for security (used in match operations)
REGEX_TIMEOUT = 1.0

# Reply/forward marker (Re:, Fwd:, FW:, ...), matched case-insensitively
SUBJECT_PREFIX_PATTERN = regex.compile(r"^\s*(?:re|fwd?)\s*:\s*", regex.IGNORECASE)

WHITESPACE_PATTERN = regex.compile(r"\s+")


def normalize_subject(subject: str) -> str:
    """Normalize subject by removing Re:/Fwd: prefixes and collapsing whitespace.

    Args:
        subject: Message subject

    Returns:
        Normalized subject for comparison
    """
    if not subject:
        return ""

    try:
        # Remove all Re:/Fwd: prefixes (can be chained)
        normalized = subject
        while True:
            new_normalized = SUBJECT_PREFIX_PATTERN.sub("", normalized, timeout=REGEX_TIMEOUT)
            if new_normalized == normalized:
                break
            normalized = new_normalized
        normalized = WHITESPACE_PATTERN.sub(" ", normalized, timeout=REGEX_TIMEOUT)
        return normalized.strip().lower()
    except (regex.error, TimeoutError):
        return " ".join(subject.split()).lower()


def edit_distance(a: str, b: str) -> int:
    """Levenshtein distance (single-character insert, delete, substitute)."""
    if a == b:
        return 0
    if len(a) < len(b):
        a, b = b, a
    if not b:
        return len(a)

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


def subject_similarity(subject_a: str, subject_b: str) -> float:
    """Similarity of two subjects after normalization.

    Returns 1.0 for equal normalized subjects (including two empty ones),
    otherwise 1 - distance / longer length.
    """
    normalized_a = normalize_subject(subject_a)
    normalized_b = normalize_subject(subject_b)

    if normalized_a == normalized_b:
        return 1.0

    max_length = max(len(normalized_a), len(normalized_b))
    return 1.0 - edit_distance(normalized_a, normalized_b) / max_length


def participant_overlap(participants_a: Iterable[str], participants_b: Iterable[str]) -> float:
    """Jaccard index of two address collections, case-insensitive.

    Two empty collections score 0.
    """
    set_a = {p.casefold() for p in participants_a}
    set_b = {p.casefold() for p in participants_b}

    union = set_a | set_b
    if not union:
        return 0.0
    return len(set_a & set_b) / len(union)


def time_proximity(time_a: datetime, time_b: datetime, window_hours: float) -> float:
    """Linear decay from 1 (same instant) to 0 (window edge or beyond)."""
    delta_hours = abs((time_a - time_b).total_seconds()) / 3600

    if window_hours <= 0:
        return 1.0 if delta_hours == 0 else 0.0
    if delta_hours > window_hours:
        return 0.0
    return 1.0 - delta_hours / window_hours
