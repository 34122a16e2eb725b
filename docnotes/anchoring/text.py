"""Shared text utilities for anchor matching."""

from __future__ import annotations

from typing import List, Optional, Sequence

from rapidfuzz.distance import Levenshtein

from .config import EngineConfig, load_config
from .types import MatchQuality


def find_all_occurrences(text: str, needle: str, *, case_sensitive: bool = True) -> List[int]:
    """Return every start offset of ``needle`` in ``text``, overlaps included."""

    if not needle:
        return []
    haystack = text if case_sensitive else text.lower()
    search = needle if case_sensitive else needle.lower()

    positions: List[int] = []
    position = haystack.find(search)
    while position != -1:
        positions.append(position)
        position = haystack.find(search, position + 1)
    return positions


def closest_offset(positions: Sequence[int], target: int) -> int:
    """Pick the position nearest to ``target``; the earliest one wins ties."""

    best = positions[0]
    for position in positions[1:]:
        if abs(position - target) < abs(best - target):
            best = position
    return best


def boundary_adjustment(text: str, position: int, separator: str = "\n") -> int:
    """Approximate the extra document positions taken by block boundaries.

    Plain text drops the structural tokens that open and close blocks, so
    each separator before ``position`` is counted as one extra position.
    This is a heuristic and is off by the opening token of the first block.

    Recovering an already recovered anchor only finds the same text again
    while the adjusted start stays within the fuzzy window padding of the
    match. A fuzzy hit with more separators before it than that padding is
    searched for around the wrong place on the next run.
    """

    if not separator:
        return 0
    return text.count(separator, 0, max(position, 0))


def edit_distance(left: str, right: str, score_cutoff: Optional[int] = None) -> int:
    """Levenshtein distance between two strings.

    With ``score_cutoff`` set, any distance above it is reported as
    ``score_cutoff + 1``.
    """

    return Levenshtein.distance(left, right, score_cutoff=score_cutoff)


def classify_match_quality(
    expected: str,
    actual: str,
    config: EngineConfig | None = None,
) -> MatchQuality:
    """Grade how closely ``actual`` reproduces the ``expected`` snapshot."""

    if expected == actual:
        return "exact"
    if expected.lower() == actual.lower():
        return "case-insensitive"

    engine_config = config or load_config(None)
    similarity = Levenshtein.normalized_similarity(expected.lower(), actual.lower())
    if similarity >= engine_config.quality_threshold("fuzzy_similarity"):
        return "fuzzy"
    if similarity >= engine_config.quality_threshold("poor_similarity"):
        return "poor"
    return "none"


def clamp(value: int, lower: int, upper: int) -> int:
    return max(lower, min(value, upper))
