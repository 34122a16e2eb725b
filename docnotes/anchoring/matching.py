"""Multi-strategy search for an anchor's text snapshot."""

from __future__ import annotations

import math
from typing import Optional

from .config import EngineConfig
from .text import closest_offset, edit_distance, find_all_occurrences
from .types import TextMatch


def find_text_in_document(
    document_text: str,
    anchor_text: str,
    original_start: int,
    config: EngineConfig,
) -> Optional[TextMatch]:
    """Locate ``anchor_text`` nearest to ``original_start``.

    Strategies are tried in order and the first hit wins: exact
    (case-sensitive), case-insensitive, then a fuzzy sliding window around
    the original position. Returned positions are plain-text offsets.
    """

    return (
        exact_match(document_text, anchor_text, original_start)
        or case_insensitive_match(document_text, anchor_text, original_start)
        or fuzzy_match(document_text, anchor_text, original_start, config)
    )


def exact_match(document_text: str, anchor_text: str, original_start: int) -> Optional[TextMatch]:
    positions = find_all_occurrences(document_text, anchor_text, case_sensitive=True)
    if not positions:
        return None
    position = closest_offset(positions, original_start)
    return TextMatch(position=position, length=len(anchor_text), quality="exact")


def case_insensitive_match(
    document_text: str,
    anchor_text: str,
    original_start: int,
) -> Optional[TextMatch]:
    positions = find_all_occurrences(document_text, anchor_text, case_sensitive=False)
    if not positions:
        return None
    position = closest_offset(positions, original_start)
    return TextMatch(position=position, length=len(anchor_text), quality="case-insensitive")


def fuzzy_match(
    document_text: str,
    anchor_text: str,
    original_start: int,
    config: EngineConfig,
) -> Optional[TextMatch]:
    """Slide a window of ``len(anchor_text)`` around the original position.

    The candidate with the smallest case-insensitive edit distance is kept
    when that distance is within the allowed ratio of the anchor length.
    """

    width = len(anchor_text)
    padding = int(config.fuzzy("window_padding", 50))
    max_distance = math.floor(width * float(config.fuzzy("max_distance_ratio", 0.2)))

    search_start = max(0, original_start - padding)
    search_end = min(len(document_text), original_start + width + padding)
    needle = anchor_text.lower()

    best: Optional[TextMatch] = None
    for position in range(search_start, search_end - width + 1):
        window = document_text[position:position + width].lower()
        distance = edit_distance(needle, window, score_cutoff=max_distance)
        if distance > max_distance:
            continue
        if best is None or distance < best.distance:
            best = TextMatch(position=position, length=width, quality="fuzzy", distance=distance)
            if distance == 0:
                break
    return best
