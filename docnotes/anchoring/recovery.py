"""Content-based recovery of annotation anchors.

Used when an anchor's only known facts are its stored offsets and a snapshot
of the text it covered, e.g. after a reload. Every outcome is returned as a
:class:`RecoveryResult`; nothing here raises for expected conditions.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable

from .config import EngineConfig, load_config
from .matching import find_text_in_document
from .text import boundary_adjustment, clamp
from .types import AnnotationAnchor, RecoveryResult

logger = logging.getLogger(__name__)

_MESSAGES = {
    "fallback": "Using original position (anchor has no text snapshot)",
    "relocated": "Anchor relocated to its text",
    "uncertain": "Anchor relocated to an approximate match, please verify",
    "orphaned": "Original text not found, anchor may be outdated",
}


def recover(
    anchor: AnnotationAnchor,
    document_text: str,
    config: EngineConfig | None = None,
) -> RecoveryResult:
    """Compute the best current range for ``anchor`` in ``document_text``."""

    engine_config = config or load_config(None)
    snapshot = anchor.anchor_text or ""
    min_length = int(engine_config.get("min_anchor_text_length", 3))

    if len(snapshot) < min_length or not snapshot.strip():
        logger.debug("Anchor %s has no usable snapshot, keeping stored offsets", anchor.id)
        return RecoveryResult(
            status="fallback",
            new_start=anchor.start_offset,
            new_end=anchor.end_offset,
            match_quality="none",
            message=_MESSAGES["fallback"],
        )

    match = find_text_in_document(document_text, snapshot, anchor.start_offset, engine_config)

    if match is None:
        length = len(document_text)
        start = clamp(anchor.start_offset, 0, length)
        end = clamp(anchor.end_offset, start, length)
        logger.debug("Anchor %s orphaned, clamped to [%d, %d)", anchor.id, start, end)
        return RecoveryResult(
            status="orphaned",
            new_start=start,
            new_end=end,
            match_quality="none",
            message=_MESSAGES["orphaned"],
        )

    tolerance = int(engine_config.get("unmoved_tolerance", 3))
    if match.quality == "exact" and abs(match.position - anchor.start_offset) <= tolerance:
        return RecoveryResult(
            status="relocated",
            new_start=anchor.start_offset,
            new_end=anchor.end_offset,
            match_quality="exact",
            message=_MESSAGES["relocated"],
        )

    separator = engine_config.get("block_separator", "\n")
    adjustment = boundary_adjustment(document_text, match.position, separator)
    status = "uncertain" if match.quality == "fuzzy" else "relocated"
    logger.debug(
        "Anchor %s matched (%s) at %d, adjusted by %d",
        anchor.id,
        match.quality,
        match.position,
        adjustment,
    )
    return RecoveryResult(
        status=status,
        new_start=match.position + adjustment,
        new_end=match.position + match.length + adjustment,
        match_quality=match.quality,
        message=_MESSAGES[status],
    )


def recover_all(
    anchors: Iterable[AnnotationAnchor],
    document_text: str,
    config: EngineConfig | None = None,
) -> Dict[str, RecoveryResult]:
    """Recover every anchor independently against one document snapshot."""

    engine_config = config or load_config(None)
    return {anchor.id: recover(anchor, document_text, engine_config) for anchor in anchors}
