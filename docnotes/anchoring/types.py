"""Typed data structures shared by the anchoring engine."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Literal, Optional

RecoveryStatus = Literal["relocated", "orphaned", "uncertain", "fallback"]
MatchQuality = Literal["exact", "case-insensitive", "fuzzy", "poor", "none"]


@dataclass(frozen=True)
class AnnotationAnchor:
    """Stored position of an annotation plus an optional snapshot of its text."""

    id: str
    label: int
    start_offset: int
    end_offset: int
    anchor_text: Optional[str] = None
    resolved: bool = False


@dataclass(frozen=True)
class TextMatch:
    """A located occurrence of anchor text in plain-text coordinates."""

    position: int
    length: int
    quality: MatchQuality
    distance: int = 0


@dataclass(frozen=True)
class RecoveryResult:
    """Best-effort recovered range for a single anchor."""

    status: RecoveryStatus
    new_start: int
    new_end: int
    match_quality: MatchQuality
    message: str = ""

    def as_anchor(self, anchor: AnnotationAnchor) -> AnnotationAnchor:
        """Return ``anchor`` moved onto the recovered offsets."""

        return replace(anchor, start_offset=self.new_start, end_offset=self.new_end)


@dataclass(frozen=True)
class AnnotationMark:
    """Validated attributes of an annotation tag attached to document text."""

    id: str
    label: int
    resolved: bool = False


@dataclass(frozen=True)
class TrackedAnchor:
    """Live position of an annotation derived from the current document."""

    id: str
    label: int
    start: int
    end: int
    resolved: bool = False
