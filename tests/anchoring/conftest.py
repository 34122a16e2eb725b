"""Shared fixtures for anchoring engine tests."""

from __future__ import annotations

from typing import Callable, List, Optional

import pytest

from docnotes.anchoring.config import load_config
from docnotes.anchoring.document import EditorDocument, annotation_mark
from docnotes.anchoring.types import AnnotationAnchor


@pytest.fixture()
def engine_config():
    """Provide a mutable copy of the default engine configuration."""

    return load_config(None)


class _ManualTimer:
    def __init__(self, when: float, callback: Callable[[], None]) -> None:
        self.when = when
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Deterministic stand-in for a timer source driven by ``advance``."""

    def __init__(self) -> None:
        self.now = 0.0
        self.timers: List[_ManualTimer] = []

    def call_later(self, delay: float, callback: Callable[[], None]) -> _ManualTimer:
        timer = _ManualTimer(self.now + delay, callback)
        self.timers.append(timer)
        return timer

    @property
    def active(self) -> List[_ManualTimer]:
        return [timer for timer in self.timers if not timer.cancelled and not timer.fired]

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            due = [timer for timer in self.active if timer.when <= target]
            if not due:
                break
            timer = min(due, key=lambda item: item.when)
            self.now = timer.when
            timer.fired = True
            timer.callback()
        self.now = target


@pytest.fixture()
def scheduler():
    return ManualScheduler()


def make_anchor(
    start: int,
    end: int,
    anchor_text: Optional[str],
    *,
    id: str = "c1",
    label: int = 1,
    resolved: bool = False,
) -> AnnotationAnchor:
    return AnnotationAnchor(
        id=id,
        label=label,
        start_offset=start,
        end_offset=end,
        anchor_text=anchor_text,
        resolved=resolved,
    )


def make_annotated(
    text: str,
    start: int,
    end: int,
    *,
    id: str = "c1",
    label: int = 1,
    resolved: bool = False,
) -> EditorDocument:
    """Build a document from plain text with one annotation over ``[start, end)``."""

    document = EditorDocument.from_text(text)
    document.add_mark(start, end, annotation_mark(id, label, resolved))
    return document
