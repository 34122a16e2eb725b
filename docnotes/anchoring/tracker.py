"""Live tracking of annotation ranges while a document is being edited.

Positions are never mapped through the edit itself. After every change the
tracker re-scans the annotation marks in the document and reports where
they sit now, which makes it indifferent to splits, joins and undo/redo.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol

from .config import EngineConfig, load_config
from .document import ANNOTATION, EditorDocument, annotation_mark
from .marks import InvalidMarkAttributes, parse_annotation_mark
from .types import AnnotationAnchor, TrackedAnchor

logger = logging.getLogger(__name__)

UpdateCallback = Callable[[List[TrackedAnchor]], None]


class TimerHandle(Protocol):
    def cancel(self) -> Any: ...


class Scheduler(Protocol):
    """Anything that can run a callback later; ``asyncio`` loops qualify."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...


class ThreadingScheduler:
    """Default scheduler backed by :class:`threading.Timer`."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> threading.Timer:
        timer = threading.Timer(delay, callback)
        timer.daemon = True
        timer.start()
        return timer


def collect_anchor_positions(document: EditorDocument) -> List[TrackedAnchor]:
    """Return the current range of every annotation found in ``document``.

    Fragments of one annotation split across several text nodes are merged
    into a single ``[min(start), max(end))`` range. Results keep the order
    in which annotations first appear.
    """

    if document is None:
        raise TypeError("collect_anchor_positions() requires a document")

    merged: Dict[str, TrackedAnchor] = {}
    for position, node in document.iter_text_nodes():
        for mark in node.marks:
            if mark.type != ANNOTATION:
                continue
            try:
                parsed = parse_annotation_mark(mark.attributes)
            except InvalidMarkAttributes as exc:
                logger.warning("Skipping malformed annotation mark at %d: %s", position, exc)
                continue

            start, end = position, position + len(node.text)
            existing = merged.get(parsed.id)
            if existing is None:
                merged[parsed.id] = TrackedAnchor(
                    id=parsed.id,
                    label=parsed.label,
                    start=start,
                    end=end,
                    resolved=parsed.resolved,
                )
            else:
                merged[parsed.id] = TrackedAnchor(
                    id=existing.id,
                    label=existing.label,
                    start=min(existing.start, start),
                    end=max(existing.end, end),
                    resolved=existing.resolved,
                )
    return list(merged.values())


def apply_anchor_marks(document: EditorDocument, anchors: Iterable[AnnotationAnchor]) -> int:
    """Tag the text covered by each stored anchor; returns how many were applied."""

    applied = 0
    for anchor in anchors:
        if anchor.end_offset <= anchor.start_offset:
            logger.debug("Not marking empty range for annotation %s", anchor.id)
            continue
        mark = annotation_mark(anchor.id, anchor.label, anchor.resolved)
        if document.add_mark(anchor.start_offset, anchor.end_offset, mark):
            applied += 1
    return applied


class LiveAnchorTracker:
    """Watches one document and reports annotation ranges after edits settle.

    Every change re-scans the document synchronously. Reporting is debounced:
    a single timer is re-armed on each change and, when it finally fires,
    ``on_update`` receives the ranges as they were after the last edit.
    """

    def __init__(
        self,
        document: EditorDocument,
        on_update: UpdateCallback,
        *,
        scheduler: Optional[Scheduler] = None,
        config: EngineConfig | None = None,
        debounce: float | None = None,
    ) -> None:
        if document is None:
            raise TypeError("LiveAnchorTracker requires a document")
        engine_config = config or load_config(None)
        self.document = document
        self.on_update = on_update
        self.scheduler: Scheduler = scheduler or ThreadingScheduler()
        self.debounce = engine_config.debounce_seconds if debounce is None else debounce

        self._lock = threading.Lock()
        self._latest: List[TrackedAnchor] = []
        self._pending: Optional[TimerHandle] = None
        self._generation = 0
        self._unsubscribe: Optional[Callable[[], None]] = document.subscribe(self._handle_change)

    @property
    def pending(self) -> bool:
        return self._pending is not None

    @property
    def disposed(self) -> bool:
        return self._unsubscribe is None

    def snapshot(self) -> List[TrackedAnchor]:
        """Scan the document now without touching the timer."""

        return collect_anchor_positions(self.document)

    def flush(self) -> bool:
        """Deliver a pending update immediately; returns whether one was sent."""

        with self._lock:
            if self._pending is None:
                return False
            self._pending.cancel()
            self._pending = None
            latest = list(self._latest)
        self.on_update(latest)
        return True

    def dispose(self) -> None:
        """Stop listening to the document and drop any pending update."""

        with self._lock:
            if self._pending is not None:
                self._pending.cancel()
                self._pending = None
            if self._unsubscribe is not None:
                self._unsubscribe()
                self._unsubscribe = None

    def __enter__(self) -> "LiveAnchorTracker":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.dispose()

    def _handle_change(self, document: EditorDocument) -> None:
        positions = collect_anchor_positions(document)
        with self._lock:
            self._latest = positions
            if self._pending is not None:
                self._pending.cancel()
                self._pending = None
            if not positions:
                return
            self._generation += 1
            generation = self._generation
            self._pending = self.scheduler.call_later(self.debounce, lambda: self._fire(generation))

    def _fire(self, generation: int) -> None:
        with self._lock:
            # A timer cancelled while already running must not report.
            if self._pending is None or generation != self._generation:
                return
            self._pending = None
            latest = list(self._latest)
        logger.debug("Reporting %d annotation positions", len(latest))
        self.on_update(latest)
