"""Live anchor tracking tests."""

from __future__ import annotations

import asyncio
import logging
import threading

import pytest

from docnotes.anchoring.document import ANNOTATION, EditorDocument, Mark, annotation_mark
from docnotes.anchoring.tracker import (
    LiveAnchorTracker,
    apply_anchor_marks,
    collect_anchor_positions,
)
from docnotes.anchoring.types import TrackedAnchor

from .conftest import make_anchor, make_annotated

TEXT = "Start text here for testing positions"


def _span(document, annotation_id="c1"):
    for item in collect_anchor_positions(document):
        if item.id == annotation_id:
            return item.start, item.end
    return None


@pytest.fixture()
def document():
    # "text here" sits at plain offsets 6..15, document positions 7..16.
    return make_annotated(TEXT, 7, 16)


def test_collects_annotation_ranges(document):
    assert collect_anchor_positions(document) == [TrackedAnchor("c1", 1, 7, 16, False)]
    assert document.text_between(7, 16) == "text here"


@pytest.mark.parametrize("position", [1, 5, 7])
def test_insertion_before_anchor_shifts_it(document, position):
    document.insert_text(position, "INSERTED ")

    assert _span(document) == (16, 25)


@pytest.mark.parametrize("position", [16, 20, 38])
def test_insertion_after_anchor_leaves_it(document, position):
    document.insert_text(position, " APPENDED")

    assert _span(document) == (7, 16)


def test_insertion_inside_anchor_extends_it(document):
    document.insert_text(10, "XYZ")

    assert _span(document) == (7, 19)
    assert document.text_between(7, 19) == "texXYZt here"


def test_deletion_before_anchor_shifts_it_left(document):
    document.delete_range(1, 4)

    assert _span(document) == (4, 13)


def test_deletion_after_anchor_leaves_it(document):
    document.delete_range(16, 21)

    assert _span(document) == (7, 16)


def test_deletion_inside_anchor_shrinks_it(document):
    document.delete_range(9, 12)

    assert _span(document) == (7, 13)


def test_deletion_overlapping_start_clamps_it(document):
    document.delete_range(4, 9)

    assert _span(document) == (4, 11)


def test_deleting_whole_anchor_removes_it(document):
    document.delete_range(5, 18)

    assert collect_anchor_positions(document) == []


def test_fragments_split_by_formatting_are_merged(document):
    document.add_mark(9, 12, Mark.create("bold"))

    fragments = [
        node.text
        for _, node in document.iter_text_nodes()
        if any(mark.type == ANNOTATION for mark in node.marks)
    ]
    assert len(fragments) == 3
    assert _span(document) == (7, 16)


def test_fragments_across_blocks_are_merged(document):
    document.split_block(10)

    assert _span(document) == (7, 18)


def test_undo_and_redo_move_anchor_back_and_forth(document):
    document.insert_text(1, "INSERTED ")

    document.undo()
    assert _span(document) == (7, 16)

    document.redo()
    assert _span(document) == (16, 25)


def test_multiple_annotations_keep_document_order():
    document = EditorDocument.from_text(TEXT)
    document.add_mark(17, 28, annotation_mark("b", 2, True))
    document.add_mark(1, 6, annotation_mark("a", 1))

    assert collect_anchor_positions(document) == [
        TrackedAnchor("a", 1, 1, 6, False),
        TrackedAnchor("b", 2, 17, 28, True),
    ]


def test_malformed_marks_are_skipped_with_warning(document, caplog):
    document.add_mark(20, 27, Mark.create(ANNOTATION, id="broken"))

    with caplog.at_level(logging.WARNING, logger="docnotes.anchoring.tracker"):
        positions = collect_anchor_positions(document)

    assert [item.id for item in positions] == ["c1"]
    assert "broken" in caplog.text


def test_collect_requires_document():
    with pytest.raises(TypeError):
        collect_anchor_positions(None)


def test_apply_anchor_marks_skips_empty_ranges():
    document = EditorDocument.from_text(TEXT)

    applied = apply_anchor_marks(
        document,
        [
            make_anchor(7, 16, "text here", id="a"),
            make_anchor(3, 3, None, id="b", label=2),
        ],
    )

    assert applied == 1
    assert collect_anchor_positions(document) == [TrackedAnchor("a", 1, 7, 16, False)]


def test_debounce_coalesces_rapid_edits(document, scheduler):
    updates = []
    tracker = LiveAnchorTracker(document, updates.append, scheduler=scheduler)

    document.insert_text(1, "A")
    scheduler.advance(0.1)
    document.insert_text(1, "B")
    scheduler.advance(0.1)
    document.insert_text(1, "C")

    scheduler.advance(0.45)
    assert updates == []
    assert tracker.pending

    scheduler.advance(0.1)
    assert updates == [[TrackedAnchor("c1", 1, 10, 19, False)]]
    assert not tracker.pending

    scheduler.advance(5)
    assert len(updates) == 1


def test_no_callback_without_annotations(scheduler):
    document = EditorDocument.from_text(TEXT)
    updates = []
    tracker = LiveAnchorTracker(document, updates.append, scheduler=scheduler)

    document.insert_text(1, "edit")
    scheduler.advance(1)

    assert updates == []
    assert not tracker.pending


def test_removing_last_annotation_cancels_pending_update(document, scheduler):
    updates = []
    LiveAnchorTracker(document, updates.append, scheduler=scheduler)

    document.insert_text(1, "A")
    document.remove_annotation("c1")
    scheduler.advance(1)

    assert updates == []


def test_dispose_cancels_timer_and_stops_listening(document, scheduler):
    updates = []
    tracker = LiveAnchorTracker(document, updates.append, scheduler=scheduler)

    document.insert_text(1, "A")
    tracker.dispose()
    tracker.dispose()
    document.insert_text(1, "B")
    scheduler.advance(1)

    assert updates == []
    assert tracker.disposed
    assert scheduler.active == []


def test_flush_delivers_pending_update(document, scheduler):
    updates = []
    tracker = LiveAnchorTracker(document, updates.append, scheduler=scheduler)

    assert tracker.flush() is False
    document.insert_text(1, "A")

    assert tracker.flush() is True
    assert updates == [[TrackedAnchor("c1", 1, 8, 17, False)]]
    scheduler.advance(1)
    assert len(updates) == 1


def test_context_manager_disposes(document, scheduler):
    updates = []
    with LiveAnchorTracker(document, updates.append, scheduler=scheduler) as tracker:
        document.insert_text(1, "A")
        assert tracker.pending

    scheduler.advance(1)
    assert updates == []


def test_snapshot_does_not_arm_timer(document, scheduler):
    tracker = LiveAnchorTracker(document, lambda positions: None, scheduler=scheduler)

    assert tracker.snapshot() == [TrackedAnchor("c1", 1, 7, 16, False)]
    assert not tracker.pending


def test_debounce_window_comes_from_config(document, scheduler, engine_config):
    engine_config.raw["debounce_ms"] = 50
    updates = []
    LiveAnchorTracker(document, updates.append, scheduler=scheduler, config=engine_config)

    document.insert_text(1, "A")
    scheduler.advance(0.06)

    assert len(updates) == 1


def test_default_scheduler_uses_threads(document):
    delivered = threading.Event()
    updates = []

    def on_update(positions):
        updates.append(positions)
        delivered.set()

    tracker = LiveAnchorTracker(document, on_update, debounce=0.01)
    document.insert_text(1, "A")

    assert delivered.wait(timeout=2)
    assert updates == [[TrackedAnchor("c1", 1, 8, 17, False)]]
    tracker.dispose()


def test_asyncio_loop_can_schedule_updates(document):
    updates = []

    async def edit_session():
        tracker = LiveAnchorTracker(
            document,
            updates.append,
            scheduler=asyncio.get_running_loop(),
            debounce=0.05,
        )
        document.insert_text(1, "A")
        await asyncio.sleep(0.005)
        document.insert_text(1, "B")
        await asyncio.sleep(0.2)
        tracker.dispose()

    asyncio.run(edit_session())

    assert updates == [[TrackedAnchor("c1", 1, 9, 18, False)]]
