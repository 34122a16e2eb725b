"""Service functions tying the anchoring engine to stored documents.

These functions encapsulate the persistence side of annotation anchoring
so they can be unit tested and reused by whatever hosts the editor. They
re-anchor stored annotations when a document is opened, wire a live
tracker to the database, and write coalesced position updates back.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import replace
from typing import Dict, Iterable, Tuple

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from .anchoring.config import EngineConfig, load_config
from .anchoring.document import EditorDocument
from .anchoring.matching import find_text_in_document
from .anchoring.recovery import recover_all
from .anchoring.text import classify_match_quality
from .anchoring.tracker import LiveAnchorTracker, Scheduler, apply_anchor_marks, collect_anchor_positions
from .anchoring.types import AnnotationAnchor, MatchQuality, RecoveryResult, TrackedAnchor
from .models import Annotation, Document

logger = logging.getLogger(__name__)


def engine_config(config: EngineConfig | None = None) -> EngineConfig:
    """Return ``config`` or the configuration named by the Django settings."""

    if config is not None:
        return config
    return load_config(getattr(settings, 'DOCNOTES_ANCHORING_CONFIG', None))


def document_plain_text(document: Document, *, config: EngineConfig | None = None) -> str:
    """Render the stored HTML of ``document`` as linear plain text."""

    separator = engine_config(config).get('block_separator', '\n')
    return EditorDocument.from_html(document.content).get_text(separator)


def recover_document_annotations(
    document: Document,
    *,
    config: EngineConfig | None = None,
) -> Dict[str, RecoveryResult]:
    """Re-anchor every stored annotation of ``document`` against its text.

    Recovered offsets and the recovery classification are written back in a
    single transaction. Returns the results keyed by annotation id.
    """

    cfg = engine_config(config)
    annotations = list(document.annotations.all())
    if not annotations:
        return {}

    text = document_plain_text(document, config=cfg)
    results = recover_all((annotation.to_anchor() for annotation in annotations), text, cfg)

    now = timezone.now()
    for annotation in annotations:
        result = results[str(annotation.pk)]
        annotation.start_offset = result.new_start
        annotation.end_offset = result.new_end
        annotation.position_status = result.status
        annotation.match_quality = result.match_quality
        annotation.updated_at = now

    with transaction.atomic():
        Annotation.objects.bulk_update(
            annotations,
            ['start_offset', 'end_offset', 'position_status', 'match_quality', 'updated_at'],
        )

    counts = Counter(result.status for result in results.values())
    logger.info(
        'Recovered %d annotation(s) for document %s: %s',
        len(results),
        document.pk,
        ', '.join(f'{status}={count}' for status, count in sorted(counts.items())),
    )
    if counts.get('orphaned'):
        logger.warning('%d annotation(s) orphaned in document %s', counts['orphaned'], document.pk)
    return results


def snapshot_quality(
    annotation: Annotation,
    current_text: str,
    *,
    config: EngineConfig | None = None,
) -> MatchQuality:
    """Grade the stored snapshot of ``annotation`` against ``current_text``."""

    if not annotation.anchor_text:
        return 'none'
    return classify_match_quality(annotation.anchor_text, current_text, engine_config(config))


def persist_tracked_positions(
    document: Document,
    tracked: Iterable[TrackedAnchor],
    *,
    editor: EditorDocument | None = None,
    config: EngineConfig | None = None,
) -> int:
    """Write live tracker output back to the stored annotations.

    Unknown ids are skipped. When ``editor`` is given the stored snapshot is
    graded against the text now covered and then refreshed from it.
    Returns the number of rows updated.
    """

    cfg = engine_config(config)
    separator = cfg.get('block_separator', '\n')
    by_id = {str(annotation.pk): annotation for annotation in document.annotations.all()}

    now = timezone.now()
    changed = []
    for item in tracked:
        annotation = by_id.get(item.id)
        if annotation is None:
            logger.warning('Tracked annotation %s is not stored for document %s', item.id, document.pk)
            continue
        annotation.start_offset = item.start
        annotation.end_offset = item.end
        annotation.resolved = item.resolved
        if editor is not None:
            current = editor.text_between(item.start, item.end, separator)
            if annotation.anchor_text:
                annotation.match_quality = snapshot_quality(annotation, current, config=cfg)
            annotation.anchor_text = current
        annotation.updated_at = now
        changed.append(annotation)

    if changed:
        with transaction.atomic():
            Annotation.objects.bulk_update(
                changed,
                ['start_offset', 'end_offset', 'resolved', 'anchor_text', 'match_quality', 'updated_at'],
            )
    logger.debug('Persisted %d tracked position(s) for document %s', len(changed), document.pk)
    return len(changed)


def editor_range(
    editor: EditorDocument,
    anchor: AnnotationAnchor,
    *,
    config: EngineConfig | None = None,
) -> Tuple[int, int]:
    """Return the editor range ``anchor`` should be marked on.

    Recovered offsets only approximate block boundaries, so a range whose
    text does not match the snapshot is looked up again in the plain text
    and mapped onto editor positions block by block. Anchors without a
    snapshot keep their stored offsets.
    """

    cfg = engine_config(config)
    separator = cfg.get('block_separator', '\n')
    start, end = anchor.start_offset, anchor.end_offset
    if not anchor.anchor_text or editor.text_between(start, end, separator) == anchor.anchor_text:
        return start, end

    text = editor.get_text(separator)
    match = find_text_in_document(text, anchor.anchor_text, editor.offset_for_position(start, separator), cfg)
    if match is None:
        return start, end
    return (
        editor.position_for_offset(match.position, separator),
        editor.position_for_offset(match.position + match.length, separator),
    )


def open_document_session(
    document: Document,
    *,
    scheduler: Scheduler | None = None,
    config: EngineConfig | None = None,
) -> Tuple[EditorDocument, LiveAnchorTracker]:
    """Load ``document`` for editing with its annotations anchored.

    Stored anchors are recovered against the current text first. Annotations
    the stored HTML does not already mark are then marked on the range
    :func:`editor_range` picks (orphans are left unmarked), and a tracker is
    attached that persists every settled change.
    """

    cfg = engine_config(config)
    results = recover_document_annotations(document, config=cfg)

    editor = EditorDocument.from_html(document.content)
    marked = {item.id for item in collect_anchor_positions(editor)}
    unmarked = []
    for annotation in document.annotations.all():
        result = results.get(str(annotation.pk))
        if str(annotation.pk) in marked or result is None or result.status == 'orphaned':
            continue
        anchor = annotation.to_anchor()
        start, end = editor_range(editor, anchor, config=cfg)
        unmarked.append(replace(anchor, start_offset=start, end_offset=end))
    apply_anchor_marks(editor, unmarked)

    live = collect_anchor_positions(editor)
    if live:
        persist_tracked_positions(document, live, config=cfg)

    def on_update(tracked):
        persist_tracked_positions(document, tracked, editor=editor, config=cfg)

    tracker = LiveAnchorTracker(editor, on_update, scheduler=scheduler, config=cfg)
    return editor, tracker


def save_document_content(document: Document, editor: EditorDocument) -> None:
    """Store the editor's current HTML, annotation marks included."""

    document.content = editor.to_html()
    document.save(update_fields=['content', 'updated_at'])
