"""Validation of annotation tag attributes read from the document."""

from __future__ import annotations

from typing import Any, Mapping

from .types import AnnotationMark

_TRUE = {"true", "1", "yes"}
_FALSE = {"false", "0", "no", ""}


class InvalidMarkAttributes(ValueError):
    """Raised when an annotation tag carries an unusable attribute set."""


def parse_annotation_mark(attrs: Mapping[str, Any]) -> AnnotationMark:
    """Convert raw tag attributes into an :class:`AnnotationMark`.

    ``id`` and ``label`` are required; ``resolved`` defaults to ``False``.
    Values coming from HTML arrive as strings and are coerced here.
    """

    raw_id = attrs.get("id")
    if raw_id is None or isinstance(raw_id, bool) or not str(raw_id).strip():
        raise InvalidMarkAttributes(f"annotation mark without id: {dict(attrs)!r}")
    annotation_id = str(raw_id).strip()

    return AnnotationMark(
        id=annotation_id,
        label=_parse_label(annotation_id, attrs.get("label")),
        resolved=_parse_resolved(annotation_id, attrs.get("resolved")),
    )


def _parse_label(annotation_id: str, value: Any) -> int:
    if isinstance(value, bool) or value is None:
        raise InvalidMarkAttributes(f"annotation {annotation_id} has no usable label: {value!r}")
    try:
        label = int(str(value).strip()) if isinstance(value, str) else int(value)
    except (TypeError, ValueError, OverflowError) as exc:
        raise InvalidMarkAttributes(f"annotation {annotation_id} has a non-numeric label: {value!r}") from exc
    if not isinstance(value, str) and label != value:
        raise InvalidMarkAttributes(f"annotation {annotation_id} has a non-integral label: {value!r}")
    if label < 0:
        raise InvalidMarkAttributes(f"annotation {annotation_id} has a negative label: {label}")
    return label


def _parse_resolved(annotation_id: str, value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    lowered = str(value).strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise InvalidMarkAttributes(f"annotation {annotation_id} has an invalid resolved flag: {value!r}")
