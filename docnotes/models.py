"""Database models for the docnotes app.

A ``Document`` stores the editor HTML of a collaboratively edited text and
each ``Annotation`` stores where one comment thread is anchored in it: an
offset range, a snapshot of the covered text and the outcome of the most
recent position recovery.
"""

from __future__ import annotations

from django.db import models

from .anchoring.types import AnnotationAnchor


class Document(models.Model):
    """A document whose annotations are kept anchored across edits."""

    title = models.CharField(max_length=300)
    content = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:  # pragma: no cover - convenience display
        return self.title


class Annotation(models.Model):
    """Anchor of a single comment thread inside a document."""

    class PositionStatus(models.TextChoices):
        RELOCATED = 'relocated', 'Relocated'
        ORPHANED = 'orphaned', 'Orphaned'
        UNCERTAIN = 'uncertain', 'Uncertain'
        FALLBACK = 'fallback', 'Fallback'

    class MatchQuality(models.TextChoices):
        EXACT = 'exact', 'Exact'
        CASE_INSENSITIVE = 'case-insensitive', 'Case-insensitive'
        FUZZY = 'fuzzy', 'Fuzzy'
        POOR = 'poor', 'Poor'
        NONE = 'none', 'None'

    document = models.ForeignKey(Document, on_delete=models.CASCADE, related_name='annotations')
    label = models.PositiveIntegerField()
    start_offset = models.PositiveIntegerField()
    end_offset = models.PositiveIntegerField()
    anchor_text = models.TextField(blank=True, default='')
    resolved = models.BooleanField(default=False)
    position_status = models.CharField(max_length=16, choices=PositionStatus.choices, blank=True)
    match_quality = models.CharField(max_length=16, choices=MatchQuality.choices, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['start_offset', 'label']
        constraints = [
            models.CheckConstraint(
                condition=models.Q(start_offset__gte=0),
                name='annotation_start_non_negative',
            ),
            models.CheckConstraint(
                condition=models.Q(end_offset__gte=models.F('start_offset')),
                name='annotation_end_after_start',
            ),
        ]

    def to_anchor(self) -> AnnotationAnchor:
        """Return the engine view of this row; legacy rows carry no snapshot."""

        return AnnotationAnchor(
            id=str(self.pk),
            label=self.label,
            start_offset=self.start_offset,
            end_offset=self.end_offset,
            anchor_text=self.anchor_text or None,
            resolved=self.resolved,
        )

    def __str__(self) -> str:  # pragma: no cover - convenience display
        return f"#{self.label} [{self.start_offset}, {self.end_offset}) in {self.document}"
