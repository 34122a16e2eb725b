from django.contrib import admin

from .models import Annotation, Document


@admin.register(Document)
class DocumentAdmin(admin.ModelAdmin):
    list_display = ('title', 'created_at', 'updated_at')
    search_fields = ('title',)


@admin.register(Annotation)
class AnnotationAdmin(admin.ModelAdmin):
    list_display = (
        'document',
        'label',
        'start_offset',
        'end_offset',
        'resolved',
        'position_status',
        'match_quality',
        'updated_at',
    )
    list_filter = ('position_status', 'match_quality', 'resolved')
    search_fields = ('anchor_text',)
