from django.contrib import admin

from .models import LinkSuggestion, OrphanPage


@admin.register(LinkSuggestion)
class LinkSuggestionAdmin(admin.ModelAdmin):
    list_display = ('anchor_text', 'source_title', 'target_title', 'field_name', 'relevance_score', 'status', 'created_at')
    list_filter = ('status', 'field_name', 'keyword_type')
    search_fields = ('anchor_text', 'source_title', 'source_slug', 'target_title', 'target_slug')
    readonly_fields = ('created_at', 'applied_at', 'rejected_at')


@admin.register(OrphanPage)
class OrphanPageAdmin(admin.ModelAdmin):
    list_display = ('slug', 'title', 'incoming_links', 'outgoing_links', 'is_orphan', 'priority', 'last_checked')
    list_filter = ('is_orphan', 'priority')
    search_fields = ('slug', 'title')
