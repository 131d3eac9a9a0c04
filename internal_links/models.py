"""Database models for the internal links app.

Recipes themselves live in the external content store, so rows here refer to
documents by their opaque id and keep a copy of the slug and title that were
current when the row was written. ``LinkSuggestion`` is the review queue for
link opportunities; ``OrphanPage`` is the latest orphan scan.
"""

from __future__ import annotations

from django.db import models


class LinkSuggestion(models.Model):
    """A link opportunity awaiting review or already applied."""

    class Status(models.TextChoices):
        PENDING = 'pending', 'Pending'
        APPROVED = 'approved', 'Approved'
        REJECTED = 'rejected', 'Rejected'
        APPLIED = 'applied', 'Applied'

    source_document_id = models.CharField(max_length=64, db_index=True)
    source_slug = models.CharField(max_length=255, blank=True)
    source_title = models.CharField(max_length=300, blank=True)
    target_document_id = models.CharField(max_length=64, db_index=True)
    target_slug = models.CharField(max_length=255)
    target_title = models.CharField(max_length=300, blank=True)
    anchor_text = models.CharField(max_length=300)
    field_name = models.CharField(max_length=50)
    position = models.PositiveIntegerField(default=0)
    sentence_context = models.TextField(blank=True)
    relevance_score = models.PositiveSmallIntegerField(default=0)
    keyword_type = models.CharField(max_length=20, blank=True)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    applied_at = models.DateTimeField(null=True, blank=True)
    rejected_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['-relevance_score', '-created_at']

    def __str__(self) -> str:  # pragma: no cover - convenience display
        return f"{self.source_slug or self.source_document_id} → {self.target_slug} ({self.anchor_text})"


class OrphanPage(models.Model):
    """Incoming/outgoing link counts for one document from the latest scan."""

    class Priority(models.TextChoices):
        HIGH = 'high', 'High'
        LOW = 'low', 'Low'

    document_id = models.CharField(max_length=64, unique=True)
    slug = models.CharField(max_length=255)
    title = models.CharField(max_length=300, blank=True)
    incoming_links = models.PositiveIntegerField(default=0)
    outgoing_links = models.PositiveIntegerField(default=0)
    is_orphan = models.BooleanField(default=False, db_index=True)
    priority = models.CharField(max_length=10, choices=Priority.choices, default=Priority.LOW)
    last_checked = models.DateTimeField()

    class Meta:
        ordering = ['incoming_links', 'slug']

    def __str__(self) -> str:  # pragma: no cover - convenience display
        return f"{self.slug} ({self.incoming_links} incoming)"
