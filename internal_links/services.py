"""Service functions connecting the linking engine to the suggestion store.

These functions encapsulate the application logic so they can be unit
tested and reused from the views. They load recipe documents through the
configured document source, run the engine over them, persist link
suggestions and orphan scans, and apply approved suggestions to field text.
Nothing here writes recipe content back: apply and unlink operations return
the rewritten field values for the caller to persist.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections import defaultdict
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Sequence

from django.conf import settings
from django.db import transaction
from django.db.models import Avg, Count, Max
from django.utils import timezone
from django.utils.module_loading import import_string

from .engine import (
    Document,
    EngineConfig,
    InsertionResult,
    KeywordIndex,
    LinkOpportunity,
    OrphanRecord,
    PhraseService,
    build_index,
    build_index_with_ai,
    find_document_opportunities,
    insert_links,
    load_config,
    remove_internal_links,
    scan_orphans,
    validate_links,
)
from .engine.structured import parse_instructions
from .models import LinkSuggestion, OrphanPage

logger = logging.getLogger(__name__)

REVIEWABLE_STATUSES = (
    LinkSuggestion.Status.PENDING,
    LinkSuggestion.Status.APPROVED,
    LinkSuggestion.Status.REJECTED,
)


class DocumentNotFound(LookupError):
    """Raised when a requested document id is not part of the corpus."""


@dataclass(frozen=True)
class ScanSummary:
    """Outcome of a suggestion scan."""

    scanned_documents: int
    total_suggestions: int
    documents_with_suggestions: int
    duration_ms: int
    top_documents: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ApplyResult:
    """Rewritten fields for one source document."""

    document_id: str
    slug: str
    title: str
    fields: Dict[str, InsertionResult]
    applied_suggestion_ids: List[int]
    problems: Dict[str, List[str]] = field(default_factory=dict)
    skipped: Dict[str, List[str]] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'document_id': self.document_id,
            'slug': self.slug,
            'title': self.title,
            'fields_updated': sorted(self.fields),
            'fields': {name: result.to_dict() for name, result in self.fields.items()},
            'links_applied': len(self.applied_suggestion_ids),
            'applied_suggestion_ids': self.applied_suggestion_ids,
            'problems': self.problems,
            'skipped': self.skipped,
        }


def engine_config() -> EngineConfig:
    """Return the engine configuration from the YAML file and settings overrides."""

    return load_config(
        getattr(settings, 'INTERNAL_LINKS_CONFIG_PATH', None),
        getattr(settings, 'INTERNAL_LINKS', None),
    )


def phrase_service(config: EngineConfig | None = None) -> PhraseService:
    config = config or engine_config()
    return PhraseService(
        endpoint=settings.INTERNAL_LINKS_AI_ENDPOINT,
        token=settings.INTERNAL_LINKS_AI_TOKEN or None,
        model=settings.INTERNAL_LINKS_AI_MODEL,
        timeout=float(config.get('ai_timeout', 30.0)),
    )


def document_from_dict(data: Mapping[str, Any]) -> Document:
    """Build a :class:`Document` from an exported recipe record.

    Content fields may be given at the top level (``intro``, ``story``,
    ``description``) or grouped under ``content_fields``/``contentFields``.
    """

    fields: Dict[str, str] = {}
    grouped = data.get('content_fields') or data.get('contentFields') or {}
    if isinstance(grouped, Mapping):
        fields.update({name: value for name, value in grouped.items() if isinstance(value, str)})
    for name in ('intro', 'story', 'description'):
        value = data.get(name)
        if isinstance(value, str):
            fields[name] = value

    return Document(
        id=str(data['id']),
        slug=str(data.get('slug') or ''),
        title=str(data.get('title') or ''),
        category=data.get('category'),
        ingredients=data.get('ingredients'),
        instructions=data.get('instructions') or fields.pop('instructions', None),
        fields=fields,
    )


def json_file_source() -> List[Document]:
    """Default document source: a JSON array of recipes exported by the content store."""

    path = getattr(settings, 'INTERNAL_LINKS_CORPUS_PATH', None)
    if not path or not Path(path).exists():
        logger.warning('Recipe corpus file %s not found; using an empty corpus', path)
        return []
    with Path(path).open('r', encoding='utf-8') as stream:
        records = json.load(stream)
    return [document_from_dict(record) for record in records]


def load_documents() -> List[Document]:
    """Load the corpus through the callable named by ``INTERNAL_LINKS_DOCUMENT_SOURCE``."""

    source = import_string(settings.INTERNAL_LINKS_DOCUMENT_SOURCE)
    documents: List[Document] = []
    for item in source():
        documents.append(item if isinstance(item, Document) else document_from_dict(item))
    return documents


def find_document(documents: Iterable[Document], document_id: str) -> Document:
    for document in documents:
        if document.id == str(document_id):
            return document
    raise DocumentNotFound(f'Document {document_id} not found')


def build_keyword_index(
    documents: Sequence[Document],
    *,
    use_ai: bool = False,
    config: EngineConfig | None = None,
) -> KeywordIndex:
    """Build the keyword index, optionally enriched with AI phrases."""

    config = config or engine_config()
    if use_ai:
        service = phrase_service(config)
        if service.enabled:
            return asyncio.run(build_index_with_ai(documents, service, config))
        logger.warning('AI enrichment requested but no AI token is configured')
    return build_index(documents, config)


def scan_corpus(
    documents: Sequence[Document],
    *,
    document_id: str | None = None,
    rescan: bool = False,
    use_ai: bool = False,
) -> ScanSummary:
    """Find link opportunities and store them as pending suggestions.

    With ``document_id`` only that document is scanned, but the index is
    always built from the whole corpus. ``rescan`` discards the previous
    suggestions of the scanned documents first. Opportunities that already
    have a suggestion with the same target, field and anchor are not stored
    twice.
    """

    started = time.monotonic()
    config = engine_config()
    targets = [find_document(documents, document_id)] if document_id else list(documents)
    index = build_keyword_index(documents, use_ai=use_ai, config=config)

    per_document: List[Dict[str, Any]] = []
    total = 0
    with transaction.atomic():
        if rescan:
            stale = LinkSuggestion.objects.all()
            if document_id:
                stale = stale.filter(source_document_id=str(document_id))
            stale.delete()

        for document in targets:
            opportunities = find_document_opportunities(document, index, config)
            created = _store_opportunities(document, opportunities)
            if created:
                total += created
                per_document.append(
                    {'id': document.id, 'title': document.title, 'slug': document.slug, 'suggestions': created}
                )

    duration_ms = int((time.monotonic() - started) * 1000)
    logger.info(
        'Scanned %d documents: %d suggestions stored in %d ms',
        len(targets),
        total,
        duration_ms,
    )
    per_document.sort(key=lambda item: item['suggestions'], reverse=True)
    return ScanSummary(
        scanned_documents=len(targets),
        total_suggestions=total,
        documents_with_suggestions=len(per_document),
        duration_ms=duration_ms,
        top_documents=per_document[:10],
    )


def _store_opportunities(document: Document, opportunities: Sequence[LinkOpportunity]) -> int:
    existing = {
        (target, field_name, anchor.lower())
        for target, field_name, anchor in LinkSuggestion.objects.filter(
            source_document_id=document.id,
        ).values_list('target_document_id', 'field_name', 'anchor_text')
    }
    rows = []
    for opportunity in opportunities:
        key = (opportunity.target_document_id, opportunity.field_name, opportunity.anchor_text.lower())
        if key in existing:
            continue
        existing.add(key)
        rows.append(
            LinkSuggestion(
                source_document_id=opportunity.source_document_id,
                source_slug=document.slug,
                source_title=document.title,
                target_document_id=opportunity.target_document_id,
                target_slug=opportunity.target_slug,
                target_title=opportunity.target_title,
                anchor_text=opportunity.anchor_text,
                field_name=opportunity.field_name,
                position=opportunity.position,
                sentence_context=opportunity.sentence_context,
                relevance_score=opportunity.relevance_score,
                keyword_type=opportunity.keyword_type,
            )
        )
    LinkSuggestion.objects.bulk_create(rows)
    return len(rows)


def set_suggestion_status(suggestion_id: int, status: str) -> LinkSuggestion:
    """Move a suggestion between ``pending``, ``approved`` and ``rejected``."""

    if status not in REVIEWABLE_STATUSES:
        raise ValueError(f'Invalid status value: {status}')
    suggestion = LinkSuggestion.objects.get(pk=suggestion_id)
    suggestion.status = status
    suggestion.rejected_at = timezone.now() if status == LinkSuggestion.Status.REJECTED else None
    suggestion.save(update_fields=['status', 'rejected_at'])
    return suggestion


def opportunity_from_suggestion(suggestion: LinkSuggestion) -> LinkOpportunity:
    return LinkOpportunity(
        source_document_id=suggestion.source_document_id,
        target_document_id=suggestion.target_document_id,
        target_slug=suggestion.target_slug,
        target_title=suggestion.target_title,
        anchor_text=suggestion.anchor_text,
        field_name=suggestion.field_name,
        position=suggestion.position,
        sentence_context=suggestion.sentence_context,
        relevance_score=suggestion.relevance_score,
        keyword_type=suggestion.keyword_type or 'unknown',
    )


def apply_suggestions(
    documents: Sequence[Document],
    suggestion_ids: Sequence[int],
    *,
    document_id: str | None = None,
) -> List[ApplyResult]:
    """Insert the selected suggestions into their source fields.

    Suggestions are grouped by source document and field. A field whose
    rewritten markup fails validation is left out of the result and its
    problems are reported instead. Suggestions that produced a link are
    marked ``applied``; the rest stay as they are and are listed under
    ``skipped``. Instructions stored as a step list are never rewritten,
    since the flattened text cannot be saved back over the steps.
    """

    config = engine_config()
    queryset = LinkSuggestion.objects.filter(pk__in=list(suggestion_ids)).exclude(
        status=LinkSuggestion.Status.APPLIED,
    )
    if document_id:
        queryset = queryset.filter(source_document_id=str(document_id))

    grouped: Dict[str, Dict[str, List[LinkSuggestion]]] = defaultdict(lambda: defaultdict(list))
    for suggestion in queryset.order_by('pk'):
        grouped[suggestion.source_document_id][suggestion.field_name].append(suggestion)

    by_id = {document.id: document for document in documents}
    results: List[ApplyResult] = []
    applied_ids: List[int] = []

    for source_id, fields in grouped.items():
        document = by_id.get(source_id)
        if document is None:
            logger.warning('Skipping suggestions for unknown document %s', source_id)
            continue

        updated: Dict[str, InsertionResult] = {}
        problems: Dict[str, List[str]] = {}
        skipped: Dict[str, List[str]] = {}
        document_applied: List[int] = []
        for field_name, suggestions in fields.items():
            if field_name == 'instructions' and parse_instructions(document.instructions) is not None:
                logger.info('Skipping instructions for %s - step lists are not rewritten', document.title)
                skipped[field_name] = [
                    f'"{item.anchor_text}" -> {item.target_slug}: structured instructions are not rewritten'
                    for item in suggestions
                ]
                continue

            content = document.field_text(field_name)
            if not content:
                logger.info('Skipping %s for %s - no content', field_name, document.title)
                continue

            opportunities = [opportunity_from_suggestion(item) for item in suggestions]
            result = insert_links(content, opportunities, field_name, config)
            logger.info(
                'Applied %d out of %d links to %s of %s',
                len(result.applied_links),
                len(opportunities),
                field_name,
                document.title,
            )

            field_problems = validate_links(result.updated_content)
            if field_problems:
                logger.error('Validation failed for %s of %s: %s', field_name, document.title, field_problems)
                problems[field_name] = field_problems
                continue

            applied_keys = {
                (link.target_document_id, link.anchor_text.lower()) for link in result.applied_links
            }
            unplaced = [
                item for item in suggestions
                if (item.target_document_id, item.anchor_text.lower()) not in applied_keys
            ]
            if unplaced:
                logger.warning(
                    'Could not place %d link(s) in %s of %s',
                    len(unplaced),
                    field_name,
                    document.title,
                )
                skipped[field_name] = [
                    f'"{item.anchor_text}" -> {item.target_slug}: anchor text could not be placed'
                    for item in unplaced
                ]
            if not result.applied_links:
                continue

            updated[field_name] = result
            document_applied.extend(
                item.pk
                for item in suggestions
                if (item.target_document_id, item.anchor_text.lower()) in applied_keys
            )

        if updated or problems or skipped:
            results.append(
                ApplyResult(
                    document_id=document.id,
                    slug=document.slug,
                    title=document.title,
                    fields=updated,
                    applied_suggestion_ids=document_applied,
                    problems=problems,
                    skipped=skipped,
                )
            )
            applied_ids.extend(document_applied)

    if applied_ids:
        LinkSuggestion.objects.filter(pk__in=applied_ids).update(
            status=LinkSuggestion.Status.APPLIED,
            applied_at=timezone.now(),
        )
    return results


def remove_links_to_document(documents: Sequence[Document], target_document_id: str) -> Dict[str, Dict[str, str]]:
    """Return every field that links to the target with those links unwrapped.

    The result maps source document id to ``{field_name: updated_content}``
    and only includes fields that changed.
    """

    config = engine_config()
    target = find_document(documents, target_document_id)
    changed: Dict[str, Dict[str, str]] = {}
    for document in documents:
        for field_name, content in document.content_fields(config.processed_fields()).items():
            stripped = remove_internal_links(content, target.slug, config)
            if stripped != content:
                changed.setdefault(document.id, {})[field_name] = stripped
    return changed


def refresh_orphan_pages(documents: Sequence[Document]) -> List[OrphanRecord]:
    """Rescan the link graph and replace the stored orphan records."""

    records = scan_orphans(documents, engine_config())
    with transaction.atomic():
        OrphanPage.objects.all().delete()
        OrphanPage.objects.bulk_create(
            [
                OrphanPage(
                    document_id=record.document_id,
                    slug=record.slug,
                    title=record.title,
                    incoming_links=record.incoming_links_count,
                    outgoing_links=record.outgoing_links_count,
                    is_orphan=record.is_orphan,
                    priority=OrphanPage.Priority.HIGH if record.is_orphan else OrphanPage.Priority.LOW,
                    last_checked=record.scanned_at,
                )
                for record in records
            ]
        )
    logger.info(
        'Orphan scan complete: %d documents, %d orphans',
        len(records),
        sum(1 for record in records if record.is_orphan),
    )
    return records


def prioritized_orphans(limit: int = 20) -> List[OrphanPage]:
    """Return the stored orphans most in need of incoming links."""

    return list(
        OrphanPage.objects.filter(is_orphan=True).order_by('incoming_links', 'slug')[:limit]
    )


def link_stats() -> Dict[str, Any]:
    """Aggregate suggestion and orphan statistics for dashboards."""

    counts_by_status = {
        row['status']: row['total']
        for row in LinkSuggestion.objects.values('status').annotate(total=Count('id')).order_by()
    }
    orphan_stats = OrphanPage.objects.filter(is_orphan=True).aggregate(
        total=Count('id'),
        avg_incoming=Avg('incoming_links'),
        avg_outgoing=Avg('outgoing_links'),
    )
    top_sources = (
        LinkSuggestion.objects.values('source_document_id', 'source_title', 'source_slug')
        .annotate(suggestion_count=Count('id'))
        .order_by('-suggestion_count', 'source_document_id')[:10]
    )
    top_targets = (
        LinkSuggestion.objects.filter(status=LinkSuggestion.Status.APPLIED)
        .values('target_document_id', 'target_title', 'target_slug')
        .annotate(link_count=Count('id'))
        .order_by('-link_count', 'target_document_id')[:10]
    )
    last_scan = OrphanPage.objects.aggregate(last=Max('last_checked'))['last']
    average_score = LinkSuggestion.objects.aggregate(avg=Avg('relevance_score'))['avg']

    return {
        'suggestions': {
            'total': sum(counts_by_status.values()),
            'by_status': counts_by_status,
            'average_relevance_score': round(average_score, 1) if average_score is not None else None,
        },
        'orphans': {
            'total': orphan_stats['total'],
            'avg_incoming_links': orphan_stats['avg_incoming'],
            'avg_outgoing_links': orphan_stats['avg_outgoing'],
            'last_scan': last_scan.isoformat() if last_scan else None,
        },
        'top_sources': list(top_sources),
        'top_targets': list(top_targets),
    }
