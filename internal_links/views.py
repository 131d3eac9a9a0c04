"""JSON views for the internal links API.

Every view is restricted to staff users. Request payloads are JSON objects
validated by the forms in :mod:`internal_links.forms`; the work itself is
done by :mod:`internal_links.services`. Rewritten field content is returned
to the caller and never written back to the content store from here.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict

from django.contrib.admin.views.decorators import staff_member_required
from django.forms import Form
from django.http import HttpRequest, JsonResponse
from django.views.decorators.http import require_GET, require_POST

from . import services
from .forms import (
    ApplyForm,
    OrphanListForm,
    RemoveLinksForm,
    ScanForm,
    SuggestionFilterForm,
    SuggestionStatusForm,
)
from .models import LinkSuggestion, OrphanPage

logger = logging.getLogger(__name__)

SUGGESTION_FIELDS = (
    'id',
    'source_document_id',
    'source_slug',
    'source_title',
    'target_document_id',
    'target_slug',
    'target_title',
    'anchor_text',
    'field_name',
    'position',
    'sentence_context',
    'relevance_score',
    'keyword_type',
    'status',
    'created_at',
    'applied_at',
    'rejected_at',
)


class BadPayload(ValueError):
    """Raised when a request body is not a JSON object."""


def _payload(request: HttpRequest) -> Dict[str, Any]:
    if not request.body:
        return {}
    try:
        data = json.loads(request.body)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise BadPayload(f'Invalid JSON body: {exc}') from exc
    if not isinstance(data, dict):
        raise BadPayload('Request body must be a JSON object.')
    return data


def _form_errors(form: Form) -> JsonResponse:
    return JsonResponse({'errors': form.errors.get_json_data()}, status=400)


def _error(message: str, status: int) -> JsonResponse:
    return JsonResponse({'error': message}, status=status)


def serialize_suggestion(suggestion: LinkSuggestion) -> Dict[str, Any]:
    data = {name: getattr(suggestion, name) for name in SUGGESTION_FIELDS}
    for name in ('created_at', 'applied_at', 'rejected_at'):
        data[name] = data[name].isoformat() if data[name] else None
    return data


def serialize_orphan(page: OrphanPage) -> Dict[str, Any]:
    return {
        'document_id': page.document_id,
        'slug': page.slug,
        'title': page.title,
        'incoming_links': page.incoming_links,
        'outgoing_links': page.outgoing_links,
        'is_orphan': page.is_orphan,
        'priority': page.priority,
        'last_checked': page.last_checked.isoformat(),
    }


@staff_member_required
@require_POST
def scan(request: HttpRequest) -> JsonResponse:
    """Scan the corpus (or one document) and store new suggestions."""

    try:
        form = ScanForm(_payload(request))
    except BadPayload as exc:
        return _error(str(exc), 400)
    if not form.is_valid():
        return _form_errors(form)

    try:
        summary = services.scan_corpus(
            services.load_documents(),
            document_id=form.cleaned_data['document_id'] or None,
            rescan=form.cleaned_data['rescan'],
            use_ai=form.cleaned_data['use_ai'],
        )
    except services.DocumentNotFound as exc:
        return _error(str(exc), 404)
    return JsonResponse({'success': True, **summary.to_dict()})


@staff_member_required
@require_GET
def suggestions(request: HttpRequest) -> JsonResponse:
    """List suggestions, filtered by status and source document."""

    form = SuggestionFilterForm(request.GET)
    if not form.is_valid():
        return _form_errors(form)

    queryset = LinkSuggestion.objects.all()
    if form.cleaned_data['status']:
        queryset = queryset.filter(status=form.cleaned_data['status'])
    if form.cleaned_data['document_id']:
        queryset = queryset.filter(source_document_id=form.cleaned_data['document_id'])

    total = queryset.count()
    offset = form.cleaned_data['offset']
    limit = form.cleaned_data['limit']
    page = queryset[offset:offset + limit]
    return JsonResponse(
        {
            'total': total,
            'offset': offset,
            'limit': limit,
            'suggestions': [serialize_suggestion(item) for item in page],
        }
    )


@staff_member_required
@require_POST
def suggestion_status(request: HttpRequest, pk: int) -> JsonResponse:
    """Approve, reject or reset a single suggestion."""

    try:
        form = SuggestionStatusForm(_payload(request))
    except BadPayload as exc:
        return _error(str(exc), 400)
    if not form.is_valid():
        return _form_errors(form)

    try:
        suggestion = services.set_suggestion_status(pk, form.cleaned_data['status'])
    except LinkSuggestion.DoesNotExist:
        return _error(f'Suggestion {pk} not found', 404)
    return JsonResponse({'success': True, 'suggestion': serialize_suggestion(suggestion)})


@staff_member_required
@require_POST
def apply(request: HttpRequest) -> JsonResponse:
    """Insert the selected suggestions and return the rewritten fields."""

    try:
        form = ApplyForm(_payload(request))
    except BadPayload as exc:
        return _error(str(exc), 400)
    if not form.is_valid():
        return _form_errors(form)

    results = services.apply_suggestions(
        services.load_documents(),
        form.cleaned_data['suggestion_ids'],
        document_id=form.cleaned_data['document_id'] or None,
    )
    logger.info(
        'Applied %d suggestions across %d documents',
        sum(len(result.applied_suggestion_ids) for result in results),
        len(results),
    )
    return JsonResponse(
        {
            'success': True,
            'documents_updated': sum(1 for result in results if result.fields),
            'results': [result.to_dict() for result in results],
        }
    )


@staff_member_required
@require_POST
def unlink(request: HttpRequest) -> JsonResponse:
    """Unwrap every internal link pointing at a document."""

    try:
        form = RemoveLinksForm(_payload(request))
    except BadPayload as exc:
        return _error(str(exc), 400)
    if not form.is_valid():
        return _form_errors(form)

    try:
        changed = services.remove_links_to_document(
            services.load_documents(),
            form.cleaned_data['target_document_id'],
        )
    except services.DocumentNotFound as exc:
        return _error(str(exc), 404)
    return JsonResponse({'success': True, 'documents_updated': len(changed), 'documents': changed})


@staff_member_required
@require_GET
def orphans(request: HttpRequest) -> JsonResponse:
    """Return stored orphans, fewest incoming links first."""

    form = OrphanListForm(request.GET)
    if not form.is_valid():
        return _form_errors(form)
    pages = services.prioritized_orphans(form.cleaned_data['limit'])
    return JsonResponse({'orphans': [serialize_orphan(page) for page in pages]})


@staff_member_required
@require_POST
def orphan_scan(request: HttpRequest) -> JsonResponse:
    """Recount links across the corpus and replace the orphan records."""

    records = services.refresh_orphan_pages(services.load_documents())
    orphan_records = [record for record in records if record.is_orphan]
    return JsonResponse(
        {
            'success': True,
            'total_documents': len(records),
            'orphan_count': len(orphan_records),
            'orphans': [record.to_dict() for record in orphan_records[:20]],
        }
    )


@staff_member_required
@require_GET
def stats(request: HttpRequest) -> JsonResponse:
    return JsonResponse(services.link_stats())
