from __future__ import annotations

import json
import tempfile
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import patch

import httpx
from django.contrib.auth import get_user_model
from django.http import HttpResponse
from django.test import Client, RequestFactory, TestCase, override_settings
from django.urls import reverse

from internal_links import services
from internal_links.engine import Document, PhraseService
from internal_links.forms import ApplyForm, ScanForm
from internal_links.middleware import SlidingWindowRateThrottle
from internal_links.models import LinkSuggestion, OrphanPage

CORPUS = [
    Document(
        id='1',
        slug='classic-banana-bread',
        title='Classic Banana Bread',
        fields={'intro': 'Our favorite loaf for brunch.'},
    ),
    Document(
        id='2',
        slug='banana-muffins',
        title='Banana Muffins',
        fields={'description': 'These muffins taste like banana bread in a cup.'},
    ),
    Document(
        id='3',
        slug='apple-pie',
        title='Apple Pie',
        fields={'intro': 'Pairs well with <a href="/recipes/banana-muffins" class="c">muffins</a>.'},
    ),
]


def corpus():
    return CORPUS


@override_settings(
    INTERNAL_LINKS_DOCUMENT_SOURCE='tests.test_internal_links.corpus',
    INTERNAL_LINKS_AI_TOKEN='',
    INTERNAL_LINKS={'ai_batch_delay': 0},
)
class ScanServiceTests(TestCase):
    def test_load_documents_uses_configured_source(self) -> None:
        self.assertEqual(services.load_documents(), CORPUS)

    def test_scan_stores_pending_suggestions(self) -> None:
        summary = services.scan_corpus(CORPUS)

        self.assertEqual(summary.scanned_documents, 3)
        self.assertEqual(summary.total_suggestions, 1)
        self.assertEqual(summary.documents_with_suggestions, 1)
        self.assertEqual(summary.top_documents[0]['id'], '2')

        suggestion = LinkSuggestion.objects.get()
        self.assertEqual(suggestion.status, LinkSuggestion.Status.PENDING)
        self.assertEqual(suggestion.source_document_id, '2')
        self.assertEqual(suggestion.source_slug, 'banana-muffins')
        self.assertEqual(suggestion.target_document_id, '1')
        self.assertEqual(suggestion.anchor_text, 'banana bread')
        self.assertEqual(suggestion.field_name, 'description')
        self.assertEqual(suggestion.keyword_type, 'custom')
        self.assertIn('banana bread', suggestion.sentence_context)

    def test_repeat_scan_does_not_duplicate(self) -> None:
        services.scan_corpus(CORPUS)
        second = services.scan_corpus(CORPUS)
        self.assertEqual(second.total_suggestions, 0)
        self.assertEqual(LinkSuggestion.objects.count(), 1)

    def test_rescan_replaces_previous_suggestions(self) -> None:
        services.scan_corpus(CORPUS)
        first_id = LinkSuggestion.objects.get().pk

        summary = services.scan_corpus(CORPUS, document_id='2', rescan=True)

        self.assertEqual(summary.scanned_documents, 1)
        self.assertEqual(summary.total_suggestions, 1)
        self.assertNotEqual(LinkSuggestion.objects.get().pk, first_id)

    def test_scan_unknown_document(self) -> None:
        with self.assertRaises(services.DocumentNotFound):
            services.scan_corpus(CORPUS, document_id='404')

    def test_ai_scan_without_token_falls_back_to_rules(self) -> None:
        with self.assertLogs('internal_links.services', level='WARNING') as captured:
            summary = services.scan_corpus(CORPUS, use_ai=True)
        self.assertEqual(summary.total_suggestions, 1)
        self.assertIn('no AI token', captured.output[0])

    def test_ai_scan_requests_phrases_for_every_document(self) -> None:
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            content = '[{"text": "weekend brunch", "relevance": 100}]'
            return httpx.Response(200, json={'choices': [{'message': {'content': content}}]})

        service = PhraseService('https://ai.example.com', 'secret', transport=httpx.MockTransport(handler))
        with patch('internal_links.services.phrase_service', return_value=service):
            summary = services.scan_corpus(CORPUS, use_ai=True)

        self.assertEqual(len(requests), 3)
        self.assertEqual(summary.total_suggestions, 1)


@override_settings(INTERNAL_LINKS={'link_class': 'internal'})
class ReviewServiceTests(TestCase):
    def setUp(self) -> None:
        services.scan_corpus(CORPUS)
        self.suggestion = LinkSuggestion.objects.get()

    def test_set_status_tracks_rejection(self) -> None:
        rejected = services.set_suggestion_status(self.suggestion.pk, 'rejected')
        self.assertEqual(rejected.status, LinkSuggestion.Status.REJECTED)
        self.assertIsNotNone(rejected.rejected_at)

        approved = services.set_suggestion_status(self.suggestion.pk, 'approved')
        self.assertIsNone(approved.rejected_at)

    def test_set_status_rejects_applied(self) -> None:
        with self.assertRaises(ValueError):
            services.set_suggestion_status(self.suggestion.pk, 'applied')

    def test_apply_inserts_link_and_marks_applied(self) -> None:
        results = services.apply_suggestions(CORPUS, [self.suggestion.pk])

        self.assertEqual(len(results), 1)
        result = results[0]
        self.assertEqual(result.document_id, '2')
        self.assertEqual(
            result.fields['description'].updated_content,
            'These muffins taste like <a href="/recipes/classic-banana-bread" class="internal">banana bread</a> in a cup.',
        )
        self.assertEqual(result.applied_suggestion_ids, [self.suggestion.pk])
        self.suggestion.refresh_from_db()
        self.assertEqual(self.suggestion.status, LinkSuggestion.Status.APPLIED)
        self.assertIsNotNone(self.suggestion.applied_at)

    def test_applied_suggestions_are_not_reapplied(self) -> None:
        services.apply_suggestions(CORPUS, [self.suggestion.pk])
        self.assertEqual(services.apply_suggestions(CORPUS, [self.suggestion.pk]), [])

    def test_apply_reports_invalid_markup_without_applying(self) -> None:
        broken = Document(
            id='9',
            slug='pie-notes',
            title='Pie Notes',
            fields={'intro': 'Serve apple pie with <a href="/recipes/banana-muffins">muffins'},
        )
        suggestion = LinkSuggestion.objects.create(
            source_document_id='9',
            target_document_id='3',
            target_slug='apple-pie',
            anchor_text='apple pie',
            field_name='intro',
            relevance_score=100,
        )

        results = services.apply_suggestions([broken], [suggestion.pk])

        self.assertEqual(results[0].fields, {})
        self.assertEqual(results[0].problems, {'intro': ['Mismatched <a> tags: 2 opening, 1 closing']})
        suggestion.refresh_from_db()
        self.assertEqual(suggestion.status, LinkSuggestion.Status.PENDING)

    def test_apply_leaves_structured_instructions_untouched(self) -> None:
        steps = [{'instruction': 'Whisk the eggs.'}, {'instruction': 'Fold in banana bread crumbs.'}]
        trifle = Document(id='8', slug='banana-trifle', title='Banana Trifle', instructions=steps)
        suggestion = LinkSuggestion.objects.create(
            source_document_id='8',
            target_document_id='1',
            target_slug='classic-banana-bread',
            anchor_text='banana bread',
            field_name='instructions',
            relevance_score=100,
            status=LinkSuggestion.Status.APPROVED,
        )

        results = services.apply_suggestions([trifle], [suggestion.pk])

        self.assertEqual(len(results), 1)
        self.assertEqual(results[0].fields, {})
        self.assertEqual(results[0].applied_suggestion_ids, [])
        self.assertEqual(list(results[0].skipped), ['instructions'])
        suggestion.refresh_from_db()
        self.assertEqual(suggestion.status, LinkSuggestion.Status.APPROVED)

    def test_apply_links_plain_text_instructions(self) -> None:
        trifle = Document(
            id='8',
            slug='banana-trifle',
            title='Banana Trifle',
            instructions='Layer cream over banana bread cubes.',
        )
        suggestion = LinkSuggestion.objects.create(
            source_document_id='8',
            target_document_id='1',
            target_slug='classic-banana-bread',
            anchor_text='banana bread',
            field_name='instructions',
            relevance_score=100,
        )

        results = services.apply_suggestions([trifle], [suggestion.pk])

        self.assertIn('href="/recipes/classic-banana-bread"', results[0].fields['instructions'].updated_content)
        self.assertEqual(results[0].applied_suggestion_ids, [suggestion.pk])

    def test_apply_reports_suggestions_that_cannot_be_placed(self) -> None:
        gallery = Document(
            id='7',
            slug='pie-gallery',
            title='Pie Gallery',
            fields={'intro': '<img alt="apple pie" src="pie.jpg"> Fresh from the oven.'},
        )
        suggestion = LinkSuggestion.objects.create(
            source_document_id='7',
            target_document_id='3',
            target_slug='apple-pie',
            anchor_text='apple pie',
            field_name='intro',
            relevance_score=100,
        )

        results = services.apply_suggestions([gallery], [suggestion.pk])

        self.assertEqual(results[0].fields, {})
        self.assertEqual(
            results[0].skipped,
            {'intro': ['"apple pie" -> apple-pie: anchor text could not be placed']},
        )
        self.assertEqual(results[0].to_dict()['skipped'], results[0].skipped)
        suggestion.refresh_from_db()
        self.assertEqual(suggestion.status, LinkSuggestion.Status.PENDING)

    def test_remove_links_to_document(self) -> None:
        changed = services.remove_links_to_document(CORPUS, '2')
        self.assertEqual(changed, {'3': {'intro': 'Pairs well with muffins.'}})

        with self.assertRaises(services.DocumentNotFound):
            services.remove_links_to_document(CORPUS, '404')

    def test_link_stats(self) -> None:
        services.apply_suggestions(CORPUS, [self.suggestion.pk])
        services.refresh_orphan_pages(CORPUS)

        stats = services.link_stats()

        self.assertEqual(stats['suggestions']['total'], 1)
        self.assertEqual(stats['suggestions']['by_status'], {'applied': 1})
        self.assertEqual(stats['orphans']['total'], 3)
        self.assertEqual(stats['top_targets'][0]['target_document_id'], '1')
        self.assertEqual(stats['top_sources'][0]['source_document_id'], '2')


class OrphanServiceTests(TestCase):
    def test_refresh_replaces_rows_and_prioritizes(self) -> None:
        OrphanPage.objects.create(document_id='stale', slug='stale', last_checked='2024-01-01T00:00:00Z')

        records = services.refresh_orphan_pages(CORPUS)

        self.assertEqual(len(records), 3)
        self.assertFalse(OrphanPage.objects.filter(document_id='stale').exists())
        muffins = OrphanPage.objects.get(document_id='2')
        self.assertEqual(muffins.incoming_links, 1)
        self.assertEqual(muffins.priority, OrphanPage.Priority.HIGH)
        self.assertEqual(
            [page.slug for page in services.prioritized_orphans()],
            ['apple-pie', 'classic-banana-bread', 'banana-muffins'],
        )
        self.assertEqual(len(services.prioritized_orphans(limit=1)), 1)

    @override_settings(INTERNAL_LINKS={'orphan_threshold': 1})
    def test_threshold_comes_from_settings(self) -> None:
        services.refresh_orphan_pages(CORPUS)
        page = OrphanPage.objects.get(document_id='2')
        self.assertFalse(page.is_orphan)
        self.assertEqual(page.priority, OrphanPage.Priority.LOW)


class DocumentSourceTests(TestCase):
    def test_document_from_dict_reads_grouped_fields(self) -> None:
        document = services.document_from_dict({
            'id': 7,
            'slug': 'lemon-tart',
            'title': 'Lemon Tart',
            'category': 'Desserts',
            'ingredients': '[{"title": "Curd", "items": ["3 lemons"]}]',
            'instructions': '[{"step": 1, "instruction": "Whisk the curd."}]',
            'contentFields': {'intro': 'Bright and sharp.', 'story': None},
            'description': 'A classic tart.',
        })

        self.assertEqual(document.id, '7')
        self.assertEqual(document.fields, {'intro': 'Bright and sharp.', 'description': 'A classic tart.'})
        self.assertEqual(document.field_text('instructions'), 'Whisk the curd.')

    def test_json_file_source(self) -> None:
        with tempfile.TemporaryDirectory() as directory:
            path = Path(directory) / 'recipes.json'
            path.write_text(json.dumps([{'id': '1', 'slug': 'soup', 'title': 'Soup'}]), encoding='utf-8')
            with override_settings(INTERNAL_LINKS_CORPUS_PATH=path):
                documents = services.json_file_source()
        self.assertEqual([document.slug for document in documents], ['soup'])

    def test_missing_corpus_file_yields_empty_corpus(self) -> None:
        with override_settings(INTERNAL_LINKS_CORPUS_PATH='/nonexistent/recipes.json'):
            with self.assertLogs('internal_links.services', level='WARNING'):
                self.assertEqual(services.json_file_source(), [])


class FormTests(TestCase):
    def test_apply_form_parses_id_strings(self) -> None:
        form = ApplyForm({'suggestion_ids': '3, 1 3\n2'})
        self.assertTrue(form.is_valid(), form.errors)
        self.assertEqual(form.cleaned_data['suggestion_ids'], [3, 1, 2])

    def test_apply_form_accepts_json_lists(self) -> None:
        form = ApplyForm({'suggestion_ids': [5, '6', 5]})
        self.assertTrue(form.is_valid(), form.errors)
        self.assertEqual(form.cleaned_data['suggestion_ids'], [5, 6])

    def test_apply_form_requires_ids(self) -> None:
        form = ApplyForm({'suggestion_ids': []})
        self.assertFalse(form.is_valid())
        self.assertEqual(form.errors['suggestion_ids'], ['suggestion_ids array is required.'])

    def test_apply_form_rejects_bad_ids(self) -> None:
        form = ApplyForm({'suggestion_ids': [1, 'two']})
        self.assertFalse(form.is_valid())
        self.assertIn('Entry 2', form.errors['suggestion_ids'][0])

    def test_scan_form_booleans_from_json(self) -> None:
        form = ScanForm({'rescan': True, 'use_ai': 'false'})
        self.assertTrue(form.is_valid(), form.errors)
        self.assertTrue(form.cleaned_data['rescan'])
        self.assertFalse(form.cleaned_data['use_ai'])


class RateLimitMiddlewareTests(TestCase):
    def setUp(self) -> None:
        self.factory = RequestFactory()

    @override_settings(THROTTLED_ROUTES=['sample:action'])
    def test_rate_limit_blocks_after_threshold(self) -> None:
        middleware = SlidingWindowRateThrottle(lambda request: HttpResponse('OK'), limit=2, window=60, key_prefix='test-rate')

        def build_request():
            req = self.factory.post('/sample-action/')
            req.resolver_match = SimpleNamespace(namespace='sample', url_name='action', view_name='sample:action')
            req.META['REMOTE_ADDR'] = '127.0.0.1'
            return req

        self.assertEqual(middleware(build_request()).status_code, 200)
        self.assertEqual(middleware(build_request()).status_code, 200)
        third = middleware(build_request())
        self.assertEqual(third.status_code, 429)
        self.assertEqual(json.loads(third.content)['route'], 'sample:action')

    def test_resolves_route_from_path(self) -> None:
        middleware = SlidingWindowRateThrottle(lambda request: HttpResponse('OK'), limit=1, window=60, key_prefix='test-resolve')
        url = reverse('internal_links:scan')

        self.assertEqual(middleware(self.factory.post(url)).status_code, 200)
        self.assertEqual(middleware(self.factory.post(url)).status_code, 429)

    def test_unlisted_routes_pass_through(self) -> None:
        middleware = SlidingWindowRateThrottle(lambda request: HttpResponse('OK'), limit=1, window=60, key_prefix='test-open')
        url = reverse('internal_links:stats')

        for _ in range(3):
            self.assertEqual(middleware(self.factory.get(url)).status_code, 200)
        self.assertEqual(middleware(self.factory.get('/no-such-page/')).status_code, 200)


@override_settings(
    INTERNAL_LINKS_DOCUMENT_SOURCE='tests.test_internal_links.corpus',
    INTERNAL_LINKS_AI_TOKEN='',
    THROTTLED_ROUTES=[],
)
class InternalLinksViewTests(TestCase):
    def setUp(self) -> None:
        self.client: Client = Client()
        self.user = get_user_model().objects.create_user(
            username='editor',
            email='editor@example.com',
            password='password123',
            is_staff=True,
        )
        self.client.force_login(self.user)

    def post_json(self, name: str, payload, **kwargs):
        body = payload if isinstance(payload, str) else json.dumps(payload)
        return self.client.post(reverse(name, kwargs=kwargs or None), data=body, content_type='application/json')

    def test_views_require_staff(self) -> None:
        self.client.logout()
        response = self.client.get(reverse('internal_links:stats'))
        self.assertEqual(response.status_code, 302)
        self.assertIn(reverse('admin:login'), response.url)

        reader = get_user_model().objects.create_user(username='reader', password='password123')
        self.client.force_login(reader)
        self.assertEqual(self.client.get(reverse('internal_links:stats')).status_code, 302)

    def test_scan_returns_summary(self) -> None:
        response = self.post_json('internal_links:scan', {})
        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertTrue(data['success'])
        self.assertEqual(data['scanned_documents'], 3)
        self.assertEqual(data['total_suggestions'], 1)

    def test_scan_unknown_document_is_404(self) -> None:
        response = self.post_json('internal_links:scan', {'document_id': '404'})
        self.assertEqual(response.status_code, 404)
        self.assertIn('404', response.json()['error'])

    def test_scan_rejects_bad_json_and_get(self) -> None:
        self.assertEqual(self.post_json('internal_links:scan', '{oops').status_code, 400)
        self.assertEqual(self.post_json('internal_links:scan', '[1, 2]').status_code, 400)
        self.assertEqual(self.client.get(reverse('internal_links:scan')).status_code, 405)

    def test_list_and_review_suggestions(self) -> None:
        self.post_json('internal_links:scan', {})
        suggestion = LinkSuggestion.objects.get()

        listing = self.client.get(reverse('internal_links:suggestions'), {'status': 'pending'})
        self.assertEqual(listing.status_code, 200)
        self.assertEqual(listing.json()['total'], 1)
        self.assertEqual(listing.json()['suggestions'][0]['anchor_text'], 'banana bread')

        response = self.post_json('internal_links:suggestion_status', {'status': 'approved'}, pk=suggestion.pk)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['suggestion']['status'], 'approved')

        empty = self.client.get(reverse('internal_links:suggestions'), {'status': 'pending'})
        self.assertEqual(empty.json()['total'], 0)

    def test_status_update_errors(self) -> None:
        missing = self.post_json('internal_links:suggestion_status', {'status': 'approved'}, pk=999)
        self.assertEqual(missing.status_code, 404)

        self.post_json('internal_links:scan', {})
        suggestion = LinkSuggestion.objects.get()
        invalid = self.post_json('internal_links:suggestion_status', {'status': 'applied'}, pk=suggestion.pk)
        self.assertEqual(invalid.status_code, 400)
        self.assertIn('status', invalid.json()['errors'])

    def test_suggestion_filter_validation(self) -> None:
        response = self.client.get(reverse('internal_links:suggestions'), {'limit': '0'})
        self.assertEqual(response.status_code, 400)

    def test_apply_returns_updated_fields(self) -> None:
        self.post_json('internal_links:scan', {})
        suggestion = LinkSuggestion.objects.get()

        response = self.post_json('internal_links:apply', {'suggestion_ids': [suggestion.pk]})

        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data['documents_updated'], 1)
        result = data['results'][0]
        self.assertEqual(result['fields_updated'], ['description'])
        self.assertIn('href="/recipes/classic-banana-bread"', result['fields']['description']['updated_content'])
        self.assertEqual(result['applied_suggestion_ids'], [suggestion.pk])

    def test_apply_requires_ids(self) -> None:
        response = self.post_json('internal_links:apply', {})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(
            response.json()['errors']['suggestion_ids'][0]['message'],
            'suggestion_ids array is required.',
        )

    def test_unlink(self) -> None:
        response = self.post_json('internal_links:unlink', {'target_document_id': '2'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['documents'], {'3': {'intro': 'Pairs well with muffins.'}})
        self.assertEqual(self.post_json('internal_links:unlink', {'target_document_id': '404'}).status_code, 404)

    def test_orphan_scan_and_listing(self) -> None:
        scan = self.post_json('internal_links:orphan_scan', {})
        self.assertEqual(scan.status_code, 200)
        self.assertEqual(scan.json()['orphan_count'], 3)

        listing = self.client.get(reverse('internal_links:orphans'), {'limit': 2})
        self.assertEqual(listing.status_code, 200)
        self.assertEqual([item['slug'] for item in listing.json()['orphans']], ['apple-pie', 'classic-banana-bread'])

    def test_stats(self) -> None:
        self.post_json('internal_links:scan', {})
        response = self.client.get(reverse('internal_links:stats'))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['suggestions']['by_status'], {'pending': 1})
