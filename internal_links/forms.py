"""Forms validating the JSON payloads of the internal links API.

Views decode the request body (or query string) into a dict and bind it to
one of these forms, so bad input is reported as form errors with a 400
response rather than surfacing as exceptions from the services.
"""

from __future__ import annotations

import re

from django import forms

from .models import LinkSuggestion

_ID_SEPARATORS_RE = re.compile(r'[\s,]+')


class IdListField(forms.Field):
    """Accept a JSON array of ids or a comma/whitespace separated string."""

    default_error_messages = {
        'invalid': 'Entry %(index)s is not a valid id: %(value)s.',
    }

    def to_python(self, value: object) -> list[int]:
        if value in self.empty_values:
            return []
        if isinstance(value, str):
            items: list[object] = [piece for piece in _ID_SEPARATORS_RE.split(value.strip()) if piece]
        elif isinstance(value, (list, tuple)):
            items = list(value)
        else:
            items = [value]

        parsed: list[int] = []
        seen: set[int] = set()
        for index, item in enumerate(items, start=1):
            if isinstance(item, bool):
                raise forms.ValidationError(
                    self.error_messages['invalid'], code='invalid', params={'index': index, 'value': item}
                )
            try:
                number = int(item)  # type: ignore[arg-type]
            except (TypeError, ValueError) as exc:
                raise forms.ValidationError(
                    self.error_messages['invalid'], code='invalid', params={'index': index, 'value': item}
                ) from exc
            if number < 1:
                raise forms.ValidationError(
                    self.error_messages['invalid'], code='invalid', params={'index': index, 'value': item}
                )
            if number in seen:
                continue
            seen.add(number)
            parsed.append(number)
        return parsed

    def validate(self, value: list[int]) -> None:
        if self.required and not value:
            raise forms.ValidationError(self.error_messages['required'], code='required')


class ScanForm(forms.Form):
    """Options for a suggestion scan."""

    document_id = forms.CharField(
        required=False,
        max_length=64,
        help_text='Only scan this document. The index still covers the whole corpus.',
    )
    rescan = forms.BooleanField(
        required=False,
        help_text='Discard previous suggestions for the scanned documents first.',
    )
    use_ai = forms.BooleanField(
        required=False,
        help_text='Enrich keywords with phrases from the AI endpoint.',
    )


class SuggestionFilterForm(forms.Form):
    """Query parameters for listing suggestions."""

    status = forms.ChoiceField(required=False, choices=LinkSuggestion.Status.choices)
    document_id = forms.CharField(required=False, max_length=64)
    limit = forms.IntegerField(required=False, min_value=1, max_value=500)
    offset = forms.IntegerField(required=False, min_value=0)

    def clean_limit(self) -> int:
        return self.cleaned_data.get('limit') or 100

    def clean_offset(self) -> int:
        return self.cleaned_data.get('offset') or 0


class SuggestionStatusForm(forms.Form):
    """Review decision for a single suggestion."""

    status = forms.ChoiceField(
        choices=[
            (LinkSuggestion.Status.PENDING, 'Pending'),
            (LinkSuggestion.Status.APPROVED, 'Approved'),
            (LinkSuggestion.Status.REJECTED, 'Rejected'),
        ],
    )


class ApplyForm(forms.Form):
    """Suggestions to splice into their source fields."""

    suggestion_ids = IdListField(
        error_messages={'required': 'suggestion_ids array is required.'},
    )
    document_id = forms.CharField(required=False, max_length=64)


class RemoveLinksForm(forms.Form):
    """Target whose incoming links should be unwrapped."""

    target_document_id = forms.CharField(max_length=64)


class OrphanListForm(forms.Form):
    limit = forms.IntegerField(required=False, min_value=1, max_value=500)

    def clean_limit(self) -> int:
        return self.cleaned_data.get('limit') or 20
