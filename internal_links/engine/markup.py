"""Helpers for reading and writing anchor markup inside field text."""

from __future__ import annotations

import re
from typing import List, Tuple

Span = Tuple[int, int]

ANCHOR_SPAN_RE = re.compile(r"<a\b[^>]*>.*?</a>", re.IGNORECASE | re.DOTALL)
TAG_RE = re.compile(r"<[^>]*>")


def anchor_spans(content: str) -> List[Span]:
    """Return ``(start, end)`` offsets of every ``<a>…</a>`` element in ``content``."""

    return [match.span() for match in ANCHOR_SPAN_RE.finditer(content)]


def protected_spans(content: str) -> List[Span]:
    """Spans where links must never be placed: existing anchors and tag markup."""

    spans = anchor_spans(content)
    spans.extend(match.span() for match in TAG_RE.finditer(content))
    spans.sort()
    return spans


def overlaps(start: int, end: int, spans: List[Span]) -> bool:
    return any(start < span_end and end > span_start for span_start, span_end in spans)


def internal_link_re(prefix: str, slug: str | None = None, *, with_body: bool = False) -> re.Pattern[str]:
    """Compile a matcher for internal anchors under ``prefix``.

    Group 1 is the target slug. With ``with_body`` the element is matched up
    to its closing tag and group 2 is the inner text.
    """

    target = re.escape(slug) if slug else r'[^"]+'
    pattern = rf'<a\s+[^>]*href="{re.escape(prefix)}({target})"[^>]*>'
    if with_body:
        pattern += r"(.*?)</a>"
    return re.compile(pattern, re.IGNORECASE | re.DOTALL)


def build_anchor(prefix: str, slug: str, text: str, link_class: str) -> str:
    return f'<a href="{prefix}{slug}" class="{link_class}">{text}</a>'
