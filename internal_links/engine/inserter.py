"""Splicing approved link opportunities into field text.

Insertion is strictly sequential per field: every step works on the output of
the previous one, so recorded opportunity offsets are never trusted. Each
anchor text is located afresh in the current text and existing anchors are
re-scanned before every splice.
"""

from __future__ import annotations

import re
from typing import Dict, List, Mapping, Sequence

from .config import EngineConfig, load_config
from .markup import build_anchor, internal_link_re, overlaps, protected_spans
from .types import AppliedLink, InsertionResult, LinkOpportunity

_OPEN_TAG_RE = re.compile(r"<a\b[^>]*>", re.IGNORECASE)
_CLOSE_TAG_RE = re.compile(r"</a\s*>", re.IGNORECASE)
_ANCHOR_TAG_RE = re.compile(r"<a\b[^>]*>|</a\s*>", re.IGNORECASE)
_EMPTY_HREF_RE = re.compile(r"<a\b[^>]*\bhref\s*=\s*(?:\"\"|'')[^>]*>", re.IGNORECASE)


def insert_links(
    content: str,
    opportunities: Sequence[LinkOpportunity],
    field_name: str,
    config: EngineConfig | None = None,
) -> InsertionResult:
    """Wrap each opportunity's anchor text in an internal link.

    Higher relevance wins when two opportunities compete for the same text.
    An anchor text is linked at most once per field, and text that is no
    longer present or that sits inside existing markup is skipped.
    """

    if not content or not opportunities:
        return InsertionResult(field_name=field_name, updated_content=content, applied_links=[])

    engine_config = config or load_config(None)
    prefix = engine_config.get("link_prefix", "/recipes/")
    link_class = engine_config.get("link_class", "")

    ordered = sorted(opportunities, key=lambda item: item.relevance_score, reverse=True)
    updated = content
    applied: List[AppliedLink] = []
    used_anchors: set[str] = set()

    for opportunity in ordered:
        anchor_key = opportunity.anchor_text.lower()
        if not anchor_key or anchor_key in used_anchors:
            continue

        # Search the current text itself; lowercasing can change string length.
        match = _first_free_occurrence(opportunity.anchor_text, updated)
        if match is None:
            continue
        position, end = match.span()

        current_text = match.group(0)
        link = build_anchor(prefix, opportunity.target_slug, current_text, link_class)
        updated = updated[:position] + link + updated[end:]

        used_anchors.add(anchor_key)
        applied.append(
            AppliedLink(
                target_document_id=opportunity.target_document_id,
                target_slug=opportunity.target_slug,
                anchor_text=current_text,
                position=position,
            )
        )

    return InsertionResult(field_name=field_name, updated_content=updated, applied_links=applied)


def _first_free_occurrence(anchor_text: str, content: str) -> re.Match[str] | None:
    spans = protected_spans(content)
    for match in re.finditer(re.escape(anchor_text), content, re.IGNORECASE):
        if not overlaps(match.start(), match.end(), spans):
            return match
    return None


def batch_insert_links(
    contents: Mapping[str, str],
    opportunities_by_field: Mapping[str, Sequence[LinkOpportunity]],
    config: EngineConfig | None = None,
) -> Dict[str, InsertionResult]:
    """Insert links field by field for every processed field of a document."""

    engine_config = config or load_config(None)
    results: Dict[str, InsertionResult] = {}
    for field_name in engine_config.processed_fields():
        results[field_name] = insert_links(
            contents.get(field_name) or "",
            opportunities_by_field.get(field_name) or [],
            field_name,
            engine_config,
        )
    return results


def validate_links(content: str) -> List[str]:
    """Return a list of anchor markup problems found in ``content``.

    This is a diagnostic: an empty list means the markup is sound.
    """

    problems: List[str] = []
    if not content:
        return problems

    opening = len(_OPEN_TAG_RE.findall(content))
    closing = len(_CLOSE_TAG_RE.findall(content))
    if opening != closing:
        problems.append(f"Mismatched <a> tags: {opening} opening, {closing} closing")

    depth = 0
    nested = False
    for match in _ANCHOR_TAG_RE.finditer(content):
        if match.group(0).startswith("</"):
            depth = max(0, depth - 1)
            continue
        depth += 1
        if depth > 1:
            nested = True
    if nested:
        problems.append("Nested <a> tags detected")

    if _EMPTY_HREF_RE.search(content):
        problems.append("Empty href attribute found")

    return problems


def remove_internal_links(
    content: str,
    target_slug: str | None = None,
    config: EngineConfig | None = None,
) -> str:
    """Unwrap internal anchors pointing at ``target_slug``, keeping their text.

    With no slug every internal recipe link is unwrapped. Matches are replaced
    from last to first so earlier offsets stay valid.
    """

    if not content:
        return content

    engine_config = config or load_config(None)
    pattern = internal_link_re(engine_config.get("link_prefix", "/recipes/"), target_slug, with_body=True)
    matches = list(pattern.finditer(content))

    updated = content
    for match in reversed(matches):
        updated = updated[:match.start()] + match.group(2) + updated[match.end():]
    return updated


def link_targets(content: str, config: EngineConfig | None = None) -> List[str]:
    """Return the target slug of every internal anchor, in document order."""

    if not content:
        return []
    engine_config = config or load_config(None)
    pattern = internal_link_re(engine_config.get("link_prefix", "/recipes/"))
    return [_clean_slug(match.group(1)) for match in pattern.finditer(content)]


def _clean_slug(raw: str) -> str:
    return raw.split("#", 1)[0].split("?", 1)[0].rstrip("/")
