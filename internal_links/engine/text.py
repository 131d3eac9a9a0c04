"""Shared text utilities for the linking engine."""

from __future__ import annotations

import re
from typing import List

from bs4 import BeautifulSoup, FeatureNotFound  # type: ignore

_DISALLOWED_RE = re.compile(r"[^a-z0-9\s-]")
_WHITESPACE_RE = re.compile(r"\s+")
_TOKEN_RE = re.compile(r"[a-z0-9-]+")


def normalize(text: str) -> str:
    """Canonical form used to compare and deduplicate keywords.

    Lowercases, drops everything except ASCII letters, digits, whitespace and
    hyphens, then collapses whitespace. ``normalize(normalize(s)) == normalize(s)``.
    """

    if not text:
        return ""
    cleaned = _DISALLOWED_RE.sub("", text.lower())
    return _WHITESPACE_RE.sub(" ", cleaned).strip()


def collapse_whitespace(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", text).strip()


def phrase_tokens(text: str) -> List[str]:
    """Lower-cased word tokens for phrase windows; punctuation acts as a separator."""

    lowered = _DISALLOWED_RE.sub(" ", text.lower())
    return _TOKEN_RE.findall(lowered)


def html_to_text(markup: str) -> str:
    """Return the visible text of an HTML fragment with whitespace collapsed."""

    if not markup:
        return ""
    if "<" not in markup:
        return collapse_whitespace(markup)
    try:
        soup = BeautifulSoup(markup, "lxml")
    except FeatureNotFound:
        # Fallback to html.parser if lxml isn't installed
        soup = BeautifulSoup(markup, "html.parser")
    return collapse_whitespace(soup.get_text(" "))
