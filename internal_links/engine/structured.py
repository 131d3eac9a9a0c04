"""Tolerant parsing of the structured recipe fields.

Ingredients and instructions arrive either as JSON text or as already
decoded lists, and older records are not always well formed. Every parser
here returns ``None`` when the value cannot be understood instead of
raising, so callers can treat "no structured data" as an ordinary case.
"""

from __future__ import annotations

import json
from typing import Any, List, Optional


def _decode(raw: Any) -> Any:
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8", errors="replace")
    if isinstance(raw, str):
        try:
            return json.loads(raw)
        except ValueError:
            return None
    return raw


def parse_ingredients(raw: Any) -> Optional[List[str]]:
    """Return the ingredient lines of a sectioned ingredient list.

    The expected shape is ``[{"title": ..., "items": ["1 cup flour", ...]}]``.
    Bare strings inside the outer list are accepted as items too.
    """

    if not raw:
        return None
    data = _decode(raw)
    if not isinstance(data, list):
        return None

    lines: List[str] = []
    for section in data:
        if isinstance(section, str):
            lines.append(section)
            continue
        if not isinstance(section, dict):
            continue
        items = section.get("items")
        if not isinstance(items, list):
            continue
        lines.extend(item for item in items if isinstance(item, str))
    return lines


def parse_instructions(raw: Any) -> Optional[List[str]]:
    """Return instruction step texts, or ``None`` if ``raw`` is not a step list."""

    if not raw:
        return None
    data = _decode(raw)
    if not isinstance(data, list):
        return None

    steps: List[str] = []
    for step in data:
        if isinstance(step, str):
            text = step
        elif isinstance(step, dict):
            text = step.get("instruction") or step.get("text") or ""
        else:
            continue
        if isinstance(text, str) and text.strip():
            steps.append(text.strip())
    return steps


def instructions_text(raw: Any) -> str:
    """Return the instructions as a single block of text.

    Plain text that is not JSON is returned unchanged.
    """

    if not raw:
        return ""
    steps = parse_instructions(raw)
    if steps is not None:
        return " ".join(steps).strip()
    if isinstance(raw, str):
        return raw.strip()
    return ""
