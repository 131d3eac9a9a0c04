"""Shared fixtures for engine tests."""

from __future__ import annotations

from typing import Any, Dict

import pytest

from internal_links.engine.config import load_config
from internal_links.engine.types import Document


@pytest.fixture()
def engine_config():
    """Provide a mutable copy of the default engine configuration."""

    return load_config(None)


def make_document(
    id: str,
    title: str,
    *,
    slug: str | None = None,
    category: str | None = None,
    ingredients: Any = None,
    instructions: Any = None,
    **fields: str,
) -> Document:
    content: Dict[str, str] = {name: value for name, value in fields.items() if value is not None}
    return Document(
        id=id,
        slug=slug or title.lower().replace(" ", "-"),
        title=title,
        category=category,
        ingredients=ingredients,
        instructions=instructions,
        fields=content,
    )
