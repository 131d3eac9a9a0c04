"""Keyword extraction for a single recipe document."""

from __future__ import annotations

import re
from typing import Dict, Iterable, List, Optional, Sequence

from .ai import AIPhrase, phrases_to_keywords
from .config import EngineConfig, load_config
from .structured import parse_ingredients
from .text import collapse_whitespace, html_to_text, normalize, phrase_tokens
from .types import Document, KeywordItem

TITLE_PRIORITY = 100
TITLE_STEM_PRIORITY = 95
TITLE_TAIL_PRIORITY = 90
CATEGORY_PRIORITY = 70
INGREDIENT_PRIORITY = 60
BIGRAM_PRIORITY = 55
TRIGRAM_PRIORITY = 58

MIN_FREE_TEXT_LENGTH = 20

_TITLE_SUFFIX_RE = re.compile(r"\s*(?:[-–#]\s*)?\d+(?:st|nd|rd|th)?\s*$", re.IGNORECASE)
_QUANTITY_RE = re.compile(r"[0-9/\-().,¼½¾⅐⅑⅒⅓⅔⅕⅖⅗⅘⅙⅚⅛⅜⅝⅞⁄]")


def extract_keywords(
    document: Document,
    config: EngineConfig | None = None,
    ai_phrases: Optional[Sequence[AIPhrase]] = None,
) -> List[KeywordItem]:
    """Return the deduplicated keyword set for ``document``.

    Rule-based items come from the title, category, ingredient list and free
    text. ``ai_phrases`` are merged in as low-priority ``custom`` items when
    supplied.
    """

    engine_config = config or load_config(None)
    keywords: List[KeywordItem] = []

    keywords.extend(title_keywords(document.title))

    if document.category and document.category.strip():
        keywords.append(KeywordItem(document.category.strip(), CATEGORY_PRIORITY, "category"))

    keywords.extend(ingredient_keywords(document.ingredients, engine_config))

    fields = document.content_fields(engine_config.processed_fields())
    free_text = " ".join(html_to_text(text) for text in fields.values())
    keywords.extend(free_text_keywords(free_text, engine_config))

    if ai_phrases:
        keywords.extend(phrases_to_keywords(ai_phrases))

    return deduplicate(keywords)


def title_keywords(title: str) -> List[KeywordItem]:
    full_title = (title or "").strip()
    if not full_title:
        return []

    items = [KeywordItem(full_title, TITLE_PRIORITY, "title")]
    stem = _TITLE_SUFFIX_RE.sub("", full_title).strip()
    if stem and stem != full_title and len(stem) > 3:
        items.append(KeywordItem(stem, TITLE_STEM_PRIORITY, "title"))
    else:
        stem = full_title

    # "Classic Banana Bread" is also claimed as "Banana Bread", without the title bonus.
    words = stem.split()
    if len(words) >= 3:
        tail = " ".join(words[1:])
        if len(tail) > 3:
            items.append(KeywordItem(tail, TITLE_TAIL_PRIORITY, "custom"))
    return items


def ingredient_keywords(raw_ingredients: object, config: EngineConfig) -> List[KeywordItem]:
    lines = parse_ingredients(raw_ingredients)
    if not lines:
        return []

    units = config.unit_words()
    items: List[KeywordItem] = []
    for line in lines:
        head = " ".join(line.split()[:3])
        words = [
            word
            for word in _QUANTITY_RE.sub(" ", head).split()
            if word.lower() not in units
        ]
        cleaned = collapse_whitespace(" ".join(words))
        if len(cleaned) > 3 and cleaned.lower() not in units:
            items.append(KeywordItem(cleaned, INGREDIENT_PRIORITY, "ingredient"))
    return items


def free_text_keywords(text: str, config: EngineConfig) -> List[KeywordItem]:
    """Extract 2- and 3-word phrases from running text."""

    if not text or len(text) < MIN_FREE_TEXT_LENGTH:
        return []

    blacklist = config.blacklist()
    common = config.common_phrases()
    words = [word for word in phrase_tokens(text) if len(word) > 2]
    seen: set[str] = set()
    items: List[KeywordItem] = []

    windows = ((2, 6, BIGRAM_PRIORITY), (3, 10, TRIGRAM_PRIORITY))
    for size, min_length, priority in windows:
        for start in range(len(words) - size + 1):
            phrase = " ".join(words[start:start + size])
            normalized = normalize(phrase)
            if len(normalized) < min_length:
                continue
            if normalized in blacklist or normalized in common or normalized in seen:
                continue
            seen.add(normalized)
            items.append(KeywordItem(phrase, priority, "custom"))

    limit = int(config.get("max_text_phrases", 30))
    return items[:limit]


def deduplicate(keywords: Iterable[KeywordItem]) -> List[KeywordItem]:
    """Collapse items by normalized text, keeping the highest priority one."""

    best: Dict[str, KeywordItem] = {}
    for item in keywords:
        key = normalize(item.text)
        if not key:
            continue
        existing = best.get(key)
        if existing is None or item.priority > existing.priority:
            best[key] = item
    return list(best.values())
