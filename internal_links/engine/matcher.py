"""Link opportunity matching for a single content field."""

from __future__ import annotations

import re
from functools import lru_cache
from typing import List, Optional, Sequence, Tuple

from .config import EngineConfig, load_config
from .markup import overlaps, protected_spans
from .types import Document, KeywordIndex, KeywordIndexEntry, LinkOpportunity

# Word boundary regex template used when compiling keyword matchers
WORD_BOUNDARY = r"(?<![A-Za-z0-9_])(?:{term})(?![A-Za-z0-9_])"


@lru_cache(maxsize=4096)
def _keyword_pattern(texts: Tuple[str, ...]) -> re.Pattern[str]:
    alternatives = []
    for text in sorted(texts, key=len, reverse=True):
        words = text.split()
        if words:
            alternatives.append(r"\s+".join(re.escape(word) for word in words))
    return re.compile(WORD_BOUNDARY.format(term="|".join(alternatives)), flags=re.IGNORECASE)


def _keyword_texts(entries: Sequence[KeywordIndexEntry]) -> Tuple[str, ...]:
    seen: dict[str, None] = {}
    for entry in entries:
        text = entry.keyword.strip()
        if text:
            seen.setdefault(text, None)
    return tuple(seen)


def _first_free_match(
    pattern: re.Pattern[str],
    content: str,
    spans: List[Tuple[int, int]],
) -> Optional[re.Match[str]]:
    for match in pattern.finditer(content):
        if not overlaps(match.start(), match.end(), spans):
            return match
    return None


def extract_sentence(content: str, position: int, window: int = 100) -> str:
    """Return ``window`` characters either side of ``position``, ellipsized when cut."""

    start = max(0, position - window)
    end = min(len(content), position + window)
    sentence = content[start:end]
    if start > 0:
        sentence = "..." + sentence
    if end < len(content):
        sentence = sentence + "..."
    return sentence.strip()


def relevance_score(
    anchor_text: str,
    position: int,
    base_priority: int,
    keyword_type: str,
    config: EngineConfig,
) -> int:
    """Adjust a keyword's priority into a 0-100 relevance score."""

    score = base_priority
    words = len(anchor_text.split())
    min_words = int(config.get("min_anchor_words", 1))
    max_words = int(config.get("max_anchor_words", 5))
    if min_words <= words <= max_words:
        score += 5
    elif words > max_words:
        score -= 10

    if position < int(config.get("early_position_chars", 200)):
        score += 5

    if keyword_type == "title":
        score += 10

    return min(100, max(0, score))


def find_opportunities(
    content: str,
    index: KeywordIndex,
    source_document_id: str,
    field_name: str,
    config: EngineConfig | None = None,
) -> List[LinkOpportunity]:
    """Return the best link opportunities for one field of one document.

    Every keyword is matched at most once (its first occurrence outside
    existing anchors and tags). Qualifying matches are collected, sorted by
    relevance and only then capped.
    """

    if not content:
        return []

    engine_config = config or load_config(None)
    window = int(engine_config.get("context_window", 100))
    min_score = int(engine_config.get("min_relevance_score", 50))
    spans = protected_spans(content)
    opportunities: List[LinkOpportunity] = []

    for keyword, entries in index.items():
        candidates = [entry for entry in entries if entry.document_id != source_document_id]
        if not candidates:
            continue
        texts = _keyword_texts(entries)
        if not texts:
            continue

        match = _first_free_match(_keyword_pattern(texts), content, spans)
        if match is None:
            continue

        best = max(candidates, key=lambda entry: entry.priority)
        anchor_text = match.group(0)
        position = match.start()
        score = relevance_score(anchor_text, position, best.priority, best.type, engine_config)
        if score < min_score:
            continue

        opportunities.append(
            LinkOpportunity(
                source_document_id=source_document_id,
                target_document_id=best.document_id,
                target_slug=best.slug,
                target_title=best.title,
                anchor_text=anchor_text,
                field_name=field_name,
                position=position,
                sentence_context=extract_sentence(content, position, window),
                relevance_score=score,
                keyword_type=best.type,
            )
        )

    opportunities.sort(key=lambda item: (-item.relevance_score, item.position))
    limit = int(engine_config.get("max_links_per_field", 5))
    return opportunities[:limit]


def find_document_opportunities(
    document: Document,
    index: KeywordIndex,
    config: EngineConfig | None = None,
) -> List[LinkOpportunity]:
    """Run the matcher over every processed field and cap the per-document total."""

    engine_config = config or load_config(None)
    opportunities: List[LinkOpportunity] = []
    for field_name, content in document.content_fields(engine_config.processed_fields()).items():
        opportunities.extend(find_opportunities(content, index, document.id, field_name, engine_config))

    opportunities.sort(key=lambda item: -item.relevance_score)
    limit = int(engine_config.get("max_suggestions_per_document", 20))
    return opportunities[:limit]
