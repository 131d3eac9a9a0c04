"""Corpus-wide keyword index construction."""

from __future__ import annotations

from typing import Dict, List, Mapping, Sequence

from .ai import AIPhrase, PhraseService
from .config import EngineConfig, load_config
from .keywords import extract_keywords
from .text import normalize
from .types import Document, KeywordIndex, KeywordIndexEntry


def build_index(
    documents: Sequence[Document],
    config: EngineConfig | None = None,
    ai_phrases: Mapping[str, Sequence[AIPhrase]] | None = None,
) -> KeywordIndex:
    """Extract every document and group the results by normalized keyword.

    Entries are appended in document order. Blacklisted keywords are never
    indexed. ``ai_phrases`` maps document ids to pre-fetched AI phrases.
    """

    engine_config = config or load_config(None)
    blacklist = engine_config.blacklist()
    phrases_by_document = ai_phrases or {}
    entries: Dict[str, List[KeywordIndexEntry]] = {}

    for document in documents:
        keywords = extract_keywords(document, engine_config, phrases_by_document.get(document.id))
        for keyword in keywords:
            key = normalize(keyword.text)
            if not key or key in blacklist:
                continue
            entries.setdefault(key, []).append(
                KeywordIndexEntry(
                    document_id=document.id,
                    slug=document.slug,
                    title=document.title,
                    priority=keyword.priority,
                    type=keyword.type,
                    keyword=keyword.text,
                )
            )

    return KeywordIndex(entries)


async def build_index_with_ai(
    documents: Sequence[Document],
    service: PhraseService,
    config: EngineConfig | None = None,
) -> KeywordIndex:
    """Build the index after enriching every document through ``service``."""

    engine_config = config or load_config(None)
    phrases = await service.extract_batch(
        documents,
        batch_size=int(engine_config.get("ai_batch_size", 5)),
        delay=float(engine_config.get("ai_batch_delay", 1.0)),
    )
    return build_index(documents, engine_config, phrases)
