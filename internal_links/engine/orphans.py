"""Orphan detection over the current link graph of the corpus."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, List, Sequence

from .config import EngineConfig, load_config
from .inserter import link_targets
from .types import Document, OrphanRecord


def link_counts(documents: Sequence[Document], config: EngineConfig | None = None) -> Dict[str, Dict[str, int]]:
    """Return ``{document_id: {"incoming": n, "outgoing": m}}`` for the corpus.

    Links to slugs that do not resolve to a document only count as outgoing.
    """

    engine_config = config or load_config(None)
    fields = engine_config.processed_fields()
    slug_to_id = {document.slug: document.id for document in documents}
    counts = {document.id: {"incoming": 0, "outgoing": 0} for document in documents}

    for document in documents:
        content = " ".join(document.content_fields(fields).values())
        targets = link_targets(content, engine_config)
        counts[document.id]["outgoing"] = len(targets)
        for slug in targets:
            target_id = slug_to_id.get(slug)
            if target_id is not None:
                counts[target_id]["incoming"] += 1

    return counts


def scan_orphans(
    documents: Sequence[Document],
    config: EngineConfig | None = None,
    scanned_at: datetime | None = None,
) -> List[OrphanRecord]:
    """Recompute link accounting for every document, most orphaned first."""

    engine_config = config or load_config(None)
    threshold = int(engine_config.get("orphan_threshold", 3))
    timestamp = scanned_at or datetime.now(timezone.utc)
    counts = link_counts(documents, engine_config)

    records = [
        OrphanRecord(
            document_id=document.id,
            slug=document.slug,
            title=document.title,
            incoming_links_count=counts[document.id]["incoming"],
            outgoing_links_count=counts[document.id]["outgoing"],
            is_orphan=counts[document.id]["incoming"] < threshold,
            scanned_at=timestamp,
        )
        for document in documents
    ]
    records.sort(key=lambda record: record.incoming_links_count)
    return records
