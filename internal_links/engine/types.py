"""Typed data structures used by the internal-linking engine."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from .structured import instructions_text


@dataclass(frozen=True)
class Document:
    """Read-only view of a recipe as supplied by the content store."""

    id: str
    slug: str
    title: str
    category: Optional[str] = None
    ingredients: Any = None
    instructions: Any = None
    fields: Mapping[str, str] = field(default_factory=dict)

    def field_text(self, name: str) -> str:
        """Return the text of a processed field, deriving ``instructions`` text."""

        if name == "instructions":
            return instructions_text(self.instructions)
        return self.fields.get(name) or ""

    def content_fields(self, names: Sequence[str]) -> Dict[str, str]:
        """Return non-empty processed fields in the given order."""

        contents: Dict[str, str] = {}
        for name in names:
            text = self.field_text(name)
            if text:
                contents[name] = text
        return contents


@dataclass(frozen=True)
class KeywordItem:
    text: str
    priority: int
    type: str


@dataclass(frozen=True)
class KeywordIndexEntry:
    """One document's claim on a normalized keyword."""

    document_id: str
    slug: str
    title: str
    priority: int
    type: str
    keyword: str


class KeywordIndex(Mapping[str, Tuple[KeywordIndexEntry, ...]]):
    """Immutable mapping from normalized keyword to the documents that own it."""

    def __init__(self, entries: Mapping[str, Sequence[KeywordIndexEntry]] | None = None) -> None:
        self._entries: Dict[str, Tuple[KeywordIndexEntry, ...]] = {
            key: tuple(values) for key, values in (entries or {}).items() if values
        }

    def __getitem__(self, key: str) -> Tuple[KeywordIndexEntry, ...]:
        return self._entries[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:  # pragma: no cover - debugging aid
        return f"KeywordIndex({len(self._entries)} keywords)"

    def keywords_for(self, document_id: str) -> List[str]:
        """Return the normalized keywords a document contributed."""

        return [
            key
            for key, entries in self._entries.items()
            if any(entry.document_id == document_id for entry in entries)
        ]


@dataclass(frozen=True)
class LinkOpportunity:
    """Candidate link found in a source field, not yet applied."""

    source_document_id: str
    target_document_id: str
    target_slug: str
    target_title: str
    anchor_text: str
    field_name: str
    position: int
    sentence_context: str
    relevance_score: int
    keyword_type: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class AppliedLink:
    target_document_id: str
    target_slug: str
    anchor_text: str
    position: int


@dataclass(frozen=True)
class InsertionResult:
    """Outcome of splicing links into a single field."""

    field_name: str
    updated_content: str
    applied_links: List[AppliedLink] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class OrphanRecord:
    """Link accounting for one document at scan time."""

    document_id: str
    slug: str
    title: str
    incoming_links_count: int
    outgoing_links_count: int
    is_orphan: bool
    scanned_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["scanned_at"] = self.scanned_at.isoformat()
        return data
