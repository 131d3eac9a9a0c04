"""Internal-linking engine: keyword extraction, matching, insertion and orphan detection.

Nothing in this package touches Django; callers pass documents in and persist
whatever comes back.
"""

from .ai import AIPhrase, PhraseService
from .config import DEFAULTS, EngineConfig, load_config
from .index import build_index, build_index_with_ai
from .inserter import batch_insert_links, insert_links, link_targets, remove_internal_links, validate_links
from .keywords import extract_keywords
from .matcher import find_document_opportunities, find_opportunities
from .orphans import scan_orphans
from .text import normalize
from .types import (
    AppliedLink,
    Document,
    InsertionResult,
    KeywordIndex,
    KeywordIndexEntry,
    KeywordItem,
    LinkOpportunity,
    OrphanRecord,
)

__all__ = [
    "AIPhrase",
    "AppliedLink",
    "DEFAULTS",
    "Document",
    "EngineConfig",
    "InsertionResult",
    "KeywordIndex",
    "KeywordIndexEntry",
    "KeywordItem",
    "LinkOpportunity",
    "OrphanRecord",
    "PhraseService",
    "batch_insert_links",
    "build_index",
    "build_index_with_ai",
    "extract_keywords",
    "find_document_opportunities",
    "find_opportunities",
    "insert_links",
    "link_targets",
    "load_config",
    "normalize",
    "remove_internal_links",
    "scan_orphans",
    "validate_links",
]
