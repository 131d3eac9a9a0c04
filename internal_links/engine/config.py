"""Configuration helpers for the internal-linking engine."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, FrozenSet, Mapping, Tuple

import yaml


@dataclass(frozen=True)
class EngineConfig:
    """Typed wrapper around the engine configuration dictionary."""

    raw: Dict[str, Any] = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        return self.raw.get(key, default)

    def blacklist(self) -> FrozenSet[str]:
        return frozenset(word.strip().lower() for word in self.raw.get("blacklist", []))

    def common_phrases(self) -> FrozenSet[str]:
        return frozenset(phrase.strip().lower() for phrase in self.raw.get("common_phrases", []))

    def unit_words(self) -> FrozenSet[str]:
        return frozenset(word.strip().lower() for word in self.raw.get("unit_words", []))

    def processed_fields(self) -> Tuple[str, ...]:
        return tuple(self.raw.get("processed_fields", ()))


DEFAULTS: Dict[str, Any] = {
    "min_relevance_score": 50,
    "max_suggestions_per_document": 20,
    "max_links_per_field": 5,
    "min_anchor_words": 1,
    "max_anchor_words": 5,
    "orphan_threshold": 3,
    "ai_batch_size": 5,
    "ai_batch_delay": 1.0,
    "ai_timeout": 30.0,
    "max_text_phrases": 30,
    "context_window": 100,
    "early_position_chars": 200,
    "link_prefix": "/recipes/",
    "link_class": "text-orange-600 hover:text-orange-700 underline transition-colors",
    "processed_fields": ["intro", "story", "description", "instructions"],
    "blacklist": [
        "click here",
        "this",
        "that",
        "here",
        "there",
        "these",
        "those",
        "read more",
        "see more",
        "learn more",
        "find out",
        "check out",
        "a",
        "an",
        "the",
        "and",
        "or",
        "but",
        "in",
        "on",
        "at",
        "to",
        "for",
        "of",
        "with",
    ],
    "common_phrases": [
        "this is",
        "you can",
        "it is",
        "will be",
        "can be",
        "this will",
        "make sure",
        "you will",
        "to make",
        "in the",
        "on the",
        "for the",
        "with the",
        "and the",
        "of the",
        "to the",
        "at the",
        "from the",
        "is a",
        "are a",
        "was a",
        "were a",
        "has a",
        "have a",
        "very good",
        "very easy",
        "so good",
        "so easy",
        "really good",
        "i love",
        "i like",
        "you need",
        "we use",
        "they are",
    ],
    "unit_words": [
        "cup",
        "cups",
        "tablespoon",
        "tablespoons",
        "teaspoon",
        "teaspoons",
        "tsp",
        "tbsp",
        "oz",
        "ounce",
        "ounces",
        "pound",
        "pounds",
        "lb",
        "lbs",
        "gram",
        "grams",
        "g",
        "kg",
        "ml",
        "liter",
        "liters",
        "pinch",
        "dash",
    ],
}


def load_config(
    path: str | Path | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> EngineConfig:
    """Load configuration from YAML, merging with defaults and explicit overrides."""

    data: Dict[str, Any] = copy.deepcopy(DEFAULTS)

    if path is not None and Path(path).exists():
        with Path(path).open("r", encoding="utf-8") as stream:
            user = yaml.safe_load(stream) or {}
        merge_into(data, user)

    if overrides:
        merge_into(data, dict(overrides))

    return EngineConfig(data)


def merge_into(base: Dict[str, Any], override: Mapping[str, Any]) -> None:
    """Recursively merge override into base dict."""

    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            merge_into(base[key], value)
        else:
            base[key] = value
