"""Optional AI phrase enrichment for keyword extraction.

The phrase service is advisory: any failure (missing token, HTTP error,
timeout, malformed JSON) yields an empty phrase list for the affected
document and never interrupts a scan. Requests are issued in fixed-size
batches; documents inside a batch are fetched concurrently and batches run
one after another with a delay in between to stay under the provider's rate
limit.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Sequence

import httpx

from .types import Document, KeywordItem

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "https://models.inference.ai.azure.com"
DEFAULT_MODEL = "gpt-4o-mini"

AI_CATEGORIES = ("topic", "technique", "ingredient", "cuisine", "occasion", "dietary")

_FENCE_RE = re.compile(r"```(?:json)?\s*", re.IGNORECASE)


@dataclass(frozen=True)
class AIPhrase:
    text: str
    relevance: int
    category: str = "topic"


def build_prompt(document: Document) -> str:
    """Return the extraction prompt for ``document`` with long fields truncated."""

    intro = document.fields.get("intro") or ""
    description = document.fields.get("description") or ""
    story = document.fields.get("story") or ""
    parts = [
        f"Title: {document.title}",
        f"Category: {document.category or ''}",
        f"Intro: {intro[:300]}" if intro else "",
        f"Description: {description[:300]}" if description else "",
        f"Story: {story[:400]}" if story else "",
    ]
    content = "\n\n".join(part for part in parts if part)

    return (
        "You are a recipe SEO expert. Extract 8-12 relevant keywords and phrases from this "
        "recipe that would be useful for internal linking. Focus on:\n"
        '- Cooking techniques (e.g., "pan-seared", "slow-cooked", "air-fried")\n'
        '- Cuisine types (e.g., "Italian", "Asian-inspired", "Mediterranean")\n'
        "- Key ingredients (main proteins, vegetables, spices)\n"
        '- Meal occasions (e.g., "weeknight dinner", "holiday dessert", "meal prep")\n'
        '- Dietary attributes (e.g., "gluten-free", "low-carb", "vegetarian")\n'
        '- Flavor profiles (e.g., "spicy", "sweet and savory", "umami-rich")\n\n'
        "Return ONLY a JSON array with this format:\n"
        "[\n"
        '  {"text": "keyword or phrase", "relevance": 85, "category": "technique"},\n'
        '  {"text": "another keyword", "relevance": 90, "category": "cuisine"}\n'
        "]\n\n"
        f"Recipe content:\n{content}\n\n"
        "Return only the JSON array, no other text."
    )


def parse_phrases(raw: str) -> List[AIPhrase]:
    """Decode the model's reply into phrases; anything malformed yields ``[]``."""

    if not raw:
        return []
    if not isinstance(raw, str):
        logger.warning("AI phrase response content is not text: %r", type(raw).__name__)
        return []
    cleaned = _FENCE_RE.sub("", raw.strip()).strip()
    try:
        data = json.loads(cleaned)
    except ValueError:
        logger.warning("AI phrase response is not valid JSON: %.200s", raw)
        return []
    if not isinstance(data, list):
        logger.warning("AI phrase response is not a JSON array")
        return []

    phrases: List[AIPhrase] = []
    for item in data:
        if not isinstance(item, dict):
            continue
        text = item.get("text")
        relevance = item.get("relevance")
        if not isinstance(text, str) or not text.strip():
            continue
        if isinstance(relevance, bool) or not isinstance(relevance, (int, float)):
            continue
        text = text.strip()
        if not 3 <= len(text) <= 50:
            continue
        category = item.get("category")
        if category not in AI_CATEGORIES:
            category = "topic"
        phrases.append(AIPhrase(text=text, relevance=int(min(100, max(0, relevance))), category=category))
    return phrases


def phrases_to_keywords(phrases: Sequence[AIPhrase]) -> List[KeywordItem]:
    """Map AI relevance (0-100) onto the 40-60 priority band."""

    return [
        KeywordItem(text=phrase.text, priority=round(40 + phrase.relevance * 0.2), type="custom")
        for phrase in phrases
    ]


class PhraseService:
    """Async client for a chat-completions endpoint that proposes phrases."""

    def __init__(
        self,
        endpoint: str = DEFAULT_ENDPOINT,
        token: str | None = None,
        model: str = DEFAULT_MODEL,
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.endpoint = endpoint.rstrip("/")
        self.token = token
        self.model = model
        self.timeout = timeout
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.token)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=httpx.Timeout(self.timeout), transport=self._transport)

    async def extract(self, document: Document, client: httpx.AsyncClient | None = None) -> List[AIPhrase]:
        """Return AI phrases for one document, or ``[]`` on any failure."""

        if not self.enabled:
            return []
        if client is None:
            async with self._client() as own_client:
                return await self.extract(document, own_client)

        try:
            reply = await self._complete(client, build_prompt(document))
            return parse_phrases(reply)
        except (httpx.HTTPError, ValueError, KeyError, IndexError, TypeError) as exc:
            logger.warning("AI phrase extraction failed for %s: %s", document.id, exc)
            return []

    async def extract_batch(
        self,
        documents: Sequence[Document],
        batch_size: int = 5,
        delay: float = 1.0,
    ) -> Dict[str, List[AIPhrase]]:
        """Fetch phrases for every document, batch by batch.

        Documents within a batch are requested concurrently. A failure for one
        document leaves an empty list for it and does not affect its siblings.
        """

        results: Dict[str, List[AIPhrase]] = {document.id: [] for document in documents}
        if not self.enabled:
            logger.warning("AI token not configured, skipping AI keyword extraction")
            return results

        size = max(1, int(batch_size))
        async with self._client() as client:
            for start in range(0, len(documents), size):
                batch = documents[start:start + size]
                outcomes = await asyncio.gather(
                    *(self.extract(document, client) for document in batch),
                    return_exceptions=True,
                )
                for document, outcome in zip(batch, outcomes):
                    if isinstance(outcome, BaseException):
                        logger.warning("AI phrase task failed for %s: %r", document.id, outcome)
                        continue
                    results[document.id] = outcome
                if start + size < len(documents) and delay > 0:
                    await asyncio.sleep(delay)
        return results

    async def _complete(self, client: httpx.AsyncClient, prompt: str) -> str:
        response = await client.post(
            f"{self.endpoint}/chat/completions",
            headers={"Authorization": f"Bearer {self.token}"},
            json={
                "model": self.model,
                "messages": [{"role": "user", "content": prompt}],
                "temperature": 0.3,
                "max_tokens": 500,
            },
        )
        response.raise_for_status()
        payload: Dict[str, Any] = response.json()
        return payload["choices"][0]["message"]["content"] or ""
