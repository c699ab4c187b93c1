"""
Gemini discovery source with Google Search grounding.

The model is asked for a JSON array of {name, description, outdoor,
priceTier}. Grounding chunk URLs are attached to a place when the chunk
title contains the place name's first word. The model's priceTier estimate
rides along on the record; "outdoor" is left to attribute inference.
"""

import logging
from typing import Any, Optional

import httpx

from services.curator.generation.llm_client import extract_json
from services.curator.pipeline.categories import get_category
from services.curator.pipeline.types import CandidateRecord, DiscoverySource, PlaceCategory, coerce_price_tier
from services.curator.scrapers.base import BaseSourceClient, SourceRegistry, raise_for_api_status

logger = logging.getLogger(__name__)

GEMINI_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
SNIPPET_MAX = 200


def build_prompt(city: str, state: str, category: PlaceCategory) -> str:
    config = get_category(category)
    return f"""Find real, family-friendly places in {city}, {state} in the category: "{config.name}".

{config.guidance}

Search for actual businesses, parks, libraries, farms, and venues that exist today. Focus on:
- Locally owned, non-chain establishments
- Places safe and enjoyable for families with young children (ages 0-9)
- FREE or low-cost destinations (under $15/person)
- Nature-connected, community-oriented spots

For each place you find, provide:
1. The exact name as it would appear on Google Maps
2. A one-sentence description of what it is
3. Whether it's primarily outdoor (true) or indoor (false)
4. Approximate price: FREE, $5_$10, or $10_$15

Return {config.target_count + 3} places as a JSON array with fields: name, description, outdoor, priceTier.
Only include places you are confident actually exist. Return ONLY valid JSON array, no other text."""


def _match_grounding_url(name: str, chunks: list[dict]) -> str:
    first_word = name.lower().split(" ")[0] if name else ""
    if not first_word:
        return ""
    for chunk in chunks:
        web = chunk.get("web") or {}
        if first_word in (web.get("title") or "").lower():
            return web.get("uri") or ""
    return ""


class GeminiGroundedSource(BaseSourceClient):
    """Gemini generateContent with the google_search tool enabled."""

    SOURCE_REGISTRY = SourceRegistry(
        name=DiscoverySource.GEMINI,
        base_url="https://generativelanguage.googleapis.com",
    )

    def __init__(self, api_key: str, *, model: str = "gemini-2.5-flash", **kwargs):
        super().__init__(api_key, **kwargs)
        self.model = model

    async def fetch(
        self,
        http: httpx.AsyncClient,
        city: str,
        state: str,
        category: Optional[PlaceCategory],
    ) -> dict:
        category = category or PlaceCategory.NATURE
        resp = await http.post(
            GEMINI_URL.format(model=self.model),
            params={"key": self.api_key},
            json={
                "contents": [{"parts": [{"text": build_prompt(city, state, category)}]}],
                "tools": [{"google_search": {}}],
                "generationConfig": {"temperature": 1.0, "maxOutputTokens": 4096},
            },
            headers=self.get_headers(),
            timeout=self.timeout_s,
        )
        raise_for_api_status(resp, "Gemini")
        return resp.json()

    def parse(self, raw: Any, category: Optional[PlaceCategory]) -> list[CandidateRecord]:
        category = category or PlaceCategory.NATURE
        candidate = ((raw or {}).get("candidates") or [{}])[0]
        parts = (candidate.get("content") or {}).get("parts") or [{}]
        text = parts[0].get("text") or ""
        chunks = (candidate.get("groundingMetadata") or {}).get("groundingChunks") or []

        try:
            items = extract_json(text)
        except ValueError:
            logger.error("Failed to parse Gemini response for %s: %s", category.value, text[:200])
            return []
        if not isinstance(items, list):
            logger.warning("Gemini returned non-array payload for %s", category.value)
            return []

        records: list[CandidateRecord] = []
        for item in items:
            if not isinstance(item, dict):
                continue
            name = str(item.get("name") or "").strip()
            if not name:
                continue
            records.append(CandidateRecord(
                name=name,
                source=DiscoverySource.GEMINI,
                snippet=str(item.get("description") or "")[:SNIPPET_MAX],
                category=category,
                source_url=_match_grounding_url(name, chunks),
                price_tier=coerce_price_tier(item.get("priceTier"), default=None),
            ))
        return records
