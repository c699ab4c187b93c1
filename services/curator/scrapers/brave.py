"""
Brave web search discovery source.

Two category-specific queries per category, paced 300ms apart. Result
titles are cut down to a place name ("Pioneers Park - Lincoln Parks" ->
"Pioneers Park"); listicles ("10 Best Parks in ...") and adult venues are
skipped.
"""

import asyncio
import logging
import re
from typing import Any, Optional

import httpx

from services.curator.pipeline.brand_criteria import ADULT_VENUE_KEYWORDS
from services.curator.pipeline.brand_scoring import contains_word
from services.curator.pipeline.categories import get_category
from services.curator.pipeline.dedup import normalize_key
from services.curator.pipeline.types import CandidateRecord, DiscoverySource, PlaceCategory
from services.curator.scrapers.base import BaseSourceClient, SourceRegistry, raise_for_api_status

logger = logging.getLogger(__name__)

BRAVE_SEARCH_URL = "https://api.search.brave.com/res/v1/web/search"
RESULTS_PER_QUERY = 10
SNIPPET_MAX = 200

QUERY_TEMPLATES: dict[PlaceCategory, tuple[str, str]] = {
    PlaceCategory.NATURE: (
        "{loc} best parks nature trails families toddlers",
        "{loc} playgrounds nature center stroller accessible",
    ),
    PlaceCategory.FARM: (
        "{loc} family farms petting zoo kids",
        "{loc} u-pick orchard pumpkin patch children",
    ),
    PlaceCategory.LIBRARY: (
        "{loc} public library children storytime programs",
        "{loc} best libraries kids toddlers",
    ),
    PlaceCategory.MUSEUM: (
        "{loc} children's museum science center kids",
        "{loc} family friendly museums educational activities",
    ),
    PlaceCategory.INDOOR_PLAY: (
        "{loc} indoor play space toddlers kids",
        "{loc} art studio play cafe children",
    ),
    PlaceCategory.GARDEN: (
        "{loc} botanical garden farmers market family",
        "{loc} local ice cream bakery family friendly",
    ),
    PlaceCategory.SEASONAL: (
        "{loc} family festivals holiday events children",
        "{loc} seasonal community events kids activities",
    ),
}

_LISTICLE_RE = re.compile(r"^\d+\s+(best|top|things|places|fun)", re.IGNORECASE)
_TITLE_SPLIT_RE = re.compile(r"[-|–—]")
_COUNT_PREFIX_RE = re.compile(r"\d+\s*(best|top|things)", re.IGNORECASE)


def build_queries(city: str, state: str, category: PlaceCategory) -> list[str]:
    loc = f"{city} {state}"
    templates = QUERY_TEMPLATES.get(category, ("{loc} family activities",))
    return [t.format(loc=loc) for t in templates]


def is_adult_venue(text: str) -> bool:
    lower = text.lower()
    return any(contains_word(lower, kw) for kw in ADULT_VENUE_KEYWORDS)


def extract_place_name(title: str) -> Optional[str]:
    """Place name from a search result title, or None for listicles/noise."""
    if _LISTICLE_RE.match(title.strip()):
        return None
    name = _TITLE_SPLIT_RE.split(title)[0].strip()
    name = _COUNT_PREFIX_RE.sub("", name).strip()
    if len(name) < 3 or len(name) > 80:
        return None
    return name


class BraveSearchSource(BaseSourceClient):
    """Brave Search API, one category per call."""

    SOURCE_REGISTRY = SourceRegistry(
        name=DiscoverySource.BRAVE,
        base_url=BRAVE_SEARCH_URL,
        min_interval_s=0.3,
    )

    async def fetch(
        self,
        http: httpx.AsyncClient,
        city: str,
        state: str,
        category: Optional[PlaceCategory],
    ) -> list[dict[str, str]]:
        category = category or PlaceCategory.NATURE
        results: list[dict[str, str]] = []

        for i, query in enumerate(build_queries(city, state, category)):
            if i:
                await asyncio.sleep(self.SOURCE_REGISTRY.min_interval_s)
            resp = await http.get(
                BRAVE_SEARCH_URL,
                params={"q": query, "count": RESULTS_PER_QUERY},
                headers={
                    **self.get_headers(),
                    "Accept": "application/json",
                    "X-Subscription-Token": self.api_key,
                },
                timeout=self.timeout_s,
            )
            raise_for_api_status(resp, "Brave")
            for r in (resp.json().get("web") or {}).get("results", []):
                results.append({
                    "title": r.get("title") or "",
                    "url": r.get("url") or "",
                    "description": r.get("description") or "",
                })

        return results

    def parse(self, raw: Any, category: Optional[PlaceCategory]) -> list[CandidateRecord]:
        category = category or PlaceCategory.NATURE
        records: list[CandidateRecord] = []
        seen: set[str] = set()

        for result in raw or []:
            title = result.get("title", "")
            description = result.get("description", "")
            if is_adult_venue(f"{title} {description}"):
                continue

            name = extract_place_name(title)
            if not name:
                continue

            key = normalize_key(name)
            if not key or key in seen:
                continue
            seen.add(key)

            records.append(CandidateRecord(
                name=name,
                source=DiscoverySource.BRAVE,
                snippet=description[:SNIPPET_MAX],
                category=category,
                source_url=result.get("url", ""),
            ))

        return records[: get_category(category).target_count + 5]
