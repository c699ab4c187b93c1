"""
Grok (xAI) discovery channels: parent posts on X, neighborhood web search
and season-specific search.

All channels are city-wide (run once per city, not per category) and share
one chat-completions call with live search plus one tolerant parser that
accepts either a JSON array or {"places": [...]}.
"""

import logging
from datetime import date
from typing import Any, Optional

import httpx

from services.curator.generation.llm_client import extract_json
from services.curator.pipeline.dedup import normalize_key
from services.curator.pipeline.types import (
    CandidateRecord,
    DiscoverySource,
    PlaceCategory,
    coerce_category,
)
from services.curator.scrapers.base import BaseSourceClient, SourceRegistry, raise_for_api_status

logger = logging.getLogger(__name__)

XAI_CHAT_URL = "https://api.x.ai/v1/chat/completions"
SNIPPET_MAX = 200

GROK_SYSTEM_PROMPT = """You are a local family activities researcher for a nature-based family guide publisher.

Your job is to find AUTHENTIC, LOCALLY-LOVED places for families with children ages 0-9.

WHAT WE WANT:
- Places local parents actually recommend to each other
- Hidden gems that don't show up in typical tourist searches
- Family farms, local bakeries, neighborhood parks with character
- U-pick farms, hayrack rides, old-fashioned ice cream shops
- Free or low-cost destinations ($15 max per person)
- Nature-connected experiences

WHAT WE DON'T WANT:
- Chain restaurants or stores (McDonald's, Starbucks, Chuck E Cheese, etc.)
- Tourist traps or heavily commercialized attractions
- Places that tolerate but don't welcome young kids

For each place found, return structured JSON as specified in the user prompt."""

_PLACES_SCHEMA = """Return as JSON:
{
  "places": [
    {
      "name": "Place Name",
      "category": "nature|farm|library|museum|indoor_play|garden|seasonal",
      "description": "What it is and why families love it",
      "cost": "free|under $10|under $15"
    }
  ]
}"""

X_PARENTS_PROMPT = """Search X/Twitter for family activity recommendations in {{CITY}}, {{STATE}}.

Look for:
1. Posts asking "where do you take your kids in {{CITY}}"
2. Posts sharing "favorite spots" or "hidden gems" for families
3. Local parent accounts sharing weekend activities
4. Posts with hashtags like #{{CITY_HASH}}Moms, #{{CITY_HASH}}Kids, #{{CITY_HASH}}Families
5. Replies where parents recommend specific places

Use "whyParentsLoveIt" instead of "description" when a parent explains why.

""" + _PLACES_SCHEMA

NEIGHBORHOOD_PROMPT = """Find family-friendly hidden gems in {{CITY}}, {{STATE}} by searching neighborhood by neighborhood.

For each major area of the city, find:
1. The playground or park locals love
2. The local treat spot (bakery, ice cream, donut shop)
3. A nature access point (creek, trail, garden)
4. A rainy-day option (library, indoor play, museum)
5. Any hidden gem unique to that neighborhood

""" + _PLACES_SCHEMA

SEASONAL_PROMPT = """Find {{SEASON}} family activities in {{CITY}}, {{STATE}}.

Search for these specific activities:
{{QUERIES}}

For each activity or place, note when it operates and any tips for visiting
with young kids. Prioritize LOCAL, family-owned operations over commercial chains.

""" + _PLACES_SCHEMA

SEASONAL_KEYWORDS: dict[str, list[str]] = {
    "spring": [
        "easter egg hunt", "spring festival", "baby animals", "tulip festival",
        "plant sale", "fishing opener", "wildflower walk", "nature program",
    ],
    "summer": [
        "berry picking", "splash pad", "free outdoor concert", "farmers market",
        "swimming hole", "firefly watching", "u-pick farm", "outdoor movie night",
    ],
    "fall": [
        "pumpkin patch", "apple orchard", "corn maze", "fall festival",
        "hayride", "cider mill", "harvest celebration", "leaf peeping",
    ],
    "winter": [
        "christmas tree farm", "holiday lights", "sledding hill", "ice skating",
        "indoor play", "hot cocoa", "winter nature walk", "holiday market",
    ],
}


def season_for_date(d: date) -> str:
    if 3 <= d.month <= 5:
        return "spring"
    if 6 <= d.month <= 8:
        return "summer"
    if 9 <= d.month <= 11:
        return "fall"
    return "winter"


def parse_grok_places(
    text: str,
    source: DiscoverySource,
    default_category: PlaceCategory = PlaceCategory.NATURE,
) -> list[CandidateRecord]:
    """
    Parse a Grok places response. Returns [] on parse failure.

    Unknown categories fall back to default_category; duplicate names (by
    NormalizedKey) within one response are dropped.
    """
    try:
        parsed = extract_json(text)
    except ValueError:
        logger.error("Failed to parse Grok places response for %s: %s", source.value, (text or "")[:200])
        return []

    if isinstance(parsed, dict):
        parsed = parsed.get("places")
    if not isinstance(parsed, list):
        return []

    records: list[CandidateRecord] = []
    seen: set[str] = set()
    for item in parsed:
        if not isinstance(item, dict):
            continue
        name = str(item.get("name") or "").strip()
        if len(name) < 3:
            continue
        key = normalize_key(name)
        if not key or key in seen:
            continue
        seen.add(key)

        snippet = str(item.get("whyParentsLoveIt") or item.get("description") or "")
        records.append(CandidateRecord(
            name=name,
            source=source,
            snippet=snippet[:SNIPPET_MAX],
            category=coerce_category(item.get("category"), default_category),
        ))
    return records


class GrokSource(BaseSourceClient):
    """Shared chat-completions call for every Grok channel."""

    DEFAULT_CATEGORY = PlaceCategory.NATURE

    def __init__(self, api_key: str, *, model: str = "grok-3-fast", **kwargs):
        kwargs.setdefault("timeout_s", 45.0)
        super().__init__(api_key, **kwargs)
        self.model = model

    def build_prompt(self, city: str, state: str) -> str:
        raise NotImplementedError

    async def fetch(
        self,
        http: httpx.AsyncClient,
        city: str,
        state: str,
        category: Optional[PlaceCategory],
    ) -> str:
        resp = await http.post(
            XAI_CHAT_URL,
            json={
                "model": self.model,
                "messages": [
                    {"role": "system", "content": GROK_SYSTEM_PROMPT},
                    {"role": "user", "content": self.build_prompt(city, state)},
                ],
                "tools": [{"type": "live_search"}],
                "temperature": 0.7,
            },
            headers={
                **self.get_headers(),
                "Authorization": f"Bearer {self.api_key}",
            },
            timeout=self.timeout_s,
        )
        raise_for_api_status(resp, "Grok")
        choices = resp.json().get("choices") or [{}]
        return (choices[0].get("message") or {}).get("content") or ""

    def parse(self, raw: Any, category: Optional[PlaceCategory]) -> list[CandidateRecord]:
        return parse_grok_places(raw or "", self.source, self.DEFAULT_CATEGORY)


def fill_prompt(template: str, **values: str) -> str:
    """Replace {{KEY}} placeholders; JSON braces in the template are left alone."""
    for key, value in values.items():
        template = template.replace("{{" + key.upper() + "}}", value)
    return template


class GrokXParentsSource(GrokSource):
    SOURCE_REGISTRY = SourceRegistry(
        name=DiscoverySource.GROK_X, base_url=XAI_CHAT_URL, city_wide=True,
    )

    def build_prompt(self, city: str, state: str) -> str:
        return fill_prompt(
            X_PARENTS_PROMPT, city=city, state=state, city_hash=city.replace(" ", ""),
        )


class GrokNeighborhoodSource(GrokSource):
    SOURCE_REGISTRY = SourceRegistry(
        name=DiscoverySource.GROK_WEB, base_url=XAI_CHAT_URL, city_wide=True,
    )

    def build_prompt(self, city: str, state: str) -> str:
        return fill_prompt(NEIGHBORHOOD_PROMPT, city=city, state=state)


class GrokSeasonalSource(GrokSource):
    SOURCE_REGISTRY = SourceRegistry(
        name=DiscoverySource.GROK_SEASONAL, base_url=XAI_CHAT_URL, city_wide=True,
    )
    DEFAULT_CATEGORY = PlaceCategory.SEASONAL

    def __init__(self, api_key: str, *, season: Optional[str] = None, **kwargs):
        super().__init__(api_key, **kwargs)
        self.season = season or season_for_date(date.today())
        if self.season not in SEASONAL_KEYWORDS:
            raise ValueError(f"Unknown season: {self.season}")

    def build_prompt(self, city: str, state: str) -> str:
        queries = "\n".join(f'- "{kw} {city}"' for kw in SEASONAL_KEYWORDS[self.season])
        return fill_prompt(
            SEASONAL_PROMPT, season=self.season, city=city, state=state, queries=queries,
        )
