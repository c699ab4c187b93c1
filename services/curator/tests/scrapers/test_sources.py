"""
Tests for discovery source clients.

Covers:
- Non-retryable detection, retry_with_backoff and log-safe error summaries
- BaseSourceClient retries and consecutive-failure alerting
- Brave title -> place name extraction, listicle/adult filtering, cap
- Gemini grounded JSON parsing and grounding URL matching
- Grok channel prompts and the shared tolerant parser
"""

import json
import logging
from datetime import date
from typing import Any, Optional
from unittest.mock import patch

import httpx
import pytest

from services.curator.pipeline.types import DiscoverySource, PlaceCategory, PriceTier
from services.curator.scrapers import BaseSourceClient, NonRetryableAPIError, SourceRegistry, retry_with_backoff
from services.curator.scrapers.base import describe_error, is_non_retryable, raise_for_api_status
from services.curator.scrapers.brave import BraveSearchSource, build_queries, extract_place_name
from services.curator.scrapers.gemini import GeminiGroundedSource
from services.curator.scrapers.grok import (
    GrokNeighborhoodSource,
    GrokSeasonalSource,
    GrokXParentsSource,
    parse_grok_places,
    season_for_date,
)
from services.curator.tests.helpers.factories import make_candidate


# ---------------------------------------------------------------------------
# Base framework
# ---------------------------------------------------------------------------

class _FlakySource(BaseSourceClient):
    SOURCE_REGISTRY = SourceRegistry(name=DiscoverySource.MANUAL, base_url="https://example.test")

    def __init__(self, failures: int, exc: Exception, **kwargs):
        super().__init__("key", retry_base_delay=0, **kwargs)
        self.failures = failures
        self.exc = exc
        self.calls = 0

    async def fetch(self, http, city, state, category) -> Any:
        self.calls += 1
        if self.calls <= self.failures:
            raise self.exc
        return ["Holmes Lake"]

    def parse(self, raw: Any, category: Optional[PlaceCategory]):
        return [make_candidate(name, source=DiscoverySource.MANUAL) for name in raw]


class TestNonRetryable:
    @pytest.mark.parametrize("status,body,expected", [
        (401, "", True),
        (400, "bad", True),
        (429, "slow down", False),
        (500, "Your credit balance is too low", True),
        (503, "unavailable", False),
    ])
    def test_detection(self, status, body, expected):
        assert is_non_retryable(status, body) is expected

    def test_raise_for_api_status(self):
        request = httpx.Request("GET", "https://example.test")
        raise_for_api_status(httpx.Response(200, request=request), "Test")
        with pytest.raises(NonRetryableAPIError):
            raise_for_api_status(httpx.Response(403, request=request, text="denied"), "Test")
        with pytest.raises(httpx.HTTPStatusError):
            raise_for_api_status(httpx.Response(502, request=request), "Test")


class TestRetryWithBackoff:
    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self):
        calls = []

        @retry_with_backoff(max_attempts=3, base_delay=0)
        async def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise ConnectionError("reset")
            return "ok"

        assert await flaky() == "ok"
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_async_non_retryable_not_retried(self):
        calls = []

        @retry_with_backoff(max_attempts=3, base_delay=0)
        async def denied():
            calls.append(1)
            raise NonRetryableAPIError("invalid api key")

        with pytest.raises(NonRetryableAPIError):
            await denied()
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_async_gives_up(self):
        @retry_with_backoff(max_attempts=2, base_delay=0)
        async def down():
            raise TimeoutError("slow")

        with pytest.raises(TimeoutError):
            await down()

    @pytest.mark.asyncio
    async def test_retry_log_omits_query_string_key(self, caplog):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503, text="unavailable")

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            source = GeminiGroundedSource("SECRET123", client=http, max_attempts=2, retry_base_delay=0)
            with caplog.at_level(logging.WARNING, logger="services.curator.scrapers.base"):
                with pytest.raises(httpx.HTTPStatusError):
                    await source.discover("Lincoln", "NE", PlaceCategory.GARDEN)

        assert "HTTPStatusError (status 503)" in caplog.text
        assert "SECRET123" not in caplog.text


class TestDescribeError:
    def test_status_error_reports_class_and_status(self):
        request = httpx.Request("GET", "https://maps.test/json?key=SECRET123")
        response = httpx.Response(502, request=request)
        exc = httpx.HTTPStatusError("Bad gateway for url " + str(request.url), request=request, response=response)
        assert describe_error(exc) == "HTTPStatusError (status 502)"

    def test_other_errors(self):
        assert describe_error(httpx.ConnectError("refused")) == "ConnectError"
        assert describe_error(NonRetryableAPIError("Gemini non-retryable error 403: denied")) == (
            "Gemini non-retryable error 403: denied"
        )


class TestBaseSourceClient:
    @pytest.mark.asyncio
    async def test_discover_retries(self):
        source = _FlakySource(failures=1, exc=httpx.ConnectError("refused"), max_attempts=2)
        records = await source.discover("Lincoln", "NE")
        assert [r.name for r in records] == ["Holmes Lake"]
        assert source.calls == 2
        assert source.consecutive_failures == 0

    @pytest.mark.asyncio
    async def test_alert_after_consecutive_failures(self):
        source = _FlakySource(failures=99, exc=httpx.ConnectError("refused"), max_attempts=1)
        with patch("services.curator.scrapers.base.sentry_sdk.capture_message") as capture:
            for _ in range(3):
                with pytest.raises(httpx.ConnectError):
                    await source.discover("Lincoln", "NE")
        assert source.consecutive_failures == 3
        capture.assert_called_once()
        assert "manual has failed 3 consecutive times" in capture.call_args.args[0]

    def test_registry_required(self):
        class _NoRegistry(BaseSourceClient):
            async def fetch(self, http, city, state, category):
                return None

            def parse(self, raw, category):
                return []

        with pytest.raises(ValueError):
            _NoRegistry("key")


# ---------------------------------------------------------------------------
# Brave
# ---------------------------------------------------------------------------

class TestBrave:
    @pytest.mark.parametrize("title,expected", [
        ("Pioneers Park Nature Center - Lincoln Parks & Rec", "Pioneers Park Nature Center"),
        ("Sunken Gardens | City of Lincoln", "Sunken Gardens"),
        ("10 Best Parks in Lincoln, NE", None),
        ("Top things to do with kids", "Top things to do with kids"),
        ("Yo", None),
        ("x" * 90, None),
    ])
    def test_extract_place_name(self, title, expected):
        assert extract_place_name(title) == expected

    def test_two_queries_per_category(self):
        queries = build_queries("Lincoln", "NE", PlaceCategory.LIBRARY)
        assert len(queries) == 2
        assert all(q.startswith("Lincoln NE ") for q in queries)

    def test_parse_filters_and_dedups(self):
        source = BraveSearchSource("key")
        raw = [
            {"title": "10 Best Parks in Lincoln", "url": "u0", "description": ""},
            {"title": "Pioneers Park Nature Center - Lincoln", "url": "u1", "description": "Bison and trails"},
            {"title": "pioneers park nature center | Visit", "url": "u2", "description": ""},
            {"title": "Railyard Bar - Downtown", "url": "u3", "description": "Happy hour"},
        ]
        records = source.parse(raw, PlaceCategory.NATURE)

        assert [r.name for r in records] == ["Pioneers Park Nature Center"]
        assert records[0].source == DiscoverySource.BRAVE
        assert records[0].source_url == "u1"
        assert records[0].category == PlaceCategory.NATURE

    def test_parse_caps_at_target_plus_five(self):
        raw = [{"title": f"Park Number {i}", "url": "", "description": ""} for i in range(30)]
        records = BraveSearchSource("key").parse(raw, PlaceCategory.LIBRARY)
        # library target 5
        assert len(records) == 10

    @pytest.mark.asyncio
    async def test_fetch_sends_token(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"web": {"results": [
                {"title": "Gere Branch Library - Lincoln City Libraries", "url": "https://lcl.test"},
            ]}})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            source = BraveSearchSource("brave-key", client=http)
            records = await source.discover("Lincoln", "NE", PlaceCategory.LIBRARY)

        assert len(seen) == 2
        assert seen[0].headers["X-Subscription-Token"] == "brave-key"
        assert [r.name for r in records] == ["Gere Branch Library"]


# ---------------------------------------------------------------------------
# Gemini
# ---------------------------------------------------------------------------

def _gemini_payload(text: str, chunks=None) -> dict:
    return {"candidates": [{
        "content": {"parts": [{"text": text}]},
        "groundingMetadata": {"groundingChunks": chunks or []},
    }]}


class TestGemini:
    def test_parse_with_grounding(self):
        text = "```json\n" + json.dumps([
            {"name": "Sunken Gardens", "description": "Terraced garden", "outdoor": True, "priceTier": "FREE"},
            {"name": ""},
        ]) + "\n```"
        chunks = [{"web": {"title": "Sunken Gardens - Lincoln Parks", "uri": "https://parks.test/sg"}}]

        records = GeminiGroundedSource("key").parse(_gemini_payload(text, chunks), PlaceCategory.GARDEN)

        assert len(records) == 1
        assert records[0].name == "Sunken Gardens"
        assert records[0].snippet == "Terraced garden"
        assert records[0].source_url == "https://parks.test/sg"
        assert records[0].source == DiscoverySource.GEMINI
        assert records[0].price_tier == PriceTier.FREE

    def test_price_estimate_carried_through(self):
        text = json.dumps([
            {"name": "Lincoln Children's Museum", "description": "Hands-on play", "priceTier": "$10_$15"},
            {"name": "Roca Berry Farm", "description": "U-pick", "priceTier": "about ten bucks"},
            {"name": "Holmes Lake", "description": "Lake loop"},
        ])
        records = GeminiGroundedSource("key").parse(_gemini_payload(text), PlaceCategory.MUSEUM)

        assert [r.price_tier for r in records] == [PriceTier.TEN_TO_FIFTEEN, None, None]

    @pytest.mark.parametrize("text", ["No places found.", '{"name": "Not a list"}'])
    def test_unusable_text_returns_empty(self, text):
        assert GeminiGroundedSource("key").parse(_gemini_payload(text), PlaceCategory.NATURE) == []

    def test_empty_payload(self):
        assert GeminiGroundedSource("key").parse({}, PlaceCategory.NATURE) == []


# ---------------------------------------------------------------------------
# Grok
# ---------------------------------------------------------------------------

class TestGrok:
    def test_parse_places_object(self):
        text = json.dumps({"places": [
            {"name": "Roca Berry Farm", "category": "farm", "whyParentsLoveIt": "U-pick strawberries"},
            {"name": "roca berry farm", "category": "farm"},
            {"name": "Ab"},
            {"name": "Mystery Spot", "category": "spaceship"},
        ]})
        records = parse_grok_places(text, DiscoverySource.GROK_SEASONAL, PlaceCategory.SEASONAL)

        assert [r.name for r in records] == ["Roca Berry Farm", "Mystery Spot"]
        assert records[0].category == PlaceCategory.FARM
        assert records[0].snippet == "U-pick strawberries"
        assert records[1].category == PlaceCategory.SEASONAL

    def test_parse_bare_array_and_garbage(self):
        assert len(parse_grok_places('[{"name": "Holmes Lake"}]', DiscoverySource.GROK_X)) == 1
        assert parse_grok_places("no json here", DiscoverySource.GROK_X) == []

    def test_x_parents_prompt_fills_placeholders(self):
        prompt = GrokXParentsSource("key").build_prompt("Grand Island", "NE")
        assert "#GrandIslandMoms" in prompt
        assert "Grand Island, NE" in prompt
        assert "{{" not in prompt
        assert '"places": [' in prompt

    def test_neighborhood_prompt(self):
        prompt = GrokNeighborhoodSource("key").build_prompt("Lincoln", "NE")
        assert "hidden gems in Lincoln, NE" in prompt

    def test_seasonal_prompt(self):
        source = GrokSeasonalSource("key", season="fall")
        prompt = source.build_prompt("Lincoln", "NE")
        assert prompt.startswith("Find fall family activities in Lincoln, NE")
        assert '- "pumpkin patch Lincoln"' in prompt

    def test_unknown_season(self):
        with pytest.raises(ValueError):
            GrokSeasonalSource("key", season="monsoon")

    @pytest.mark.parametrize("d,season", [
        (date(2026, 1, 15), "winter"), (date(2026, 4, 1), "spring"),
        (date(2026, 7, 4), "summer"), (date(2026, 10, 31), "fall"), (date(2026, 12, 1), "winter"),
    ])
    def test_season_for_date(self, d, season):
        assert season_for_date(d) == season

    def test_channels_are_city_wide(self):
        for cls in (GrokXParentsSource, GrokNeighborhoodSource):
            assert cls("key").city_wide
        assert GrokSeasonalSource("key", season="winter").city_wide
        assert not BraveSearchSource("key").city_wide

    @pytest.mark.asyncio
    async def test_discover_over_httpx(self):
        content = json.dumps({"places": [{"name": "Antelope Park", "category": "nature"}]})

        def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content)
            assert body["tools"] == [{"type": "live_search"}]
            return httpx.Response(200, json={"choices": [{"message": {"content": content}}]})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            records = await GrokNeighborhoodSource("xai-key", client=http).discover("Lincoln", "NE")

        assert [r.name for r in records] == ["Antelope Park"]
        assert records[0].source == DiscoverySource.GROK_WEB
