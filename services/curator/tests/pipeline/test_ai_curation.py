"""
Tests for the AI accept/reject curation pass.

Covers:
- Verdict parsing: name mapping onto candidates, invented names, coercion
- Cascade: terminal failures skip ahead, pass-through always accepts
- Anthropic / OpenAI tiers against mocked providers
- Tier selection from settings (thorough model first)
"""

import asyncio
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from services.curator.config import Settings
from services.curator.generation.week_matcher import StrategyOutcome, StrategyResult
from services.curator.pipeline.ai_curation import (
    AnthropicCurationStrategy,
    CurationParseError,
    CurationStrategy,
    CurationVerdict,
    OpenAICurationStrategy,
    PassThroughCurationStrategy,
    build_curation_prompt,
    curate_candidates,
    default_curation_strategies,
    parse_curation,
)
from services.curator.pipeline.types import DiscoverySource, PlaceCategory, PriceTier
from services.curator.tests.helpers.factories import make_candidate


def _raw_candidates():
    return [
        make_candidate("Holmes Lake", snippet="Lake loop trail", source_url="https://parks.test/holmes"),
        make_candidate("Rusty's Taproom", snippet="Craft beer and trivia"),
        make_candidate("Lincoln Children's Museum", category=PlaceCategory.MUSEUM, snippet="Hands-on exhibits",
                       price_tier=PriceTier.FIVE_TO_TEN),
        make_candidate("10 Best Parks in Lincoln", source=DiscoverySource.BRAVE),
    ]


def _verdict_payload() -> dict:
    return {
        "accepted": [
            {
                "name": "Holmes Lake",
                "category": "nature",
                "shortDescription": "A shimmering lake loop where little ones spot herons",
                "priceTier": "FREE",
            },
            {
                "name": "lincoln childrens museum",
                "category": "spaceship",
                "shortDescription": "",
                "priceTier": "about $8",
            },
        ],
        "rejected": [
            {"name": "Rusty's Taproom", "reason": "Adult venue"},
            {"name": "10 Best Parks in Lincoln", "reason": "Listicle"},
        ],
    }


def _claude_response(text: str):
    return SimpleNamespace(
        content=[SimpleNamespace(type="text", text=text)],
        usage=SimpleNamespace(input_tokens=900, output_tokens=300),
    )


class _ScriptedCuration(CurationStrategy):
    """Returns queued (result, verdict) pairs in order, counting calls."""

    def __init__(self, name, results, max_attempts=1):
        super().__init__(max_attempts=max_attempts, retry_delay_s=0)
        self.name = name
        self.results = list(results)
        self.calls = 0

    async def produce(self, candidates, city, state):
        raise NotImplementedError

    async def review(self, candidates, city, state):
        self.calls += 1
        return self.results.pop(0)


# ---------------------------------------------------------------------------
# Prompt + parsing
# ---------------------------------------------------------------------------

class TestBuildPrompt:
    def test_lists_every_candidate_with_clipped_snippet(self):
        candidates = [make_candidate("Holmes Lake", snippet="s" * 400)]
        prompt = build_curation_prompt(candidates, "Lincoln", "NE")

        assert "Review these 1 places discovered for Lincoln, NE" in prompt
        assert '"name": "Holmes Lake"' in prompt
        assert "s" * 150 in prompt
        assert "s" * 151 not in prompt
        assert "indoor_play" in prompt


class TestParseCuration:
    def test_maps_accepted_onto_candidates(self):
        verdict = parse_curation(json.dumps(_verdict_payload()), _raw_candidates())

        lake, museum = verdict.accepted
        assert lake.name == "Holmes Lake"
        assert lake.snippet.startswith("A shimmering lake loop")
        assert lake.source_url == "https://parks.test/holmes"
        assert lake.price_tier == PriceTier.FREE
        # name is the candidate's own spelling; bad category and price keep the candidate's values
        assert museum.name == "Lincoln Children's Museum"
        assert museum.category == PlaceCategory.MUSEUM
        assert museum.snippet == "Hands-on exhibits"
        assert museum.price_tier == PriceTier.FIVE_TO_TEN
        assert [(r.name, r.reason) for r in verdict.rejected] == [
            ("Rusty's Taproom", "Adult venue"),
            ("10 Best Parks in Lincoln", "Listicle"),
        ]

    def test_invented_and_duplicate_names_dropped(self):
        text = json.dumps({"accepted": [
            {"name": "Holmes Lake"},
            {"name": "The Holmes Lake"},
            {"name": "Imaginary Fairy Park"},
        ]})
        verdict = parse_curation(text, _raw_candidates())
        assert [c.name for c in verdict.accepted] == ["Holmes Lake"]
        assert verdict.rejected == []

    def test_description_clipped(self):
        text = json.dumps({"accepted": [{"name": "Holmes Lake", "shortDescription": "x" * 300}]})
        [lake] = parse_curation(text, _raw_candidates()).accepted
        assert len(lake.snippet) == 100

    def test_bare_array_is_accepted_list(self):
        verdict = parse_curation('```json\n[{"name": "Holmes Lake"}]\n```', _raw_candidates())
        assert [c.name for c in verdict.accepted] == ["Holmes Lake"]

    def test_everything_rejected_is_valid(self):
        text = json.dumps({"accepted": [], "rejected": [{"name": "Holmes Lake", "reason": "Closed"}]})
        verdict = parse_curation(text, _raw_candidates())
        assert verdict.accepted == []
        assert len(verdict.rejected) == 1

    @pytest.mark.parametrize("text", [
        "I cannot review these places.",
        '{"rejected": []}',
        '{"accepted": "all of them"}',
    ])
    def test_unusable_output_raises(self, text):
        with pytest.raises(CurationParseError):
            parse_curation(text, _raw_candidates())


# ---------------------------------------------------------------------------
# Cascade
# ---------------------------------------------------------------------------

class TestCurateCandidates:
    @pytest.mark.asyncio
    async def test_terminal_failure_falls_through_to_next_tier(self):
        verdict = CurationVerdict(accepted=_raw_candidates()[:1])
        ai = _ScriptedCuration("anthropic", [(StrategyResult.terminal("parse"), None)], max_attempts=3)
        other = _ScriptedCuration("openai", [(StrategyResult(StrategyOutcome.SUCCESS), verdict)])

        result = await curate_candidates(_raw_candidates(), "Lincoln", "NE", [ai, other])

        assert ai.calls == 1
        assert result.method == "openai"
        assert [c.name for c in result.accepted] == ["Holmes Lake"]
        assert [(a.strategy, a.outcome) for a in result.attempts] == [
            ("anthropic", StrategyOutcome.TERMINAL_FAILURE),
            ("openai", StrategyOutcome.SUCCESS),
        ]

    @pytest.mark.asyncio
    async def test_retryable_failure_retried(self):
        verdict = CurationVerdict(accepted=[])
        ai = _ScriptedCuration("anthropic", [
            (StrategyResult.retryable("timeout"), None),
            (StrategyResult(StrategyOutcome.SUCCESS), verdict),
        ], max_attempts=2)

        result = await curate_candidates(_raw_candidates(), "Lincoln", "NE", [ai])

        assert ai.calls == 2
        assert result.method == "anthropic"
        assert result.accepted == []

    @pytest.mark.asyncio
    async def test_pass_through_keeps_merged_candidates(self):
        candidates = _raw_candidates() + [make_candidate("holmes lake", source=DiscoverySource.BRAVE)]
        result = await curate_candidates(candidates, "Lincoln", "NE", [PassThroughCurationStrategy()])

        assert result.method == "pass_through"
        assert [c.name for c in result.accepted] == [c.name for c in _raw_candidates()]

    @pytest.mark.asyncio
    async def test_every_tier_failing_passes_candidates_through(self):
        ai = _ScriptedCuration("anthropic", [(StrategyResult.terminal("down"), None)])

        result = await curate_candidates(_raw_candidates(), "Lincoln", "NE", [ai])

        assert result.method == "none"
        assert len(result.accepted) == 4

    @pytest.mark.asyncio
    async def test_empty_input_skips(self):
        ai = _ScriptedCuration("anthropic", [])
        result = await curate_candidates([], "Lincoln", "NE", [ai])
        assert result.method == "skipped"
        assert ai.calls == 0

    @pytest.mark.asyncio
    async def test_to_dict(self):
        result = await curate_candidates(_raw_candidates()[:1], "Lincoln", "NE")
        data = result.to_dict()
        assert data["curationMethod"] == "pass_through"
        assert data["candidates"][0]["name"] == "Holmes Lake"
        assert data["candidates"][0]["priceTier"] is None
        assert data["rejected"] == []


# ---------------------------------------------------------------------------
# Provider tiers
# ---------------------------------------------------------------------------

class TestAnthropicCuration:
    @pytest.mark.asyncio
    async def test_success(self):
        client = MagicMock()
        client.messages.create = AsyncMock(return_value=_claude_response(json.dumps(_verdict_payload())))
        strategy = AnthropicCurationStrategy(client, model="claude-test", timeout_s=5)

        result = await curate_candidates(_raw_candidates(), "Lincoln", "NE", [strategy, PassThroughCurationStrategy()])

        assert result.method == "anthropic"
        assert [c.name for c in result.accepted] == ["Holmes Lake", "Lincoln Children's Museum"]
        assert {r.name for r in result.rejected} == {"Rusty's Taproom", "10 Best Parks in Lincoln"}
        kwargs = client.messages.create.call_args.kwargs
        assert kwargs["model"] == "claude-test"
        assert kwargs["max_tokens"] == 16384
        assert "Lincoln, NE" in kwargs["messages"][0]["content"]

    @pytest.mark.asyncio
    async def test_unparseable_output_falls_back_to_pass_through(self):
        client = MagicMock()
        client.messages.create = AsyncMock(return_value=_claude_response("Sorry, I can't help."))
        strategy = AnthropicCurationStrategy(client, model="claude-test", timeout_s=5, max_attempts=3)

        result = await curate_candidates(_raw_candidates(), "Lincoln", "NE", [strategy, PassThroughCurationStrategy()])

        assert client.messages.create.await_count == 1
        assert result.method == "pass_through"
        assert "CurationParseError" in result.attempts[0].error
        assert len(result.accepted) == 4

    @pytest.mark.asyncio
    async def test_timeout_is_retryable(self):
        async def _hang(**kwargs):
            await asyncio.sleep(10)

        client = MagicMock()
        client.messages.create = _hang
        strategy = AnthropicCurationStrategy(client, model="claude-test", timeout_s=0.01)

        result, verdict = await strategy.review(_raw_candidates(), "Lincoln", "NE")

        assert result.outcome == StrategyOutcome.RETRYABLE_FAILURE
        assert verdict is None


class TestOpenAICuration:
    @pytest.mark.asyncio
    async def test_success_over_httpx(self):
        content = json.dumps(_verdict_payload())

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.headers["Authorization"] == "Bearer sk-test"
            return httpx.Response(200, json={"choices": [{"message": {"content": content}}]})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            strategy = OpenAICurationStrategy("sk-test", model="gpt-test", timeout_s=5, http=http)
            result, verdict = await strategy.review(_raw_candidates(), "Lincoln", "NE")

        assert result.ok
        assert len(verdict.accepted) == 2

    @pytest.mark.asyncio
    async def test_auth_failure_is_terminal(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, json={"error": {"message": "Incorrect API key provided"}})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            strategy = OpenAICurationStrategy("sk-bad", model="gpt-test", timeout_s=5, http=http)
            result, _ = await strategy.review(_raw_candidates(), "Lincoln", "NE")

        assert result.outcome == StrategyOutcome.TERMINAL_FAILURE


class TestDefaultCurationStrategies:
    def test_pass_through_only_without_keys(self):
        settings = Settings(anthropic_api_key="", openai_api_key="")
        assert [s.name for s in default_curation_strategies(settings)] == ["pass_through"]

    def test_thorough_puts_slower_model_first(self):
        settings = Settings(
            anthropic_api_key="sk-ant-test",
            openai_api_key="sk-test",
            curation_thorough_model="claude-thorough",
            curation_model="claude-regular",
        )
        strategies = default_curation_strategies(settings, thorough=True)

        assert [s.name for s in strategies] == ["anthropic_thorough", "anthropic", "openai", "pass_through"]
        assert strategies[0].model == "claude-thorough"
        assert strategies[1].model == "claude-regular"

    def test_regular_chain(self):
        settings = Settings(anthropic_api_key="sk-ant-test", openai_api_key="")
        assert [s.name for s in default_curation_strategies(settings)] == ["anthropic", "pass_through"]
