"""
AI curation: an accept/reject review of raw discovery candidates before
enrichment and scoring.

The model sees every merged candidate (name, source, snippet, category) and
returns {"accepted": [...], "rejected": [{"name", "reason"}]}. Accepted
entries come back as CandidateRecords carrying the model's category, short
description and price band; unmentioned and rejected candidates are dropped.
Names the model invents are ignored: only candidates from the input list can
be accepted.

Tier order mirrors the week matcher (first SUCCESS wins):
  1. Claude, thorough model (only when thorough=True)
  2. Claude
  3. OpenAI chat completions
  4. Pass-through (accepts every candidate unchanged; always succeeds)

Age/season flags are not taken from the model; attribute inference derives
them from the curated description downstream.
"""

from __future__ import annotations

import asyncio
import dataclasses
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

import anthropic
import httpx

from services.curator.config import Settings
from services.curator.generation.llm_client import AIResponseParseError, call_claude, call_openai, extract_json
from services.curator.generation.week_matcher import (
    AttemptLog,
    StrategyOutcome,
    StrategyResult,
    classify_exception,
)
from services.curator.pipeline.dedup import merge_candidates, normalize_key
from services.curator.pipeline.types import CandidateRecord, PlaceCategory, coerce_category, coerce_price_tier

logger = logging.getLogger(__name__)

CURATION_PROMPT_VERSION = "curation-v1"
CURATION_MAX_TOKENS = 16384
PROMPT_SNIPPET_CHARS = 150
DESCRIPTION_MAX_CHARS = 100

CURATION_SYSTEM_PROMPT = """You are a curation specialist for a family nature brand that creates 52-week adventure guides for families with young children (ages 0-9).

Your job is to REVIEW a list of places discovered by web search and determine which ones are genuinely good fits. You are NOT discovering new places, only evaluating the ones provided.

ACCEPT places that are:
- Real, specific venues (not generic descriptions, blog titles, or list articles)
- Family-friendly for young children
- Locally owned, community-oriented (not chains)
- FREE or under $15/person
- Nature-connected, educational, or community-building

REJECT places that are:
- Chain restaurants or franchises (McDonald's, Starbucks, Chick-fil-A, etc.)
- Commercial entertainment chains (Chuck E Cheese, Sky Zone, Urban Air, Main Event, Dave & Buster's)
- Adult venues (bars, breweries, wineries, nightclubs, casinos)
- Over $15/person admission
- Generic entries that aren't specific places (e.g. "Top 10 Parks in...", "Best Things to Do...")
- Blog posts, articles, or websites (not actual places)
- Places that clearly don't exist or seem fabricated

For each ACCEPTED place, write in a warm, wonder-filled, nature-connected voice."""


class CurationParseError(AIResponseParseError):
    """AI output could not be read as an accepted/rejected verdict."""


@dataclass
class Rejection:
    name: str
    reason: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"name": self.name, "reason": self.reason}


@dataclass
class CurationVerdict:
    accepted: list[CandidateRecord] = field(default_factory=list)
    rejected: list[Rejection] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Prompt + parsing
# ---------------------------------------------------------------------------

def build_curation_prompt(candidates: Sequence[CandidateRecord], city: str, state: str) -> str:
    listing = [
        {
            "name": c.name,
            "source": c.source.value,
            "snippet": c.snippet[:PROMPT_SNIPPET_CHARS],
            "category": c.category.value,
        }
        for c in candidates
    ]
    categories = ", ".join(c.value for c in PlaceCategory)

    return f"""Review these {len(listing)} places discovered for {city}, {state}. Accept the ones that fit the brand and reject the rest.

DISCOVERED PLACES:
{json.dumps(listing, ensure_ascii=False, indent=2)}

For each ACCEPTED place return:
- "name": exact name from the list above (do not rename)
- "category": one of [{categories}]
- "shortDescription": warm, nature-connected description (max {DESCRIPTION_MAX_CHARS} chars)
- "priceTier": one of "FREE", "$5_$10", "$10_$15"

Return a JSON object with two arrays:
{{
  "accepted": [ ... ],
  "rejected": [ {{ "name": "...", "reason": "..." }} ]
}}

Return ONLY valid JSON. No explanation text."""


def parse_curation(text: str, candidates: Sequence[CandidateRecord]) -> CurationVerdict:
    """
    Read the model's verdict and map accepted names back onto candidates.

    A bare JSON array is read as the accepted list. Accepted names that do
    not match a candidate by NormalizedKey are dropped. Unknown categories
    keep the candidate's own; unknown price bands keep the candidate's own
    estimate. Raises CurationParseError when there is no accepted list.
    """
    try:
        data = extract_json(text)
    except ValueError as exc:
        logger.error("Curation returned unparseable response: %s", (text or "")[:300])
        raise CurationParseError("AI response is not valid JSON") from exc

    if isinstance(data, list):
        data = {"accepted": data}
    if not isinstance(data, dict) or not isinstance(data.get("accepted"), list):
        raise CurationParseError("AI response has no accepted list")

    by_key = {normalize_key(c.name): c for c in candidates if normalize_key(c.name)}
    accepted: list[CandidateRecord] = []
    seen: set[str] = set()
    unknown: list[str] = []

    for item in data["accepted"]:
        if not isinstance(item, dict):
            continue
        name = str(item.get("name") or "").strip()
        key = normalize_key(name)
        raw = by_key.get(key)
        if raw is None:
            if name:
                unknown.append(name)
            continue
        if key in seen:
            continue
        seen.add(key)

        description = str(item.get("shortDescription") or "").strip()[:DESCRIPTION_MAX_CHARS]
        accepted.append(dataclasses.replace(
            raw,
            category=coerce_category(item.get("category"), default=raw.category),
            snippet=description or raw.snippet,
            price_tier=coerce_price_tier(item.get("priceTier"), default=raw.price_tier),
        ))

    if unknown:
        logger.warning("Curation accepted %d names not in the candidate list: %s", len(unknown), unknown)

    rejected = [
        Rejection(name=str(r.get("name") or "").strip(), reason=str(r.get("reason") or "").strip())
        for r in data.get("rejected") or []
        if isinstance(r, dict) and str(r.get("name") or "").strip()
    ]
    return CurationVerdict(accepted=accepted, rejected=rejected)


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------

class CurationStrategy(ABC):
    """One tier of the curation cascade. review() never raises."""

    name: str = "strategy"

    def __init__(self, max_attempts: int = 1, retry_delay_s: float = 1.0):
        self.max_attempts = max(1, max_attempts)
        self.retry_delay_s = retry_delay_s

    @abstractmethod
    async def produce(
        self,
        candidates: Sequence[CandidateRecord],
        city: str,
        state: str,
    ) -> CurationVerdict:
        """Return a verdict or raise."""

    async def review(
        self,
        candidates: Sequence[CandidateRecord],
        city: str,
        state: str,
    ) -> tuple[StrategyResult, Optional[CurationVerdict]]:
        try:
            verdict = await self.produce(candidates, city, state)
        except Exception as exc:
            return classify_exception(exc), None
        return StrategyResult(StrategyOutcome.SUCCESS), verdict


class AnthropicCurationStrategy(CurationStrategy):
    name = "anthropic"

    def __init__(
        self,
        client: anthropic.AsyncAnthropic,
        *,
        model: str,
        timeout_s: float,
        name: Optional[str] = None,
        max_attempts: int = 1,
        retry_delay_s: float = 1.0,
    ):
        super().__init__(max_attempts, retry_delay_s)
        self.client = client
        self.model = model
        self.timeout_s = timeout_s
        if name:
            self.name = name

    async def produce(self, candidates, city, state) -> CurationVerdict:
        text = await call_claude(
            self.client,
            CURATION_SYSTEM_PROMPT,
            build_curation_prompt(candidates, city, state),
            model=self.model,
            timeout_s=self.timeout_s,
            max_tokens=CURATION_MAX_TOKENS,
        )
        return parse_curation(text, candidates)


class OpenAICurationStrategy(CurationStrategy):
    name = "openai"

    def __init__(
        self,
        api_key: str,
        *,
        model: str,
        timeout_s: float,
        http: Optional[httpx.AsyncClient] = None,
        max_attempts: int = 1,
        retry_delay_s: float = 1.0,
    ):
        super().__init__(max_attempts, retry_delay_s)
        self.api_key = api_key
        self.model = model
        self.timeout_s = timeout_s
        self.http = http

    async def produce(self, candidates, city, state) -> CurationVerdict:
        prompt = build_curation_prompt(candidates, city, state)
        if self.http is not None:
            text = await call_openai(
                self.http, self.api_key, CURATION_SYSTEM_PROMPT, prompt,
                model=self.model, timeout_s=self.timeout_s, max_tokens=CURATION_MAX_TOKENS,
            )
        else:
            async with httpx.AsyncClient() as http:
                text = await call_openai(
                    http, self.api_key, CURATION_SYSTEM_PROMPT, prompt,
                    model=self.model, timeout_s=self.timeout_s, max_tokens=CURATION_MAX_TOKENS,
                )
        return parse_curation(text, candidates)


class PassThroughCurationStrategy(CurationStrategy):
    name = "pass_through"

    def __init__(self):
        super().__init__(max_attempts=1)

    async def produce(self, candidates, city, state) -> CurationVerdict:
        return CurationVerdict(accepted=list(candidates))


def default_curation_strategies(
    settings: Settings,
    *,
    thorough: bool = False,
    anthropic_client: Optional[anthropic.AsyncAnthropic] = None,
    http: Optional[httpx.AsyncClient] = None,
) -> list[CurationStrategy]:
    """[thorough Claude ->] Claude -> OpenAI -> pass-through, skipping tiers without credentials."""
    strategies: list[CurationStrategy] = []
    if anthropic_client is None and settings.anthropic_api_key:
        anthropic_client = anthropic.AsyncAnthropic(api_key=settings.anthropic_api_key)
    if anthropic_client is not None:
        if thorough:
            strategies.append(AnthropicCurationStrategy(
                anthropic_client,
                model=settings.curation_thorough_model,
                timeout_s=settings.curation_llm_timeout_s,
                name="anthropic_thorough",
                max_attempts=settings.curation_max_attempts,
            ))
        strategies.append(AnthropicCurationStrategy(
            anthropic_client,
            model=settings.curation_model,
            timeout_s=settings.curation_llm_timeout_s,
            max_attempts=settings.curation_max_attempts,
        ))
    if settings.openai_api_key:
        strategies.append(OpenAICurationStrategy(
            settings.openai_api_key,
            model=settings.curation_openai_model,
            timeout_s=settings.curation_llm_timeout_s,
            http=http,
            max_attempts=settings.curation_max_attempts,
        ))
    strategies.append(PassThroughCurationStrategy())
    return strategies


# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------

@dataclass
class CurationResult:
    accepted: list[CandidateRecord]
    rejected: list[Rejection] = field(default_factory=list)
    method: str = "pass_through"
    attempts: list[AttemptLog] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "candidates": [c.to_dict() for c in self.accepted],
            "rejected": [r.to_dict() for r in self.rejected],
            "curationMethod": self.method,
            "attempts": [a.to_dict() for a in self.attempts],
            "promptVersion": CURATION_PROMPT_VERSION,
        }

    def summary(self) -> dict[str, Any]:
        return {
            "accepted": len(self.accepted),
            "rejected": [r.to_dict() for r in self.rejected],
            "curationMethod": self.method,
        }


async def curate_candidates(
    candidates: Sequence[CandidateRecord],
    city: str,
    state: str,
    strategies: Optional[Sequence[CurationStrategy]] = None,
) -> CurationResult:
    """
    Run the curation cascade over merged candidates. Never raises.

    Input is merged first-wins by NormalizedKey. When every tier fails the
    candidates pass through unchanged with method "none".
    """
    candidates = merge_candidates([candidates])
    if not candidates:
        return CurationResult(accepted=[], method="skipped")

    strategies = list(strategies) if strategies is not None else [PassThroughCurationStrategy()]
    attempts: list[AttemptLog] = []

    for strategy in strategies:
        for attempt in range(1, strategy.max_attempts + 1):
            result, verdict = await strategy.review(candidates, city, state)
            attempts.append(AttemptLog(strategy.name, attempt, result.outcome, result.error))

            if result.ok and verdict is not None:
                if verdict.rejected:
                    logger.info(
                        "Curation rejected %d places: %s",
                        len(verdict.rejected),
                        ", ".join(f"{r.name} ({r.reason})" for r in verdict.rejected),
                    )
                logger.info(
                    "Curation for %s, %s: method=%s accepted=%d/%d",
                    city, state, strategy.name, len(verdict.accepted), len(candidates),
                )
                return CurationResult(
                    accepted=verdict.accepted,
                    rejected=verdict.rejected,
                    method=strategy.name,
                    attempts=attempts,
                )

            if result.outcome == StrategyOutcome.TERMINAL_FAILURE:
                logger.warning("Curation %s failed (terminal): %s", strategy.name, result.error)
                break

            if attempt < strategy.max_attempts:
                logger.warning(
                    "Curation %s failed (retryable), retry %d/%d: %s",
                    strategy.name, attempt, strategy.max_attempts, result.error,
                )
                await asyncio.sleep(strategy.retry_delay_s)
            else:
                logger.warning("Curation %s exhausted %d attempts: %s", strategy.name, attempt, result.error)

    logger.error("All curation strategies failed for %s; passing candidates through", city)
    return CurationResult(accepted=list(candidates), method="none", attempts=attempts)
