"""
Week matching: ordered strategy cascade + anti-repeat enforcement.

Strategy order (first SUCCESS wins):
  1. Claude via the anthropic SDK        (timeout: matcher_llm_timeout_s)
  2. OpenAI chat completions via httpx   (timeout: matcher_llm_timeout_s)
  3. Deterministic keyword fallback      (always succeeds)

Each strategy returns a typed StrategyResult. RETRYABLE_FAILURE (timeout,
connection, rate limit, 5xx) is retried up to the strategy's
attempt limit; TERMINAL_FAILURE (unparseable output, auth, bad request) moves on to
the next tier immediately.

Whatever the suggestions, the final plan always goes through
anti_repeat.enforce_anti_repeat, so the result is complete and
constraint-satisfying even when every AI tier fails.

MatchResult.generation_method:
  "anthropic" | "openai" | "keyword_fallback" | "repair_only"
"""

from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Optional, Sequence

import anthropic
import httpx

from services.curator.config import Settings
from services.curator.generation.anti_repeat import (
    DEFAULT_MAX_USES,
    REASON_MAX_CHARS,
    enforce_anti_repeat,
    find_degraded_weeks,
    usage_counts,
)
from services.curator.generation.llm_client import AIResponseParseError, call_claude, call_openai, extract_json
from services.curator.generation.theme_fit import rank_for_theme
from services.curator.generation.theme_templates import WEEKS_PER_YEAR, validate_themes
from services.curator.pipeline.types import (
    ScoredPlace,
    ValidationStatus,
    WeekAssignment,
    WeekSuggestion,
    WeekTheme,
)
from services.curator.scrapers.base import NonRetryableAPIError

logger = logging.getLogger(__name__)

MATCHER_PROMPT_VERSION = "week-matcher-v1"
FALLBACK_SCORE_FLOOR = 5.0
REF_NOTE_MAX_CHARS = 120

MATCHER_SYSTEM_PROMPT = """You are a week-matching specialist for a family nature brand that creates 52-week adventure guides for families with young children (ages 0-9).

Your job is to match real local places to weekly themes, understanding the INTENT and SPIRIT of each theme, not just keyword matching.

Matching principles:
- Consider seasonality: outdoor places for spring/summer, indoor for winter
- Match the theme's mood and activity type to the place's character
- Flagship places (zoos, museums, major parks) can anchor multiple weeks
- Prefer higher-scored places when multiple options fit equally
- Reference notes in the theme data show the INTENT; find the closest local equivalent
- Every week MUST have a match, even if the fit isn't perfect"""


class SuggestionParseError(AIResponseParseError):
    """AI output could not be read as a week suggestion list."""


# ---------------------------------------------------------------------------
# Strategy results
# ---------------------------------------------------------------------------

class StrategyOutcome(str, Enum):
    SUCCESS = "success"
    RETRYABLE_FAILURE = "retryable_failure"
    TERMINAL_FAILURE = "terminal_failure"


@dataclass
class StrategyResult:
    outcome: StrategyOutcome
    suggestions: list[WeekSuggestion] = field(default_factory=list)
    error: str = ""

    @classmethod
    def success(cls, suggestions: list[WeekSuggestion]) -> StrategyResult:
        return cls(StrategyOutcome.SUCCESS, suggestions=suggestions)

    @classmethod
    def retryable(cls, error: str) -> StrategyResult:
        return cls(StrategyOutcome.RETRYABLE_FAILURE, error=error)

    @classmethod
    def terminal(cls, error: str) -> StrategyResult:
        return cls(StrategyOutcome.TERMINAL_FAILURE, error=error)

    @property
    def ok(self) -> bool:
        return self.outcome == StrategyOutcome.SUCCESS


@dataclass
class AttemptLog:
    strategy: str
    attempt: int
    outcome: StrategyOutcome
    error: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "strategy": self.strategy,
            "attempt": self.attempt,
            "outcome": self.outcome.value,
            "error": self.error,
        }


_RETRYABLE_ANTHROPIC = (
    anthropic.APIConnectionError,  # includes APITimeoutError
    anthropic.RateLimitError,
    anthropic.InternalServerError,
)


def classify_exception(exc: BaseException) -> StrategyResult:
    """Map an exception from an AI call onto a failure result."""
    msg = f"{type(exc).__name__}: {exc}"[:300]

    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return StrategyResult.retryable(msg or "timeout")
    if isinstance(exc, (AIResponseParseError, NonRetryableAPIError)):
        return StrategyResult.terminal(msg)
    if isinstance(exc, _RETRYABLE_ANTHROPIC):
        return StrategyResult.retryable(msg)
    if isinstance(exc, anthropic.APIStatusError):
        if exc.status_code == 429 or exc.status_code >= 500:
            return StrategyResult.retryable(msg)
        return StrategyResult.terminal(msg)
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        if status == 429 or status >= 500:
            return StrategyResult.retryable(msg)
        return StrategyResult.terminal(msg)
    if isinstance(exc, httpx.TransportError):
        return StrategyResult.retryable(msg)
    return StrategyResult.terminal(msg)


# ---------------------------------------------------------------------------
# Prompt + parsing
# ---------------------------------------------------------------------------

def eligible_places(places: Iterable[ScoredPlace]) -> list[ScoredPlace]:
    return [p for p in places if p.status != ValidationStatus.REJECT]


def build_match_prompt(
    themes: Sequence[WeekTheme],
    places: Sequence[ScoredPlace],
    city: str,
) -> str:
    """Compact serialization of the place library and the 52 themes."""
    library = [
        {
            "name": p.name,
            "category": p.category.value,
            "desc": p.description,
            "warm": p.warm_weather,
            "winter": p.winter_spot,
            "score": p.score,
        }
        for p in eligible_places(places)
    ]
    theme_summary = [
        {"week": t.week, "title": t.title, "ref": t.reference_note[:REF_NOTE_MAX_CHARS]}
        for t in themes
    ]

    return f"""You have a library of {len(library)} family-friendly places in {city}. Match each of the {WEEKS_PER_YEAR} weekly themes to the BEST local place from the library.

RULES:
1. Try to use each place at most {DEFAULT_MAX_USES} times across all {WEEKS_PER_YEAR} weeks (the system will enforce this, but try your best)
2. Match by understanding the INTENT and SPIRIT of each theme
3. Consider seasonality: outdoor places (warm=true) for spring/summer, indoor (winter=true) for winter
4. Provide an alternate place for each week (MUST be different from primary)
5. Keep reasons brief (max {REASON_MAX_CHARS} characters)
6. Winter = weeks 1-9 and 49-52, Spring = weeks 10-22, Summer = weeks 23-35, Fall = weeks 36-48
7. Prefer higher-scored places when multiple options fit equally
8. Only use place names exactly as they appear in the library

PLACE LIBRARY:
{json.dumps(library, ensure_ascii=False)}

WEEKLY THEMES:
{json.dumps(theme_summary, ensure_ascii=False)}

Return ONLY a valid JSON array. Every week (1-{WEEKS_PER_YEAR}) MUST have an entry:
[{{"week":1,"placeName":"...","reason":"...","alternateName":"...","alternateReason":"..."}}, ...]"""


def _first_str(item: dict[str, Any], *keys: str) -> str:
    for key in keys:
        value = item.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


def parse_suggestions(text: str) -> list[WeekSuggestion]:
    """
    Structural validation of an AI suggestion payload.

    Accepts a JSON array, or an object wrapping one under "weeks" or
    "matches"; code fences, extra keys and missing optional keys are fine.
    Entries without a usable week number are skipped. Raises
    SuggestionParseError when no entry survives.
    """
    try:
        data = extract_json(text)
    except ValueError as exc:
        logger.error("Week matcher returned unparseable response: %s", (text or "")[:300])
        raise SuggestionParseError("AI response is not valid JSON") from exc

    if isinstance(data, dict):
        data = data.get("weeks", data.get("matches"))
    if not isinstance(data, list):
        raise SuggestionParseError("AI response is not a JSON array of weeks")

    suggestions: list[WeekSuggestion] = []
    for item in data:
        if not isinstance(item, dict):
            continue
        try:
            week = int(item.get("week"))
        except (TypeError, ValueError):
            continue
        if not 1 <= week <= WEEKS_PER_YEAR:
            continue
        suggestions.append(WeekSuggestion(
            week=week,
            place_name=_first_str(item, "placeName", "place_name", "place"),
            reason=_first_str(item, "reason")[:REASON_MAX_CHARS],
            alternate_name=_first_str(item, "alternateName", "alternate_name", "alternate"),
            alternate_reason=_first_str(item, "alternateReason", "alternate_reason")[:REASON_MAX_CHARS],
        ))

    if not suggestions:
        raise SuggestionParseError("AI response contained no usable week entries")
    return suggestions


# ---------------------------------------------------------------------------
# Keyword fallback
# ---------------------------------------------------------------------------

def keyword_fallback_suggestions(
    themes: Sequence[WeekTheme],
    places: Sequence[ScoredPlace],
) -> list[WeekSuggestion]:
    """Top two places by theme fit above FALLBACK_SCORE_FLOOR, per week."""
    pool = eligible_places(places)
    suggestions: list[WeekSuggestion] = []
    for theme in themes:
        ranked = [p for fit, p in rank_for_theme(theme, pool) if fit > FALLBACK_SCORE_FLOOR]
        suggestions.append(WeekSuggestion(
            week=theme.week,
            place_name=ranked[0].name if ranked else "",
            reason="Keyword match" if ranked else "",
            alternate_name=ranked[1].name if len(ranked) > 1 else "",
            alternate_reason="Keyword match alternate" if len(ranked) > 1 else "",
        ))
    return suggestions


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------

class SuggestionStrategy(ABC):
    """One tier of the cascade. suggest() never raises."""

    name: str = "strategy"

    def __init__(self, max_attempts: int = 1, retry_delay_s: float = 1.0):
        self.max_attempts = max(1, max_attempts)
        self.retry_delay_s = retry_delay_s

    @abstractmethod
    async def produce(
        self,
        themes: Sequence[WeekTheme],
        places: Sequence[ScoredPlace],
        city: str,
    ) -> list[WeekSuggestion]:
        """Return suggestions or raise."""

    async def suggest(
        self,
        themes: Sequence[WeekTheme],
        places: Sequence[ScoredPlace],
        city: str,
    ) -> StrategyResult:
        try:
            return StrategyResult.success(await self.produce(themes, places, city))
        except Exception as exc:
            return classify_exception(exc)


class AnthropicSuggestionStrategy(SuggestionStrategy):
    name = "anthropic"

    def __init__(
        self,
        client: anthropic.AsyncAnthropic,
        *,
        model: str,
        timeout_s: float,
        max_attempts: int = 2,
        retry_delay_s: float = 1.0,
    ):
        super().__init__(max_attempts, retry_delay_s)
        self.client = client
        self.model = model
        self.timeout_s = timeout_s

    async def produce(self, themes, places, city) -> list[WeekSuggestion]:
        text = await call_claude(
            self.client,
            MATCHER_SYSTEM_PROMPT,
            build_match_prompt(themes, places, city),
            model=self.model,
            timeout_s=self.timeout_s,
        )
        return parse_suggestions(text)


class OpenAISuggestionStrategy(SuggestionStrategy):
    name = "openai"

    def __init__(
        self,
        api_key: str,
        *,
        model: str,
        timeout_s: float,
        http: Optional[httpx.AsyncClient] = None,
        max_attempts: int = 2,
        retry_delay_s: float = 1.0,
    ):
        super().__init__(max_attempts, retry_delay_s)
        self.api_key = api_key
        self.model = model
        self.timeout_s = timeout_s
        self.http = http

    async def produce(self, themes, places, city) -> list[WeekSuggestion]:
        prompt = build_match_prompt(themes, places, city)
        if self.http is not None:
            text = await call_openai(
                self.http, self.api_key, MATCHER_SYSTEM_PROMPT, prompt,
                model=self.model, timeout_s=self.timeout_s,
            )
        else:
            async with httpx.AsyncClient() as http:
                text = await call_openai(
                    http, self.api_key, MATCHER_SYSTEM_PROMPT, prompt,
                    model=self.model, timeout_s=self.timeout_s,
                )
        return parse_suggestions(text)


class KeywordFallbackStrategy(SuggestionStrategy):
    name = "keyword_fallback"

    def __init__(self):
        super().__init__(max_attempts=1)

    async def produce(self, themes, places, city) -> list[WeekSuggestion]:
        return keyword_fallback_suggestions(themes, places)


def default_strategies(
    settings: Settings,
    *,
    anthropic_client: Optional[anthropic.AsyncAnthropic] = None,
    http: Optional[httpx.AsyncClient] = None,
) -> list[SuggestionStrategy]:
    """Claude -> OpenAI -> keyword, skipping tiers without credentials."""
    strategies: list[SuggestionStrategy] = []
    if anthropic_client is None and settings.anthropic_api_key:
        anthropic_client = anthropic.AsyncAnthropic(api_key=settings.anthropic_api_key)
    if anthropic_client is not None:
        strategies.append(AnthropicSuggestionStrategy(
            anthropic_client,
            model=settings.matcher_model,
            timeout_s=settings.matcher_llm_timeout_s,
            max_attempts=settings.matcher_max_attempts,
        ))
    if settings.openai_api_key:
        strategies.append(OpenAISuggestionStrategy(
            settings.openai_api_key,
            model=settings.matcher_openai_model,
            timeout_s=settings.matcher_llm_timeout_s,
            http=http,
            max_attempts=settings.matcher_max_attempts,
        ))
    strategies.append(KeywordFallbackStrategy())
    return strategies


# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------

@dataclass
class MatchResult:
    plan: list[WeekAssignment]
    generation_method: str
    attempts: list[AttemptLog] = field(default_factory=list)
    degraded_weeks: list[int] = field(default_factory=list)
    usage: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "plan": [row.to_dict() for row in self.plan],
            "generationMethod": self.generation_method,
            "attempts": [a.to_dict() for a in self.attempts],
            "degradedWeeks": list(self.degraded_weeks),
            "usageCounts": dict(self.usage),
            "promptVersion": MATCHER_PROMPT_VERSION,
        }


async def run_strategies(
    strategies: Sequence[SuggestionStrategy],
    themes: Sequence[WeekTheme],
    places: Sequence[ScoredPlace],
    city: str,
) -> tuple[list[WeekSuggestion], str, list[AttemptLog]]:
    """
    Walk the cascade. Returns (suggestions, method, attempt log).

    method is "repair_only" when no strategy succeeded.
    """
    attempts: list[AttemptLog] = []

    for strategy in strategies:
        for attempt in range(1, strategy.max_attempts + 1):
            result = await strategy.suggest(themes, places, city)
            attempts.append(AttemptLog(strategy.name, attempt, result.outcome, result.error))

            if result.ok:
                return result.suggestions, strategy.name, attempts

            if result.outcome == StrategyOutcome.TERMINAL_FAILURE:
                logger.warning("%s failed (terminal): %s", strategy.name, result.error)
                break

            if attempt < strategy.max_attempts:
                logger.warning(
                    "%s failed (retryable), retry %d/%d: %s",
                    strategy.name, attempt, strategy.max_attempts, result.error,
                )
                await asyncio.sleep(strategy.retry_delay_s)
            else:
                logger.warning("%s exhausted %d attempts: %s", strategy.name, attempt, result.error)

    logger.error("All suggestion strategies failed; plan built by repair pass only")
    return [], "repair_only", attempts


async def match_weeks(
    themes: Iterable[WeekTheme],
    places: Sequence[ScoredPlace],
    city: str,
    strategies: Optional[Sequence[SuggestionStrategy]] = None,
    *,
    max_uses: int = DEFAULT_MAX_USES,
) -> MatchResult:
    """
    Produce the final 52-week plan.

    Raises ThemeListError for a malformed theme list; otherwise never raises.
    """
    themes = validate_themes(themes)
    strategies = list(strategies) if strategies is not None else [KeywordFallbackStrategy()]

    suggestions, method, attempts = await run_strategies(strategies, themes, places, city)
    plan = enforce_anti_repeat(suggestions, places, themes, max_uses=max_uses)

    result = MatchResult(
        plan=plan,
        generation_method=method,
        attempts=attempts,
        degraded_weeks=find_degraded_weeks(plan),
        usage=usage_counts(plan),
    )
    logger.info(
        "Week matching for %s: method=%s attempts=%d degraded=%d",
        city, method, len(attempts), len(result.degraded_weeks),
    )
    return result
