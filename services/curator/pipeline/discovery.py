"""
Concurrent multi-source discovery.

Every source call runs concurrently under its own timeout. A failed or
timed-out source contributes an empty batch and a warning; it never blocks
or corrupts the others (settle all, keep successes). The surviving batches
are merged by source priority via dedup.merge_discovery_results.

Per-category sources (Brave, Gemini) run once per category; city-wide
sources (Grok channels) run once per city.
"""

import asyncio
import logging
from typing import Iterable, Optional, Sequence

import httpx

from services.curator.config import Settings
from services.curator.pipeline.dedup import merge_discovery_results
from services.curator.pipeline.types import CandidateRecord, DiscoverySource, PlaceCategory
from services.curator.scrapers.base import BaseSourceClient, describe_error
from services.curator.scrapers.brave import BraveSearchSource
from services.curator.scrapers.gemini import GeminiGroundedSource
from services.curator.scrapers.grok import (
    GrokNeighborhoodSource,
    GrokSeasonalSource,
    GrokXParentsSource,
)

logger = logging.getLogger(__name__)


def build_sources(
    settings: Settings,
    client: Optional[httpx.AsyncClient] = None,
) -> list[BaseSourceClient]:
    """Instantiate every source whose API key is configured."""
    sources: list[BaseSourceClient] = []
    if settings.gemini_api_key:
        sources.append(GeminiGroundedSource(
            settings.gemini_api_key,
            model=settings.gemini_model,
            client=client,
            timeout_s=settings.discovery_source_timeout_s,
        ))
    if settings.xai_api_key:
        for cls in (GrokXParentsSource, GrokNeighborhoodSource, GrokSeasonalSource):
            sources.append(cls(
                settings.xai_api_key,
                model=settings.grok_model,
                client=client,
                timeout_s=settings.grok_timeout_s,
            ))
    if settings.brave_api_key:
        sources.append(BraveSearchSource(
            settings.brave_api_key,
            client=client,
            timeout_s=settings.discovery_source_timeout_s,
        ))
    if not sources:
        logger.warning("No discovery API keys configured; discovery will return nothing")
    return sources


async def _run_source(
    source: BaseSourceClient,
    city: str,
    state: str,
    category: Optional[PlaceCategory],
    timeout_s: Optional[float],
) -> list[CandidateRecord]:
    # Default limit covers every retry attempt of the source
    limit = timeout_s if timeout_s is not None else source.timeout_s * source.max_attempts
    return await asyncio.wait_for(source.discover(city, state, category), timeout=limit)


async def _gather_isolated(
    jobs: list[tuple[BaseSourceClient, Optional[PlaceCategory]]],
    city: str,
    state: str,
    timeout_s: Optional[float],
) -> dict[DiscoverySource, list[CandidateRecord]]:
    results = await asyncio.gather(
        *(_run_source(src, city, state, cat, timeout_s) for src, cat in jobs),
        return_exceptions=True,
    )

    by_source: dict[DiscoverySource, list[CandidateRecord]] = {}
    failed = 0
    for (src, cat), result in zip(jobs, results):
        batch = by_source.setdefault(src.source, [])
        if isinstance(result, BaseException):
            failed += 1
            logger.warning(
                "%s discovery failed for %s (%s): %s",
                src.source.value, city, cat.value if cat else "all", describe_error(result),
            )
            continue
        batch.extend(result)

    if failed:
        logger.warning("%d/%d discovery calls failed for %s", failed, len(jobs), city)
    return by_source


async def discover_category(
    city: str,
    state: str,
    category: PlaceCategory,
    sources: Sequence[BaseSourceClient],
    *,
    timeout_s: Optional[float] = None,
) -> list[CandidateRecord]:
    """Run every per-category source for one category and merge."""
    jobs = [(src, category) for src in sources if not src.city_wide]
    by_source = await _gather_isolated(jobs, city, state, timeout_s)
    return merge_discovery_results(by_source)


async def discover_city(
    city: str,
    state: str,
    sources: Sequence[BaseSourceClient],
    *,
    categories: Optional[Iterable[PlaceCategory]] = None,
    timeout_s: Optional[float] = None,
) -> list[CandidateRecord]:
    """
    Full discovery for a city: every per-category source x category plus
    every city-wide source once, all concurrently, merged by priority.
    """
    categories = list(categories) if categories is not None else list(PlaceCategory)

    jobs: list[tuple[BaseSourceClient, Optional[PlaceCategory]]] = []
    for src in sources:
        if src.city_wide:
            jobs.append((src, None))
        else:
            jobs.extend((src, cat) for cat in categories)

    by_source = await _gather_isolated(jobs, city, state, timeout_s)
    merged = merge_discovery_results(by_source)
    logger.info(
        "Discovery for %s, %s: %d jobs, %d unique candidates",
        city, state, len(jobs), len(merged),
    )
    return merged
