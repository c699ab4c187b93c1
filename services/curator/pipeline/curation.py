"""
Library building: discovered candidates -> scored, tagged ScoredPlace library,
plus the end-to-end edition runner and its CLI.

Steps (curate_library):
  1. Merge candidate batches first-wins by NormalizedKey (dedup.py)
  2. Build a ScoredPlace per candidate: deterministic id, chain flag,
     optional enrichment merged in
  3. Infer age/season flags and render the tag string
  4. Brand alignment score + status

run_edition adds discovery and AI curation in front and week matching behind:
  discover_city -> curate_candidates -> enrich_candidates -> curate_library
    -> match_weeks

Usage:
    python -m services.curator.pipeline.curation Lincoln NE
    python -m services.curator.pipeline.curation Lincoln NE --template usa --output lincoln.json
    python -m services.curator.pipeline.curation Lincoln NE --thorough
"""

import asyncio
import json
import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional, Sequence, Union

import httpx

from services.curator.config import Settings
from services.curator.generation.theme_templates import get_template, load_template_file
from services.curator.generation.week_matcher import MatchResult, default_strategies, match_weeks
from services.curator.pipeline.ai_curation import CurationResult, curate_candidates, default_curation_strategies
from services.curator.pipeline.attribute_inference import apply_attributes
from services.curator.pipeline.brand_criteria import KNOWN_CHAINS
from services.curator.pipeline.brand_scoring import apply_score, contains_word
from services.curator.pipeline.dedup import merge_candidates, normalize_key
from services.curator.pipeline.discovery import build_sources, discover_city
from services.curator.pipeline.enrichment import apply_enrichment, enrich_candidates
from services.curator.pipeline.types import (
    CandidateRecord,
    Enrichment,
    PlaceCategory,
    ScoredPlace,
    ValidationStatus,
    WeekTheme,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Place construction
# ---------------------------------------------------------------------------

def make_place_id(name: str, city: str) -> str:
    """URL-safe slug from place name and city."""
    raw = f"{name}-{city}".lower()
    slug = re.sub(r"[^a-z0-9-]", "-", raw)
    slug = re.sub(r"-+", "-", slug)
    return slug.strip("-")


def is_known_chain(name: str) -> bool:
    lower = name.lower()
    return any(contains_word(lower, chain) for chain in KNOWN_CHAINS)


def build_place(
    candidate: CandidateRecord,
    city: str,
    enrichment: Optional[Enrichment] = None,
) -> ScoredPlace:
    """
    Unscored ScoredPlace for a candidate, with enrichment applied.

    The source's own price estimate goes in first as a partial enrichment;
    a price from the external lookup replaces it.
    """
    place = ScoredPlace(
        id=make_place_id(candidate.name, city),
        name=candidate.name.strip(),
        city=city,
        category=candidate.category,
        description=candidate.snippet,
        source=candidate.source,
        source_url=candidate.source_url,
        is_chain=is_known_chain(candidate.name),
    )
    if candidate.price_tier is not None:
        place = apply_enrichment(place, Enrichment(price_tier=candidate.price_tier))
    return apply_enrichment(place, enrichment)


def curate_library(
    batches: Iterable[Iterable[CandidateRecord]],
    city: str,
    enrichments: Optional[Mapping[str, Enrichment]] = None,
) -> list[ScoredPlace]:
    """
    Dedup, build, tag and score.

    batches must already be in source-priority order. enrichments is keyed
    by NormalizedKey; missing entries are simply not enriched.
    """
    enrichments = enrichments or {}
    candidates = merge_candidates(batches)

    library: list[ScoredPlace] = []
    for candidate in candidates:
        place = build_place(candidate, city, enrichments.get(normalize_key(candidate.name)))
        library.append(apply_score(apply_attributes(place)))

    summary = summarize_library(library)
    logger.info(
        "Curated %d places for %s: %s",
        len(library), city, summary["byStatus"],
    )
    return library


def summarize_library(places: Sequence[ScoredPlace]) -> dict[str, Any]:
    """Counts per status and per category, every key present."""
    by_status = Counter(p.status for p in places)
    by_category = Counter(p.category for p in places)
    return {
        "total": len(places),
        "byStatus": {s.value: by_status.get(s, 0) for s in ValidationStatus},
        "byCategory": {c.value: by_category.get(c, 0) for c in PlaceCategory},
    }


# ---------------------------------------------------------------------------
# End-to-end runner
# ---------------------------------------------------------------------------

@dataclass
class EditionResult:
    city: str
    state: str
    places: list[ScoredPlace] = field(default_factory=list)
    match: Optional[MatchResult] = None
    curation: Optional[CurationResult] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "city": self.city,
            "state": self.state,
            "summary": summarize_library(self.places),
            "curation": self.curation.summary() if self.curation else None,
            "places": [p.to_dict() for p in self.places],
            "weeks": self.match.to_dict() if self.match else None,
        }


async def run_edition(
    city: str,
    state: str,
    template: Union[str, Sequence[WeekTheme]],
    settings: Settings,
    *,
    thorough: bool = False,
) -> EditionResult:
    """
    Discover, curate, enrich, score and match one city edition.

    template is a preset name or an explicit theme list. thorough adds the
    slower Claude model as the first curation tier.
    """
    themes = get_template(template) if isinstance(template, str) else list(template)
    async with httpx.AsyncClient() as http:
        sources = build_sources(settings, client=http)
        candidates = await discover_city(city, state, sources)

        curation = None
        if settings.curation_enabled:
            curation = await curate_candidates(
                candidates,
                city,
                state,
                default_curation_strategies(settings, thorough=thorough, http=http),
            )
            candidates = curation.accepted

        enrichments = await enrich_candidates(
            candidates,
            city,
            state,
            api_key=settings.google_places_api_key,
            http=http,
            batch_size=settings.enrichment_batch_size,
            batch_delay_s=settings.enrichment_batch_delay_s,
            timeout_s=settings.enrichment_request_timeout_s,
        )

        places = curate_library([candidates], city, enrichments)
        match = await match_weeks(
            themes,
            places,
            city,
            default_strategies(settings, http=http),
            max_uses=settings.max_uses_per_place,
        )

    return EditionResult(city=city, state=state, places=places, match=match, curation=curation)


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

async def main() -> None:
    """CLI entry point for a full city edition run."""
    import argparse
    import sys

    from services.curator.config import settings

    parser = argparse.ArgumentParser(description="Curate a city's place library and 52-week plan")
    parser.add_argument("city", help="City name (e.g. Lincoln)")
    parser.add_argument("state", help="State code (e.g. NE)")
    parser.add_argument("--template", default=settings.default_template, help="Theme preset name")
    parser.add_argument("--template-file", help="JSON theme file; overrides --template")
    parser.add_argument("--output", "-o", help="Write JSON here instead of stdout")
    parser.add_argument("--thorough", action="store_true", help="Curate with the slower Claude model first")
    parser.add_argument("--verbose", "-v", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    try:
        themes = load_template_file(args.template_file) if args.template_file else get_template(args.template)
    except (KeyError, ValueError, OSError) as exc:
        logger.error("Could not load themes: %s", exc)
        sys.exit(1)

    result = await run_edition(args.city, args.state, themes, settings, thorough=args.thorough)
    payload = json.dumps(result.to_dict(), indent=2, ensure_ascii=False)

    if args.output:
        with open(args.output, "w", encoding="utf-8") as f:
            f.write(payload)
        logger.info("Wrote edition for %s to %s", args.city, args.output)
    else:
        print(payload)

    if result.match and result.match.degraded_weeks:
        logger.warning("Degraded weeks: %s", result.match.degraded_weeks)


if __name__ == "__main__":
    asyncio.run(main())
