"""
Google Places enrichment: rating, review count, place types, price level,
address and website for each candidate.

Calls go out in small batches (concurrent within a batch) with a pacing
sleep between batches. A failed lookup leaves that candidate unenriched;
enrichment never fails the run.
"""

import asyncio
import dataclasses
import logging
from typing import Iterable, Optional, Sequence

import httpx

from services.curator.pipeline.dedup import normalize_key
from services.curator.pipeline.types import CandidateRecord, Enrichment, PriceTier, ScoredPlace
from services.curator.scrapers.base import describe_error, raise_for_api_status

logger = logging.getLogger(__name__)

FIND_PLACE_URL = "https://maps.googleapis.com/maps/api/place/findplacefromtext/json"
DETAILS_URL = "https://maps.googleapis.com/maps/api/place/details/json"
DETAILS_FIELDS = ",".join([
    "name", "formatted_address", "rating", "user_ratings_total",
    "website", "price_level", "types",
])


def map_price_level(price_level: Optional[int]) -> PriceTier:
    """Google price_level (0-4) -> PriceTier. Missing or 0 means FREE."""
    if not price_level:
        return PriceTier.FREE
    if price_level == 1:
        return PriceTier.FIVE_TO_TEN
    if price_level == 2:
        return PriceTier.TEN_TO_FIFTEEN
    return PriceTier.FIFTEEN_PLUS


def enrichment_from_details(details: dict) -> Enrichment:
    """Places details -> Enrichment. No price_level leaves price_tier unset."""
    price_level = details.get("price_level")
    return Enrichment(
        rating=details.get("rating"),
        review_count=details.get("user_ratings_total"),
        place_types=list(details.get("types") or []),
        price_tier=map_price_level(price_level) if price_level is not None else None,
        address=details.get("formatted_address") or "",
        website=details.get("website") or "",
    )


async def fetch_enrichment(
    http: httpx.AsyncClient,
    api_key: str,
    name: str,
    city: str,
    state: str,
    *,
    timeout_s: float = 10.0,
) -> Optional[Enrichment]:
    """Find-place then place-details. Returns None when nothing matches."""
    resp = await http.get(
        FIND_PLACE_URL,
        params={
            "input": f"{name} {city} {state}",
            "inputtype": "textquery",
            "fields": "place_id",
            "key": api_key,
        },
        timeout=timeout_s,
    )
    raise_for_api_status(resp, "Google Places")
    candidates = resp.json().get("candidates") or []
    if not candidates or not candidates[0].get("place_id"):
        return None

    resp = await http.get(
        DETAILS_URL,
        params={
            "place_id": candidates[0]["place_id"],
            "fields": DETAILS_FIELDS,
            "key": api_key,
        },
        timeout=timeout_s,
    )
    raise_for_api_status(resp, "Google Places")
    details = resp.json().get("result")
    if not details:
        return None
    return enrichment_from_details(details)


async def _enrich_one(
    http: httpx.AsyncClient,
    api_key: str,
    candidate: CandidateRecord,
    city: str,
    state: str,
    timeout_s: float,
) -> Optional[Enrichment]:
    try:
        return await fetch_enrichment(http, api_key, candidate.name, city, state, timeout_s=timeout_s)
    except Exception as exc:
        logger.warning("Failed to enrich %s: %s", candidate.name, describe_error(exc))
        return None


async def enrich_candidates(
    candidates: Sequence[CandidateRecord],
    city: str,
    state: str,
    *,
    api_key: str,
    http: Optional[httpx.AsyncClient] = None,
    batch_size: int = 5,
    batch_delay_s: float = 0.2,
    timeout_s: float = 10.0,
) -> dict[str, Enrichment]:
    """
    Enrich candidates in paced batches.

    Returns a map NormalizedKey -> Enrichment for the candidates that were
    found; misses and failures are simply absent.
    """
    if not api_key:
        logger.info("No Google Places key; skipping enrichment")
        return {}

    owns_client = http is None
    http = http or httpx.AsyncClient()
    enriched: dict[str, Enrichment] = {}
    try:
        for start in range(0, len(candidates), batch_size):
            if start:
                await asyncio.sleep(batch_delay_s)
            batch = candidates[start:start + batch_size]
            results = await asyncio.gather(
                *(_enrich_one(http, api_key, c, city, state, timeout_s) for c in batch)
            )
            for candidate, enrichment in zip(batch, results):
                if enrichment is not None:
                    enriched[normalize_key(candidate.name)] = enrichment
    finally:
        if owns_client:
            await http.aclose()

    logger.info("Enriched %d/%d candidates for %s", len(enriched), len(candidates), city)
    return enriched


def apply_enrichment(place: ScoredPlace, enrichment: Optional[Enrichment]) -> ScoredPlace:
    """Copy non-null enrichment fields onto place."""
    if enrichment is None:
        return place
    updates = {
        "rating": enrichment.rating,
        "review_count": enrichment.review_count,
        "price_tier": enrichment.price_tier,
        # Enrichment can flag a chain but never clears a known-chain flag
        "is_chain": True if enrichment.is_chain else None,
        "address": enrichment.address or None,
        "website": enrichment.website or None,
        "place_types": list(enrichment.place_types) or None,
    }
    return dataclasses.replace(place, **{k: v for k, v in updates.items() if v is not None})


def index_enrichments(items: Iterable[tuple[str, Enrichment]]) -> dict[str, Enrichment]:
    """Key (name, enrichment) pairs by NormalizedKey; later pairs win."""
    return {normalize_key(name): e for name, e in items if normalize_key(name)}
