"""
Brand alignment scoring: deterministic 0-100 score + status for a place.

Pipeline per place:
  1. Hard filters (chain with commercial focus, adult venue). A hit
     short-circuits to score 0 / REJECT.
  2. Four independent component scores, each 0-100:
       accessibility  price tier lookup
       nature         category base + keyword density + place types
       family         base 40 + keyword density + category + rating/reviews
       local          base 50 - chain + public institution + category + reviews
  3. Weighted sum (0.30 / 0.25 / 0.25 / 0.20), rounded half-up.
  4. Status thresholds: >=80 RECOMMENDED, >=60 CONSIDER, >=40 REVIEW,
     else REJECT. Advisory notes appended.

Everything here is pure: no I/O, no shared state. Missing enrichment
(rating, review count, place types) is neutral.
"""

import dataclasses
import logging
import math
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Iterable, Optional

from services.curator.pipeline.brand_criteria import (
    ACCESSIBILITY_BY_TIER,
    ADULT_VENUE_KEYWORDS,
    CHAIN_INDICATORS,
    FAMILY_KEYWORDS,
    NATURE_KEYWORDS,
    NATURE_PLACE_TYPES,
    PUBLIC_PLACE_TYPES,
    SCORING_WEIGHTS,
    THRESHOLD_CONSIDER,
    THRESHOLD_RECOMMENDED,
    THRESHOLD_REVIEW,
)
from services.curator.pipeline.types import (
    PlaceCategory,
    PriceTier,
    ScoredPlace,
    ValidationStatus,
)

logger = logging.getLogger(__name__)

NOTE_SEPARATOR = ". "


@dataclass(frozen=True)
class ScoreResult:
    score: int
    status: ValidationStatus
    notes: str


# ---------------------------------------------------------------------------
# Text helpers
# ---------------------------------------------------------------------------

@lru_cache(maxsize=256)
def _word_pattern(keyword: str) -> re.Pattern:
    # Allow a plain plural so "bars" and "pubs" still match; "barn" and
    # "public" do not.
    return re.compile(rf"\b{re.escape(keyword)}(?:s|es)?\b")


def contains_word(text: str, keyword: str) -> bool:
    return _word_pattern(keyword).search(text) is not None


def _combined_text(*parts) -> str:
    flat: list[str] = []
    for part in parts:
        if isinstance(part, str):
            flat.append(part)
        else:
            flat.extend(part)
    return " ".join(p for p in flat if p).lower()


def _keyword_hits(text: str, keywords: Iterable[str]) -> int:
    return sum(1 for kw in keywords if kw in text)


# ---------------------------------------------------------------------------
# Hard filters
# ---------------------------------------------------------------------------

def check_hard_filters(place: ScoredPlace) -> Optional[str]:
    """Return the rejection reason, or None when the place passes."""
    if place.is_chain:
        name = place.name.lower()
        if any(contains_word(name, chain) for chain in CHAIN_INDICATORS):
            return "Chain/franchise with primarily commercial focus"

    text = _combined_text(place.name, place.description)
    if any(contains_word(text, kw) for kw in ADULT_VENUE_KEYWORDS):
        return "Adult-oriented venue"

    return None


# ---------------------------------------------------------------------------
# Component scores
# ---------------------------------------------------------------------------

def accessibility_score(price_tier: Optional[PriceTier]) -> int:
    return ACCESSIBILITY_BY_TIER[price_tier or PriceTier.FREE]


def nature_score(place: ScoredPlace) -> int:
    text = _combined_text(place.name, place.description, place.category.value, place.place_types)
    score = 0
    if place.category in (PlaceCategory.NATURE, PlaceCategory.FARM):
        score += 40
    score += min(_keyword_hits(text, NATURE_KEYWORDS) * 12, 60)
    score += len(set(place.place_types) & NATURE_PLACE_TYPES) * 15
    return min(score, 100)


def family_score(place: ScoredPlace) -> int:
    text = _combined_text(place.name, place.description, place.place_types)
    score = 40
    score += min(_keyword_hits(text, FAMILY_KEYWORDS) * 10, 30)

    if place.category == PlaceCategory.LIBRARY:
        score += 20
    elif place.category == PlaceCategory.INDOOR_PLAY:
        score += 25
    elif place.category == PlaceCategory.MUSEUM:
        score += 15

    if place.rating is not None:
        if place.rating >= 4.5:
            score += 10
        elif place.rating >= 4.0:
            score += 5

    if place.review_count is not None and place.review_count >= 100:
        score += 5

    return min(score, 100)


def local_score(place: ScoredPlace) -> int:
    score = 50
    if place.is_chain:
        score -= 40
    if any(t in PUBLIC_PLACE_TYPES for t in place.place_types):
        score += 30

    if place.category == PlaceCategory.LIBRARY:
        score += 25
    elif place.category == PlaceCategory.NATURE:
        score += 15
    elif place.category == PlaceCategory.FARM:
        score += 20

    reviews = place.review_count
    if reviews:
        if reviews >= 500:
            score += 10
        elif reviews >= 100:
            score += 15
        elif reviews >= 20:
            score += 10

    return max(0, min(score, 100))


# ---------------------------------------------------------------------------
# Aggregate
# ---------------------------------------------------------------------------

def status_for_score(score: int) -> ValidationStatus:
    if score >= THRESHOLD_RECOMMENDED:
        return ValidationStatus.RECOMMENDED
    if score >= THRESHOLD_CONSIDER:
        return ValidationStatus.CONSIDER
    if score >= THRESHOLD_REVIEW:
        return ValidationStatus.REVIEW
    return ValidationStatus.REJECT


_STATUS_NOTES = {
    ValidationStatus.RECOMMENDED: "Auto-approved: high brand alignment",
    ValidationStatus.CONSIDER: "Moderate brand alignment - editorial review suggested",
    ValidationStatus.REVIEW: "Low brand alignment - requires manual review",
    ValidationStatus.REJECT: "Below minimum brand alignment threshold",
}


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def weighted_score(place: ScoredPlace) -> int:
    total = (
        accessibility_score(place.price_tier) * SCORING_WEIGHTS["accessibility"]
        + nature_score(place) * SCORING_WEIGHTS["nature"]
        + family_score(place) * SCORING_WEIGHTS["family"]
        + local_score(place) * SCORING_WEIGHTS["local"]
    )
    return _round_half_up(total)


def score_place(place: ScoredPlace) -> ScoreResult:
    """Score one place. Pure; the input is not modified."""
    reject_reason = check_hard_filters(place)
    if reject_reason:
        return ScoreResult(
            score=0,
            status=ValidationStatus.REJECT,
            notes=f"Hard filter: {reject_reason}",
        )

    score = weighted_score(place)
    status = status_for_score(score)

    notes = [_STATUS_NOTES[status]]
    if place.price_tier == PriceTier.TEN_TO_FIFTEEN:
        notes.append("Price approaching $15 limit")
    if place.rating is None:
        notes.append("No Google rating available - verify manually")
    if place.review_count is not None and place.review_count < 10:
        notes.append("Few reviews - new or unverified listing")

    return ScoreResult(score=score, status=status, notes=NOTE_SEPARATOR.join(notes))


def apply_score(place: ScoredPlace) -> ScoredPlace:
    """Return a copy of place carrying its score, status and notes."""
    result = score_place(place)
    return dataclasses.replace(
        place, score=result.score, status=result.status, notes=result.notes,
    )


def score_library(places: Iterable[ScoredPlace]) -> list[ScoredPlace]:
    scored = [apply_score(p) for p in places]
    rejected = sum(1 for p in scored if p.status == ValidationStatus.REJECT)
    logger.info("Scored %d places (%d rejected)", len(scored), rejected)
    return scored
