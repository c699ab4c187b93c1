"""
Core data types for place curation and week assignment.

CandidateRecord is ephemeral (discovery -> merge only). ScoredPlace is the
durable unit after scoring and is read-only input to week matching.
WeekAssignment rows are the final output of a matching run.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class PlaceCategory(str, Enum):
    """Closed set of place categories."""
    NATURE = "nature"
    FARM = "farm"
    LIBRARY = "library"
    MUSEUM = "museum"
    INDOOR_PLAY = "indoor_play"
    GARDEN = "garden"
    SEASONAL = "seasonal"


class PriceTier(str, Enum):
    """Per-person price band. Declaration order is cheapest first."""
    FREE = "FREE"
    FIVE_TO_TEN = "$5_$10"
    TEN_TO_FIFTEEN = "$10_$15"
    FIFTEEN_PLUS = "$15_plus"


class ValidationStatus(str, Enum):
    RECOMMENDED = "RECOMMENDED"
    CONSIDER = "CONSIDER"
    REVIEW = "REVIEW"
    REJECT = "REJECT"


class DiscoverySource(str, Enum):
    """Where a candidate mention came from."""
    GEMINI = "gemini"
    GROK_X = "grok_x"
    GROK_WEB = "grok_web"
    GROK_SEASONAL = "grok_seasonal"
    BRAVE = "brave"
    MANUAL = "manual"


def coerce_category(value: Any, default: PlaceCategory = PlaceCategory.NATURE) -> PlaceCategory:
    """Map a loose string onto PlaceCategory, falling back to default."""
    if isinstance(value, PlaceCategory):
        return value
    try:
        return PlaceCategory(str(value or "").strip().lower())
    except ValueError:
        return default


def coerce_price_tier(value: Any, default: Optional[PriceTier] = PriceTier.FREE) -> Optional[PriceTier]:
    """Map a loose string onto PriceTier. Unknown or empty -> default."""
    if isinstance(value, PriceTier):
        return value
    raw = str(value or "").strip()
    for tier in PriceTier:
        if raw.lower() == tier.value.lower():
            return tier
    return default


@dataclass(frozen=True)
class CandidateRecord:
    """One place mention from one discovery source."""
    name: str
    source: DiscoverySource
    snippet: str = ""
    category: PlaceCategory = PlaceCategory.NATURE
    source_url: str = ""
    # Price band estimated by the source itself; None when it gave none
    price_tier: Optional[PriceTier] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "sourceTag": self.source.value,
            "snippet": self.snippet,
            "category": self.category.value,
            "sourceUrl": self.source_url,
            "priceTier": self.price_tier.value if self.price_tier else None,
        }


@dataclass
class Enrichment:
    """
    External rating/type data merged onto a candidate before scoring.

    Every field is optional: enrichment may be skipped entirely or only
    partially succeed.
    """
    rating: Optional[float] = None
    review_count: Optional[int] = None
    place_types: list[str] = field(default_factory=list)
    price_tier: Optional[PriceTier] = None
    is_chain: Optional[bool] = None
    address: str = ""
    website: str = ""


@dataclass
class ScoredPlace:
    """
    A distinct place in a city's library.

    status is always a pure function of score plus the hard-filter
    outcome (see brand_scoring.score_place); REJECT overrides any score.
    """
    id: str
    name: str
    city: str
    category: PlaceCategory
    price_tier: PriceTier = PriceTier.FREE
    description: str = ""
    source: DiscoverySource = DiscoverySource.MANUAL
    source_url: str = ""
    is_chain: bool = False

    # Enrichment (nullable)
    rating: Optional[float] = None
    review_count: Optional[int] = None
    place_types: list[str] = field(default_factory=list)
    address: str = ""
    website: str = ""

    # Suitability flags
    baby_friendly: bool = True
    toddler_safe: bool = True
    preschool_plus: bool = True
    warm_weather: bool = False
    winter_spot: bool = False
    tag_string: str = ""

    # Scoring
    score: int = 0
    status: ValidationStatus = ValidationStatus.REVIEW
    notes: str = ""
    week_suggestions: list[int] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "city": self.city,
            "category": self.category.value,
            "priceTier": self.price_tier.value,
            "description": self.description,
            "source": self.source.value,
            "sourceUrl": self.source_url,
            "isChain": self.is_chain,
            "rating": self.rating,
            "reviewCount": self.review_count,
            "placeTypes": list(self.place_types),
            "address": self.address,
            "website": self.website,
            "babyFriendly": self.baby_friendly,
            "toddlerSafe": self.toddler_safe,
            "preschoolPlus": self.preschool_plus,
            "warmWeather": self.warm_weather,
            "winterSpot": self.winter_spot,
            "tagString": self.tag_string,
            "score": self.score,
            "status": self.status.value,
            "notes": self.notes,
            "weekSuggestions": list(self.week_suggestions),
        }


@dataclass(frozen=True)
class WeekTheme:
    """One week of a published 52-week template. Read-only reference data."""
    week: int
    title: str
    reference_note: str = ""


@dataclass
class WeekAssignment:
    """
    Primary + alternate place for one week.

    Used both for (unvalidated) suggestions coming back from a matcher
    strategy and for the final enforced rows.
    """
    week: int
    place_name: str = ""
    reason: str = ""
    alternate_name: str = ""
    alternate_reason: str = ""

    @property
    def is_degraded(self) -> bool:
        return not self.place_name or not self.alternate_name

    def to_dict(self) -> dict[str, Any]:
        return {
            "week": self.week,
            "placeName": self.place_name,
            "reason": self.reason,
            "alternateName": self.alternate_name,
            "alternateReason": self.alternate_reason,
        }


# Unvalidated matcher output shares the row shape
WeekSuggestion = WeekAssignment
