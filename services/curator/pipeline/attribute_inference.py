"""
Attribute inference: age-band and seasonality flags plus the display tag
string rendered from them.

Flags:
  baby / toddler / preschool   default True; category defaults win first,
                               then explicit exclusion indicators clear them
  warm / winter                category default seasonality first, then
                               outdoor/indoor keyword and place-type signals

Tag string order is fixed: price, baby, toddler, preschool, warm, winter.
"""

import dataclasses
from dataclasses import dataclass
from typing import Iterable

from services.curator.pipeline.brand_criteria import AGE_TAGS, PRICE_TAGS, SEASON_TAGS
from services.curator.pipeline.brand_scoring import contains_word
from services.curator.pipeline.categories import get_category
from services.curator.pipeline.types import PlaceCategory, PriceTier, ScoredPlace


@dataclass(frozen=True)
class AttributeFlags:
    baby_friendly: bool
    toddler_safe: bool
    preschool_plus: bool
    warm_weather: bool
    winter_spot: bool


# ---------------------------------------------------------------------------
# Rule tables
# ---------------------------------------------------------------------------

BABY_DEFAULT_CATEGORIES = frozenset({
    PlaceCategory.LIBRARY, PlaceCategory.NATURE, PlaceCategory.GARDEN,
})
TODDLER_DEFAULT_CATEGORIES = frozenset({
    PlaceCategory.LIBRARY, PlaceCategory.INDOOR_PLAY, PlaceCategory.MUSEUM,
    PlaceCategory.FARM, PlaceCategory.NATURE,
})

# Phrases matched as plain substrings (they carry punctuation like "6+")
OLDER_KIDS_ONLY = [
    "ages 5+", "ages 6+", "ages 7+", "ages 8+", "ages 10+", "ages 12+",
    "5 and up", "6 and up", "8 and up",
]
ADULTS_ONLY = ["adults only", "adult only", "21+", "18+", "no children"]
BABY_EXCLUSIONS = [
    "trampoline", "zip line", "zipline", "ropes course", "climbing gym",
    "ninja", "laser tag", "go-kart", "go kart", "paintball",
] + OLDER_KIDS_ONLY + ADULTS_ONLY
TODDLER_EXCLUSIONS = [
    "trampoline", "zip line", "zipline", "ropes course", "laser tag",
    "go-kart", "go kart", "paintball",
] + OLDER_KIDS_ONLY + ADULTS_ONLY
PRESCHOOL_EXCLUSIONS = ["ages 6+", "ages 7+", "ages 8+", "ages 10+", "ages 12+"] + ADULTS_ONLY

OUTDOOR_INDICATORS = [
    "park", "trail", "garden", "farm", "outdoor", "nature", "lake", "pool",
    "splash", "playground", "orchard", "pumpkin", "field", "campground", "zoo",
]
INDOOR_INDICATORS = [
    "museum", "library", "indoor", "center", "art", "studio", "cafe",
    "theatre", "theater", "aquarium", "planetarium", "gallery",
]
INDOOR_PLACE_TYPES = frozenset({
    "museum", "library", "art_gallery", "shopping_mall", "movie_theater",
})


# ---------------------------------------------------------------------------
# Inference
# ---------------------------------------------------------------------------

def _text(place: ScoredPlace) -> str:
    parts = [place.name, place.description, *place.place_types]
    return " ".join(p for p in parts if p).lower()


def _any_phrase(text: str, phrases: Iterable[str]) -> bool:
    return any(p in text for p in phrases)


def _any_word(text: str, words: Iterable[str]) -> bool:
    return any(contains_word(text, w) for w in words)


def infer_attributes(place: ScoredPlace) -> AttributeFlags:
    text = _text(place)
    seasonality = get_category(place.category).default_seasonality

    baby = place.category in BABY_DEFAULT_CATEGORIES or not _any_phrase(text, BABY_EXCLUSIONS)
    toddler = place.category in TODDLER_DEFAULT_CATEGORIES or not _any_phrase(text, TODDLER_EXCLUSIONS)
    preschool = not _any_phrase(text, PRESCHOOL_EXCLUSIONS)

    warm = "warm" in seasonality or _any_word(text, OUTDOOR_INDICATORS)
    winter = (
        "winter" in seasonality
        or _any_word(text, INDOOR_INDICATORS)
        or any(t in INDOOR_PLACE_TYPES for t in place.place_types)
    )

    return AttributeFlags(
        baby_friendly=baby,
        toddler_safe=toddler,
        preschool_plus=preschool,
        warm_weather=warm,
        winter_spot=winter,
    )


# ---------------------------------------------------------------------------
# Tag rendering
# ---------------------------------------------------------------------------

def _present_tags(place: ScoredPlace) -> list[tuple[str, str]]:
    tags = [PRICE_TAGS[place.price_tier or PriceTier.FREE]]
    if place.baby_friendly:
        tags.append(AGE_TAGS["baby"])
    if place.toddler_safe:
        tags.append(AGE_TAGS["toddler"])
    if place.preschool_plus:
        tags.append(AGE_TAGS["preschool"])
    if place.warm_weather:
        tags.append(SEASON_TAGS["warm"])
    if place.winter_spot:
        tags.append(SEASON_TAGS["winter"])
    return tags


def build_tag_string(place: ScoredPlace) -> str:
    return "".join(icon for icon, _ in _present_tags(place))


def tag_labels(place: ScoredPlace) -> list[str]:
    return [label for _, label in _present_tags(place)]


def apply_attributes(place: ScoredPlace) -> ScoredPlace:
    """Return a copy of place with inferred flags and its tag string."""
    flags = infer_attributes(place)
    updated = dataclasses.replace(place, **dataclasses.asdict(flags))
    updated.tag_string = build_tag_string(updated)
    return updated


def apply_attributes_to_all(places: Iterable[ScoredPlace]) -> list[ScoredPlace]:
    return [apply_attributes(p) for p in places]
