"""
Brand criteria: scoring weights, thresholds, keyword lists and the display
tag key used by scoring and tag building.

Everything here is plain reference data. Changing a list changes scoring for
every city, so keep additions conservative.
"""

from services.curator.pipeline.types import PriceTier

# ---------------------------------------------------------------------------
# Weights + thresholds
# ---------------------------------------------------------------------------

SCORING_WEIGHTS: dict[str, float] = {
    "accessibility": 0.30,
    "nature": 0.25,
    "family": 0.25,
    "local": 0.20,
}

THRESHOLD_RECOMMENDED = 80
THRESHOLD_CONSIDER = 60
THRESHOLD_REVIEW = 40

ACCESSIBILITY_BY_TIER: dict[PriceTier, int] = {
    PriceTier.FREE: 100,
    PriceTier.FIVE_TO_TEN: 80,
    PriceTier.TEN_TO_FIFTEEN: 60,
    PriceTier.FIFTEEN_PLUS: 20,
}

# ---------------------------------------------------------------------------
# Keyword lists
# ---------------------------------------------------------------------------

NATURE_KEYWORDS: list[str] = [
    "park", "trail", "nature", "garden", "farm", "outdoor", "wildlife",
    "botanical", "arboretum", "preserve", "lake", "creek", "forest",
    "prairie", "wetland",
]

FAMILY_KEYWORDS: list[str] = [
    "family", "children", "kids", "toddler", "baby", "playground",
    "storytime", "play", "education", "learning",
]

# Google place types that count toward nature connection (+15 each)
NATURE_PLACE_TYPES: frozenset[str] = frozenset({
    "park", "natural_feature", "campground", "zoo", "aquarium",
})

# Google place types that mark a public institution (+30 local, once)
PUBLIC_PLACE_TYPES: frozenset[str] = frozenset({
    "library", "park", "local_government_office", "city_hall",
})

# Chain names whose presence is primarily commercial. A place must also be
# flagged is_chain for these to trigger the hard filter.
CHAIN_INDICATORS: list[str] = [
    "mcdonald", "walmart", "target", "starbucks", "chuck e cheese",
    "dave and buster", "sky zone", "main event", "urban air", "cinemark",
    "amc", "regal",
]

# Broader list used to flag is_chain on discovery. Includes family-friendly
# chains that are flagged but not rejected outright.
KNOWN_CHAINS: list[str] = CHAIN_INDICATORS + [
    "home depot", "lowes", "barnes and noble", "build a bear",
    "altitude trampoline", "launch trampoline", "defy", "chick fil a",
    "peter piper", "round1", "topgolf", "kidtopia",
]

ADULT_VENUE_KEYWORDS: list[str] = [
    "bar", "brewery", "winery", "nightclub", "casino", "tattoo", "hookah",
    "vape", "liquor", "pub", "taproom",
]

# ---------------------------------------------------------------------------
# Display tag key
# ---------------------------------------------------------------------------

PRICE_TAGS: dict[PriceTier, tuple[str, str]] = {
    PriceTier.FREE: ("🔷", "FREE admission"),
    PriceTier.FIVE_TO_TEN: ("💲", "$5-$10/person"),
    PriceTier.TEN_TO_FIFTEEN: ("💲💲", "$10-$15/person"),
    PriceTier.FIFTEEN_PLUS: ("💲💲💲", "$15+/person"),
}

AGE_TAGS: dict[str, tuple[str, str]] = {
    "baby": ("👶", "Baby-friendly (0-12mo)"),
    "toddler": ("🧒", "Toddler-safe (1-3yr)"),
    "preschool": ("👦", "Preschool+ (3-5yr)"),
}

SEASON_TAGS: dict[str, tuple[str, str]] = {
    "warm": ("☀️", "Warm weather"),
    "winter": ("❄️", "Winter spot"),
}
