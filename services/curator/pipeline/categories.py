"""
Closed category table: display name, discovery target count, default
seasonality and discovery guidance per PlaceCategory.
"""

from dataclasses import dataclass

from services.curator.pipeline.types import PlaceCategory


@dataclass(frozen=True)
class CategoryConfig:
    id: PlaceCategory
    name: str
    target_count: int
    # Subset of {"warm", "winter"}; empty means no default
    default_seasonality: tuple[str, ...]
    guidance: str = ""


CATEGORIES: dict[PlaceCategory, CategoryConfig] = {
    PlaceCategory.NATURE: CategoryConfig(
        id=PlaceCategory.NATURE,
        name="Parks, Trails & Nature Centers",
        target_count=12,
        default_seasonality=("warm",),
        guidance="Include city parks with playgrounds, nature centers, "
                 "stroller-friendly trails, lakes and prairie preserves.",
    ),
    PlaceCategory.FARM: CategoryConfig(
        id=PlaceCategory.FARM,
        name="Family Farms & Orchards",
        target_count=6,
        default_seasonality=("warm",),
        guidance="Include u-pick farms, pumpkin patches, petting zoos, "
                 "orchards and farms with hayrack rides.",
    ),
    PlaceCategory.LIBRARY: CategoryConfig(
        id=PlaceCategory.LIBRARY,
        name="Libraries & Storytimes",
        target_count=5,
        default_seasonality=("winter",),
        guidance="Include public library branches with children's areas "
                 "and weekly storytime programs.",
    ),
    PlaceCategory.MUSEUM: CategoryConfig(
        id=PlaceCategory.MUSEUM,
        name="Museums & Science Centers",
        target_count=5,
        default_seasonality=("winter",),
        guidance="Include children's museums, science centers and natural "
                 "history museums with hands-on exhibits.",
    ),
    PlaceCategory.INDOOR_PLAY: CategoryConfig(
        id=PlaceCategory.INDOOR_PLAY,
        name="Indoor Play & Art Studios",
        target_count=6,
        default_seasonality=("winter",),
        guidance="Include locally owned play cafes, open-play gyms and "
                 "kids' art studios. Skip national trampoline chains.",
    ),
    PlaceCategory.GARDEN: CategoryConfig(
        id=PlaceCategory.GARDEN,
        name="Gardens, Markets & Local Treats",
        target_count=6,
        default_seasonality=("warm",),
        guidance="Include botanical gardens, farmers markets and local "
                 "bakeries or ice cream shops families love.",
    ),
    PlaceCategory.SEASONAL: CategoryConfig(
        id=PlaceCategory.SEASONAL,
        name="Seasonal Festivals & Events",
        target_count=5,
        default_seasonality=(),
        guidance="Include recurring family festivals, holiday light "
                 "displays and community celebrations.",
    ),
}


def get_category(category: PlaceCategory) -> CategoryConfig:
    return CATEGORIES[category]
