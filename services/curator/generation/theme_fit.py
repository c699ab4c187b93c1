"""
Theme fit scoring shared by the keyword fallback matcher and the anti-repeat
repair pass.

fit = 100 if the place was pre-suggested for the week
    + title/category rule bonuses (table below)
    + 10 per place-name word (len > 3) found in the theme's reference note
    + alignment score / 10

Title keywords match at word starts ("crafts", "farmers" and "playground"
count; "Earth" does not count as "art"). The water and insect rules match
anywhere in the title ("Ladybug Lookout", "Freshwater Fun").
"""

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, Iterable, Sequence

from services.curator.pipeline.types import PlaceCategory, ScoredPlace, WeekTheme

PRESUGGESTED_BONUS = 100.0
NAME_WORD_BONUS = 10.0
NAME_WORD_MIN_LEN = 4

_Cat = PlaceCategory


@dataclass(frozen=True)
class FitRule:
    keywords: tuple[str, ...]
    applies: Callable[[ScoredPlace], bool]
    points: float
    # Match keywords anywhere in the title, not only at word starts
    substring: bool = False


def _in(*categories: PlaceCategory) -> Callable[[ScoredPlace], bool]:
    allowed = frozenset(categories)
    return lambda place: place.category in allowed


FIT_RULES: list[FitRule] = [
    FitRule(("farm",), _in(_Cat.FARM), 30),
    FitRule(("garden",), _in(_Cat.GARDEN, _Cat.NATURE), 30),
    FitRule(("zoo",), lambda p: p.category == _Cat.FARM or "zoo" in p.name.lower(), 30),
    FitRule(("library", "storytime", "book", "reading"), _in(_Cat.LIBRARY), 30),
    FitRule(("museum", "science"), _in(_Cat.MUSEUM), 30),
    FitRule(("craft", "art", "play"), _in(_Cat.INDOOR_PLAY), 30),
    FitRule(("nature", "trail", "prairie", "hike"), _in(_Cat.NATURE), 25),
    FitRule(("bird", "animal", "creature"), _in(_Cat.NATURE, _Cat.FARM), 20),
    FitRule(("pumpkin", "harvest", "apple", "orchard", "hayride"), _in(_Cat.SEASONAL), 30),
    FitRule(("pumpkin", "harvest", "apple", "orchard", "hayride"), _in(_Cat.FARM), 25),
    FitRule(("halloween", "christmas", "holiday"), _in(_Cat.SEASONAL), 30),
    FitRule(("spring", "bloom", "flower", "seed"), _in(_Cat.GARDEN, _Cat.NATURE), 20),
    FitRule(("water", "splash", "river", "lake"), _in(_Cat.NATURE), 20, substring=True),
    FitRule(("bug", "butterfly", "insect"), _in(_Cat.NATURE, _Cat.GARDEN), 20, substring=True),
    FitRule(("cozy", "warm", "winter", "snow", "frost"), lambda p: p.winter_spot, 15),
]

_NAME_WORD_RE = re.compile(r"[a-z0-9']+")


@lru_cache(maxsize=512)
def _word_start(keyword: str) -> re.Pattern:
    return re.compile(rf"\b{re.escape(keyword)}")


def title_mentions(title: str, keywords: Iterable[str], *, substring: bool = False) -> bool:
    lower = title.lower()
    if substring:
        return any(kw in lower for kw in keywords)
    return any(_word_start(kw).search(lower) for kw in keywords)


def name_overlap(place_name: str, reference_note: str) -> int:
    """Number of place-name words (len > 3) that appear in the reference note."""
    ref = reference_note.lower()
    words = [w for w in _NAME_WORD_RE.findall(place_name.lower()) if len(w) >= NAME_WORD_MIN_LEN]
    return sum(1 for w in words if w in ref)


def fit_score(theme: WeekTheme, place: ScoredPlace) -> float:
    score = 0.0
    if theme.week in place.week_suggestions:
        score += PRESUGGESTED_BONUS

    for rule in FIT_RULES:
        if title_mentions(theme.title, rule.keywords, substring=rule.substring) and rule.applies(place):
            score += rule.points

    score += NAME_WORD_BONUS * name_overlap(place.name, theme.reference_note)
    score += (place.score or 0) / 10
    return score


def rank_for_theme(
    theme: WeekTheme,
    places: Sequence[ScoredPlace],
) -> list[tuple[float, ScoredPlace]]:
    """
    Places ordered best-first for a theme.

    Ties on fit go to the higher alignment score, then to library order
    (the sort is stable).
    """
    scored = [(fit_score(theme, p), p) for p in places]
    scored.sort(key=lambda item: (-item[0], -item[1].score))
    return scored
