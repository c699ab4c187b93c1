"""
52-week theme templates.

A template is an ordered list of exactly 52 WeekTheme records, weeks 1..52
with no gaps or duplicates. Presets live in TEMPLATES; additional presets can
be loaded from JSON files of {week, title, referenceNote} objects.

Seasons by week: winter 1-9 and 49-52, spring 10-22, summer 23-35,
fall 36-48.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Iterable

from services.curator.pipeline.types import WeekTheme

logger = logging.getLogger(__name__)

WEEKS_PER_YEAR = 52


class ThemeListError(ValueError):
    """Theme list does not cover weeks 1..52 exactly once each."""


def season_for_week(week: int) -> str:
    if not 1 <= week <= WEEKS_PER_YEAR:
        raise ValueError(f"week out of range: {week}")
    if week <= 9 or week >= 49:
        return "winter"
    if week <= 22:
        return "spring"
    if week <= 35:
        return "summer"
    return "fall"


def validate_themes(themes: Iterable[WeekTheme]) -> list[WeekTheme]:
    """
    Check that weeks are exactly 1..52 and return the themes sorted by week.

    Raises ThemeListError naming the missing / duplicated / out-of-range
    weeks.
    """
    themes = list(themes)
    weeks = [t.week for t in themes]

    out_of_range = sorted({w for w in weeks if not 1 <= w <= WEEKS_PER_YEAR})
    duplicates = sorted({w for w in weeks if weeks.count(w) > 1})
    missing = sorted(set(range(1, WEEKS_PER_YEAR + 1)) - set(weeks))

    problems = []
    if out_of_range:
        problems.append(f"out of range: {out_of_range}")
    if duplicates:
        problems.append(f"duplicated: {duplicates}")
    if missing:
        problems.append(f"missing: {missing}")
    if problems:
        raise ThemeListError("Invalid theme list (" + "; ".join(problems) + ")")

    return sorted(themes, key=lambda t: t.week)


def theme_from_dict(raw: dict[str, Any]) -> WeekTheme:
    try:
        week = int(raw["week"])
    except (KeyError, TypeError, ValueError) as exc:
        raise ThemeListError(f"Theme entry without a valid week: {raw!r}") from exc
    return WeekTheme(
        week=week,
        title=str(raw.get("title") or ""),
        reference_note=str(raw.get("referenceNote") or raw.get("reference_note") or ""),
    )


def themes_from_dicts(items: Iterable[dict[str, Any]]) -> list[WeekTheme]:
    return validate_themes(theme_from_dict(item) for item in items)


def load_template_file(path: str | Path) -> list[WeekTheme]:
    """Load and validate a JSON template ([{week, title, referenceNote}, ...])."""
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = data.get("themes", [])
    if not isinstance(data, list):
        raise ThemeListError(f"Template file {path} does not contain a theme list")
    themes = themes_from_dicts(data)
    logger.info("Loaded %d themes from %s", len(themes), path)
    return themes


# ---------------------------------------------------------------------------
# Presets
# ---------------------------------------------------------------------------

_USA: list[tuple[str, str]] = [
    # Winter
    ("New Year Nature Walk", "A city nature center with indoor exhibits and short winter trails"),
    ("Cozy Library Storytime", "A public library branch with a weekly toddler storytime"),
    ("Snowy Animal Tracks", "A nature preserve or park with easy trails for spotting tracks"),
    ("Museum Explorers", "A children's museum with hands-on exhibits"),
    ("Indoor Art Play", "A kids' art studio or open-play craft space"),
    ("Winter Bird Watch", "A park or nature center with bird feeders and viewing windows"),
    ("Valentine Crafts and Cards", "A library or art studio hosting a card-making craft time"),
    ("Frosty Science Day", "A science center or museum with hands-on winter science"),
    ("Indoor Play Adventure", "An indoor play space or play cafe for toddlers"),
    # Spring
    ("Signs of Spring Hike", "A nature trail or arboretum where early buds appear"),
    ("Seed Starting Garden", "A botanical garden or greenhouse with a children's garden"),
    ("Puddle Jumping Park", "A neighborhood park with a playground and open lawn"),
    ("Baby Animals at the Farm", "A family farm with a petting zoo and spring lambs"),
    ("Spring Bloom Stroll", "A botanical garden with tulip and flower displays"),
    ("Egg Hunt Celebration", "A community park hosting a spring egg hunt"),
    ("Bug Hunt Safari", "A prairie or garden with butterflies and insects to spot"),
    ("Earth Day Cleanup", "A city park or creek trail with volunteer cleanup days"),
    ("Creek Exploring", "A nature preserve with a shallow creek and stepping stones"),
    ("Farmers Market Morning", "A local farmers market with live music and samples"),
    ("Butterfly Garden Visit", "A butterfly garden or pollinator patch"),
    ("Zoo Animal Friends", "A local zoo or animal park with a children's zoo"),
    ("Picnic in the Park", "A large park with shaded picnic shelters and a playground"),
    # Summer
    ("Splash Pad Day", "A park with a free splash pad or spray ground"),
    ("Strawberry Picking", "A u-pick farm with berry fields"),
    ("Lake Day Adventure", "A lake with a beach and shallow swimming area"),
    ("Summer Reading Kickoff", "A public library running a summer reading program"),
    ("Fireworks and Festival", "A community Fourth of July festival"),
    ("Nature Center Discovery", "A nature center with live animal exhibits"),
    ("Trail Blazers", "An easy paved trail for strollers and little hikers"),
    ("Garden Treats", "A local ice cream shop near a garden or park"),
    ("Water Play at the River", "A riverfront park with a shallow wading spot"),
    ("Outdoor Music Night", "A free outdoor concert series in a park"),
    ("Sunflower Fields", "A farm with sunflower fields open to visitors"),
    ("Back to School Museum Day", "A museum with a free or discounted family day"),
    ("Prairie Wildflower Walk", "A prairie preserve with mown paths through wildflowers"),
    # Fall
    ("Apple Orchard Picking", "An apple orchard with u-pick rows"),
    ("Fall Nature Scavenger Hunt", "A park or arboretum with changing leaves"),
    ("County Fair Fun", "A county fair or harvest festival with animal barns"),
    ("Harvest Farm Day", "A family farm with hayrack rides and a corn maze"),
    ("Pumpkin Patch Perfection", "A seasonal u-pick pumpkin patch on a family farm"),
    ("Leaf Pile Play", "A neighborhood park with big trees and a playground"),
    ("Fall Festival Weekend", "A community fall festival with kids' activities"),
    ("Animal Friends in Autumn", "A petting farm or zoo with fall hours"),
    ("Halloween Trick or Treat Trail", "A family-friendly Halloween event"),
    ("Museum Rainy Day", "A natural history museum"),
    ("Thankful Craft Time", "A library or studio hosting a gratitude craft"),
    ("Harvest Feast and Market", "A holiday farmers market with local treats"),
    ("Cozy Book Nook", "A library with a reading nook and fireplace"),
    # Winter
    ("Holiday Lights Stroll", "A holiday light display in a park or garden"),
    ("Christmas Tree Farm", "A family-run Christmas tree farm"),
    ("Winter Wonderland Play", "An indoor play space with a winter theme"),
    ("Snowy Nature Walk and Cocoa", "A nature center with winter trails and hot cocoa"),
]

TEMPLATES: dict[str, list[WeekTheme]] = {
    "usa": validate_themes(
        WeekTheme(week=i, title=title, reference_note=note)
        for i, (title, note) in enumerate(_USA, start=1)
    ),
}


def get_template(name: str) -> list[WeekTheme]:
    """Return a preset by name. Raises KeyError for unknown presets."""
    try:
        return list(TEMPLATES[name])
    except KeyError:
        raise KeyError(f"Unknown template: {name!r} (known: {sorted(TEMPLATES)})") from None
