"""
Anti-repeat enforcement: turn an untrusted week->place suggestion set into a
final 52-row plan where

  - no place (primary or alternate) is used more than max_uses times, and
  - primary != alternate (by NormalizedKey) within a week.

Weeks are processed strictly in ascending order; earlier weeks get first
claim on popular places once caps start to bite. Each week:

  1. Resolve the suggested primary against the library. Keep it when it is
     a known non-REJECT place still under the cap; otherwise repair with the
     best available place by theme fit (excluding the suggested alternate).
  2. Same for the alternate, which must also differ from the final primary.
  3. If no primary could be found but an alternate was, the alternate is
     promoted and a new alternate is searched for.
  4. Record usage for whatever was assigned.

An exhausted pool leaves empty fields rather than raising. The only error
is a malformed theme list (ThemeListError).
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from services.curator.generation.theme_fit import rank_for_theme
from services.curator.generation.theme_templates import validate_themes
from services.curator.pipeline.dedup import normalize_key
from services.curator.pipeline.types import (
    ScoredPlace,
    ValidationStatus,
    WeekAssignment,
    WeekTheme,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_USES = 2
REASON_MAX_CHARS = 80
ALTERNATE_REASON = "Alternate option"


def repair_reason(theme: WeekTheme) -> str:
    return f'Best available fit for "{theme.title}"'


def clip_reason(reason: str) -> str:
    return (reason or "").strip()[:REASON_MAX_CHARS]


class UsageLedger:
    """
    Per-run usage counter keyed by NormalizedKey.

    Create one per enforcement run; never share between runs.
    """

    def __init__(self, max_uses: int = DEFAULT_MAX_USES):
        if not 1 <= max_uses <= DEFAULT_MAX_USES:
            raise ValueError(f"max_uses must be between 1 and {DEFAULT_MAX_USES}")
        self.max_uses = max_uses
        self._counts: dict[str, int] = {}

    def count(self, name: str) -> int:
        return self._counts.get(normalize_key(name), 0)

    def can_use(self, name: str) -> bool:
        return bool(normalize_key(name)) and self.count(name) < self.max_uses

    def record(self, name: str) -> int:
        key = normalize_key(name)
        if not key:
            raise ValueError(f"Cannot record usage for empty name {name!r}")
        self._counts[key] = self._counts.get(key, 0) + 1
        return self._counts[key]

    def snapshot(self) -> dict[str, int]:
        return dict(self._counts)


@dataclass
class _Library:
    eligible: list[ScoredPlace]
    by_key: dict[str, ScoredPlace]

    @classmethod
    def build(cls, places: Iterable[ScoredPlace]) -> "_Library":
        eligible: list[ScoredPlace] = []
        by_key: dict[str, ScoredPlace] = {}
        for place in places:
            if place.status == ValidationStatus.REJECT:
                continue
            key = normalize_key(place.name)
            if not key or key in by_key:
                continue
            by_key[key] = place
            eligible.append(place)
        return cls(eligible=eligible, by_key=by_key)

    def resolve(self, name: str) -> Optional[ScoredPlace]:
        return self.by_key.get(normalize_key(name)) if name else None


def find_best_available(
    theme: WeekTheme,
    places: Sequence[ScoredPlace],
    ledger: UsageLedger,
    exclude_name: str = "",
) -> Optional[ScoredPlace]:
    """Highest-fit place still under the cap whose key differs from exclude_name."""
    exclude_key = normalize_key(exclude_name)
    candidates = [
        p for p in places
        if ledger.can_use(p.name) and normalize_key(p.name) != exclude_key
    ]
    ranked = rank_for_theme(theme, candidates)
    return ranked[0][1] if ranked else None


def _index_suggestions(suggestions: Iterable[WeekAssignment]) -> dict[int, WeekAssignment]:
    by_week: dict[int, WeekAssignment] = {}
    for s in suggestions:
        by_week.setdefault(s.week, s)
    return by_week


def enforce_anti_repeat(
    suggestions: Iterable[WeekAssignment],
    places: Iterable[ScoredPlace],
    themes: Iterable[WeekTheme],
    max_uses: int = DEFAULT_MAX_USES,
) -> list[WeekAssignment]:
    """
    Validate/repair suggestions into exactly one row per theme, ascending.

    Raises ThemeListError when themes are not exactly weeks 1..52.
    """
    themes = validate_themes(themes)
    library = _Library.build(places)
    suggested = _index_suggestions(suggestions)
    ledger = UsageLedger(max_uses)

    plan: list[WeekAssignment] = []
    repaired = 0

    for theme in themes:
        s = suggested.get(theme.week) or WeekAssignment(week=theme.week)
        primary = library.resolve(s.place_name)
        primary_reason = clip_reason(s.reason)
        alternate = library.resolve(s.alternate_name)
        alternate_reason = clip_reason(s.alternate_reason)

        if primary is None or not ledger.can_use(primary.name):
            exclude = alternate.name if alternate else s.alternate_name
            primary = find_best_available(theme, library.eligible, ledger, exclude)
            primary_reason = repair_reason(theme) if primary else ""
            repaired += 1

        primary_name = primary.name if primary else ""
        if (
            alternate is None
            or not ledger.can_use(alternate.name)
            or normalize_key(alternate.name) == normalize_key(primary_name)
        ):
            alternate = find_best_available(theme, library.eligible, ledger, primary_name)
            alternate_reason = ALTERNATE_REASON if alternate else ""
            repaired += 1

        if primary is None and alternate is not None:
            primary, primary_reason = alternate, alternate_reason or repair_reason(theme)
            alternate = find_best_available(theme, library.eligible, ledger, primary.name)
            alternate_reason = ALTERNATE_REASON if alternate else ""

        row = WeekAssignment(
            week=theme.week,
            place_name=primary.name if primary else "",
            reason=primary_reason if primary else "",
            alternate_name=alternate.name if alternate else "",
            alternate_reason=alternate_reason if alternate else "",
        )
        if row.place_name:
            ledger.record(row.place_name)
        if row.alternate_name:
            ledger.record(row.alternate_name)
        plan.append(row)

    degraded = find_degraded_weeks(plan)
    logger.info(
        "Anti-repeat enforcement: %d weeks, %d field repairs, %d degraded",
        len(plan), repaired, len(degraded),
    )
    if degraded:
        logger.warning("Degraded weeks (empty primary or alternate): %s", degraded)
    return plan


# ---------------------------------------------------------------------------
# Plan inspection
# ---------------------------------------------------------------------------

def find_degraded_weeks(plan: Iterable[WeekAssignment]) -> list[int]:
    return [row.week for row in plan if row.is_degraded]


def usage_counts(plan: Iterable[WeekAssignment]) -> dict[str, int]:
    """Uses per place across the plan, keyed by the first display name seen."""
    names: dict[str, str] = {}
    counts: dict[str, int] = {}
    for row in plan:
        for name in (row.place_name, row.alternate_name):
            key = normalize_key(name)
            if not key:
                continue
            display = names.setdefault(key, name)
            counts[display] = counts.get(display, 0) + 1
    return counts


def plan_violations(plan: Sequence[WeekAssignment], max_uses: int = DEFAULT_MAX_USES) -> list[str]:
    """Human-readable constraint violations; empty for a valid plan."""
    problems: list[str] = []
    for name, count in usage_counts(plan).items():
        if count > max_uses:
            problems.append(f"{name} used {count} times (max {max_uses})")
    for row in plan:
        if row.place_name and normalize_key(row.place_name) == normalize_key(row.alternate_name):
            problems.append(f"week {row.week}: primary equals alternate ({row.place_name})")
    weeks = [row.week for row in plan]
    if len(weeks) != len(set(weeks)):
        problems.append("duplicate week numbers in plan")
    return problems
