"""
Shared test fixtures for the curator test suite.

Provides:
- async FastAPI test client (keyword-only matcher, pass-through curation, no provider calls)
- factory functions for core records (CandidateRecord, ScoredPlace, themes)
- a small mixed-category place library
"""

import os
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient

# Ensure test env vars before any app imports
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("SENTRY_DSN", "")
os.environ["ANTHROPIC_API_KEY"] = ""
os.environ["OPENAI_API_KEY"] = ""

from services.curator.generation.theme_templates import WEEKS_PER_YEAR  # noqa: E402
from services.curator.pipeline.types import (  # noqa: E402
    CandidateRecord,
    DiscoverySource,
    PlaceCategory,
    PriceTier,
    ScoredPlace,
    ValidationStatus,
    WeekTheme,
)


# ---------------------------------------------------------------------------
# FastAPI test client
# ---------------------------------------------------------------------------

@pytest.fixture
async def app():
    """Test app with state the lifespan would normally set."""
    from services.curator.config import settings
    from services.curator.generation.week_matcher import KeywordFallbackStrategy
    from services.curator.main import app as _app
    from services.curator.pipeline.ai_curation import PassThroughCurationStrategy

    _app.state.settings = settings
    _app.state.strategies = [KeywordFallbackStrategy()]
    _app.state.curation_strategies = [PassThroughCurationStrategy()]
    return _app


@pytest.fixture
async def client(app):
    """Async HTTP client bound to the test app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# ---------------------------------------------------------------------------
# Factory functions
# ---------------------------------------------------------------------------

def make_candidate(name: str = "Pioneers Park", **overrides: Any) -> CandidateRecord:
    fields = {
        "name": name,
        "source": DiscoverySource.GEMINI,
        "snippet": "",
        "category": PlaceCategory.NATURE,
        "source_url": "",
    }
    fields.update(overrides)
    return CandidateRecord(**fields)


def make_place(name: str = "Pioneers Park", **overrides: Any) -> ScoredPlace:
    fields = {
        "id": name.lower().replace(" ", "-") + "-lincoln",
        "name": name,
        "city": "Lincoln",
        "category": PlaceCategory.NATURE,
        "price_tier": PriceTier.FREE,
        "description": "",
        "score": 70,
        "status": ValidationStatus.CONSIDER,
    }
    fields.update(overrides)
    return ScoredPlace(**fields)


def make_themes(overrides: dict[int, tuple[str, str]] | None = None) -> list[WeekTheme]:
    """52 generic themes; overrides maps week -> (title, reference_note)."""
    overrides = overrides or {}
    themes = []
    for week in range(1, WEEKS_PER_YEAR + 1):
        title, note = overrides.get(week, (f"Week {week} Outing", ""))
        themes.append(WeekTheme(week=week, title=title, reference_note=note))
    return themes


def make_library() -> list[ScoredPlace]:
    """Twelve eligible places across categories plus one rejected venue."""
    return [
        make_place("Pioneers Park Nature Center", category=PlaceCategory.NATURE, score=88,
                   warm_weather=True),
        make_place("Wilderness Park", category=PlaceCategory.NATURE, score=80, warm_weather=True),
        make_place("Holmes Lake", category=PlaceCategory.NATURE, score=76, warm_weather=True),
        make_place("Heritage Orchard", category=PlaceCategory.FARM, score=82, warm_weather=True),
        make_place("Roca Berry Farm", category=PlaceCategory.FARM, score=78, warm_weather=True),
        make_place("Central Library", category=PlaceCategory.LIBRARY, score=90, winter_spot=True),
        make_place("Gere Branch Library", category=PlaceCategory.LIBRARY, score=85, winter_spot=True),
        make_place("Lincoln Children's Museum", category=PlaceCategory.MUSEUM, score=84,
                   winter_spot=True),
        make_place("Morrill Hall", category=PlaceCategory.MUSEUM, score=79, winter_spot=True),
        make_place("Kidz Art Studio", category=PlaceCategory.INDOOR_PLAY, score=72, winter_spot=True),
        make_place("Sunken Gardens", category=PlaceCategory.GARDEN, score=81, warm_weather=True),
        make_place("Holiday Lights Festival", category=PlaceCategory.SEASONAL, score=70),
        make_place("Rusty's Taproom", category=PlaceCategory.SEASONAL, score=0,
                   status=ValidationStatus.REJECT),
    ]


@pytest.fixture
def library() -> list[ScoredPlace]:
    return make_library()


@pytest.fixture
def themes() -> list[WeekTheme]:
    return make_themes()
