"""
Curation router: library scoring and 52-week matching over HTTP.

POST /curation/library
- Body: candidate batches in source-priority order (+ optional enrichment)
- Dedups, tags and scores; returns the library and a status/category summary

POST /curation/curate
- Body: raw discovery candidates for a city
- Runs the AI accept/reject cascade (thorough=true puts the slower Claude
  model first) and returns the accepted candidates plus rejection reasons

POST /curation/match-weeks
- Body: a scored place library + a template name or an explicit theme list
- Runs the strategy cascade and anti-repeat enforcement
- A malformed theme list is a 422 (ThemeListError); matcher failures never
  surface as errors, they show up as generationMethod / degradedWeeks
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from services.curator.generation.anti_repeat import DEFAULT_MAX_USES
from services.curator.generation.theme_templates import get_template, themes_from_dicts
from services.curator.generation.week_matcher import default_strategies, match_weeks
from services.curator.pipeline.ai_curation import curate_candidates, default_curation_strategies
from services.curator.pipeline.curation import curate_library, make_place_id, summarize_library
from services.curator.pipeline.enrichment import index_enrichments
from services.curator.pipeline.types import (
    CandidateRecord,
    DiscoverySource,
    Enrichment,
    PriceTier,
    ScoredPlace,
    ValidationStatus,
    coerce_category,
    coerce_price_tier,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/curation", tags=["curation"])


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------

class CandidateIn(BaseModel):
    name: str = Field(..., min_length=1)
    sourceTag: DiscoverySource = DiscoverySource.MANUAL
    snippet: str = ""
    category: str = "nature"
    sourceUrl: str = ""
    priceTier: Optional[str] = None

    def to_record(self) -> CandidateRecord:
        return CandidateRecord(
            name=self.name,
            source=self.sourceTag,
            snippet=self.snippet,
            category=coerce_category(self.category),
            source_url=self.sourceUrl,
            price_tier=coerce_price_tier(self.priceTier, default=None),
        )


class EnrichmentIn(BaseModel):
    name: str = Field(..., min_length=1, description="Place name the enrichment belongs to")
    rating: Optional[float] = Field(default=None, ge=0, le=5)
    reviewCount: Optional[int] = Field(default=None, ge=0)
    placeTypes: list[str] = Field(default_factory=list)
    priceTier: Optional[PriceTier] = None
    isChain: Optional[bool] = None
    address: str = ""
    website: str = ""

    def to_enrichment(self) -> Enrichment:
        return Enrichment(
            rating=self.rating,
            review_count=self.reviewCount,
            place_types=list(self.placeTypes),
            price_tier=self.priceTier,
            is_chain=self.isChain,
            address=self.address,
            website=self.website,
        )


class LibraryRequest(BaseModel):
    city: str = Field(..., min_length=1)
    batches: list[list[CandidateIn]] = Field(
        ..., description="Candidate batches, most trusted source first",
    )
    enrichments: list[EnrichmentIn] = Field(default_factory=list)


class CurateRequest(BaseModel):
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    candidates: list[CandidateIn]
    thorough: bool = False


class PlaceIn(BaseModel):
    name: str = Field(..., min_length=1)
    id: Optional[str] = None
    city: str = ""
    category: str = "nature"
    priceTier: Optional[str] = None
    description: str = ""
    warmWeather: bool = False
    winterSpot: bool = False
    score: int = Field(default=0, ge=0, le=100)
    status: ValidationStatus = ValidationStatus.REVIEW
    weekSuggestions: list[int] = Field(default_factory=list)

    def to_place(self, city: str) -> ScoredPlace:
        place_city = self.city or city
        return ScoredPlace(
            id=self.id or make_place_id(self.name, place_city),
            name=self.name,
            city=place_city,
            category=coerce_category(self.category),
            price_tier=coerce_price_tier(self.priceTier),
            description=self.description,
            warm_weather=self.warmWeather,
            winter_spot=self.winterSpot,
            score=self.score,
            status=self.status,
            week_suggestions=list(self.weekSuggestions),
        )


class ThemeIn(BaseModel):
    week: int
    title: str = ""
    referenceNote: str = ""


class MatchWeeksRequest(BaseModel):
    city: str = Field(..., min_length=1)
    places: list[PlaceIn]
    template: Optional[str] = Field(default=None, description="Preset name; ignored when themes is set")
    themes: Optional[list[ThemeIn]] = None
    maxUses: Optional[int] = Field(default=None, ge=1, le=DEFAULT_MAX_USES)


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post("/library")
async def build_library(body: LibraryRequest, request: Request) -> dict:
    batches = [[c.to_record() for c in batch] for batch in body.batches]
    enrichments = index_enrichments((e.name, e.to_enrichment()) for e in body.enrichments)

    places = curate_library(batches, body.city, enrichments)
    return {
        "success": True,
        "data": {
            "places": [p.to_dict() for p in places],
            "summary": summarize_library(places),
        },
        "requestId": request.state.request_id,
    }


@router.post("/match-weeks")
async def match_weeks_endpoint(body: MatchWeeksRequest, request: Request) -> dict:
    settings = request.app.state.settings

    if body.themes is not None:
        # ThemeListError propagates to the app-level 422 handler
        themes = themes_from_dicts(t.model_dump() for t in body.themes)
    else:
        template = body.template or settings.default_template
        try:
            themes = get_template(template)
        except KeyError:
            raise HTTPException(
                status_code=422,
                detail={
                    "code": "UNKNOWN_TEMPLATE",
                    "message": f"Unknown theme template {template!r}.",
                },
            )

    places = [p.to_place(body.city) for p in body.places]
    strategies = getattr(request.app.state, "strategies", None)
    if strategies is None:
        strategies = default_strategies(settings)

    result = await match_weeks(
        themes,
        places,
        body.city,
        strategies,
        max_uses=body.maxUses or settings.max_uses_per_place,
    )
    logger.info(
        "match-weeks %s: method=%s degraded=%s",
        body.city, result.generation_method, result.degraded_weeks,
    )
    return {
        "success": True,
        "data": result.to_dict(),
        "requestId": request.state.request_id,
    }


@router.post("/curate")
async def curate_endpoint(body: CurateRequest, request: Request) -> dict:
    settings = request.app.state.settings
    strategies = getattr(request.app.state, "curation_strategies", None)
    if strategies is None:
        strategies = default_curation_strategies(
            settings, thorough=body.thorough, http=getattr(request.app.state, "http", None),
        )

    result = await curate_candidates(
        [c.to_record() for c in body.candidates],
        body.city,
        body.state,
        strategies,
    )
    return {
        "success": True,
        "data": result.to_dict(),
        "requestId": request.state.request_id,
    }
