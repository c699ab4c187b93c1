"""Health check endpoint."""

from fastapi import APIRouter, Request

from services.curator.generation.theme_templates import TEMPLATES

router = APIRouter()


@router.get("/health")
async def health_check(request: Request) -> dict:
    settings = request.app.state.settings
    return {
        "success": True,
        "data": {
            "status": "healthy",
            "version": settings.app_version,
            "templates": sorted(TEMPLATES),
            "matchers": {
                "anthropic": bool(settings.anthropic_api_key),
                "openai": bool(settings.openai_api_key),
                "keyword_fallback": True,
            },
            "curation": {
                "anthropic": bool(settings.anthropic_api_key),
                "openai": bool(settings.openai_api_key),
                "pass_through": True,
            },
        },
        "requestId": request.state.request_id,
    }
