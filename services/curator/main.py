"""
Seasons curator FastAPI service: place library scoring and 52-week matching.

Entrypoint: uvicorn services.curator.main:app --host 0.0.0.0 --port 8000
"""

import logging
import uuid
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import JSONResponse

from services.curator.config import settings
from services.curator.generation.theme_templates import ThemeListError
from services.curator.generation.week_matcher import default_strategies
from services.curator.middleware.sentry import setup_sentry
from services.curator.routers import curation, health

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle."""
    setup_sentry()

    # One pooled client for the OpenAI tier
    http = httpx.AsyncClient()
    app.state.http = http
    app.state.settings = settings
    app.state.strategies = default_strategies(settings, http=http)
    logger.info(
        "Week matcher tiers: %s",
        [s.name for s in app.state.strategies],
    )

    yield

    await http.aclose()


app = FastAPI(
    title="Seasons Curator API",
    version=settings.app_version,
    debug=settings.debug,
    docs_url="/docs" if settings.environment == "development" else None,
    redoc_url=None,
    lifespan=lifespan,
)

app.include_router(health.router)
app.include_router(curation.router)


# Request ID injection
@app.middleware("http")
async def request_envelope_middleware(request: Request, call_next) -> Response:
    request_id = request.headers.get("x-request-id", str(uuid.uuid4()))
    request.state.request_id = request_id

    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# -- Exception Handlers --

def _error(request: Request, status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": {"code": code, "message": message},
            "requestId": getattr(request.state, "request_id", str(uuid.uuid4())),
        },
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if isinstance(exc.detail, dict):
        return _error(
            request,
            exc.status_code,
            exc.detail.get("code", "HTTP_ERROR"),
            exc.detail.get("message", ""),
        )
    if exc.status_code == 404:
        return _error(request, 404, "NOT_FOUND", "Resource not found.")
    return _error(request, exc.status_code, "HTTP_ERROR", str(exc.detail))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return _error(request, 422, "VALIDATION_ERROR", str(exc.errors()))


@app.exception_handler(ThemeListError)
async def theme_list_error_handler(request: Request, exc: ThemeListError) -> JSONResponse:
    return _error(request, 422, "INVALID_THEMES", str(exc))


@app.exception_handler(500)
async def internal_error_handler(request: Request, exc) -> JSONResponse:
    return _error(request, 500, "INTERNAL_ERROR", "An unexpected error occurred.")
