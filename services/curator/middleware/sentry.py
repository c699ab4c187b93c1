"""
Sentry instrumentation for the curator service.
Server-side only. Strips credentials from breadcrumbs and request data.
"""

from typing import Any

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration

from services.curator.config import settings

# Provider keys travel as headers (Brave, xAI, Gemini) as well as auth/cookies
SENSITIVE_HEADERS = {
    "authorization", "cookie", "set-cookie",
    "x-api-key", "x-goog-api-key", "x-subscription-token",
}
SENSITIVE_QUERY_PARAMS = {"key", "api_key"}


def _filter_headers(headers: Any) -> None:
    if isinstance(headers, dict):
        for key in list(headers.keys()):
            if key.lower() in SENSITIVE_HEADERS:
                headers[key] = "[FILTERED]"


def _filter_url(url: Any) -> Any:
    """Mask ?key=... style credentials (Google Places) in a breadcrumb URL."""
    if not isinstance(url, str) or "?" not in url:
        return url
    base, _, query = url.partition("?")
    parts = []
    for pair in query.split("&"):
        name, sep, _value = pair.partition("=")
        parts.append(f"{name}{sep}[FILTERED]" if sep and name.lower() in SENSITIVE_QUERY_PARAMS else pair)
    return f"{base}?{'&'.join(parts)}"


def _strip_sensitive_data(event: dict[str, Any], hint: dict[str, Any]) -> dict[str, Any] | None:
    """before_send hook: strip API keys, Authorization headers and cookies."""
    if "breadcrumbs" in event:
        for breadcrumb in event["breadcrumbs"].get("values", []):
            data = breadcrumb.get("data", {})
            if isinstance(data, dict):
                _filter_headers(data.get("headers", {}))
                if "url" in data:
                    data["url"] = _filter_url(data["url"])
    request = event.get("request", {})
    if isinstance(request, dict):
        _filter_headers(request.get("headers", {}))
        if isinstance(request.get("query_string"), str):
            request["query_string"] = _filter_url("?" + request["query_string"])[1:]
    return event


def setup_sentry() -> None:
    if not settings.sentry_dsn:
        return

    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.environment,
        release=f"{settings.app_name}@{settings.app_version}",
        traces_sample_rate=settings.sentry_traces_sample_rate,
        before_send=_strip_sensitive_data,
        integrations=[
            StarletteIntegration(transaction_style="endpoint"),
            FastApiIntegration(transaction_style="endpoint"),
        ],
        send_default_pii=False,
    )
