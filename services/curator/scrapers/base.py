"""
Base discovery-source framework with retry, backoff and failure alerting.
All discovery sources inherit from BaseSourceClient.

A source's only job is to turn (city, state, category) into a list of
CandidateRecord. Failures propagate to the caller; pipeline/discovery.py
isolates them per source.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from functools import wraps
from typing import Any, Awaitable, Callable, Optional, TypeVar

import httpx
import sentry_sdk

from services.curator.pipeline.types import CandidateRecord, DiscoverySource, PlaceCategory

logger = logging.getLogger(__name__)

T = TypeVar('T')

# Non-retryable error patterns: retrying will not help
NON_RETRYABLE_PATTERNS = frozenset({
    "credit balance is too low",
    "invalid x-api-key",
    "invalid api key",
    "incorrect api key",
    "account has been disabled",
    "permission denied",
})


class NonRetryableAPIError(Exception):
    """Raised when the API returns an error that won't resolve with retries."""
    pass


def is_non_retryable(status_code: int, body: str) -> bool:
    if status_code in (400, 401, 403, 404):
        return True
    body_lower = (body or "").lower()
    return any(p in body_lower for p in NON_RETRYABLE_PATTERNS)


def raise_for_api_status(resp: httpx.Response, provider: str) -> None:
    """
    Raise for a non-2xx response.

    NonRetryableAPIError for auth/quota/bad-request failures, otherwise the
    usual httpx.HTTPStatusError (429 and 5xx are worth retrying).
    """
    if resp.is_success:
        return
    if is_non_retryable(resp.status_code, resp.text):
        msg = f"{provider} non-retryable error {resp.status_code}: {resp.text[:200]}"
        logger.error(msg)
        raise NonRetryableAPIError(msg)
    resp.raise_for_status()


@dataclass
class SourceRegistry:
    """Source registration metadata."""
    name: DiscoverySource
    base_url: str
    # Seconds to wait between consecutive requests from one discover() call
    min_interval_s: float = 0.0
    # City-wide sources run once per city, not once per category
    city_wide: bool = False


def describe_error(exc: BaseException) -> str:
    """
    Log-safe summary of a provider failure: exception class plus HTTP status.

    Never includes the request URL; Gemini and Google Places carry the API
    key as a query parameter.
    """
    if isinstance(exc, httpx.HTTPStatusError):
        return f"{type(exc).__name__} (status {exc.response.status_code})"
    if isinstance(exc, NonRetryableAPIError):
        return str(exc)
    return type(exc).__name__


def retry_with_backoff(max_attempts: int = 3, base_delay: float = 1.0):
    """
    Retry decorator with exponential backoff for coroutine functions.

    NonRetryableAPIError is re-raised immediately.

    Args:
        max_attempts: Maximum number of attempts (default 3)
        base_delay: Base delay in seconds, doubles each retry (default 1.0)
    """
    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            last_exception: Optional[Exception] = None
            for attempt in range(max_attempts):
                try:
                    return await func(*args, **kwargs)
                except NonRetryableAPIError:
                    raise
                except Exception as e:
                    last_exception = e
                    if attempt < max_attempts - 1:
                        delay = base_delay * (2 ** attempt)
                        logger.warning(
                            "Attempt %d/%d failed: %s. Retrying in %.1fs...",
                            attempt + 1, max_attempts, describe_error(e), delay,
                        )
                        await asyncio.sleep(delay)
                    else:
                        logger.error("All %d attempts failed: %s", max_attempts, describe_error(e))
            raise last_exception

        return wrapper

    return decorator


class BaseSourceClient(ABC):
    """
    Abstract base class for discovery sources.

    Provides:
    - Retry with exponential backoff
    - Shared httpx client (or a private one per call)
    - Alerting on consecutive failures
    - Source registry pattern
    """

    SOURCE_REGISTRY: Optional[SourceRegistry] = None

    USER_AGENT = "SeasonsCurator/0.1 (family activity research)"

    def __init__(
        self,
        api_key: str,
        *,
        client: Optional[httpx.AsyncClient] = None,
        timeout_s: float = 20.0,
        max_attempts: int = 2,
        retry_base_delay: float = 1.0,
    ):
        if self.SOURCE_REGISTRY is None:
            raise ValueError(f"{self.__class__.__name__} must define SOURCE_REGISTRY")
        self.api_key = api_key
        self.client = client
        self.timeout_s = timeout_s
        self.max_attempts = max_attempts
        self.retry_base_delay = retry_base_delay
        self.consecutive_failures = 0
        self._alert_threshold = 3

    @property
    def source(self) -> DiscoverySource:
        return self.SOURCE_REGISTRY.name

    @property
    def city_wide(self) -> bool:
        return self.SOURCE_REGISTRY.city_wide

    @abstractmethod
    async def fetch(
        self,
        http: httpx.AsyncClient,
        city: str,
        state: str,
        category: Optional[PlaceCategory],
    ) -> Any:
        """Fetch the raw payload (JSON dict, text, list of results)."""

    @abstractmethod
    def parse(self, raw: Any, category: Optional[PlaceCategory]) -> list[CandidateRecord]:
        """Turn the raw payload into candidate records. Must not raise."""

    async def _fetch_with_client(self, city: str, state: str, category: Optional[PlaceCategory]) -> Any:
        if self.client is not None:
            return await self.fetch(self.client, city, state, category)
        async with httpx.AsyncClient(timeout=self.timeout_s) as http:
            return await self.fetch(http, city, state, category)

    async def discover(
        self,
        city: str,
        state: str,
        category: Optional[PlaceCategory] = None,
    ) -> list[CandidateRecord]:
        """Execute fetch -> parse with retries. Raises on final failure."""
        fetch = retry_with_backoff(
            max_attempts=self.max_attempts, base_delay=self.retry_base_delay,
        )(self._fetch_with_client)

        try:
            raw = await fetch(city, state, category)
        except Exception:
            self.consecutive_failures += 1
            self._check_alert()
            raise

        self.consecutive_failures = 0
        records = self.parse(raw, category)
        logger.info(
            "%s found %d candidates for %s, %s (%s)",
            self.source.value, len(records), city, state,
            category.value if category else "all",
        )
        return records

    def _check_alert(self) -> None:
        """Check if we should alert on consecutive failures."""
        if self.consecutive_failures >= self._alert_threshold:
            error_msg = (
                f"ALERT: {self.source.value} has failed "
                f"{self.consecutive_failures} consecutive times"
            )
            logger.warning(error_msg)
            sentry_sdk.capture_message(error_msg, level="warning")

    def get_headers(self) -> dict[str, str]:
        return {"User-Agent": self.USER_AGENT}
