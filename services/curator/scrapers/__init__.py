"""
Discovery sources for the curator.

All sources inherit from BaseSourceClient and provide:
- Retry with exponential backoff
- Non-retryable error detection
- Alerting on consecutive failures
"""

from .base import (
    BaseSourceClient,
    NonRetryableAPIError,
    SourceRegistry,
    retry_with_backoff,
)

__all__ = [
    "BaseSourceClient",
    "NonRetryableAPIError",
    "SourceRegistry",
    "retry_with_backoff",
]
