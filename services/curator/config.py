"""
Application configuration via pydantic-settings.
All config read from environment variables with sensible defaults for local dev.
"""

from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    # App
    app_name: str = "seasons-curator"
    app_version: str = "0.1.0"
    environment: str = Field(default="development", pattern=r"^(development|staging|production)$")
    debug: bool = False

    # Sentry
    sentry_dsn: str = ""
    sentry_traces_sample_rate: float = Field(default=0.1, ge=0.0, le=1.0)

    # AI providers
    anthropic_api_key: str = ""
    openai_api_key: str = ""
    xai_api_key: str = ""
    gemini_api_key: str = ""

    # Search / places providers
    brave_api_key: str = ""
    google_places_api_key: str = ""

    # Week matching
    matcher_model: str = "claude-sonnet-4-20250514"
    matcher_openai_model: str = "gpt-4o"
    matcher_llm_timeout_s: float = Field(default=25.0, gt=0)
    matcher_max_attempts: int = Field(default=2, ge=1, le=5)
    max_uses_per_place: int = Field(default=2, ge=1, le=2)
    default_template: str = "usa"

    # AI curation (accept/reject pass over raw discovery)
    curation_enabled: bool = True
    curation_model: str = "claude-sonnet-4-20250514"
    curation_thorough_model: str = "claude-opus-4-20250514"
    curation_openai_model: str = "gpt-4o"
    curation_llm_timeout_s: float = Field(default=120.0, gt=0)
    curation_max_attempts: int = Field(default=1, ge=1, le=5)

    # Discovery
    discovery_source_timeout_s: float = 20.0
    grok_model: str = "grok-3-fast"
    grok_timeout_s: float = 45.0
    gemini_model: str = "gemini-2.5-flash"

    # Enrichment (Google Places)
    enrichment_batch_size: int = Field(default=5, ge=1)
    enrichment_batch_delay_s: float = Field(default=0.2, ge=0.0)
    enrichment_request_timeout_s: float = 10.0

    model_config = {"env_prefix": "", "env_file": ".env", "extra": "ignore"}


settings = Settings()
