"""Centralised configuration loaded from environment variables / .env file."""

from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # SerpAPI (web search)
    serpapi_api_key: str = ""

    # OpenAI (text completion)
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"

    # Database
    database_url: str = "sqlite:///./entity_verifier.db"

    # Logging
    log_level: str = "INFO"

    # Acceptance thresholds
    linkedin_min_confidence: int = 40
    domain_min_relevance: int = 5
    office_sufficiency_threshold: int = 3
    ai_markup_max_chars: int = 15000

    # Uniqueness bonus is granted even when there is nobody to compare against
    uniqueness_bonus_on_empty_population: bool = True

    # Batch ingestion
    ingestion_batch_size: int = 10

    # Network timeouts (seconds) and retry policy
    search_timeout_seconds: float = 20.0
    fetch_timeout_seconds: float = 30.0
    head_timeout_seconds: float = 10.0
    completion_timeout_seconds: float = 60.0
    fetch_max_attempts: int = 3
    fetch_backoff_seconds: float = 1.0

    @property
    def effective_database_url(self) -> str:
        """Return a SQLAlchemy-compatible URL.

        Hosted Postgres providers hand out ``postgres://`` but SQLAlchemy 2.0+
        requires ``postgresql://``.
        """
        url = self.database_url
        if url.startswith("postgres://"):
            url = url.replace("postgres://", "postgresql://", 1)
        return url


settings = Settings()
