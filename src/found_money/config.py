"""
Configuration Settings

Centralized configuration using pydantic-settings and environment variables
(prefix FOUND_MONEY_, optional .env file).
"""
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="FOUND_MONEY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Storage
    database_path: Path = Path("found_money.db")
    documents_dir: Path = Path("claim_documents")

    # Bearer tokens
    jwt_secret: str = "found-money-dev-secret-change-me"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24
    oauth_state_expire_minutes: int = 10

    # Reasoning service
    openai_api_key: Optional[str] = None
    llm_primary_model: str = "gpt-4o-mini"
    llm_fallback_model: str = "gpt-4o"
    llm_temperature: float = 0.3
    score_cache_enabled: bool = True

    # Gmail OAuth
    gmail_client_id: Optional[str] = None
    gmail_client_secret: Optional[str] = None
    gmail_redirect_uri: Optional[str] = None
    app_deep_link: str = "foundmoney://gmail-connected?success=true"
    app_web_url: str = "http://localhost:3000"

    # Subscription webhook
    webhook_secret: Optional[str] = None

    # Rate limiting
    rate_limit_requests: int = 100
    rate_limit_window_seconds: int = 60
    redis_url: Optional[str] = None

    # Sources
    catalog_path: Optional[Path] = None
    property_lookup_url: Optional[str] = None

    # Outbound requests
    request_timeout_seconds: float = 30.0
    retry_backoff_seconds: float = 1.0

    # Request validation
    max_body_kb: int = 1000

    log_level: str = "INFO"

    def missing_configuration(self) -> list[str]:
        """Names of settings the full feature set needs but are unset."""
        required = {
            "openai_api_key": self.openai_api_key,
            "gmail_client_id": self.gmail_client_id,
            "gmail_client_secret": self.gmail_client_secret,
            "gmail_redirect_uri": self.gmail_redirect_uri,
            "webhook_secret": self.webhook_secret,
        }
        return [name for name, value in required.items() if not value]


@lru_cache
def get_settings() -> Settings:
    """Process-wide settings instance."""
    return Settings()
