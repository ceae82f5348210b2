"""Configuration settings for Herdbook."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class FlatSettings(BaseSettings):
    """Flat settings loaded from environment variables or a .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Remote document store
    store_url: str = Field(
        default="http://localhost:8080", validation_alias="HERDBOOK_STORE_URL"
    )
    store_feed_url: str | None = Field(
        default=None,
        validation_alias="HERDBOOK_STORE_FEED_URL",
        description="WebSocket base URL for change feeds; derived from store_url if unset",
    )
    store_token: SecretStr = Field(..., validation_alias="HERDBOOK_STORE_TOKEN")
    store_timeout: float = Field(default=10.0, validation_alias="HERDBOOK_STORE_TIMEOUT")
    store_max_retries: int = Field(
        default=0, validation_alias="HERDBOOK_STORE_MAX_RETRIES"
    )

    # Deployment
    profile: Literal["livestock", "fleet"] = Field(
        default="livestock", validation_alias="HERDBOOK_PROFILE"
    )
    cache_dir: Path = Field(
        default=Path(".herdbook-cache"), validation_alias="HERDBOOK_CACHE_DIR"
    )
    demo_seed_on_empty: bool = Field(
        default=False, validation_alias="HERDBOOK_DEMO_SEED_ON_EMPTY"
    )

    # Advisory text service
    anthropic_api_key: SecretStr = Field(..., validation_alias="ANTHROPIC_API_KEY")
    claude_model: str = Field(
        default="claude-haiku-4-5", validation_alias="CLAUDE_MODEL"
    )
    llm_max_tokens: int = Field(default=1024, validation_alias="LLM_MAX_TOKENS")
    llm_temperature: float = Field(default=0.2, validation_alias="LLM_TEMPERATURE")

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", validation_alias="LOG_LEVEL"
    )
    log_format: Literal["json", "console"] = Field(
        default="console", validation_alias="LOG_FORMAT"
    )

    @property
    def feed_url(self) -> str:
        """WebSocket base URL for collection change feeds."""
        if self.store_feed_url:
            return self.store_feed_url.rstrip("/")
        base = self.store_url.rstrip("/")
        if base.startswith("https://"):
            return "wss://" + base[len("https://"):]
        if base.startswith("http://"):
            return "ws://" + base[len("http://"):]
        return base


@lru_cache
def get_settings() -> FlatSettings:
    """Get cached settings instance."""
    return FlatSettings()
