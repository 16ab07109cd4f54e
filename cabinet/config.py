"""Cabinet settings, read from the environment and an optional .env file."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Runtime configuration. Field names map to upper-case env variables."""

    # Application
    app_name: str = "Cyber Cabinet"
    app_version: str = "0.1.0"
    app_env: str = Field(default="development")
    log_level: str = Field(default="INFO")

    # Database (Turso)
    turso_database_url: str | None = Field(default=None)
    turso_auth_token: str | None = Field(default=None)

    # Anthropic (generation for every cabinet role)
    anthropic_api_key: str | None = Field(default=None)
    anthropic_model: str = Field(default="claude-sonnet-4-5")
    anthropic_timeout_seconds: float = Field(default=60.0, gt=0)

    # Meetings
    default_meeting_budget: int = Field(
        default=12000,
        ge=1,
        description="Token ceiling used when a meeting request omits one",
    )
    speech_char_limit: int = Field(
        default=600,
        ge=50,
        description="Maximum characters of a role's displayed statement",
    )
    shuffle_seed: int | None = Field(
        default=None,
        description="Seed for speaking-order shuffles; unset means nondeterministic",
    )

    # Memory
    context_min_relevance: float = Field(
        default=0.6,
        ge=0.0,
        le=1.0,
        description="Relevance cutoff for the opening-stage context package",
    )
    context_package_limit: int = Field(default=5, ge=1)

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> Settings:
    """Settings are read once per process."""
    return Settings()


settings = get_settings()
