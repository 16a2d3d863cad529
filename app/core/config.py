"""Configuration management for the Privacy Inventory Engine."""

from functools import lru_cache

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file (only if accessible)
try:
    load_dotenv()
except (PermissionError, OSError):
    # In sandboxed environments, .env might not be accessible
    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    # Supabase configuration (required)
    SUPABASE_URL: str = Field(..., description="Supabase project URL")
    SUPABASE_SERVICE_ROLE_KEY: str = Field(..., description="Supabase service role key")
    SUPABASE_TIMEOUT_S: int = Field(default=30, description="PostgREST request timeout")

    # Environment
    ENGINE_ENV: str = Field(default="dev", description="Environment: dev, test, staging, prod")

    # LLM providers (at least one key is needed for generation)
    ANTHROPIC_API_KEY: str | None = Field(default=None, description="Anthropic API key")
    OPENAI_API_KEY: str | None = Field(default=None, description="OpenAI API key")
    LLM_PROVIDER: str | None = Field(
        default=None, description="Force a provider: anthropic or openai"
    )
    ANTHROPIC_MODEL: str = Field(
        default="claude-sonnet-4-20250514", description="Default Anthropic model"
    )
    OPENAI_MODEL: str = Field(default="gpt-4o", description="Default OpenAI model")
    LLM_MAX_TOKENS: int = Field(default=8192, description="Max output tokens per call")

    # Structured generation retries
    LLM_MAX_RETRIES: int = Field(default=2, description="Retries after the first attempt")
    LLM_RETRY_BASE_DELAY_S: float = Field(
        default=1.0, description="Linear backoff unit; attempt n waits n x this"
    )

    # Matrix pipeline
    EXTRACTION_CONCURRENCY: int = Field(
        default=3, description="Sessions extracted in parallel per batch"
    )


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings instance

    Raises:
        ValidationError: If required environment variables are missing
    """
    return Settings()
