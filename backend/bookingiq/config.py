"""
BookingIQ Configuration Management
"""
from pydantic_settings import BaseSettings
from pydantic import Field
from typing import Optional
from functools import lru_cache
from pathlib import Path

# Repo-relative SQLite path so scripts resolve the same database from any CWD.
_BASE_DIR = Path(__file__).resolve().parents[1]  # backend/
_DEFAULT_DB_PATH = _BASE_DIR / "bookingiq.db"
_DEFAULT_DB_URI = f"sqlite+aiosqlite:///{_DEFAULT_DB_PATH.as_posix()}"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_env: str = Field(default="development", alias="APP_ENV")
    app_name: str = Field(default="BookingIQ", alias="APP_NAME")
    app_version: str = Field(default="1.0.0", alias="APP_VERSION")

    # Server
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=8000, alias="PORT")
    frontend_url: str = Field(default="http://localhost:3000", alias="FRONTEND_URL")

    # Database (defaults to SQLite for local development)
    database_url: str = Field(default=_DEFAULT_DB_URI, alias="DATABASE_URL")
    database_echo: bool = Field(default=False, alias="DATABASE_ECHO")
    db_timeout_seconds: float = Field(default=30.0, alias="DB_TIMEOUT_SECONDS")
    db_retry_attempts: int = Field(default=2, alias="DB_RETRY_ATTEMPTS")
    db_retry_backoff_seconds: float = Field(default=0.5, alias="DB_RETRY_BACKOFF_SECONDS")

    # OpenAI-compatible endpoint (OpenAI itself, or Mistral via OPENAI_BASE_URL)
    openai_api_key: str = Field(default="", alias="OPENAI_API_KEY")
    openai_model: str = Field(default="gpt-4o-mini", alias="OPENAI_MODEL")
    openai_base_url: Optional[str] = Field(default=None, alias="OPENAI_BASE_URL")

    # Google Gemini API
    gemini_api_key: str = Field(default="", alias="GEMINI_API_KEY")
    gemini_model: str = Field(default="gemini-2.0-flash", alias="GEMINI_MODEL")

    # AWS Bedrock
    aws_access_key_id: str = Field(default="", alias="AWS_ACCESS_KEY_ID")
    aws_secret_access_key: str = Field(default="", alias="AWS_SECRET_ACCESS_KEY")
    aws_session_token: Optional[str] = Field(default=None, alias="AWS_SESSION_TOKEN")
    aws_region: str = Field(default="us-east-1", alias="AWS_REGION")
    bedrock_model_id: str = Field(default="anthropic.claude-3-sonnet-20240229-v1:0", alias="BEDROCK_MODEL_ID")

    # LLM Provider Selection (options: "openai", "gemini", "bedrock")
    llm_provider: str = Field(default="openai", alias="LLM_PROVIDER")
    llm_timeout_seconds: float = Field(default=30.0, alias="LLM_TIMEOUT_SECONDS")
    llm_retry_attempts: int = Field(default=2, alias="LLM_RETRY_ATTEMPTS")
    llm_retry_backoff_seconds: float = Field(default=0.5, alias="LLM_RETRY_BACKOFF_SECONDS")

    # Per-call generation parameters
    extraction_temperature: float = Field(default=0.0, alias="EXTRACTION_TEMPERATURE")
    extraction_max_tokens: int = Field(default=1500, alias="EXTRACTION_MAX_TOKENS")
    narrative_temperature: float = Field(default=0.2, alias="NARRATIVE_TEMPERATURE")
    narrative_max_tokens: int = Field(default=2000, alias="NARRATIVE_MAX_TOKENS")
    fact_check_temperature: float = Field(default=0.1, alias="FACT_CHECK_TEMPERATURE")
    fact_check_max_tokens: int = Field(default=300, alias="FACT_CHECK_MAX_TOKENS")

    # Query pipeline
    booking_row_cap: int = Field(default=1000, alias="BOOKING_ROW_CAP")
    conversation_window: int = Field(default=3, alias="CONVERSATION_WINDOW")
    request_timeout_seconds: float = Field(default=120.0, alias="REQUEST_TIMEOUT_SECONDS")

    # Fact validation
    fact_check_enabled: bool = Field(default=True, alias="FACT_CHECK_ENABLED")
    validator_tolerance: float = Field(default=0.05, alias="VALIDATOR_TOLERANCE")

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: str = Field(default="json", alias="LOG_FORMAT")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        populate_by_name = True

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
