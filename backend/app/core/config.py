"""Application configuration managed via environment variables."""
from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore", frozen=True)

    app_name: str = "BrainPal API"
    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"
    database_url: str = "postgresql+psycopg2://brainpal@localhost:5432/brainpal"

    jwt_secret: str = "change-me"
    jwt_algorithm: str = "HS256"
    admin_emails: str = ""

    openrouter_api_key: str | None = None
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    openrouter_referer: str = "https://brainpal.app"
    openrouter_title: str = "BrainPal"
    llm_timeout_seconds: float = 30.0
    llm_max_tokens: int = 1000
    llm_temperature: float = 0.7
    default_model_key: str = "openai4om"

    openai_api_key: str | None = None
    transcription_model: str = "whisper-1"

    stripe_webhook_secret: str | None = None
    webhook_tolerance_seconds: int = 300

    store_retry_attempts: int = 3
    store_retry_backoff_seconds: float = 0.05
    default_due_days: int = 3
    credits_per_generation: int = 0

    opik_enabled: bool = False
    opik_api_key: str | None = None
    opik_project: str = "brainpal"
    notifications_enabled: bool = False
    notifications_provider: str = "noop"

    @property
    def admin_email_list(self) -> List[str]:
        return [email.strip().lower() for email in self.admin_emails.split(",") if email.strip()]

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


@lru_cache
def get_settings() -> Settings:
    """Return a cached Settings instance."""
    return Settings()


settings = get_settings()
