from functools import lru_cache
from typing import Literal

from pydantic import AnyHttpUrl, BaseModel, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Supported AI providers
AIProviderType = Literal[
    "ollama",
    "openai",
    "groq",
    "together",
    "deepseek",
    "qwen",
    "kimi",
    "moonshot",
]

# Supported STT providers
STTProviderType = Literal["openai", "groq"]

LanguageCode = Literal["pt-BR", "en-US"]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "chatledger"
    database_url: str = "postgresql+asyncpg://postgres:postgres@db:5432/chatledger"
    auto_run_migrations: bool = True
    db_timeout: float = 10.0

    # WhatsApp Cloud API
    whatsapp_verify_token: str = "change-me"
    whatsapp_access_token: str | None = None
    whatsapp_phone_number_id: str | None = None
    whatsapp_api_version: str = "v18.0"
    whatsapp_api_base_url: AnyHttpUrl | str = "https://graph.facebook.com"
    whatsapp_timeout: float = 15.0

    # Primary AI provider
    ai_enabled: bool = True
    ai_provider: AIProviderType = "ollama"
    ai_api_key: str | None = None
    ai_base_url: str | None = None
    ai_model: str | None = None

    # Fallback AI provider
    ai_fallback_provider: AIProviderType | None = None
    ai_fallback_api_key: str | None = None
    ai_fallback_base_url: str | None = None
    ai_fallback_model: str | None = None

    ai_timeout: float = 20.0
    ai_debug_logging: bool = False

    # Speech-to-text
    stt_provider: STTProviderType = "openai"
    stt_api_key: str | None = None
    stt_base_url: str | None = None
    stt_model: str | None = None
    stt_language: str = "pt"
    stt_timeout: float = 60.0

    # Conversation state
    session_ttl_seconds: int = 1800
    pending_ttl_seconds: int = 300
    session_message_limit: int = 20
    session_sweep_interval_seconds: float = 300.0
    extraction_min_confidence: float = 0.6
    default_language: LanguageCode = "pt-BR"

    # Plan limits
    shared_monthly_cap_pro: int = 20

    @field_validator("ai_provider", mode="before")
    @classmethod
    def normalize_provider(cls, v: str | None) -> str:
        """Normalize provider names to lowercase, defaulting empty to 'ollama'."""
        if v is None or v == "":
            return "ollama"
        return v.lower()

    @field_validator("ai_fallback_provider", mode="before")
    @classmethod
    def normalize_fallback_provider(cls, v: str | None) -> str | None:
        """Normalize fallback provider names to lowercase, treating empty strings as None."""
        if v is None or v == "":
            return None
        return v.lower()

    @field_validator("stt_provider", mode="before")
    @classmethod
    def normalize_stt_provider(cls, v: str | None) -> str:
        if v is None or v == "":
            return "openai"
        return v.lower()

    def get_sync_database_url(self) -> str:
        """Return a synchronous driver URL for Alembic/CLI usage."""

        if "+asyncpg" in self.database_url:
            return self.database_url.replace("+asyncpg", "+psycopg")
        return self.database_url

    def get_whatsapp_api_root(self) -> str:
        return f"{str(self.whatsapp_api_base_url).rstrip('/')}/{self.whatsapp_api_version}"


class AppConfig(BaseModel):
    version: str = "0.1.0"
    description: str = (
        "Conversational transaction intake over WhatsApp: chat or voice in, confirmed ledger entries out."
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
