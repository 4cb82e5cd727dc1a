"""Configuration helpers for the objective news pipeline."""

import logging
from typing import Annotated, List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

DEFAULT_SOURCES = [
    "El País",
    "El Mundo",
    "ABC",
    "La Vanguardia",
    "El Confidencial",
]

DEFAULT_CATEGORIES = [
    "actualidad",
    "economía",
    "tecnología",
    "política",
    "deportes",
    "cultura",
    "sociedad",
    "internacional",
]

DEFAULT_CATEGORY = "actualidad"
DEFAULT_FALLBACK_SUMMARY = "Resumen objetivo no disponible en este momento."

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    openai_api_key: str | None = Field(None, alias="OPENAI_API_KEY")
    openai_base_url: str = Field(
        "https://api.openai.com/v1",
        alias="OPENAI_BASE_URL",
        description="Base URL of the chat-completions endpoint or a compatible proxy.",
    )
    model: str = Field("gpt-4o-mini", alias="OPENAI_MODEL")
    request_timeout: float = Field(
        30.0,
        alias="REQUEST_TIMEOUT",
        description="Hard timeout in seconds for a single completion call.",
    )
    max_retries: int = Field(
        3,
        alias="MAX_RETRIES",
        description="Retries after the first attempt on 429, 5xx, or timeout.",
    )
    retry_base_delay: float = Field(
        1.0,
        alias="RETRY_BASE_DELAY",
        description="Backoff base in seconds; attempt n waits base * 2**n.",
    )
    objectivity_attempts: int = Field(
        3,
        alias="OBJECTIVITY_ATTEMPTS",
        description="Attempts per story before the fallback summary is used.",
    )
    sources: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: list(DEFAULT_SOURCES), alias="NEWS_SOURCES"
    )
    categories: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: list(DEFAULT_CATEGORIES), alias="NEWS_CATEGORIES"
    )
    default_category: str = Field(DEFAULT_CATEGORY, alias="DEFAULT_CATEGORY")
    fallback_summary: str = Field(DEFAULT_FALLBACK_SUMMARY, alias="FALLBACK_SUMMARY")
    log_level: str = Field("INFO", alias="LOG_LEVEL")

    @field_validator("sources", "categories", mode="before")
    @classmethod
    def _split_csv(cls, value):
        # Env values arrive as "El País, ABC"; keep lists untouched.
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        return value


def get_settings() -> Settings:
    """Return a fresh settings instance (reads env on every call)."""
    return Settings()


def configure_logging(level: str | int = "INFO") -> None:
    """Install a root handler once; later calls only adjust the level."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=level, format=LOG_FORMAT)
    root.setLevel(level)
