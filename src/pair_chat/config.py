"""
Application configuration.

Settings are read from environment variables prefixed with ``PAIR_CHAT_``
and from an optional ``.env`` file.
"""

from functools import lru_cache
from typing import List, Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_prefix="PAIR_CHAT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    env: Literal["development", "staging", "production"] = "development"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"

    app_title: str = "Pair Chat API"
    api_prefix: str = ""
    cors_origins: List[str] = ["http://localhost:5173"]

    # Set by the credential-verification layer in front of this service
    identity_header: str = "X-User-Id"

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, value):
        return value.upper() if isinstance(value, str) else value

    @property
    def expose_errors(self) -> bool:
        return self.env != "production"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
