from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central application configuration."""

    app_name: str = Field(default="Trash2Cash Assistant")
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")

    # MongoDB
    mongo_uri: str = Field(default="mongodb://localhost:27017")
    mongo_database: str = Field(default="trash2cash")

    # Gemini
    gemini_api_key: str = Field(default="")
    gemini_model: str = Field(
        default="gemini-1.5-flash",
        validation_alias=AliasChoices("GEMINI_MODEL", "GEMINI_CHAT_MODEL"),
    )
    gemini_timeout_seconds: float = Field(default=30.0)
    gemini_temperature: float = Field(default=0.2)
    gemini_max_output_tokens: int = Field(default=640)

    # Auth
    jwt_access_secret: str = Field(
        default="",
        validation_alias=AliasChoices("JWT_ACCESS_SECRET", "JWT_SECRET"),
    )
    jwt_algorithm: str = Field(default="HS256")

    # Knowledge base
    knowledge_dir: Path = Field(default=Path("knowledge"))
    knowledge_top_k: int = Field(default=5)

    # Chat limits
    rate_limit_max_requests: int = Field(default=12)
    rate_limit_window_seconds: float = Field(default=60.0)
    session_ttl_hours: float = Field(default=6.0)
    session_max_turns: int = Field(default=10)
    session_max_entries: int = Field(default=5000)
    max_history_messages: int = Field(default=20)

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
