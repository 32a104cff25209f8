from __future__ import annotations

from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Client settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="NOTES_",
        extra="ignore",
        case_sensitive=False,
    )

    # Application
    debug: bool = False
    log_level: str = "INFO"

    # Remote store
    backend: Literal["http", "supabase"] = "http"
    api_base_url: str = "http://localhost:5000/api"
    request_timeout_seconds: float = 15.0

    # Supabase (only read when backend == "supabase")
    supabase_url: str | None = None
    supabase_anon_key: str | None = None

    # Sync
    poll_interval_seconds: float = 30.0
    refresh_after_mutation: bool = True  # Re-fetch the active view once a mutation lands

    # Vocabulary / presentation defaults
    default_category: str = "Uncategorized"
    root_label: str = "Root"


settings = Settings()
