"""SCOREVIEW — Central Configuration via Pydantic Settings."""

import os
from typing import List, Literal
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables / .env file."""

    # ── Database ──
    database_url: str = ""

    # ── Aggregation ──
    recompute_policy: Literal["full", "incremental"] = "full"

    # ── Consistency trigger ──
    email_pattern: str = r"^[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$"

    # ── Indexes built at startup ──
    default_indexes: List[str] = ["name"]

    # ── App ──
    log_level: str = "INFO"
    scheduler_enabled: bool = True
    reconcile_minutes: int = 60  # Drift check interval

    @property
    def effective_database_url(self) -> str:
        """Return the configured URL if set, otherwise fall back to SQLite."""
        if self.database_url:
            return self.database_url
        if os.environ.get("VERCEL"):
            return "sqlite:////tmp/scoreview.db"
        return "sqlite:///./scoreview.db"

    model_config = SettingsConfigDict(
        env_prefix="SCOREVIEW_", env_file=".env", env_file_encoding="utf-8"
    )


settings = Settings()
