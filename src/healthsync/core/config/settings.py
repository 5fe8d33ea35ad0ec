"""Application settings loaded from environment variables."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """healthsync server configuration."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    # Server
    # Loopback by default; there is no auth layer in front of the tools.
    hs_host: str = "127.0.0.1"
    hs_port: int = 8001
    hs_log_level: str = "info"
    hs_allow_insecure_bind: bool = False

    # Storage (change tokens + audit trail)
    db_path: str = "~/.healthsync/sync.db"

    # Record store
    seed_path: str = ""
    change_page_size: int = 1000
    change_token_ttl_days: int = 30

    # Change subscription
    watched_record_types: list[str] = ["exercise_session"]


def get_settings() -> Settings:
    """Create and return a Settings instance."""
    return Settings()
