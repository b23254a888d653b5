"""Application configuration from environment variables."""

import os
from functools import lru_cache
from os.path import abspath, dirname, join
from typing import Literal

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

# Root is one level up from workhub/
base_dir = dirname(dirname(abspath(__file__)))
env_file_path = join(base_dir, ".env")

if os.path.exists(env_file_path):
    load_dotenv(env_file_path)


class Settings(BaseSettings):
    """Hub settings loaded from environment."""

    model_config = SettingsConfigDict(
        env_prefix="WORKHUB_",
        env_file=env_file_path,
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # Server
    app_name: str = "Workhub"
    debug: bool = False
    environment: str = "development"
    cors_origins: list[str] = ["*"]

    # Database
    database_url: str = "sqlite+aiosqlite:///./workhub.db"

    # Coordination
    strict_registration: bool = False  # reject machine ids never seen before
    rpc_timeout_seconds: float = 600.0
    orphaned_job_policy: Literal["leave", "fail"] = "leave"
    stats_window_hours: int = 24

    # Task executor artifact pushed to workers on version mismatch
    executor_path: str = join(base_dir, "dist", "executor.py")

    # Logging sinks (optional)
    syslog_host: str | None = None
    syslog_port: int = 514

    # OpenTelemetry (optional)
    otel_endpoint: str | None = None
    otel_service_name: str = "workhub"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    s = Settings()
    safe_url = s.database_url.split("@")[-1] if "@" in s.database_url else s.database_url
    if s.debug:
        print(f"DEBUG: database_url (masked host)={safe_url}")
    return s
