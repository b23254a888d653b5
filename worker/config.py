"""Configuration model for the standalone worker service."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class WorkerSettings(BaseSettings):
    """Environment-driven settings for worker runtime."""

    model_config = SettingsConfigDict(
        env_prefix="WORKER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    machine_id: str = "worker-local-1"
    secret_key: str = "change-me"
    device_id: str | None = None  # display name, defaults to machine_id
    hub_url: str = "ws://localhost:4000/ws"
    heartbeat_interval_seconds: float = 30.0
    reconnect_delay_seconds: float = 5.0
    shutdown_grace_seconds: float = 5.0

    # Executor code pushed by the hub
    logic_dir: str = "/data/logic"

    # Completion reports kept while the hub is unreachable
    offline_dir: str = "/data/offline"
    offline_max_files: int = 500
    offline_max_age_seconds: int = 86400

    @property
    def display_name(self) -> str:
        return self.device_id or self.machine_id


@lru_cache
def get_worker_settings() -> WorkerSettings:
    """Get cached worker settings."""

    return WorkerSettings()
