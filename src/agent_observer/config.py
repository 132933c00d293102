"""
Configuration management for the status server.

Uses pydantic-settings for environment variable loading and validation.
"""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_lock_dir() -> Path:
    return Path.home() / ".agent-observer"


class Settings(BaseSettings):
    """Server settings loaded from AGENT_OBSERVER_* environment variables."""

    # Server
    host: str = "127.0.0.1"
    port: int = 0  # 0 = ephemeral, reported through the lock file
    log_level: str = "INFO"

    # Debounce / staleness (milliseconds)
    waiting_debounce_ms: int = 3_000
    cleanup_interval_ms: int = 30_000
    stale_timeout_ms: int = 24 * 60 * 60 * 1000  # fallback for agents without a pid

    # Liveness probe: treat permission-denied as a live process
    probe_access_denied_alive: bool = True

    # Observers
    observer_queue_size: int = 256

    # Lock file
    write_lock_file: bool = True
    lock_dir: Path = Field(default_factory=_default_lock_dir)

    model_config = SettingsConfigDict(
        env_prefix="AGENT_OBSERVER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def lock_file(self) -> Path:
        return self.lock_dir / "server.lock"
