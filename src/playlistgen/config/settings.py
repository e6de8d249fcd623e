"""Application settings loaded from environment variables and .env files."""

import os
from functools import lru_cache

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///playlistgen.db"


class DatabaseSettings(BaseModel):
    """Track store connection settings."""

    url: str = DEFAULT_DATABASE_URL
    echo: bool = False
    # Seconds a transaction waits for the single store connection.
    pool_timeout: int = 30


class NavidromeSettings(BaseModel):
    """Remote catalog (Navidrome / Subsonic API) settings."""

    url: str = ""
    username: str = ""
    password: str = ""
    timeout: float = 30.0

    @property
    def is_configured(self) -> bool:
        """True when a URL and both credentials are present."""
        return bool(self.url.strip() and self.username and self.password)


class SyncSettings(BaseModel):
    """Reconciliation options."""

    # Enqueue audio + embedding jobs for unchanged tracks too.
    force_processing_jobs: bool = False


class WorkerSettings(BaseModel):
    """Job processing options."""

    batch_size: int = Field(default=50, gt=0)
    worker_count: int = Field(default=4, gt=0)
    process_all: bool = False
    task_delay_seconds: float = Field(default=0.1, ge=0)


class ObservabilitySettings(BaseModel):
    """Logging options."""

    log_level: str = "INFO"
    json_format: bool = False

    @field_validator("log_level")
    @classmethod
    def normalize_level(cls, value: str) -> str:
        level = value.strip().upper() or "INFO"
        if level == "WARN":
            level = "WARNING"
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unsupported log level {value!r}")
        return level


class Settings(BaseSettings):
    """Top-level settings.

    Every field can be set from the environment with the ``PLAYLISTGEN_``
    prefix and ``__`` as the nested delimiter, e.g.
    ``PLAYLISTGEN_WORKERS__WORKER_COUNT=8``.
    """

    model_config = SettingsConfigDict(
        env_prefix="PLAYLISTGEN_",
        env_nested_delimiter="__",
        env_file=".env",
        extra="ignore",
    )

    app_name: str = "playlistgen"
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    navidrome: NavidromeSettings = Field(default_factory=NavidromeSettings)
    sync: SyncSettings = Field(default_factory=SyncSettings)
    workers: WorkerSettings = Field(default_factory=WorkerSettings)
    observability: ObservabilitySettings = Field(
        default_factory=ObservabilitySettings
    )

    # Hey future me - the bare NAVIDROME_* names are what most Navidrome
    # setups already export, so they fill in whatever the prefixed settings left empty.
    @model_validator(mode="after")
    def apply_navidrome_env_aliases(self) -> "Settings":
        nav = self.navidrome
        if not nav.url:
            nav.url = os.environ.get("NAVIDROME_URL", "")
        if not nav.username:
            nav.username = os.environ.get("NAVIDROME_USERNAME", "")
        if not nav.password:
            nav.password = os.environ.get("NAVIDROME_PASSWORD", "")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()
