"""Configuration module for playlistgen."""

from .settings import (
    DatabaseSettings,
    NavidromeSettings,
    ObservabilitySettings,
    Settings,
    SyncSettings,
    WorkerSettings,
    get_settings,
)

__all__ = [
    "Settings",
    "DatabaseSettings",
    "NavidromeSettings",
    "SyncSettings",
    "WorkerSettings",
    "ObservabilitySettings",
    "get_settings",
]
