"""playlistgen - Navidrome catalog sync and per-track job processing."""

__version__ = "0.1.0"
