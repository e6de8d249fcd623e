"""External service integrations."""

from playlistgen.infrastructure.integrations.navidrome_client import NavidromeClient

__all__ = ["NavidromeClient"]
