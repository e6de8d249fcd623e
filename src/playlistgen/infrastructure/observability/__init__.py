"""Observability infrastructure for structured logging."""

from playlistgen.infrastructure.observability.logger_template import log_operation
from playlistgen.infrastructure.observability.logging import (
    configure_logging,
    get_correlation_id,
    set_correlation_id,
)

__all__ = [
    "configure_logging",
    "get_correlation_id",
    "log_operation",
    "set_correlation_id",
]
