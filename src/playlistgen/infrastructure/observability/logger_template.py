"""Shared logger helpers so sync and worker logs look the same.

USAGE:
    from playlistgen.infrastructure.observability.logger_template import log_operation

    async with log_operation(logger, "navidrome_sync", db_path="/data/tracks.db"):
        await use_case.execute()
"""

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from playlistgen.domain.exceptions import BatchCancelledError


# Yo, this times an operation and logs {operation}.started / .completed / .failed with the
# same context fields on every line. Cancellation is logged as .cancelled at INFO - it is
# not an error and must never page anyone. Exceptions are always re-raised.
@asynccontextmanager
async def log_operation(
    logger: logging.Logger,
    operation: str,
    **context: Any,
) -> AsyncIterator[dict[str, Any]]:
    """Log operation start/end with automatic timing.

    The yielded dict is merged into the completion log, so callers can attach
    results (counts, stats) discovered inside the block.
    """
    start = time.monotonic()
    result_fields: dict[str, Any] = {}
    logger.info(f"{operation}.started", extra=context)

    try:
        yield result_fields
    except BatchCancelledError:
        logger.info(
            f"{operation}.cancelled",
            extra={**context, **result_fields, "duration_ms": _elapsed_ms(start)},
        )
        raise
    except Exception as e:
        logger.error(
            f"{operation}.failed",
            extra={
                **context,
                "duration_ms": _elapsed_ms(start),
                "error": str(e),
                "error_type": type(e).__name__,
            },
            exc_info=True,
        )
        raise

    logger.info(
        f"{operation}.completed",
        extra={**context, **result_fields, "duration_ms": _elapsed_ms(start)},
    )


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)
