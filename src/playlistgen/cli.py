"""Command line entry point.

```
playlistgen [--db-path PATH] [--log-level LEVEL] [--log-format text|json]
    sync           [--force-processing-jobs] [--no-store] [--navidrome-url URL] ...
    audio-process  [--kind audio|embedding] [--batch-size N] [--workers N] [--all]
```

Exit codes: 0 = done (or cancelled by SIGINT/SIGTERM), 1 = failed, 2 = bad arguments.
"""

import argparse
import asyncio
import contextlib
import logging
import signal
import sys
from pathlib import Path

from pydantic import ValidationError as SettingsValidationError

from playlistgen import __version__
from playlistgen.application.services import ReconciliationService
from playlistgen.application.use_cases import SyncTracksRequest, SyncTracksUseCase
from playlistgen.application.workers import JobQueue, WorkerPool
from playlistgen.config import ObservabilitySettings, Settings
from playlistgen.domain.entities import JobKind
from playlistgen.domain.exceptions import (
    BatchCancelledError,
    ConfigurationError,
    DomainException,
    ValidationError,
)
from playlistgen.infrastructure.integrations import NavidromeClient
from playlistgen.infrastructure.observability import (
    configure_logging,
    log_operation,
    set_correlation_id,
)
from playlistgen.infrastructure.persistence import open_database

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="playlistgen", description="AI-assisted playlist generator"
    )
    parser.add_argument("--version", action="version", version=__version__)
    parser.add_argument(
        "--db-path",
        type=Path,
        help="SQLite track store file (overrides PLAYLISTGEN_DATABASE__URL)",
    )
    parser.add_argument("--log-level", help="DEBUG, INFO, WARNING or ERROR")
    parser.add_argument(
        "--log-format", choices=["text", "json"], help="Log line format"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    sync_parser = subparsers.add_parser("sync", help="Sync metadata from Navidrome")
    sync_parser.add_argument(
        "--force-processing-jobs",
        action="store_true",
        help="Enqueue audio and embedding jobs for every track",
    )
    sync_parser.add_argument(
        "--no-store",
        action="store_true",
        help="Only fetch and count tracks; do not open the track store",
    )
    sync_parser.add_argument("--navidrome-url", help="Navidrome base URL")
    sync_parser.add_argument("--navidrome-username", help="Navidrome username")
    sync_parser.add_argument("--navidrome-password", help="Navidrome password")

    process_parser = subparsers.add_parser(
        "audio-process", help="Process pending analysis jobs"
    )
    process_parser.add_argument(
        "--kind",
        choices=[kind.value for kind in JobKind],
        default=JobKind.AUDIO.value,
        help="Which job queue to drain (default: audio)",
    )
    process_parser.add_argument(
        "--batch-size", type=int, help="Number of jobs to fetch per batch"
    )
    process_parser.add_argument(
        "--workers", type=int, help="Number of concurrent workers"
    )
    process_parser.add_argument(
        "--all",
        dest="process_all",
        action="store_true",
        help="Process jobs until the queue is empty",
    )
    return parser


def database_url_for(path: Path) -> str:
    """SQLite URL for a store file; the parent directory is created."""
    resolved = path.expanduser().resolve()
    resolved.parent.mkdir(parents=True, exist_ok=True)
    return f"sqlite+aiosqlite:///{resolved}"


def apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    """Layer command line flags over env / .env settings."""
    if args.db_path is not None:
        settings.database.url = database_url_for(args.db_path)

    # Re-validated so a bad --log-level fails like a bad env var does.
    settings.observability = ObservabilitySettings(
        log_level=args.log_level or settings.observability.log_level,
        json_format=(
            args.log_format == "json"
            if args.log_format
            else settings.observability.json_format
        ),
    )

    if args.command == "sync":
        if args.force_processing_jobs:
            settings.sync.force_processing_jobs = True
        if args.navidrome_url:
            settings.navidrome.url = args.navidrome_url
        if args.navidrome_username:
            settings.navidrome.username = args.navidrome_username
        if args.navidrome_password:
            settings.navidrome.password = args.navidrome_password
    elif args.command == "audio-process":
        # None means "not given"; 0 and negatives are passed on and rejected by the pool.
        if args.batch_size is not None:
            settings.workers.batch_size = args.batch_size
        if args.workers is not None:
            settings.workers.worker_count = args.workers
        if args.process_all:
            settings.workers.process_all = True
    return settings


async def run_sync(settings: Settings, use_store: bool = True) -> None:
    """Fetch the Navidrome catalog and reconcile it into the store."""
    if not settings.navidrome.is_configured:
        raise ConfigurationError(
            "navidrome URL, username and password must be set via flags or environment"
        )

    set_correlation_id()
    database = await open_database(settings.database) if use_store else None
    try:
        store = (
            ReconciliationService(
                database, force_processing_jobs=settings.sync.force_processing_jobs
            )
            if database is not None
            else None
        )
        async with NavidromeClient(settings.navidrome) as client:
            async with log_operation(
                logger,
                "navidrome_sync",
                navidrome_url=settings.navidrome.url,
                persistence=database is not None,
                force_processing_jobs=settings.sync.force_processing_jobs,
            ) as summary:
                response = await SyncTracksUseCase(client, store).execute(
                    SyncTracksRequest()
                )
                summary.update(
                    fetched=response.stats.fetched,
                    updated=response.stats.updated,
                    skipped=response.stats.skipped,
                    deleted=response.stats.deleted,
                )
    finally:
        if database is not None:
            await database.close()


async def run_audio_process(
    settings: Settings, kind: JobKind, cancel_event: asyncio.Event
) -> int:
    """Drain pending jobs of one kind; returns how many were handed to workers."""
    set_correlation_id()
    database = await open_database(settings.database)
    try:
        queue = JobQueue(database, kind)
        pool = WorkerPool(queue, task_delay=settings.workers.task_delay_seconds)
        try:
            return await pool.run_until_empty(
                settings.workers.batch_size,
                settings.workers.worker_count,
                process_all=settings.workers.process_all,
                cancel_event=cancel_event,
            )
        finally:
            counts = await queue.counts()
            logger.info(
                "worker.queue_status",
                extra={
                    "kind": kind.value,
                    **{status.value: count for status, count in counts.items()},
                },
            )
    finally:
        await database.close()


def _install_signal_handlers(cancel_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        # Not available on Windows event loops; Ctrl+C then ends the run the hard way.
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, cancel_event.set)


async def _run(settings: Settings, args: argparse.Namespace) -> None:
    cancel_event = asyncio.Event()
    _install_signal_handlers(cancel_event)

    if args.command == "sync":
        await run_sync(settings, use_store=not args.no_store)
    else:
        await run_audio_process(settings, JobKind(args.kind), cancel_event)


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = apply_overrides(Settings(), args)
    except (SettingsValidationError, ValueError) as e:
        print(f"playlistgen: invalid settings: {e}", file=sys.stderr)
        return EXIT_USAGE

    configure_logging(
        log_level=settings.observability.log_level,
        json_format=settings.observability.json_format,
        app_name=settings.app_name,
    )

    try:
        asyncio.run(_run(settings, args))
    except BatchCancelledError:
        logger.info("cli.cancelled", extra={"command": args.command})
        return EXIT_OK
    except ValidationError as e:
        logger.error("cli.invalid_arguments", extra={"error": e.message})
        return EXIT_USAGE
    except DomainException as e:
        logger.error(
            "cli.failed",
            extra={
                "command": args.command,
                "error": e.message,
                "error_type": type(e).__name__,
            },
        )
        return EXIT_FAILED
    except Exception:
        logger.exception("cli.crashed", extra={"command": args.command})
        return EXIT_FAILED
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
