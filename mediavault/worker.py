"""Background worker running the processing queue and the backup loops.

Usage:
    mediavault-worker                 Run every periodic loop until interrupted
    mediavault-worker --no-queue      Run only the backup loops
    mediavault-worker --once verify   Run a single pass of one loop and exit

Loops:
    queue      Drain a batch of pending processing jobs
    policies   Execute every active backup policy
    cleanup    Delete backups past retention (copy floor permitting)
    verify     Verify backups whose verification delay has passed
"""

from __future__ import annotations

import argparse
import asyncio
import signal
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from mediavault.commons.settings import get_settings
from mediavault.commons.telemetry import configure_logging, get_logger, set_correlation_id
from mediavault.infrastructure.factory import InfrastructureFactory, get_factory

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

LOOPS = ("queue", "policies", "cleanup", "verify")

logger = get_logger(__name__)


@dataclass
class WorkerArgs:
    """Parsed command line arguments."""

    config_dir: Path | None
    environment: str | None
    once: str | None
    include_queue: bool


def parse_args(argv: list[str] | None = None) -> WorkerArgs:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Run the mediavault background worker",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--config-dir", type=Path, help="Directory holding appsettings*.json")
    parser.add_argument("--environment", help="Settings environment (dev, staging, prod)")
    parser.add_argument("--once", choices=LOOPS, help="Run a single pass of one loop and exit")
    parser.add_argument(
        "--no-queue",
        action="store_true",
        help="Do not drain the processing job queue",
    )

    args = parser.parse_args(argv)
    return WorkerArgs(
        config_dir=args.config_dir,
        environment=args.environment,
        once=args.once,
        include_queue=not args.no_queue,
    )


def loop_runner(factory: InfrastructureFactory, name: str) -> Callable[[], Awaitable[Any]]:
    """Resolve a loop name to the service call performing one pass."""
    runners: dict[str, Callable[[], Awaitable[Any]]] = {
        "queue": factory.get_processing_service().process_job_queue,
        "policies": factory.get_backup_service().execute_backup_policies,
        "cleanup": factory.get_backup_service().cleanup_old_backups,
        "verify": factory.get_backup_service().verify_due_backups,
    }
    return runners[name]


async def run_once(factory: InfrastructureFactory, name: str) -> None:
    set_correlation_id()
    result = await loop_runner(factory, name)()
    logger.info("Single pass finished", extra={"loop": name, "result": str(result)})


async def run_forever(factory: InfrastructureFactory, include_queue: bool) -> None:
    """Start the scheduler and block until SIGINT or SIGTERM."""
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            # Signal handlers are unavailable on some platforms' event loops.
            pass

    factory.get_scheduler().start_automatic_backup_system(include_queue=include_queue)
    logger.info("Worker started", extra={"include_queue": include_queue})
    await stop.wait()
    logger.info("Worker stopping")


async def _main(args: WorkerArgs) -> None:
    settings = get_settings(config_dir=args.config_dir, environment=args.environment)
    configure_logging(
        level=settings.telemetry.log_level or settings.app.log_level,
        format_type=settings.telemetry.log_format,
    )
    factory = get_factory(settings)
    try:
        await factory.prepare_storage()
        if args.once:
            await run_once(factory, args.once)
        else:
            await run_forever(factory, args.include_queue)
    finally:
        await factory.close_all()


def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    asyncio.run(_main(parse_args(argv)))


if __name__ == "__main__":
    main()
