#!/usr/bin/env python3
"""
Purge dependent data for soft-deleted accounts.

Usage:
    python scripts/run_janitor.py            # one sweep, then exit
    python scripts/run_janitor.py --loop     # sweep every SWEEP_INTERVAL_S
"""
import argparse
import asyncio
import json
import signal

import structlog
from prometheus_client import start_http_server

from docflow.config import get_settings
from docflow.core.database import close_database, init_database
from docflow.core.logging import configure_logging
from docflow.core.sentry import init_sentry
from docflow.services.janitor import ReclamationSweep
from docflow.services.scheduler import SweepScheduler

logger = structlog.get_logger(__name__)


async def run(args: argparse.Namespace) -> int:
    settings = get_settings()
    configure_logging(settings)
    init_sentry(settings, component="janitor")

    pool = await init_database(settings)
    try:
        sweep = ReclamationSweep.from_pool(pool, settings)

        if not args.loop:
            result = await sweep.run_once()
            print(json.dumps(result.to_dict(), indent=2))
            return 1 if result.failed else 0

        if settings.metrics_port:
            start_http_server(settings.metrics_port)
            logger.info("metrics_server_started", port=settings.metrics_port)

        scheduler = SweepScheduler(sweep, interval_s=settings.sweep_interval_s)
        stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop.set)

        await scheduler.start()
        await stop.wait()
        await scheduler.stop()
        return 0
    finally:
        await close_database(pool)


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="docflow reclamation sweep",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--loop",
        action="store_true",
        help="Keep running and sweep on a fixed interval",
    )
    args = parser.parse_args()
    raise SystemExit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
