#!/usr/bin/env python3
"""
Run a queue worker.

Processors are registered on docflow.jobs.default_registry by importing the
modules that define them.

Usage:
    python scripts/run_worker.py --processors myapp.translation
    python scripts/run_worker.py --processors myapp.translation --worker-id w1
"""
import argparse
import asyncio
import importlib
import signal

import structlog
from prometheus_client import start_http_server

from docflow.config import get_settings
from docflow.core.database import close_database, init_database
from docflow.core.logging import configure_logging
from docflow.core.sentry import init_sentry
from docflow.jobs.registry import default_registry
from docflow.jobs.worker import WorkerRunner

logger = structlog.get_logger(__name__)


async def run(args: argparse.Namespace) -> int:
    settings = get_settings()
    configure_logging(settings)
    init_sentry(settings, component="worker")

    for module in args.processors:
        importlib.import_module(module)

    if settings.job_name not in default_registry:
        logger.warning(
            "worker_processor_missing",
            job_name=settings.job_name,
            registered=default_registry.job_names,
        )

    if settings.metrics_port:
        start_http_server(settings.metrics_port)
        logger.info("metrics_server_started", port=settings.metrics_port)

    pool = await init_database(settings)
    worker = WorkerRunner(pool, worker_id=args.worker_id, settings=settings)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, lambda: asyncio.ensure_future(worker.stop()))

    try:
        await worker.start()
    finally:
        await close_database(pool)
    return 0


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="docflow queue worker",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--processors",
        "-p",
        nargs="*",
        default=[],
        help="Modules to import so their processors register",
    )
    parser.add_argument(
        "--worker-id",
        help="Worker id (default: hostname:pid)",
    )
    args = parser.parse_args()
    raise SystemExit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
