"""Periodic runner for the reclamation sweep."""

import asyncio
from datetime import datetime, timezone
from typing import Optional

import structlog
from prometheus_client import Counter, Gauge

from docflow.services.janitor import ReclamationSweep, SweepResult

logger = structlog.get_logger(__name__)

SWEEP_RUNS_TOTAL = Counter(
    "docflow_sweep_runs_total",
    "Scheduled sweep runs by status",
    ["status"],  # success, partial, skipped, failure
)

SWEEP_LAST_RUN_TIMESTAMP = Gauge(
    "docflow_sweep_last_run_timestamp",
    "Unix timestamp of the last finished sweep run",
)


class SweepScheduler:
    """
    Runs ReclamationSweep.run_once on a fixed interval until stopped.

    A failing run is logged and the loop keeps going; the next tick retries.
    """

    def __init__(self, sweep: ReclamationSweep, interval_s: float = 3600.0):
        self._sweep = sweep
        self._interval_s = interval_s

        self._task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()
        self._running = False

        self._last_run_at: Optional[datetime] = None
        self._last_result: Optional[SweepResult] = None

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def last_result(self) -> Optional[SweepResult]:
        return self._last_result

    async def start(self) -> None:
        """Start the sweep loop as a background task."""
        if self._running:
            logger.warning("sweep_scheduler_already_running")
            return

        logger.info("sweep_scheduler_started", interval_s=self._interval_s)
        self._stop_event.clear()
        self._running = True
        self._task = asyncio.create_task(self._loop())

    async def stop(self, timeout: float = 30.0) -> None:
        """
        Stop the loop, letting an in-progress run finish.

        Args:
            timeout: Max seconds to wait before cancelling the current run
        """
        if not self._running:
            return

        self._stop_event.set()

        if self._task:
            try:
                await asyncio.wait_for(self._task, timeout=timeout)
            except asyncio.TimeoutError:
                logger.warning("sweep_scheduler_stop_timeout")
                self._task.cancel()
                try:
                    await self._task
                except asyncio.CancelledError:
                    pass

        self._running = False
        logger.info("sweep_scheduler_stopped")

    async def tick(self) -> Optional[SweepResult]:
        """Run one sweep, recording metrics. Returns None if the run failed."""
        try:
            result = await self._sweep.run_once()
        except Exception as e:
            logger.exception("sweep_run_failed", error=str(e))
            SWEEP_RUNS_TOTAL.labels(status="failure").inc()
            return None

        self._last_result = result
        self._last_run_at = datetime.now(timezone.utc)
        SWEEP_LAST_RUN_TIMESTAMP.set(self._last_run_at.timestamp())

        if result.fetched == 0:
            status = "skipped"
        elif result.failed:
            status = "partial"
        else:
            status = "success"
        SWEEP_RUNS_TOTAL.labels(status=status).inc()
        return result

    async def _loop(self) -> None:
        while not self._stop_event.is_set():
            await self.tick()

            # Wait for next tick (interruptible)
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval_s)
                break
            except asyncio.TimeoutError:
                pass
