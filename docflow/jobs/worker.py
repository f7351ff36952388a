"""Job worker - claims queue entries, runs processors and tracks status."""
import asyncio
import os
import socket
import traceback
from typing import Optional

import structlog
from prometheus_client import Counter

from docflow import __version__
from docflow.config import Settings, get_settings
from docflow.errors import ProcessorNotFound
from docflow.jobs.models import QueueEntry
from docflow.jobs.registry import ProcessorRegistry, default_registry
from docflow.jobs.types import JobStatus
from docflow.repositories.queue import JobQueue
from docflow.repositories.status import JobStatusStore

logger = structlog.get_logger(__name__)

JOBS_PROCESSED_TOTAL = Counter(
    "docflow_jobs_processed_total",
    "Queue entries processed by workers",
    ["status"],  # completed, failed, retried
)


def generate_worker_id() -> str:
    """Generate a unique worker ID: hostname:pid."""
    return f"{socket.gethostname()}:{os.getpid()}"


class WorkerRunner:
    """
    Worker that polls the queue and executes entries.

    The heartbeat runs as its own task so a long job does not make the worker
    look dead to admission. Status records move queued -> active ->
    completed/failed as the entry is processed.
    The submitting principal's lock is left to expire on its own.
    """

    def __init__(
        self,
        pool,
        registry: Optional[ProcessorRegistry] = None,
        worker_id: Optional[str] = None,
        settings: Optional[Settings] = None,
        queue: Optional[JobQueue] = None,
        status_store: Optional[JobStatusStore] = None,
    ):
        self._settings = settings or get_settings()
        self._pool = pool
        self._registry = registry or default_registry
        self._worker_id = worker_id or generate_worker_id()
        self._queue = queue or JobQueue(pool, queue_name=self._settings.queue_name)
        self._status = status_store or JobStatusStore(pool)
        self._running = False

    @property
    def worker_id(self) -> str:
        return self._worker_id

    async def start(self):
        """Start the worker loop. Returns after stop() or cancellation."""
        settings = self._settings
        self._running = True

        logger.info(
            "worker_started",
            worker_id=self._worker_id,
            version=__version__,
            queue=self._queue.queue_name,
        )

        await self._heartbeat()
        heartbeat_task = asyncio.create_task(self._heartbeat_loop())

        loop = asyncio.get_running_loop()
        last_reap = loop.time()

        try:
            while self._running:
                try:
                    entry = await self._queue.claim(self._worker_id)

                    if entry:
                        await self._execute(entry)
                    else:
                        await asyncio.sleep(settings.worker_poll_interval_s)

                    now = loop.time()
                    if now - last_reap >= settings.worker_reap_interval_s:
                        await self._reap()
                        last_reap = now

                except asyncio.CancelledError:
                    logger.info("worker_cancelled", worker_id=self._worker_id)
                    break
                except Exception as e:
                    logger.error(
                        "worker_loop_error",
                        error=str(e),
                        traceback=traceback.format_exc(),
                    )
                    await asyncio.sleep(settings.worker_poll_interval_s)
        finally:
            heartbeat_task.cancel()
            try:
                await heartbeat_task
            except asyncio.CancelledError:
                pass
            await self._deregister()

        logger.info("worker_stopped", worker_id=self._worker_id)

    async def stop(self):
        """Stop the worker loop gracefully."""
        self._running = False

    async def _heartbeat_loop(self):
        """Refresh liveness on its own schedule, independent of job duration."""
        interval = self._settings.worker_heartbeat_interval_s
        while self._running:
            await asyncio.sleep(interval)
            await self._heartbeat()

    async def _execute(self, entry: QueueEntry):
        """Execute a single entry and record its outcome."""
        log = logger.bind(job_id=entry.job_id, job_name=entry.name, attempt=entry.attempt)
        log.info("job_executing")
        ttl = self._settings.worker_status_ttl_s

        await self._status.update(entry.job_id, JobStatus.ACTIVE, ttl_seconds=ttl)

        try:
            processor = self._registry.resolve(entry)
        except ProcessorNotFound as e:
            error = str(e)
            log.error("job_no_processor", error=error)
            await self._finish_failed(entry, error, should_retry=False)
            return

        context = {
            "worker_id": self._worker_id,
            "pool": self._pool,
            "status_store": self._status,
        }

        try:
            await processor(entry, context)
        except Exception as e:
            error = str(e) or type(e).__name__
            log.error(
                "job_processor_failed",
                error=error,
                traceback=traceback.format_exc(),
            )
            await self._finish_failed(entry, error, should_retry=True)
            return

        await self._status.update(entry.job_id, JobStatus.COMPLETED, ttl_seconds=ttl)
        await self._queue.complete(entry.job_id)
        JOBS_PROCESSED_TOTAL.labels(status="completed").inc()
        log.info("job_succeeded")

    async def _finish_failed(self, entry: QueueEntry, error: str, should_retry: bool):
        retried = await self._queue.fail(entry.job_id, error, should_retry=should_retry)
        if retried:
            await self._status.update(
                entry.job_id,
                JobStatus.QUEUED,
                ttl_seconds=self._settings.worker_status_ttl_s,
            )
            JOBS_PROCESSED_TOTAL.labels(status="retried").inc()
            return

        await self._status.update(
            entry.job_id,
            JobStatus.FAILED,
            error=error,
            ttl_seconds=self._settings.worker_status_ttl_s,
        )
        JOBS_PROCESSED_TOTAL.labels(status="failed").inc()

    async def _reap(self):
        """Fail entries abandoned by dead workers and drop expired status rows."""
        abandoned = await self._queue.reap_stale(self._settings.worker_stale_timeout_s)
        for job_id in abandoned:
            await self._status.update(
                job_id,
                JobStatus.FAILED,
                error="Worker stopped before the job finished",
                ttl_seconds=self._settings.worker_status_ttl_s,
            )
        await self._status.purge_expired()

    async def _heartbeat(self):
        """Update worker heartbeat."""
        try:
            await self._queue.heartbeat(self._worker_id, __version__)
        except Exception as e:
            logger.warning("heartbeat_failed", error=str(e))

    async def _deregister(self):
        try:
            await self._queue.deregister(self._worker_id)
        except Exception as e:
            logger.warning("deregister_failed", error=str(e))
