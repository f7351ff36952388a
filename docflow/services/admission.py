"""Job admission: liveness, per-user locking, backpressure and enqueue.

Admission runs these steps in order and stops at the first failure:

1. Liveness  - at least one worker heartbeat on the queue, else WorkerPoolUnavailable
2. Lock      - atomic per-principal lease, else AlreadyProcessing
3. Capacity  - waiting + active below the ceiling, else QueueFull
4. Status    - queued status record with TTL (a live record means duplicate)
5. Enqueue   - single attempt, removed from the queue on any terminal outcome

Any failure in steps 3-5 releases the lease before the error propagates, and a
status record created in step 4 is deleted again if step 5 fails. A duplicate
job id also releases the lease. The capacity check and enqueue are not atomic:
under concurrent admissions the real depth can briefly exceed the ceiling.
Workers do not release leases on completion; a lease lives until its TTL.
"""

from typing import Any, Optional

import structlog
from prometheus_client import Counter

from docflow.config import Settings, get_settings
from docflow.errors import (
    AlreadyProcessing,
    JobNotFound,
    QueueFull,
    StoreError,
    WorkerPoolUnavailable,
)
from docflow.jobs.models import DeliveryConfig, JobStatusRecord, QueueEntry
from docflow.jobs.types import AdmissionOutcome
from docflow.repositories.locks import LockManager
from docflow.repositories.queue import JobQueue
from docflow.repositories.status import JobStatusStore

logger = structlog.get_logger(__name__)

ADMISSIONS_TOTAL = Counter(
    "docflow_admissions_total",
    "Admission decisions by outcome",
    ["outcome"],
)

ADMISSION_DELIVERY = DeliveryConfig(
    attempts=1,
    remove_on_complete=True,
    remove_on_fail=True,
)


class AdmissionController:
    """Decides whether a job may be accepted and records it if so."""

    def __init__(
        self,
        locks: LockManager,
        status_store: JobStatusStore,
        queue: JobQueue,
        settings: Optional[Settings] = None,
    ):
        settings = settings or get_settings()
        self._locks = locks
        self._status = status_store
        self._queue = queue
        self._lock_domain = settings.lock_domain
        self._lock_ttl_s = settings.lock_ttl_s
        self._status_ttl_s = settings.status_ttl_s
        self._max_queue_depth = settings.max_queue_depth
        self._heartbeat_stale_s = settings.worker_heartbeat_stale_s
        self._job_name = settings.job_name

    @classmethod
    def from_pool(cls, pool, settings: Optional[Settings] = None) -> "AdmissionController":
        """Build a controller with Postgres-backed collaborators."""
        settings = settings or get_settings()
        return cls(
            locks=LockManager(pool),
            status_store=JobStatusStore(pool),
            queue=JobQueue(pool, queue_name=settings.queue_name),
            settings=settings,
        )

    async def admit(
        self, principal: str, job_id: str, payload: dict[str, Any]
    ) -> AdmissionOutcome:
        """
        Admit a job for principal.

        Args:
            principal: Lock and quota key (e.g., user email)
            job_id: Caller-supplied idempotent job identifier
            payload: Opaque worker payload; "doc_id" is used for the status record

        Returns:
            AdmissionOutcome.ADMITTED if a new job was queued,
            AdmissionOutcome.DUPLICATE if job_id was already known (live status
            record or queue entry). A duplicate creates nothing and releases
            the lease it took.

        Raises:
            WorkerPoolUnavailable: No live worker on the queue
            AlreadyProcessing: principal holds a live lease
            QueueFull: Queue depth at or above the ceiling
            StoreError: The shared store failed
        """
        log = logger.bind(principal=principal, job_id=job_id)

        workers = await self._queue.count_workers(self._heartbeat_stale_s)
        if workers == 0:
            log.warning("admission_rejected", reason="no_workers")
            ADMISSIONS_TOTAL.labels(outcome="worker_pool_unavailable").inc()
            raise WorkerPoolUnavailable(principal=principal)

        acquired = await self._locks.acquire(
            self._lock_domain, principal, self._lock_ttl_s
        )
        if not acquired:
            log.info("admission_rejected", reason="already_processing")
            ADMISSIONS_TOTAL.labels(outcome="already_processing").inc()
            raise AlreadyProcessing(principal=principal)

        status_created = False
        try:
            counts = await self._queue.counts()
            if counts.total >= self._max_queue_depth:
                log.warning(
                    "admission_rejected",
                    reason="queue_full",
                    waiting=counts.waiting,
                    active=counts.active,
                    ceiling=self._max_queue_depth,
                )
                ADMISSIONS_TOTAL.labels(outcome="queue_full").inc()
                raise QueueFull(
                    depth=counts.total,
                    ceiling=self._max_queue_depth,
                    principal=principal,
                )

            doc_id = str(payload.get("doc_id") or job_id)
            status_created = await self._status.create(
                job_id, doc_id, self._status_ttl_s
            )
            if status_created:
                entry = QueueEntry(
                    job_id=job_id,
                    name=self._job_name,
                    payload={**payload, "principal": principal},
                    queue_name=self._queue.queue_name,
                    max_attempts=ADMISSION_DELIVERY.attempts,
                )
                submitted = await self._queue.submit(entry, ADMISSION_DELIVERY)
                if not submitted:
                    log.warning("admission_entry_already_queued", doc_id=doc_id)
                    await self._status.delete(job_id)
                    status_created = False
        except Exception as e:
            if status_created:
                await self._discard_status(job_id, e)
            await self._release_lock(principal, type(e).__name__, str(e))
            raise

        if not status_created:
            log.info("admission_duplicate", doc_id=doc_id)
            ADMISSIONS_TOTAL.labels(outcome="duplicate").inc()
            await self._release_lock(principal, "duplicate")
            return AdmissionOutcome.DUPLICATE

        log.info("job_admitted", doc_id=doc_id, depth=counts.total + 1)
        ADMISSIONS_TOTAL.labels(outcome="admitted").inc()
        return AdmissionOutcome.ADMITTED

    async def get_status(self, job_id: str) -> JobStatusRecord:
        """
        Get the live status record for job_id.

        Raises:
            JobNotFound: Never admitted, or the record expired
            StoreError: The shared store failed
        """
        record = await self._status.read(job_id)
        if record is None:
            raise JobNotFound(job_id)
        return record

    async def _discard_status(self, job_id: str, error: Exception) -> None:
        """Delete the status record this admission created for a job never queued."""
        try:
            await self._status.delete(job_id)
        except StoreError as delete_error:
            # The record lingers until its TTL and reads as queued.
            logger.error(
                "status_discard_failed",
                job_id=job_id,
                error=str(delete_error),
                original_error=str(error),
            )

    async def _release_lock(
        self, principal: str, reason: str, original_error: Optional[str] = None
    ) -> None:
        """Release the principal's lease; a failure is logged, never raised."""
        try:
            await self._locks.release(self._lock_domain, principal)
        except StoreError as release_error:
            logger.error(
                "lock_release_failed",
                principal=principal,
                reason=reason,
                error=str(release_error),
                original_error=original_error,
            )
        else:
            logger.info("admission_lock_released", principal=principal, reason=reason)
