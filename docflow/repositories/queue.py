"""Repository for job queue operations and worker registration."""

import json
import random
from typing import Any, Optional

import structlog

from docflow.core.resilience import with_db_retry
from docflow.jobs.models import DeliveryConfig, QueueCounts, QueueEntry
from docflow.jobs.types import EntryStatus
from docflow.repositories.utils import ensure_json, translate_store_errors

logger = structlog.get_logger(__name__)


class JobQueue:
    """
    Durable work queue keyed by job id.

    Submitting a job id that is already present is a no-op, so retried
    submissions never create a second unit of work. Entries configured with
    remove_on_complete/remove_on_fail are deleted on their terminal outcome;
    the queue keeps no history for them.
    """

    def __init__(self, pool, queue_name: str = "translation-queue"):
        self._pool = pool
        self._queue_name = queue_name

    @property
    def queue_name(self) -> str:
        return self._queue_name

    def _calculate_backoff(self, attempt: int) -> int:
        """Calculate retry backoff: min(300, 2^attempt * 5) + jitter."""
        base = min(300, (2**attempt) * 5)
        jitter = random.randint(0, min(10, base // 2))
        return base + jitter

    async def submit(
        self,
        entry: QueueEntry,
        delivery: Optional[DeliveryConfig] = None,
    ) -> bool:
        """
        Add an entry to the queue.

        Returns:
            True if the entry was created, False if the job id already exists
        """
        delivery = delivery or DeliveryConfig()
        query = """
            INSERT INTO job_queue (job_id, queue_name, name, payload, max_attempts,
                                   remove_on_complete, remove_on_fail)
            VALUES ($1, $2, $3, $4::jsonb, $5, $6, $7)
            ON CONFLICT (job_id) DO NOTHING
            RETURNING job_id
        """
        with translate_store_errors("queue_submit"):
            async with self._pool.acquire() as conn:
                created = await conn.fetchval(
                    query,
                    entry.job_id,
                    self._queue_name,
                    entry.name,
                    json.dumps(entry.payload),
                    delivery.attempts,
                    delivery.remove_on_complete,
                    delivery.remove_on_fail,
                )

        if created is None:
            logger.info("queue_entry_exists", job_id=entry.job_id, queue=self._queue_name)
            return False

        logger.info("queue_entry_added", job_id=entry.job_id, queue=self._queue_name)
        return True

    async def counts(self) -> QueueCounts:
        """Waiting (not started) and active (in-flight) entry counts."""
        query = """
            SELECT
                COUNT(*) FILTER (WHERE status = 'pending') AS waiting,
                COUNT(*) FILTER (WHERE status = 'running') AS active
            FROM job_queue
            WHERE queue_name = $1
        """
        with translate_store_errors("queue_counts"):
            row = await with_db_retry(
                self._pool, lambda conn: conn.fetchrow(query, self._queue_name)
            )
        return QueueCounts(waiting=row["waiting"] or 0, active=row["active"] or 0)

    async def count_workers(self, stale_seconds: int) -> int:
        """Number of workers with a heartbeat newer than stale_seconds."""
        query = """
            SELECT COUNT(*) FROM worker_heartbeats
            WHERE queue_name = $1
              AND last_seen > now() - make_interval(secs => $2)
        """
        with translate_store_errors("worker_count"):
            count = await with_db_retry(
                self._pool,
                lambda conn: conn.fetchval(query, self._queue_name, float(stale_seconds)),
            )
        return count or 0

    async def heartbeat(self, worker_id: str, version: Optional[str] = None) -> None:
        """Register or refresh a worker against this queue."""
        query = """
            INSERT INTO worker_heartbeats (worker_id, queue_name, version, last_seen)
            VALUES ($1, $2, $3, now())
            ON CONFLICT (worker_id) DO UPDATE SET
                queue_name = $2,
                version = $3,
                last_seen = now()
        """
        with translate_store_errors("worker_heartbeat"):
            async with self._pool.acquire() as conn:
                await conn.execute(query, worker_id, self._queue_name, version)

    async def deregister(self, worker_id: str) -> None:
        """Remove a worker's heartbeat so it no longer counts as live."""
        with translate_store_errors("worker_deregister"):
            async with self._pool.acquire() as conn:
                await conn.execute(
                    "DELETE FROM worker_heartbeats WHERE worker_id = $1", worker_id
                )
        logger.info("worker_deregistered", worker_id=worker_id)

    async def claim(self, worker_id: str) -> Optional[QueueEntry]:
        """Claim the next available entry using FOR UPDATE SKIP LOCKED.

        Returns None if no entries are available.
        """
        query = """
            WITH cte AS (
                SELECT job_id FROM job_queue
                WHERE queue_name = $2
                  AND status = 'pending'
                  AND run_after <= now()
                ORDER BY created_at
                FOR UPDATE SKIP LOCKED
                LIMIT 1
            )
            UPDATE job_queue q SET
                status = 'running',
                locked_at = now(),
                locked_by = $1,
                attempt = q.attempt + 1
            FROM cte
            WHERE q.job_id = cte.job_id
            RETURNING q.*
        """
        with translate_store_errors("queue_claim"):
            async with self._pool.acquire() as conn:
                row = await conn.fetchrow(query, worker_id, self._queue_name)

        if row:
            logger.info(
                "queue_entry_claimed",
                job_id=row["job_id"],
                attempt=row["attempt"],
                worker_id=worker_id,
            )
            return self._row_to_entry(row)
        return None

    async def complete(self, job_id: str) -> None:
        """Finish an entry successfully, removing it if so configured."""
        with translate_store_errors("queue_complete"):
            async with self._pool.acquire() as conn:
                removed = await conn.fetchval(
                    "DELETE FROM job_queue WHERE job_id = $1 AND remove_on_complete "
                    "RETURNING job_id",
                    job_id,
                )
                if removed is None:
                    await conn.execute(
                        """
                        UPDATE job_queue SET
                            status = 'completed',
                            completed_at = now(),
                            locked_at = NULL,
                            locked_by = NULL
                        WHERE job_id = $1
                        """,
                        job_id,
                    )
        logger.info("queue_entry_completed", job_id=job_id, removed=removed is not None)

    async def fail(self, job_id: str, error: str, should_retry: bool = True) -> bool:
        """Finish an entry unsuccessfully, scheduling a retry if attempts remain.

        Returns:
            True if a retry was scheduled, False if the failure is final
        """
        with translate_store_errors("queue_fail"):
            async with self._pool.acquire() as conn:
                row = await conn.fetchrow(
                    "SELECT attempt, max_attempts, remove_on_fail FROM job_queue "
                    "WHERE job_id = $1",
                    job_id,
                )
                if not row:
                    logger.warning("queue_entry_missing", job_id=job_id)
                    return False

                attempt = row["attempt"]
                if should_retry and attempt < row["max_attempts"]:
                    backoff = self._calculate_backoff(attempt)
                    await conn.execute(
                        """
                        UPDATE job_queue SET
                            status = 'pending',
                            locked_at = NULL,
                            locked_by = NULL,
                            run_after = now() + make_interval(secs => $2),
                            last_error = $3
                        WHERE job_id = $1
                        """,
                        job_id,
                        float(backoff),
                        error,
                    )
                    logger.info(
                        "queue_retry_scheduled",
                        job_id=job_id,
                        attempt=attempt,
                        backoff=backoff,
                    )
                    return True

                if row["remove_on_fail"]:
                    await conn.execute("DELETE FROM job_queue WHERE job_id = $1", job_id)
                else:
                    await conn.execute(
                        """
                        UPDATE job_queue SET
                            status = 'failed',
                            completed_at = now(),
                            locked_at = NULL,
                            locked_by = NULL,
                            last_error = $2
                        WHERE job_id = $1
                        """,
                        job_id,
                        error,
                    )
        logger.warning("queue_entry_failed", job_id=job_id, error=error)
        return False

    async def reap_stale(self, stale_seconds: int) -> list[str]:
        """Recover entries held by workers that stopped responding.

        Entries with attempts left go back to pending. Entries without are
        finished as failed (removed when remove_on_fail is set).

        Returns:
            Job ids of entries that were finished as failed
        """
        stale = "status = 'running' AND locked_at < now() - make_interval(secs => $2)"
        with translate_store_errors("queue_reap"):
            async with self._pool.acquire() as conn:
                async with conn.transaction():
                    reset = await conn.fetch(
                        f"""
                        UPDATE job_queue SET
                            status = 'pending',
                            locked_at = NULL,
                            locked_by = NULL
                        WHERE queue_name = $1 AND {stale}
                          AND attempt < max_attempts
                        RETURNING job_id
                        """,
                        self._queue_name,
                        float(stale_seconds),
                    )
                    removed = await conn.fetch(
                        f"""
                        DELETE FROM job_queue
                        WHERE queue_name = $1 AND {stale}
                          AND attempt >= max_attempts AND remove_on_fail
                        RETURNING job_id
                        """,
                        self._queue_name,
                        float(stale_seconds),
                    )
                    marked = await conn.fetch(
                        f"""
                        UPDATE job_queue SET
                            status = 'failed',
                            completed_at = now(),
                            locked_at = NULL,
                            locked_by = NULL,
                            last_error = 'worker lost'
                        WHERE queue_name = $1 AND {stale}
                          AND attempt >= max_attempts
                        RETURNING job_id
                        """,
                        self._queue_name,
                        float(stale_seconds),
                    )

        abandoned = [r["job_id"] for r in removed] + [r["job_id"] for r in marked]
        if reset or abandoned:
            logger.warning(
                "stale_entries_reaped",
                reset=len(reset),
                abandoned=len(abandoned),
            )
        return abandoned

    def _row_to_entry(self, row: Any) -> QueueEntry:
        return QueueEntry(
            job_id=row["job_id"],
            name=row["name"],
            payload=ensure_json(row["payload"]) or {},
            queue_name=row["queue_name"],
            status=EntryStatus(row["status"]),
            attempt=row["attempt"],
            max_attempts=row["max_attempts"],
            remove_on_complete=row["remove_on_complete"],
            remove_on_fail=row["remove_on_fail"],
            locked_by=row["locked_by"],
            locked_at=row["locked_at"],
            last_error=row["last_error"],
            created_at=row["created_at"],
        )
