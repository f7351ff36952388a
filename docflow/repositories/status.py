"""Repository for job status records with per-record expiry."""

from typing import Any, Optional

import structlog

from docflow.core.resilience import with_db_retry
from docflow.jobs.models import JobStatusRecord
from docflow.jobs.types import JobStatus
from docflow.repositories.utils import affected_rows, translate_store_errors

logger = structlog.get_logger(__name__)

# Columns a caller may set through write()
WRITABLE_FIELDS = ("doc_id", "status", "error")


class JobStatusStore:
    """
    Status records keyed by job id.

    Rows carry an absolute expires_at. A row past its expiry is treated as
    absent by every read and may be overwritten by create().
    """

    def __init__(self, pool):
        self._pool = pool

    async def create(self, job_id: str, doc_id: str, ttl_seconds: int) -> bool:
        """
        Insert a queued record unless a live one already exists.

        Returns:
            True if a record was created, False if a live record was present
        """
        query = """
            INSERT INTO job_status (job_id, doc_id, status, error, updated_at, expires_at)
            VALUES ($1, $2, 'queued', NULL, now(), now() + make_interval(secs => $3))
            ON CONFLICT (job_id) DO UPDATE SET
                doc_id = EXCLUDED.doc_id,
                status = EXCLUDED.status,
                error = NULL,
                updated_at = EXCLUDED.updated_at,
                expires_at = EXCLUDED.expires_at
            WHERE job_status.expires_at <= now()
            RETURNING job_id
        """
        with translate_store_errors("status_create"):
            async with self._pool.acquire() as conn:
                created = await conn.fetchval(query, job_id, doc_id, float(ttl_seconds))

        if created is None:
            logger.info("status_record_exists", job_id=job_id)
            return False
        return True

    async def write(self, job_id: str, fields: dict[str, Any], ttl_seconds: int) -> None:
        """
        Upsert a record with the given fields and reset its expiry.

        Args:
            job_id: Record key
            fields: Must contain doc_id and status; may contain error
            ttl_seconds: New time-to-live from now

        Raises:
            ValueError: On unknown fields or a missing doc_id/status
        """
        unknown = set(fields) - set(WRITABLE_FIELDS)
        if unknown:
            raise ValueError(f"Unknown status fields: {sorted(unknown)}")
        if "doc_id" not in fields or "status" not in fields:
            raise ValueError("Status write requires doc_id and status")

        status = JobStatus(fields["status"])
        query = """
            INSERT INTO job_status (job_id, doc_id, status, error, updated_at, expires_at)
            VALUES ($1, $2, $3, $4, now(), now() + make_interval(secs => $5))
            ON CONFLICT (job_id) DO UPDATE SET
                doc_id = EXCLUDED.doc_id,
                status = EXCLUDED.status,
                error = EXCLUDED.error,
                updated_at = EXCLUDED.updated_at,
                expires_at = EXCLUDED.expires_at
        """
        with translate_store_errors("status_write"):
            async with self._pool.acquire() as conn:
                await conn.execute(
                    query,
                    job_id,
                    fields["doc_id"],
                    status.value,
                    fields.get("error"),
                    float(ttl_seconds),
                )

    async def update(
        self,
        job_id: str,
        status: JobStatus,
        error: Optional[str] = None,
        ttl_seconds: Optional[int] = None,
    ) -> bool:
        """
        Atomically set status (and error) on a live record.

        When ttl_seconds is given the expiry is pushed out from now, otherwise
        the existing expiry is kept.

        Returns:
            False if no live record exists
        """
        query = """
            UPDATE job_status SET
                status = $2,
                error = $3,
                updated_at = now(),
                expires_at = CASE
                    WHEN $4::float8 IS NULL THEN expires_at
                    ELSE now() + make_interval(secs => $4::float8)
                END
            WHERE job_id = $1 AND expires_at > now()
        """
        ttl = float(ttl_seconds) if ttl_seconds is not None else None
        with translate_store_errors("status_update"):
            async with self._pool.acquire() as conn:
                result = await conn.execute(query, job_id, status.value, error, ttl)

        updated = affected_rows(result) > 0
        if not updated:
            logger.warning("status_update_missing", job_id=job_id, status=status.value)
        return updated

    async def read(self, job_id: str) -> Optional[JobStatusRecord]:
        """Get the live record for job_id, or None if missing or expired."""
        query = """
            SELECT job_id, doc_id, status, error, updated_at, expires_at
            FROM job_status
            WHERE job_id = $1 AND expires_at > now()
        """
        with translate_store_errors("status_read"):
            row = await with_db_retry(
                self._pool, lambda conn: conn.fetchrow(query, job_id)
            )
        return self._row_to_record(row) if row else None

    async def delete(self, job_id: str) -> bool:
        """Remove a record regardless of expiry. Returns False if none existed."""
        with translate_store_errors("status_delete"):
            async with self._pool.acquire() as conn:
                result = await conn.execute(
                    "DELETE FROM job_status WHERE job_id = $1", job_id
                )
        return affected_rows(result) > 0

    async def purge_expired(self) -> int:
        """Delete expired rows. Returns number deleted."""
        with translate_store_errors("status_purge"):
            async with self._pool.acquire() as conn:
                result = await conn.execute(
                    "DELETE FROM job_status WHERE expires_at <= now()"
                )
        count = affected_rows(result)
        if count:
            logger.info("status_records_purged", count=count)
        return count

    def _row_to_record(self, row) -> JobStatusRecord:
        return JobStatusRecord(
            job_id=row["job_id"],
            doc_id=row["doc_id"],
            status=JobStatus(row["status"]),
            error=row["error"],
            updated_at=row["updated_at"],
            expires_at=row["expires_at"],
        )
