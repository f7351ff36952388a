"""In-memory stand-ins for the Postgres-backed repositories.

They keep the same contracts as the real stores: atomic create-if-absent for
locks and status records, per-row expiry against a controllable clock, and
job-id keyed queue entries. Each async method yields once before touching
state so concurrent callers actually interleave.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from docflow.errors import StoreError
from docflow.jobs.models import (
    CleanupCandidate,
    DeliveryConfig,
    JobStatusRecord,
    QueueCounts,
    QueueEntry,
)
from docflow.jobs.types import AccountStatus, EntryStatus, JobStatus
from docflow.repositories.locks import lock_key


class FakeClock:
    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2026, 1, 1, tzinfo=timezone.utc)

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeLockManager:
    def __init__(self, clock: FakeClock):
        self._clock = clock
        self.leases: dict[str, datetime] = {}
        self.fail_acquire = False
        self.fail_release = False
        self.release_calls: list[str] = []

    def is_held(self, domain: str, principal: str) -> bool:
        expires_at = self.leases.get(lock_key(domain, principal))
        return expires_at is not None and expires_at > self._clock.now

    async def acquire(self, domain: str, principal: str, ttl_seconds: int) -> bool:
        await asyncio.sleep(0)
        if self.fail_acquire:
            raise StoreError("lock_acquire", ConnectionRefusedError("store down"))
        if self.is_held(domain, principal):
            return False
        self.leases[lock_key(domain, principal)] = self._clock.now + timedelta(
            seconds=ttl_seconds
        )
        return True

    async def release(self, domain: str, principal: str) -> None:
        await asyncio.sleep(0)
        key = lock_key(domain, principal)
        self.release_calls.append(key)
        if self.fail_release:
            raise StoreError("lock_release", ConnectionResetError("store down"))
        self.leases.pop(key, None)


class FakeStatusStore:
    def __init__(self, clock: FakeClock):
        self._clock = clock
        self.records: dict[str, JobStatusRecord] = {}
        self.fail_create = False

    def _live(self, job_id: str) -> Optional[JobStatusRecord]:
        record = self.records.get(job_id)
        if record is None or record.expires_at <= self._clock.now:
            return None
        return record

    def _expiry(self, ttl_seconds: int) -> datetime:
        return self._clock.now + timedelta(seconds=ttl_seconds)

    async def create(self, job_id: str, doc_id: str, ttl_seconds: int) -> bool:
        await asyncio.sleep(0)
        if self.fail_create:
            raise StoreError("status_create", OSError("store down"))
        if self._live(job_id):
            return False
        self.records[job_id] = JobStatusRecord(
            job_id=job_id,
            doc_id=doc_id,
            status=JobStatus.QUEUED,
            updated_at=self._clock.now,
            expires_at=self._expiry(ttl_seconds),
        )
        return True

    async def write(self, job_id: str, fields: dict[str, Any], ttl_seconds: int) -> None:
        await asyncio.sleep(0)
        self.records[job_id] = JobStatusRecord(
            job_id=job_id,
            doc_id=fields["doc_id"],
            status=JobStatus(fields["status"]),
            error=fields.get("error"),
            updated_at=self._clock.now,
            expires_at=self._expiry(ttl_seconds),
        )

    async def update(
        self,
        job_id: str,
        status: JobStatus,
        error: Optional[str] = None,
        ttl_seconds: Optional[int] = None,
    ) -> bool:
        await asyncio.sleep(0)
        record = self._live(job_id)
        if record is None:
            return False
        record.status = status
        record.error = error
        record.updated_at = self._clock.now
        if ttl_seconds is not None:
            record.expires_at = self._expiry(ttl_seconds)
        return True

    async def read(self, job_id: str) -> Optional[JobStatusRecord]:
        await asyncio.sleep(0)
        return self._live(job_id)

    async def delete(self, job_id: str) -> bool:
        await asyncio.sleep(0)
        return self.records.pop(job_id, None) is not None

    async def purge_expired(self) -> int:
        expired = [
            job_id
            for job_id, record in self.records.items()
            if record.expires_at <= self._clock.now
        ]
        for job_id in expired:
            del self.records[job_id]
        return len(expired)


class FakeQueue:
    def __init__(self, clock: FakeClock, queue_name: str = "translation-queue"):
        self._clock = clock
        self._queue_name = queue_name
        self.entries: dict[str, QueueEntry] = {}
        self.workers: dict[str, datetime] = {}
        self.abandoned: list[str] = []
        self.completed: list[str] = []
        self.failed: list[tuple[str, str]] = []

    @property
    def queue_name(self) -> str:
        return self._queue_name

    def fill(self, waiting: int = 0, active: int = 0) -> None:
        """Add placeholder entries to reach a given depth."""
        for i in range(waiting):
            self.entries[f"filler-w{i}"] = QueueEntry(
                job_id=f"filler-w{i}", name="filler", payload={}
            )
        for i in range(active):
            self.entries[f"filler-a{i}"] = QueueEntry(
                job_id=f"filler-a{i}",
                name="filler",
                payload={},
                status=EntryStatus.RUNNING,
            )

    async def submit(
        self, entry: QueueEntry, delivery: Optional[DeliveryConfig] = None
    ) -> bool:
        await asyncio.sleep(0)
        if entry.job_id in self.entries:
            return False
        delivery = delivery or DeliveryConfig()
        entry.max_attempts = delivery.attempts
        entry.remove_on_complete = delivery.remove_on_complete
        entry.remove_on_fail = delivery.remove_on_fail
        self.entries[entry.job_id] = entry
        return True

    async def counts(self) -> QueueCounts:
        await asyncio.sleep(0)
        statuses = [e.status for e in self.entries.values()]
        return QueueCounts(
            waiting=statuses.count(EntryStatus.PENDING),
            active=statuses.count(EntryStatus.RUNNING),
        )

    async def count_workers(self, stale_seconds: int) -> int:
        await asyncio.sleep(0)
        cutoff = self._clock.now - timedelta(seconds=stale_seconds)
        return sum(1 for seen in self.workers.values() if seen > cutoff)

    async def heartbeat(self, worker_id: str, version: Optional[str] = None) -> None:
        self.workers[worker_id] = self._clock.now

    async def deregister(self, worker_id: str) -> None:
        self.workers.pop(worker_id, None)

    async def claim(self, worker_id: str) -> Optional[QueueEntry]:
        await asyncio.sleep(0)
        for entry in self.entries.values():
            if entry.status == EntryStatus.PENDING:
                entry.status = EntryStatus.RUNNING
                entry.locked_by = worker_id
                entry.attempt += 1
                return entry
        return None

    async def complete(self, job_id: str) -> None:
        self.completed.append(job_id)
        entry = self.entries.get(job_id)
        if entry and entry.remove_on_complete:
            del self.entries[job_id]
        elif entry:
            entry.status = EntryStatus.COMPLETED

    async def fail(self, job_id: str, error: str, should_retry: bool = True) -> bool:
        self.failed.append((job_id, error))
        entry = self.entries.get(job_id)
        if entry is None:
            return False
        if should_retry and entry.attempts_left:
            entry.status = EntryStatus.PENDING
            entry.last_error = error
            return True
        if entry.remove_on_fail:
            del self.entries[job_id]
        else:
            entry.status = EntryStatus.FAILED
            entry.last_error = error
        return False

    async def reap_stale(self, stale_seconds: int) -> list[str]:
        abandoned, self.abandoned = self.abandoned, []
        for job_id in abandoned:
            self.entries.pop(job_id, None)
        return abandoned


def make_candidate(user_id: str, hours_until_hard_delete: int = 24) -> CleanupCandidate:
    now = datetime(2026, 1, 1, tzinfo=timezone.utc)
    return CleanupCandidate(
        id=f"acct-{user_id}",
        user_id=user_id,
        email=f"{user_id}@example.com",
        status=AccountStatus.DELETED,
        cleanup_completed=False,
        hard_delete_at=now + timedelta(hours=hours_until_hard_delete),
        updated_at=now,
    )


class FakeAccountRepository:
    def __init__(self, candidates: Optional[list[CleanupCandidate]] = None):
        self.accounts: dict[Any, CleanupCandidate] = {
            c.id: c for c in (candidates or [])
        }
        self.fail_fetch = False
        self.fetch_limits: list[int] = []

    async def fetch_cleanup_candidates(self, limit: int = 100) -> list[CleanupCandidate]:
        self.fetch_limits.append(limit)
        if self.fail_fetch:
            raise StoreError("candidate_fetch", OSError("store down"))
        pending = [
            c
            for c in self.accounts.values()
            if c.status == AccountStatus.DELETED and not c.cleanup_completed
        ]
        pending.sort(key=lambda c: c.hard_delete_at)
        return pending[:limit]

    async def mark_cleanup_completed(self, account_id: Any) -> bool:
        account = self.accounts.get(account_id)
        if account is None:
            return False
        account.cleanup_completed = True
        return True

    def completed_user_ids(self) -> set[str]:
        return {c.user_id for c in self.accounts.values() if c.cleanup_completed}


class FakeDependentStore:
    def __init__(self, name: str, rows: Optional[dict[str, int]] = None):
        self.name = name
        self.rows = dict(rows or {})
        self.failing_users: set[str] = set()
        self.calls: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def delete_all_for_user(self, user_id: str) -> int:
        self.calls.append(user_id)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            if user_id in self.failing_users:
                raise StoreError(f"{self.name}_purge", OSError("store down"))
            return self.rows.pop(user_id, 0)
        finally:
            self.in_flight -= 1
