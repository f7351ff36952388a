"""Job system data models."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from docflow.jobs.types import AccountStatus, EntryStatus, JobStatus


@dataclass
class JobStatusRecord:
    """Progress record for an admitted job."""

    job_id: str
    doc_id: str
    status: JobStatus
    error: Optional[str] = None
    updated_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize for API response. Error is only included for failed jobs."""
        data: dict[str, Any] = {"doc_id": self.doc_id, "status": self.status.value}
        if self.status == JobStatus.FAILED and self.error:
            data["error"] = self.error
        return data


@dataclass(frozen=True)
class DeliveryConfig:
    """Delivery options for a queue entry."""

    attempts: int = 1
    remove_on_complete: bool = True
    remove_on_fail: bool = True


@dataclass
class QueueEntry:
    """A unit of work in the job queue, keyed by the job id."""

    job_id: str
    name: str
    payload: dict[str, Any]
    queue_name: str = "translation-queue"
    status: EntryStatus = EntryStatus.PENDING
    attempt: int = 0
    max_attempts: int = 1
    remove_on_complete: bool = True
    remove_on_fail: bool = True
    locked_by: Optional[str] = None
    locked_at: Optional[datetime] = None
    last_error: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def attempts_left(self) -> bool:
        return self.attempt < self.max_attempts


@dataclass(frozen=True)
class QueueCounts:
    """Point-in-time queue depth snapshot."""

    waiting: int = 0
    active: int = 0

    @property
    def total(self) -> int:
        return self.waiting + self.active


@dataclass
class CleanupCandidate:
    """An account pending dependent-data purge."""

    id: Any
    user_id: str
    email: str
    status: AccountStatus
    cleanup_completed: bool
    hard_delete_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
