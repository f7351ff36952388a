"""Job system type definitions."""

from enum import Enum


class JobStatus(str, Enum):
    """Status of a job as recorded in the status store."""

    QUEUED = "queued"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        """Check if this status is terminal (job won't change)."""
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class EntryStatus(str, Enum):
    """Lifecycle of a queue entry."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class AccountStatus(str, Enum):
    """Account lifecycle status."""

    ACTIVE = "active"
    DELETED = "deleted"


class AdmissionOutcome(str, Enum):
    """Result of a successful admit call."""

    ADMITTED = "admitted"  # new unit of work queued
    DUPLICATE = "duplicate"  # job id already known; nothing new created
