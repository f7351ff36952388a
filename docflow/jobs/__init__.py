"""Job system package."""

from docflow.jobs.types import AccountStatus, AdmissionOutcome, EntryStatus, JobStatus
from docflow.jobs.models import (
    CleanupCandidate,
    DeliveryConfig,
    JobStatusRecord,
    QueueCounts,
    QueueEntry,
)
from docflow.jobs.registry import ProcessorRegistry, default_registry

__all__ = [
    "AccountStatus",
    "AdmissionOutcome",
    "EntryStatus",
    "JobStatus",
    "CleanupCandidate",
    "DeliveryConfig",
    "JobStatusRecord",
    "QueueCounts",
    "QueueEntry",
    "ProcessorRegistry",
    "default_registry",
]
