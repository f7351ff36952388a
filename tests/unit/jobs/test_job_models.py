"""Tests for job system models."""

import pytest

from docflow.jobs.models import (
    DeliveryConfig,
    JobStatusRecord,
    QueueCounts,
    QueueEntry,
)
from docflow.jobs.types import EntryStatus, JobStatus


class TestJobStatusRecord:
    def test_to_dict_omits_error_unless_failed(self):
        record = JobStatusRecord(
            job_id="J1", doc_id="D1", status=JobStatus.ACTIVE, error="stale"
        )
        assert record.to_dict() == {"doc_id": "D1", "status": "active"}

    def test_to_dict_includes_error_when_failed(self):
        record = JobStatusRecord(
            job_id="J1", doc_id="D1", status=JobStatus.FAILED, error="boom"
        )
        assert record.to_dict()["error"] == "boom"


class TestDeliveryConfig:
    def test_defaults_single_attempt_no_history(self):
        config = DeliveryConfig()
        assert config.attempts == 1
        assert config.remove_on_complete is True
        assert config.remove_on_fail is True

    def test_frozen(self):
        with pytest.raises(AttributeError):
            DeliveryConfig().attempts = 3


class TestQueueEntry:
    def test_defaults(self):
        entry = QueueEntry(job_id="J1", name="translate-document", payload={})
        assert entry.status == EntryStatus.PENDING
        assert entry.queue_name == "translation-queue"
        assert entry.attempt == 0
        assert entry.created_at is not None

    def test_attempts_left(self):
        entry = QueueEntry(job_id="J1", name="n", payload={}, max_attempts=2)
        assert entry.attempts_left
        entry.attempt = 2
        assert not entry.attempts_left


class TestQueueCounts:
    def test_total_is_waiting_plus_active(self):
        assert QueueCounts(waiting=7, active=3).total == 10
        assert QueueCounts().total == 0
