"""Tests for account cleanup repository."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from docflow.errors import StoreError
from docflow.jobs.types import AccountStatus
from docflow.repositories.accounts import AccountRepository


@pytest.fixture
def mock_pool():
    pool = MagicMock()
    conn = AsyncMock()
    pool.acquire.return_value.__aenter__.return_value = conn
    return pool, conn


def account_row(**overrides):
    now = datetime.now(timezone.utc)
    row = {
        "id": uuid4(),
        "user_id": "u1",
        "email": "u1@example.com",
        "status": "deleted",
        "cleanup_completed": False,
        "hard_delete_at": now + timedelta(days=30),
        "updated_at": now,
    }
    row.update(overrides)
    return row


class TestFetchCleanupCandidates:
    @pytest.mark.asyncio
    async def test_maps_rows(self, mock_pool):
        pool, conn = mock_pool
        conn.fetch.return_value = [account_row(), account_row(user_id="u2")]

        candidates = await AccountRepository(pool).fetch_cleanup_candidates(limit=100)

        assert [c.user_id for c in candidates] == ["u1", "u2"]
        assert candidates[0].status == AccountStatus.DELETED
        assert candidates[0].cleanup_completed is False

    @pytest.mark.asyncio
    async def test_filters_and_limits(self, mock_pool):
        pool, conn = mock_pool
        conn.fetch.return_value = []

        await AccountRepository(pool).fetch_cleanup_candidates(limit=100)

        query, limit = conn.fetch.call_args[0]
        assert "status = 'deleted'" in query
        assert "cleanup_completed = FALSE" in query
        assert "ORDER BY hard_delete_at" in query
        assert limit == 100

    @pytest.mark.asyncio
    async def test_fetch_failure_is_store_error(self, mock_pool):
        pool, conn = mock_pool
        conn.fetch.side_effect = OSError("down")

        with pytest.raises(StoreError):
            await AccountRepository(pool).fetch_cleanup_candidates()


class TestMarkCleanupCompleted:
    @pytest.mark.asyncio
    async def test_sets_flag_and_timestamp(self, mock_pool):
        pool, conn = mock_pool
        conn.execute.return_value = "UPDATE 1"
        account_id = uuid4()

        assert await AccountRepository(pool).mark_cleanup_completed(account_id) is True

        query, arg = conn.execute.call_args[0]
        assert "cleanup_completed = TRUE" in query
        assert "updated_at = now()" in query
        assert arg == account_id

    @pytest.mark.asyncio
    async def test_missing_account(self, mock_pool):
        pool, conn = mock_pool
        conn.execute.return_value = "UPDATE 0"

        assert await AccountRepository(pool).mark_cleanup_completed(uuid4()) is False


class TestMarkDeleted:
    @pytest.mark.asyncio
    async def test_soft_delete_sets_deadline(self, mock_pool):
        pool, conn = mock_pool
        conn.fetchrow.return_value = account_row()

        candidate = await AccountRepository(pool).mark_deleted("u1", grace_days=30)

        assert candidate.status == AccountStatus.DELETED
        assert candidate.hard_delete_at is not None
        query, user_id, grace_days = conn.fetchrow.call_args[0]
        assert "cleanup_completed = FALSE" in query
        assert "make_interval(days => $2)" in query
        assert (user_id, grace_days) == ("u1", 30)

    @pytest.mark.asyncio
    async def test_unknown_user(self, mock_pool):
        pool, conn = mock_pool
        conn.fetchrow.return_value = None

        assert await AccountRepository(pool).mark_deleted("ghost") is None
