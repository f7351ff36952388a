"""Repository for account lifecycle and cleanup candidates."""

from typing import Any, Optional

import structlog

from docflow.core.resilience import with_db_retry
from docflow.jobs.models import CleanupCandidate
from docflow.jobs.types import AccountStatus
from docflow.repositories.utils import affected_rows, translate_store_errors

logger = structlog.get_logger(__name__)


class AccountRepository:
    """Account rows as seen by the deletion and reclamation paths."""

    def __init__(self, pool):
        self._pool = pool

    async def fetch_cleanup_candidates(self, limit: int = 100) -> list[CleanupCandidate]:
        """
        Accounts marked deleted whose dependent data is not purged yet.

        Ordered by hard-delete deadline so the most urgent accounts are
        reclaimed first.

        Args:
            limit: Max rows returned

        Returns:
            Up to limit candidates
        """
        query = """
            SELECT id, user_id, email, status, cleanup_completed,
                   hard_delete_at, updated_at
            FROM accounts
            WHERE status = 'deleted' AND cleanup_completed = FALSE
            ORDER BY hard_delete_at ASC NULLS LAST, updated_at ASC
            LIMIT $1
        """
        with translate_store_errors("candidate_fetch"):
            rows = await with_db_retry(
                self._pool, lambda conn: conn.fetch(query, limit)
            )
        return [self._row_to_candidate(row) for row in rows]

    async def mark_cleanup_completed(self, account_id: Any) -> bool:
        """Flag an account's dependent data as purged and touch updated_at."""
        query = """
            UPDATE accounts SET
                cleanup_completed = TRUE,
                updated_at = now()
            WHERE id = $1 AND status = 'deleted'
        """
        with translate_store_errors("candidate_complete"):
            async with self._pool.acquire() as conn:
                result = await conn.execute(query, account_id)
        return affected_rows(result) > 0

    async def mark_deleted(
        self, user_id: str, grace_days: int = 30
    ) -> Optional[CleanupCandidate]:
        """
        Soft-delete an account and schedule its hard delete.

        Resets cleanup_completed so the next sweep purges dependent data.

        Returns:
            The updated account, or None if user_id is unknown
        """
        query = """
            UPDATE accounts SET
                status = 'deleted',
                cleanup_completed = FALSE,
                hard_delete_at = now() + make_interval(days => $2),
                updated_at = now()
            WHERE user_id = $1
            RETURNING id, user_id, email, status, cleanup_completed,
                      hard_delete_at, updated_at
        """
        with translate_store_errors("account_mark_deleted"):
            async with self._pool.acquire() as conn:
                row = await conn.fetchrow(query, user_id, grace_days)

        if not row:
            logger.warning("account_not_found", user_id=user_id)
            return None

        logger.info(
            "account_marked_deleted",
            user_id=user_id,
            hard_delete_at=row["hard_delete_at"].isoformat()
            if row["hard_delete_at"]
            else None,
        )
        return self._row_to_candidate(row)

    def _row_to_candidate(self, row: Any) -> CleanupCandidate:
        return CleanupCandidate(
            id=row["id"],
            user_id=row["user_id"],
            email=row["email"],
            status=AccountStatus(row["status"]),
            cleanup_completed=row["cleanup_completed"],
            hard_delete_at=row["hard_delete_at"],
            updated_at=row["updated_at"],
        )
