"""Reclamation sweep: purge dependent data for accounts marked deleted."""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol, Sequence

import structlog
from prometheus_client import Counter

from docflow.config import Settings, get_settings
from docflow.jobs.models import CleanupCandidate
from docflow.repositories.accounts import AccountRepository
from docflow.repositories.chat_history import ChatHistoryRepository
from docflow.repositories.documents import DocumentRepository

logger = structlog.get_logger(__name__)

SWEEP_CANDIDATES_TOTAL = Counter(
    "docflow_sweep_candidates_total",
    "Accounts processed by the reclamation sweep",
    ["outcome"],
)


class DependentStore(Protocol):
    """A store holding per-user data that must be purged on account deletion."""

    name: str

    async def delete_all_for_user(self, user_id: str) -> int:
        """Delete all of user_id's rows. Must be a no-op when none remain."""
        ...


@dataclass
class SweepResult:
    """Outcome of one sweep run."""

    fetched: int = 0
    completed: int = 0
    not_marked: int = 0
    failed: int = 0
    failed_user_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "fetched": self.fetched,
            "completed": self.completed,
            "not_marked": self.not_marked,
            "failed": self.failed,
            "failed_user_ids": list(self.failed_user_ids),
        }


class PurgeFailed(Exception):
    """One or more dependent-store purges failed for a candidate."""

    def __init__(self, user_id: str, errors: dict[str, BaseException]):
        self.user_id = user_id
        self.errors = errors
        stores = ", ".join(sorted(errors))
        super().__init__(f"Purge failed for {user_id} in: {stores}")


class ReclamationSweep:
    """
    Batch purge of dependent data for soft-deleted accounts.

    Each candidate is reclaimed in its own task with its own error capture,
    so one failing account never aborts or hides the others. Within a
    candidate all dependent stores are purged concurrently and all of them
    must succeed before the account is marked complete; otherwise the flag
    stays false and the account is picked up again on the next run.
    """

    def __init__(
        self,
        accounts: AccountRepository,
        dependents: Sequence[DependentStore],
        batch_size: int = 100,
        concurrency: int = 5,
    ):
        self._accounts = accounts
        self._dependents = list(dependents)
        self._batch_size = batch_size
        self._concurrency = concurrency

    @classmethod
    def from_pool(cls, pool, settings: Optional[Settings] = None) -> "ReclamationSweep":
        settings = settings or get_settings()
        return cls(
            accounts=AccountRepository(pool),
            dependents=[DocumentRepository(pool), ChatHistoryRepository(pool)],
            batch_size=settings.sweep_batch_size,
            concurrency=settings.sweep_concurrency,
        )

    async def run_once(self) -> SweepResult:
        """
        Reclaim up to batch_size pending accounts.

        Raises:
            StoreError: Only if fetching candidates fails
        """
        candidates = await self._accounts.fetch_cleanup_candidates(
            limit=self._batch_size
        )
        if not candidates:
            logger.debug("sweep_no_candidates")
            return SweepResult()

        logger.info("sweep_started", candidates=len(candidates))

        semaphore = asyncio.Semaphore(self._concurrency)
        outcomes = await asyncio.gather(
            *(self._reclaim_bounded(c, semaphore) for c in candidates)
        )

        result = SweepResult(fetched=len(candidates))
        for candidate, outcome in zip(candidates, outcomes):
            if outcome == "completed":
                result.completed += 1
            elif outcome == "not_marked":
                result.not_marked += 1
            else:
                result.failed += 1
                result.failed_user_ids.append(candidate.user_id)

        logger.info(
            "sweep_finished",
            fetched=result.fetched,
            completed=result.completed,
            not_marked=result.not_marked,
            failed=result.failed,
        )
        return result

    async def _reclaim_bounded(
        self, candidate: CleanupCandidate, semaphore: asyncio.Semaphore
    ) -> str:
        """Returns the candidate's outcome: completed, not_marked or failed."""
        async with semaphore:
            try:
                marked = await self._reclaim(candidate)
            except Exception as e:
                logger.error(
                    "sweep_candidate_failed",
                    user_id=candidate.user_id,
                    account_id=str(candidate.id),
                    error=str(e),
                    error_type=type(e).__name__,
                )
                outcome = "failed"
            else:
                outcome = "completed" if marked else "not_marked"
            SWEEP_CANDIDATES_TOTAL.labels(outcome=outcome).inc()
            return outcome

    async def _reclaim(self, candidate: CleanupCandidate) -> bool:
        """
        Purge every dependent store for one account, then mark it complete.

        Returns False when the account row was gone or no longer deleted at
        mark time; its dependent data is purged either way.
        """
        results = await asyncio.gather(
            *(store.delete_all_for_user(candidate.user_id) for store in self._dependents),
            return_exceptions=True,
        )

        errors = {
            store.name: outcome
            for store, outcome in zip(self._dependents, results)
            if isinstance(outcome, BaseException)
        }
        if errors:
            raise PurgeFailed(candidate.user_id, errors)

        deleted = {
            f"{store.name}_deleted": count
            for store, count in zip(self._dependents, results)
        }
        marked = await self._accounts.mark_cleanup_completed(candidate.id)
        if not marked:
            logger.warning(
                "sweep_candidate_not_marked",
                user_id=candidate.user_id,
                account_id=str(candidate.id),
                **deleted,
            )
            return False

        logger.info("sweep_candidate_cleaned", user_id=candidate.user_id, **deleted)
        return True
