"""Per-principal mutual-exclusion leases with expiry."""

import structlog

from docflow.repositories.utils import affected_rows, translate_store_errors

logger = structlog.get_logger(__name__)


def lock_key(domain: str, principal: str) -> str:
    """
    Build the store key for a (domain, principal) lock.

    A leading "lock:" on the domain is dropped so callers passing either
    "document-processing" or "lock:document-processing" get the same key.

    Args:
        domain: Lock namespace (e.g., "document-processing")
        principal: User identity (e.g., email)

    Returns:
        Key of the form "lock:{domain}:{principal}"
    """
    clean_domain = domain[len("lock:"):] if domain.startswith("lock:") else domain
    return f"lock:{clean_domain}:{principal}"


class LockManager:
    """
    Atomic acquire/release of per-principal leases.

    Acquisition is a single INSERT ... ON CONFLICT statement that creates the
    row, or takes over a row whose lease has already expired. A live lease is
    never overwritten, so two concurrent acquisitions for the same key cannot
    both succeed. Leases self-expire, which is the only recovery path for a
    holder that never releases.
    """

    def __init__(self, pool):
        self._pool = pool

    async def acquire(self, domain: str, principal: str, ttl_seconds: int) -> bool:
        """
        Try to take the lock for principal.

        Returns:
            True if this call created the lease, False if a live lease exists

        Raises:
            StoreError: If the store is unavailable
        """
        key = lock_key(domain, principal)
        query = """
            INSERT INTO locks (key, domain, principal, acquired_at, expires_at)
            VALUES ($1, $2, $3, now(), now() + make_interval(secs => $4))
            ON CONFLICT (key) DO UPDATE SET
                acquired_at = EXCLUDED.acquired_at,
                expires_at = EXCLUDED.expires_at
            WHERE locks.expires_at <= now()
            RETURNING key
        """
        with translate_store_errors("lock_acquire"):
            async with self._pool.acquire() as conn:
                row = await conn.fetchval(
                    query, key, domain, principal, float(ttl_seconds)
                )

        acquired = row is not None
        logger.debug(
            "lock_acquire", key=key, acquired=acquired, ttl_seconds=ttl_seconds
        )
        return acquired

    async def release(self, domain: str, principal: str) -> None:
        """
        Remove the lock unconditionally. Releasing a missing lock is a no-op.

        Raises:
            StoreError: If the store is unavailable
        """
        key = lock_key(domain, principal)
        with translate_store_errors("lock_release"):
            async with self._pool.acquire() as conn:
                status = await conn.execute("DELETE FROM locks WHERE key = $1", key)

        if affected_rows(status):
            logger.info("lock_released", key=key)
        else:
            logger.warning("lock_release_missing", key=key)
