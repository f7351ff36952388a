"""Retry and circuit breaking for reads against the shared store.

Only idempotent reads are wrapped. Writes such as lock acquisition must not be
retried: a retry after an ambiguous failure could observe this caller's own
write and report a conflict.

Usage:
    from docflow.core.resilience import with_db_retry

    row = await with_db_retry(pool, lambda conn: conn.fetchrow(query, job_id))
"""

import asyncio
import random
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import asyncpg
import structlog

from docflow.errors import CircuitOpenError

logger = structlog.get_logger(__name__)

SERVICE_NAME = "postgres"

# SQLSTATE classes worth retrying: connection exceptions, operator
# intervention (shutdown/restart) and transaction rollback (serialization,
# deadlock).
TRANSIENT_SQLSTATE_PREFIXES = ("08", "57P", "40")

TRANSIENT_EXCEPTIONS = (
    asyncpg.InterfaceError,
    asyncpg.InternalClientError,
    asyncpg.TooManyConnectionsError,
    asyncio.TimeoutError,
    OSError,
)


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to try a read and how long to wait in between."""

    max_attempts: int = 3
    base_delay_s: float = 0.1
    max_delay_s: float = 3.0
    jitter: float = 0.25

    def delay(self, attempt: int) -> float:
        """Delay after the given 0-indexed attempt: doubling, capped, plus jitter."""
        delay = min(self.base_delay_s * (2**attempt), self.max_delay_s)
        return delay * (1 + self.jitter * random.random())


def is_transient(error: BaseException) -> bool:
    """True for connection loss, timeouts, pool exhaustion and retryable SQLSTATEs."""
    if isinstance(error, TRANSIENT_EXCEPTIONS):
        return True
    if isinstance(error, asyncpg.PostgresError):
        sqlstate = getattr(error, "sqlstate", None) or ""
        return sqlstate.startswith(TRANSIENT_SQLSTATE_PREFIXES)
    return False


class CircuitBreaker:
    """
    Consecutive-failure breaker.

    After `threshold` calls that exhausted their retries, the breaker opens and
    rejects calls for `cooldown_s`. The first call after the cooldown is let
    through; success closes the breaker, failure re-opens it.
    """

    def __init__(self, name: str, threshold: int = 5, cooldown_s: float = 30.0):
        self.name = name
        self.threshold = threshold
        self.cooldown_s = cooldown_s
        self.failures = 0
        self.last_failure_at: Optional[float] = None
        self.opened_until: Optional[float] = None

    @property
    def is_open(self) -> bool:
        return self.opened_until is not None

    def allow(self) -> bool:
        if self.opened_until is None:
            return True
        if time.time() >= self.opened_until:
            logger.info("circuit_half_open", service=self.name, failures=self.failures)
            return True
        return False

    def record_success(self) -> None:
        if self.failures or self.is_open:
            logger.info("circuit_closed", service=self.name, previous_failures=self.failures)
        self.reset()

    def reset(self) -> None:
        self.failures = 0
        self.last_failure_at = None
        self.opened_until = None

    def record_failure(self) -> None:
        self.failures += 1
        self.last_failure_at = time.time()
        if self.failures >= self.threshold:
            self.opened_until = self.last_failure_at + self.cooldown_s
            logger.warning(
                "circuit_opened",
                service=self.name,
                failures=self.failures,
                cooldown_s=self.cooldown_s,
            )

    def status(self) -> dict[str, Any]:
        return {
            "failures": self.failures,
            "is_open": self.is_open,
            "last_failure_at": self.last_failure_at,
        }


_breaker = CircuitBreaker(SERVICE_NAME)


async def with_db_retry(
    pool: asyncpg.Pool,
    operation: Callable[[asyncpg.Connection], Awaitable[Any]],
    policy: Optional[RetryPolicy] = None,
) -> Any:
    """Run operation on a pooled connection, retrying transient failures.

    Raises:
        CircuitOpenError: If the breaker is open
        Exception: The last transient error once attempts are exhausted, or
            the first non-transient error unchanged
    """
    policy = policy or RetryPolicy()

    if not _breaker.allow():
        raise CircuitOpenError(SERVICE_NAME)

    for attempt in range(policy.max_attempts):
        try:
            async with pool.acquire() as conn:
                result = await operation(conn)
        except Exception as e:
            if not is_transient(e):
                raise

            if attempt == policy.max_attempts - 1:
                _breaker.record_failure()
                logger.error(
                    "db_retries_exhausted",
                    attempts=policy.max_attempts,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise

            delay = policy.delay(attempt)
            logger.warning(
                "db_retry_attempt",
                attempt=attempt + 1,
                delay_s=round(delay, 2),
                error=str(e),
                error_type=type(e).__name__,
            )
            await asyncio.sleep(delay)
        else:
            _breaker.record_success()
            return result


def get_circuit_status() -> dict[str, dict[str, Any]]:
    """Breaker state keyed by service, for health output."""
    return {SERVICE_NAME: _breaker.status()}


def reset_circuits() -> None:
    """Close the breaker and clear its history."""
    _breaker.reset()
