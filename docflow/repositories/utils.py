"""Utility functions for repository operations."""

import asyncio
import json
from contextlib import contextmanager
from typing import Iterator, Optional, Union

import asyncpg

from docflow.errors import StoreError

# Exceptions that mean "the store failed", as opposed to a bug in the caller.
STORE_EXCEPTIONS = (
    asyncpg.PostgresError,
    asyncpg.InterfaceError,
    asyncpg.InternalClientError,
    OSError,
    asyncio.TimeoutError,
)


@contextmanager
def translate_store_errors(operation: str) -> Iterator[None]:
    """Re-raise database failures inside the block as StoreError.

    Usage:
        with translate_store_errors("lock_acquire"):
            row = await conn.fetchrow(...)
    """
    try:
        yield
    except StoreError:
        raise
    except STORE_EXCEPTIONS as e:
        raise StoreError(operation, e) from e


def ensure_json(value: Optional[Union[str, dict, list]]) -> Optional[Union[dict, list]]:
    """
    Normalize JSONB values from database to Python dict/list.

    asyncpg returns JSONB as str unless a codec is configured.
    """
    if value is None:
        return None

    if isinstance(value, (dict, list)):
        return value

    if isinstance(value, str):
        return json.loads(value)

    raise TypeError(
        f"Expected str, dict, list, or None for JSONB value, got {type(value).__name__}"
    )


def affected_rows(status: str) -> int:
    """Parse the row count from an asyncpg command status ("DELETE 3")."""
    try:
        return int(status.split()[-1])
    except (AttributeError, IndexError, ValueError):
        return 0
