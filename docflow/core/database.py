"""asyncpg pool lifecycle."""

from typing import Optional

import asyncpg
import structlog

from docflow.config import Settings
from docflow.core.schema import SCHEMA

logger = structlog.get_logger(__name__)


async def init_database(settings: Settings) -> asyncpg.Pool:
    """Create the asyncpg connection pool for the shared store."""
    logger.info(
        "database_connecting",
        url_prefix=settings.database_url.split("@")[-1][:50],
    )
    pool = await asyncpg.create_pool(
        settings.database_url,
        min_size=settings.db_pool_min_size,
        max_size=settings.db_pool_max_size,
        timeout=10,
        command_timeout=settings.db_command_timeout_s,
    )
    logger.info(
        "database_pool_created",
        min_size=settings.db_pool_min_size,
        max_size=settings.db_pool_max_size,
    )
    return pool


async def close_database(pool: Optional[asyncpg.Pool]) -> None:
    """Close the pool if one was created."""
    if pool is None:
        return
    await pool.close()
    logger.info("database_pool_closed")


async def apply_schema(pool: asyncpg.Pool) -> None:
    """Create all tables and indexes if missing."""
    async with pool.acquire() as conn:
        await conn.execute(SCHEMA)
    logger.info("schema_applied")
