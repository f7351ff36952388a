#!/usr/bin/env python3
"""Create docflow tables and indexes in DATABASE_URL."""
import asyncio

import structlog

from docflow.config import get_settings
from docflow.core.database import apply_schema, close_database, init_database
from docflow.core.logging import configure_logging

logger = structlog.get_logger(__name__)

TABLES = (
    "locks",
    "job_status",
    "job_queue",
    "worker_heartbeats",
    "accounts",
    "documents",
    "chat_histories",
)


async def main():
    settings = get_settings()
    configure_logging(settings)

    pool = await init_database(settings)
    try:
        await apply_schema(pool)

        # Verify
        async with pool.acquire() as conn:
            count = await conn.fetchval(
                "SELECT COUNT(*) FROM information_schema.tables "
                "WHERE table_schema = 'public' AND table_name = ANY($1::text[])",
                list(TABLES),
            )
        logger.info("schema_verified", tables_present=count, tables_expected=len(TABLES))
    finally:
        await close_database(pool)


if __name__ == "__main__":
    asyncio.run(main())
