"""Repository for generated documents."""

import structlog

from docflow.repositories.utils import affected_rows, translate_store_errors

logger = structlog.get_logger(__name__)


class DocumentRepository:
    """Generated documents owned by a user."""

    name = "documents"

    def __init__(self, pool):
        self._pool = pool

    async def delete_all_for_user(self, user_id: str) -> int:
        """Delete every document for user_id. Safe to repeat; returns rows deleted."""
        with translate_store_errors("documents_purge"):
            async with self._pool.acquire() as conn:
                result = await conn.execute(
                    "DELETE FROM documents WHERE user_id = $1", user_id
                )
        deleted = affected_rows(result)
        logger.debug("documents_purged", user_id=user_id, deleted=deleted)
        return deleted
