"""Repository for chatbot conversation histories."""

import structlog

from docflow.repositories.utils import affected_rows, translate_store_errors

logger = structlog.get_logger(__name__)


class ChatHistoryRepository:
    name = "chat_histories"

    def __init__(self, pool):
        self._pool = pool

    async def delete_all_for_user(self, user_id: str) -> int:
        with translate_store_errors("chat_history_purge"):
            async with self._pool.acquire() as conn:
                result = await conn.execute(
                    "DELETE FROM chat_histories WHERE user_id = $1", user_id
                )
        deleted = affected_rows(result)
        logger.debug("chat_histories_purged", user_id=user_id, deleted=deleted)
        return deleted
