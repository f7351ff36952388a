"""Database repositories backing the shared store."""

from docflow.repositories.accounts import AccountRepository
from docflow.repositories.chat_history import ChatHistoryRepository
from docflow.repositories.documents import DocumentRepository
from docflow.repositories.locks import LockManager, lock_key
from docflow.repositories.queue import JobQueue
from docflow.repositories.status import JobStatusStore

__all__ = [
    "AccountRepository",
    "ChatHistoryRepository",
    "DocumentRepository",
    "JobQueue",
    "JobStatusStore",
    "LockManager",
    "lock_key",
]
