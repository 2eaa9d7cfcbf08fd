"""
Storage for conversations and long-term memory.

The agent only depends on the ConversationStore / MemoryStore interfaces;
SQL-backed and in-process implementations are provided.
"""

from .base import ConversationStore, MemoryCategory, MemoryEntry, MemoryStore, format_daily_log
from .in_memory import InMemoryConversationStore, InMemoryMemoryStore
from .sql import SQLConversationStore, SQLMemoryStore

__all__ = [
    "ConversationStore",
    "MemoryCategory",
    "MemoryEntry",
    "MemoryStore",
    "format_daily_log",
    "InMemoryConversationStore",
    "InMemoryMemoryStore",
    "SQLConversationStore",
    "SQLMemoryStore",
]
