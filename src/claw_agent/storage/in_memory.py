"""
In-process stores, used for ephemeral sessions and tests.
"""

from datetime import date, datetime, timezone

from ..agent.conversation import Conversation
from ..llm.base import Message
from .base import MemoryCategory, MemoryEntry, day_bounds, format_daily_log


class InMemoryConversationStore:
    """Keeps conversations in a list; ``save`` only counts calls."""

    def __init__(self):
        self.conversations: list[Conversation] = []
        self.save_count = 0

    async def latest(self) -> Conversation | None:
        if not self.conversations:
            return None
        return max(self.conversations, key=lambda c: c.updated_at)

    async def create(self, model: str, system_prompt: str | None) -> Conversation:
        conversation = Conversation(model=model, system_prompt=system_prompt or None)
        self.conversations.append(conversation)
        return conversation

    async def append(self, conversation: Conversation, message: Message) -> None:
        conversation.add_message(message)

    async def save(self) -> None:
        self.save_count += 1


class InMemoryMemoryStore:
    """Keeps memory entries in a list with substring search."""

    def __init__(self, entries: list[MemoryEntry] | None = None):
        self.entries: list[MemoryEntry] = list(entries or [])

    async def add(self, entry: MemoryEntry) -> None:
        self.entries.append(entry)

    async def search(self, query: str, limit: int = 10) -> list[MemoryEntry]:
        needle = query.lower()
        matches = [e for e in self.entries if needle in e.content.lower()]
        matches.sort(key=lambda e: (e.importance, e.updated_at), reverse=True)
        return matches[:limit]

    async def by_category(self, category: MemoryCategory, limit: int = 20) -> list[MemoryEntry]:
        matches = [e for e in self.entries if e.category == category]
        matches.sort(key=lambda e: e.updated_at, reverse=True)
        return matches[:limit]

    async def by_tag(self, tag: str, limit: int = 10) -> list[MemoryEntry]:
        matches = [e for e in self.entries if tag in e.tags]
        matches.sort(key=lambda e: e.updated_at, reverse=True)
        return matches[:limit]

    async def get(self, entry_id: str) -> MemoryEntry | None:
        return next((e for e in self.entries if e.id == entry_id), None)

    async def update(
        self,
        entry: MemoryEntry,
        content: str | None = None,
        tags: list[str] | None = None,
    ) -> None:
        now = datetime.now(timezone.utc)
        stored = await self.get(entry.id)
        targets = [entry] if stored is None or stored is entry else [entry, stored]
        for target in targets:
            if content is not None:
                target.content = content
            if tags is not None:
                target.tags = list(tags)
            target.updated_at = now

    async def delete(self, entry: MemoryEntry) -> None:
        self.entries = [e for e in self.entries if e.id != entry.id]

    async def created_on(self, day: date) -> list[MemoryEntry]:
        start, end = day_bounds(day)
        matches = [e for e in self.entries if start <= e.created_at < end]
        matches.sort(key=lambda e: e.created_at)
        return matches

    async def export_daily_log(self, day: date) -> str:
        return format_daily_log(day, await self.created_on(day))
