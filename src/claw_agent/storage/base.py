"""
Storage interfaces for conversations and long-term memory.
"""

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from enum import Enum
from typing import Protocol

from ..agent.conversation import Conversation
from ..llm.base import Message


class MemoryCategory(str, Enum):
    """Categories for memory entries."""
    GENERAL = "General"
    PERSONAL = "Personal"
    WORK = "Work"
    PROJECT = "Project"
    DECISION = "Decision"
    LESSON = "Lesson"
    TODO = "To-Do"
    FACT = "Fact"

    @classmethod
    def parse(cls, value: str) -> "MemoryCategory | None":
        """Look up a category by name or value, ignoring case."""
        wanted = value.strip().lower()
        for category in cls:
            if wanted in (category.value.lower(), category.name.lower()):
                return category
        return None


@dataclass
class MemoryEntry:
    """A piece of long-term memory."""

    content: str
    category: MemoryCategory = MemoryCategory.GENERAL
    tags: list[str] = field(default_factory=list)
    importance: int = 5  # 0-10 scale
    source: str | None = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self) -> None:
        self.importance = min(max(self.importance, 0), 10)


class ConversationStore(Protocol):
    async def latest(self) -> Conversation | None:
        """The most recently updated conversation, if any."""
        ...

    async def create(self, model: str, system_prompt: str | None) -> Conversation:
        ...

    async def append(self, conversation: Conversation, message: Message) -> None:
        ...

    async def save(self) -> None:
        ...


class MemoryStore(Protocol):
    async def add(self, entry: MemoryEntry) -> None:
        ...

    async def search(self, query: str, limit: int = 10) -> list[MemoryEntry]:
        """Substring search ordered by importance, then recency."""
        ...

    async def by_category(self, category: MemoryCategory, limit: int = 20) -> list[MemoryEntry]:
        ...

    async def by_tag(self, tag: str, limit: int = 10) -> list[MemoryEntry]:
        ...

    async def get(self, entry_id: str) -> MemoryEntry | None:
        ...

    async def update(
        self,
        entry: MemoryEntry,
        content: str | None = None,
        tags: list[str] | None = None,
    ) -> None:
        """Replace the given fields and bump ``updated_at``."""
        ...

    async def delete(self, entry: MemoryEntry) -> None:
        ...

    async def created_on(self, day: date) -> list[MemoryEntry]:
        """Entries created during the given UTC day, oldest first."""
        ...

    async def export_daily_log(self, day: date) -> str:
        ...


def day_bounds(day: date) -> tuple[datetime, datetime]:
    """Start (inclusive) and end (exclusive) of a UTC day."""
    start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    return start, start + timedelta(days=1)


def format_daily_log(day: date, entries: list[MemoryEntry]) -> str:
    """Render one day of memories as markdown.

    Example:
        # Daily Log: 2026-10-18

        ## 09:30 - Decision
        Use SQLite for local storage
        _Tags: storage, db_
    """
    lines = [f"# Daily Log: {day.isoformat()}", ""]
    for entry in entries:
        lines.append(f"## {entry.created_at.astimezone(timezone.utc):%H:%M} - {entry.category.value}")
        lines.append(entry.content)
        if entry.tags:
            lines.append(f"_Tags: {', '.join(entry.tags)}_")
        lines.append("")
    return "\n".join(lines) + "\n"
