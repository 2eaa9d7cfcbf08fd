"""
SQLAlchemy-backed conversation and memory stores.
"""

from datetime import date, datetime, timezone
from typing import Any

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from ..agent.conversation import Conversation
from ..llm.base import Message, ToolCall, ToolResult
from ..models import ConversationRecord, MemoryRecord, MessageRecord
from .base import MemoryCategory, MemoryEntry, day_bounds, format_daily_log

logger = structlog.get_logger()


def _aware(value: datetime | None) -> datetime | None:
    """SQLite drops tzinfo; stored times are always UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _dump_calls(calls: list[ToolCall] | None) -> list[dict[str, Any]] | None:
    if calls is None:
        return None
    return [{"id": c.id, "name": c.name, "arguments": c.arguments} for c in calls]


def _dump_results(results: list[ToolResult] | None) -> list[dict[str, Any]] | None:
    if results is None:
        return None
    return [
        {"id": r.id, "tool_call_id": r.tool_call_id, "content": r.content, "error": r.error}
        for r in results
    ]


def _load_message(record: MessageRecord) -> Message:
    calls = None
    if record.tool_calls is not None:
        calls = [ToolCall(id=c["id"], name=c["name"], arguments=c.get("arguments", "")) for c in record.tool_calls]

    results = None
    if record.tool_results is not None:
        results = [
            ToolResult(
                tool_call_id=r["tool_call_id"],
                content=r.get("content"),
                error=r.get("error"),
                id=r["id"],
            )
            for r in record.tool_results
        ]

    return Message(
        role=record.role,  # type: ignore
        content=record.content,
        tool_calls=calls,
        tool_results=results,
        timestamp=_aware(record.timestamp),
        id=record.id,
    )


class SQLConversationStore:
    """Conversation store on one long-lived AsyncSession.

    ``append`` stages rows; ``save`` commits them.
    """

    def __init__(self, session_maker: async_sessionmaker):
        self._session: AsyncSession = session_maker()

    async def close(self) -> None:
        await self._session.close()

    async def latest(self) -> Conversation | None:
        result = await self._session.execute(
            select(ConversationRecord)
            .options(selectinload(ConversationRecord.messages))
            .order_by(ConversationRecord.updated_at.desc())
            .limit(1)
        )
        record = result.scalar_one_or_none()
        if record is None:
            return None

        conversation = Conversation(
            model=record.model,
            system_prompt=record.system_prompt,
            title=record.title,
            id=record.id,
            created_at=_aware(record.created_at),
            updated_at=_aware(record.updated_at),
        )
        for message_record in record.messages:
            message = _load_message(message_record)
            conversation.messages.append(message)
            message.conversation = conversation

        logger.info("Loaded conversation", conversation_id=conversation.id, messages=conversation.message_count)
        return conversation

    async def create(self, model: str, system_prompt: str | None) -> Conversation:
        conversation = Conversation(model=model, system_prompt=system_prompt or None)
        self._session.add(ConversationRecord(
            id=conversation.id,
            model=conversation.model,
            system_prompt=conversation.system_prompt,
            created_at=conversation.created_at,
            updated_at=conversation.updated_at,
        ))
        await self._session.commit()
        logger.info("Created conversation", conversation_id=conversation.id, model=model)
        return conversation

    async def append(self, conversation: Conversation, message: Message) -> None:
        conversation.add_message(message)

        record = await self._session.get(ConversationRecord, conversation.id)
        if record is None:
            record = ConversationRecord(
                id=conversation.id,
                model=conversation.model,
                system_prompt=conversation.system_prompt,
                created_at=conversation.created_at,
            )
            self._session.add(record)
        record.title = conversation.title
        record.updated_at = conversation.updated_at

        self._session.add(MessageRecord(
            id=message.id,
            conversation_id=conversation.id,
            position=conversation.message_count - 1,
            role=message.role,
            content=message.content,
            timestamp=message.timestamp,
            tool_calls=_dump_calls(message.tool_calls),
            tool_results=_dump_results(message.tool_results),
        ))

    async def save(self) -> None:
        await self._session.commit()

    async def delete(self, conversation: Conversation) -> None:
        """Delete a conversation and, by cascade, its messages."""
        record = await self._session.get(
            ConversationRecord,
            conversation.id,
            options=[selectinload(ConversationRecord.messages)],
        )
        if record is not None:
            await self._session.delete(record)
            await self._session.commit()
            logger.info("Deleted conversation", conversation_id=conversation.id)


def _load_entry(record: MemoryRecord) -> MemoryEntry:
    return MemoryEntry(
        content=record.content,
        category=MemoryCategory(record.category),
        tags=list(record.tags or []),
        importance=record.importance,
        source=record.source,
        id=record.id,
        created_at=_aware(record.created_at),
        updated_at=_aware(record.updated_at),
    )


class SQLMemoryStore:
    """Memory store; every call runs in its own session."""

    def __init__(self, session_maker: async_sessionmaker):
        self._session_maker = session_maker

    async def add(self, entry: MemoryEntry) -> None:
        async with self._session_maker() as session:
            session.add(MemoryRecord(
                id=entry.id,
                content=entry.content,
                category=entry.category.value,
                tags=list(entry.tags),
                importance=entry.importance,
                source=entry.source,
                created_at=entry.created_at,
                updated_at=entry.updated_at,
            ))
            await session.commit()

    async def search(self, query: str, limit: int = 10) -> list[MemoryEntry]:
        async with self._session_maker() as session:
            result = await session.execute(
                select(MemoryRecord)
                .where(func.lower(MemoryRecord.content).contains(query.lower(), autoescape=True))
                .order_by(MemoryRecord.importance.desc(), MemoryRecord.updated_at.desc())
                .limit(limit)
            )
            return [_load_entry(r) for r in result.scalars().all()]

    async def by_category(self, category: MemoryCategory, limit: int = 20) -> list[MemoryEntry]:
        async with self._session_maker() as session:
            result = await session.execute(
                select(MemoryRecord)
                .where(MemoryRecord.category == category.value)
                .order_by(MemoryRecord.updated_at.desc())
                .limit(limit)
            )
            return [_load_entry(r) for r in result.scalars().all()]

    async def by_tag(self, tag: str, limit: int = 10) -> list[MemoryEntry]:
        # JSON membership is not portable across backends; filter here
        async with self._session_maker() as session:
            result = await session.execute(
                select(MemoryRecord).order_by(MemoryRecord.updated_at.desc())
            )
            matches = [r for r in result.scalars().all() if tag in (r.tags or [])]
            return [_load_entry(r) for r in matches[:limit]]

    async def get(self, entry_id: str) -> MemoryEntry | None:
        async with self._session_maker() as session:
            record = await session.get(MemoryRecord, entry_id)
            return _load_entry(record) if record is not None else None

    async def update(
        self,
        entry: MemoryEntry,
        content: str | None = None,
        tags: list[str] | None = None,
    ) -> None:
        if content is not None:
            entry.content = content
        if tags is not None:
            entry.tags = list(tags)
        entry.updated_at = datetime.now(timezone.utc)

        async with self._session_maker() as session:
            record = await session.get(MemoryRecord, entry.id)
            if record is None:
                logger.warning("Memory entry not found", entry_id=entry.id)
                return
            record.content = entry.content
            record.tags = list(entry.tags)
            record.updated_at = entry.updated_at
            await session.commit()

    async def delete(self, entry: MemoryEntry) -> None:
        async with self._session_maker() as session:
            record = await session.get(MemoryRecord, entry.id)
            if record is not None:
                await session.delete(record)
                await session.commit()
                logger.info("Deleted memory entry", entry_id=entry.id)

    async def created_on(self, day: date) -> list[MemoryEntry]:
        start, end = day_bounds(day)
        async with self._session_maker() as session:
            result = await session.execute(
                select(MemoryRecord)
                .where(MemoryRecord.created_at >= start, MemoryRecord.created_at < end)
                .order_by(MemoryRecord.created_at.asc())
            )
            return [_load_entry(r) for r in result.scalars().all()]

    async def export_daily_log(self, day: date) -> str:
        return format_daily_log(day, await self.created_on(day))
