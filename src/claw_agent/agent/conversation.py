"""
Conversation state owned by the agent.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

from ..llm.base import Message

TITLE_LENGTH = 50


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(eq=False)
class Conversation:
    """A conversation and the messages it owns."""

    model: str
    system_prompt: str | None = None
    title: str | None = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)
    messages: list[Message] = field(default_factory=list)

    def add_message(self, message: Message) -> None:
        """Append a message, taking ownership of it."""
        self.messages.append(message)
        message.conversation = self
        self.updated_at = _now()

        # Title defaults to the opening of the first user message
        if self.title is None and message.role == "user":
            self.title = message.content[:TITLE_LENGTH]

    @property
    def message_count(self) -> int:
        return len(self.messages)

    @property
    def last_message_date(self) -> datetime | None:
        return self.messages[-1].timestamp if self.messages else None

    def history(self, max_messages: int) -> list[Message]:
        """Messages to send to the model: system prompt plus the most recent messages.

        A window never starts with tool results whose calls were cut off, and
        tool calls that never got results are left out.
        """
        recent = self.messages[-max_messages:] if max_messages > 0 else []
        while recent and recent[0].role == "tool":
            recent = recent[1:]

        history: list[Message] = []
        if self.system_prompt:
            history.append(Message(role="system", content=self.system_prompt, timestamp=None))
        for position, message in enumerate(recent):
            if message.tool_calls and not _answered(recent, position):
                continue
            history.append(message)
        return history


def _answered(messages: list[Message], position: int) -> bool:
    following = messages[position + 1] if position + 1 < len(messages) else None
    return following is not None and following.role == "tool"
