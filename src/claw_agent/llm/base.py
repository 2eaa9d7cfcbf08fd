"""
Base classes for LLM providers.

The provider contract is a single lazy sequence of turn events: content
deltas, raw tool-call fragments, and a terminal ``Completed`` or ``Failed``.
"""

import json
import uuid
import weakref
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, AsyncIterator, Literal, Union

if TYPE_CHECKING:
    from ..agent.conversation import Conversation


Role = Literal["user", "assistant", "system", "tool"]


@dataclass
class ToolDefinition:
    """Definition of a tool that the LLM can use."""

    name: str
    description: str
    parameters: dict[str, Any]


@dataclass
class ToolCall:
    """A tool call made by the LLM.

    ``arguments`` is kept as the raw JSON text the model produced; the
    dispatcher parses it when the call is executed.
    """

    id: str
    name: str
    arguments: str = ""

    def decoded_arguments(self) -> dict[str, Any] | None:
        """Parse the argument text, or None if it is not a JSON object."""
        try:
            value = json.loads(self.arguments) if self.arguments.strip() else {}
        except ValueError:
            return None
        return value if isinstance(value, dict) else None


@dataclass
class ToolResult:
    """Result of one tool call. Exactly one of content or error is set."""

    tool_call_id: str
    content: str | None = None
    error: str | None = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self) -> None:
        if (self.content is None) == (self.error is None):
            raise ValueError("ToolResult needs exactly one of content or error")

    @classmethod
    def success(cls, tool_call_id: str, content: str) -> "ToolResult":
        return cls(tool_call_id=tool_call_id, content=content)

    @classmethod
    def failure(cls, tool_call_id: str, error: str) -> "ToolResult":
        return cls(tool_call_id=tool_call_id, error=error)

    @property
    def is_error(self) -> bool:
        return self.error is not None


@dataclass
class Message:
    """A message in the conversation."""

    role: Role
    content: str
    tool_calls: list[ToolCall] | None = None
    tool_results: list[ToolResult] | None = None
    timestamp: datetime | None = field(default_factory=lambda: datetime.now(timezone.utc))
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    _conversation: "weakref.ref[Conversation] | None" = field(
        default=None, init=False, repr=False, compare=False
    )

    @property
    def conversation(self) -> "Conversation | None":
        """The owning conversation, if it is still alive."""
        return self._conversation() if self._conversation is not None else None

    @conversation.setter
    def conversation(self, value: "Conversation | None") -> None:
        self._conversation = weakref.ref(value) if value is not None else None


@dataclass(frozen=True)
class SamplingParams:
    """Sampling parameters sent with every completion request."""

    temperature: float = 0.7
    max_tokens: int = 4096
    stream: bool = True


@dataclass(frozen=True)
class ContentDelta:
    text: str


@dataclass(frozen=True)
class ToolCallFragment:
    """A partial tool call as it appeared in one stream frame."""

    index: int | None = None
    id: str | None = None
    name: str | None = None
    arguments: str = ""


@dataclass(frozen=True)
class Completed:
    finish_reason: str | None = None


@dataclass(frozen=True)
class Failed:
    error: Exception


TurnEvent = Union[ContentDelta, ToolCallFragment, Completed, Failed]


class BaseLLM(ABC):
    """Base class for LLM providers."""

    def __init__(
        self,
        model: str,
        base_url: str | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.7,
    ):
        self.model = model
        self.base_url = base_url
        self.max_tokens = max_tokens
        self.temperature = temperature

    @abstractmethod
    def stream(
        self,
        messages: list[Message],
        model: str | None = None,
        tools: list[ToolDefinition] | None = None,
        params: SamplingParams | None = None,
    ) -> AsyncIterator[TurnEvent]:
        """Send one completion request and yield its turn events in order."""
        pass

    async def aclose(self) -> None:
        """Release any connections held by the provider."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Get the provider name."""
        pass
