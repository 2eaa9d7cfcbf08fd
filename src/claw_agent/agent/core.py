"""
Core agent implementation: the turn state machine.

This is the brain of the system. It:
1. Appends the user's message and streams a model response
2. Accumulates content deltas and tool-call fragments from the stream
3. Dispatches completed tool calls and feeds the results back to the model
4. Repeats until the model answers without tools, or the hop limit is hit

States: IDLE -> STREAMING -> (EXECUTING_TOOLS -> STREAMING)* -> IDLE, with
ERRORED reachable from any state and left only through ``clear_error()``.
"""

import asyncio
from contextlib import aclosing
from enum import Enum
from typing import TYPE_CHECKING, Callable

import structlog

from ..config import Settings, get_settings
from ..credentials import CredentialStore, SettingsCredentialStore
from ..errors import LoopLimitExceeded, NotInitializedError, ProtocolError, TurnInProgressError
from ..llm import (
    BaseLLM,
    Completed,
    ContentDelta,
    Failed,
    Message,
    SamplingParams,
    ToolCall,
    ToolCallFragment,
    ToolDefinition,
    create_llm,
)
from ..tools.registry import ToolRegistry, create_default_registry
from .accumulator import ToolCallAccumulator
from .conversation import Conversation

if TYPE_CHECKING:
    from ..storage.base import ConversationStore, MemoryStore

logger = structlog.get_logger()


class AgentState(str, Enum):
    """Observable state of the agent."""
    IDLE = "idle"
    STREAMING = "streaming"
    EXECUTING_TOOLS = "executing_tools"
    ERRORED = "errored"


StateListener = Callable[[AgentState, AgentState], None]
DeltaListener = Callable[[str], None]


class AgentRuntime:
    """Runs one conversation turn at a time against an LLM and a tool registry."""

    def __init__(
        self,
        llm: BaseLLM | None = None,
        tool_registry: ToolRegistry | None = None,
        store: "ConversationStore | None" = None,
        settings: Settings | None = None,
        credentials: CredentialStore | None = None,
        memory_store: "MemoryStore | None" = None,
    ):
        self.settings = settings or get_settings()
        self.credentials = credentials or SettingsCredentialStore(self.settings)
        self.llm = llm or create_llm(self.settings, self.credentials)
        self.tool_registry = tool_registry
        self.memory_store = memory_store

        if store is None:
            from ..storage.in_memory import InMemoryConversationStore
            store = InMemoryConversationStore()
        self.store = store

        self.max_conversation_history = self.settings.max_conversation_history
        self.max_tool_hops = self.settings.max_tool_hops
        self.tool_concurrency = self.settings.tool_concurrency

        self.current_conversation: Conversation | None = None
        self.last_error: Exception | None = None
        self._state = AgentState.IDLE
        self._turn_task: asyncio.Task | None = None
        self._state_listeners: list[StateListener] = []
        self._delta_listeners: list[DeltaListener] = []

    @property
    def state(self) -> AgentState:
        return self._state

    def current_state(self) -> AgentState:
        return self._state

    def add_state_listener(self, listener: StateListener) -> None:
        """Call ``listener(old, new)`` on every state transition."""
        self._state_listeners.append(listener)

    def remove_state_listener(self, listener: StateListener) -> None:
        if listener in self._state_listeners:
            self._state_listeners.remove(listener)

    def add_delta_listener(self, listener: DeltaListener) -> None:
        """Call ``listener(text)`` for each content delta as it streams in."""
        self._delta_listeners.append(listener)

    def remove_delta_listener(self, listener: DeltaListener) -> None:
        if listener in self._delta_listeners:
            self._delta_listeners.remove(listener)

    def _transition(self, new_state: AgentState) -> None:
        old_state = self._state
        if old_state == new_state:
            return
        self._state = new_state
        logger.debug("Agent state changed", old=old_state.value, new=new_state.value)
        for listener in list(self._state_listeners):
            try:
                listener(old_state, new_state)
            except Exception:
                logger.exception("State listener failed")

    def _emit_delta(self, text: str) -> None:
        for listener in list(self._delta_listeners):
            try:
                listener(text)
            except Exception:
                logger.exception("Delta listener failed")

    async def initialize(self) -> None:
        """Register default tools and load (or create) the current conversation."""
        if self.tool_registry is None:
            self.tool_registry = create_default_registry(
                self.settings, self.credentials, self.memory_store
            )

        if self.current_conversation is None:
            conversation = await self.store.latest()
            if conversation is None:
                conversation = await self._create_conversation()
            self.current_conversation = conversation

        logger.info(
            "Agent initialized",
            conversation_id=self.current_conversation.id,
            tools=self.tool_registry.list_tools(),
        )

    async def start_new_conversation(self) -> Conversation:
        """Switch to a fresh conversation."""
        self._require_idle()
        self.current_conversation = await self._create_conversation()
        return self.current_conversation

    async def _create_conversation(self) -> Conversation:
        return await self.store.create(
            model=self.settings.default_model,
            system_prompt=self.settings.system_prompt or None,
        )

    def clear_error(self) -> None:
        """Acknowledge a failed turn so that a new message can be sent."""
        if self._state == AgentState.ERRORED:
            self.last_error = None
            self._transition(AgentState.IDLE)

    async def stop(self) -> None:
        """Cancel the in-flight turn.

        The stream is closed and nothing from the unfinished hop is persisted.
        ``send_message`` must be running in a task other than the caller's.
        """
        task = self._turn_task
        if task is None or task.done() or task is asyncio.current_task():
            return
        logger.info("Stopping turn")
        task.cancel()
        await asyncio.wait([task])

    def _require_idle(self) -> None:
        if self._state != AgentState.IDLE:
            raise TurnInProgressError(f"Agent is {self._state.value}; wait for the current turn to finish")

    async def send_message(self, text: str) -> str:
        """Run a full turn for a user message and return the final answer.

        Raises TurnInProgressError if the agent is not idle, and re-raises the
        turn's error (after moving to ERRORED) if the turn fails.
        """
        self._require_idle()
        conversation = self.current_conversation
        if conversation is None or self.tool_registry is None:
            raise NotInitializedError("Call initialize() before sending messages")

        self._turn_task = asyncio.current_task()
        self.last_error = None
        self._transition(AgentState.STREAMING)

        try:
            return await self._run_turn(conversation, text)
        except asyncio.CancelledError:
            logger.info("Turn cancelled", conversation_id=conversation.id)
            self._transition(AgentState.IDLE)
            raise
        except Exception as e:
            logger.error("Turn failed", conversation_id=conversation.id, error=str(e))
            self.last_error = e
            self._transition(AgentState.ERRORED)
            raise
        finally:
            self._turn_task = None

    async def _run_turn(self, conversation: Conversation, text: str) -> str:
        await self.store.append(conversation, Message(role="user", content=text))
        await self.store.save()

        # Registry changes during the turn do not affect it
        tools = self.tool_registry.get_definitions()
        params = self.settings.sampling_params()

        hops = 0
        while True:
            if hops >= self.max_tool_hops:
                raise LoopLimitExceeded(self.max_tool_hops)
            hops += 1

            self._transition(AgentState.STREAMING)
            logger.info("Streaming model response", conversation_id=conversation.id, hop=hops)
            content, tool_calls = await self._stream_hop(conversation, tools, params)

            if not tool_calls:
                await self.store.append(conversation, Message(role="assistant", content=content))
                await self.store.save()
                self._transition(AgentState.IDLE)
                logger.info("Turn completed", conversation_id=conversation.id, hops=hops)
                return content

            self._transition(AgentState.EXECUTING_TOOLS)
            logger.info("Executing tool calls", tools=[call.name for call in tool_calls])
            results = await self.tool_registry.execute_all(tool_calls, self.tool_concurrency)

            # A tool-call message is only committed together with its results
            await self.store.append(
                conversation,
                Message(role="assistant", content=content, tool_calls=tool_calls),
            )
            await self.store.append(conversation, Message(role="tool", content="", tool_results=results))
            await self.store.save()

    async def _stream_hop(
        self,
        conversation: Conversation,
        tools: list[ToolDefinition],
        params: SamplingParams,
    ) -> tuple[str, list[ToolCall]]:
        """Consume one model stream; returns the text and the merged tool calls."""
        history = conversation.history(self.max_conversation_history)
        accumulator = ToolCallAccumulator()
        parts: list[str] = []

        events = self.llm.stream(
            history,
            model=conversation.model,
            tools=tools or None,
            params=params,
        )
        async with aclosing(events) as stream:
            async for event in stream:
                if isinstance(event, ContentDelta):
                    parts.append(event.text)
                    self._emit_delta(event.text)
                elif isinstance(event, ToolCallFragment):
                    accumulator.add(event)
                elif isinstance(event, Failed):
                    raise event.error
                elif isinstance(event, Completed):
                    break
            else:
                raise ProtocolError("Stream ended without a terminal event")

        return "".join(parts), accumulator.calls()
