"""
Agent module - the brain of the system.

Includes:
- AgentRuntime: the turn state machine driving LLM streams and tool calls
- Conversation: the message history a runtime works on
- ToolCallAccumulator: reassembly of streamed tool-call fragments
"""

from .accumulator import ToolCallAccumulator
from .conversation import Conversation
from .core import AgentRuntime, AgentState

__all__ = [
    "AgentRuntime",
    "AgentState",
    "Conversation",
    "ToolCallAccumulator",
]
