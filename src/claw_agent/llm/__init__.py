"""
LLM module: the streaming completion client and its event types.

Providers:
- OpenRouter (and any OpenAI-compatible chat completions endpoint)
"""

from .base import (
    BaseLLM,
    Completed,
    ContentDelta,
    Failed,
    Message,
    SamplingParams,
    ToolCall,
    ToolCallFragment,
    ToolDefinition,
    ToolResult,
    TurnEvent,
)
from .openrouter import OpenRouterLLM
from .factory import create_llm

__all__ = [
    "BaseLLM",
    "Completed",
    "ContentDelta",
    "Failed",
    "Message",
    "SamplingParams",
    "ToolCall",
    "ToolCallFragment",
    "ToolDefinition",
    "ToolResult",
    "TurnEvent",
    "OpenRouterLLM",
    "create_llm",
]
