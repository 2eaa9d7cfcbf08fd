"""
Tool registry for managing and dispatching tools.
"""

import asyncio
import json
from typing import Any

import structlog

from ..config import Settings, get_settings
from ..credentials import CredentialStore, SettingsCredentialStore
from ..errors import ExecutionFailed, InvalidArguments, ToolError, ToolNotFound
from ..llm.base import ToolCall, ToolDefinition, ToolResult
from .base import BaseTool

logger = structlog.get_logger()

DEFAULT_CONCURRENCY = 4


def parse_arguments(blob: str | None) -> dict[str, Any]:
    """Parse a raw argument blob into a mapping. An empty blob means no arguments."""
    if blob is None or not blob.strip():
        return {}
    try:
        value = json.loads(blob)
    except ValueError as e:
        raise InvalidArguments(f"arguments are not valid JSON ({e})") from None
    if not isinstance(value, dict):
        raise InvalidArguments("arguments must be a JSON object")
    return value


class ToolRegistry:
    """Registry for managing tools."""

    def __init__(self):
        self._tools: dict[str, BaseTool] = {}

    def register(self, tool: BaseTool) -> None:
        """Register a tool. A tool with the same name is replaced."""
        self._tools[tool.name] = tool
        logger.info("Tool registered", tool_name=tool.name)

    def unregister(self, name: str) -> None:
        """Unregister a tool."""
        if name in self._tools:
            del self._tools[name]
            logger.info("Tool unregistered", tool_name=name)

    def get(self, name: str) -> BaseTool | None:
        """Get a tool by name."""
        return self._tools.get(name)

    def list_tools(self) -> list[str]:
        """List all registered tool names."""
        return list(self._tools.keys())

    def get_definitions(self) -> list[ToolDefinition]:
        """Get a snapshot of all tool definitions for the LLM."""
        return [tool.to_definition() for tool in self._tools.values()]

    descriptors = get_definitions

    async def dispatch(self, name: str, arguments: str | None) -> str:
        """Parse the argument blob and run the named tool.

        Raises ToolNotFound, InvalidArguments or ExecutionFailed.
        """
        tool = self.get(name)
        if tool is None:
            raise ToolNotFound(name)

        parsed = parse_arguments(arguments)

        logger.info("Executing tool", tool_name=name, arguments=parsed)
        try:
            output = await tool.execute(parsed)
            if not isinstance(output, str):
                raise ExecutionFailed(f"tool returned {type(output).__name__} instead of text")
        except ToolError:
            raise
        except Exception as e:
            raise ExecutionFailed(str(e)) from e
        logger.info("Tool executed", tool_name=name, output_chars=len(output))
        return output

    async def execute(self, call: ToolCall) -> ToolResult:
        """Execute one tool call. Failures are returned as error results.

        Only cancellation propagates.
        """
        try:
            output = await self.dispatch(call.name, call.arguments)
        except ToolError as e:
            logger.warning("Tool call failed", tool_name=call.name, call_id=call.id, error=str(e))
            return ToolResult.failure(call.id, str(e))
        except Exception as e:
            logger.exception("Tool call crashed", tool_name=call.name, call_id=call.id)
            return ToolResult.failure(call.id, str(ExecutionFailed(str(e))))
        return ToolResult.success(call.id, output)

    async def execute_all(
        self,
        calls: list[ToolCall],
        max_concurrency: int = DEFAULT_CONCURRENCY,
    ) -> list[ToolResult]:
        """Execute tool calls concurrently; results are returned in call order."""
        semaphore = asyncio.Semaphore(max(1, max_concurrency))

        async def run(call: ToolCall) -> ToolResult:
            async with semaphore:
                return await self.execute(call)

        return list(await asyncio.gather(*(run(call) for call in calls)))


def create_default_registry(
    settings: Settings | None = None,
    credentials: CredentialStore | None = None,
    memory_store: Any = None,
) -> ToolRegistry:
    """Create a registry with the default tools enabled in settings."""
    settings = settings or get_settings()
    credentials = credentials or SettingsCredentialStore(settings)
    registry = ToolRegistry()

    if settings.enable_web_search:
        from .web_search import WebSearchTool
        registry.register(WebSearchTool(credentials=credentials))

    if settings.enable_web_fetch:
        from .web_fetch import WebFetchTool
        registry.register(WebFetchTool())

    if settings.enable_memory_tools and memory_store is not None:
        from .memory_tool import create_memory_tools
        for tool in create_memory_tools(memory_store):
            registry.register(tool)

    return registry
