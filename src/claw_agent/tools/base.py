"""
Base classes for tools (capability providers).

A tool exposes a name, a description and a JSON Schema for its parameters,
and executes with an already-parsed argument mapping. Tools report failure
by raising ``ExecutionFailed`` or ``InvalidArguments``; the registry turns
those into tool results.
"""

import inspect
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Coroutine

from ..errors import InvalidArguments
from ..llm.base import ToolDefinition


def build_parameters(
    properties: dict[str, dict[str, Any]],
    required: list[str] | None = None,
) -> dict[str, Any]:
    """Build an object JSON Schema from property schemas."""
    return {
        "type": "object",
        "properties": properties,
        "required": required or [],
    }


def string_property(description: str) -> dict[str, Any]:
    return {"type": "string", "description": description}


def number_property(description: str) -> dict[str, Any]:
    return {"type": "number", "description": description}


def int_argument(arguments: dict[str, Any], name: str, default: int) -> int:
    """Read an integer argument the model may have sent as a float or string."""
    value = arguments.get(name, default)
    if isinstance(value, bool):
        raise InvalidArguments(f"'{name}' must be a number")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidArguments(f"'{name}' must be a number") from None


@dataclass
class ToolParameter:
    """Definition of a tool parameter."""

    name: str
    param_type: str  # string, integer, number, boolean, array, object
    description: str
    required: bool = True
    default: Any = None
    enum: list[str] | None = None


class BaseTool(ABC):
    """Base class for all tools."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Get the tool name."""
        pass

    @property
    @abstractmethod
    def description(self) -> str:
        """Get the tool description."""
        pass

    @property
    @abstractmethod
    def parameters(self) -> dict[str, Any]:
        """Get the tool parameters schema (JSON Schema)."""
        pass

    @abstractmethod
    async def execute(self, arguments: dict[str, Any]) -> str:
        """Execute the tool with parsed arguments and return its text output."""
        pass

    def to_definition(self) -> ToolDefinition:
        """Convert to a tool definition for the LLM."""
        return ToolDefinition(
            name=self.name,
            description=self.description,
            parameters=self.parameters,
        )


class Tool(BaseTool):
    """
    Simple tool wrapper that can be created from a function.

    The handler is called with the arguments as keyword arguments. This is an
    alternative to subclassing BaseTool for simpler tools.
    """

    def __init__(
        self,
        name: str,
        description: str,
        parameters: list[ToolParameter],
        handler: Callable[..., Coroutine[Any, Any, str]],
    ):
        self._name = name
        self._description = description
        self.tool_parameters = parameters
        self.handler = handler

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return self._description

    @property
    def parameters(self) -> dict[str, Any]:
        """Convert parameters to JSON Schema format."""
        properties = {}
        required = []

        for param in self.tool_parameters:
            prop: dict[str, Any] = {
                "type": param.param_type,
                "description": param.description,
            }
            if param.enum:
                prop["enum"] = param.enum
            if param.default is not None:
                prop["default"] = param.default

            properties[param.name] = prop

            if param.required:
                required.append(param.name)

        return build_parameters(properties, required)

    async def execute(self, arguments: dict[str, Any]) -> str:
        """Execute the tool handler."""
        try:
            inspect.signature(self.handler).bind(**arguments)
        except TypeError as e:
            raise InvalidArguments(str(e)) from None
        return await self.handler(**arguments)
