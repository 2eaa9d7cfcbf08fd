"""
Tools module for agent capabilities.
"""

from .base import BaseTool, Tool, ToolParameter
from .registry import ToolRegistry, create_default_registry
from .web_search import WebSearchTool
from .web_fetch import WebFetchTool

__all__ = [
    "BaseTool",
    "Tool",
    "ToolParameter",
    "ToolRegistry",
    "create_default_registry",
    "WebSearchTool",
    "WebFetchTool",
]
