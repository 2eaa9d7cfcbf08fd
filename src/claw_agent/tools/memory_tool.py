"""
Memory tools - search and retrieve long-term memory entries.

Search is plain substring matching; entries carry no embeddings.
"""

from ..errors import InvalidArguments
from ..storage.base import MemoryCategory, MemoryStore
from .base import Tool, ToolParameter, int_argument


def create_memory_tools(memory: MemoryStore) -> list[Tool]:
    """Create the memory_search and memory_get tools bound to a store."""

    async def memory_search(query: str, limit: int | float = 10) -> str:
        """Search saved memories by keyword."""
        limit = int_argument({"limit": limit}, "limit", 10)
        results = await memory.search(query, limit=limit)

        if not results:
            return f"No memories found matching '{query}'"

        lines = [f"Found {len(results)} memories:", ""]
        for index, entry in enumerate(results, start=1):
            lines.append(f"{index}. [{entry.category.value}] {entry.content}")
            if entry.tags:
                lines.append(f"   Tags: {', '.join(entry.tags)}")
            lines.append("")
        return "\n".join(lines)

    async def memory_get(
        category: str | None = None,
        tag: str | None = None,
        limit: int | float = 10,
    ) -> str:
        """Retrieve memories by category or tag."""
        limit = int_argument({"limit": limit}, "limit", 10)

        parsed = MemoryCategory.parse(category) if category else None
        if parsed is not None:
            results = await memory.by_category(parsed, limit=limit)
        elif tag:
            results = await memory.by_tag(tag, limit=limit)
        else:
            raise InvalidArguments("Must provide either 'category' or 'tag'")

        if not results:
            return "No memories found with the specified criteria"

        lines = [f"Found {len(results)} memories:", ""]
        for index, entry in enumerate(results, start=1):
            lines.append(f"{index}. {entry.content}")
            lines.append("")
        return "\n".join(lines)

    categories = ", ".join(c.name.lower() for c in MemoryCategory)

    return [
        Tool(
            name="memory_search",
            description="Search through saved memories using keywords or phrases. Returns relevant past information.",
            parameters=[
                ToolParameter(
                    name="query",
                    param_type="string",
                    description="Search query to find relevant memories",
                    required=True,
                ),
                ToolParameter(
                    name="limit",
                    param_type="number",
                    description="Maximum number of results (default: 10)",
                    required=False,
                ),
            ],
            handler=memory_search,
        ),
        Tool(
            name="memory_get",
            description="Retrieve specific memories by category or tag",
            parameters=[
                ToolParameter(
                    name="category",
                    param_type="string",
                    description=f"Memory category: {categories}",
                    required=False,
                ),
                ToolParameter(
                    name="tag",
                    param_type="string",
                    description="Filter by specific tag",
                    required=False,
                ),
                ToolParameter(
                    name="limit",
                    param_type="number",
                    description="Maximum results (default: 10)",
                    required=False,
                ),
            ],
            handler=memory_get,
        ),
    ]
