"""
Web search tool using the Brave Search API.
"""

from typing import Any

import httpx
import structlog

from ..credentials import APIKeyService, CredentialStore
from ..errors import ExecutionFailed, InvalidArguments
from .base import BaseTool, build_parameters, int_argument, number_property, string_property

logger = structlog.get_logger()

BRAVE_SEARCH_URL = "https://api.search.brave.com/res/v1/web/search"
MAX_RESULTS = 10


class WebSearchTool(BaseTool):
    """Tool for searching the web."""

    def __init__(self, credentials: CredentialStore, client: httpx.AsyncClient | None = None):
        self.credentials = credentials
        self._client = client

    @property
    def name(self) -> str:
        return "web_search"

    @property
    def description(self) -> str:
        return "Search the web using Brave Search. Returns titles, URLs, and snippets for relevant results."

    @property
    def parameters(self) -> dict[str, Any]:
        return build_parameters(
            {
                "query": string_property("Search query string"),
                "count": number_property("Number of results (1-10, default: 5)"),
            },
            required=["query"],
        )

    async def execute(self, arguments: dict[str, Any]) -> str:
        """Execute web search."""
        query = arguments.get("query")
        if not isinstance(query, str) or not query.strip():
            raise InvalidArguments("Missing 'query' parameter")
        count = min(max(int_argument(arguments, "count", 5), 1), MAX_RESULTS)

        api_key = self.credentials.retrieve(APIKeyService.BRAVE_SEARCH)
        if not api_key:
            return "Brave Search API key not configured. Add BRAVE_SEARCH_API_KEY to your environment."

        data = await self._search(api_key, query, count)

        web = data.get("web") if isinstance(data, dict) else None
        results = web.get("results") if isinstance(web, dict) else None
        if not isinstance(results, list):
            raise ExecutionFailed("Invalid response from Brave Search")

        if not results:
            return f"No search results found for '{query}'"

        lines = [f"Search results for '{query}':", ""]
        for position, result in enumerate(results, start=1):
            title = result.get("title") or "No title"
            url = result.get("url") or ""
            snippet = result.get("description") or ""

            lines.append(f"{position}. **{title}**")
            lines.append(f"   {url}")
            if snippet:
                lines.append(f"   {snippet}")
            lines.append("")

        return "\n".join(lines)

    async def _search(self, api_key: str, query: str, count: int) -> Any:
        headers = {
            "Accept": "application/json",
            "X-Subscription-Token": api_key,
        }
        params = {"q": query, "count": str(count)}

        try:
            if self._client is not None:
                response = await self._client.get(BRAVE_SEARCH_URL, params=params, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=30.0) as client:
                    response = await client.get(BRAVE_SEARCH_URL, params=params, headers=headers)
        except httpx.HTTPError as e:
            logger.error("Web search error", error=str(e))
            raise ExecutionFailed(f"Search failed: {e}") from e

        if not response.is_success:
            logger.error("Brave Search API error", status=response.status_code)
            raise ExecutionFailed("Brave Search API returned error")

        try:
            return response.json()
        except ValueError:
            raise ExecutionFailed("Invalid response from Brave Search") from None
