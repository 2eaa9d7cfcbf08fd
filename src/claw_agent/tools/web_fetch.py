"""
Web fetch tool: download a page and extract its readable text.
"""

import re
from typing import Any
from urllib.parse import urlparse

import httpx
import structlog
from bs4 import BeautifulSoup

from ..errors import ExecutionFailed, InvalidArguments
from .base import BaseTool, build_parameters, int_argument, number_property, string_property

logger = structlog.get_logger()

DEFAULT_MAX_CHARS = 8000
USER_AGENT = "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15"


def extract_readable_text(html: str) -> str:
    """Strip scripts, styles and tags from HTML and collapse whitespace."""
    soup = BeautifulSoup(html, "html.parser")

    for element in soup(["script", "style", "noscript"]):
        element.decompose()

    text = soup.get_text(separator=" ")
    return re.sub(r"\s+", " ", text).strip()


class WebFetchTool(BaseTool):
    """Tool for fetching web pages as text."""

    def __init__(self, client: httpx.AsyncClient | None = None, timeout: float = 10.0):
        self._client = client
        self.timeout = timeout

    @property
    def name(self) -> str:
        return "web_fetch"

    @property
    def description(self) -> str:
        return "Fetch and extract readable content from a URL. Converts HTML to clean text."

    @property
    def parameters(self) -> dict[str, Any]:
        return build_parameters(
            {
                "url": string_property("HTTP or HTTPS URL to fetch"),
                "maxChars": number_property(f"Maximum characters to return (default: {DEFAULT_MAX_CHARS})"),
            },
            required=["url"],
        )

    async def execute(self, arguments: dict[str, Any]) -> str:
        url = arguments.get("url")
        if not isinstance(url, str) or not url:
            raise InvalidArguments("Invalid URL")
        if urlparse(url).scheme.lower() not in ("http", "https"):
            raise InvalidArguments("Only HTTP/HTTPS URLs are supported")

        max_chars = int_argument(arguments, "maxChars", DEFAULT_MAX_CHARS)
        if max_chars <= 0:
            raise InvalidArguments("'maxChars' must be positive")

        response = await self._fetch(url)
        if not response.is_success:
            raise ExecutionFailed(f"Failed to fetch URL (HTTP {response.status_code})")

        cleaned = extract_readable_text(response.text)
        if len(cleaned) > max_chars:
            return cleaned[:max_chars] + "\n\n... (truncated)"
        return cleaned

    async def _fetch(self, url: str) -> httpx.Response:
        headers = {"User-Agent": USER_AGENT}
        try:
            if self._client is not None:
                return await self._client.get(url, headers=headers, timeout=self.timeout)
            async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
                return await client.get(url, headers=headers)
        except httpx.HTTPError as e:
            logger.error("Web fetch error", url=url, error=str(e))
            raise ExecutionFailed(f"Failed to fetch {url}: {e}") from e
