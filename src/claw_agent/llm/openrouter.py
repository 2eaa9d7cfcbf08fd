"""
OpenRouter LLM provider (works with any OpenAI-compatible chat completions API).

Speaks the wire protocol directly over httpx so that every server-sent
frame can be decoded, skipped or rejected individually.
"""

import json
from contextlib import aclosing
from typing import Any, AsyncIterator

import httpx
import structlog

from ..credentials import APIKeyService, CredentialStore
from ..errors import NoCredential, ProtocolError, TransportError
from .base import (
    BaseLLM,
    Completed,
    ContentDelta,
    Failed,
    Message,
    SamplingParams,
    ToolCallFragment,
    ToolDefinition,
    TurnEvent,
)

logger = structlog.get_logger()

DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"
DONE_SENTINEL = "[DONE]"
_ERROR_BODY_LIMIT = 500


def frame_payload(line: str) -> str | None:
    """Return the payload of an SSE ``data:`` line, or None for any other line."""
    if not line.startswith("data:"):
        return None
    payload = line[5:]
    if payload.startswith(" "):
        payload = payload[1:]
    return payload.strip()


def decode_frame(payload: str) -> dict[str, Any] | None:
    """Decode a frame payload into a JSON object, or None if it is noise."""
    try:
        frame = json.loads(payload)
    except ValueError:
        return None
    return frame if isinstance(frame, dict) else None


def _first_choice(frame: dict[str, Any]) -> dict[str, Any] | None:
    choices = frame.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    choice = choices[0]
    return choice if isinstance(choice, dict) else None


def _fragment_from(entry: dict[str, Any], default_index: int | None = None) -> ToolCallFragment:
    function = entry.get("function")
    if not isinstance(function, dict):
        function = {}

    arguments = function.get("arguments")
    if arguments is None:
        arguments = ""
    elif not isinstance(arguments, str):
        arguments = json.dumps(arguments)

    index = entry.get("index")
    call_id = entry.get("id")
    name = function.get("name")
    return ToolCallFragment(
        index=index if isinstance(index, int) else default_index,
        id=call_id if isinstance(call_id, str) and call_id else None,
        name=name if isinstance(name, str) and name else None,
        arguments=arguments,
    )


def frame_events(frame: dict[str, Any]) -> list[TurnEvent]:
    """Turn one decoded stream frame into content and tool-call fragment events."""
    choice = _first_choice(frame)
    if choice is None:
        return []
    delta = choice.get("delta")
    if not isinstance(delta, dict):
        return []

    events: list[TurnEvent] = []
    content = delta.get("content")
    if isinstance(content, str) and content:
        events.append(ContentDelta(content))

    tool_calls = delta.get("tool_calls")
    if isinstance(tool_calls, list):
        for entry in tool_calls:
            if isinstance(entry, dict):
                events.append(_fragment_from(entry))
    return events


def _error_message(error: Any) -> str:
    if isinstance(error, dict):
        return str(error.get("message") or error)
    return str(error)


class OpenRouterLLM(BaseLLM):
    """OpenRouter chat completions provider."""

    def __init__(
        self,
        credentials: CredentialStore,
        model: str = "anthropic/claude-sonnet-4-5",
        base_url: str | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.7,
        timeout: float = 60.0,
        http_referer: str | None = None,
        app_title: str | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        super().__init__(model, base_url or DEFAULT_BASE_URL, max_tokens, temperature)
        self.credentials = credentials
        self.timeout = timeout
        self.http_referer = http_referer
        self.app_title = app_title
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @property
    def provider_name(self) -> str:
        return "openrouter"

    @property
    def endpoint(self) -> str:
        return f"{self.base_url.rstrip('/')}/chat/completions"

    async def aclose(self) -> None:
        await self._client.aclose()

    def _convert_messages(self, messages: list[Message]) -> list[dict[str, Any]]:
        """Convert Messages to the chat completions wire format."""
        converted: list[dict[str, Any]] = []

        for msg in messages:
            if msg.role == "tool":
                for result in msg.tool_results or []:
                    converted.append({
                        "role": "tool",
                        "tool_call_id": result.tool_call_id,
                        "content": result.content if result.error is None else f"Error: {result.error}",
                    })
            elif msg.role == "assistant" and msg.tool_calls:
                converted.append({
                    "role": "assistant",
                    "content": msg.content or None,
                    "tool_calls": [
                        {
                            "id": tc.id,
                            "type": "function",
                            "function": {
                                "name": tc.name,
                                "arguments": tc.arguments or "{}",
                            },
                        }
                        for tc in msg.tool_calls
                    ],
                })
            else:
                converted.append({
                    "role": msg.role,
                    "content": msg.content,
                })

        return converted

    def _convert_tools(self, tools: list[ToolDefinition]) -> list[dict[str, Any]]:
        """Convert ToolDefinitions to the function-calling format."""
        return [
            {
                "type": "function",
                "function": {
                    "name": tool.name,
                    "description": tool.description,
                    "parameters": tool.parameters,
                },
            }
            for tool in tools
        ]

    def _headers(self, api_key: str) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }
        if self.http_referer:
            headers["HTTP-Referer"] = self.http_referer
        if self.app_title:
            headers["X-Title"] = self.app_title
        return headers

    def build_payload(
        self,
        messages: list[Message],
        model: str | None,
        tools: list[ToolDefinition] | None,
        params: SamplingParams,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": model or self.model,
            "messages": self._convert_messages(messages),
            "temperature": params.temperature,
            "max_tokens": params.max_tokens,
            "stream": params.stream,
        }
        if tools:
            payload["tools"] = self._convert_tools(tools)
        return payload

    async def stream(
        self,
        messages: list[Message],
        model: str | None = None,
        tools: list[ToolDefinition] | None = None,
        params: SamplingParams | None = None,
    ) -> AsyncIterator[TurnEvent]:
        """Send one completion request and yield its turn events.

        Always ends with exactly one ``Completed`` or ``Failed`` event.
        Closing the iterator early closes the underlying HTTP response.
        """
        params = params or SamplingParams(
            temperature=self.temperature, max_tokens=self.max_tokens
        )

        api_key = self.credentials.retrieve(APIKeyService.OPENROUTER)
        if not api_key:
            logger.warning("Completion request without API key")
            yield Failed(NoCredential("OpenRouter"))
            return

        payload = self.build_payload(messages, model, tools, params)
        headers = self._headers(api_key)
        logger.debug(
            "Sending completion request",
            model=payload["model"],
            messages=len(payload["messages"]),
            tools=len(payload.get("tools", [])),
            stream=params.stream,
        )

        if params.stream:
            events = self._stream_response(payload, headers)
        else:
            events = self._single_response(payload, headers)

        async with aclosing(events) as source:
            async for event in source:
                yield event

    async def _stream_response(
        self, payload: dict[str, Any], headers: dict[str, str]
    ) -> AsyncIterator[TurnEvent]:
        decoded_any = False
        finish_reason: str | None = None

        try:
            async with self._client.stream(
                "POST", self.endpoint, json=payload, headers=headers, timeout=self.timeout
            ) as response:
                if not response.is_success:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    logger.error("Completion request failed", status=response.status_code)
                    yield Failed(TransportError(
                        f"HTTP {response.status_code}: {body[:_ERROR_BODY_LIMIT]}",
                        status_code=response.status_code,
                    ))
                    return

                async for line in response.aiter_lines():
                    data = frame_payload(line)
                    if data is None:
                        continue
                    if data == DONE_SENTINEL:
                        yield Completed(finish_reason)
                        return

                    frame = decode_frame(data)
                    if frame is None:
                        logger.debug("Skipping undecodable frame", frame=data[:200])
                        continue
                    decoded_any = True

                    if "error" in frame:
                        message = _error_message(frame["error"])
                        logger.error("Provider error mid-stream", error=message)
                        yield Failed(TransportError(f"API error: {message}"))
                        return

                    choice = _first_choice(frame)
                    if choice is not None and isinstance(choice.get("finish_reason"), str):
                        finish_reason = choice["finish_reason"]

                    for event in frame_events(frame):
                        yield event

        except httpx.HTTPError as e:
            logger.error("Completion stream transport error", error=str(e))
            yield Failed(TransportError(f"Network error: {e}"))
            return

        if decoded_any:
            yield Completed(finish_reason)
        else:
            yield Failed(ProtocolError("Stream ended without any decodable frame"))

    async def _single_response(
        self, payload: dict[str, Any], headers: dict[str, str]
    ) -> AsyncIterator[TurnEvent]:
        try:
            response = await self._client.post(
                self.endpoint, json=payload, headers=headers, timeout=self.timeout
            )
        except httpx.HTTPError as e:
            logger.error("Completion request transport error", error=str(e))
            yield Failed(TransportError(f"Network error: {e}"))
            return

        if not response.is_success:
            logger.error("Completion request failed", status=response.status_code)
            yield Failed(TransportError(
                f"HTTP {response.status_code}: {response.text[:_ERROR_BODY_LIMIT]}",
                status_code=response.status_code,
            ))
            return

        data = decode_frame(response.text)
        choice = _first_choice(data) if data is not None else None
        message = choice.get("message") if choice is not None else None
        if not isinstance(message, dict):
            yield Failed(ProtocolError("Invalid response from API"))
            return

        content = message.get("content")
        if isinstance(content, str) and content:
            yield ContentDelta(content)

        tool_calls = message.get("tool_calls")
        if isinstance(tool_calls, list):
            for index, entry in enumerate(tool_calls):
                if isinstance(entry, dict):
                    yield _fragment_from(entry, default_index=index)

        finish_reason = choice.get("finish_reason")
        yield Completed(finish_reason if isinstance(finish_reason, str) else None)
