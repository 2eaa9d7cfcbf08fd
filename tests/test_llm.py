"""
Tests for the streaming completion client.
"""

import json

import httpx
import pytest

from claw_agent.credentials import APIKeyService, InMemoryCredentialStore
from claw_agent.errors import NoCredential, ProtocolError, TransportError
from claw_agent.llm.base import (
    Completed,
    ContentDelta,
    Failed,
    Message,
    SamplingParams,
    ToolCall,
    ToolCallFragment,
    ToolDefinition,
    ToolResult,
)
from claw_agent.llm.openrouter import OpenRouterLLM, decode_frame, frame_events, frame_payload


def sse(*frames) -> bytes:
    """Build an SSE body from dict frames and raw string lines."""
    lines = []
    for frame in frames:
        if isinstance(frame, dict):
            lines.append("data: " + json.dumps(frame))
        else:
            lines.append(frame)
    return ("\n".join(lines) + "\n").encode()


def content_frame(text: str) -> dict:
    return {"choices": [{"index": 0, "delta": {"content": text}}]}


def tool_frame(*entries: dict) -> dict:
    return {"choices": [{"index": 0, "delta": {"tool_calls": list(entries)}}]}


def make_llm(handler, api_key: str | None = "sk-test") -> OpenRouterLLM:
    keys = {APIKeyService.OPENROUTER: api_key} if api_key else {}
    return OpenRouterLLM(
        credentials=InMemoryCredentialStore(keys),
        model="test/model",
        http_referer="https://example.test",
        app_title="claw-agent",
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


async def collect(llm: OpenRouterLLM, params: SamplingParams | None = None, **kwargs) -> list:
    messages = kwargs.pop("messages", [Message(role="user", content="Hi")])
    return [event async for event in llm.stream(messages, params=params, **kwargs)]


def test_frame_payload():
    """Test data-line prefix handling."""
    assert frame_payload('data: {"a": 1}') == '{"a": 1}'
    assert frame_payload("data:[DONE]") == "[DONE]"
    assert frame_payload(": OPENROUTER PROCESSING") is None
    assert frame_payload("event: message") is None
    assert frame_payload("") is None


def test_decode_frame_rejects_noise():
    """Test that non-object payloads are treated as noise."""
    assert decode_frame("{not json") is None
    assert decode_frame("[1, 2]") is None
    assert decode_frame('{"choices": []}') == {"choices": []}


def test_frame_events_preserve_fragment_order():
    """Test that fragments in one frame are emitted in frame order."""
    frame = tool_frame(
        {"index": 0, "id": "a", "function": {"name": "one", "arguments": ""}},
        {"index": 1, "id": "b", "function": {"name": "two", "arguments": "{}"}},
    )
    events = frame_events(frame)

    assert events == [
        ToolCallFragment(index=0, id="a", name="one", arguments=""),
        ToolCallFragment(index=1, id="b", name="two", arguments="{}"),
    ]


def test_frame_events_content_and_tools():
    """Test a frame carrying both content and a tool fragment."""
    frame = {"choices": [{"delta": {
        "content": "Looking",
        "tool_calls": [{"index": 0, "function": {"arguments": '{"q"'}}],
    }}]}

    assert frame_events(frame) == [
        ContentDelta("Looking"),
        ToolCallFragment(index=0, id=None, name=None, arguments='{"q"'),
    ]


@pytest.mark.asyncio
async def test_stream_content_deltas():
    """Test a plain streamed answer."""
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=sse(
            content_frame("Hello"),
            content_frame("!"),
            {"choices": [{"delta": {}, "finish_reason": "stop"}]},
            "data: [DONE]",
        ))

    events = await collect(make_llm(handler))

    assert events == [ContentDelta("Hello"), ContentDelta("!"), Completed("stop")]


@pytest.mark.asyncio
async def test_stream_request_payload():
    """Test the request body and headers sent to the endpoint."""
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["headers"] = request.headers
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, content=sse("data: [DONE]"))

    tools = [ToolDefinition(name="web_search", description="Search", parameters={"type": "object"})]
    history = [
        Message(role="system", content="Be brief"),
        Message(role="user", content="Find x"),
        Message(role="assistant", content="", tool_calls=[ToolCall(id="1", name="web_search", arguments='{"query":"x"}')]),
        Message(role="tool", content="", tool_results=[
            ToolResult.success("1", "result text"),
        ]),
    ]

    await collect(
        make_llm(handler),
        messages=history,
        tools=tools,
        params=SamplingParams(temperature=0.2, max_tokens=100),
    )

    body = captured["body"]
    assert captured["url"] == "https://openrouter.ai/api/v1/chat/completions"
    assert captured["headers"]["authorization"] == "Bearer sk-test"
    assert captured["headers"]["http-referer"] == "https://example.test"
    assert body["model"] == "test/model"
    assert body["stream"] is True
    assert body["temperature"] == 0.2
    assert body["max_tokens"] == 100
    assert body["tools"][0]["function"]["name"] == "web_search"
    assert body["messages"][0] == {"role": "system", "content": "Be brief"}
    assert body["messages"][2]["content"] is None
    assert body["messages"][2]["tool_calls"][0]["function"]["arguments"] == '{"query":"x"}'
    assert body["messages"][3] == {"role": "tool", "tool_call_id": "1", "content": "result text"}


@pytest.mark.asyncio
async def test_stream_omits_empty_tools():
    """Test that no tools key is sent without tools."""
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, content=sse("data: [DONE]"))

    await collect(make_llm(handler), tools=[])

    assert "tools" not in captured["body"]


@pytest.mark.asyncio
async def test_tool_error_results_are_rendered():
    """Test that failed tool results are sent as error text."""
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, content=sse("data: [DONE]"))

    history = [Message(role="tool", content="", tool_results=[ToolResult.failure("9", "boom")])]
    await collect(make_llm(handler), messages=history)

    assert captured["body"]["messages"] == [
        {"role": "tool", "tool_call_id": "9", "content": "Error: boom"}
    ]


@pytest.mark.asyncio
async def test_stream_skips_noise_lines_and_bad_frames():
    """Test that comments and malformed frames do not abort the stream."""
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=sse(
            ": OPENROUTER PROCESSING",
            "",
            content_frame("a"),
            "data: {broken json",
            "data: 42",
            content_frame("b"),
            "data: [DONE]",
        ))

    events = await collect(make_llm(handler))

    assert events == [ContentDelta("a"), ContentDelta("b"), Completed()]


@pytest.mark.asyncio
async def test_stream_stops_reading_at_done():
    """Test that nothing after [DONE] is delivered."""
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=sse(
            content_frame("a"),
            "data: [DONE]",
            content_frame("late"),
        ))

    events = await collect(make_llm(handler))

    assert events == [ContentDelta("a"), Completed()]


@pytest.mark.asyncio
async def test_stream_tool_fragments_across_frames():
    """Test that split tool calls come through as ordered raw fragments."""
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=sse(
            tool_frame({"index": 0, "id": "call_1", "type": "function",
                        "function": {"name": "web_search", "arguments": ""}}),
            tool_frame({"index": 0, "function": {"arguments": '{"query":'}}),
            tool_frame({"index": 0, "function": {"arguments": '"x"}'}}),
            {"choices": [{"delta": {}, "finish_reason": "tool_calls"}]},
            "data: [DONE]",
        ))

    events = await collect(make_llm(handler))

    assert events == [
        ToolCallFragment(index=0, id="call_1", name="web_search", arguments=""),
        ToolCallFragment(index=0, arguments='{"query":'),
        ToolCallFragment(index=0, arguments='"x"}'),
        Completed("tool_calls"),
    ]


@pytest.mark.asyncio
async def test_http_error_status_fails_once():
    """Test that a non-200 status produces a single Failed event."""
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(500, text="upstream exploded")

    events = await collect(make_llm(handler))

    assert len(calls) == 1
    assert len(events) == 1
    assert isinstance(events[0], Failed)
    assert isinstance(events[0].error, TransportError)
    assert events[0].error.status_code == 500
    assert "upstream exploded" in str(events[0].error)


@pytest.mark.asyncio
async def test_timeout_becomes_transport_error():
    """Test that a read timeout surfaces as a Failed event."""
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    events = await collect(make_llm(handler))

    assert len(events) == 1
    assert isinstance(events[0].error, TransportError)


@pytest.mark.asyncio
async def test_missing_api_key_sends_nothing():
    """Test that a missing credential fails before any request."""
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200)

    events = await collect(make_llm(handler, api_key=None))

    assert calls == []
    assert len(events) == 1
    assert isinstance(events[0].error, NoCredential)


@pytest.mark.asyncio
async def test_mid_stream_error_frame():
    """Test that a provider error frame ends the stream as Failed."""
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=sse(
            content_frame("partial"),
            {"error": {"code": 502, "message": "provider overloaded"}},
            content_frame("never"),
        ))

    events = await collect(make_llm(handler))

    assert events[0] == ContentDelta("partial")
    assert isinstance(events[1], Failed)
    assert "provider overloaded" in str(events[1].error)
    assert len(events) == 2


@pytest.mark.asyncio
async def test_eof_without_done_completes():
    """Test that a stream cut after valid frames still completes."""
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=sse(content_frame("a")))

    events = await collect(make_llm(handler))

    assert events == [ContentDelta("a"), Completed()]


@pytest.mark.asyncio
async def test_stream_without_decodable_frames_fails():
    """Test that a body with no decodable frame is a protocol failure."""
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"<html>not a stream</html>\n")

    events = await collect(make_llm(handler))

    assert len(events) == 1
    assert isinstance(events[0].error, ProtocolError)


@pytest.mark.asyncio
async def test_closing_stream_early_stops_delivery():
    """Test that an abandoned stream delivers nothing more."""
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=sse(
            content_frame("one"),
            content_frame("two"),
            "data: [DONE]",
        ))

    stream = make_llm(handler).stream([Message(role="user", content="Hi")])
    first = await stream.__anext__()
    await stream.aclose()

    assert first == ContentDelta("one")
    with pytest.raises(StopAsyncIteration):
        await stream.__anext__()


@pytest.mark.asyncio
async def test_non_streaming_mode_synthesizes_events():
    """Test that a single JSON response yields the same event shapes."""
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={
            "choices": [{
                "finish_reason": "tool_calls",
                "message": {
                    "role": "assistant",
                    "content": "Let me check.",
                    "tool_calls": [
                        {"id": "a", "type": "function", "function": {"name": "web_search", "arguments": '{"query":"x"}'}},
                        {"id": "b", "type": "function", "function": {"name": "web_fetch", "arguments": '{"url":"https://x.test"}'}},
                    ],
                },
            }],
        })

    events = await collect(make_llm(handler), params=SamplingParams(stream=False))

    assert captured["body"]["stream"] is False
    assert events == [
        ContentDelta("Let me check."),
        ToolCallFragment(index=0, id="a", name="web_search", arguments='{"query":"x"}'),
        ToolCallFragment(index=1, id="b", name="web_fetch", arguments='{"url":"https://x.test"}'),
        Completed("tool_calls"),
    ]


@pytest.mark.asyncio
async def test_non_streaming_invalid_body():
    """Test that an undecodable single response is a protocol failure."""
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="oops")

    events = await collect(make_llm(handler), params=SamplingParams(stream=False))

    assert len(events) == 1
    assert isinstance(events[0].error, ProtocolError)


@pytest.mark.asyncio
async def test_non_streaming_http_error():
    """Test that non-streaming mode reports HTTP errors the same way."""
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"error": {"message": "bad key"}})

    events = await collect(make_llm(handler), params=SamplingParams(stream=False))

    assert len(events) == 1
    assert events[0].error.status_code == 401


@pytest.mark.asyncio
async def test_aclose_closes_client():
    """Test that closing the provider closes its HTTP client."""
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(200)))
    llm = OpenRouterLLM(credentials=InMemoryCredentialStore(), client=client)

    await llm.aclose()

    assert client.is_closed
    assert llm.provider_name == "openrouter"


@pytest.mark.asyncio
async def test_any_success_status_is_accepted():
    """Test that 2xx statuses other than 200 are read normally."""
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(202, content=sse(content_frame("ok"), "data: [DONE]"))

    events = await collect(make_llm(handler))

    assert events == [ContentDelta("ok"), Completed()]


@pytest.mark.asyncio
async def test_non_streaming_accepts_any_success_status():
    """Test that non-streaming mode also accepts 2xx statuses."""
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(201, json={"choices": [{"message": {"content": "ok"}, "finish_reason": "stop"}]})

    events = await collect(make_llm(handler), params=SamplingParams(stream=False))

    assert events == [ContentDelta("ok"), Completed("stop")]
