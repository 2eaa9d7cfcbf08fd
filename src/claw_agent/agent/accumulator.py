"""
Reassembly of streamed tool-call fragments into complete tool calls.
"""

import uuid
from dataclasses import dataclass

import structlog

from ..llm.base import ToolCall, ToolCallFragment

logger = structlog.get_logger()


@dataclass
class _PendingCall:
    index: int | None
    id: str | None
    name: str | None
    arguments: str


class ToolCallAccumulator:
    """Merges fragments by index (or, failing that, by id) in first-seen order.

    Providers typically send the id and name once, then stream the argument
    text in later fragments that only carry the index. A fragment with
    neither index nor id continues the most recent call.
    """

    def __init__(self):
        self._calls: list[_PendingCall] = []
        self._by_index: dict[int, _PendingCall] = {}
        self._by_id: dict[str, _PendingCall] = {}

    def __len__(self) -> int:
        return len(self._calls)

    def _find(self, fragment: ToolCallFragment) -> _PendingCall | None:
        if fragment.index is not None:
            call = self._by_index.get(fragment.index)
            # Some providers reuse one index for several calls with distinct ids
            if call is not None and fragment.id is not None and call.id not in (None, fragment.id):
                return self._by_id.get(fragment.id)
            return call
        if fragment.id is not None:
            return self._by_id.get(fragment.id)
        return self._calls[-1] if self._calls else None

    def add(self, fragment: ToolCallFragment) -> None:
        call = self._find(fragment)

        if call is None:
            call = _PendingCall(fragment.index, None, fragment.name, fragment.arguments)
            self._calls.append(call)
        else:
            if call.name is None and fragment.name is not None:
                call.name = fragment.name
            call.arguments += fragment.arguments

        if call.id is None and fragment.id is not None:
            self._claim_id(call, fragment.id)
        if call.index is not None:
            self._by_index[call.index] = call

    def _claim_id(self, call: _PendingCall, call_id: str) -> None:
        # An id already owned by another call is dropped; calls() synthesizes one
        if call_id in self._by_id:
            logger.warning("Duplicate tool call id in stream", call_id=call_id)
            return
        call.id = call_id
        self._by_id[call_id] = call

    def calls(self) -> list[ToolCall]:
        """The merged calls. Missing ids are synthesized so every call can be answered."""
        return [
            ToolCall(
                id=call.id or f"call_{uuid.uuid4().hex}",
                name=call.name or "",
                arguments=call.arguments,
            )
            for call in self._calls
        ]
