"""
Tests for tool-call fragment reassembly.
"""

from claw_agent.agent.accumulator import ToolCallAccumulator
from claw_agent.llm.base import ToolCallFragment


def test_fragments_merge_by_index():
    """Test that argument text is concatenated in arrival order."""
    acc = ToolCallAccumulator()
    acc.add(ToolCallFragment(index=0, id="call_1", name="web_search", arguments=""))
    acc.add(ToolCallFragment(index=0, arguments='{"que'))
    acc.add(ToolCallFragment(index=0, arguments='ry": "weather"}'))

    calls = acc.calls()

    assert len(calls) == 1
    assert calls[0].id == "call_1"
    assert calls[0].name == "web_search"
    assert calls[0].decoded_arguments() == {"query": "weather"}


def test_interleaved_calls_keep_first_seen_order():
    """Test that two calls streamed together stay in first-seen order."""
    acc = ToolCallAccumulator()
    acc.add(ToolCallFragment(index=1, id="b", name="web_fetch"))
    acc.add(ToolCallFragment(index=0, id="a", name="web_search"))
    acc.add(ToolCallFragment(index=0, arguments='{"query": "x"}'))
    acc.add(ToolCallFragment(index=1, arguments='{"url": "https://x.test"}'))

    calls = acc.calls()

    assert [c.id for c in calls] == ["b", "a"]
    assert calls[0].arguments == '{"url": "https://x.test"}'
    assert calls[1].arguments == '{"query": "x"}'


def test_fragments_merge_by_id_without_index():
    """Test merging when the provider only sends ids."""
    acc = ToolCallAccumulator()
    acc.add(ToolCallFragment(id="a", name="one", arguments="{"))
    acc.add(ToolCallFragment(id="b", name="two", arguments="{}"))
    acc.add(ToolCallFragment(id="a", arguments="}"))

    calls = acc.calls()

    assert [(c.id, c.arguments) for c in calls] == [("a", "{}"), ("b", "{}")]


def test_reused_index_with_new_id_starts_new_call():
    """Test that a new id on an already used index is a distinct call."""
    acc = ToolCallAccumulator()
    acc.add(ToolCallFragment(index=0, id="a", name="one", arguments="{}"))
    acc.add(ToolCallFragment(index=0, id="b", name="two", arguments="{"))
    acc.add(ToolCallFragment(index=0, arguments="}"))

    calls = acc.calls()

    assert [(c.id, c.name, c.arguments) for c in calls] == [
        ("a", "one", "{}"),
        ("b", "two", "{}"),
    ]


def test_late_name_and_id_are_filled_in():
    """Test that metadata arriving after arguments is kept."""
    acc = ToolCallAccumulator()
    acc.add(ToolCallFragment(index=0, arguments='{"q": 1}'))
    acc.add(ToolCallFragment(index=0, id="late", name="web_search"))

    calls = acc.calls()

    assert calls[0].id == "late"
    assert calls[0].name == "web_search"
    assert calls[0].arguments == '{"q": 1}'


def test_missing_id_is_synthesized():
    """Test that every call gets an id."""
    acc = ToolCallAccumulator()
    acc.add(ToolCallFragment(index=0, name="web_search", arguments="{}"))

    calls = acc.calls()

    assert calls[0].id.startswith("call_")
    assert len(acc) == 1


def test_empty_accumulator():
    """Test that no fragments means no calls."""
    acc = ToolCallAccumulator()

    assert acc.calls() == []
    assert len(acc) == 0


def test_duplicate_id_on_new_index_gets_a_fresh_id():
    """Test that two calls never share an id."""
    acc = ToolCallAccumulator()
    acc.add(ToolCallFragment(index=0, id="call_x", name="web_search", arguments='{"query": "a"}'))
    acc.add(ToolCallFragment(index=1, id="call_x", name="web_fetch", arguments='{"url": '))
    acc.add(ToolCallFragment(index=1, id="call_x", arguments='"https://x.test"}'))

    calls = acc.calls()

    assert len(calls) == 2
    assert calls[0].id == "call_x"
    assert calls[1].id != "call_x"
    assert calls[1].id.startswith("call_")
    assert calls[1].name == "web_fetch"
    assert calls[1].decoded_arguments() == {"url": "https://x.test"}
