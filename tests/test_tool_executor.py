"""
Basic sanity tests for the tool executor.

Run with:
$ pytest -q
"""

import pytest
from conftest import (
    BrokenKnowledge,
    FakeKnowledge,
)

from workshop_portal.agent.tool_executor import (
    ToolExecutor,
    parse_arguments,
)
from workshop_portal.core.schema import (
    FunctionCall,
    ToolCallRequest,
)
from workshop_portal.errors import DataUnavailable
from workshop_portal.tools import (
    TOOL_REGISTRY,
    ToolContext,
    ToolName,
    ToolSpec,
    get_tool_schemas,
    validate_registry,
)


def _request(name: str, arguments: str = "{}") -> ToolCallRequest:
    return ToolCallRequest(id="call_1", function=FunctionCall(name=name, arguments=arguments))


def test_registry_matches_tool_names() -> None:
    """Every ToolName has exactly one implementation and a schema."""

    validate_registry()
    names = [schema["function"]["name"] for schema in get_tool_schemas()]
    assert names == ["knowledge_lookup", "list_workshop_modules"]


def test_parse_arguments() -> None:
    """Blank payloads mean no arguments; anything else must be a JSON object."""

    assert parse_arguments("") == {}
    assert parse_arguments("   ") == {}
    assert parse_arguments('{"query": "x", "topK": 2}') == {"query": "x", "topK": 2}


@pytest.mark.parametrize("name", ["knowledge_lookup", "list_workshop_modules", "not_a_tool"])
@pytest.mark.parametrize("raw", ["{broken", "[1, 2]", '"just a string"'])
def test_malformed_arguments_never_raise(
    tool_context: ToolContext, fake_knowledge: FakeKnowledge, name: str, raw: str
) -> None:
    """Unparseable arguments give empty args and an error output for any tool name."""

    result = ToolExecutor(tool_context).execute(_request(name, raw))

    assert result.name == name
    assert result.arguments == {}
    assert result.output["error"] == "Failed to parse tool arguments"
    assert result.output["details"]
    assert fake_knowledge.calls == []


@pytest.mark.parametrize("arguments", ['{"query": "   "}', '{"query": ""}', "{}", '{"query": 42}'])
def test_blank_query_skips_knowledge_store(
    tool_context: ToolContext, fake_knowledge: FakeKnowledge, arguments: str
) -> None:
    """knowledge_lookup rejects a missing/blank query without touching the store."""

    result = ToolExecutor(tool_context).execute(_request("knowledge_lookup", arguments))

    assert result.output == {"error": "Missing required query argument."}
    assert fake_knowledge.calls == []


def test_knowledge_lookup_success(tool_context: ToolContext, fake_knowledge: FakeKnowledge) -> None:
    """Snippets are wrapped in ``{"snippets": [...]}`` and the parsed args are kept."""

    result = ToolExecutor(tool_context).execute(
        _request("knowledge_lookup", '{"query": "logs", "topK": 2}')
    )

    assert result.arguments == {"query": "logs", "topK": 2}
    assert result.output["snippets"][0]["id"] == "a"
    assert result.output["snippets"][0]["score"] == 1
    assert fake_knowledge.calls == [("logs", 2)]
    assert not result.is_error


@pytest.mark.parametrize(
    ("top_k", "expected"),
    [
        ("99", 5),
        ("0", 1),
        ("-3", 1),
        ("4.7", 4),
        ('"many"', 3),
        ("true", 3),
        ("null", 3),
        ("NaN", 3),
        ("Infinity", 3),
        ("-Infinity", 3),
    ],
)
def test_top_k_is_clamped(
    tool_context: ToolContext, fake_knowledge: FakeKnowledge, top_k: str, expected: int
) -> None:
    """Out-of-range or non-numeric topK is clamped/defaulted, never an error."""

    result = ToolExecutor(tool_context).execute(
        _request("knowledge_lookup", f'{{"query": "logs", "topK": {top_k}}}')
    )

    assert "error" not in result.output
    assert fake_knowledge.calls == [("logs", expected)]


def test_top_k_defaults_to_three(tool_context: ToolContext, fake_knowledge: FakeKnowledge) -> None:
    ToolExecutor(tool_context).execute(_request("knowledge_lookup", '{"query": "logs"}'))

    assert fake_knowledge.calls == [("logs", 3)]


def test_list_workshop_modules(tool_context: ToolContext) -> None:
    """The module listing is wrapped in ``{"modules": [...]}``; empty arguments are fine."""

    result = ToolExecutor(tool_context).execute(_request("list_workshop_modules", ""))

    assert result.arguments == {}
    assert result.output == {
        "modules": [{"slug": "01-intro", "title": "Introduction", "summary": "Welcome."}]
    }


def test_unknown_tool(tool_context: ToolContext) -> None:
    """Unknown names produce an error output instead of raising."""

    result = ToolExecutor(tool_context).execute(_request("not_a_tool", '{"a": 1}'))

    assert result.arguments == {"a": 1}
    assert result.output == {"error": "Tool not_a_tool is not implemented on this server."}
    assert result.is_error


def test_data_unavailable_propagates(tool_context: ToolContext) -> None:
    """A broken knowledge base is fatal, not a tool error."""

    context = ToolContext(
        knowledge=BrokenKnowledge(),  # type: ignore[arg-type]
        list_modules=tool_context.list_modules,
    )

    with pytest.raises(DataUnavailable):
        ToolExecutor(context).execute(_request("knowledge_lookup", '{"query": "logs"}'))


def test_unexpected_tool_failure_is_captured(
    monkeypatch: pytest.MonkeyPatch, tool_context: ToolContext
) -> None:
    """Any other exception inside a tool becomes model-visible output."""

    def _boom(args, context):
        raise KeyError("slug")

    spec = TOOL_REGISTRY[ToolName.LIST_WORKSHOP_MODULES.value]
    monkeypatch.setitem(
        TOOL_REGISTRY,
        ToolName.LIST_WORKSHOP_MODULES.value,
        ToolSpec(
            name=spec.name, fn=_boom, description=spec.description, parameters=spec.parameters
        ),
    )

    result = ToolExecutor(tool_context).execute(_request("list_workshop_modules"))

    assert result.output["error"] == "Tool list_workshop_modules raised an error"
    assert "slug" in result.output["details"]
