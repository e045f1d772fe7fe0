"""Shared fixtures and fakes for the workshop portal tests."""

import json
from pathlib import Path
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Mapping,
    Tuple,
)

import pytest

from workshop_portal.core.schema import (
    RetrievedSnippet,
    WorkshopModule,
)
from workshop_portal.errors import DataUnavailable
from workshop_portal.knowledge.store import KnowledgeStore
from workshop_portal.tools import ToolContext


class FakeKnowledge:
    """Stands in for :class:`KnowledgeStore` and records every retrieval."""

    def __init__(self, snippets: List[RetrievedSnippet] | None = None):
        self.snippets = snippets or []
        self.calls: List[Tuple[str, int]] = []

    def retrieve(self, query: str, top_k: int) -> List[RetrievedSnippet]:
        self.calls.append((query, top_k))
        return self.snippets[:top_k]


class BrokenKnowledge:
    """A knowledge store whose backing file is gone."""

    def retrieve(self, query: str, top_k: int) -> List[RetrievedSnippet]:
        raise DataUnavailable("Knowledge base file is missing.")


class ScriptedEndpoint:
    """Chat-completions endpoint that replays canned responses and records payloads."""

    def __init__(self, responses: List[Dict[str, Any]] | Callable[[int], Dict[str, Any]]):
        self._responses = responses
        self.payloads: List[Dict[str, Any]] = []

    def chat_completion(self, payload: Mapping[str, Any]) -> Dict[str, Any]:
        # Snapshot: the loop keeps appending to its own message list
        self.payloads.append(json.loads(json.dumps(payload)))
        index = len(self.payloads) - 1
        if callable(self._responses):
            return self._responses(index)
        return self._responses[index]


def tool_call(call_id: str, name: str, arguments: str = "{}") -> Dict[str, Any]:
    """A tool call as the endpoint returns it."""
    return {"id": call_id, "type": "function", "function": {"name": name, "arguments": arguments}}


def tool_call_response(*calls: Dict[str, Any], content: str | None = None) -> Dict[str, Any]:
    """Endpoint body requesting *calls*."""
    return {
        "choices": [
            {"message": {"role": "assistant", "content": content, "tool_calls": list(calls)}}
        ],
        "usage": {"total_tokens": 10},
    }


def answer_response(content: str) -> Dict[str, Any]:
    """Endpoint body with a final answer."""
    return {
        "choices": [{"message": {"role": "assistant", "content": content}}],
        "usage": {"prompt_tokens": 12, "completion_tokens": 3, "total_tokens": 15},
    }


@pytest.fixture
def write_kb(tmp_path: Path) -> Callable[[Any], Path]:
    """Write a knowledge base JSON file and return its path."""

    def _write(entries: Any) -> Path:
        path = tmp_path / "knowledge-base.json"
        path.write_text(json.dumps(entries), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def sample_entries() -> List[Dict[str, str]]:
    return [
        {
            "id": "a",
            "title": "Debugging",
            "content": "Check the logs first. Then reproduce the bug.",
        },
        {
            "id": "b",
            "title": "Prompting",
            "content": "Write a clear prompt! Show the model an example of the output.",
        },
        {
            "id": "c",
            "title": "Logs and prompts",
            "content": "Keep prompt logs. Compare the output of each prompt version.",
        },
    ]


@pytest.fixture
def store(write_kb: Callable[[Any], Path], sample_entries: List[Dict[str, str]]) -> KnowledgeStore:
    return KnowledgeStore(write_kb(sample_entries))


@pytest.fixture
def workshop_dir(tmp_path: Path) -> Path:
    """A content directory with two modules and a stray non-markdown file."""
    root = tmp_path / "workshop"
    root.mkdir()
    (root / "02-agents.md").write_text(
        "# Agents\n\nLet the model call tools.\n", encoding="utf-8"
    )
    (root / "01-intro.md").write_text(
        "\n## Introduction\n\n  Welcome to the workshop.  \n\nMore text.\n", encoding="utf-8"
    )
    (root / "notes.txt").write_text("not a module", encoding="utf-8")
    return root


@pytest.fixture
def fake_knowledge() -> FakeKnowledge:
    return FakeKnowledge(
        [
            RetrievedSnippet(
                id="a", title="Debugging", content="Check logs.", score=1, excerpt="Check logs."
            )
        ]
    )


@pytest.fixture
def tool_context(fake_knowledge: FakeKnowledge) -> ToolContext:
    modules = [WorkshopModule(slug="01-intro", title="Introduction", summary="Welcome.")]
    return ToolContext(
        knowledge=fake_knowledge, list_modules=lambda: modules  # type: ignore[arg-type]
    )
