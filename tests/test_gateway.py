"""Tests for the single round-trip chat and image gateways."""

from typing import (
    Any,
    Dict,
    List,
    Mapping,
)

import pytest
from conftest import (
    BrokenKnowledge,
    FakeKnowledge,
    answer_response,
)

from workshop_portal.agent.gateway import (
    KNOWLEDGE_HEADER,
    ReasoningOptions,
    build_chat_payload,
    build_chat_messages,
    generate_image,
    run_chat,
)
from workshop_portal.core.schema import SamplingParams
from workshop_portal.errors import (
    DataUnavailable,
    EndpointResponseError,
)

SAMPLING = SamplingParams()


class StubClient:
    """Records the last payload and returns a canned body."""

    def __init__(self, body: Dict[str, Any]):
        self.body = body
        self.payloads: List[Mapping[str, Any]] = []

    def chat_completion(self, payload: Mapping[str, Any]) -> Dict[str, Any]:
        self.payloads.append(payload)
        return self.body

    def generate_images(self, payload: Mapping[str, Any]) -> Dict[str, Any]:
        self.payloads.append(payload)
        return self.body


def test_plain_payload_has_no_reasoning_fields() -> None:
    payload = build_chat_payload(build_chat_messages("hi"), SAMPLING)

    assert payload == {
        "messages": [{"role": "user", "content": "hi"}],
        "temperature": 0.7,
        "top_p": 0.9,
    }


def test_reasoning_effort_only_when_deployment_accepts_it() -> None:
    reasoning = ReasoningOptions(enabled=True, maxOutputTokens=256)
    messages = build_chat_messages("hi")

    without = build_chat_payload(messages, SAMPLING, reasoning, include_reasoning_param=False)
    with_param = build_chat_payload(messages, SAMPLING, reasoning, include_reasoning_param=True)

    assert "reasoning" not in without
    assert without["max_output_tokens"] == 256
    assert with_param["reasoning"] == {"effort": "medium"}
    assert with_param["max_output_tokens"] == 256


def test_disabled_reasoning_is_ignored() -> None:
    reasoning = ReasoningOptions(enabled=False, effort="high", max_output_tokens=10)

    payload = build_chat_payload(
        build_chat_messages("hi"), SAMPLING, reasoning, include_reasoning_param=True
    )

    assert "reasoning" not in payload
    assert "max_output_tokens" not in payload


def test_run_chat_with_system_prompt() -> None:
    client = StubClient(answer_response("Hello there"))

    result = run_chat(client, "hi", SAMPLING, system_prompt="Be brief.")  # type: ignore[arg-type]

    assert result.message == "Hello there"
    assert result.usage["total_tokens"] == 15
    assert [m["role"] for m in client.payloads[0]["messages"]] == ["system", "user"]


def test_run_chat_injects_knowledge(fake_knowledge: FakeKnowledge) -> None:
    """Retrieved snippets become a system message ahead of the prompt."""

    client = StubClient(answer_response("Grounded."))

    run_chat(
        client,  # type: ignore[arg-type]
        "how to debug",
        SAMPLING,
        knowledge_store=fake_knowledge,  # type: ignore[arg-type]
        knowledge_top_k=2,
    )

    assert fake_knowledge.calls == [("how to debug", 2)]
    system, user = client.payloads[0]["messages"]
    assert system["role"] == "system"
    assert system["content"] == f"{KNOWLEDGE_HEADER}\n- [Debugging] Check logs."
    assert user == {"role": "user", "content": "how to debug"}


def test_run_chat_without_matches_adds_nothing() -> None:
    client = StubClient(answer_response("ok"))

    run_chat(client, "hi", SAMPLING, knowledge_store=FakeKnowledge())  # type: ignore[arg-type]

    assert len(client.payloads[0]["messages"]) == 1


def test_run_chat_propagates_data_unavailable() -> None:
    client = StubClient(answer_response("unused"))

    with pytest.raises(DataUnavailable):
        run_chat(
            client,  # type: ignore[arg-type]
            "hi",
            SAMPLING,
            knowledge_store=BrokenKnowledge(),  # type: ignore[arg-type]
        )

    assert client.payloads == []


def test_run_chat_tolerates_empty_choices() -> None:
    result = run_chat(StubClient({"choices": []}), "hi", SAMPLING)  # type: ignore[arg-type]

    assert result.message == ""


def test_generate_image_returns_first_image() -> None:
    client = StubClient({"data": [{"b64_json": "aGVsbG8="}, {"b64_json": "second"}]})

    result = generate_image(client, "a fox", n=2)  # type: ignore[arg-type]

    assert result.image_base64 == "aGVsbG8="
    assert result.image_url is None
    assert client.payloads[0] == {
        "prompt": "a fox",
        "size": "1024x1024",
        "n": 2,
        "style": "vivid",
        "quality": "standard",
        "response_format": "b64_json",
    }


@pytest.mark.parametrize("body", [{}, {"data": []}, {"data": [{"revised_prompt": "x"}]}])
def test_generate_image_without_data_raises(body: Dict[str, Any]) -> None:
    with pytest.raises(EndpointResponseError, match="image data"):
        generate_image(StubClient(body), "a fox")  # type: ignore[arg-type]


@pytest.mark.parametrize(
    "body",
    [
        {"choices": {"message": {"content": "not a list"}}},
        {"choices": ["not an object"]},
        {"choices": [{"message": "text"}]},
        {"choices": [{"message": {"content": ["parts"]}}]},
    ],
)
def test_run_chat_tolerates_odd_choices(body: Dict[str, Any]) -> None:
    result = run_chat(StubClient(body), "hi", SAMPLING)  # type: ignore[arg-type]

    assert result.message == ""


def test_run_chat_passes_usage_through() -> None:
    body = answer_response("ok")
    body["usage"] = [1, 2]

    result = run_chat(StubClient(body), "hi", SAMPLING)  # type: ignore[arg-type]

    assert result.usage == [1, 2]


@pytest.mark.parametrize(
    "body",
    [{"data": {"b64_json": "abc"}}, {"data": [{"b64_json": 42}]}, {"data": ["abc"]}],
)
def test_generate_image_rejects_malformed_data(body: Dict[str, Any]) -> None:
    with pytest.raises(EndpointResponseError, match="image data"):
        generate_image(StubClient(body), "a fox")  # type: ignore[arg-type]
