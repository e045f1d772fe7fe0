"""
Single round-trip gateways: plain chat (with optional knowledge injection and reasoning mode) and
image generation.
"""

import logging
from typing import (
    Any,
    Dict,
    List,
    Literal,
    Optional,
)

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
)

from workshop_portal.agent.azure_client import AzureDeploymentClient
from workshop_portal.core.schema import (
    ConversationMessage,
    RetrievedSnippet,
    Role,
    SamplingParams,
)
from workshop_portal.errors import EndpointResponseError
from workshop_portal.knowledge.store import KnowledgeStore

logger = logging.getLogger(__name__)

KNOWLEDGE_HEADER = "Relevant workshop knowledge:"


class ReasoningOptions(BaseModel):
    """Reasoning-mode toggle as sent by the portal UI."""

    model_config = ConfigDict(populate_by_name=True)

    enabled: bool = False
    effort: Optional[Literal["low", "medium", "high"]] = None
    max_output_tokens: Optional[int] = Field(None, ge=1, alias="maxOutputTokens")


class ChatResult(BaseModel):
    """Outcome of one chat round trip."""

    message: str
    usage: Any = None
    raw: Dict[str, Any] = Field(default_factory=dict)


class ImageResult(BaseModel):
    """First generated image, as base64 or URL."""

    image_base64: Optional[str] = None
    image_url: Optional[str] = None
    raw: Dict[str, Any] = Field(default_factory=dict)


def _first(items: Any) -> Dict[str, Any]:
    """First element of a response list, or ``{}`` when the shape is unexpected."""
    if isinstance(items, list) and items and isinstance(items[0], dict):
        return items[0]
    return {}


def format_knowledge(snippets: List[RetrievedSnippet]) -> str:
    """Render snippets as the system message injected ahead of the prompt."""
    lines = [f"- [{snippet.title}] {snippet.excerpt}" for snippet in snippets]
    return KNOWLEDGE_HEADER + "\n" + "\n".join(lines)


def build_chat_messages(
    prompt: str,
    system_prompt: Optional[str] = None,
    knowledge: Optional[List[RetrievedSnippet]] = None,
) -> List[ConversationMessage]:
    """System prompt (if any), knowledge block (if any), then the user prompt."""
    messages: List[ConversationMessage] = []
    if system_prompt:
        messages.append(ConversationMessage(role=Role.SYSTEM, content=system_prompt))
    if knowledge:
        messages.append(ConversationMessage(role=Role.SYSTEM, content=format_knowledge(knowledge)))
    messages.append(ConversationMessage(role=Role.USER, content=prompt))
    return messages


def build_chat_payload(
    messages: List[ConversationMessage],
    sampling: SamplingParams,
    reasoning: Optional[ReasoningOptions] = None,
    include_reasoning_param: bool = False,
) -> Dict[str, Any]:
    """
    Shape the chat-completions body.

    With reasoning enabled, ``include_reasoning_param`` decides whether the deployment gets a
    ``reasoning.effort`` field; ``max_output_tokens`` is forwarded either way when set.
    """
    payload: Dict[str, Any] = {
        "messages": [message.to_payload() for message in messages],
        "temperature": sampling.temperature,
        "top_p": sampling.top_p,
    }
    if reasoning and reasoning.enabled:
        if include_reasoning_param:
            payload["reasoning"] = {"effort": reasoning.effort or "medium"}
        if reasoning.max_output_tokens:
            payload["max_output_tokens"] = reasoning.max_output_tokens
    return payload


def run_chat(
    client: AzureDeploymentClient,
    prompt: str,
    sampling: SamplingParams,
    system_prompt: Optional[str] = None,
    reasoning: Optional[ReasoningOptions] = None,
    include_reasoning_param: bool = False,
    knowledge_store: Optional[KnowledgeStore] = None,
    knowledge_top_k: int = 3,
) -> ChatResult:
    """
    One chat round trip.

    When *knowledge_store* is given, the prompt is looked up first and any matches are injected
    as a system message.  ``DataUnavailable`` from the store propagates.
    """
    snippets: List[RetrievedSnippet] = []
    if knowledge_store is not None:
        snippets = knowledge_store.retrieve(prompt, knowledge_top_k)
        logger.debug("Injecting %d knowledge snippet(s) into chat", len(snippets))

    messages = build_chat_messages(prompt, system_prompt=system_prompt, knowledge=snippets)
    payload = build_chat_payload(messages, sampling, reasoning, include_reasoning_param)
    data = client.chat_completion(payload)

    message = _first(data.get("choices")).get("message")
    content = message.get("content") if isinstance(message, dict) else None
    return ChatResult(
        message=content if isinstance(content, str) else "", usage=data.get("usage"), raw=data
    )


def generate_image(
    client: AzureDeploymentClient,
    prompt: str,
    size: str = "1024x1024",
    style: str = "vivid",
    quality: str = "standard",
    n: int = 1,
    response_format: str = "b64_json",
) -> ImageResult:
    """Ask the image deployment for *n* images and return the first one."""
    data = client.generate_images(
        {
            "prompt": prompt,
            "size": size,
            "n": n,
            "style": style,
            "quality": quality,
            "response_format": response_format,
        }
    )
    first = _first(data.get("data"))
    image_base64, image_url = first.get("b64_json"), first.get("url")
    if not (isinstance(image_base64, str) and image_base64) and not (
        isinstance(image_url, str) and image_url
    ):
        raise EndpointResponseError("Azure OpenAI response did not include image data")
    return ImageResult(
        image_base64=image_base64 if isinstance(image_base64, str) else None,
        image_url=image_url if isinstance(image_url, str) else None,
        raw=data,
    )
