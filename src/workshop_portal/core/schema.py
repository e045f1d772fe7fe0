"""
Schema definitions for model <-> agent <-> tool messages.

These data models serve as the contract between the remote chat-completion endpoint, the agent
loop, the tool executor and the knowledge store.  We keep them separate from runtime logic so they
can be imported anywhere without side-effects.
"""

from enum import Enum
from typing import (
    Any,
    Dict,
    List,
    Literal,
    Optional,
)

from pydantic import (
    BaseModel,
    Field,
    field_validator,
)


class Role(str, Enum):
    """Conversation roles understood by the chat-completions API."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class FunctionCall(BaseModel):
    """Function name + raw JSON argument text, exactly as the model issued it."""

    name: str
    arguments: str = ""

    @field_validator("arguments", mode="before")
    @classmethod
    def _null_means_empty(cls, value: Any) -> Any:
        # Some deployments send `"arguments": null` for argument-less calls
        return "" if value is None else value


class ToolCallRequest(BaseModel):
    """A call that the model wants the agent to execute."""

    id: str = Field(..., description="Opaque id correlating the call with its result")
    type: Literal["function"] = "function"
    function: FunctionCall

    @property
    def name(self) -> str:
        return self.function.name

    @property
    def raw_arguments(self) -> str:
        return self.function.arguments


class ConversationMessage(BaseModel):
    """One entry of the message sequence sent to the model on every round trip."""

    role: Role
    content: str = ""
    tool_call_id: Optional[str] = None
    tool_calls: Optional[List[ToolCallRequest]] = None

    def to_payload(self) -> Dict[str, Any]:
        """Wire representation (unset optionals omitted)."""
        return self.model_dump(mode="json", exclude_none=True)


class ToolExecutionResult(BaseModel):
    """Outcome of one tool call, returned to the caller and fed back to the model."""

    name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)
    output: Dict[str, Any] = Field(default_factory=dict)

    @property
    def is_error(self) -> bool:
        return "error" in self.output


class SamplingParams(BaseModel):
    """Sampling parameters forwarded verbatim to the endpoint."""

    temperature: float = Field(0.7, ge=0, le=2)
    top_p: float = Field(0.9, ge=0, le=1)


class KnowledgeEntry(BaseModel):
    """A document of the knowledge base."""

    id: str
    title: str
    content: str


class RetrievedSnippet(KnowledgeEntry):
    """A knowledge entry scored against a query."""

    score: int = Field(..., ge=0, description="Number of distinct query terms found")
    excerpt: str = ""


class WorkshopModule(BaseModel):
    """Metadata of one markdown workshop module."""

    slug: str
    title: str
    summary: str = ""


class AgentRunResult(BaseModel):
    """What one agent run hands back to its caller."""

    final_message: str
    usage: Any = None
    tool_executions: List[ToolExecutionResult] = Field(default_factory=list)
    messages: List[ConversationMessage] = Field(default_factory=list)
