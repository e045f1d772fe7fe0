"""
Pydantic models for workshop portal API requests and responses.

Wire names are camelCase (``systemPrompt``, ``topP``, ``toolExecutions``...) to match the portal
front-end; Python attributes stay snake_case.
"""

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

from workshop_portal.agent.gateway import ReasoningOptions
from workshop_portal.core.schema import (
    SamplingParams,
    ToolExecutionResult,
    WorkshopModule,
)


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------
class LoginRequest(BaseModel):
    """Password login attempt."""

    password: str = ""


class HistoryMessage(BaseModel):
    """One earlier turn replayed to the agent."""

    role: Literal["user", "assistant"]
    content: str


class PromptRequest(_CamelModel):
    """Fields shared by the chat and agent endpoints."""

    system_prompt: Optional[str] = Field(None, alias="systemPrompt")
    prompt: str = Field(..., min_length=1, description="Prompt cannot be empty")
    temperature: float = Field(0.7, ge=0, le=2)
    top_p: float = Field(0.9, ge=0, le=1, alias="topP")

    def sampling(self) -> SamplingParams:
        return SamplingParams(temperature=self.temperature, top_p=self.top_p)


class ChatRequest(PromptRequest):
    """Single round-trip chat."""

    reasoning: Optional[ReasoningOptions] = None
    use_knowledge: bool = Field(False, alias="useKnowledge")
    knowledge_top_k: int = Field(3, ge=1, le=5, alias="knowledgeTopK")


class AgentRequest(PromptRequest):
    """Tool-calling agent run."""

    history: List[HistoryMessage] = Field(default_factory=list)


class ImageRequest(_CamelModel):
    """Image generation."""

    prompt: str = Field(..., min_length=1)
    size: Literal["1024x1024", "1792x1024", "1024x1792"] = "1024x1024"
    style: Literal["vivid", "natural"] = "vivid"
    quality: Literal["standard", "hd"] = "standard"
    n: int = Field(1, ge=1, le=4)
    response_format: Literal["b64_json", "url"] = Field("b64_json", alias="responseFormat")


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------
class SuccessResponse(BaseModel):
    """Login / logout acknowledgement."""

    success: bool = True


class ModulesResponse(BaseModel):
    """Workshop module listing."""

    modules: List[WorkshopModule]


class ModuleContentResponse(BaseModel):
    """Raw markdown of one module."""

    content: str


class ChatResponse(BaseModel):
    """Chat answer plus upstream usage and raw body."""

    message: str
    usage: Any = None
    raw: Dict[str, Any] = Field(default_factory=dict)


class AgentResponse(_CamelModel):
    """Agent answer plus every tool execution of the run."""

    message: str
    usage: Any = None
    tool_executions: List[ToolExecutionResult] = Field(
        default_factory=list, alias="toolExecutions"
    )


class ImageResponse(_CamelModel):
    """First generated image."""

    image_base64: Optional[str] = Field(None, alias="imageBase64")
    image_url: Optional[str] = Field(None, alias="imageUrl")
    raw: Dict[str, Any] = Field(default_factory=dict)
