"""
Bounded tool-calling loop.

One :class:`AgentLoop` run is one user prompt:

1. send the accumulated messages + tool schemas to the endpoint;
2. if the reply requests tools, run each in order, append the results and go back to 1;
3. otherwise the reply is the final answer.

The loop makes at most ``max_iterations`` round trips.  Running out of budget is an error, never a
truncated answer.
"""

from __future__ import annotations

import json
import logging
from dataclasses import (
    dataclass,
    field,
)
from typing import (
    Any,
    Dict,
    List,
    Mapping,
    Optional,
    Protocol,
    Sequence,
)

from pydantic import (
    TypeAdapter,
    ValidationError,
)

from workshop_portal.agent.tool_executor import ToolExecutor
from workshop_portal.core.schema import (
    AgentRunResult,
    ConversationMessage,
    Role,
    SamplingParams,
    ToolCallRequest,
    ToolExecutionResult,
)
from workshop_portal.errors import (
    EndpointResponseError,
    IterationBudgetExceeded,
)
from workshop_portal.tools import get_tool_schemas

logger = logging.getLogger(__name__)

MAX_ITERATIONS = 4


class ChatCompletionEndpoint(Protocol):
    """Anything that can answer a chat-completions payload."""

    def chat_completion(self, payload: Mapping[str, Any]) -> Dict[str, Any]:
        ...  # pragma: no cover


@dataclass
class AgentRunState:
    """Per-run scratch state; created for one request and dropped afterwards."""

    messages: List[ConversationMessage]
    tool_executions: List[ToolExecutionResult] = field(default_factory=list)
    iterations: int = 0

    def append(self, message: ConversationMessage) -> None:
        self.messages.append(message)


_TOOL_CALLS = TypeAdapter(List[ToolCallRequest])


def _decode_choice(data: Mapping[str, Any]) -> tuple[Dict[str, Any], List[ToolCallRequest]]:
    """Return the first choice's message and its tool calls, or raise if there is no message."""
    choices = data.get("choices")
    first = choices[0] if isinstance(choices, list) and choices else None
    message = first.get("message") if isinstance(first, dict) else None
    if not isinstance(message, dict):
        raise EndpointResponseError("Azure OpenAI agent response did not include a message")
    if not isinstance(message.get("content"), (str, type(None))):
        raise EndpointResponseError("Azure OpenAI agent response content was not text")

    try:
        tool_calls = _TOOL_CALLS.validate_python(message.get("tool_calls") or [])
    except ValidationError as exc:
        raise EndpointResponseError(
            "Azure OpenAI agent response contained malformed tool calls", details=str(exc)
        ) from exc
    return message, tool_calls


class AgentLoop:
    """
    Drive the model through up to ``max_iterations`` tool-calling round trips.

    Parameters
    ----------
    endpoint:
        Chat-completions endpoint; see :class:`ChatCompletionEndpoint`.
    executor:
        Tool executor used for every tool call.
    tools:
        Function schemas advertised to the model (defaults to the registry).
    max_iterations:
        Round-trip budget.
    """

    def __init__(
        self,
        endpoint: ChatCompletionEndpoint,
        executor: ToolExecutor,
        tools: Optional[Sequence[Dict[str, Any]]] = None,
        max_iterations: int = MAX_ITERATIONS,
    ):
        self.endpoint = endpoint
        self.executor = executor
        self.tools = list(tools) if tools is not None else get_tool_schemas()
        self.max_iterations = max_iterations

    def run(
        self, initial_messages: Sequence[ConversationMessage], sampling: SamplingParams
    ) -> AgentRunResult:
        """
        Run the loop to a final answer.

        Raises
        ------
        IterationBudgetExceeded
            If the model still requests tools after ``max_iterations`` round trips.
        InfrastructureError
            On endpoint, transport or data-source failures (no retries).
        """
        state = AgentRunState(messages=list(initial_messages))

        while state.iterations < self.max_iterations:
            state.iterations += 1
            data = self.endpoint.chat_completion(self._build_payload(state, sampling))
            message, tool_calls = _decode_choice(data)

            if not tool_calls:
                answer = message.get("content") or ""
                state.append(ConversationMessage(role=Role.ASSISTANT, content=answer))
                logger.info(
                    "Agent finished after %d round trip(s) and %d tool call(s)",
                    state.iterations,
                    len(state.tool_executions),
                )
                return AgentRunResult(
                    final_message=answer,
                    usage=data.get("usage"),
                    tool_executions=state.tool_executions,
                    messages=state.messages,
                )

            logger.info(
                "Round %d: model requested %d tool call(s): %s",
                state.iterations,
                len(tool_calls),
                [call.name for call in tool_calls],
            )
            state.append(
                ConversationMessage(
                    role=Role.ASSISTANT,
                    content=message.get("content") or "",
                    tool_calls=tool_calls,
                )
            )
            # Results are appended in the order the calls were issued
            for call in tool_calls:
                result = self.executor.execute(call)
                state.tool_executions.append(result)
                state.append(
                    ConversationMessage(
                        role=Role.TOOL,
                        tool_call_id=call.id,
                        content=json.dumps(result.output),
                    )
                )

        logger.error("Agent exceeded %d round trips without a final answer", self.max_iterations)
        raise IterationBudgetExceeded("Agent exceeded maximum number of tool iterations")

    def _build_payload(self, state: AgentRunState, sampling: SamplingParams) -> Dict[str, Any]:
        return {
            "messages": [message.to_payload() for message in state.messages],
            "tools": self.tools,
            "temperature": sampling.temperature,
            "top_p": sampling.top_p,
        }
