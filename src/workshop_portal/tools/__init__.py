"""
Tool registry for the workshop portal.

This module provides a decorator to register tools and a registry to look them up by name.  The
set of tools is closed: every name must be a member of :class:`ToolName`, and
:func:`validate_registry` checks at startup that each member has exactly one implementation.

A tool is a function ``(args, context) -> output`` where *args* is the JSON object the model sent
and *output* is a JSON-serializable mapping.  Tools signal bad arguments with
:class:`ToolArgumentError`; the executor turns that into model-visible output.
"""

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Mapping,
)

from workshop_portal.core.schema import WorkshopModule
from workshop_portal.knowledge.store import KnowledgeStore

logger = logging.getLogger(__name__)

DEFAULT_TOP_K = 3
MIN_TOP_K = 1
MAX_TOP_K = 5


class ToolName(str, Enum):
    """Every tool the model may call."""

    KNOWLEDGE_LOOKUP = "knowledge_lookup"
    LIST_WORKSHOP_MODULES = "list_workshop_modules"


class ToolArgumentError(ValueError):
    """Raised by a tool when the model-supplied arguments are unusable."""


@dataclass(frozen=True)
class ToolContext:
    """Collaborators a tool may use."""

    knowledge: KnowledgeStore
    list_modules: Callable[[], List[WorkshopModule]]


ToolFn = Callable[[Mapping[str, Any], ToolContext], Dict[str, Any]]


@dataclass(frozen=True)
class ToolSpec:
    """Implementation plus the function schema advertised to the model."""

    name: ToolName
    fn: ToolFn
    description: str
    parameters: Dict[str, Any]

    def schema(self) -> Dict[str, Any]:
        """Return the chat-completions ``tools`` entry for this tool."""
        return {
            "type": "function",
            "function": {
                "name": self.name.value,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


TOOL_REGISTRY: Dict[str, ToolSpec] = {}
"""Global registry of tools, keyed by ``ToolName`` value."""


def register_tool(name: ToolName, description: str, parameters: Dict[str, Any]) -> Callable:
    """
    Register a tool function under *name*.

    Used as a decorator::

        @register_tool(ToolName.KNOWLEDGE_LOOKUP, "Look things up", {...})
        def knowledge_lookup(args, context):
            ...

    Raises
    ------
    ValueError
        If *name* is already registered.
    """
    if name.value in TOOL_REGISTRY:
        raise ValueError(f"Tool '{name.value}' is already registered.")
    logger.debug("Registering tool '%s'", name.value)

    def wrapper(fn: ToolFn) -> ToolFn:
        TOOL_REGISTRY[name.value] = ToolSpec(
            name=name, fn=fn, description=description, parameters=parameters
        )
        return fn

    return wrapper


def validate_registry() -> None:
    """Fail fast if the registry and :class:`ToolName` disagree."""
    expected = {member.value for member in ToolName}
    actual = set(TOOL_REGISTRY)
    if expected != actual:
        raise RuntimeError(
            f"Tool registry mismatch: missing={sorted(expected - actual)}, "
            f"unexpected={sorted(actual - expected)}"
        )


def get_tool_schemas() -> List[Dict[str, Any]]:
    """Function schemas for every registered tool, in :class:`ToolName` order."""
    return [
        TOOL_REGISTRY[member.value].schema() for member in ToolName if member.value in TOOL_REGISTRY
    ]


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------
def _coerce_top_k(value: Any) -> int:
    # bool is an int subclass but never a meaningful count
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        value = DEFAULT_TOP_K
    # json.loads accepts NaN and Infinity
    elif isinstance(value, float) and not math.isfinite(value):
        value = DEFAULT_TOP_K
    return int(min(max(value, MIN_TOP_K), MAX_TOP_K))


@register_tool(
    ToolName.KNOWLEDGE_LOOKUP,
    "Retrieve the most relevant snippets from the workshop knowledge base to ground answers.",
    {
        "type": "object",
        "properties": {
            "query": {
                "type": "string",
                "description": "The search query or question to look up.",
            },
            "topK": {
                "type": "integer",
                "minimum": MIN_TOP_K,
                "maximum": MAX_TOP_K,
                "description": f"How many snippets to return (default {DEFAULT_TOP_K}).",
            },
        },
        "required": ["query"],
    },
)
def knowledge_lookup(args: Mapping[str, Any], context: ToolContext) -> Dict[str, Any]:
    """Search the knowledge base; out-of-range ``topK`` is clamped, not rejected."""
    query = args.get("query")
    if not isinstance(query, str) or not query.strip():
        raise ToolArgumentError("Missing required query argument.")

    snippets = context.knowledge.retrieve(query, _coerce_top_k(args.get("topK")))
    return {"snippets": [snippet.model_dump() for snippet in snippets]}


@register_tool(
    ToolName.LIST_WORKSHOP_MODULES,
    "List workshop modules with their titles and summaries.",
    {"type": "object", "properties": {}},
)
def list_workshop_modules(args: Mapping[str, Any], context: ToolContext) -> Dict[str, Any]:
    """Return the workshop modules in filename order."""
    return {"modules": [module.model_dump() for module in context.list_modules()]}
