"""Dispatches model-issued tool calls to ``workshop_portal.tools`` and wraps errors."""

import json
import logging
from typing import (
    Any,
    Dict,
    Mapping,
)

from workshop_portal.core.schema import (
    ToolCallRequest,
    ToolExecutionResult,
)
from workshop_portal.errors import InfrastructureError
from workshop_portal.tools import (
    TOOL_REGISTRY,
    ToolArgumentError,
    ToolContext,
)

logger = logging.getLogger(__name__)


class ToolArgumentParseError(ValueError):
    """Raised when a raw argument payload is not a JSON object."""


def parse_arguments(raw: str) -> Dict[str, Any]:
    """Decode the model's raw argument text; an empty payload means no arguments."""
    if not raw or not raw.strip():
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ToolArgumentParseError(str(exc)) from exc
    if not isinstance(parsed, dict):
        raise ToolArgumentParseError(
            f"Expected a JSON object, got {type(parsed).__name__}"
        )
    return parsed


class ToolExecutor:
    """
    Run tool calls against the registry.

    :meth:`execute` never raises for problems the model caused (bad JSON, missing arguments,
    unknown tool, a tool blowing up on its input).  Those become an ``{"error": ...}`` output the
    model can read and react to.  :class:`InfrastructureError` is the exception: a missing data
    file is an operator problem and aborts the run.
    """

    def __init__(self, context: ToolContext):
        self.context = context

    def execute(self, request: ToolCallRequest) -> ToolExecutionResult:
        """
        Parse *request*'s arguments and invoke the named tool.

        Parameters
        ----------
        request:
            The tool call exactly as the model issued it.

        Returns
        -------
        ToolExecutionResult
            Exactly one result per request.

        Raises
        ------
        InfrastructureError
            If a tool's backing resource is unavailable.
        """
        name = request.name
        try:
            args = parse_arguments(request.raw_arguments)
        except ToolArgumentParseError as exc:
            logger.warning("Could not parse arguments for tool '%s': %s", name, exc)
            return ToolExecutionResult(
                name=name,
                arguments={},
                output={"error": "Failed to parse tool arguments", "details": str(exc)},
            )

        return ToolExecutionResult(name=name, arguments=args, output=self._dispatch(name, args))

    def _dispatch(self, name: str, args: Mapping[str, Any]) -> Dict[str, Any]:
        spec = TOOL_REGISTRY.get(name)
        if spec is None:
            logger.warning("Model requested unknown tool '%s'", name)
            return {"error": f"Tool {name} is not implemented on this server."}

        try:
            logger.debug("Executing tool '%s' with args=%s", name, args)
            return spec.fn(args, self.context)
        except ToolArgumentError as exc:
            logger.info("Invalid arguments for tool '%s': %s", name, exc)
            return {"error": str(exc)}
        except InfrastructureError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unhandled error in tool '%s'", name)
            return {"error": f"Tool {name} raised an error", "details": str(exc)}
