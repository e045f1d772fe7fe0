"""
Error taxonomy for the workshop portal.

Every fatal condition is a :class:`PortalError` carrying the HTTP status and the ``stage`` that
failed, so the API layer can render one machine-readable body for all of them.  Tool-argument
problems are *not* represented here: the tool executor turns them into model-visible output.
"""

from __future__ import annotations

from typing import Any

__all__ = [
    "PortalError",
    "InputValidationError",
    "AuthenticationRequired",
    "PasswordNotConfigured",
    "ConfigurationError",
    "InfrastructureError",
    "DataUnavailable",
    "ModulesUnavailable",
    "ModuleNotFound",
    "EndpointError",
    "EndpointRequestFailed",
    "EndpointUnreachable",
    "EndpointResponseError",
    "IterationBudgetExceeded",
]


class PortalError(RuntimeError):
    """Base class for errors that abort the current request."""

    status_code: int = 500
    stage: str = "internal"

    def __init__(
        self,
        message: str,
        *,
        details: Any = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details
        if status_code is not None:
            self.status_code = status_code

    def to_payload(self) -> dict[str, Any]:
        """Render the error as the JSON body returned to API callers."""
        payload: dict[str, Any] = {"error": self.message, "stage": self.stage}
        if self.details is not None:
            payload["details"] = self.details
        return payload


class InputValidationError(PortalError):
    """The request is well-formed JSON but cannot be served as asked."""

    status_code = 400
    stage = "input"


class AuthenticationRequired(PortalError):
    """Missing or stale auth cookie."""

    status_code = 401
    stage = "auth"

    def __init__(self, message: str = "Authentication required.", *, clear_cookie: bool = False):
        super().__init__(message)
        self.clear_cookie = clear_cookie


class PasswordNotConfigured(PortalError):
    """The portal has no shared secret, so nothing behind the gate can be served."""

    status_code = 503
    stage = "auth"


class ConfigurationError(PortalError):
    """Required Azure OpenAI settings are missing."""

    stage = "configuration"


class InfrastructureError(PortalError):
    """A backing resource (data file, content dir, remote endpoint) failed."""


class DataUnavailable(InfrastructureError):
    """The knowledge base file is missing or malformed."""

    stage = "knowledge_base"


class ModulesUnavailable(InfrastructureError):
    """The workshop content directory cannot be listed."""

    stage = "workshop_modules"


class ModuleNotFound(PortalError):
    """A single workshop module does not exist."""

    status_code = 404
    stage = "workshop_modules"


class EndpointError(InfrastructureError):
    """Base class for remote chat/image endpoint failures."""

    stage = "endpoint"


class EndpointRequestFailed(EndpointError):
    """The endpoint answered with a non-success status."""

    def __init__(self, message: str, *, status_code: int, details: Any = None) -> None:
        super().__init__(message, details=details, status_code=status_code)

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["status"] = self.status_code
        return payload


class EndpointUnreachable(EndpointError):
    """Transport-level failure talking to the endpoint."""

    status_code = 502
    stage = "transport"


class EndpointResponseError(EndpointError):
    """The endpoint answered 2xx but the body lacks what we need."""

    status_code = 502
    stage = "decode"


class IterationBudgetExceeded(PortalError):
    """The agent did not produce a final answer within its round-trip budget."""

    stage = "agent_loop"
