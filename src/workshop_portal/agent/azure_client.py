"""
Azure OpenAI REST client.

This module is the only place that *directly* talks to the model provider.  Everything else (agent
loop, gateways, tools) works with plain dict payloads and stays transport-agnostic.

One :class:`AzureDeploymentClient` targets one deployment::

    {endpoint}/openai/deployments/{deployment}/{operation}?api-version={api_version}

Requests authenticate with the ``api-key`` header, or with a managed-identity bearer token when
``AZURE_OPENAI_USE_MANAGED_IDENTITY`` is set or no API key is configured.  A failed token request
falls back to the API key when there is one.
"""

import logging
import threading
from typing import (
    Any,
    Dict,
    Mapping,
    Optional,
    cast,
)

import httpx
from azure.core.credentials import TokenCredential
from azure.core.exceptions import AzureError
from azure.identity import DefaultAzureCredential

from workshop_portal.config import Settings
from workshop_portal.errors import (
    ConfigurationError,
    EndpointRequestFailed,
    EndpointResponseError,
    EndpointUnreachable,
)

logger = logging.getLogger(__name__)

COGNITIVE_SERVICES_SCOPE = "https://cognitiveservices.azure.com/.default"

_credential_lock = threading.Lock()
_default_credential: Optional[TokenCredential] = None


def get_default_credential() -> TokenCredential:
    """Process-wide ``DefaultAzureCredential``, created on first use."""
    global _default_credential  # pylint: disable=global-statement
    with _credential_lock:
        if _default_credential is None:
            _default_credential = DefaultAzureCredential()
        return _default_credential


def build_auth_headers(
    api_key: Optional[str],
    use_managed_identity: bool = False,
    credential: Optional[TokenCredential] = None,
) -> Dict[str, str]:
    """
    Authentication headers for one request.

    Parameters
    ----------
    api_key:
        Key for the ``api-key`` header, if configured.
    use_managed_identity:
        Prefer a bearer token even when an API key is available.
    credential:
        Token source; defaults to :func:`get_default_credential`.

    Raises
    ------
    ConfigurationError
        If no token can be obtained and there is no API key to fall back to.
    """
    if api_key and not use_managed_identity:
        return {"api-key": api_key}

    try:
        token = (credential or get_default_credential()).get_token(COGNITIVE_SERVICES_SCOPE)
        if not token.token:
            raise ValueError("Managed identity did not return an access token.")
        return {"Authorization": f"Bearer {token.token}"}
    except (AzureError, ValueError) as exc:
        if api_key:
            logger.warning("Managed identity failed; falling back to API key: %s", exc)
            return {"api-key": api_key}
        raise ConfigurationError(
            "No Azure OpenAI authentication method available. Provide AZURE_OPENAI_API_KEY or "
            "enable managed identity.",
            details=str(exc),
        ) from exc


class AzureDeploymentClient:
    """Blocking client for one Azure OpenAI deployment."""

    def __init__(
        self,
        endpoint: str,
        deployment: str,
        api_version: str,
        api_key: Optional[str] = None,
        timeout: float = 60.0,
        transport: Optional[httpx.BaseTransport] = None,
        use_managed_identity: bool = False,
        credential: Optional[TokenCredential] = None,
    ):
        self.base_url = f"{endpoint.rstrip('/')}/openai/deployments/{deployment}"
        self.deployment = deployment
        self.api_version = api_version
        self._api_key = api_key
        self._timeout = timeout
        self._transport = transport
        self._use_managed_identity = use_managed_identity
        self._credential = credential

    # ------------------------------------------------------------------ #
    # Factories
    # ------------------------------------------------------------------ #
    @classmethod
    def for_chat(
        cls,
        settings: Settings,
        transport: Optional[httpx.BaseTransport] = None,
        credential: Optional[TokenCredential] = None,
    ) -> "AzureDeploymentClient":
        """Client for ``AZURE_OPENAI_CHAT_DEPLOYMENT``."""
        if not (
            settings.AZURE_OPENAI_ENDPOINT
            and settings.AZURE_OPENAI_CHAT_DEPLOYMENT
            and settings.AZURE_OPENAI_API_VERSION
        ):
            raise ConfigurationError(
                "Azure OpenAI environment variables are missing. Check AZURE_OPENAI_ENDPOINT, "
                "AZURE_OPENAI_CHAT_DEPLOYMENT, and AZURE_OPENAI_API_VERSION."
            )
        return cls(
            endpoint=settings.AZURE_OPENAI_ENDPOINT,
            deployment=settings.AZURE_OPENAI_CHAT_DEPLOYMENT,
            api_version=settings.AZURE_OPENAI_API_VERSION,
            api_key=settings.AZURE_OPENAI_API_KEY,
            timeout=settings.AZURE_OPENAI_TIMEOUT_SECONDS,
            transport=transport,
            use_managed_identity=settings.AZURE_OPENAI_USE_MANAGED_IDENTITY,
            credential=credential,
        )

    @classmethod
    def for_reasoning(
        cls,
        settings: Settings,
        transport: Optional[httpx.BaseTransport] = None,
        credential: Optional[TokenCredential] = None,
    ) -> "AzureDeploymentClient":
        """Client for the reasoning deployment, falling back to the default endpoint/key/version."""
        endpoint = settings.AZURE_OPENAI_REASONING_ENDPOINT or settings.AZURE_OPENAI_ENDPOINT
        api_version = (
            settings.AZURE_OPENAI_REASONING_API_VERSION or settings.AZURE_OPENAI_API_VERSION
        )
        if not settings.AZURE_OPENAI_REASONING_DEPLOYMENT:
            raise ConfigurationError("AZURE_OPENAI_REASONING_DEPLOYMENT is not set.")
        if not endpoint or not api_version:
            raise ConfigurationError(
                "Reasoning is enabled but neither AZURE_OPENAI_REASONING_ENDPOINT nor "
                "AZURE_OPENAI_ENDPOINT (and a matching API version) are configured."
            )
        return cls(
            endpoint=endpoint,
            deployment=settings.AZURE_OPENAI_REASONING_DEPLOYMENT,
            api_version=api_version,
            api_key=settings.AZURE_OPENAI_REASONING_API_KEY or settings.AZURE_OPENAI_API_KEY,
            timeout=settings.AZURE_OPENAI_TIMEOUT_SECONDS,
            transport=transport,
            use_managed_identity=settings.AZURE_OPENAI_USE_MANAGED_IDENTITY,
            credential=credential,
        )

    @classmethod
    def for_images(
        cls,
        settings: Settings,
        transport: Optional[httpx.BaseTransport] = None,
        credential: Optional[TokenCredential] = None,
    ) -> "AzureDeploymentClient":
        """Client for ``AZURE_OPENAI_IMAGE_DEPLOYMENT``."""
        if not (
            settings.AZURE_OPENAI_ENDPOINT
            and settings.AZURE_OPENAI_IMAGE_DEPLOYMENT
            and settings.AZURE_OPENAI_API_VERSION
        ):
            raise ConfigurationError(
                "Azure OpenAI environment variables are missing. Check AZURE_OPENAI_ENDPOINT, "
                "AZURE_OPENAI_IMAGE_DEPLOYMENT, and AZURE_OPENAI_API_VERSION."
            )
        return cls(
            endpoint=settings.AZURE_OPENAI_ENDPOINT,
            deployment=settings.AZURE_OPENAI_IMAGE_DEPLOYMENT,
            api_version=settings.AZURE_OPENAI_API_VERSION,
            api_key=settings.AZURE_OPENAI_API_KEY,
            timeout=settings.AZURE_OPENAI_TIMEOUT_SECONDS,
            transport=transport,
            use_managed_identity=settings.AZURE_OPENAI_USE_MANAGED_IDENTITY,
            credential=credential,
        )

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    def chat_completion(self, payload: Mapping[str, Any]) -> Dict[str, Any]:
        """POST ``chat/completions`` and return the decoded body."""
        return self._post("chat/completions", payload, operation="chat")

    def generate_images(self, payload: Mapping[str, Any]) -> Dict[str, Any]:
        """POST ``images/generations`` and return the decoded body."""
        return self._post("images/generations", payload, operation="image")

    def _post(self, path: str, payload: Mapping[str, Any], operation: str) -> Dict[str, Any]:
        url = f"{self.base_url}/{path}"
        headers = {
            "Content-Type": "application/json",
            **build_auth_headers(self._api_key, self._use_managed_identity, self._credential),
        }
        logger.debug("POST %s (deployment=%s)", path, self.deployment)

        try:
            with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
                resp = client.post(
                    url, params={"api-version": self.api_version}, headers=headers, json=payload
                )
        except httpx.HTTPError as exc:
            logger.error("Azure OpenAI %s transport error: %s", operation, exc)
            raise EndpointUnreachable(
                f"Unable to reach Azure OpenAI {operation} endpoint", details=str(exc)
            ) from exc

        if resp.is_error:
            logger.error("Azure OpenAI %s error %d: %s", operation, resp.status_code, resp.text)
            raise EndpointRequestFailed(
                f"Azure OpenAI {operation} request failed",
                status_code=resp.status_code,
                details=resp.text,
            )

        try:
            body = resp.json()
        except ValueError as exc:
            raise EndpointResponseError(
                f"Azure OpenAI {operation} response was not valid JSON", details=resp.text
            ) from exc
        if not isinstance(body, dict):
            raise EndpointResponseError(f"Azure OpenAI {operation} response was not an object")
        return cast(Dict[str, Any], body)


class AzureClientFactory:
    """Builds deployment clients on demand, so a route only needs the settings it uses."""

    def __init__(
        self,
        settings: Settings,
        transport: Optional[httpx.BaseTransport] = None,
        credential: Optional[TokenCredential] = None,
    ):
        self.settings = settings
        self.transport = transport
        self.credential = credential

    def chat(self) -> AzureDeploymentClient:
        return AzureDeploymentClient.for_chat(
            self.settings, transport=self.transport, credential=self.credential
        )

    def reasoning(self) -> AzureDeploymentClient:
        return AzureDeploymentClient.for_reasoning(
            self.settings, transport=self.transport, credential=self.credential
        )

    def images(self) -> AzureDeploymentClient:
        return AzureDeploymentClient.for_images(
            self.settings, transport=self.transport, credential=self.credential
        )
