"""
Core API backend for the workshop portal.

It exposes the following endpoints:
- **GET /health**                - liveness probe.
- **POST /api/auth/login**       - exchange the portal password for an auth cookie.
- **POST /api/auth/logout**      - drop the auth cookie.
- **GET /api/workshop**          - list workshop modules.
- **GET /api/workshop/{slug}**   - raw markdown of one module.
- **POST /api/ai/chat**          - single round-trip chat (reasoning mode, knowledge injection).
- **POST /api/ai/image**         - image generation.
- **POST /api/ai/agent**         - bounded tool-calling agent run.

Everything under ``/api`` except the auth routes requires the auth cookie.
"""

import logging
from functools import partial
from typing import List

from fastapi import (
    APIRouter,
    Depends,
    FastAPI,
    Request,
    Response,
)
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from workshop_portal import __version__
from workshop_portal.agent.agent_loop import AgentLoop
from workshop_portal.agent.azure_client import AzureClientFactory
from workshop_portal.agent.gateway import (
    generate_image,
    run_chat,
)
from workshop_portal.agent.tool_executor import ToolExecutor
from workshop_portal.api.models import (
    AgentRequest,
    AgentResponse,
    ChatRequest,
    ChatResponse,
    ImageRequest,
    ImageResponse,
    LoginRequest,
    ModuleContentResponse,
    ModulesResponse,
    SuccessResponse,
)
from workshop_portal.auth import (
    AUTH_COOKIE_MAX_AGE,
    AUTH_COOKIE_NAME,
    digests_match,
    get_password_digest,
    hash_password_candidate,
    require_auth,
)
from workshop_portal.config import (
    Settings,
    get_settings,
    settings as default_settings,
)
from workshop_portal.core.schema import (
    ConversationMessage,
    Role,
)
from workshop_portal.errors import (
    AuthenticationRequired,
    InputValidationError,
    PortalError,
)
from workshop_portal.knowledge.store import (
    KnowledgeStore,
    get_knowledge_store,
)
from workshop_portal.tools import (
    ToolContext,
    validate_registry,
)
from workshop_portal.workshop import (
    list_workshop_modules,
    read_workshop_module,
)

logger = logging.getLogger(__name__)

LOGIN_ERROR_MESSAGE = "Invalid password. Please try again."

validate_registry()

app = FastAPI(
    title="Workshop Portal API",
    version=__version__,
    description="Password-gated proxy to Azure OpenAI with a small tool-calling agent",
)


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------
def get_client_factory(settings: Settings = Depends(get_settings)) -> AzureClientFactory:
    """Azure clients for the current settings."""
    return AzureClientFactory(settings)


def get_knowledge() -> KnowledgeStore:
    """The process-wide knowledge store."""
    return get_knowledge_store()


# ---------------------------------------------------------------------------
# Error handlers
# ---------------------------------------------------------------------------
@app.exception_handler(PortalError)
async def portal_error_handler(request: Request, exc: PortalError) -> JSONResponse:
    """Render any fatal condition as ``{"error", "stage", ...}``."""
    if exc.status_code >= 500:
        logger.error("%s %s failed at %s: %s", request.method, request.url.path, exc.stage, exc)
    else:
        logger.warning("%s %s rejected (%s): %s", request.method, request.url.path, exc.stage, exc)

    response = JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_payload()))
    if isinstance(exc, AuthenticationRequired) and exc.clear_cookie:
        response.delete_cookie(AUTH_COOKIE_NAME, path="/")
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Reject malformed payloads with 400 before any upstream call."""
    logger.warning("Invalid payload for %s: %s", request.url.path, exc.errors())
    return JSONResponse(
        status_code=400,
        content=jsonable_encoder(
            {"error": "Invalid request payload", "stage": "input", "details": exc.errors()}
        ),
    )


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Anything that escaped the taxonomy above still gets a JSON body."""
    logger.error("%s %s failed unexpectedly", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"error": "Unexpected error while processing the request", "stage": "internal"},
    )


# ---------------------------------------------------------------------------
# Public routes
# ---------------------------------------------------------------------------
@app.get("/health", summary="Health check")
async def health() -> dict[str, str]:
    """Return a simple liveness payload."""
    return {"status": "ok"}


auth_router = APIRouter(prefix="/api/auth", tags=["auth"])


async def _read_login_password(request: Request) -> str:
    """The ``password`` field of the body; anything unreadable counts as no password."""
    try:
        body = await request.json()
    except ValueError:
        return ""
    password = body.get("password") if isinstance(body, dict) else None
    return password if isinstance(password, str) else ""


@auth_router.post(
    "/login",
    response_model=SuccessResponse,
    summary="Log in",
    openapi_extra={
        "requestBody": {
            "content": {"application/json": {"schema": LoginRequest.model_json_schema()}}
        }
    },
)
async def login(
    request: Request,
    response: Response,
    settings: Settings = Depends(get_settings),
) -> SuccessResponse:
    """Check the password and set the auth cookie."""
    expected = get_password_digest(settings)
    password = await _read_login_password(request)
    if not password.strip() or not digests_match(expected, hash_password_candidate(password)):
        raise AuthenticationRequired(LOGIN_ERROR_MESSAGE, clear_cookie=True)

    response.set_cookie(
        AUTH_COOKIE_NAME,
        expected,
        max_age=AUTH_COOKIE_MAX_AGE,
        path="/",
        secure=settings.AUTH_COOKIE_SECURE,
        httponly=True,
        samesite="lax",
    )
    logger.info("Portal login succeeded")
    return SuccessResponse()


@auth_router.post("/logout", response_model=SuccessResponse, summary="Log out")
def logout(response: Response) -> SuccessResponse:
    """Clear the auth cookie."""
    response.delete_cookie(AUTH_COOKIE_NAME, path="/")
    return SuccessResponse()


# ---------------------------------------------------------------------------
# Protected routes
# ---------------------------------------------------------------------------
api_router = APIRouter(prefix="/api", dependencies=[Depends(require_auth)])


@api_router.get("/workshop", response_model=ModulesResponse, summary="List workshop modules")
def workshop_modules(settings: Settings = Depends(get_settings)) -> ModulesResponse:
    """List markdown modules with title and summary."""
    return ModulesResponse(modules=list_workshop_modules(settings.WORKSHOP_DIR))


@api_router.get(
    "/workshop/{slug}", response_model=ModuleContentResponse, summary="Read a workshop module"
)
def workshop_module(slug: str, settings: Settings = Depends(get_settings)) -> ModuleContentResponse:
    """Return the raw markdown of one module."""
    return ModuleContentResponse(content=read_workshop_module(settings.WORKSHOP_DIR, slug))


@api_router.post("/ai/chat", response_model=ChatResponse, summary="Single round-trip chat")
def chat(
    req: ChatRequest,
    settings: Settings = Depends(get_settings),
    clients: AzureClientFactory = Depends(get_client_factory),
    knowledge: KnowledgeStore = Depends(get_knowledge),
) -> ChatResponse:
    """Forward one prompt, optionally in reasoning mode and/or grounded in the knowledge base."""
    wants_reasoning = bool(req.reasoning and req.reasoning.enabled)
    if wants_reasoning and not settings.AZURE_OPENAI_REASONING_DEPLOYMENT:
        raise InputValidationError(
            "Reasoning toggle is enabled but AZURE_OPENAI_REASONING_DEPLOYMENT is not set."
        )

    client = clients.reasoning() if wants_reasoning else clients.chat()
    result = run_chat(
        client,
        req.prompt,
        req.sampling(),
        system_prompt=req.system_prompt,
        reasoning=req.reasoning,
        include_reasoning_param=settings.AZURE_OPENAI_REASONING_INCLUDE_REASONING_PARAM,
        knowledge_store=knowledge if req.use_knowledge else None,
        knowledge_top_k=req.knowledge_top_k,
    )
    return ChatResponse(message=result.message, usage=result.usage, raw=result.raw)


@api_router.post("/ai/image", response_model=ImageResponse, summary="Generate an image")
def image(
    req: ImageRequest, clients: AzureClientFactory = Depends(get_client_factory)
) -> ImageResponse:
    """Generate images and return the first one."""
    result = generate_image(
        clients.images(),
        req.prompt,
        size=req.size,
        style=req.style,
        quality=req.quality,
        n=req.n,
        response_format=req.response_format,
    )
    return ImageResponse(
        image_base64=result.image_base64, image_url=result.image_url, raw=result.raw
    )


@api_router.post("/ai/agent", response_model=AgentResponse, summary="Tool-calling agent")
def agent(
    req: AgentRequest,
    settings: Settings = Depends(get_settings),
    clients: AzureClientFactory = Depends(get_client_factory),
    knowledge: KnowledgeStore = Depends(get_knowledge),
) -> AgentResponse:
    """Run the bounded agent loop for one prompt."""
    messages: List[ConversationMessage] = []
    if req.system_prompt:
        messages.append(ConversationMessage(role=Role.SYSTEM, content=req.system_prompt))
    messages.extend(
        ConversationMessage(role=Role(turn.role), content=turn.content) for turn in req.history
    )
    messages.append(ConversationMessage(role=Role.USER, content=req.prompt))

    context = ToolContext(
        knowledge=knowledge,
        list_modules=partial(list_workshop_modules, settings.WORKSHOP_DIR),
    )
    loop = AgentLoop(endpoint=clients.chat(), executor=ToolExecutor(context))
    result = loop.run(messages, req.sampling())
    return AgentResponse(
        message=result.final_message, usage=result.usage, tool_executions=result.tool_executions
    )


app.include_router(auth_router)
app.include_router(api_router)


# ---------------------------------------------------------------------------
# Public helper to launch the API (imported by main.py)
# ---------------------------------------------------------------------------
def run_api(
    host: str = "0.0.0.0", port: int = 8000, reload: bool = False, log_level: str | None = None
) -> None:
    """Start a uvicorn server hosting *app*.

    Parameters
    ----------
    host, port:
        Bind address for the HTTP server.
    reload:
        If *True*, enable auto-reload (useful in development).
    log_level:
        Logging level to use (default from settings if not provided).
    """

    # Lazy import - uvicorn is only needed when serving
    import uvicorn  # pylint: disable=import-outside-toplevel

    if log_level is None:
        log_level = default_settings.LOG_LEVEL

    if not default_settings.WORKSHOP_PORTAL_PASSWORD:
        logger.warning("WORKSHOP_PORTAL_PASSWORD is not set; every /api route will answer 503")

    logger.info(
        "Starting workshop portal API at %s:%d (reload=%s, log_level=%s)",
        host,
        port,
        reload,
        log_level,
    )
    uvicorn.run(
        "workshop_portal.api.app:app",
        host=host,
        port=port,
        reload=reload,
        log_level=log_level,
    )


# ---------------------------------------------------------------------------
# `python -m workshop_portal.api.app` helper
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    run_api(reload=True)
