# services/bridge/src/bridge/app.py

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Optional

import httpx
from fastapi import APIRouter, Depends, FastAPI, Header, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from libs.commerce_shared.cache import BoundedTTLCache
from libs.commerce_shared.context import RequestContext, parse_bearer
from libs.commerce_shared.errors import guardrail_error, not_found_error, service_error
from libs.commerce_shared.guardrails import Guardrails, GuardrailViolation
from libs.commerce_shared.health import HealthMonitor, format_health_response
from libs.commerce_shared.logging import get_logger
from libs.commerce_shared.metrics import Metrics
from libs.commerce_shared.middleware import CorrelationIdMiddleware, MetricsMiddleware
from libs.commerce_shared.models import HealthResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__
from .commerce_client import CommerceClient
from .config import BridgeConfig, config
from .gateway import ToolGateway
from .models import ChatRequest, ChatResponse, ClearResponse, Conversation
from .orchestrator import ChatOrchestrator
from .providers.factory import ProviderFactory
from .session import SessionStore

logger = get_logger(__name__)

router = APIRouter(tags=["chat"])


@dataclass
class BridgeComponents:
    """Everything one running bridge process owns."""

    settings: BridgeConfig
    client: CommerceClient
    cache: BoundedTTLCache
    health_monitor: HealthMonitor
    sessions: SessionStore
    guardrails: Guardrails
    gateway: ToolGateway
    orchestrator: ChatOrchestrator


def build_components(
    settings: BridgeConfig = config,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    provider_factory=None,
) -> BridgeComponents:
    client = CommerceClient.from_config(settings, transport=transport)
    cache = BoundedTTLCache(
        ttl_seconds=settings.cache_ttl_seconds, max_size=settings.cache_max_size
    )
    health_monitor = HealthMonitor(check_interval=settings.health_check_interval)
    sessions = SessionStore(
        max_messages=settings.session_max_messages,
        max_conversations=settings.session_max_conversations,
    )
    guardrails = Guardrails(settings.guardrail_config())
    gateway = ToolGateway(client, cache, health_monitor, settings.retry_policy())
    orchestrator = ChatOrchestrator(
        sessions,
        gateway,
        provider_factory or ProviderFactory(settings),
        guardrails=guardrails,
        settings=settings,
    )
    return BridgeComponents(
        settings=settings,
        client=client,
        cache=cache,
        health_monitor=health_monitor,
        sessions=sessions,
        guardrails=guardrails,
        gateway=gateway,
        orchestrator=orchestrator,
    )


# --- Dependencies ----------------------------------------------------------------


def get_components(request: Request) -> BridgeComponents:
    components = getattr(request.app.state, "components", None)
    if components is None:
        raise service_error("Bridge not initialized", status_code=503)
    return components


def bearer_token(authorization: Optional[str] = Header(None)) -> Optional[str]:
    return parse_bearer(authorization)


# --- Chat Endpoint ---------------------------------------------------------------


@router.post("/chat", response_model=ChatResponse)
async def chat(
    req: ChatRequest,
    components: BridgeComponents = Depends(get_components),
    header_token: Optional[str] = Depends(bearer_token),
):
    """Handle one chat turn."""
    ctx = RequestContext.resolve(
        req.user_id,
        header_token,
        body_token=req.user_access_token,
        conversation_id=req.conversation_id,
    )

    try:
        components.guardrails.validate_request(
            req.message, ctx.user_id, ctx.conversation_id
        )
    except GuardrailViolation as violation:
        raise guardrail_error(violation)

    turn_request = req.model_copy(
        update={
            "user_access_token": ctx.access_token,
            "is_authenticated": ctx.is_authenticated,
        }
    )
    logger.info("Chat request received", extra=ctx.to_dict())

    try:
        response = await components.orchestrator.handle_message(turn_request)
    except Exception as e:
        logger.error(f"Error during chat processing: {e}", exc_info=True)
        raise service_error("Internal server error")

    if not req.conversation_id:
        components.guardrails.track_conversation(ctx.user_id, response.conversation_id)
    return response


# --- Conversation Endpoints ------------------------------------------------------


@router.get("/conversations/{conversation_id}", response_model=Conversation)
async def get_conversation(
    conversation_id: str, components: BridgeComponents = Depends(get_components)
):
    conversation = components.sessions.get_conversation(conversation_id)
    if conversation is None:
        raise not_found_error("conversation", conversation_id)
    return conversation


@router.delete("/conversations/{conversation_id}", response_model=ClearResponse)
async def clear_conversation(
    conversation_id: str, components: BridgeComponents = Depends(get_components)
):
    """Empty a conversation and reset its cart state. Unknown ids are a no-op."""
    cleared = components.sessions.clear(conversation_id)
    if not cleared:
        logger.info(
            "Clear requested for unknown conversation",
            extra={"conversation_id": conversation_id},
        )
    return ClearResponse()


# --- Health Check Endpoint -------------------------------------------------------


@router.get("/health", response_model=HealthResponse)
async def health(components: BridgeComponents = Depends(get_components)):
    details = {
        "service": "bridge",
        "sessions": components.sessions.stats(),
        "cache_entries": len(components.cache),
        "metrics": Metrics.snapshot(prefix="bridge_"),
    }
    return format_health_response(
        components.health_monitor.snapshot(), details, __version__
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Return structured error details as the response body itself."""
    body = exc.detail if isinstance(exc.detail, dict) else {"error": exc.detail}
    return JSONResponse(status_code=exc.status_code, content=body, headers=exc.headers)


# --- Lifespan / Startup & Shutdown -----------------------------------------------


def create_app(components: Optional[BridgeComponents] = None) -> FastAPI:
    """Create and configure the FastAPI application."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # STARTUP
        if getattr(app.state, "components", None) is None:
            app.state.components = build_components(config)
        bridge = app.state.components
        await bridge.orchestrator.load_reference_data()
        bridge.health_monitor.start()
        logger.info("Bridge service started", extra={"port": bridge.settings.port})

        yield  # application is running

        # SHUTDOWN
        await bridge.health_monitor.stop()
        await bridge.client.aclose()

    app = FastAPI(
        title="Commerce Chat Bridge",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.components = components

    # CORS policy
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(MetricsMiddleware, exclude_paths=["/health"])
    app.add_middleware(CorrelationIdMiddleware)

    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.include_router(router)
    return app


app = create_app()


def main():
    import uvicorn

    uvicorn.run(
        "bridge.app:app",
        host=config.host,
        port=config.port,
        log_level=config.log_level.lower(),
    )


if __name__ == "__main__":
    main()
