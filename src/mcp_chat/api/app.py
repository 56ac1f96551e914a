"""FastAPI application factory."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from mcp_chat.artifacts.store import ArtifactStore, SupabaseArtifactStore
from mcp_chat.config import Settings, get_settings
from mcp_chat.errors import (
    ConfigurationError,
    MCPConnectionError,
    MCPError,
    NotConnectedError,
    NotFoundError,
)
from mcp_chat.llm.base import ModelProvider
from mcp_chat.mcp.diagnostics import suggest
from mcp_chat.mcp.registry import ConnectionRegistry, get_registry
from mcp_chat.observability.logging import configure_logging
from mcp_chat.service import MCPService
from mcp_chat.storage.chat_store import ChatStore, FileChatStore, InMemoryChatStore

from .routes import chat_router, mcp_router, sessions_router

logger = logging.getLogger(__name__)


def _build_provider(settings: Settings) -> Optional[ModelProvider]:
    if not settings.gemini_api_key:
        logger.warning("GEMINI_API_KEY is not set; chat will answer with a fallback message")
        return None
    from mcp_chat.llm.providers.gemini import GeminiProvider

    return GeminiProvider(settings.llm_config())


def _build_artifact_store(settings: Settings) -> Optional[ArtifactStore]:
    storage = settings.storage_config()
    if storage is None:
        logger.info("Supabase storage not configured; tool images stay inline")
        return None
    return SupabaseArtifactStore(storage)


def build_service(settings: Settings, registry: Optional[ConnectionRegistry] = None) -> MCPService:
    """Wire a service from settings.

    Without an explicit ``registry`` the process-wide one is used, so every
    service built in this process shares the same connections.
    """
    return MCPService(
        registry or get_registry(settings.registry_config()),
        provider=_build_provider(settings),
        artifact_store=_build_artifact_store(settings),
        orchestrator_config=settings.orchestrator_config(),
        discovery_timeout=settings.mcp_discovery_timeout,
    )


def _error(status_code: int, exc: Exception, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": str(exc), **extra})


def register_exception_handlers(app: FastAPI) -> None:
    """Map the MCP error hierarchy to HTTP status codes."""

    @app.exception_handler(ConfigurationError)
    async def _configuration_error(request: Request, exc: ConfigurationError):
        return _error(400, exc)

    @app.exception_handler(NotConnectedError)
    async def _not_connected(request: Request, exc: NotConnectedError):
        return _error(404, exc, serverId=exc.server_id)

    @app.exception_handler(NotFoundError)
    async def _not_found(request: Request, exc: NotFoundError):
        return _error(404, exc)

    @app.exception_handler(MCPConnectionError)
    async def _connection_error(request: Request, exc: MCPConnectionError):
        return _error(502, exc, suggestion=suggest(str(exc)))

    @app.exception_handler(MCPError)
    async def _mcp_error(request: Request, exc: MCPError):
        logger.error(f"Unhandled MCP error on {request.url.path}: {exc}")
        return _error(500, exc, code=exc.code)


def create_app(
    settings: Optional[Settings] = None,
    service: Optional[MCPService] = None,
    chat_store: Optional[ChatStore] = None,
) -> FastAPI:
    """Create the application.

    Args:
        settings: Defaults to the cached environment settings.
        service: Prebuilt service; built from ``settings`` when omitted.
        chat_store: Session store; a JSON file store when
            ``CHAT_STORE_PATH`` is set, in memory otherwise.
    """
    settings = settings or get_settings()
    configure_logging(settings.log_config())

    if service is None:
        service = build_service(settings)
    if chat_store is None:
        chat_store = (
            FileChatStore(settings.chat_store_path)
            if settings.chat_store_path
            else InMemoryChatStore()
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting MCP chat API")
        yield
        logger.info("Shutting down; disconnecting MCP servers")
        await service.shutdown()
        store = service.artifact_store
        if isinstance(store, SupabaseArtifactStore):
            await store.close()

    app = FastAPI(
        title="MCP Chat API",
        description="Chat backend that calls tools on connected MCP servers.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.service = service
    app.state.chat_store = chat_store

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.api_allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)

    app.include_router(mcp_router)
    app.include_router(chat_router)
    app.include_router(sessions_router)

    @app.get("/health")
    async def health():
        return {"status": "ok", "connectedServers": len(service.registry)}

    return app
