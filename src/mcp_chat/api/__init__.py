"""HTTP API for MCP management and chat."""

from .app import build_service, create_app, register_exception_handlers
from .routes import chat_router, mcp_router, sessions_router

__all__ = [
    "build_service",
    "chat_router",
    "create_app",
    "mcp_router",
    "register_exception_handlers",
    "sessions_router",
]
