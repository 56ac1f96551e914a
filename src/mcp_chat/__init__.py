"""MCP Chat - a chat backend that lets a model call tools on MCP servers.

The package is organised in layers:
- mcp: transports, protocol client, connection registry and capability access
- tools: mapping MCP tools to model function declarations
- llm: model provider abstraction and the Gemini provider
- execution: the multi-round tool orchestration loop
- artifacts: rehoming tool-produced images to object storage
- storage: per-device chat session persistence
- api: FastAPI routes over ``MCPService``

Example:
    from mcp_chat import ConnectionRegistry, MCPService, ServerConfiguration
    from mcp_chat.llm import ChatMessage, GeminiProvider, LLMConfig, MessageRole

    service = MCPService(
        ConnectionRegistry(),
        provider=GeminiProvider(LLMConfig(model="gemini-2.0-flash-001", api_key="...")),
    )
    await service.connect(
        ServerConfiguration(name="calc", transport="stdio", command="calc-server")
    )
    result = await service.send_chat([ChatMessage(MessageRole.USER, "What is 2+2?")])
    print(result.text)
"""

__version__ = "0.1.0"

from .errors import (
    ConfigurationError,
    MCPConnectionError,
    MCPError,
    NotConnectedError,
    NotFoundError,
    ToolNameError,
)
from .execution import (
    EnabledToolSelection,
    LoopPhase,
    OrchestrationResult,
    OrchestratorConfig,
    ToolInvocationRecord,
    ToolOrchestrator,
)
from .llm import ChatMessage, MessageRole
from .mcp import ConnectionRegistry, ServerConfiguration, TransportKind
from .service import ConnectResult, ConnectionTestResult, MCPService

__all__ = [
    "__version__",
    # Errors
    "ConfigurationError",
    "MCPConnectionError",
    "MCPError",
    "NotConnectedError",
    "NotFoundError",
    "ToolNameError",
    # MCP
    "ConnectionRegistry",
    "ServerConfiguration",
    "TransportKind",
    # Chat
    "ChatMessage",
    "MessageRole",
    "EnabledToolSelection",
    "LoopPhase",
    "OrchestrationResult",
    "OrchestratorConfig",
    "ToolInvocationRecord",
    "ToolOrchestrator",
    # Service
    "ConnectResult",
    "ConnectionTestResult",
    "MCPService",
]
