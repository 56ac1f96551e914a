"""MCP (Model Context Protocol) connection management.

This package connects to MCP servers over stdio, SSE or streamable HTTP,
keeps one live connection per server id, and exposes their tools, prompts
and resources in normalized form.

Example:
    from mcp_chat.mcp import (
        CapabilityClient,
        ConnectionRegistry,
        ServerConfiguration,
        TransportKind,
    )

    async with ConnectionRegistry() as registry:
        await registry.connect(ServerConfiguration(
            id="fs",
            name="Filesystem",
            transport=TransportKind.STDIO,
            command="npx",
            args=["-y", "@modelcontextprotocol/server-filesystem", "/tmp"],
        ))
        capabilities = CapabilityClient(registry)
        tools = await capabilities.list_tools("fs")
        result = await capabilities.call_tool("fs", "read_file", {"path": "/tmp/a.txt"})
"""

from .capabilities import CapabilityClient, ServerTools
from .client import MCPCapability, MCPClient, MCPClientConfig, MCPServerInfo
from .config import ServerConfiguration, TransportKind
from .diagnostics import Diagnosis, diagnose, suggest
from .factory import TransportFactory, merge_environment, validate_url
from .models import (
    ContentItem,
    ImageContent,
    NormalizedPrompt,
    NormalizedResource,
    NormalizedTool,
    NormalizedToolResult,
    PromptArgument,
    PromptMessage,
    PromptResult,
    ResourceContent,
    ResourceContents,
    ResourceResult,
    TextContent,
    ToolInputSchema,
    UnknownContent,
    normalize_content,
)
from .registry import (
    ConnectionHandle,
    ConnectionRegistry,
    ConnectionState,
    RegistryConfig,
    get_registry,
)
from .transport import (
    CorrelatingTransport,
    HTTPTransportConfig,
    JSONRPCNotification,
    JSONRPCRequest,
    JSONRPCResponse,
    SSETransport,
    StdioTransport,
    StdioTransportConfig,
    StreamableHTTPTransport,
    Transport,
)

__all__ = [
    # Configuration
    "ServerConfiguration",
    "TransportKind",
    # Transport layer
    "CorrelatingTransport",
    "HTTPTransportConfig",
    "JSONRPCNotification",
    "JSONRPCRequest",
    "JSONRPCResponse",
    "SSETransport",
    "StdioTransport",
    "StdioTransportConfig",
    "StreamableHTTPTransport",
    "Transport",
    "TransportFactory",
    "merge_environment",
    "validate_url",
    # Client and registry
    "MCPCapability",
    "MCPClient",
    "MCPClientConfig",
    "MCPServerInfo",
    "ConnectionHandle",
    "ConnectionRegistry",
    "ConnectionState",
    "RegistryConfig",
    "get_registry",
    # Capabilities
    "CapabilityClient",
    "ServerTools",
    "ContentItem",
    "ImageContent",
    "NormalizedPrompt",
    "NormalizedResource",
    "NormalizedTool",
    "NormalizedToolResult",
    "PromptArgument",
    "PromptMessage",
    "PromptResult",
    "ResourceContent",
    "ResourceContents",
    "ResourceResult",
    "TextContent",
    "ToolInputSchema",
    "UnknownContent",
    "normalize_content",
    # Diagnostics
    "Diagnosis",
    "diagnose",
    "suggest",
]
