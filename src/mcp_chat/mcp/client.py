"""MCP (Model Context Protocol) client session.

This module provides the protocol-level client for a single server:
- The initialize handshake
- Paginated capability listing (tools, prompts, resources)
- Tool calls, prompt retrieval and resource reads

Results are returned in their wire shape; normalization into the internal
types happens in ``mcp_chat.mcp.capabilities``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from mcp_chat.errors import MCPError

from .transport import (
    JSONRPCNotification,
    JSONRPCRequest,
    JSONRPCResponse,
    TRANSPORT_TIMEOUT,
    Transport,
)

PROTOCOL_VERSION = "2025-03-26"

# Upper bound on pages fetched for one list call.
MAX_PAGES = 100


class MCPCapability(str, Enum):
    """MCP server capabilities."""

    TOOLS = "tools"
    RESOURCES = "resources"
    PROMPTS = "prompts"
    LOGGING = "logging"


@dataclass
class MCPServerInfo:
    """Information about an MCP server.

    Attributes:
        name: Server name.
        version: Server version.
        protocol_version: Protocol version agreed on during initialize.
        capabilities: List of server capabilities.
        instructions: Optional usage instructions sent by the server.
    """

    name: str
    version: str
    protocol_version: str = PROTOCOL_VERSION
    capabilities: List[MCPCapability] = field(default_factory=list)
    instructions: Optional[str] = None


@dataclass
class MCPClientConfig:
    """Configuration for MCP client.

    Attributes:
        name: Client name sent to server.
        version: Client version sent to server.
    """

    name: str = "mcp-chat"
    version: str = "0.1.0"


class MCPClient:
    """Client for communicating with one MCP server.

    Provides a high-level interface for:
    - Connecting to the server and performing the handshake
    - Listing tools, prompts and resources
    - Invoking tools, fetching prompts and reading resources
    """

    def __init__(
        self,
        transport: Transport,
        config: Optional[MCPClientConfig] = None,
    ):
        """Initialize the MCP client.

        Args:
            transport: Transport for server communication.
            config: Optional client configuration.
        """
        self.transport = transport
        self.config = config or MCPClientConfig()
        self._server_info: Optional[MCPServerInfo] = None
        self._initialized = False

    @property
    def is_connected(self) -> bool:
        """Check if client is connected."""
        return self.transport.is_connected

    @property
    def is_initialized(self) -> bool:
        """Check if client is initialized."""
        return self._initialized

    @property
    def server_info(self) -> Optional[MCPServerInfo]:
        """Get server information."""
        return self._server_info

    async def connect(self) -> None:
        """Connect to the MCP server and initialize."""
        await self.transport.connect()
        await self._initialize()

    async def close(self) -> None:
        """Close the session and its transport."""
        self._initialized = False
        self._server_info = None
        await self.transport.disconnect()

    async def _initialize(self) -> None:
        """Perform MCP initialization handshake."""
        result = await self._request(
            "initialize",
            {
                "protocolVersion": PROTOCOL_VERSION,
                "capabilities": {},
                "clientInfo": {
                    "name": self.config.name,
                    "version": self.config.version,
                },
            },
            error_prefix="Initialize failed",
        )

        server_info = result.get("serverInfo") or {}
        capabilities = result.get("capabilities") or {}
        known = {c.value for c in MCPCapability}

        self._server_info = MCPServerInfo(
            name=server_info.get("name", "unknown"),
            version=server_info.get("version", "unknown"),
            protocol_version=result.get("protocolVersion", PROTOCOL_VERSION),
            capabilities=[MCPCapability(cap) for cap in capabilities if cap in known],
            instructions=result.get("instructions"),
        )

        await self.transport.send_notification(
            JSONRPCNotification(method="notifications/initialized")
        )
        self._initialized = True

    async def _request(
        self,
        method: str,
        params: Optional[Dict[str, Any]] = None,
        error_prefix: Optional[str] = None,
        timeout: Optional[float] = TRANSPORT_TIMEOUT,
    ) -> Dict[str, Any]:
        """Send a request and return its result, raising on JSON-RPC errors."""
        response: JSONRPCResponse = await self.transport.send_request(
            JSONRPCRequest(method=method, params=params),
            timeout=timeout,
        )
        if response.is_error:
            prefix = error_prefix or f"{method} failed"
            raise MCPError(
                f"{prefix}: {response.get_error_message()}",
                code=response.get_error_code(),
                data=(response.error or {}).get("data"),
            )
        return response.result or {}

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise MCPError("Client not initialized")

    async def _list_all(self, method: str, key: str) -> List[Dict[str, Any]]:
        """Follow ``nextCursor`` until the server stops paginating."""
        self._require_initialized()
        items: List[Dict[str, Any]] = []
        cursor: Optional[str] = None
        for _ in range(MAX_PAGES):
            params = {"cursor": cursor} if cursor else None
            result = await self._request(method, params)
            items.extend(result.get(key) or [])
            cursor = result.get("nextCursor")
            if not cursor:
                break
        return items

    async def list_tools(self) -> List[Dict[str, Any]]:
        """List the server's tools (wire shape)."""
        return await self._list_all("tools/list", "tools")

    async def list_prompts(self) -> List[Dict[str, Any]]:
        """List the server's prompts (wire shape)."""
        return await self._list_all("prompts/list", "prompts")

    async def list_resources(self) -> List[Dict[str, Any]]:
        """List the server's resources (wire shape)."""
        return await self._list_all("resources/list", "resources")

    async def call_tool(
        self,
        name: str,
        arguments: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        """Call a tool on the MCP server.

        Tool calls are not bound by the transport's request timeout; the
        caller bounds them.

        Args:
            name: Tool name.
            arguments: Tool arguments.
            timeout: Seconds to wait for the result; None waits indefinitely.

        Returns:
            The raw ``tools/call`` result (``content`` list and ``isError``).

        Raises:
            MCPError: If the server answers with a JSON-RPC error.
        """
        self._require_initialized()
        return await self._request(
            "tools/call",
            {"name": name, "arguments": arguments or {}},
            error_prefix="Tool call failed",
            timeout=timeout,
        )

    async def get_prompt(
        self,
        name: str,
        arguments: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """Get prompt messages from the server."""
        self._require_initialized()
        return await self._request(
            "prompts/get",
            {"name": name, "arguments": arguments or {}},
            error_prefix="Prompt get failed",
        )

    async def read_resource(self, uri: str) -> Dict[str, Any]:
        """Read a resource from the MCP server."""
        self._require_initialized()
        return await self._request(
            "resources/read",
            {"uri": uri},
            error_prefix="Resource read failed",
        )
