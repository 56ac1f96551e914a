"""Typed capability access for connected MCP servers."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from mcp_chat.errors import MCPError, NotFoundError

from .client import MCPClient
from .models import (
    NormalizedPrompt,
    NormalizedResource,
    NormalizedTool,
    NormalizedToolResult,
    PromptResult,
    ResourceResult,
)
from .registry import ConnectionRegistry

logger = logging.getLogger(__name__)

INVALID_PARAMS = -32602
RESOURCE_NOT_FOUND = -32002


@dataclass
class ServerTools:
    """Tools of one connected server."""

    server_id: str
    server_name: str
    tools: List[NormalizedTool] = field(default_factory=list)


def _translate(error: MCPError) -> MCPError:
    if error.code in (INVALID_PARAMS, RESOURCE_NOT_FOUND):
        return NotFoundError(str(error), code=error.code, data=error.data)
    return error


class CapabilityClient:
    """Lists and invokes capabilities of connected servers.

    Every operation needs a live connection and raises
    ``NotConnectedError`` otherwise. Wire results are normalized here and
    nowhere else.
    """

    def __init__(self, registry: ConnectionRegistry):
        self.registry = registry

    def _client(self, server_id: str) -> MCPClient:
        return self.registry.get_client(server_id)

    async def list_tools(self, server_id: str) -> List[NormalizedTool]:
        raw = await self._client(server_id).list_tools()
        return [NormalizedTool.from_wire(tool) for tool in raw]

    async def list_prompts(self, server_id: str) -> List[NormalizedPrompt]:
        raw = await self._client(server_id).list_prompts()
        return [NormalizedPrompt.from_wire(prompt) for prompt in raw]

    async def list_resources(self, server_id: str) -> List[NormalizedResource]:
        raw = await self._client(server_id).list_resources()
        return [NormalizedResource.from_wire(resource) for resource in raw]

    async def call_tool(
        self,
        server_id: str,
        tool_name: str,
        arguments: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> NormalizedToolResult:
        """Invoke a tool and normalize its result.

        A result flagged ``isError`` by the server is returned, not raised;
        callers decide what a tool-level error means for them. ``timeout``
        of None leaves the call unbounded.
        """
        client = self._client(server_id)
        try:
            raw = await client.call_tool(tool_name, arguments or {}, timeout=timeout)
        except MCPError as e:
            raise _translate(e) from e
        return NormalizedToolResult.from_wire(raw)

    async def get_prompt(
        self,
        server_id: str,
        prompt_name: str,
        arguments: Optional[Dict[str, str]] = None,
    ) -> PromptResult:
        client = self._client(server_id)
        try:
            raw = await client.get_prompt(prompt_name, arguments or {})
        except MCPError as e:
            raise _translate(e) from e
        return PromptResult.from_wire(raw)

    async def read_resource(self, server_id: str, uri: str) -> ResourceResult:
        client = self._client(server_id)
        try:
            raw = await client.read_resource(uri)
        except MCPError as e:
            raise _translate(e) from e
        return ResourceResult.from_wire(raw)

    async def list_all_tools(self) -> List[ServerTools]:
        """Tools of every connected server; failing servers are skipped."""
        results: List[ServerTools] = []
        for config in self.registry.list_connected_configs():
            try:
                tools = await self.list_tools(config.id)
            except Exception as e:
                logger.error(f"Failed to get tools from server {config.id}: {e}")
                continue
            results.append(ServerTools(config.id, config.name, tools))
        return results
