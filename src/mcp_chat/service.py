"""Boundary facade used by the HTTP layer.

``MCPService`` ties the connection registry, capability access and the
orchestration loop together behind the operations the API exposes.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, TypeVar

from mcp_chat.artifacts.store import ArtifactStore
from mcp_chat.errors import MCPConnectionError, NotConnectedError
from mcp_chat.execution.orchestrator import (
    EnabledToolSelection,
    LoopPhase,
    OrchestrationResult,
    OrchestratorConfig,
    ToolOrchestrator,
)
from mcp_chat.llm.base import ChatMessage, MessageRole, ModelProvider
from mcp_chat.mcp.capabilities import CapabilityClient, ServerTools
from mcp_chat.mcp.config import ServerConfiguration
from mcp_chat.mcp.diagnostics import suggest
from mcp_chat.mcp.models import (
    NormalizedPrompt,
    NormalizedResource,
    NormalizedTool,
    NormalizedToolResult,
    PromptResult,
    ResourceResult,
)
from mcp_chat.mcp.registry import ConnectionRegistry
from mcp_chat.observability.logging import get_logger, log_context

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class ConnectResult:
    """Capabilities discovered right after connecting."""

    server_id: str
    tools: List[NormalizedTool] = field(default_factory=list)
    prompts: List[NormalizedPrompt] = field(default_factory=list)
    resources: List[NormalizedResource] = field(default_factory=list)


@dataclass
class ConnectionTestResult:
    """Outcome of a connection test, with timing in milliseconds."""

    success: bool
    server_id: str
    connect_time_ms: int
    total_time_ms: Optional[int] = None
    tools: List[NormalizedTool] = field(default_factory=list)
    prompts: List[NormalizedPrompt] = field(default_factory=list)
    resources: List[NormalizedResource] = field(default_factory=list)
    error: Optional[str] = None
    suggestion: Optional[str] = None


class MCPService:
    """Operations exposed to the API layer.

    Args:
        registry: Connection registry shared by the process.
        provider: Model provider for chat; chat answers with a fallback
            text when it is None.
        artifact_store: Where tool images are rehomed; optional.
        orchestrator_config: Round budget and per-call timeout.
        discovery_timeout: Seconds each post-connect list call may take.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        provider: Optional[ModelProvider] = None,
        artifact_store: Optional[ArtifactStore] = None,
        orchestrator_config: Optional[OrchestratorConfig] = None,
        discovery_timeout: float = 10.0,
    ):
        self.registry = registry
        self.capabilities = CapabilityClient(registry)
        self.provider = provider
        self.artifact_store = artifact_store
        self.orchestrator_config = orchestrator_config or OrchestratorConfig()
        self.discovery_timeout = discovery_timeout
        self.orchestrator: Optional[ToolOrchestrator] = None
        if provider is not None:
            self.orchestrator = ToolOrchestrator(
                provider,
                registry,
                capabilities=self.capabilities,
                artifact_store=artifact_store,
                config=self.orchestrator_config,
            )

    # Connections

    async def connect(self, config: ServerConfiguration) -> ConnectResult:
        """Connect and discover the server's capabilities.

        Raises:
            ConfigurationError: The configuration is unusable.
            MCPConnectionError: Connecting failed, or the server closed the
                connection while its tools were being listed.
        """
        with log_context(server_id=config.id):
            await self.registry.connect(config)
            try:
                tools, prompts, resources = await self._discover(config.id, strict=True)
            except MCPConnectionError:
                await self.registry.disconnect(config.id)
                raise
            logger.info(
                "server_connected",
                tools=len(tools),
                prompts=len(prompts),
                resources=len(resources),
            )
            return ConnectResult(config.id, tools, prompts, resources)

    async def _discover(self, server_id: str, strict: bool = False):
        return await asyncio.gather(
            self._bounded(self.capabilities.list_tools, server_id, "tools", surface_closed=strict),
            self._bounded(self.capabilities.list_prompts, server_id, "prompts"),
            self._bounded(self.capabilities.list_resources, server_id, "resources"),
        )

    async def _bounded(
        self,
        fetch: Callable[[str], Awaitable[List[T]]],
        server_id: str,
        what: str,
        surface_closed: bool = False,
    ) -> List[T]:
        """Run one list call under the discovery timeout, degrading to []."""
        try:
            return await asyncio.wait_for(fetch(server_id), timeout=self.discovery_timeout)
        except asyncio.TimeoutError:
            logger.warning("discovery_timeout", what=what, timeout=self.discovery_timeout)
            return []
        except NotConnectedError:
            raise
        except Exception as e:
            if surface_closed and "Connection closed" in str(e):
                raise MCPConnectionError(
                    f"Server closed the connection while listing {what}: {e}"
                ) from e
            logger.warning("discovery_failed", what=what, error=str(e))
            return []

    async def disconnect(self, server_id: str) -> None:
        """Raises NotConnectedError when nothing was connected."""
        if not await self.registry.disconnect(server_id):
            raise NotConnectedError(server_id)

    def status(self, server_id: Optional[str] = None) -> Dict[str, Any]:
        if server_id is None:
            return {"connectedServers": self.registry.list_connected_ids()}
        return {
            "serverId": server_id,
            "connected": self.registry.is_connected(server_id),
            "state": self.registry.get_state(server_id).value,
            "error": self.registry.get_error(server_id),
        }

    async def test_connection(self, config: ServerConfiguration) -> ConnectionTestResult:
        """Reconnect from scratch and report counts and timing.

        The connection stays open on success. Connection failures are
        reported in the result; configuration errors raise.
        """
        if self.registry.is_connected(config.id):
            await self.registry.disconnect(config.id)

        started = time.monotonic()
        try:
            await self.registry.connect(config)
        except MCPConnectionError as e:
            return ConnectionTestResult(
                success=False,
                server_id=config.id,
                connect_time_ms=_elapsed_ms(started),
                error=str(e),
                suggestion=suggest(str(e), config),
            )
        connect_time = _elapsed_ms(started)

        tools, prompts, resources = await self._discover(config.id)
        return ConnectionTestResult(
            success=True,
            server_id=config.id,
            connect_time_ms=connect_time,
            total_time_ms=_elapsed_ms(started),
            tools=tools,
            prompts=prompts,
            resources=resources,
        )

    # Capabilities

    async def list_tools(self, server_id: str) -> List[NormalizedTool]:
        return await self.capabilities.list_tools(server_id)

    async def list_prompts(self, server_id: str) -> List[NormalizedPrompt]:
        return await self.capabilities.list_prompts(server_id)

    async def list_resources(self, server_id: str) -> List[NormalizedResource]:
        return await self.capabilities.list_resources(server_id)

    async def list_all_tools(self) -> List[ServerTools]:
        return await self.capabilities.list_all_tools()

    async def call_tool(
        self,
        server_id: str,
        tool_name: str,
        arguments: Optional[Dict[str, Any]] = None,
    ) -> NormalizedToolResult:
        return await self.capabilities.call_tool(
            server_id,
            tool_name,
            arguments,
            timeout=self.orchestrator_config.tool_call_timeout,
        )

    async def get_prompt(
        self,
        server_id: str,
        prompt_name: str,
        arguments: Optional[Dict[str, str]] = None,
    ) -> PromptResult:
        return await self.capabilities.get_prompt(server_id, prompt_name, arguments)

    async def read_resource(self, server_id: str, uri: str) -> ResourceResult:
        return await self.capabilities.read_resource(server_id, uri)

    # Chat

    async def send_chat(
        self,
        messages: Sequence[ChatMessage],
        enabled_tools: Sequence[EnabledToolSelection] = (),
        mcp_enabled: bool = True,
    ) -> OrchestrationResult:
        """Answer the newest user message, using tools when enabled.

        Always returns a result with some text; only a malformed request
        raises.

        Raises:
            ValueError: No messages, or the newest is not a non-empty user
                message.
        """
        if not messages:
            raise ValueError("No messages")
        newest = messages[-1]
        if newest.role != MessageRole.USER or not newest.content.strip():
            raise ValueError("The last message must be a non-empty user message")

        if self.orchestrator is None:
            logger.error("chat_without_provider")
            return OrchestrationResult(
                text=self.orchestrator_config.failure_text,
                phase=LoopPhase.FAILED,
                error="Model provider is not configured",
            )

        try:
            return await self.orchestrator.run(messages, enabled_tools, mcp_enabled)
        except Exception as e:
            logger.error("chat_failed", error=str(e))
            return OrchestrationResult(
                text=self.orchestrator_config.failure_text,
                phase=LoopPhase.FAILED,
                error=str(e),
            )

    async def shutdown(self) -> None:
        await self.registry.disconnect_all()


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
