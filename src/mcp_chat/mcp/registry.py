"""Process-wide registry of live MCP connections.

The registry owns every connection handle. Connect and disconnect are
serialized per server id; different ids are fully independent.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Callable, Dict, List, Optional

from mcp_chat.errors import MCPConnectionError, NotConnectedError

from .client import MCPClient, MCPClientConfig
from .config import ServerConfiguration
from .factory import TransportFactory
from .transport import Transport

logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    """Lifecycle of one server id in the registry."""

    ABSENT = "absent"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERROR = "error"


@dataclass
class ConnectionHandle:
    """A live client/transport pair and the configuration it came from."""

    client: MCPClient
    transport: Transport
    config: ServerConfiguration


@dataclass
class RegistryConfig:
    """Configuration for the connection registry.

    Attributes:
        settle_delay: Seconds to wait after the handshake before the handle
            is installed, for servers that finish booting after answering
            ``initialize``.
        request_timeout: Per-request timeout handed to every transport.
        client_config: Client identity sent during the handshake.
    """

    settle_delay: float = 1.0
    request_timeout: float = 30.0
    client_config: Optional[MCPClientConfig] = None


class ConnectionRegistry:
    """Maps server ids to live connections.

    Example:
        registry = ConnectionRegistry()
        await registry.connect(ServerConfiguration(
            id="fs", name="Filesystem", transport=TransportKind.STDIO,
            command="npx", args=["-y", "@modelcontextprotocol/server-filesystem", "/tmp"],
        ))
        client = registry.get_client("fs")
    """

    def __init__(
        self,
        config: Optional[RegistryConfig] = None,
        transport_factory: Optional[TransportFactory] = None,
        client_factory: Optional[Callable[[Transport], MCPClient]] = None,
    ):
        self.config = config or RegistryConfig()
        self.transport_factory = transport_factory or TransportFactory(
            request_timeout=self.config.request_timeout
        )
        self._client_factory = client_factory or (
            lambda transport: MCPClient(transport, self.config.client_config)
        )
        self._handles: Dict[str, ConnectionHandle] = {}
        self._states: Dict[str, ConnectionState] = {}
        self._errors: Dict[str, str] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    @asynccontextmanager
    async def _exclusive(self, server_id: str) -> AsyncIterator[None]:
        """Serialize connect and disconnect per id.

        A lock lives only while some caller holds or waits for it.
        """
        lock = self._locks.setdefault(server_id, asyncio.Lock())
        self._lock_users[server_id] = self._lock_users.get(server_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[server_id] -= 1
            if not self._lock_users[server_id]:
                del self._lock_users[server_id]
                del self._locks[server_id]

    async def connect(self, config: ServerConfiguration) -> ConnectionHandle:
        """Connect to a server, replacing any existing connection for its id.

        Raises:
            ConfigurationError: The configuration is unusable. Nothing is
                constructed and the registry is unchanged.
            MCPConnectionError: Spawning or the handshake failed. No handle
                is installed.
        """
        transport = self.transport_factory.build(config)

        async with self._exclusive(config.id):
            if config.id in self._handles:
                logger.info(f"Replacing existing connection for {config.id}")
                await self._teardown(config.id)

            self._states[config.id] = ConnectionState.CONNECTING
            self._errors.pop(config.id, None)
            client = self._client_factory(transport)

            try:
                logger.info(f"Connecting to MCP server {config.id} ({config.transport.value})")
                await client.connect()
                if self.config.settle_delay > 0:
                    await asyncio.sleep(self.config.settle_delay)
            except asyncio.CancelledError:
                await self._abort(config.id, client, "connect cancelled")
                raise
            except Exception as e:
                await self._abort(config.id, client, str(e))
                if isinstance(e, MCPConnectionError):
                    raise
                raise MCPConnectionError(str(e), code=getattr(e, "code", None)) from e

            handle = ConnectionHandle(client=client, transport=transport, config=config)
            self._handles[config.id] = handle
            self._states[config.id] = ConnectionState.CONNECTED
            logger.info(f"Connected to MCP server {config.id}")
            return handle

    async def _abort(self, server_id: str, client: MCPClient, reason: str) -> None:
        """Record a failed connect and close the half-open client."""
        self._states[server_id] = ConnectionState.ERROR
        self._errors[server_id] = reason
        logger.error(f"Connection to {server_id} failed: {reason}")
        try:
            await client.close()
        except Exception as e:
            logger.debug(f"Ignoring close error for {server_id}: {e}")

    async def disconnect(self, server_id: str) -> bool:
        """Close and remove the connection for ``server_id``.

        Returns:
            True if a connection was removed, False if none existed.
        """
        async with self._exclusive(server_id):
            if server_id not in self._handles:
                return False
            await self._teardown(server_id)
            return True

    async def _teardown(self, server_id: str) -> None:
        """Remove a handle and close it; close errors are logged, not raised."""
        handle = self._handles.pop(server_id)
        self._states[server_id] = ConnectionState.DISCONNECTED
        try:
            await handle.client.close()
        except Exception as e:
            logger.warning(f"Error while closing connection {server_id}: {e}")
        logger.info(f"Disconnected MCP server {server_id}")

    async def disconnect_all(self) -> None:
        """Disconnect every server concurrently; failures are logged per id."""
        server_ids = list(self._handles)
        results = await asyncio.gather(
            *(self.disconnect(server_id) for server_id in server_ids),
            return_exceptions=True,
        )
        for server_id, result in zip(server_ids, results):
            if isinstance(result, BaseException):
                logger.error(f"Failed to disconnect {server_id}: {result}")

    def is_connected(self, server_id: str) -> bool:
        return server_id in self._handles

    def list_connected_ids(self) -> List[str]:
        return list(self._handles)

    def list_connected_configs(self) -> List[ServerConfiguration]:
        return [handle.config for handle in self._handles.values()]

    def get_state(self, server_id: str) -> ConnectionState:
        return self._states.get(server_id, ConnectionState.ABSENT)

    def get_error(self, server_id: str) -> Optional[str]:
        """Last connection error recorded for ``server_id``, if any."""
        return self._errors.get(server_id)

    def get_handle(self, server_id: str) -> ConnectionHandle:
        """Return the live handle or raise ``NotConnectedError``."""
        handle = self._handles.get(server_id)
        if handle is None:
            raise NotConnectedError(server_id)
        return handle

    def get_client(self, server_id: str) -> MCPClient:
        return self.get_handle(server_id).client

    def __len__(self) -> int:
        """Return number of connected servers."""
        return len(self._handles)

    async def __aenter__(self) -> "ConnectionRegistry":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.disconnect_all()


_registry: Optional[ConnectionRegistry] = None


def get_registry(config: Optional[RegistryConfig] = None) -> ConnectionRegistry:
    """Return the process-wide registry, creating it on first use.

    ``config`` is only honoured by the call that creates the instance.
    """
    global _registry
    if _registry is None:
        _registry = ConnectionRegistry(config)
    return _registry
