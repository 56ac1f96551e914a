"""MCP (Model Context Protocol) transport layer.

This module provides transport implementations for MCP communication:
- Stdio transport for subprocess-based MCP servers
- SSE transport for the legacy HTTP+SSE servers (GET event stream, POST endpoint)
- Streamable HTTP transport for servers speaking the single-endpoint HTTP protocol

The two HTTP transports run the MCP SDK's client streams. All transports
speak JSON-RPC 2.0 and correlate responses to requests by id.
"""

from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from collections import deque
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import (
    Any,
    AsyncContextManager,
    AsyncIterator,
    Callable,
    Deque,
    Dict,
    List,
    Optional,
    Tuple,
    Union,
)

import anyio
import httpx
from mcp.client.sse import sse_client
from mcp.client.streamable_http import streamable_http_client
from mcp.shared.message import SessionMessage
from mcp.types import JSONRPCMessage

from mcp_chat.errors import MCPConnectionError, MCPError, TransportError

logger = logging.getLogger(__name__)

METHOD_NOT_FOUND = -32601

# Tool results may carry inline images, far beyond asyncio's 64 KiB line limit.
STDIO_LINE_LIMIT = 16 * 1024 * 1024

# Passed as ``timeout`` to use the transport's own request timeout.
TRANSPORT_TIMEOUT: Any = object()


@dataclass
class JSONRPCRequest:
    """JSON-RPC 2.0 request message.

    Attributes:
        method: The method to call.
        params: Optional parameters for the method.
        id: Request ID for matching responses.
    """

    method: str
    params: Optional[Dict[str, Any]] = None
    id: Optional[Union[str, int]] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to JSON-RPC 2.0 format."""
        result: Dict[str, Any] = {
            "jsonrpc": "2.0",
            "method": self.method,
        }
        if self.params is not None:
            result["params"] = self.params
        if self.id is not None:
            result["id"] = self.id
        return result


@dataclass
class JSONRPCResponse:
    """JSON-RPC 2.0 response message.

    Attributes:
        result: The result of the method call (if successful).
        error: Error information (if failed).
        id: Request ID matching the original request.
    """

    id: Optional[Union[str, int]] = None
    result: Optional[Any] = None
    error: Optional[Dict[str, Any]] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "JSONRPCResponse":
        """Create from dictionary."""
        return cls(
            id=data.get("id"),
            result=data.get("result"),
            error=data.get("error"),
        )

    @property
    def is_error(self) -> bool:
        """Check if response is an error."""
        return self.error is not None

    def get_error_message(self) -> Optional[str]:
        """Get error message if this is an error response."""
        if self.error:
            return self.error.get("message", "Unknown error")
        return None

    def get_error_code(self) -> Optional[int]:
        """Get error code if this is an error response."""
        if self.error:
            return self.error.get("code")
        return None


@dataclass
class JSONRPCNotification:
    """JSON-RPC 2.0 notification message (no response expected).

    Attributes:
        method: The method to call.
        params: Optional parameters for the method.
    """

    method: str
    params: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to JSON-RPC 2.0 format."""
        result: Dict[str, Any] = {
            "jsonrpc": "2.0",
            "method": self.method,
        }
        if self.params is not None:
            result["params"] = self.params
        return result


class Transport(ABC):
    """Abstract base class for MCP transports.

    Transports handle the low-level communication with MCP servers,
    providing methods for sending requests and receiving responses.
    Network transports open nothing until ``connect`` is awaited.
    """

    @abstractmethod
    async def connect(self) -> None:
        """Establish connection to the MCP server."""
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Close connection to the MCP server. Safe to call twice."""
        pass

    @abstractmethod
    async def send_request(
        self,
        request: JSONRPCRequest,
        timeout: Optional[float] = TRANSPORT_TIMEOUT,
    ) -> JSONRPCResponse:
        """Send a request and wait for response.

        Args:
            request: The JSON-RPC request to send.
            timeout: Seconds to wait for the answer. Defaults to the
                transport's request timeout; None waits indefinitely.

        Returns:
            The JSON-RPC response.
        """
        pass

    @abstractmethod
    async def send_notification(
        self,
        notification: JSONRPCNotification,
    ) -> None:
        """Send a notification (no response expected).

        Args:
            notification: The JSON-RPC notification to send.
        """
        pass

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Check if transport is connected."""
        pass


class CorrelatingTransport(Transport):
    """Shared request/response correlation for message-oriented transports.

    Subclasses only implement ``_write`` (put one JSON-RPC message on the
    wire) and feed every inbound message to ``_dispatch``.
    """

    def __init__(self, timeout: float):
        self.timeout = timeout
        self._request_id = 0
        self._pending: Dict[Union[str, int], asyncio.Future[JSONRPCResponse]] = {}

    @abstractmethod
    async def _write(self, payload: Dict[str, Any]) -> None:
        """Write a single JSON-RPC message."""
        pass

    async def send_request(
        self,
        request: JSONRPCRequest,
        timeout: Optional[float] = TRANSPORT_TIMEOUT,
    ) -> JSONRPCResponse:
        """Send a request and wait for the matching response."""
        if timeout is TRANSPORT_TIMEOUT:
            timeout = self.timeout
        if not self.is_connected:
            raise MCPConnectionError("Transport not connected")

        if request.id is None:
            self._request_id += 1
            request.id = self._request_id

        future: asyncio.Future[JSONRPCResponse] = (
            asyncio.get_running_loop().create_future()
        )
        self._pending[request.id] = future

        try:
            return await asyncio.wait_for(
                self._round_trip(request, future),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            raise TransportError(
                f"Request '{request.method}' timed out after {timeout}s"
            )
        except MCPError:
            raise
        except Exception as e:
            raise TransportError(f"Request failed: {e}") from e
        finally:
            self._pending.pop(request.id, None)

    async def _round_trip(
        self,
        request: JSONRPCRequest,
        future: asyncio.Future[JSONRPCResponse],
    ) -> JSONRPCResponse:
        await self._write(request.to_dict())
        return await future

    async def send_notification(
        self,
        notification: JSONRPCNotification,
    ) -> None:
        """Send a notification (no response expected)."""
        if not self.is_connected:
            raise MCPConnectionError("Transport not connected")
        await self._write(notification.to_dict())

    async def _dispatch(self, data: Any) -> None:
        """Route one inbound message to a waiting request or handle it."""
        if isinstance(data, list):
            for item in data:
                await self._dispatch(item)
            return
        if not isinstance(data, dict):
            logger.debug(f"Ignoring non-object JSON-RPC message: {data!r}")
            return

        if "method" in data and "id" in data:
            await self._answer_server_request(data)
        elif "id" in data:
            response = JSONRPCResponse.from_dict(data)
            future = self._pending.pop(response.id, None)
            if future and not future.done():
                future.set_result(response)
            else:
                logger.debug(f"Dropping response for unknown request id {response.id!r}")
        elif "method" in data:
            logger.debug(f"Server notification: {data['method']}")

    async def _answer_server_request(self, data: Dict[str, Any]) -> None:
        """Answer server-initiated requests; only ``ping`` is supported."""
        reply: Dict[str, Any] = {"jsonrpc": "2.0", "id": data["id"]}
        if data["method"] == "ping":
            reply["result"] = {}
        else:
            reply["error"] = {
                "code": METHOD_NOT_FOUND,
                "message": f"Method not supported by client: {data['method']}",
            }
        try:
            await self._write(reply)
        except Exception as e:
            logger.warning(f"Failed to answer server request {data['method']}: {e}")

    def _fail_pending(self, error: Exception) -> None:
        """Fail every in-flight request with ``error``."""
        for future in self._pending.values():
            if not future.done():
                future.set_exception(error)
        self._pending.clear()


@dataclass
class StdioTransportConfig:
    """Configuration for stdio transport.

    Attributes:
        command: Command to execute to start the MCP server.
        args: Command line arguments.
        env: Full environment for the process (already merged).
        cwd: Working directory for the process.
        timeout: Request timeout in seconds.
    """

    command: str
    args: List[str] = field(default_factory=list)
    env: Optional[Dict[str, str]] = None
    cwd: Optional[str] = None
    timeout: float = 30.0


class StdioTransport(CorrelatingTransport):
    """Stdio-based transport for MCP servers.

    Communicates with MCP servers via stdin/stdout of a subprocess.
    Uses newline-delimited JSON for message framing; stderr is drained
    into the log and its tail is attached to "connection closed" errors.
    """

    def __init__(self, config: StdioTransportConfig):
        """Initialize the stdio transport.

        Args:
            config: Configuration for the transport.
        """
        super().__init__(config.timeout)
        self.config = config
        self._process: Optional[asyncio.subprocess.Process] = None
        self._read_task: Optional[asyncio.Task[None]] = None
        self._stderr_task: Optional[asyncio.Task[None]] = None
        self._stderr_tail: Deque[str] = deque(maxlen=20)
        self._connected = False

    @property
    def is_connected(self) -> bool:
        """Check if transport is connected."""
        return self._connected and self._process is not None

    @property
    def stderr_tail(self) -> List[str]:
        """Most recent stderr lines written by the server."""
        return list(self._stderr_tail)

    async def connect(self) -> None:
        """Start the MCP server process and establish connection."""
        if self._connected:
            return

        try:
            self._process = await asyncio.create_subprocess_exec(
                self.config.command,
                *self.config.args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=self.config.env,
                cwd=self.config.cwd,
                limit=STDIO_LINE_LIMIT,
            )
        except FileNotFoundError as e:
            raise MCPConnectionError(
                f"Failed to start MCP server: command not found: "
                f"{self.config.command} (ENOENT)"
            ) from e
        except Exception as e:
            raise MCPConnectionError(f"Failed to start MCP server: {e}") from e

        self._connected = True
        self._read_task = asyncio.create_task(self._read_loop())
        self._stderr_task = asyncio.create_task(self._drain_stderr())

    async def disconnect(self) -> None:
        """Stop the MCP server process."""
        self._connected = False

        for task in (self._read_task, self._stderr_task):
            if task:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._read_task = None
        self._stderr_task = None

        if self._process:
            process = self._process
            self._process = None
            if process.stdin and not process.stdin.is_closing():
                process.stdin.close()
            if process.returncode is None:
                try:
                    process.terminate()
                    await asyncio.wait_for(process.wait(), timeout=5.0)
                except asyncio.TimeoutError:
                    process.kill()
                    await process.wait()
                except ProcessLookupError:
                    pass

        self._fail_pending(MCPConnectionError("Transport disconnected"))

    async def _write(self, payload: Dict[str, Any]) -> None:
        if not self._process or not self._process.stdin:
            raise MCPConnectionError("Transport not connected")
        message = json.dumps(payload) + "\n"
        try:
            self._process.stdin.write(message.encode())
            await self._process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            raise MCPConnectionError(self._closed_message()) from e

    async def _read_loop(self) -> None:
        """Background task to read messages from the process."""
        if not self._process or not self._process.stdout:
            return
        stdout = self._process.stdout

        try:
            while self._connected:
                line = await stdout.readline()
                if not line:
                    break
                try:
                    data = json.loads(line.decode())
                except json.JSONDecodeError:
                    logger.debug(f"Skipping non-JSON stdout line: {line[:200]!r}")
                    continue
                await self._dispatch(data)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Stdio read loop failed: {e}")

        # EOF or read failure: the server is gone.
        self._connected = False
        if self._process:
            try:
                await asyncio.wait_for(self._process.wait(), timeout=1.0)
            except asyncio.TimeoutError:
                pass
        self._fail_pending(MCPConnectionError(self._closed_message()))

    async def _drain_stderr(self) -> None:
        if not self._process or not self._process.stderr:
            return
        stderr = self._process.stderr
        while True:
            line = await stderr.readline()
            if not line:
                return
            text = line.decode(errors="replace").rstrip()
            self._stderr_tail.append(text)
            logger.debug(f"[{self.config.command} stderr] {text}")

    def _closed_message(self) -> str:
        message = "Connection closed"
        if self._process and self._process.returncode is not None:
            message += f": server process exited with code {self._process.returncode}"
        if self._stderr_tail:
            message += f" (stderr: {self._stderr_tail[-1]})"
        return message


@dataclass
class HTTPTransportConfig:
    """Configuration for the HTTP based transports.

    Attributes:
        url: Endpoint of the MCP server (event stream URL for SSE).
        headers: Additional HTTP headers.
        timeout: Request timeout in seconds.
    """

    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    timeout: float = 30.0


def _root_cause(error: BaseException) -> BaseException:
    # anyio task groups wrap failures in exception groups.
    while getattr(error, "exceptions", None):
        error = error.exceptions[0]
    return error


def _describe_http_error(error: BaseException) -> MCPError:
    error = _root_cause(error)
    if isinstance(error, MCPError):
        return error
    if isinstance(error, httpx.ConnectError):
        return MCPConnectionError(f"Connection refused (ECONNREFUSED): {error}")
    if isinstance(error, httpx.TimeoutException):
        return TransportError(f"HTTP request timeout: {error}")
    if isinstance(error, httpx.HTTPStatusError):
        return TransportError(f"HTTP error: {error.response.status_code}")
    if isinstance(error, (anyio.ClosedResourceError, anyio.EndOfStream)):
        return MCPConnectionError("Connection closed: server stream ended")
    return TransportError(f"HTTP request failed: {error}")


def default_http_client(
    headers: Optional[Dict[str, str]] = None,
    timeout: Optional[httpx.Timeout] = None,
    auth: Optional[httpx.Auth] = None,
) -> httpx.AsyncClient:
    """HTTP client handed to the MCP SDK; the stream read never times out."""
    return httpx.AsyncClient(
        headers=headers,
        timeout=timeout or httpx.Timeout(30.0, read=None),
        auth=auth,
        follow_redirects=True,
    )


class SDKStreamTransport(CorrelatingTransport):
    """Runs an MCP SDK client stream pair behind request correlation.

    The SDK hands out a read stream of ``SessionMessage`` (or exceptions)
    and a write stream. One owner task enters the SDK context, pumps the
    read stream into ``_dispatch`` and exits the context again; anyio task
    groups must be left by the task that entered them.
    """

    def __init__(
        self,
        config: HTTPTransportConfig,
        client_factory: Optional[Callable[..., httpx.AsyncClient]] = None,
    ):
        super().__init__(config.timeout)
        self.config = config
        self.client_factory = client_factory or default_http_client
        self._write_stream: Any = None
        self._owner: Optional[asyncio.Task[None]] = None
        self._ready: Optional[asyncio.Future[None]] = None
        self._connected = False

    @abstractmethod
    def _open_streams(self) -> AsyncContextManager[Tuple[Any, Any]]:
        """Enter the SDK client and yield its ``(read, write)`` streams."""
        pass

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        if self._connected:
            return

        self._ready = asyncio.get_running_loop().create_future()
        self._owner = asyncio.create_task(self._run())
        try:
            await asyncio.wait_for(self._ready, timeout=self.config.timeout)
        except asyncio.TimeoutError:
            await self.disconnect()
            raise MCPConnectionError(f"Timeout connecting to {self.config.url}")
        except MCPError:
            await self.disconnect()
            raise

    async def disconnect(self) -> None:
        self._connected = False
        owner, self._owner = self._owner, None
        if owner is not None:
            if not owner.done():
                owner.cancel()
            try:
                await owner
            except asyncio.CancelledError:
                pass
        self._fail_pending(MCPConnectionError("Transport disconnected"))

    async def _run(self) -> None:
        error: MCPError = MCPConnectionError("Connection closed: server stream ended")
        try:
            async with self._open_streams() as (read_stream, write_stream):
                self._write_stream = write_stream
                self._connected = True
                self._settle_ready()
                async for message in read_stream:
                    if isinstance(message, Exception):
                        failure = _describe_http_error(message)
                        logger.warning(f"MCP stream error from {self.config.url}: {failure}")
                        self._fail_pending(failure)
                        continue
                    await self._dispatch(
                        message.message.model_dump(by_alias=True, mode="json", exclude_none=True)
                    )
        except asyncio.CancelledError:
            error = MCPConnectionError("Transport disconnected")
            raise
        except Exception as e:
            error = _describe_http_error(e)
            logger.debug(f"MCP stream for {self.config.url} failed: {e!r}")
        finally:
            self._connected = False
            self._write_stream = None
            self._settle_ready(error)
            self._fail_pending(error)

    def _settle_ready(self, error: Optional[Exception] = None) -> None:
        if self._ready is None or self._ready.done():
            return
        if error is None:
            self._ready.set_result(None)
        else:
            self._ready.set_exception(error)

    async def _write(self, payload: Dict[str, Any]) -> None:
        if self._write_stream is None:
            raise MCPConnectionError("Transport not connected")
        message = SessionMessage(message=JSONRPCMessage.model_validate(payload))
        try:
            await self._write_stream.send(message)
        except (anyio.ClosedResourceError, anyio.BrokenResourceError) as e:
            raise MCPConnectionError("Connection closed: server stream ended") from e


class SSETransport(SDKStreamTransport):
    """Transport for legacy HTTP+SSE MCP servers.

    A long-lived GET stream delivers an ``endpoint`` event naming the URL
    that accepts POSTed messages; ``sse_client`` only yields once that
    endpoint is known, so a connected transport can send right away.
    """

    @asynccontextmanager
    async def _open_streams(self) -> AsyncIterator[Tuple[Any, Any]]:
        async with sse_client(
            self.config.url,
            headers=self.config.headers or None,
            timeout=self.config.timeout,
            httpx_client_factory=self.client_factory,
        ) as (read_stream, write_stream):
            yield read_stream, write_stream


class StreamableHTTPTransport(SDKStreamTransport):
    """Transport for servers speaking the streamable HTTP protocol.

    Every message is POSTed to one endpoint; the SDK tracks the
    ``mcp-session-id`` handed out on initialize and ends the session with
    a DELETE when the transport closes.
    """

    @asynccontextmanager
    async def _open_streams(self) -> AsyncIterator[Tuple[Any, Any]]:
        http_client = self.client_factory(
            headers=self.config.headers or None,
            timeout=httpx.Timeout(self.config.timeout, read=None),
        )
        async with http_client:
            async with streamable_http_client(
                self.config.url, http_client=http_client
            ) as (read_stream, write_stream, _):
                yield read_stream, write_stream
