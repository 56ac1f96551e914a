"""Unit tests for the MCP transport layer.

Tests cover:
- JSON-RPC message types
- Request/response correlation, timeouts and server pings
- Streamable HTTP and legacy SSE transports over in-memory SDK streams
- Stdio spawn failures
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

import anyio
import httpx
import pytest
from mcp.shared.message import SessionMessage
from mcp.types import JSONRPCMessage

from mcp_chat.errors import MCPConnectionError, TransportError
from mcp_chat.mcp import transport as transport_module
from mcp_chat.mcp.transport import (
    CorrelatingTransport,
    HTTPTransportConfig,
    JSONRPCNotification,
    JSONRPCRequest,
    JSONRPCResponse,
    SSETransport,
    StdioTransport,
    StdioTransportConfig,
    StreamableHTTPTransport,
    default_http_client,
)


def _session_message(payload: Dict[str, Any]) -> SessionMessage:
    return SessionMessage(message=JSONRPCMessage.model_validate(payload))


async def _eventually(condition, attempts: int = 100) -> None:
    for _ in range(attempts):
        if condition():
            return
        await asyncio.sleep(0.01)
    raise AssertionError("condition never became true")


# ============================================================================
# JSON-RPC Message Tests
# ============================================================================


class TestJSONRPCMessages:
    """Tests for JSON-RPC message dataclasses."""

    def test_request_to_dict(self):
        request = JSONRPCRequest(method="tools/list", params={"cursor": "a"}, id=3)
        assert request.to_dict() == {
            "jsonrpc": "2.0",
            "method": "tools/list",
            "params": {"cursor": "a"},
            "id": 3,
        }

    def test_request_without_params_or_id(self):
        assert JSONRPCRequest(method="ping").to_dict() == {"jsonrpc": "2.0", "method": "ping"}

    def test_notification_has_no_id(self):
        data = JSONRPCNotification(method="notifications/initialized").to_dict()
        assert "id" not in data
        assert data["method"] == "notifications/initialized"

    def test_error_response(self):
        response = JSONRPCResponse.from_dict(
            {"jsonrpc": "2.0", "id": 1, "error": {"code": -32602, "message": "bad"}}
        )
        assert response.is_error
        assert response.get_error_code() == -32602
        assert response.get_error_message() == "bad"

    def test_success_response(self):
        response = JSONRPCResponse.from_dict({"jsonrpc": "2.0", "id": 1, "result": {}})
        assert not response.is_error
        assert response.get_error_message() is None


# ============================================================================
# Correlation Tests
# ============================================================================


class LoopbackTransport(CorrelatingTransport):
    """Answers every request by echoing its method, unless muted."""

    def __init__(self, timeout: float = 1.0, muted: bool = False):
        super().__init__(timeout)
        self.muted = muted
        self.written: List[Dict[str, Any]] = []
        self._connected = False

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        self._connected = True

    async def disconnect(self) -> None:
        self._connected = False
        self._fail_pending(MCPConnectionError("Transport disconnected"))

    async def _write(self, payload: Dict[str, Any]) -> None:
        self.written.append(payload)
        if self.muted or "method" not in payload or "id" not in payload:
            return
        await self._dispatch(
            {"jsonrpc": "2.0", "id": payload["id"], "result": {"method": payload["method"]}}
        )


class TestCorrelatingTransport:
    """Tests for request/response correlation."""

    @pytest.mark.asyncio
    async def test_assigns_increasing_ids(self):
        transport = LoopbackTransport()
        await transport.connect()

        first = await transport.send_request(JSONRPCRequest(method="a"))
        second = await transport.send_request(JSONRPCRequest(method="b"))

        assert (first.id, second.id) == (1, 2)
        assert second.result == {"method": "b"}

    @pytest.mark.asyncio
    async def test_requires_connection(self):
        with pytest.raises(MCPConnectionError):
            await LoopbackTransport().send_request(JSONRPCRequest(method="a"))

    @pytest.mark.asyncio
    async def test_timeout(self):
        transport = LoopbackTransport(timeout=0.05, muted=True)
        await transport.connect()

        with pytest.raises(TransportError, match="timed out"):
            await transport.send_request(JSONRPCRequest(method="slow"))
        assert transport._pending == {}

    @pytest.mark.asyncio
    async def test_disconnect_fails_in_flight_requests(self):
        transport = LoopbackTransport(muted=True)
        await transport.connect()

        pending = asyncio.ensure_future(transport.send_request(JSONRPCRequest(method="x")))
        await asyncio.sleep(0)
        await transport.disconnect()

        with pytest.raises(MCPConnectionError, match="disconnected"):
            await pending

    @pytest.mark.asyncio
    async def test_answers_server_ping(self):
        transport = LoopbackTransport(muted=True)
        await transport.connect()

        await transport._dispatch({"jsonrpc": "2.0", "id": "srv-1", "method": "ping"})

        assert transport.written == [{"jsonrpc": "2.0", "id": "srv-1", "result": {}}]

    @pytest.mark.asyncio
    async def test_rejects_other_server_requests(self):
        transport = LoopbackTransport(muted=True)
        await transport.connect()

        await transport._dispatch(
            {"jsonrpc": "2.0", "id": 9, "method": "sampling/createMessage"}
        )

        assert transport.written[0]["error"]["code"] == -32601

    @pytest.mark.asyncio
    async def test_batches_are_dispatched_item_by_item(self):
        transport = LoopbackTransport(muted=True)
        await transport.connect()
        future = asyncio.get_running_loop().create_future()
        transport._pending[5] = future

        await transport._dispatch([{"jsonrpc": "2.0", "method": "notifications/x"},
                                   {"jsonrpc": "2.0", "id": 5, "result": {"ok": True}}])

        assert future.result().result == {"ok": True}

    @pytest.mark.asyncio
    async def test_per_request_timeout_overrides_transport_timeout(self):
        transport = LoopbackTransport(timeout=5.0, muted=True)
        await transport.connect()

        with pytest.raises(TransportError, match="timed out after 0.05s"):
            await transport.send_request(JSONRPCRequest(method="slow"), timeout=0.05)

    @pytest.mark.asyncio
    async def test_unbounded_request_outlives_transport_timeout(self):
        transport = LoopbackTransport(timeout=0.05, muted=True)
        await transport.connect()

        pending = asyncio.ensure_future(
            transport.send_request(JSONRPCRequest(method="tools/call"), timeout=None)
        )
        await asyncio.sleep(0.15)
        assert not pending.done()

        request_id = transport.written[0]["id"]
        await transport._dispatch({"jsonrpc": "2.0", "id": request_id, "result": {"ok": True}})

        assert (await pending).result == {"ok": True}


# ============================================================================
# HTTP Transport Tests
# ============================================================================


class FakeSDKClient:
    """Stands in for the MCP SDK client contexts with in-memory streams.

    Requests written by the transport are answered by echoing their method
    unless ``answer`` is off. The server side can also push messages or
    stream errors and close the stream.
    """

    def __init__(self, answer: bool = True, enter_error: Optional[BaseException] = None):
        self.answer = answer
        self.enter_error = enter_error
        self.received: List[Dict[str, Any]] = []
        self.url: Optional[str] = None
        self.kwargs: Dict[str, Any] = {}
        self.exited = 0
        self._server_send: Any = None

    @asynccontextmanager
    async def _streams(self, url: str, kwargs: Dict[str, Any]) -> AsyncIterator[Any]:
        self.url, self.kwargs = url, kwargs
        if self.enter_error is not None:
            raise self.enter_error
        client_send, server_receive = anyio.create_memory_object_stream(16)
        server_send, client_receive = anyio.create_memory_object_stream(16)
        self._server_send = server_send
        server = asyncio.create_task(self._serve(server_receive, server_send))
        try:
            yield client_receive, client_send
        finally:
            server.cancel()
            try:
                await server
            except asyncio.CancelledError:
                pass
            self.exited += 1

    @asynccontextmanager
    async def sse_client(self, url: str, **kwargs: Any) -> AsyncIterator[Any]:
        async with self._streams(url, kwargs) as streams:
            yield streams

    @asynccontextmanager
    async def streamable_http_client(self, url: str, **kwargs: Any) -> AsyncIterator[Any]:
        async with self._streams(url, kwargs) as (read_stream, write_stream):
            yield read_stream, write_stream, lambda: "session-abc"

    async def _serve(self, receive: Any, send: Any) -> None:
        async for message in receive:
            data = message.message.model_dump(by_alias=True, exclude_none=True)
            self.received.append(data)
            if self.answer and "method" in data and "id" in data:
                await send.send(
                    _session_message(
                        {"jsonrpc": "2.0", "id": data["id"], "result": {"method": data["method"]}}
                    )
                )

    async def push(self, item: Any) -> None:
        if isinstance(item, dict):
            item = _session_message(item)
        await self._server_send.send(item)

    async def close(self) -> None:
        await self._server_send.aclose()


@pytest.fixture
def sdk(monkeypatch) -> FakeSDKClient:
    fake = FakeSDKClient()
    monkeypatch.setattr(transport_module, "sse_client", fake.sse_client)
    monkeypatch.setattr(transport_module, "streamable_http_client", fake.streamable_http_client)
    return fake


def _config(url: str = "http://mcp.test/mcp", timeout: float = 2.0) -> HTTPTransportConfig:
    return HTTPTransportConfig(url=url, headers={"X-Token": "t"}, timeout=timeout)


class TestStreamableHTTPTransport:
    """Tests for the streamable HTTP transport."""

    @pytest.mark.asyncio
    async def test_round_trip(self, sdk):
        transport = StreamableHTTPTransport(_config())
        await transport.connect()
        try:
            response = await transport.send_request(
                JSONRPCRequest(method="initialize", params={"protocolVersion": "2025-03-26"})
            )

            assert response.result == {"method": "initialize"}
            assert sdk.url == "http://mcp.test/mcp"
            assert sdk.received[0]["params"] == {"protocolVersion": "2025-03-26"}
        finally:
            await transport.disconnect()

    @pytest.mark.asyncio
    async def test_http_client_carries_configured_headers(self, sdk):
        transport = StreamableHTTPTransport(_config())
        await transport.connect()

        http_client = sdk.kwargs["http_client"]
        assert http_client.headers["X-Token"] == "t"
        assert http_client.timeout.read is None

        await transport.disconnect()
        assert http_client.is_closed

    @pytest.mark.asyncio
    async def test_notifications_are_forwarded(self, sdk):
        transport = StreamableHTTPTransport(_config())
        await transport.connect()

        await transport.send_notification(JSONRPCNotification(method="notifications/initialized"))
        await _eventually(lambda: sdk.received)

        assert sdk.received == [{"jsonrpc": "2.0", "method": "notifications/initialized"}]
        await transport.disconnect()

    @pytest.mark.asyncio
    async def test_disconnect_leaves_sdk_context(self, sdk):
        transport = StreamableHTTPTransport(_config())
        await transport.connect()

        await transport.disconnect()
        await transport.disconnect()

        assert sdk.exited == 1
        assert not transport.is_connected
        with pytest.raises(MCPConnectionError):
            await transport.send_request(JSONRPCRequest(method="tools/list"))

    @pytest.mark.asyncio
    async def test_stream_error_fails_pending_request(self, sdk):
        sdk.answer = False
        transport = StreamableHTTPTransport(_config())
        await transport.connect()

        pending = asyncio.ensure_future(transport.send_request(JSONRPCRequest(method="tools/list")))
        await _eventually(lambda: sdk.received)
        await sdk.push(
            httpx.HTTPStatusError(
                "Server error",
                request=httpx.Request("POST", "http://mcp.test/mcp"),
                response=httpx.Response(500),
            )
        )

        with pytest.raises(TransportError, match="HTTP error: 500"):
            await pending
        assert transport.is_connected
        await transport.disconnect()

    @pytest.mark.asyncio
    async def test_refused_connection(self, monkeypatch):
        fake = FakeSDKClient(enter_error=httpx.ConnectError("All connection attempts failed"))
        monkeypatch.setattr(transport_module, "streamable_http_client", fake.streamable_http_client)
        transport = StreamableHTTPTransport(_config())

        with pytest.raises(MCPConnectionError, match="ECONNREFUSED"):
            await transport.connect()
        assert not transport.is_connected

    @pytest.mark.asyncio
    async def test_connect_timeout(self, monkeypatch):
        @asynccontextmanager
        async def never_ready(url: str, **kwargs: Any) -> AsyncIterator[Any]:
            await asyncio.Event().wait()
            yield

        monkeypatch.setattr(transport_module, "streamable_http_client", never_ready)
        transport = StreamableHTTPTransport(_config(timeout=0.05))

        with pytest.raises(MCPConnectionError, match="Timeout connecting"):
            await transport.connect()
        assert not transport.is_connected


class TestSSETransport:
    """Tests for the legacy SSE transport."""

    @pytest.mark.asyncio
    async def test_round_trip(self, sdk):
        transport = SSETransport(_config(url="http://mcp.test/sse"))
        await transport.connect()
        try:
            response = await transport.send_request(JSONRPCRequest(method="tools/list"))

            assert response.result == {"method": "tools/list"}
            assert sdk.url == "http://mcp.test/sse"
            assert sdk.kwargs["headers"] == {"X-Token": "t"}
            assert sdk.kwargs["timeout"] == 2.0
            assert sdk.kwargs["httpx_client_factory"] is default_http_client
        finally:
            await transport.disconnect()
        assert not transport.is_connected

    @pytest.mark.asyncio
    async def test_answers_server_ping(self, sdk):
        transport = SSETransport(_config(url="http://mcp.test/sse"))
        await transport.connect()

        await sdk.push({"jsonrpc": "2.0", "id": "srv-1", "method": "ping"})
        await _eventually(lambda: sdk.received)

        assert sdk.received == [{"jsonrpc": "2.0", "id": "srv-1", "result": {}}]
        await transport.disconnect()

    @pytest.mark.asyncio
    async def test_stream_close_fails_pending_requests(self, sdk):
        sdk.answer = False
        transport = SSETransport(_config(url="http://mcp.test/sse"))
        await transport.connect()

        pending = asyncio.ensure_future(transport.send_request(JSONRPCRequest(method="tools/list")))
        await _eventually(lambda: sdk.received)
        await sdk.close()

        with pytest.raises(MCPConnectionError, match="Connection closed"):
            await pending
        assert not transport.is_connected
        await transport.disconnect()

    @pytest.mark.asyncio
    async def test_refused_connection(self, monkeypatch):
        fake = FakeSDKClient(enter_error=httpx.ConnectError("All connection attempts failed"))
        monkeypatch.setattr(transport_module, "sse_client", fake.sse_client)
        transport = SSETransport(_config(url="http://127.0.0.1:9/sse"))

        with pytest.raises(MCPConnectionError, match="ECONNREFUSED"):
            await transport.connect()


class TestDefaultHTTPClient:
    """Tests for the HTTP client handed to the SDK."""

    @pytest.mark.asyncio
    async def test_stream_reads_do_not_time_out(self):
        async with default_http_client(headers={"X-Token": "t"}) as client:
            assert client.headers["X-Token"] == "t"
            assert client.timeout.read is None
            assert client.follow_redirects


# ============================================================================
# Stdio Tests
# ============================================================================


class TestStdioTransport:
    """Tests for the stdio transport that need no real server."""

    def test_not_connected_initially(self):
        transport = StdioTransport(StdioTransportConfig(command="mock-server"))
        assert not transport.is_connected
        assert transport.stderr_tail == []

    @pytest.mark.asyncio
    async def test_missing_executable(self):
        transport = StdioTransport(
            StdioTransportConfig(command="definitely-not-a-real-mcp-server-binary")
        )

        with pytest.raises(MCPConnectionError, match="ENOENT"):
            await transport.connect()
        assert not transport.is_connected

    @pytest.mark.asyncio
    async def test_send_before_connect(self):
        transport = StdioTransport(StdioTransportConfig(command="mock-server"))

        with pytest.raises(MCPConnectionError):
            await transport.send_request(JSONRPCRequest(method="initialize"))

    @pytest.mark.asyncio
    async def test_disconnect_is_idempotent(self):
        transport = StdioTransport(StdioTransportConfig(command="mock-server"))
        await transport.disconnect()
        await transport.disconnect()
        assert not transport.is_connected
