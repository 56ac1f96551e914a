"""Tests against a real stdio MCP server running as a child process."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

from mcp_chat.errors import TransportError
from mcp_chat.execution.orchestrator import (
    EnabledToolSelection,
    InvocationStatus,
    LoopPhase,
    OrchestratorConfig,
)
from mcp_chat.llm.base import ChatMessage, FunctionCall, MessageRole
from mcp_chat.mcp.config import ServerConfiguration, TransportKind
from mcp_chat.mcp.registry import ConnectionRegistry, RegistryConfig
from mcp_chat.service import MCPService

from tests.conftest import call_turn, text_turn
from tests.fakes import ScriptedProvider

SLEEPY_SERVER = '''
import json
import sys
import time


def reply(message_id, **body):
    sys.stdout.write(json.dumps({"jsonrpc": "2.0", "id": message_id, **body}) + "\\n")
    sys.stdout.flush()


while True:
    line = sys.stdin.readline()
    if not line:
        break
    message = json.loads(line)
    if "id" not in message:
        continue
    method = message["method"]
    if method == "initialize":
        reply(message["id"], result={
            "protocolVersion": message["params"]["protocolVersion"],
            "capabilities": {"tools": {}},
            "serverInfo": {"name": "sleepy", "version": "1.0.0"},
        })
    elif method == "tools/list":
        reply(message["id"], result={"tools": [{
            "name": "nap",
            "description": "Sleep for a while",
            "inputSchema": {"type": "object", "properties": {"seconds": {"type": "number"}}},
        }]})
    elif method == "tools/call":
        time.sleep(float(message["params"]["arguments"].get("seconds", 0)))
        reply(message["id"], result={"content": [{"type": "text", "text": "rested"}], "isError": False})
    else:
        reply(message["id"], error={"code": -32601, "message": "Method not found: " + method})
'''


@pytest.fixture
def sleepy_config(tmp_path: Path) -> ServerConfiguration:
    script = tmp_path / "sleepy_server.py"
    script.write_text(SLEEPY_SERVER, encoding="utf-8")
    return ServerConfiguration(
        id="sleepy",
        name="Sleepy",
        transport=TransportKind.STDIO,
        command=sys.executable,
        args=[str(script)],
    )


def _service(provider=None) -> MCPService:
    registry = ConnectionRegistry(RegistryConfig(settle_delay=0, request_timeout=1.0))
    return MCPService(
        registry,
        provider=provider,
        orchestrator_config=OrchestratorConfig(tool_call_timeout=5.0),
    )


class TestToolCallTimeout:
    """Tool calls are bounded by the tool-call timeout, not the request timeout."""

    @pytest.mark.asyncio
    async def test_slow_tool_call_in_chat_succeeds(self, sleepy_config):
        provider = ScriptedProvider(
            [
                call_turn(FunctionCall("sleepy__nap", {"seconds": 1.5})),
                text_turn("Well rested."),
            ]
        )
        service = _service(provider)
        await service.connect(sleepy_config)
        try:
            result = await service.send_chat(
                [ChatMessage(MessageRole.USER, "Take a nap")],
                [EnabledToolSelection("sleepy", "nap", "Sleepy")],
            )
        finally:
            await service.shutdown()

        (record,) = result.records
        assert record.status == InvocationStatus.SUCCESS, record.error
        assert record.result.text() == "rested"
        assert record.duration >= 1.5
        assert result.phase == LoopPhase.DONE
        assert result.text == "Well rested."

    @pytest.mark.asyncio
    async def test_slow_direct_tool_call_succeeds(self, sleepy_config):
        service = _service()
        await service.connect(sleepy_config)
        try:
            result = await service.call_tool("sleepy", "nap", {"seconds": 1.5})
        finally:
            await service.shutdown()

        assert result.text() == "rested"

    @pytest.mark.asyncio
    async def test_other_requests_keep_the_request_timeout(self, sleepy_config):
        service = _service()
        await service.connect(sleepy_config)
        try:
            client = service.registry.get_client("sleepy")
            with pytest.raises(TransportError, match="timed out after 1.0s"):
                await client._request("tools/call", {"name": "nap", "arguments": {"seconds": 1.5}})
        finally:
            await service.shutdown()
