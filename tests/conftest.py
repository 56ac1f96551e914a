"""Common test fixtures and configuration for mcp_chat tests."""

from __future__ import annotations

from typing import List

import pytest
import pytest_asyncio

from mcp_chat.llm.base import ChatMessage, FunctionCall, MessageRole, ModelTurn
from mcp_chat.mcp.config import ServerConfiguration, TransportKind
from mcp_chat.mcp.registry import ConnectionRegistry, RegistryConfig

from tests.fakes import MockTransport, StaticTransportFactory, calculator_transport


def stdio_config(server_id: str, name: str = "") -> ServerConfiguration:
    return ServerConfiguration(
        id=server_id,
        name=name or server_id,
        transport=TransportKind.STDIO,
        command="mock-server",
    )


def call_turn(*calls: FunctionCall, text: str = "") -> ModelTurn:
    return ModelTurn(text=text, function_calls=list(calls))


def text_turn(text: str) -> ModelTurn:
    return ModelTurn(text=text, finish_reason="STOP")


# ============================================================================
# MCP Fixtures
# ============================================================================


@pytest.fixture
def calc_transport() -> MockTransport:
    """Calculator server offering add and divide."""
    return calculator_transport()


@pytest.fixture
def transport_factory(calc_transport: MockTransport) -> StaticTransportFactory:
    return StaticTransportFactory({"calc": calc_transport})


@pytest.fixture
def registry(transport_factory: StaticTransportFactory) -> ConnectionRegistry:
    """Registry without the post-handshake settle delay."""
    return ConnectionRegistry(
        RegistryConfig(settle_delay=0),
        transport_factory=transport_factory,
    )


@pytest_asyncio.fixture
async def connected_registry(registry: ConnectionRegistry) -> ConnectionRegistry:
    """Registry with the calculator connected as ``calc``."""
    await registry.connect(stdio_config("calc", "Calculator"))
    yield registry
    await registry.disconnect_all()


# ============================================================================
# Chat Fixtures
# ============================================================================


@pytest.fixture
def user_messages() -> List[ChatMessage]:
    return [
        ChatMessage(MessageRole.USER, "Hi"),
        ChatMessage(MessageRole.ASSISTANT, "Hello! How can I help?"),
        ChatMessage(MessageRole.USER, "What is 2 + 2?"),
    ]
