#!/usr/bin/env python3
"""Example: chat with Gemini using tools from an MCP server.

Connects to the reference filesystem server over stdio, offers its tools
to the model and prints every tool call the model made.

Requires:
    GEMINI_API_KEY in the environment
    Node.js (for npx)
"""

import asyncio
import os

from mcp_chat import (
    ChatMessage,
    ConnectionRegistry,
    EnabledToolSelection,
    MCPService,
    MessageRole,
    ServerConfiguration,
    TransportKind,
)
from mcp_chat.llm.base import LLMConfig
from mcp_chat.llm.providers.gemini import GeminiProvider
from mcp_chat.observability import LogConfig, configure_logging


# ============================================================================
# Configuration
# ============================================================================

LLM_CONFIG = LLMConfig(
    model="gemini-2.0-flash-001",
    api_key=os.environ.get("GEMINI_API_KEY"),
    temperature=0.2,
)

FILESYSTEM_SERVER = ServerConfiguration(
    id="fs",
    name="Filesystem",
    transport=TransportKind.STDIO,
    command="npx",
    args=["-y", "@modelcontextprotocol/server-filesystem", "/tmp"],
)

QUESTION = "List the files in /tmp and tell me which one is the largest."


# ============================================================================
# Main
# ============================================================================

async def main():
    configure_logging(LogConfig())

    async with ConnectionRegistry() as registry:
        service = MCPService(registry, provider=GeminiProvider(LLM_CONFIG))

        print(f"[MCP] Connecting to {FILESYSTEM_SERVER.name}...")
        connected = await service.connect(FILESYSTEM_SERVER)
        for tool in connected.tools:
            print(f"  - {tool.name}: {tool.description or ''}")

        selections = [
            EnabledToolSelection(
                server_id=FILESYSTEM_SERVER.id,
                tool_name=tool.name,
                server_name=FILESYSTEM_SERVER.name,
                description=tool.description,
            )
            for tool in connected.tools
        ]

        print(f"\n[User] {QUESTION}")
        result = await service.send_chat(
            [ChatMessage(MessageRole.USER, QUESTION)],
            selections,
        )

        for record in result.records:
            print(f"  [tool] {record.tool_name} {record.args} -> {record.status.value}")
        print(f"\n[Assistant] {result.text}")
        print(f"({result.phase.value}, {result.rounds} rounds)")


if __name__ == "__main__":
    asyncio.run(main())
