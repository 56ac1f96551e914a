"""Declarative MCP server configuration."""

from __future__ import annotations

import uuid
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class TransportKind(str, Enum):
    """Types of MCP transports."""

    STDIO = "stdio"
    SSE = "sse"
    STREAMABLE_HTTP = "streamable-http"

    @property
    def is_network(self) -> bool:
        return self is not TransportKind.STDIO


class ServerConfiguration(BaseModel):
    """Configuration for one MCP server connection.

    Transport-specific fields are optional here. The transport factory
    checks that the right group is populated and raises
    ``ConfigurationError`` otherwise.

    Attributes:
        id: Unique server identifier (generated when omitted).
        name: Human readable name.
        transport: Which transport to use.
        description: Optional description shown in the settings UI.
        command: Executable for stdio servers.
        args: Command line arguments for stdio servers.
        env: Extra environment variables for stdio servers.
        url: Endpoint for sse / streamable-http servers.
        headers: Extra HTTP headers for network servers.
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str
    transport: TransportKind
    description: Optional[str] = None

    command: Optional[str] = None
    args: Optional[List[str]] = None
    env: Optional[Dict[str, Optional[str]]] = None

    url: Optional[str] = None
    headers: Optional[Dict[str, str]] = None

    model_config = {"frozen": True, "use_enum_values": False}
