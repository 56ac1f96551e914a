"""Exception hierarchy shared by the MCP core.

Errors fall in two groups:
- Connection-level errors (configuration, transport, handshake) that surface
  directly to whoever asked for the connection.
- Call-level errors (unknown tool, tool execution, artifact upload) that are
  recorded against a single tool call and never abort an orchestration run.
"""

from __future__ import annotations

from typing import Any, Optional


class MCPError(Exception):
    """Base exception for MCP errors."""

    def __init__(
        self,
        message: str,
        code: Optional[int] = None,
        data: Optional[Any] = None,
    ):
        super().__init__(message)
        self.code = code
        self.data = data


class ConfigurationError(MCPError):
    """A server configuration is missing or has invalid transport fields.

    Never retryable; the message is meant for the user editing the config.
    """

    pass


class TransportError(MCPError):
    """Transport layer error (request failed, timed out, bad framing)."""

    pass


class MCPConnectionError(TransportError):
    """Spawning, handshaking or keeping a connection alive failed."""

    pass


class NotConnectedError(MCPError):
    """An operation referenced a server id with no live connection."""

    def __init__(self, server_id: str):
        super().__init__(f"Server {server_id} is not connected")
        self.server_id = server_id


class NotFoundError(MCPError):
    """The server does not know the requested tool, prompt or resource."""

    pass


class ToolNameError(MCPError):
    """A tool cannot be exposed under a collision-free function name."""

    pass


class UnknownToolError(MCPError):
    """The model proposed a function name that does not resolve."""

    def __init__(self, function_name: str):
        super().__init__(f"Unknown tool: {function_name}")
        self.function_name = function_name


class ToolExecutionError(MCPError):
    """A connected server returned an error result or raised during a call."""

    pass


class ArtifactUploadError(Exception):
    """Uploading a binary artifact to external storage failed."""

    pass
