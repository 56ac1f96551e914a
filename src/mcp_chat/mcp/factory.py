"""Build transports from declarative server configurations."""

from __future__ import annotations

import logging
import os
from typing import Dict, Mapping, Optional
from urllib.parse import urlparse

from mcp_chat.errors import ConfigurationError

from .config import ServerConfiguration, TransportKind
from .transport import (
    HTTPTransportConfig,
    SSETransport,
    StdioTransport,
    StdioTransportConfig,
    StreamableHTTPTransport,
    Transport,
)

logger = logging.getLogger(__name__)


def merge_environment(
    overrides: Optional[Mapping[str, Optional[str]]],
    base: Optional[Mapping[str, str]] = None,
) -> Dict[str, str]:
    """Overlay configured variables on the ambient environment.

    Empty and missing values are stripped after the merge, so a blank
    override removes the variable instead of passing an empty placeholder.
    """
    merged: Dict[str, Optional[str]] = dict(os.environ if base is None else base)
    merged.update(overrides or {})
    return {key: value for key, value in merged.items() if value}


def validate_url(url: Optional[str], kind: TransportKind) -> str:
    """Return ``url`` if it is an absolute http(s) URL."""
    label = kind.value.upper()
    if not url:
        raise ConfigurationError(f"{label} transport requires a URL")
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ConfigurationError(f"{label} transport requires a valid http(s) URL: {url}")
    return url


class TransportFactory:
    """Creates the right transport for a server configuration.

    Construction does no I/O; processes are spawned and sockets opened
    only when the returned transport is connected.
    """

    def __init__(
        self,
        request_timeout: float = 30.0,
        base_environment: Optional[Mapping[str, str]] = None,
    ):
        self.request_timeout = request_timeout
        self.base_environment = base_environment

    def build(self, config: ServerConfiguration) -> Transport:
        """Build a transport for ``config``.

        Raises:
            ConfigurationError: A field required by the transport kind is
                missing or invalid.
        """
        if config.transport == TransportKind.STDIO:
            return self._build_stdio(config)
        if config.transport == TransportKind.SSE:
            return SSETransport(self._http_config(config))
        if config.transport == TransportKind.STREAMABLE_HTTP:
            return StreamableHTTPTransport(self._http_config(config))
        raise ConfigurationError(f"Unsupported transport type: {config.transport}")

    def _build_stdio(self, config: ServerConfiguration) -> StdioTransport:
        if not config.command or not config.command.strip():
            raise ConfigurationError("STDIO transport requires a command")

        env = merge_environment(config.env, self.base_environment)
        logger.info(
            f"Creating stdio transport for {config.id}: {config.command} "
            f"{' '.join(config.args or [])} (extra env keys: {sorted((config.env or {}).keys())})"
        )
        return StdioTransport(
            StdioTransportConfig(
                command=config.command,
                args=list(config.args or []),
                env=env,
                timeout=self.request_timeout,
            )
        )

    def _http_config(self, config: ServerConfiguration) -> HTTPTransportConfig:
        url = validate_url(config.url, config.transport)
        return HTTPTransportConfig(
            url=url,
            headers=dict(config.headers or {}),
            timeout=self.request_timeout,
        )
