"""Remediation hints for failed connection attempts."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Tuple

from .config import ServerConfiguration, TransportKind


@dataclass
class Diagnosis:
    """A failure category and the hint shown to the user."""

    category: str
    suggestion: str


# Checked in order; the first category whose markers match wins.
_RULES: List[Tuple[str, Tuple[str, ...], str]] = [
    (
        "missing_credential",
        ("API_KEY", "API key", "api key", "401", "Unauthorized"),
        "The server needs a credential. Add the required API key to the "
        "server's environment variables and reconnect.",
    ),
    (
        "missing_executable",
        ("command not found", "not found", "ENOENT"),
        "The server command could not be started. Check that it is installed "
        "and available on PATH (for npx servers, install Node.js).",
    ),
    (
        "missing_module",
        ("spawn", "Cannot find module"),
        "The server process could not load its entry point. Check the "
        "command arguments and reinstall the server package.",
    ),
    (
        "timeout",
        ("timed out", "timeout", "ETIMEDOUT"),
        "The server did not answer in time. It may still be installing or "
        "starting; try again, or check the server logs.",
    ),
    (
        "connection_refused",
        ("ECONNREFUSED", "Connection refused"),
        "Nothing is listening at the configured URL. Make sure the server is "
        "running and the URL and port are correct.",
    ),
    (
        "premature_exit",
        ("Connection closed", "-32000"),
        "The server exited before the handshake finished. Check its "
        "arguments and environment variables.",
    ),
]


def diagnose(error_text: str) -> Optional[Diagnosis]:
    """Match ``error_text`` against the known failure categories."""
    for category, markers, suggestion in _RULES:
        if any(marker in error_text for marker in markers):
            return Diagnosis(category, suggestion)
    return None


def suggest(error_text: str, config: Optional[ServerConfiguration] = None) -> str:
    """Return a remediation hint, falling back to a transport-specific one."""
    diagnosis = diagnose(error_text)
    if diagnosis is not None:
        return diagnosis.suggestion
    if config is not None and config.transport.is_network:
        return f"Check that {config.url} is reachable and speaks MCP over {config.transport.value}."
    return "Check the server configuration and try again."
