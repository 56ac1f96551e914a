"""Tests for connection failure diagnostics."""

from __future__ import annotations

import pytest

from mcp_chat.mcp.config import ServerConfiguration
from mcp_chat.mcp.diagnostics import diagnose, suggest


@pytest.mark.parametrize(
    "error_text, category",
    [
        ("Missing required environment variable BRAVE_API_KEY", "missing_credential"),
        ("HTTP 401 Unauthorized", "missing_credential"),
        ("Failed to start MCP server: command not found: uvx (ENOENT)", "missing_executable"),
        ("Error: Cannot find module '/srv/index.js'", "missing_module"),
        ("Request 'initialize' timed out after 30.0s", "timeout"),
        ("connect ETIMEDOUT 10.0.0.1:443", "timeout"),
        ("Connection refused (ECONNREFUSED): All connection attempts failed", "connection_refused"),
        ("Connection closed: server process exited with code 1", "premature_exit"),
        ("MCP error -32000: Connection closed", "premature_exit"),
    ],
)
def test_diagnose_categories(error_text, category):
    assert diagnose(error_text).category == category


def test_first_matching_category_wins():
    # Mentions both a credential and a premature exit.
    diagnosis = diagnose("Connection closed: Invalid API key")
    assert diagnosis.category == "missing_credential"


def test_unrecognized_error():
    assert diagnose("something odd happened") is None


def test_suggest_uses_diagnosis():
    assert "API key" in suggest("Missing OPENAI_API_KEY")


def test_suggest_falls_back_per_transport():
    network = ServerConfiguration(name="n", transport="sse", url="http://localhost:9/sse")
    stdio = ServerConfiguration(name="s", transport="stdio", command="srv")

    assert "http://localhost:9/sse" in suggest("weird", network)
    assert suggest("weird", stdio) == "Check the server configuration and try again."
    assert suggest("weird") == "Check the server configuration and try again."
