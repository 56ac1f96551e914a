"""Bridge between MCP tools and model function declarations.

Function names are built as ``<server id>__<tool name>``. Server ids may
not contain the separator or end with an underscore, so the first
occurrence of the separator is always the one that was inserted and
splitting there recovers the original pair, even when the tool name
itself starts with or contains underscores.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from mcp_chat.errors import ToolNameError
from mcp_chat.mcp.models import NormalizedTool

from .schema import FunctionSchema, convert_parameters

logger = logging.getLogger(__name__)

SEPARATOR = "__"


@dataclass
class FunctionDeclaration:
    """A function the model may propose to call."""

    name: str
    description: str
    parameters: FunctionSchema

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters.to_dict(),
        }


def function_name(server_id: str, tool_name: str) -> str:
    """Join a server id and tool name into a collision-free function name.

    Raises:
        ToolNameError: The pair cannot be encoded reversibly.
    """
    if not server_id:
        raise ToolNameError("Server id must not be empty")
    if not tool_name:
        raise ToolNameError(f"Tool name must not be empty (server {server_id})")
    if SEPARATOR in server_id:
        raise ToolNameError(
            f"Server id '{server_id}' contains the reserved separator '{SEPARATOR}'"
        )
    if server_id.endswith("_"):
        # "a_" + "x" and "a" + "_x" would both encode as "a___x".
        raise ToolNameError(f"Server id '{server_id}' must not end with '_'")
    return f"{server_id}{SEPARATOR}{tool_name}"


def split_function_name(name: str) -> Optional[Tuple[str, str]]:
    """Split a function name on the first separator.

    Returns None when the name is not of the ``server__tool`` form. A
    successful split says nothing about whether the pair is registered;
    use a ToolResolutionTable for that.
    """
    server_id, sep, tool_name = name.partition(SEPARATOR)
    if not sep or not server_id or not tool_name:
        return None
    return server_id, tool_name


def to_function_declaration(tool: NormalizedTool, server_id: str) -> FunctionDeclaration:
    """Convert a normalized tool into a model function declaration."""
    name = function_name(server_id, tool.name)
    schema = tool.input_schema
    return FunctionDeclaration(
        name=name,
        description=tool.description or f"Tool {tool.name} from server {server_id}",
        parameters=convert_parameters(schema.properties, schema.required),
    )


@dataclass
class ResolvedTool:
    """Target of a function name: which server and tool to call."""

    server_id: str
    tool_name: str
    server_name: str


@dataclass
class ToolResolutionTable:
    """Function-name lookup built once per orchestration run.

    Only names registered here resolve; anything else the model proposes
    is an unknown tool.
    """

    _entries: Dict[str, ResolvedTool] = field(default_factory=dict)
    declarations: List[FunctionDeclaration] = field(default_factory=list)

    def register(
        self,
        tool: NormalizedTool,
        server_id: str,
        server_name: str,
    ) -> FunctionDeclaration:
        """Add a tool and return its declaration.

        Raises:
            ToolNameError: The server id or tool name cannot be encoded, or
                the resulting function name is already registered.
        """
        declaration = to_function_declaration(tool, server_id)
        if declaration.name in self._entries:
            raise ToolNameError(f"Duplicate function name: {declaration.name}")
        self._entries[declaration.name] = ResolvedTool(
            server_id=server_id,
            tool_name=tool.name,
            server_name=server_name,
        )
        self.declarations.append(declaration)
        return declaration

    def resolve(self, name: str) -> Optional[ResolvedTool]:
        return self._entries.get(name)

    def names(self) -> List[str]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    @classmethod
    def build(
        cls,
        entries: Iterable[Tuple[NormalizedTool, str, str]],
    ) -> "ToolResolutionTable":
        """Build a table from ``(tool, server_id, server_name)`` triples.

        Entries whose names are rejected are logged and skipped.
        """
        table = cls()
        for tool, server_id, server_name in entries:
            try:
                table.register(tool, server_id, server_name)
            except ToolNameError as e:
                logger.warning(f"Skipping tool {tool.name} on {server_id}: {e}")
        return table
