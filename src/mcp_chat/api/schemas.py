"""Request bodies and response serializers for the HTTP API.

Field names follow the camelCase JSON the browser client sends.
"""

from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from mcp_chat.mcp.capabilities import ServerTools
from mcp_chat.mcp.models import (
    NormalizedPrompt,
    NormalizedResource,
    NormalizedTool,
    PromptResult,
    ResourceResult,
)
from mcp_chat.service import ConnectionTestResult


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class DisconnectRequest(_CamelModel):
    server_id: str = Field(alias="serverId", min_length=1)


class CallToolRequest(_CamelModel):
    server_id: str = Field(alias="serverId", min_length=1)
    tool_name: str = Field(alias="toolName", min_length=1)
    args: Dict[str, Any] = Field(default_factory=dict)


class GetPromptRequest(_CamelModel):
    server_id: str = Field(alias="serverId", min_length=1)
    prompt_name: str = Field(alias="promptName", min_length=1)
    args: Dict[str, str] = Field(default_factory=dict)


class ReadResourceRequest(_CamelModel):
    server_id: str = Field(alias="serverId", min_length=1)
    uri: str = Field(min_length=1)


class ChatMessageIn(_CamelModel):
    role: Literal["user", "assistant"]
    content: str = ""


class EnabledToolIn(_CamelModel):
    server_id: str = Field(alias="serverId")
    tool_name: str = Field(alias="toolName")
    server_name: str = Field(default="", alias="serverName")
    description: Optional[str] = None


class ChatRequest(_CamelModel):
    messages: List[ChatMessageIn] = Field(default_factory=list)
    enabled_tools: List[EnabledToolIn] = Field(default_factory=list, alias="enabledTools")
    mcp_enabled: bool = Field(default=True, alias="mcpEnabled")


class StoredMessageIn(_CamelModel):
    role: Literal["user", "assistant"]
    content: str = ""
    tool_calls: Optional[List[Dict[str, Any]]] = Field(default=None, alias="toolCalls")


class CreateSessionRequest(_CamelModel):
    id: Optional[str] = None
    title: str = "New chat"
    messages: List[StoredMessageIn] = Field(default_factory=list)


class UpdateMessagesRequest(_CamelModel):
    messages: List[StoredMessageIn] = Field(default_factory=list)


def tool_to_dict(tool: NormalizedTool) -> Dict[str, Any]:
    schema = tool.input_schema
    input_schema: Dict[str, Any] = {"type": schema.type}
    if schema.properties is not None:
        input_schema["properties"] = schema.properties
    if schema.required is not None:
        input_schema["required"] = schema.required
    return {
        "name": tool.name,
        "description": tool.description,
        "inputSchema": input_schema,
    }


def prompt_to_dict(prompt: NormalizedPrompt) -> Dict[str, Any]:
    return {
        "name": prompt.name,
        "description": prompt.description,
        "arguments": None
        if prompt.arguments is None
        else [asdict(argument) for argument in prompt.arguments],
    }


def resource_to_dict(resource: NormalizedResource) -> Dict[str, Any]:
    return {
        "uri": resource.uri,
        "name": resource.name,
        "description": resource.description,
        "mimeType": resource.mime_type,
    }


def server_tools_to_dict(entry: ServerTools) -> Dict[str, Any]:
    return {
        "serverId": entry.server_id,
        "serverName": entry.server_name,
        "tools": [tool_to_dict(tool) for tool in entry.tools],
    }


def prompt_result_to_dict(result: PromptResult) -> Dict[str, Any]:
    return {
        "description": result.description,
        "messages": [
            {"role": message.role, "content": asdict(message.content)}
            for message in result.messages
        ],
    }


def resource_result_to_dict(result: ResourceResult) -> Dict[str, Any]:
    return {
        "contents": [
            {
                "uri": item.uri,
                "mimeType": item.mime_type,
                "text": item.text,
                "blob": item.blob,
            }
            for item in result.contents
        ]
    }


def connection_test_to_dict(result: ConnectionTestResult) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "success": result.success,
        "serverId": result.server_id,
        "connectTime": f"{result.connect_time_ms}ms",
    }
    if not result.success:
        data["error"] = result.error
        data["suggestion"] = result.suggestion
        return data
    data.update(
        {
            "totalTime": f"{result.total_time_ms}ms",
            "tools": {
                "count": len(result.tools),
                "list": [{"name": t.name, "description": t.description} for t in result.tools],
            },
            "prompts": {
                "count": len(result.prompts),
                "list": [{"name": p.name, "description": p.description} for p in result.prompts],
            },
            "resources": {
                "count": len(result.resources),
                "list": [{"uri": r.uri, "name": r.name} for r in result.resources],
            },
        }
    )
    return data
