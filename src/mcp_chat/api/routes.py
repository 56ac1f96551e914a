"""HTTP routes for MCP management, chat and chat sessions."""

from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse

from mcp_chat.errors import MCPConnectionError
from mcp_chat.execution.orchestrator import EnabledToolSelection
from mcp_chat.llm.base import ChatMessage, MessageRole
from mcp_chat.mcp.config import ServerConfiguration
from mcp_chat.mcp.diagnostics import suggest
from mcp_chat.service import MCPService
from mcp_chat.storage.chat_store import ChatStore, StoredMessage

from .schemas import (
    CallToolRequest,
    ChatRequest,
    CreateSessionRequest,
    DisconnectRequest,
    GetPromptRequest,
    ReadResourceRequest,
    StoredMessageIn,
    UpdateMessagesRequest,
    connection_test_to_dict,
    prompt_result_to_dict,
    prompt_to_dict,
    resource_result_to_dict,
    resource_to_dict,
    server_tools_to_dict,
    tool_to_dict,
)

logger = logging.getLogger(__name__)

mcp_router = APIRouter(prefix="/api/mcp", tags=["mcp"])
chat_router = APIRouter(prefix="/api", tags=["chat"])
sessions_router = APIRouter(prefix="/api/sessions", tags=["sessions"])


def get_service(request: Request) -> MCPService:
    return request.app.state.service


def get_chat_store(request: Request) -> ChatStore:
    return request.app.state.chat_store


def _bad_request(message: str) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": message})


# MCP connections


@mcp_router.post("/connect")
async def connect(
    config: ServerConfiguration,
    service: MCPService = Depends(get_service),
):
    """Connect to a server and return its tools, prompts and resources."""
    try:
        result = await service.connect(config)
    except MCPConnectionError as e:
        logger.error(f"Connect to {config.id} failed: {e}")
        return JSONResponse(
            status_code=502,
            content={"error": str(e), "suggestion": suggest(str(e), config)},
        )
    return {
        "success": True,
        "serverId": result.server_id,
        "tools": [tool_to_dict(t) for t in result.tools],
        "prompts": [prompt_to_dict(p) for p in result.prompts],
        "resources": [resource_to_dict(r) for r in result.resources],
    }


@mcp_router.post("/disconnect")
async def disconnect(
    body: DisconnectRequest,
    service: MCPService = Depends(get_service),
):
    await service.disconnect(body.server_id)
    return {"success": True, "serverId": body.server_id}


@mcp_router.get("/status")
async def status(
    serverId: Optional[str] = None,
    service: MCPService = Depends(get_service),
):
    return service.status(serverId)


@mcp_router.post("/test-connection")
async def test_connection(
    config: ServerConfiguration,
    service: MCPService = Depends(get_service),
):
    """Reconnect from scratch and report capability counts and timing."""
    result = await service.test_connection(config)
    body = connection_test_to_dict(result)
    if not result.success:
        return JSONResponse(status_code=502, content=body)
    return body


# Capabilities


@mcp_router.get("/tools")
async def list_tools(
    serverId: Optional[str] = None,
    service: MCPService = Depends(get_service),
):
    """Tools of one server, or of every connected server without ``serverId``."""
    if not serverId:
        entries = await service.list_all_tools()
        return {"servers": [server_tools_to_dict(entry) for entry in entries]}
    tools = await service.list_tools(serverId)
    return {"tools": [tool_to_dict(t) for t in tools]}


@mcp_router.post("/tools/call")
async def call_tool(
    body: CallToolRequest,
    service: MCPService = Depends(get_service),
):
    result = await service.call_tool(body.server_id, body.tool_name, body.args)
    return {"result": result.to_dict()}


@mcp_router.get("/prompts")
async def list_prompts(
    serverId: Optional[str] = None,
    service: MCPService = Depends(get_service),
):
    if not serverId:
        return _bad_request("Missing required query param: serverId")
    prompts = await service.list_prompts(serverId)
    return {"prompts": [prompt_to_dict(p) for p in prompts]}


@mcp_router.post("/prompts/get")
async def get_prompt(
    body: GetPromptRequest,
    service: MCPService = Depends(get_service),
):
    result = await service.get_prompt(body.server_id, body.prompt_name, body.args)
    return {"result": prompt_result_to_dict(result)}


@mcp_router.get("/resources")
async def list_resources(
    serverId: Optional[str] = None,
    service: MCPService = Depends(get_service),
):
    if not serverId:
        return _bad_request("Missing required query param: serverId")
    resources = await service.list_resources(serverId)
    return {"resources": [resource_to_dict(r) for r in resources]}


@mcp_router.post("/resources/read")
async def read_resource(
    body: ReadResourceRequest,
    service: MCPService = Depends(get_service),
):
    result = await service.read_resource(body.server_id, body.uri)
    return {"result": resource_result_to_dict(result)}


# Chat


@chat_router.post("/chat")
async def chat(
    body: ChatRequest,
    service: MCPService = Depends(get_service),
):
    """Answer the newest user message, calling enabled MCP tools as needed."""
    messages = [ChatMessage(MessageRole(m.role), m.content) for m in body.messages]
    selections = [
        EnabledToolSelection(
            server_id=t.server_id,
            tool_name=t.tool_name,
            server_name=t.server_name,
            description=t.description,
        )
        for t in body.enabled_tools
    ]
    try:
        result = await service.send_chat(messages, selections, body.mcp_enabled)
    except ValueError as e:
        return _bad_request(str(e))

    return {
        "text": result.text,
        "toolCalls": [record.to_dict() for record in result.records],
        "status": result.phase.value,
        "truncated": result.truncated,
        "rounds": result.rounds,
    }


# Chat sessions


def _stored(messages: List[StoredMessageIn]) -> List[StoredMessage]:
    return [
        StoredMessage(role=m.role, content=m.content, tool_calls=m.tool_calls)
        for m in messages
    ]


def _not_found(session_id: str) -> JSONResponse:
    return JSONResponse(status_code=404, content={"error": f"Session {session_id} not found"})


@sessions_router.get("")
async def list_sessions(
    x_device_id: str = Header(...),
    store: ChatStore = Depends(get_chat_store),
):
    sessions = await store.list_sessions(x_device_id)
    return {"sessions": [s.to_dict() for s in sessions]}


@sessions_router.post("", status_code=201)
async def create_session(
    body: CreateSessionRequest,
    x_device_id: str = Header(...),
    store: ChatStore = Depends(get_chat_store),
):
    try:
        session = await store.create(
            x_device_id, body.title, _stored(body.messages), session_id=body.id
        )
    except ValueError as e:
        return JSONResponse(status_code=409, content={"error": str(e)})
    return session.to_dict()


@sessions_router.get("/{session_id}")
async def get_session(
    session_id: str,
    x_device_id: str = Header(...),
    store: ChatStore = Depends(get_chat_store),
):
    session = await store.get(x_device_id, session_id)
    if session is None:
        return _not_found(session_id)
    return session.to_dict()


@sessions_router.put("/{session_id}/messages")
async def update_messages(
    session_id: str,
    body: UpdateMessagesRequest,
    x_device_id: str = Header(...),
    store: ChatStore = Depends(get_chat_store),
):
    if not await store.update_messages(x_device_id, session_id, _stored(body.messages)):
        return _not_found(session_id)
    return {"success": True}


@sessions_router.delete("/{session_id}")
async def delete_session(
    session_id: str,
    x_device_id: str = Header(...),
    store: ChatStore = Depends(get_chat_store),
):
    if not await store.delete(x_device_id, session_id):
        return _not_found(session_id)
    return {"success": True}
