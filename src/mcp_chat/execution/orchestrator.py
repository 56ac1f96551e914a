"""Bounded model/tool orchestration loop.

One run handles one chat request: the model sees the enabled MCP tools as
function declarations, proposes calls, the calls are executed against the
owning servers, and the results are fed back until the model answers in
plain text. The loop is a small state machine:

    AWAITING_MODEL -> EXECUTING_TOOLS -> AWAITING_MODEL -> ... -> DONE
                                                           \\-> TRUNCATED
                                                           \\-> FAILED

Failures local to one call or one server are recorded and reported to the
model; they never end the run.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from mcp_chat.artifacts.store import ArtifactStore, rehome_images
from mcp_chat.errors import NotConnectedError, ToolNameError
from mcp_chat.llm.base import (
    ChatMessage,
    FunctionCall,
    FunctionResult,
    MessageRole,
    ModelChat,
    ModelProvider,
    ModelTurn,
)
from mcp_chat.mcp.capabilities import CapabilityClient
from mcp_chat.mcp.models import NormalizedTool, NormalizedToolResult
from mcp_chat.mcp.registry import ConnectionRegistry
from mcp_chat.observability.logging import get_logger, log_context, new_correlation_id
from mcp_chat.tools.bridge import ResolvedTool, ToolResolutionTable

logger = get_logger(__name__)


class LoopPhase(str, Enum):
    """Phase of an orchestration run."""

    AWAITING_MODEL = "awaiting_model"
    EXECUTING_TOOLS = "executing_tools"
    DONE = "done"
    TRUNCATED = "truncated"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (LoopPhase.DONE, LoopPhase.TRUNCATED, LoopPhase.FAILED)


class InvocationStatus(str, Enum):
    """Status of a single tool invocation."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class EnabledToolSelection:
    """A tool the caller offers to the model for one request."""

    server_id: str
    tool_name: str
    server_name: str = ""
    description: Optional[str] = None


@dataclass
class ToolInvocationRecord:
    """One executed tool call within a run.

    The record moves pending -> running -> success | error and is frozen
    once it leaves running.
    """

    server_id: str
    server_name: str
    tool_name: str
    args: Dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: InvocationStatus = InvocationStatus.PENDING
    result: Optional[NormalizedToolResult] = None
    error: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    def start(self) -> None:
        if self.status != InvocationStatus.PENDING:
            raise RuntimeError(f"Invocation {self.id} already started")
        self.status = InvocationStatus.RUNNING
        self.start_time = datetime.now()

    def succeed(self, result: NormalizedToolResult) -> None:
        self._finish(InvocationStatus.SUCCESS)
        self.result = result

    def fail(self, error: str, result: Optional[NormalizedToolResult] = None) -> None:
        self._finish(InvocationStatus.ERROR)
        self.error = error
        self.result = result

    def _finish(self, status: InvocationStatus) -> None:
        if self.status != InvocationStatus.RUNNING:
            raise RuntimeError(
                f"Invocation {self.id} cannot move from {self.status.value} to {status.value}"
            )
        self.status = status
        self.end_time = datetime.now()

    @property
    def duration(self) -> float:
        """Duration in seconds, 0 while unfinished."""
        if not self.start_time or not self.end_time:
            return 0.0
        return (self.end_time - self.start_time).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "serverId": self.server_id,
            "serverName": self.server_name,
            "toolName": self.tool_name,
            "args": self.args,
            "status": self.status.value,
            "result": self.result.to_dict() if self.result else None,
            "error": self.error,
            "startTime": self.start_time.isoformat() if self.start_time else None,
            "endTime": self.end_time.isoformat() if self.end_time else None,
        }


@dataclass
class OrchestratorConfig:
    """Configuration for the orchestration loop.

    Attributes:
        max_rounds: Maximum model round-trips per run, the first turn
            included.
        tool_call_timeout: Seconds a single tool call may take.
        truncation_note: Appended to the answer when the round budget ends
            the run.
        failure_text: Answer returned when the model provider fails.
    """

    max_rounds: int = 10
    tool_call_timeout: float = 60.0
    truncation_note: str = (
        "[Tool execution was stopped after reaching the maximum number of "
        "rounds; the answer may be incomplete.]"
    )
    failure_text: str = (
        "Sorry, something went wrong while generating a response. Please try again."
    )


@dataclass
class OrchestrationResult:
    """Outcome of one run."""

    text: str
    records: List[ToolInvocationRecord] = field(default_factory=list)
    phase: LoopPhase = LoopPhase.DONE
    rounds: int = 0
    correlation_id: Optional[str] = None
    error: Optional[str] = None

    @property
    def truncated(self) -> bool:
        return self.phase == LoopPhase.TRUNCATED

    @property
    def failed(self) -> bool:
        return self.phase == LoopPhase.FAILED


@dataclass
class _RunState:
    chat: Optional[ModelChat] = None
    prompt: str = ""
    phase: LoopPhase = LoopPhase.AWAITING_MODEL
    rounds: int = 0
    turn: Optional[ModelTurn] = None
    pending_results: Optional[List[FunctionResult]] = None
    records: List[ToolInvocationRecord] = field(default_factory=list)
    text: str = ""
    error: Optional[str] = None


class ToolOrchestrator:
    """Drives the bounded model/tool loop for chat requests.

    Example:
        orchestrator = ToolOrchestrator(provider, registry)
        result = await orchestrator.run(
            [ChatMessage(MessageRole.USER, "what is 2+2")],
            [EnabledToolSelection("calc", "add", "Calculator")],
        )
        print(result.text, [r.status for r in result.records])
    """

    def __init__(
        self,
        provider: ModelProvider,
        registry: ConnectionRegistry,
        capabilities: Optional[CapabilityClient] = None,
        artifact_store: Optional[ArtifactStore] = None,
        config: Optional[OrchestratorConfig] = None,
    ):
        self.provider = provider
        self.registry = registry
        self.capabilities = capabilities or CapabilityClient(registry)
        self.artifact_store = artifact_store
        self.config = config or OrchestratorConfig()

    async def run(
        self,
        messages: Sequence[ChatMessage],
        selections: Sequence[EnabledToolSelection] = (),
        enabled: bool = True,
    ) -> OrchestrationResult:
        """Run one chat request to completion.

        Never raises for model or tool failures; those end up in the
        result's phase, text and records.

        Raises:
            ValueError: ``messages`` is empty or does not end with a user
                message.
        """
        if not messages:
            raise ValueError("At least one message is required")
        newest = messages[-1]
        if newest.role != MessageRole.USER:
            raise ValueError("The newest message must come from the user")

        correlation_id = new_correlation_id()
        with log_context(correlation_id=correlation_id):
            started = time.monotonic()
            table = await self.build_resolution_table(selections) if enabled else ToolResolutionTable()
            logger.info(
                "orchestration_started",
                history=len(messages) - 1,
                tools=len(table),
            )

            state = _RunState(prompt=newest.content)
            try:
                state.chat = self.provider.start_chat(
                    list(messages[:-1]), table.declarations or None
                )
            except Exception as e:
                self._fail(state, e)

            while not state.phase.is_terminal:
                if state.phase == LoopPhase.AWAITING_MODEL:
                    await self._await_model(state)
                elif state.phase == LoopPhase.EXECUTING_TOOLS:
                    await self._execute_tools(state, table)

            logger.info(
                "orchestration_finished",
                phase=state.phase.value,
                rounds=state.rounds,
                invocations=len(state.records),
                duration=round(time.monotonic() - started, 3),
            )
            return OrchestrationResult(
                text=state.text,
                records=state.records,
                phase=state.phase,
                rounds=state.rounds,
                correlation_id=correlation_id,
                error=state.error,
            )

    async def build_resolution_table(
        self, selections: Sequence[EnabledToolSelection]
    ) -> ToolResolutionTable:
        """Resolve the caller's selections against live servers.

        Selections on disconnected servers, tools a server no longer
        offers, and names the bridge rejects are skipped and logged.
        """
        table = ToolResolutionTable()
        by_server: Dict[str, List[EnabledToolSelection]] = {}
        for selection in selections:
            if not self.registry.is_connected(selection.server_id):
                logger.warning(
                    "tool_skipped_server_not_connected",
                    server_id=selection.server_id,
                    tool=selection.tool_name,
                )
                continue
            by_server.setdefault(selection.server_id, []).append(selection)

        for server_id, server_selections in by_server.items():
            try:
                live = await self.capabilities.list_tools(server_id)
            except Exception as e:
                logger.warning("tool_listing_failed", server_id=server_id, error=str(e))
                continue
            tools: Dict[str, NormalizedTool] = {tool.name: tool for tool in live}

            for selection in server_selections:
                tool = tools.get(selection.tool_name)
                if tool is None:
                    logger.warning(
                        "tool_skipped_not_offered",
                        server_id=server_id,
                        tool=selection.tool_name,
                    )
                    continue
                if not tool.description and selection.description:
                    tool = NormalizedTool(tool.name, selection.description, tool.input_schema)
                server_name = selection.server_name or self._server_name(server_id)
                try:
                    table.register(tool, server_id, server_name)
                except ToolNameError as e:
                    logger.warning(
                        "tool_skipped_bad_name",
                        server_id=server_id,
                        tool=selection.tool_name,
                        error=str(e),
                    )
        return table

    def _server_name(self, server_id: str) -> str:
        try:
            return self.registry.get_handle(server_id).config.name
        except NotConnectedError:
            return server_id

    async def _await_model(self, state: _RunState) -> None:
        state.rounds += 1
        try:
            if state.pending_results is None:
                turn = await state.chat.send_message(state.prompt)
            else:
                turn = await state.chat.send_function_results(state.pending_results)
        except Exception as e:
            self._fail(state, e)
            return

        state.turn = turn
        state.pending_results = None
        logger.debug("model_turn", round=state.rounds, calls=len(turn.function_calls))

        if not turn.has_function_calls:
            state.text = turn.text
            state.phase = LoopPhase.DONE
        elif state.rounds >= self.config.max_rounds:
            logger.warning("round_budget_exhausted", rounds=state.rounds)
            state.text = f"{turn.text}\n\n{self.config.truncation_note}".strip()
            state.phase = LoopPhase.TRUNCATED
        else:
            state.phase = LoopPhase.EXECUTING_TOOLS

    def _fail(self, state: _RunState, error: Exception) -> None:
        logger.error("model_provider_failed", round=state.rounds, error=str(error))
        state.error = str(error)
        state.text = self.config.failure_text
        state.phase = LoopPhase.FAILED

    async def _execute_tools(self, state: _RunState, table: ToolResolutionTable) -> None:
        # Sequential, in proposal order.
        results: List[FunctionResult] = []
        for call in state.turn.function_calls:
            results.append(await self._execute_call(call, table, state.records))
        state.pending_results = results
        state.phase = LoopPhase.AWAITING_MODEL

    async def _execute_call(
        self,
        call: FunctionCall,
        table: ToolResolutionTable,
        records: List[ToolInvocationRecord],
    ) -> FunctionResult:
        target: Optional[ResolvedTool] = table.resolve(call.name)
        if target is None:
            logger.warning("unknown_tool", function=call.name)
            return FunctionResult(
                name=call.name,
                response={"error": f"Unknown tool: {call.name}"},
                id=call.id,
            )

        record = ToolInvocationRecord(
            server_id=target.server_id,
            server_name=target.server_name,
            tool_name=target.tool_name,
            args=dict(call.args or {}),
        )
        records.append(record)
        record.start()

        with log_context(server_id=target.server_id):
            try:
                result = await asyncio.wait_for(
                    self.capabilities.call_tool(target.server_id, target.tool_name, record.args),
                    timeout=self.config.tool_call_timeout,
                )
            except asyncio.TimeoutError:
                record.fail(f"Tool call timed out after {self.config.tool_call_timeout}s")
            except Exception as e:
                record.fail(str(e) or type(e).__name__)
            else:
                if result.is_error:
                    record.fail(result.text() or "Tool returned an error", result)
                else:
                    await rehome_images(result, self.artifact_store)
                    record.succeed(result)

            logger.info(
                "tool_call_finished",
                tool=target.tool_name,
                status=record.status.value,
                duration=round(record.duration, 3),
                error=record.error,
            )

        if record.status == InvocationStatus.SUCCESS:
            response = record.result.to_model_payload()
        else:
            response = {"error": record.error}
        return FunctionResult(name=call.name, response=response, id=call.id)
