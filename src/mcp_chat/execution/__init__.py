"""Tool orchestration for chat requests."""

from .orchestrator import (
    EnabledToolSelection,
    InvocationStatus,
    LoopPhase,
    OrchestrationResult,
    OrchestratorConfig,
    ToolInvocationRecord,
    ToolOrchestrator,
)

__all__ = [
    "EnabledToolSelection",
    "InvocationStatus",
    "LoopPhase",
    "OrchestrationResult",
    "OrchestratorConfig",
    "ToolInvocationRecord",
    "ToolOrchestrator",
]
