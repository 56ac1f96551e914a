"""Observability: structured logging with per-run context.

Example:
    from mcp_chat.observability import configure_logging, get_logger, log_context

    configure_logging(LogConfig(json_format=True))
    logger = get_logger(__name__)
    with log_context(correlation_id="req-123", server_id="calc"):
        logger.info("tool_call_started", tool="add")
"""

from .logging import (
    LogConfig,
    LogContext,
    LogLevel,
    clear_context,
    configure_logging,
    get_context,
    get_logger,
    log_context,
    merge_log_context,
    new_correlation_id,
    set_context,
)

__all__ = [
    "LogConfig",
    "LogContext",
    "LogLevel",
    "clear_context",
    "configure_logging",
    "get_context",
    "get_logger",
    "log_context",
    "merge_log_context",
    "new_correlation_id",
    "set_context",
]
