"""Structured logging with per-run context.

This module provides:
- structlog configuration (console or JSON rendering, optional rotating file)
- A ``LogContext`` held in a context variable and merged into every event
- Correlation IDs that tie together all events of one orchestration run
"""

from __future__ import annotations

import logging
import sys
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field, replace
from enum import Enum
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Union

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

ROOT_LOGGER = "mcp_chat"


class LogLevel(str, Enum):
    """Log levels."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"

    def to_int(self) -> int:
        """Convert to logging module integer level."""
        return getattr(logging, self.value.upper())


@dataclass
class LogContext:
    """Context for structured logging.

    Attributes:
        correlation_id: ID tying together the events of one run.
        server_id: MCP server the current operation targets.
        session_id: Chat session of the current request.
        extra: Additional context data.
    """

    correlation_id: Optional[str] = None
    server_id: Optional[str] = None
    session_id: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert context to dictionary for logging."""
        result: Dict[str, Any] = {}
        if self.correlation_id:
            result["correlation_id"] = self.correlation_id
        if self.server_id:
            result["server_id"] = self.server_id
        if self.session_id:
            result["session_id"] = self.session_id
        result.update(self.extra)
        return result

    def with_extra(self, **kwargs: Any) -> "LogContext":
        """Create a new context with additional data."""
        return replace(self, extra={**self.extra, **kwargs})


_log_context: ContextVar[Optional[LogContext]] = ContextVar(
    "log_context", default=None
)


def set_context(context: Optional[LogContext]) -> None:
    """Set the current log context."""
    _log_context.set(context)


def get_context() -> Optional[LogContext]:
    """Get the current log context."""
    return _log_context.get()


def clear_context() -> None:
    """Clear the current log context."""
    _log_context.set(None)


def new_correlation_id() -> str:
    return uuid.uuid4().hex[:12]


@contextmanager
def log_context(**fields: Any) -> Iterator[LogContext]:
    """Layer fields over the current context for the duration of a block.

    Unknown keyword arguments go into ``extra``. The previous context is
    restored on exit.
    """
    current = get_context() or LogContext()
    known = {k: fields.pop(k) for k in ("correlation_id", "server_id", "session_id") if k in fields}
    context = replace(current, **known).with_extra(**fields)
    token = _log_context.set(context)
    try:
        yield context
    finally:
        _log_context.reset(token)


def merge_log_context(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """structlog processor adding the current LogContext to an event."""
    context = get_context()
    if context is not None:
        for key, value in context.to_dict().items():
            event_dict.setdefault(key, value)
    return event_dict


@dataclass
class LogConfig:
    """Configuration for the logging system.

    Attributes:
        level: Minimum log level.
        json_format: Render events as JSON instead of console lines.
        file_path: Optional file that receives a copy of every event.
        max_bytes: Rotation size for the log file.
        backup_count: Rotated files to keep.
    """

    level: LogLevel = LogLevel.INFO
    json_format: bool = False
    file_path: Optional[Union[str, Path]] = None
    max_bytes: int = 10 * 1024 * 1024  # 10MB
    backup_count: int = 5


_configured = False


def _handlers(config: LogConfig) -> List[logging.Handler]:
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if config.file_path:
        path = Path(config.file_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            RotatingFileHandler(
                path,
                maxBytes=config.max_bytes,
                backupCount=config.backup_count,
            )
        )
    return handlers


def configure_logging(config: Optional[LogConfig] = None, force: bool = False) -> None:
    """Configure structlog and the package's stdlib loggers.

    Only the first call has an effect unless ``force`` is set.
    """
    global _configured
    if _configured and not force:
        return
    config = config or LogConfig()

    processors: List[Processor] = [
        structlog.contextvars.merge_contextvars,
        merge_log_context,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if config.json_format:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(config.level.to_int()),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )

    # Module loggers (logging.getLogger(__name__)) share the same handlers.
    package_logger = logging.getLogger(ROOT_LOGGER)
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()
    for handler in _handlers(config):
        handler.setFormatter(logging.Formatter("%(asctime)s %(name)s %(levelname)s %(message)s"))
        package_logger.addHandler(handler)
    package_logger.setLevel(config.level.to_int())

    _configured = True


def get_logger(name: str = ROOT_LOGGER, **initial: Any) -> Any:
    """Return a structlog logger, optionally with bound values."""
    return structlog.get_logger(name, **initial)
