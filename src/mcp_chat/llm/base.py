"""Base types and protocols for model providers."""

from __future__ import annotations

import asyncio
import random
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Optional,
    Protocol,
    runtime_checkable,
)

from mcp_chat.tools.bridge import FunctionDeclaration


class MessageRole(str, Enum):
    """Role of a message in a conversation."""

    USER = "user"
    ASSISTANT = "assistant"


@dataclass
class ChatMessage:
    """A message in a conversation."""

    role: MessageRole
    content: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert message to dictionary format."""
        return {"role": self.role.value, "content": self.content}


@dataclass
class FunctionCall:
    """A function call proposed by the model."""

    name: str
    args: Dict[str, Any] = field(default_factory=dict)
    id: Optional[str] = None


@dataclass
class FunctionResult:
    """The response to one function call, sent back to the model."""

    name: str
    response: Dict[str, Any]
    id: Optional[str] = None


@dataclass
class ModelTurn:
    """One model response: text and any proposed function calls."""

    text: str = ""
    function_calls: List[FunctionCall] = field(default_factory=list)
    finish_reason: Optional[str] = None
    raw_response: Optional[Any] = None

    @property
    def has_function_calls(self) -> bool:
        """Check if the model proposed function calls."""
        return bool(self.function_calls)


@dataclass
class RetryConfig:
    """Configuration for retry logic with exponential backoff."""

    max_retries: int = 2
    base_delay: float = 1.0  # seconds
    max_delay: float = 30.0  # seconds
    exponential_base: float = 2.0
    jitter: bool = True
    retryable_status_codes: tuple = field(default_factory=lambda: (429, 500, 502, 503, 504))

    def get_delay(self, attempt: int) -> float:
        """Calculate delay for a given attempt number."""
        delay = min(
            self.base_delay * (self.exponential_base ** attempt),
            self.max_delay
        )
        if self.jitter:
            delay = delay * (0.5 + random.random())
        return delay


@dataclass
class LLMConfig:
    """Configuration for a model provider."""

    model: str
    api_key: Optional[str] = None
    temperature: Optional[float] = None
    max_output_tokens: Optional[int] = None
    system_instruction: Optional[str] = None
    retry_config: Optional[RetryConfig] = None

    def __post_init__(self):
        if self.retry_config is None:
            self.retry_config = RetryConfig()


@runtime_checkable
class ModelChat(Protocol):
    """A stateful chat with the model.

    The chat keeps its own history: every call appends the sent turn and
    the model's answer.
    """

    async def send_message(self, text: str) -> ModelTurn:
        """Send a user message and return the model's turn."""
        ...

    async def send_function_results(self, results: List[FunctionResult]) -> ModelTurn:
        """Answer the previous turn's function calls, in proposal order."""
        ...


@runtime_checkable
class ModelProvider(Protocol):
    """Protocol for model providers with function calling."""

    def start_chat(
        self,
        history: List[ChatMessage],
        declarations: Optional[List[FunctionDeclaration]] = None,
    ) -> ModelChat:
        """Open a chat seeded with ``history`` and the callable functions.

        Args:
            history: Prior turns, oldest first. The newest user message is
                not part of it; it goes through ``send_message``.
            declarations: Functions the model may call. None or empty
                disables function calling.
        """
        ...


class BaseModelChat(ABC):
    """Abstract chat with retry support shared by providers."""

    def __init__(self, retry_config: Optional[RetryConfig] = None):
        self.retry_config = retry_config or RetryConfig()

    @abstractmethod
    async def send_message(self, text: str) -> ModelTurn:
        pass

    @abstractmethod
    async def send_function_results(self, results: List[FunctionResult]) -> ModelTurn:
        pass

    async def _retry_with_backoff(
        self,
        func: Callable,
        *args: Any,
        **kwargs: Any,
    ) -> Any:
        """Execute a function with retry logic and exponential backoff.

        Only errors carrying a retryable status code (``RateLimitError`` or
        an HTTP-like ``status_code``) are retried.

        Raises:
            The last exception if all retries are exhausted.
        """
        retry_config = self.retry_config

        for attempt in range(retry_config.max_retries + 1):
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                status_code = getattr(e, "status_code", None) or getattr(
                    getattr(e, "response", None), "status_code", None
                )
                should_retry = (
                    isinstance(e, RateLimitError)
                    or status_code in retry_config.retryable_status_codes
                )
                if not should_retry or attempt >= retry_config.max_retries:
                    raise

                await asyncio.sleep(retry_config.get_delay(attempt))

        raise RuntimeError("Unexpected state in retry logic")


class LLMProviderError(Exception):
    """Base exception for model provider errors."""

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
        response: Optional[Any] = None,
    ):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code
        self.response = response


class RateLimitError(LLMProviderError):
    """Exception raised when rate limited by the provider."""
    pass


class AuthenticationError(LLMProviderError):
    """Exception raised for authentication failures."""
    pass


class InvalidRequestError(LLMProviderError):
    """Exception raised for invalid requests."""
    pass
