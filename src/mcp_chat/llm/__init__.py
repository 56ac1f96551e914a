"""Model provider abstraction layer."""

from .base import (
    AuthenticationError,
    ChatMessage,
    FunctionCall,
    FunctionResult,
    InvalidRequestError,
    LLMConfig,
    LLMProviderError,
    MessageRole,
    ModelChat,
    ModelProvider,
    ModelTurn,
    RateLimitError,
    RetryConfig,
)
from .providers import GeminiChat, GeminiProvider

__all__ = [
    # Base types
    "ChatMessage",
    "FunctionCall",
    "FunctionResult",
    "LLMConfig",
    "MessageRole",
    "ModelChat",
    "ModelProvider",
    "ModelTurn",
    "RetryConfig",
    # Errors
    "AuthenticationError",
    "InvalidRequestError",
    "LLMProviderError",
    "RateLimitError",
    # Providers
    "GeminiChat",
    "GeminiProvider",
]
