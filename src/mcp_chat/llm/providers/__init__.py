"""Model providers package."""

from .gemini import GeminiChat, GeminiProvider

__all__ = [
    "GeminiChat",
    "GeminiProvider",
]
