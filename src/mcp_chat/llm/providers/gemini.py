"""Gemini model provider implementation."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any, Dict, List, Optional

from mcp_chat.tools.bridge import FunctionDeclaration
from mcp_chat.tools.schema import FunctionSchema

from ..base import (
    AuthenticationError,
    BaseModelChat,
    ChatMessage,
    FunctionCall,
    FunctionResult,
    InvalidRequestError,
    LLMConfig,
    LLMProviderError,
    MessageRole,
    ModelTurn,
    RateLimitError,
)

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.0-flash"


def _to_plain(value: Any) -> Any:
    """Convert proto-plus map/repeated composites into plain Python values."""
    if isinstance(value, (str, bytes)):
        return value
    if isinstance(value, Mapping):
        return {key: _to_plain(item) for key, item in value.items()}
    if isinstance(value, Sequence):
        return [_to_plain(item) for item in value]
    if isinstance(value, float) and value.is_integer():
        # Struct values arrive as doubles.
        return int(value)
    return value


class GeminiChat(BaseModelChat):
    """A chat session on a Gemini model."""

    def __init__(self, session: Any, genai: Any, config: LLMConfig):
        super().__init__(config.retry_config)
        self._session = session
        self._genai = genai

    async def send_message(self, text: str) -> ModelTurn:
        """Send a user message."""
        return await self._send(text)

    async def send_function_results(self, results: List[FunctionResult]) -> ModelTurn:
        """Send one function response part per call, in order."""
        protos = self._genai.protos
        content = protos.Content(
            role="user",
            parts=[
                protos.Part(
                    function_response=protos.FunctionResponse(
                        name=result.name,
                        response=result.response,
                    )
                )
                for result in results
            ],
        )
        return await self._send(content)

    async def _send(self, content: Any) -> ModelTurn:
        async def _make_request() -> ModelTurn:
            try:
                response = await self._session.send_message_async(content)
            except Exception as e:
                raise _translate_error(e) from e
            return parse_response(response)

        return await self._retry_with_backoff(_make_request)


def parse_response(response: Any) -> ModelTurn:
    """Extract text and function calls from the first candidate."""
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        logger.warning("Gemini returned no candidates")
        return ModelTurn(text="", raw_response=response)

    candidate = candidates[0]
    parts = getattr(getattr(candidate, "content", None), "parts", None) or []

    text_parts: List[str] = []
    calls: List[FunctionCall] = []
    for part in parts:
        fn = getattr(part, "function_call", None)
        if fn is not None and getattr(fn, "name", ""):
            calls.append(FunctionCall(name=fn.name, args=_to_plain(fn.args or {})))
            continue
        text = getattr(part, "text", "")
        if text:
            text_parts.append(text)

    finish_reason = getattr(candidate, "finish_reason", None)
    return ModelTurn(
        text="".join(text_parts),
        function_calls=calls,
        finish_reason=getattr(finish_reason, "name", None) or (
            str(finish_reason) if finish_reason is not None else None
        ),
        raw_response=response,
    )


def _translate_error(error: Exception) -> LLMProviderError:
    """Convert SDK errors to our error types."""
    if isinstance(error, LLMProviderError):
        return error
    code = getattr(error, "code", None)
    message = str(error)
    lowered = message.lower()
    if code == 429 or any(
        kw in lowered for kw in ("rate limit", "429", "quota", "resource exhausted")
    ):
        return RateLimitError(message, provider="gemini", status_code=429)
    if code in (401, 403) or "api key" in lowered or "permission denied" in lowered:
        return AuthenticationError(message, provider="gemini", status_code=code or 401)
    if code == 400 or "invalid argument" in lowered:
        return InvalidRequestError(message, provider="gemini", status_code=400)
    return LLMProviderError(
        message,
        provider="gemini",
        status_code=code if isinstance(code, int) else None,
    )


class GeminiProvider:
    """Gemini function-calling provider.

    Supports:
    - Multi-turn chat with ``user`` / ``model`` history
    - Function declarations translated from MCP tool schemas
    - One function response part per proposed call
    """

    def __init__(self, config: LLMConfig):
        """Initialize Gemini provider.

        Args:
            config: Model name, API key and generation settings.
        """
        import google.generativeai as genai

        self.config = config
        if config.api_key:
            genai.configure(api_key=config.api_key)
        self._genai = genai

    def _schema(self, schema: FunctionSchema) -> Any:
        protos = self._genai.protos
        kwargs: Dict[str, Any] = {"type": protos.Type[schema.type.value]}
        if schema.description:
            kwargs["description"] = schema.description
        if schema.properties:
            kwargs["properties"] = {
                name: self._schema(child) for name, child in schema.properties.items()
            }
        if schema.required:
            kwargs["required"] = list(schema.required)
        if schema.items is not None:
            kwargs["items"] = self._schema(schema.items)
        if schema.enum:
            kwargs["enum"] = list(schema.enum)
            kwargs["format"] = "enum"
        return protos.Schema(**kwargs)

    def _format_tools(
        self, declarations: Optional[List[FunctionDeclaration]]
    ) -> Optional[List[Any]]:
        """Format declarations as a single Gemini tool."""
        if not declarations:
            return None
        protos = self._genai.protos
        functions = []
        for declaration in declarations:
            kwargs: Dict[str, Any] = {
                "name": declaration.name,
                "description": declaration.description,
            }
            # Gemini rejects OBJECT parameters without properties.
            if declaration.parameters.properties:
                kwargs["parameters"] = self._schema(declaration.parameters)
            functions.append(protos.FunctionDeclaration(**kwargs))
        return [protos.Tool(function_declarations=functions)]

    def _format_history(self, history: List[ChatMessage]) -> List[Dict[str, Any]]:
        return [
            {
                "role": "user" if message.role == MessageRole.USER else "model",
                "parts": [message.content],
            }
            for message in history
        ]

    def start_chat(
        self,
        history: List[ChatMessage],
        declarations: Optional[List[FunctionDeclaration]] = None,
    ) -> GeminiChat:
        generation_config: Dict[str, Any] = {}
        if self.config.temperature is not None:
            generation_config["temperature"] = self.config.temperature
        if self.config.max_output_tokens is not None:
            generation_config["max_output_tokens"] = self.config.max_output_tokens

        model = self._genai.GenerativeModel(
            self.config.model or DEFAULT_MODEL,
            tools=self._format_tools(declarations),
            generation_config=generation_config or None,
            system_instruction=self.config.system_instruction,
        )
        session = model.start_chat(history=self._format_history(history))
        return GeminiChat(session, self._genai, self.config)
