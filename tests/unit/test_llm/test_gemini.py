"""Tests for the Gemini provider with the SDK mocked out."""

from __future__ import annotations

import sys
from types import SimpleNamespace
from typing import Any, Dict
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from mcp_chat.llm.base import (
    AuthenticationError,
    ChatMessage,
    FunctionResult,
    InvalidRequestError,
    LLMConfig,
    LLMProviderError,
    MessageRole,
    RateLimitError,
    RetryConfig,
)
from mcp_chat.llm.providers.gemini import (
    GeminiProvider,
    _to_plain,
    _translate_error,
    parse_response,
)
from mcp_chat.tools.bridge import FunctionDeclaration
from mcp_chat.tools.schema import convert_parameters


class _Proto:
    def __init__(self, **kwargs: Any):
        self.kwargs = kwargs
        self.__dict__.update(kwargs)


def _protos() -> SimpleNamespace:
    names = ("Schema", "FunctionDeclaration", "Tool", "Content", "Part", "FunctionResponse")
    return SimpleNamespace(
        Type={t: t for t in ("STRING", "NUMBER", "INTEGER", "BOOLEAN", "ARRAY", "OBJECT")},
        **{name: type(name, (_Proto,), {}) for name in names},
    )


def _response(*parts: Any, finish: str = "STOP") -> SimpleNamespace:
    return SimpleNamespace(
        candidates=[
            SimpleNamespace(
                content=SimpleNamespace(parts=list(parts)),
                finish_reason=SimpleNamespace(name=finish),
            )
        ]
    )


def _text_part(text: str) -> SimpleNamespace:
    return SimpleNamespace(function_call=SimpleNamespace(name="", args={}), text=text)


def _call_part(name: str, args: Dict[str, Any]) -> SimpleNamespace:
    return SimpleNamespace(function_call=SimpleNamespace(name=name, args=args), text="")


@pytest.fixture
def mock_genai():
    genai = MagicMock()
    genai.protos = _protos()
    session = MagicMock()
    session.send_message_async = AsyncMock(return_value=_response(_text_part("hello")))
    genai.GenerativeModel.return_value.start_chat.return_value = session
    google = MagicMock()
    google.generativeai = genai
    with patch.dict(sys.modules, {"google": google, "google.generativeai": genai}):
        yield genai


@pytest.fixture
def session(mock_genai):
    return mock_genai.GenerativeModel.return_value.start_chat.return_value


@pytest.fixture
def provider(mock_genai) -> GeminiProvider:
    return GeminiProvider(
        LLMConfig(
            model="gemini-2.0-flash-001",
            api_key="test-key",
            temperature=0.2,
            system_instruction="Be brief.",
            retry_config=RetryConfig(max_retries=0),
        )
    )


def _declaration(name: str, properties: Dict[str, Any]) -> FunctionDeclaration:
    return FunctionDeclaration(
        name=name,
        description=f"{name} tool",
        parameters=convert_parameters(properties, list(properties)),
    )


class TestProviderSetup:
    """Tests for model construction."""

    def test_configures_api_key(self, provider, mock_genai):
        mock_genai.configure.assert_called_once_with(api_key="test-key")

    def test_start_chat_without_tools(self, provider, mock_genai):
        history = [
            ChatMessage(MessageRole.USER, "Hi"),
            ChatMessage(MessageRole.ASSISTANT, "Hello"),
        ]

        provider.start_chat(history, None)

        args, kwargs = mock_genai.GenerativeModel.call_args
        assert args == ("gemini-2.0-flash-001",)
        assert kwargs["tools"] is None
        assert kwargs["generation_config"] == {"temperature": 0.2}
        assert kwargs["system_instruction"] == "Be brief."
        mock_genai.GenerativeModel.return_value.start_chat.assert_called_once_with(
            history=[
                {"role": "user", "parts": ["Hi"]},
                {"role": "model", "parts": ["Hello"]},
            ]
        )

    def test_declarations_become_one_tool(self, provider, mock_genai):
        provider.start_chat(
            [],
            [
                _declaration("calc__add", {"a": {"type": "number"}, "b": {"type": "number"}}),
                _declaration("clock__now", {}),
            ],
        )

        (tool,) = mock_genai.GenerativeModel.call_args.kwargs["tools"]
        add, now = tool.function_declarations
        assert add.name == "calc__add"
        assert add.parameters.type == "OBJECT"
        assert add.parameters.properties["a"].type == "NUMBER"
        assert add.parameters.required == ["a", "b"]
        assert "parameters" not in now.kwargs

    def test_enum_and_array_schemas(self, provider, mock_genai):
        provider.start_chat(
            [],
            [
                _declaration(
                    "weather__forecast",
                    {
                        "unit": {"type": "string", "enum": ["c", "f"]},
                        "days": {"type": "array", "items": {"type": "integer"}},
                    },
                )
            ],
        )

        (tool,) = mock_genai.GenerativeModel.call_args.kwargs["tools"]
        schema = tool.function_declarations[0].parameters
        assert schema.properties["unit"].enum == ["c", "f"]
        assert schema.properties["unit"].format == "enum"
        assert schema.properties["days"].items.type == "INTEGER"


class TestChat:
    """Tests for sending messages and function results."""

    @pytest.mark.asyncio
    async def test_send_message(self, provider, session):
        chat = provider.start_chat([], None)

        turn = await chat.send_message("Hello?")

        session.send_message_async.assert_awaited_once_with("Hello?")
        assert turn.text == "hello"
        assert turn.finish_reason == "STOP"
        assert not turn.has_function_calls

    @pytest.mark.asyncio
    async def test_function_results_are_sent_as_parts(self, provider, session):
        chat = provider.start_chat([], None)

        await chat.send_function_results(
            [
                FunctionResult("calc__add", {"result": "4"}),
                FunctionResult("calc__nope", {"error": "Unknown tool: calc__nope"}),
            ]
        )

        (content,), _ = session.send_message_async.call_args
        assert content.role == "user"
        responses = [part.function_response for part in content.parts]
        assert [(r.name, r.response) for r in responses] == [
            ("calc__add", {"result": "4"}),
            ("calc__nope", {"error": "Unknown tool: calc__nope"}),
        ]

    @pytest.mark.asyncio
    async def test_sdk_errors_are_translated(self, provider, session):
        session.send_message_async.side_effect = Exception("400 Invalid argument: bad schema")
        chat = provider.start_chat([], None)

        with pytest.raises(InvalidRequestError):
            await chat.send_message("hi")


class TestParseResponse:
    """Tests for parse_response."""

    def test_function_calls_and_text(self):
        turn = parse_response(
            _response(
                _text_part("Let me add. "),
                _call_part("calc__add", {"a": 2.0, "b": 2.5}),
                _call_part("calc__add", {"a": 1.0, "b": 1.0}),
            )
        )

        assert turn.text == "Let me add. "
        assert [(c.name, c.args) for c in turn.function_calls] == [
            ("calc__add", {"a": 2, "b": 2.5}),
            ("calc__add", {"a": 1, "b": 1}),
        ]

    def test_no_candidates(self):
        turn = parse_response(SimpleNamespace(candidates=[]))
        assert turn.text == ""
        assert not turn.has_function_calls


class TestHelpers:
    """Tests for value conversion and error translation."""

    def test_to_plain(self):
        assert _to_plain({"n": 3.0, "tags": ("a", "b"), "nested": {"x": 0.5}}) == {
            "n": 3,
            "tags": ["a", "b"],
            "nested": {"x": 0.5},
        }
        assert _to_plain("text") == "text"
        assert _to_plain(True) is True

    @pytest.mark.parametrize(
        "error, expected",
        [
            (Exception("429 Resource exhausted"), RateLimitError),
            (Exception("Quota exceeded for model"), RateLimitError),
            (Exception("403 Permission denied"), AuthenticationError),
            (Exception("API key not valid"), AuthenticationError),
            (Exception("400 Invalid argument"), InvalidRequestError),
            (Exception("500 Internal"), LLMProviderError),
        ],
    )
    def test_translate_error(self, error, expected):
        translated = _translate_error(error)
        assert type(translated) is expected
        assert translated.provider == "gemini"
