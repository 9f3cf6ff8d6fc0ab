# =============================================================================
# Unit Tests — LLM Provider Adapters
# =============================================================================
#
# SDK clients are replaced with mocks and Gemini's REST calls go through an
# httpx.MockTransport, so no API keys or network access are needed.
# =============================================================================

from __future__ import annotations

import asyncio
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import anthropic
import httpx
import openai
import pytest

from econagent.services.credentials import StaticCredentialStore
from econagent.services.llm import (
    AnthropicProvider,
    ChatMessage,
    ErrorClass,
    GeminiProvider,
    OpenAICompatibleProvider,
    ToolCallRequest,
    ToolSpec,
    build_provider_chain,
    classify_error_message,
    create_provider,
)


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


_SPEC = ToolSpec(
    name="get_inegi_data",
    description="Datos INEGI",
    parameters={
        "type": "object",
        "properties": {"indicator_id": {"type": "string"}},
        "required": ["indicator_id"],
    },
)

_CALL = ToolCallRequest(id="call_1", name="get_inegi_data", arguments={"indicator_id": "444456"})

_CONVERSATION = [
    ChatMessage(role="system", content="Eres un asistente."),
    ChatMessage(role="user", content="PIB"),
    ChatMessage(role="assistant", content=None, tool_calls=(_CALL,)),
    ChatMessage(
        role="tool", content='{"success": true}', tool_call_id="call_1", name="get_inegi_data",
    ),
]


def _status_response(code: int) -> httpx.Response:
    return httpx.Response(code, request=httpx.Request("POST", "https://llm.test"))


# ---------------------------------------------------------------------------
# Test: Error classification
# ---------------------------------------------------------------------------


class TestClassifyErrorMessage:

    @pytest.mark.parametrize("message", [
        "You exceeded your current quota",
        "Rate limit reached for model",
        "Quota exceeded for metric: generate_content, limit: 0",
        "Error code: 429",
    ])
    def test_quota_signatures(self, message):
        assert classify_error_message(message) is ErrorClass.QUOTA

    def test_other(self):
        assert classify_error_message("Invalid API key provided") is ErrorClass.OTHER


# ---------------------------------------------------------------------------
# Test: OpenAI-compatible provider
# ---------------------------------------------------------------------------


def _openai_provider(create: AsyncMock) -> OpenAICompatibleProvider:
    provider = OpenAICompatibleProvider(name="groq", api_key="test", model="llama")
    provider._client = MagicMock()
    provider._client.chat.completions.create = create
    return provider


def _completion(content=None, tool_calls=None):
    message = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)], model="llama")


def _openai_tool_call(call_id, name, arguments):
    return SimpleNamespace(id=call_id, function=SimpleNamespace(name=name, arguments=arguments))


class TestOpenAICompatibleProvider:

    def test_requires_key(self):
        with pytest.raises(ValueError):
            OpenAICompatibleProvider(name="openai", api_key="", model="gpt-4o-mini")

    def test_text_answer(self):
        provider = _openai_provider(AsyncMock(return_value=_completion(content="Hola")))
        result = _run(provider.step(_CONVERSATION[:2], [_SPEC]))
        assert result.ok
        assert result.text == "Hola"
        assert result.tool_calls == []

    def test_first_tool_call_wins(self):
        calls = [
            _openai_tool_call("c1", "get_inegi_data", '{"indicator_id": "444456"}'),
            _openai_tool_call("c2", "get_inegi_data", '{"indicator_id": "1"}'),
        ]
        provider = _openai_provider(AsyncMock(return_value=_completion(tool_calls=calls)))

        result = _run(provider.step(_CONVERSATION[:2], [_SPEC]))

        assert result.tool_calls == [
            ToolCallRequest(id="c1", name="get_inegi_data", arguments={"indicator_id": "444456"}),
        ]

    def test_unparsable_arguments_are_tool_protocol(self):
        calls = [_openai_tool_call("c1", "get_inegi_data", '{"indicator_id": ')]
        provider = _openai_provider(AsyncMock(return_value=_completion(tool_calls=calls)))
        result = _run(provider.step(_CONVERSATION[:2], [_SPEC]))
        assert result.error_class is ErrorClass.TOOL_PROTOCOL

    def test_rate_limit_is_quota(self):
        error = openai.RateLimitError("Rate limit reached", response=_status_response(429), body=None)
        provider = _openai_provider(AsyncMock(side_effect=error))
        result = _run(provider.step(_CONVERSATION[:2], [_SPEC]))
        assert result.error_class is ErrorClass.QUOTA

    def test_groq_tool_use_failed_is_tool_protocol(self):
        error = openai.BadRequestError(
            "Error code: 400 - {'error': {'code': 'tool_use_failed'}}",
            response=_status_response(400), body=None,
        )
        provider = _openai_provider(AsyncMock(side_effect=error))
        result = _run(provider.step(_CONVERSATION[:2], [_SPEC]))
        assert result.error_class is ErrorClass.TOOL_PROTOCOL

    def test_auth_error_is_other(self):
        error = openai.AuthenticationError(
            "Invalid API key", response=_status_response(401), body=None,
        )
        provider = _openai_provider(AsyncMock(side_effect=error))
        result = _run(provider.step(_CONVERSATION[:2], [_SPEC]))
        assert result.error_class is ErrorClass.OTHER
        assert "Invalid API key" in result.error_message

    def test_wire_format(self):
        create = AsyncMock(return_value=_completion(content="ok"))
        provider = _openai_provider(create)

        _run(provider.step(_CONVERSATION, [_SPEC]))

        kwargs = create.call_args.kwargs
        assert kwargs["tool_choice"] == "auto"
        assert kwargs["tools"][0]["function"]["name"] == "get_inegi_data"
        assistant, tool = kwargs["messages"][2], kwargs["messages"][3]
        assert json.loads(assistant["tool_calls"][0]["function"]["arguments"]) == {
            "indicator_id": "444456",
        }
        assert tool == {"role": "tool", "tool_call_id": "call_1", "content": '{"success": true}'}

    def test_no_tools_omits_tool_choice(self):
        create = AsyncMock(return_value=_completion(content="ok"))
        _run(_openai_provider(create).step(_CONVERSATION, None))
        assert "tools" not in create.call_args.kwargs
        assert "tool_choice" not in create.call_args.kwargs


# ---------------------------------------------------------------------------
# Test: Gemini provider
# ---------------------------------------------------------------------------


def _gemini(handler) -> GeminiProvider:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GeminiProvider(
        api_key="g-key", model="gemini-2.0-flash",
        base_url="https://gemini.test/v1beta", client=client,
    )


class TestGeminiProvider:

    def test_function_call_parsed(self):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            seen["url"] = str(request.url)
            return httpx.Response(200, json={"candidates": [{"content": {"parts": [
                {"functionCall": {"name": "get_inegi_data", "args": {"indicator_id": "444456"}}},
            ]}}]})

        result = _run(_gemini(handler).step(_CONVERSATION[:2], [_SPEC]))

        assert result.tool_calls[0].name == "get_inegi_data"
        assert result.tool_calls[0].arguments == {"indicator_id": "444456"}
        assert "models/gemini-2.0-flash:generateContent" in seen["url"]
        assert seen["body"]["systemInstruction"]["parts"][0]["text"] == "Eres un asistente."
        assert seen["body"]["tools"][0]["functionDeclarations"][0]["name"] == "get_inegi_data"

    def test_tool_result_becomes_function_response(self):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": "ok"}]}}]})

        _run(_gemini(handler).step(_CONVERSATION, [_SPEC]))

        contents = seen["body"]["contents"]
        assert contents[1]["role"] == "model"
        assert contents[1]["parts"][0]["functionCall"]["name"] == "get_inegi_data"
        assert contents[2]["parts"][0]["functionResponse"] == {
            "name": "get_inegi_data", "response": {"success": True},
        }

    def test_text_only_call_flattens_tool_turns(self):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": "ok"}]}}]})

        result = _run(_gemini(handler).step(_CONVERSATION, None))

        assert result.text == "ok"
        assert "tools" not in seen["body"]
        encoded = json.dumps(seen["body"])
        assert "functionCall" not in encoded
        assert "functionResponse" not in encoded

    def test_429_is_quota(self):
        def handler(request):
            return httpx.Response(429, json={"error": {"message": "Resource has been exhausted"}})

        result = _run(_gemini(handler).step(_CONVERSATION[:2], [_SPEC]))
        assert result.error_class is ErrorClass.QUOTA

    def test_quota_wording_in_400(self):
        def handler(request):
            return httpx.Response(400, json={"error": {"message": "Quota exceeded, limit: 0"}})

        result = _run(_gemini(handler).step(_CONVERSATION[:2], [_SPEC]))
        assert result.error_class is ErrorClass.QUOTA

    def test_malformed_function_call(self):
        def handler(request):
            return httpx.Response(200, json={"candidates": [{"finishReason": "MALFORMED_FUNCTION_CALL"}]})

        result = _run(_gemini(handler).step(_CONVERSATION[:2], [_SPEC]))
        assert result.error_class is ErrorClass.TOOL_PROTOCOL

    def test_transport_failure_is_other(self):
        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        result = _run(_gemini(handler).step(_CONVERSATION[:2], [_SPEC]))
        assert result.error_class is ErrorClass.OTHER


# ---------------------------------------------------------------------------
# Test: Anthropic provider
# ---------------------------------------------------------------------------


def _anthropic_provider(create: AsyncMock) -> AnthropicProvider:
    provider = AnthropicProvider(api_key="test", model="claude")
    provider._client = MagicMock()
    provider._client.messages.create = create
    return provider


class TestAnthropicProvider:

    def test_tool_use_block_parsed(self):
        response = SimpleNamespace(
            content=[
                SimpleNamespace(type="text", text="Consulto INEGI."),
                SimpleNamespace(
                    type="tool_use", id="tu_1", name="get_inegi_data",
                    input={"indicator_id": "444456"},
                ),
            ],
            model="claude",
        )
        create = AsyncMock(return_value=response)

        result = _run(_anthropic_provider(create).step(_CONVERSATION[:2], [_SPEC]))

        assert result.text == "Consulto INEGI."
        assert result.tool_calls == [
            ToolCallRequest(id="tu_1", name="get_inegi_data", arguments={"indicator_id": "444456"}),
        ]
        kwargs = create.call_args.kwargs
        assert kwargs["system"] == "Eres un asistente."
        assert kwargs["tools"][0]["input_schema"] == _SPEC.parameters
        assert all(m["role"] != "system" for m in kwargs["messages"])

    def test_tool_result_block(self):
        response = SimpleNamespace(content=[SimpleNamespace(type="text", text="ok")], model="claude")
        create = AsyncMock(return_value=response)

        _run(_anthropic_provider(create).step(_CONVERSATION, [_SPEC]))

        messages = create.call_args.kwargs["messages"]
        assert messages[1]["content"][0]["type"] == "tool_use"
        assert messages[2]["content"][0] == {
            "type": "tool_result", "tool_use_id": "call_1", "content": '{"success": true}',
        }

    def test_text_only_call_keeps_roles_alternating(self):
        response = SimpleNamespace(content=[SimpleNamespace(type="text", text="ok")], model="claude")
        create = AsyncMock(return_value=response)
        conversation = [*_CONVERSATION, ChatMessage(role="user", content="Describe la tabla.")]

        _run(_anthropic_provider(create).step(conversation, None))

        messages = create.call_args.kwargs["messages"]
        assert [m["role"] for m in messages] == ["user", "assistant", "user"]
        assert messages[2]["content"].startswith("Resultado de get_inegi_data:")
        assert messages[2]["content"].endswith("Describe la tabla.")
        assert "tools" not in create.call_args.kwargs

    def test_rate_limit_is_quota(self):
        error = anthropic.RateLimitError("rate_limit_error", response=_status_response(429), body=None)
        result = _run(_anthropic_provider(AsyncMock(side_effect=error)).step(_CONVERSATION[:2], [_SPEC]))
        assert result.error_class is ErrorClass.QUOTA

    def test_overloaded_is_quota(self):
        error = anthropic.APIStatusError("Overloaded", response=_status_response(529), body=None)
        result = _run(_anthropic_provider(AsyncMock(side_effect=error)).step(_CONVERSATION[:2], [_SPEC]))
        assert result.error_class is ErrorClass.QUOTA


# ---------------------------------------------------------------------------
# Test: Factory / provider chain
# ---------------------------------------------------------------------------


class TestProviderChain:

    def test_unknown_provider(self):
        with pytest.raises(ValueError, match="Unknown provider"):
            create_provider("mistral", "key")

    def test_chain_follows_priority_and_skips_missing(self):
        credentials = StaticCredentialStore({
            ("u1", "anthropic"): "a-key",
            ("u1", "groq"): "g-key",
        })
        chain = _run(build_provider_chain(
            "u1", credentials, priority=["groq", "openai", "google", "anthropic"],
        ))
        assert [p.name for p in chain] == ["groq", "anthropic"]

    def test_empty_chain(self):
        assert _run(build_provider_chain("u1", StaticCredentialStore({}))) == []
