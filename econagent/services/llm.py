# =============================================================================
# Multi-Provider LLM Abstraction — Tool-Calling Backends
# =============================================================================
#
# Provides one interface for "run one planning step": send the conversation
# and the tool declarations, get back either text, a tool call, or a
# classified error. Each backend translates the provider-neutral
# conversation into its own wire shape:
#
#   OpenAICompatibleProvider — chat.completions with `tools` (OpenAI, Groq)
#   GeminiProvider           — generateContent REST with functionDeclarations
#   AnthropicProvider        — Messages API with tool_use / tool_result blocks
#
# step() never raises for provider-side failures. It returns a StepResult
# whose `error_class` is:
#   QUOTA         — HTTP 429, rate-limit exceptions, quota wording in the
#                   error text; the caller moves on to the next provider
#   TOOL_PROTOCOL — the model produced a tool call whose arguments cannot be
#                   parsed; the caller may retry the same provider
#   OTHER         — anything else (auth, bad request, timeout, 5xx)
#
# Only the first tool call of a response is honoured; additional calls are
# dropped and logged.
#
# ARCHITECTURE:
#   LLMProvider (Protocol)
#   ├── OpenAICompatibleProvider
#   ├── GeminiProvider
#   ├── AnthropicProvider
#   ├── create_provider()        — name + key → provider instance
#   └── build_provider_chain()   — user credentials → ordered providers
# =============================================================================

from __future__ import annotations

import enum
import json
import logging
import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

import anthropic
import httpx
import openai

from econagent.config import settings
from econagent.services.credentials import CredentialStore
from econagent.services.http import get_http_client

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


class ErrorClass(str, enum.Enum):
    QUOTA = "quota"
    TOOL_PROTOCOL = "tool_protocol"
    OTHER = "other"


@dataclass(frozen=True)
class ToolSpec:
    """A function declaration as the LLM sees it (JSON-schema parameters)."""

    name: str
    description: str
    parameters: dict[str, Any]


@dataclass(frozen=True)
class ToolCallRequest:
    """A tool invocation emitted by the model, arguments already decoded."""

    id: str
    name: str
    arguments: dict[str, Any]


@dataclass(frozen=True)
class ChatMessage:
    """
    Provider-neutral conversation message.

    Roles: "system", "user", "assistant" (may carry tool_calls), "tool"
    (carries tool_call_id + name, content is a JSON string).
    """

    role: str
    content: str | None = None
    tool_calls: tuple[ToolCallRequest, ...] = ()
    tool_call_id: str | None = None
    name: str | None = None


@dataclass
class StepResult:
    """Outcome of one provider call."""

    text: str | None = None
    tool_calls: list[ToolCallRequest] = field(default_factory=list)
    error_class: ErrorClass | None = None
    error_message: str | None = None
    model: str = ""

    @property
    def ok(self) -> bool:
        return self.error_class is None


# ---------------------------------------------------------------------------
# Error Classification
# ---------------------------------------------------------------------------

_QUOTA_MARKERS = ("quota", "rate limit", "rate_limit", "exceeded", "limit: 0", "429")


def classify_error_message(message: str) -> ErrorClass:
    """QUOTA when the text carries a capacity/rate-limit signature."""
    lowered = message.lower()
    if any(marker in lowered for marker in _QUOTA_MARKERS):
        return ErrorClass.QUOTA
    return ErrorClass.OTHER


def _failure(error_class: ErrorClass, message: str, model: str) -> StepResult:
    return StepResult(error_class=error_class, error_message=message, model=model)


def _decode_arguments(raw: Any) -> dict[str, Any] | None:
    """Decode tool-call arguments; None when they are not a JSON object."""
    if isinstance(raw, dict):
        return raw
    if raw is None or raw == "":
        return {}
    try:
        decoded = json.loads(raw)
    except (TypeError, json.JSONDecodeError):
        return None
    return decoded if isinstance(decoded, dict) else None


def _flatten_tool_turns(conversation: Sequence[ChatMessage]) -> list[ChatMessage]:
    """
    Rewrite tool-call turns as plain text.

    Gemini and Anthropic refuse function-call history in a request that
    declares no tools, which is the case for the final narrative call.
    """
    flat: list[ChatMessage] = []
    for message in conversation:
        if message.role == "tool":
            flat.append(ChatMessage(
                role="user",
                content=f"Resultado de {message.name}: {message.content or ''}",
            ))
        elif message.tool_calls:
            calls = "; ".join(
                f"{c.name}({json.dumps(c.arguments, ensure_ascii=False)})"
                for c in message.tool_calls
            )
            text = f"{message.content}\n" if message.content else ""
            flat.append(ChatMessage(role="assistant", content=f"{text}Llamé a {calls}"))
        else:
            flat.append(message)

    # Flattened tool results are user turns; keep roles alternating.
    merged: list[ChatMessage] = []
    for message in flat:
        previous = merged[-1] if merged else None
        if previous and previous.role == "user" and message.role == "user":
            merged[-1] = ChatMessage(
                role="user", content=f"{previous.content or ''}\n\n{message.content or ''}",
            )
        else:
            merged.append(message)
    return merged


def _first_call(calls: list[ToolCallRequest], provider: str) -> list[ToolCallRequest]:
    if len(calls) > 1:
        logger.info(
            "[LLM] %s returned %d tool calls; honouring only '%s'",
            provider, len(calls), calls[0].name,
        )
    return calls[:1]


# ---------------------------------------------------------------------------
# Protocol Definition
# ---------------------------------------------------------------------------


class LLMProvider(Protocol):
    """One tool-calling LLM backend."""

    name: str

    async def step(
        self,
        conversation: Sequence[ChatMessage],
        tools: Sequence[ToolSpec] | None = None,
    ) -> StepResult:
        """
        Run one model call over the conversation.

        Args:
            conversation: Full message history, system message first.
            tools: Tool declarations to offer; None means "answer in text".

        Returns:
            StepResult with text and/or at most one tool call, or an
            error_class on failure.
        """
        ...


# ---------------------------------------------------------------------------
# Implementation 1: OpenAI-Compatible (OpenAI, Groq)
# ---------------------------------------------------------------------------


class OpenAICompatibleProvider:
    """
    Chat-completions backend for any OpenAI-compatible API.

    The SDK's own retries are disabled: a 429 must reach the orchestrator
    immediately so it can fall through to the next provider.
    """

    def __init__(
        self,
        name: str,
        api_key: str,
        model: str,
        base_url: str | None = None,
    ) -> None:
        if not api_key:
            raise ValueError(f"No API key configured for provider '{name}'")

        client_kwargs: dict = {
            "api_key": api_key,
            "timeout": settings.llm_timeout_seconds,
            "max_retries": 0,
        }
        if base_url:
            client_kwargs["base_url"] = base_url

        self.name = name
        self._client = openai.AsyncOpenAI(**client_kwargs)
        self._model = model

        logger.info(
            "Initialized OpenAICompatibleProvider %s (model=%s, base_url=%s)",
            name, model, base_url or "https://api.openai.com/v1",
        )

    async def step(
        self,
        conversation: Sequence[ChatMessage],
        tools: Sequence[ToolSpec] | None = None,
    ) -> StepResult:
        kwargs: dict = {
            "model": self._model,
            "messages": [self._to_wire(m) for m in conversation],
            "temperature": settings.llm_temperature,
            "max_tokens": settings.llm_max_tokens,
        }
        if tools:
            kwargs["tools"] = [
                {
                    "type": "function",
                    "function": {
                        "name": t.name,
                        "description": t.description,
                        "parameters": t.parameters,
                    },
                }
                for t in tools
            ]
            kwargs["tool_choice"] = "auto"

        logger.info("[LLM] Calling %s with model %s", self.name, self._model)

        try:
            response = await self._client.chat.completions.create(**kwargs)
        except openai.RateLimitError as e:
            return _failure(ErrorClass.QUOTA, str(e), self._model)
        except openai.APIStatusError as e:
            return _failure(self._classify_status_error(e), str(e), self._model)
        except openai.OpenAIError as e:
            return _failure(ErrorClass.OTHER, str(e), self._model)

        if not response.choices:
            return _failure(ErrorClass.OTHER, "Empty choices in response", self._model)

        message = response.choices[0].message
        calls: list[ToolCallRequest] = []
        for tc in message.tool_calls or []:
            arguments = _decode_arguments(tc.function.arguments)
            if arguments is None:
                return _failure(
                    ErrorClass.TOOL_PROTOCOL,
                    f"Unparsable arguments for tool '{tc.function.name}'",
                    self._model,
                )
            calls.append(ToolCallRequest(
                id=tc.id, name=tc.function.name, arguments=arguments,
            ))

        logger.info(
            "[LLM] %s response: has_content=%s tool_calls=%d",
            self.name, bool(message.content), len(calls),
        )
        return StepResult(
            text=message.content or None,
            tool_calls=_first_call(calls, self.name),
            model=response.model or self._model,
        )

    @staticmethod
    def _classify_status_error(error: openai.APIStatusError) -> ErrorClass:
        if error.status_code == 429:
            return ErrorClass.QUOTA
        # Groq rejects generations whose tool call it could not parse.
        if "tool_use_failed" in str(error):
            return ErrorClass.TOOL_PROTOCOL
        return classify_error_message(str(error))

    @staticmethod
    def _to_wire(message: ChatMessage) -> dict:
        if message.role == "tool":
            return {
                "role": "tool",
                "tool_call_id": message.tool_call_id,
                "content": message.content or "",
            }
        wire: dict = {"role": message.role, "content": message.content}
        if message.tool_calls:
            wire["tool_calls"] = [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {
                        "name": call.name,
                        "arguments": json.dumps(call.arguments, ensure_ascii=False),
                    },
                }
                for call in message.tool_calls
            ]
        return wire


# ---------------------------------------------------------------------------
# Implementation 2: Google Gemini (REST)
# ---------------------------------------------------------------------------


class GeminiProvider:
    """
    Gemini generateContent backend over plain HTTP.

    KEY API DIFFERENCES: the system prompt goes in `systemInstruction`, the
    assistant role is called "model", and tool results are sent back as
    `functionResponse` parts whose payload must be a JSON object.
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("No API key configured for provider 'google'")

        self.name = "google"
        self._api_key = api_key
        self._model = model
        self._base_url = base_url.rstrip("/")
        self._client = client

        logger.info("Initialized GeminiProvider (model=%s)", model)

    async def step(
        self,
        conversation: Sequence[ChatMessage],
        tools: Sequence[ToolSpec] | None = None,
    ) -> StepResult:
        if not tools:
            conversation = _flatten_tool_turns(conversation)

        body: dict = {
            "contents": [
                self._to_wire(m) for m in conversation if m.role != "system"
            ],
            "generationConfig": {
                "temperature": settings.llm_temperature,
                "maxOutputTokens": settings.llm_max_tokens,
            },
        }
        system = next((m.content for m in conversation if m.role == "system"), None)
        if system:
            body["systemInstruction"] = {"parts": [{"text": system}]}
        if tools:
            body["tools"] = [{
                "functionDeclarations": [
                    {
                        "name": t.name,
                        "description": t.description,
                        "parameters": t.parameters,
                    }
                    for t in tools
                ],
            }]

        url = f"{self._base_url}/models/{self._model}:generateContent"
        logger.info("[LLM] Calling google with model %s", self._model)

        http = self._client or get_http_client()
        try:
            response = await http.post(
                url,
                params={"key": self._api_key},
                json=body,
                timeout=settings.llm_timeout_seconds,
            )
        except httpx.HTTPError as e:
            return _failure(ErrorClass.OTHER, f"Gemini request failed: {e}", self._model)

        try:
            data = response.json()
        except ValueError:
            data = {}

        if response.status_code >= 400:
            message = (data.get("error") or {}).get("message") or (
                f"API error: {response.status_code}"
            )
            if response.status_code == 429:
                return _failure(ErrorClass.QUOTA, message, self._model)
            return _failure(classify_error_message(message), message, self._model)

        candidates = data.get("candidates") or []
        if not candidates:
            return _failure(ErrorClass.OTHER, "Gemini returned no candidates", self._model)

        candidate = candidates[0]
        if candidate.get("finishReason") == "MALFORMED_FUNCTION_CALL":
            return _failure(
                ErrorClass.TOOL_PROTOCOL, "Gemini emitted a malformed function call",
                self._model,
            )

        parts = (candidate.get("content") or {}).get("parts") or []
        calls: list[ToolCallRequest] = []
        texts: list[str] = []
        for part in parts:
            if "functionCall" in part:
                fc = part["functionCall"]
                arguments = _decode_arguments(fc.get("args"))
                if arguments is None or not fc.get("name"):
                    return _failure(
                        ErrorClass.TOOL_PROTOCOL,
                        "Gemini function call without usable name/args",
                        self._model,
                    )
                calls.append(ToolCallRequest(
                    id=f"call_{uuid.uuid4().hex[:12]}",
                    name=fc["name"],
                    arguments=arguments,
                ))
            elif part.get("text"):
                texts.append(part["text"])

        logger.info(
            "[LLM] google response: has_content=%s tool_calls=%d",
            bool(texts), len(calls),
        )
        return StepResult(
            text="".join(texts) or None,
            tool_calls=_first_call(calls, self.name),
            model=self._model,
        )

    @staticmethod
    def _to_wire(message: ChatMessage) -> dict:
        if message.role == "tool":
            try:
                payload = json.loads(message.content or "{}")
            except json.JSONDecodeError:
                payload = message.content
            if not isinstance(payload, dict):
                payload = {"result": payload}
            return {
                "role": "user",
                "parts": [{
                    "functionResponse": {"name": message.name, "response": payload},
                }],
            }

        role = "model" if message.role == "assistant" else "user"
        parts: list[dict] = []
        if message.content:
            parts.append({"text": message.content})
        for call in message.tool_calls:
            parts.append({"functionCall": {"name": call.name, "args": call.arguments}})
        if not parts:
            parts.append({"text": ""})
        return {"role": role, "parts": parts}


# ---------------------------------------------------------------------------
# Implementation 3: Anthropic (Claude)
# ---------------------------------------------------------------------------


class AnthropicProvider:
    """
    Claude backend using the native SDK.

    KEY API DIFFERENCE: the system prompt is a top-level `system=` kwarg and
    tool results travel as `tool_result` blocks inside a user message.
    """

    def __init__(self, api_key: str, model: str) -> None:
        if not api_key:
            raise ValueError("No API key configured for provider 'anthropic'")

        self.name = "anthropic"
        self._client = anthropic.AsyncAnthropic(
            api_key=api_key,
            timeout=settings.llm_timeout_seconds,
            max_retries=0,
        )
        self._model = model

        logger.info("Initialized AnthropicProvider (model=%s)", model)

    async def step(
        self,
        conversation: Sequence[ChatMessage],
        tools: Sequence[ToolSpec] | None = None,
    ) -> StepResult:
        if not tools:
            conversation = _flatten_tool_turns(conversation)

        kwargs: dict = {
            "model": self._model,
            "messages": [
                self._to_wire(m) for m in conversation if m.role != "system"
            ],
            "max_tokens": settings.llm_max_tokens,
            "temperature": settings.llm_temperature,
        }
        system = next((m.content for m in conversation if m.role == "system"), None)
        if system:
            kwargs["system"] = system
        if tools:
            kwargs["tools"] = [
                {
                    "name": t.name,
                    "description": t.description,
                    "input_schema": t.parameters,
                }
                for t in tools
            ]

        logger.info("[LLM] Calling anthropic with model %s", self._model)

        try:
            response = await self._client.messages.create(**kwargs)
        except anthropic.RateLimitError as e:
            return _failure(ErrorClass.QUOTA, str(e), self._model)
        except anthropic.APIStatusError as e:
            # 529 = overloaded; capacity, not a request problem.
            if e.status_code in (429, 529):
                return _failure(ErrorClass.QUOTA, str(e), self._model)
            return _failure(classify_error_message(str(e)), str(e), self._model)
        except anthropic.AnthropicError as e:
            return _failure(ErrorClass.OTHER, str(e), self._model)

        calls: list[ToolCallRequest] = []
        texts: list[str] = []
        for block in response.content:
            if block.type == "tool_use":
                arguments = _decode_arguments(block.input)
                if arguments is None:
                    return _failure(
                        ErrorClass.TOOL_PROTOCOL,
                        f"Unparsable input for tool '{block.name}'",
                        self._model,
                    )
                calls.append(ToolCallRequest(
                    id=block.id, name=block.name, arguments=arguments,
                ))
            elif block.type == "text":
                texts.append(block.text)

        logger.info(
            "[LLM] anthropic response: has_content=%s tool_calls=%d",
            bool(texts), len(calls),
        )
        return StepResult(
            text="".join(texts) or None,
            tool_calls=_first_call(calls, self.name),
            model=response.model,
        )

    @staticmethod
    def _to_wire(message: ChatMessage) -> dict:
        if message.role == "tool":
            return {
                "role": "user",
                "content": [{
                    "type": "tool_result",
                    "tool_use_id": message.tool_call_id,
                    "content": message.content or "",
                }],
            }
        if message.role == "assistant" and message.tool_calls:
            blocks: list[dict] = []
            if message.content:
                blocks.append({"type": "text", "text": message.content})
            for call in message.tool_calls:
                blocks.append({
                    "type": "tool_use",
                    "id": call.id,
                    "name": call.name,
                    "input": call.arguments,
                })
            return {"role": "assistant", "content": blocks}
        return {"role": message.role, "content": message.content or ""}


# ---------------------------------------------------------------------------
# Factory Functions
# ---------------------------------------------------------------------------

KNOWN_PROVIDERS = ("groq", "openai", "google", "anthropic")


def create_provider(name: str, api_key: str) -> LLMProvider:
    """
    Build a provider instance for a known backend name.

    Raises:
        ValueError: Unknown provider name or empty key.
    """
    if name == "openai":
        return OpenAICompatibleProvider(
            name="openai",
            api_key=api_key,
            model=settings.openai_model,
            base_url=settings.openai_base_url,
        )
    if name == "groq":
        return OpenAICompatibleProvider(
            name="groq",
            api_key=api_key,
            model=settings.groq_model,
            base_url=settings.groq_base_url,
        )
    if name == "google":
        return GeminiProvider(
            api_key=api_key,
            model=settings.google_model,
            base_url=settings.google_base_url,
        )
    if name == "anthropic":
        return AnthropicProvider(api_key=api_key, model=settings.anthropic_model)

    raise ValueError(
        f"Unknown provider '{name}'. Supported: {list(KNOWN_PROVIDERS)}"
    )


async def build_provider_chain(
    user_id: str,
    credentials: CredentialStore,
    priority: Sequence[str] | None = None,
) -> list[LLMProvider]:
    """
    Return the providers this user can reach, in priority order.

    Providers without a credential are skipped silently.
    """
    chain: list[LLMProvider] = []
    for name in priority or settings.llm_provider_priority:
        key = await credentials.get(user_id, name)
        if not key:
            continue
        try:
            chain.append(create_provider(name, key))
        except ValueError as e:
            logger.warning("Skipping provider %s: %s", name, e)

    logger.info(
        "Provider chain for user %s: %s",
        user_id, [p.name for p in chain] or "none",
    )
    return chain
