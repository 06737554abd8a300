"""LLM providers and the message types exchanged with them."""

import asyncio
import json
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator

import httpx
import litellm

from gitbuddy.exceptions import ConfigurationError, LLMAPIError, LLMError, LLMTransportError
from gitbuddy.logging import get_logger

log = get_logger(__name__)


OLLAMA_NATIVE_BASE_URL = "http://127.0.0.1:11434"

_PROVIDER_ALIASES = {
    "chatgpt": "openai",
    "gpt": "openai",
    "claude": "anthropic",
    "google": "gemini",
}

_LITELLM_PROVIDERS = {"openai", "anthropic", "gemini", "openrouter", "deepseek", "groq", "mistral"}

_API_KEY_ENV = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "openrouter": "OPENROUTER_API_KEY",
    "deepseek": "DEEPSEEK_API_KEY",
    "groq": "GROQ_API_KEY",
    "mistral": "MISTRAL_API_KEY",
}


@dataclass
class ToolCall:
    """A tool call from the LLM. Arguments stay a raw JSON string until dispatch."""

    id: str
    name: str
    arguments: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "arguments": self.arguments}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ToolCall":
        return cls(
            id=str(data.get("id", "")),
            name=str(data.get("name", "")),
            arguments=str(data.get("arguments", "")),
        )


@dataclass
class Message:
    """A message in the conversation."""

    role: str  # "system", "user", "assistant", "tool"
    content: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    tool_call_id: str | None = None
    tool_name: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"role": self.role, "content": self.content}
        if self.tool_calls:
            data["tool_calls"] = [call.to_dict() for call in self.tool_calls]
        if self.tool_call_id is not None:
            data["tool_call_id"] = self.tool_call_id
        if self.tool_name is not None:
            data["tool_name"] = self.tool_name
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Message":
        return cls(
            role=str(data["role"]),
            content=str(data.get("content") or ""),
            tool_calls=[ToolCall.from_dict(item) for item in data.get("tool_calls") or []],
            tool_call_id=data.get("tool_call_id"),
            tool_name=data.get("tool_name"),
        )


@dataclass
class ToolCallFragment:
    """One incremental piece of a streamed tool call."""

    index: int
    id: str = ""
    name: str = ""
    arguments: str = ""


@dataclass
class TokenUsage:
    """Token counters for one call or a whole session."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def add(self, other: "TokenUsage") -> None:
        self.prompt_tokens += other.prompt_tokens
        self.completion_tokens += other.completion_tokens
        self.total_tokens += other.total_tokens

    def to_dict(self) -> dict[str, int]:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "TokenUsage":
        data = data or {}
        return cls(
            prompt_tokens=int(data.get("prompt_tokens", 0) or 0),
            completion_tokens=int(data.get("completion_tokens", 0) or 0),
            total_tokens=int(data.get("total_tokens", 0) or 0),
        )


@dataclass
class StreamChunk:
    """One chunk of a streaming completion."""

    content: str = ""
    tool_calls: list[ToolCallFragment] = field(default_factory=list)
    usage: TokenUsage | None = None


@dataclass
class ToolDefinition:
    """Definition of a tool for the LLM."""

    name: str
    description: str
    parameters: dict[str, Any]  # JSON Schema


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    model: str = ""

    @abstractmethod
    def stream(
        self,
        messages: list[Message],
        tools: list[ToolDefinition] | None = None,
    ) -> AsyncIterator[StreamChunk]:
        """Stream a completion as chunks; raises LLMError subclasses on failure."""

    async def close(self) -> None:
        """Release provider resources."""
        return None


def _tool_schema(tools: list[ToolDefinition]) -> list[dict[str, Any]]:
    return [
        {
            "type": "function",
            "function": {
                "name": tool.name,
                "description": tool.description or "",
                "parameters": tool.parameters or {"type": "object", "properties": {}},
            },
        }
        for tool in tools
        if tool.name
    ]


class LiteLLMProvider(LLMProvider):
    """Hosted model provider backed by litellm."""

    def __init__(
        self,
        provider: str = "openai",
        model: str = "gpt-4o-mini",
        api_key: str | None = None,
        base_url: str | None = None,
        temperature: float = 0.2,
        max_tokens: int = 4096,
        timeout: float = 120.0,
    ):
        """Initialize litellm provider.

        Args:
            provider: Provider id or alias (openai, chatgpt, claude, google, ...)
            model: Model name, with or without the provider prefix
            api_key: API key; falls back to the provider's environment variable
            base_url: Optional API base URL
            temperature: Sampling temperature
            max_tokens: Max tokens to generate
            timeout: Request timeout in seconds
        """
        self.provider = normalize_provider(provider)
        prefix = f"{self.provider}/"
        self.model = model if model.startswith(prefix) else f"{prefix}{model}"
        self.api_key = api_key or os.environ.get(_API_KEY_ENV.get(self.provider, ""), "") or None
        self.base_url = base_url or None
        self.temperature = 1.0 if _requires_default_temperature(self.model) else temperature
        self.max_tokens = max_tokens
        self.timeout = timeout

    def _convert_messages(self, messages: list[Message]) -> list[dict[str, Any]]:
        result: list[dict[str, Any]] = []
        for msg in messages:
            if msg.role == "assistant" and msg.tool_calls:
                result.append({
                    "role": "assistant",
                    "content": msg.content or None,
                    "tool_calls": [
                        {
                            "id": call.id,
                            "type": "function",
                            "function": {"name": call.name, "arguments": call.arguments or "{}"},
                        }
                        for call in msg.tool_calls
                    ],
                })
            elif msg.role == "tool":
                result.append({
                    "role": "tool",
                    "tool_call_id": msg.tool_call_id or "",
                    "content": msg.content,
                })
            else:
                result.append({"role": msg.role, "content": msg.content})
        return result

    def _request_kwargs(
        self,
        messages: list[Message],
        tools: list[ToolDefinition] | None = None,
        stream: bool = True,
    ) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": self.model,
            "messages": self._convert_messages(messages),
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "timeout": self.timeout,
            "stream": stream,
            "drop_params": True,
        }
        if stream:
            kwargs["stream_options"] = {"include_usage": True}
        if tools:
            kwargs["tools"] = _tool_schema(tools)
            kwargs["tool_choice"] = "auto"
        if self.api_key:
            kwargs["api_key"] = self.api_key
        if self.base_url:
            kwargs["api_base"] = self.base_url
        return kwargs

    async def stream(
        self,
        messages: list[Message],
        tools: list[ToolDefinition] | None = None,
    ) -> AsyncIterator[StreamChunk]:
        """Stream a completion."""
        kwargs = self._request_kwargs(messages, tools=tools, stream=True)
        log.debug("Calling litellm", model=self.model, msg_count=len(messages))
        try:
            response = await litellm.acompletion(**kwargs)
            async for raw in response:
                yield _chunk_from_litellm(raw)
        except asyncio.CancelledError:
            raise
        except LLMError:
            raise
        except Exception as e:
            raise _map_litellm_error(e) from e


def _chunk_from_litellm(raw: Any) -> StreamChunk:
    chunk = StreamChunk()
    choices = getattr(raw, "choices", None) or []
    if choices:
        delta = getattr(choices[0], "delta", None)
        if delta is not None:
            chunk.content = getattr(delta, "content", None) or ""
            for tc in getattr(delta, "tool_calls", None) or []:
                function = getattr(tc, "function", None)
                chunk.tool_calls.append(ToolCallFragment(
                    index=int(getattr(tc, "index", 0) or 0),
                    id=getattr(tc, "id", None) or "",
                    name=(getattr(function, "name", None) or "") if function else "",
                    arguments=(getattr(function, "arguments", None) or "") if function else "",
                ))
    usage = getattr(raw, "usage", None)
    if usage:
        chunk.usage = TokenUsage(
            prompt_tokens=int(getattr(usage, "prompt_tokens", 0) or 0),
            completion_tokens=int(getattr(usage, "completion_tokens", 0) or 0),
            total_tokens=int(getattr(usage, "total_tokens", 0) or 0),
        )
    return chunk


def _map_litellm_error(error: Exception) -> LLMError:
    if isinstance(error, (litellm.Timeout, litellm.APIConnectionError)):
        return LLMTransportError(f"litellm transport error: {error}")
    status = getattr(error, "status_code", None)
    if isinstance(status, int):
        return LLMAPIError(f"litellm API error {status}: {error}", status_code=status)
    return LLMError(f"litellm call failed: {error}")


def _requires_default_temperature(model: str) -> bool:
    name = model.rsplit("/", 1)[-1].lower()
    return name.startswith("gpt-5") or name.startswith("o1") or name.startswith("o3")


class OllamaProvider(LLMProvider):
    """Direct Ollama API provider."""

    def __init__(
        self,
        model: str = "llama3.2",
        base_url: str = OLLAMA_NATIVE_BASE_URL,
        temperature: float = 0.2,
        max_tokens: int = 4096,
        api_key: str | None = None,
        timeout: float = 120.0,
    ):
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.api_key = api_key

        self.client = httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
        )

    def _convert_messages(self, messages: list[Message]) -> list[dict[str, Any]]:
        """Convert messages to Ollama format."""
        result = []
        for msg in messages:
            entry: dict[str, Any] = {"role": msg.role, "content": msg.content or ""}
            if msg.role == "assistant" and msg.tool_calls:
                entry["tool_calls"] = [
                    {"function": {"name": call.name, "arguments": _decode_arguments(call.arguments)}}
                    for call in msg.tool_calls
                ]
            elif msg.role == "tool" and msg.tool_name:
                entry["tool_name"] = msg.tool_name
            result.append(entry)
        return result

    async def stream(
        self,
        messages: list[Message],
        tools: list[ToolDefinition] | None = None,
    ) -> AsyncIterator[StreamChunk]:
        """Stream a completion over Ollama's NDJSON chat endpoint."""
        url = f"{self.base_url}/api/chat"

        body: dict[str, Any] = {
            "model": self.model,
            "messages": self._convert_messages(messages),
            "stream": True,
            "options": {
                "num_ctx": 65536,
                "temperature": self.temperature,
                "num_predict": self.max_tokens,
            },
        }
        if tools:
            body["tools"] = _tool_schema(tools)

        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        # Ollama sends whole tool calls; number them so each is its own slot.
        next_index = 0
        try:
            async with self.client.stream("POST", url, json=body, headers=headers) as response:
                if not response.is_success:
                    error_text = (await response.aread()).decode("utf-8", errors="replace")
                    raise LLMAPIError(
                        f"Ollama API error {response.status_code}: {error_text}",
                        status_code=response.status_code,
                    )

                async for line in response.aiter_lines():
                    if not line.strip():
                        continue
                    try:
                        data = json.loads(line)
                    except json.JSONDecodeError:
                        continue

                    message = data.get("message") or {}
                    chunk = StreamChunk(content=message.get("content") or "")
                    for tc in message.get("tool_calls") or []:
                        function = tc.get("function") or {}
                        arguments = function.get("arguments", {})
                        chunk.tool_calls.append(ToolCallFragment(
                            index=next_index,
                            id=str(tc.get("id") or ""),
                            name=str(function.get("name") or ""),
                            arguments=arguments if isinstance(arguments, str) else json.dumps(arguments),
                        ))
                        next_index += 1
                    if data.get("done"):
                        prompt = int(data.get("prompt_eval_count", 0) or 0)
                        completion = int(data.get("eval_count", 0) or 0)
                        chunk.usage = TokenUsage(prompt, completion, prompt + completion)
                    yield chunk
                    if data.get("done"):
                        break

        except LLMError:
            raise
        except (httpx.TimeoutException, httpx.TransportError) as e:
            raise LLMTransportError(f"Ollama streaming error: {e}") from e
        except httpx.HTTPError as e:
            raise LLMAPIError(f"Ollama HTTP error: {e}") from e

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()


def _decode_arguments(arguments: str) -> dict[str, Any]:
    try:
        value = json.loads(arguments or "{}")
    except json.JSONDecodeError:
        return {}
    return value if isinstance(value, dict) else {}


def normalize_provider(provider: str) -> str:
    """Map provider aliases to their canonical id."""
    key = (provider or "").strip().lower()
    return _PROVIDER_ALIASES.get(key, key)


def create_provider(
    provider: str = "openai",
    model: str = "gpt-4o-mini",
    api_key: str | None = None,
    base_url: str | None = None,
    temperature: float = 0.2,
    max_tokens: int = 4096,
    timeout: float = 120.0,
) -> LLMProvider:
    """Create an LLM provider.

    Args:
        provider: Provider name (ollama, openai, anthropic, gemini, ...)
        model: Model name
        api_key: Optional API key
        base_url: Optional base URL
        temperature: Default temperature
        max_tokens: Default max tokens
        timeout: Request timeout in seconds

    Returns:
        Configured LLMProvider instance
    """
    canonical = normalize_provider(provider)
    if canonical == "ollama":
        return OllamaProvider(
            model=model,
            base_url=base_url or OLLAMA_NATIVE_BASE_URL,
            temperature=temperature,
            max_tokens=max_tokens,
            api_key=api_key,
            timeout=timeout,
        )
    if canonical in _LITELLM_PROVIDERS:
        return LiteLLMProvider(
            provider=canonical,
            model=model,
            api_key=api_key,
            base_url=base_url,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout,
        )
    raise ConfigurationError(f"Provider '{provider}' not supported.")


# Global provider instance
_provider: LLMProvider | None = None


def get_provider() -> LLMProvider:
    """Get the global LLM provider instance."""
    global _provider
    if _provider is None:
        from gitbuddy.config import get_config
        cfg = get_config()
        _provider = create_provider(
            provider=cfg.model.provider,
            model=cfg.model.model,
            api_key=cfg.model.api_key or None,
            base_url=cfg.model.base_url or None,
            temperature=cfg.model.temperature,
            max_tokens=cfg.model.max_tokens,
            timeout=cfg.model.timeout,
        )
    return _provider


def set_provider(provider: LLMProvider) -> None:
    """Set the global LLM provider instance."""
    global _provider
    _provider = provider
