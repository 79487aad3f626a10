"""Anthropic (Claude) provider adapter."""

from __future__ import annotations

import contextlib
import time
from typing import TYPE_CHECKING, Any

import anthropic

from meshpilot.core.errors import (
    ConfigError,
    ModelNotFoundError,
    ProviderAuthError,
    ProviderOverloadedError,
    ProviderRateLimitError,
    ProviderTimeoutError,
)
from meshpilot.providers.base import ModelResponse, TokenUsage
from meshpilot.tools.base import ToolCall

if TYPE_CHECKING:
    from meshpilot.providers.base import ConversationMessage
    from meshpilot.tools.base import ToolDefinition

PROVIDER_ID = "anthropic"


def _map_error(e: anthropic.APIError) -> Exception:
    """Map Anthropic SDK errors to the meshpilot error hierarchy."""
    if isinstance(e, anthropic.AuthenticationError):
        return ProviderAuthError(PROVIDER_ID, str(e))
    if isinstance(e, anthropic.RateLimitError):
        retry_after = None
        if hasattr(e, "response") and e.response is not None:
            raw = e.response.headers.get("retry-after")
            if raw is not None:
                with contextlib.suppress(ValueError):
                    retry_after = float(raw)
        return ProviderRateLimitError(PROVIDER_ID, retry_after=retry_after)
    if isinstance(e, anthropic.APITimeoutError):
        return ProviderTimeoutError(PROVIDER_ID, str(e))
    if isinstance(e, anthropic.InternalServerError):
        return ProviderOverloadedError(PROVIDER_ID, str(e))
    if isinstance(e, anthropic.NotFoundError):
        return ModelNotFoundError(PROVIDER_ID, str(e))
    # Fallback for unknown API errors
    return ProviderOverloadedError(PROVIDER_ID, str(e))


def _build_messages(
    messages: list[ConversationMessage],
) -> tuple[str | anthropic.NotGiven, list[dict[str, str]]]:
    """Split messages into Anthropic's system + messages format.

    Consecutive messages with the same role are merged, since the API
    expects user and assistant turns to alternate.
    """
    system: str | anthropic.NotGiven = anthropic.NOT_GIVEN
    api_messages: list[dict[str, str]] = []

    for msg in messages:
        if msg.role == "system":
            system = msg.content
        elif api_messages and api_messages[-1]["role"] == msg.role:
            api_messages[-1]["content"] += "\n\n" + msg.content
        else:
            api_messages.append({"role": msg.role, "content": msg.content})

    return system, api_messages


def _build_tools(tools: list[ToolDefinition]) -> list[dict[str, Any]]:
    return [
        {
            "name": t.name,
            "description": t.description,
            "input_schema": t.parameters_schema,
        }
        for t in tools
    ]


class AnthropicProvider:
    """Provider adapter for Anthropic's Claude models."""

    def __init__(
        self,
        api_key: str | None = None,
        *,
        base_url: str | None = None,
        client: anthropic.AsyncAnthropic | None = None,
    ) -> None:
        self._api_key = api_key
        self._client = client or anthropic.AsyncAnthropic(
            api_key=api_key, base_url=base_url
        )

    @property
    def provider_id(self) -> str:
        return PROVIDER_ID

    def ensure_ready(self) -> None:
        if not (self._api_key or getattr(self._client, "api_key", None)):
            msg = "Anthropic API key not configured. Set ANTHROPIC_API_KEY."
            raise ConfigError(msg)

    async def send(
        self,
        messages: list[ConversationMessage],
        model_id: str,
        *,
        tools: list[ToolDefinition] | None = None,
        max_tokens: int = 2048,
        temperature: float = 0.7,
    ) -> ModelResponse:
        system, api_messages = _build_messages(messages)

        kwargs: dict[str, Any] = {
            "model": model_id,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "system": system,
            "messages": api_messages,
        }
        if tools:
            kwargs["tools"] = _build_tools(tools)

        start = time.monotonic()
        try:
            response = await self._client.messages.create(**kwargs)
        except anthropic.APIError as e:
            raise _map_error(e) from e

        latency_ms = (time.monotonic() - start) * 1000

        # Extract text content and tool use blocks
        content = ""
        tool_calls: list[ToolCall] = []
        for block in response.content:
            if getattr(block, "type", None) == "tool_use":
                arguments = block.input if isinstance(block.input, dict) else {}
                tool_calls.append(
                    ToolCall(name=block.name, arguments=arguments, id=block.id)
                )
            elif hasattr(block, "text"):
                content = block.text

        usage = TokenUsage(
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )

        return ModelResponse(
            content=content,
            model_id=model_id,
            finish_reason=response.stop_reason or "stop",
            tool_calls=tool_calls or None,
            usage=usage,
            latency_ms=latency_ms,
            raw_response=response,
        )
