"""Mesh LLM provider.

Generates through the ``LLM_DO_GENERATE`` tool of the connection bound
to the ``LLM`` binding, so model access, keys and billing stay in the
mesh. Calls go through :class:`MeshRpcClient` like any other tool call.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from meshpilot.core.errors import ConfigError, ProviderError, RemoteToolError
from meshpilot.mesh.context import LLM_BINDING
from meshpilot.providers.base import ModelResponse, TokenUsage
from meshpilot.tools.base import ErrorResult, StructuredResult, TextResult, ToolCall

if TYPE_CHECKING:
    from meshpilot.mesh.rpc import MeshRpcClient
    from meshpilot.providers.base import ConversationMessage
    from meshpilot.tools.base import ToolDefinition

logger = logging.getLogger(__name__)

PROVIDER_ID = "mesh"
GENERATE_TOOL = "LLM_DO_GENERATE"


def _build_prompt(messages: list[ConversationMessage]) -> list[dict[str, Any]]:
    """System content stays a string, other roles become text parts."""
    prompt: list[dict[str, Any]] = []
    for msg in messages:
        if msg.role == "system":
            prompt.append({"role": "system", "content": msg.content})
        else:
            text_part = {"type": "text", "text": msg.content}
            prompt.append({"role": msg.role, "content": [text_part]})
    return prompt


def _build_tools(tools: list[ToolDefinition]) -> list[dict[str, Any]]:
    return [
        {
            "type": "function",
            "name": t.name,
            "description": t.description,
            "parameters": t.parameters_schema,
        }
        for t in tools
    ]


def _parse_arguments(part: Mapping[str, Any]) -> dict[str, Any]:
    args = part.get("args")
    if isinstance(args, Mapping):
        return dict(args)
    raw = part.get("input")
    if isinstance(raw, Mapping):
        return dict(raw)
    if isinstance(raw, str) and raw:
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Could not parse tool input for %s", part.get("toolName"))
            return {}
        if isinstance(parsed, dict):
            return parsed
    return {}


def _parse_usage(raw: Any) -> TokenUsage:
    if not isinstance(raw, Mapping):
        return TokenUsage()
    input_tokens = raw.get("inputTokens", raw.get("promptTokens", 0))
    output_tokens = raw.get("outputTokens", raw.get("completionTokens", 0))
    return TokenUsage(
        input_tokens=input_tokens if isinstance(input_tokens, int) else 0,
        output_tokens=output_tokens if isinstance(output_tokens, int) else 0,
    )


def parse_generation(value: Any, model_id: str) -> ModelResponse:
    """Decode an ``LLM_DO_GENERATE`` result into a ModelResponse."""
    if not isinstance(value, Mapping):
        text = value if isinstance(value, str) else ""
        return ModelResponse(content=text, model_id=model_id, raw_response=value)

    raw_parts = value.get("content")
    if not isinstance(raw_parts, list):
        raw_parts = []
    parts = [p for p in raw_parts if isinstance(p, Mapping)]

    text = next(
        (str(p["text"]) for p in parts if p.get("type") == "text" and p.get("text")),
        "",
    )
    if not text and isinstance(value.get("text"), str):
        text = value["text"]

    tool_calls = [
        ToolCall(
            name=str(p["toolName"]),
            arguments=_parse_arguments(p),
            id=str(p.get("toolCallId") or ""),
        )
        for p in parts
        if p.get("type") == "tool-call" and p.get("toolName")
    ]

    return ModelResponse(
        content=text,
        model_id=model_id,
        finish_reason=str(
            value.get("finishReason") or ("tool_calls" if tool_calls else "stop")
        ),
        tool_calls=tool_calls or None,
        usage=_parse_usage(value.get("usage")),
        raw_response=value,
    )


class MeshLLMProvider:
    """Provider adapter for models reachable through the mesh LLM binding."""

    def __init__(self, rpc: MeshRpcClient, *, llm_binding: str = "") -> None:
        self._rpc = rpc
        self._llm_binding = llm_binding

    @property
    def provider_id(self) -> str:
        return PROVIDER_ID

    def _connection_id(self) -> str:
        connection_id = self._llm_binding or self._rpc.context.binding(LLM_BINDING)
        if not connection_id:
            msg = (
                "LLM binding not configured. "
                "Configure the LLM binding in the mesh first."
            )
            raise ConfigError(msg)
        return connection_id

    def ensure_ready(self) -> None:
        if not self._rpc.context.has_token:
            msg = (
                "Mesh not configured: no authorization token. "
                "Configure bindings in the mesh first."
            )
            raise ConfigError(msg)
        self._connection_id()

    async def send(
        self,
        messages: list[ConversationMessage],
        model_id: str,
        *,
        tools: list[ToolDefinition] | None = None,
        max_tokens: int = 2048,
        temperature: float = 0.7,
    ) -> ModelResponse:
        connection_id = self._connection_id()

        call_options: dict[str, Any] = {
            "prompt": _build_prompt(messages),
            "maxOutputTokens": max_tokens,
            "temperature": temperature,
        }
        if tools:
            call_options["tools"] = _build_tools(tools)
            call_options["toolChoice"] = {"type": "auto"}

        logger.debug("Calling %s with %d tools", model_id, len(tools or []))
        start = time.monotonic()
        try:
            result = await self._rpc.call_tool(
                connection_id,
                GENERATE_TOOL,
                {"modelId": model_id, "callOptions": call_options},
            )
        except RemoteToolError as e:
            raise ProviderError(PROVIDER_ID, str(e)) from e
        latency_ms = (time.monotonic() - start) * 1000

        if isinstance(result, ErrorResult):
            raise ProviderError(PROVIDER_ID, result.message)
        if isinstance(result, StructuredResult):
            value: Any = result.value
        elif isinstance(result, TextResult):
            value = result.text
        else:
            msg = f"Unexpected {type(result).__name__} from {GENERATE_TOOL}"
            raise ProviderError(PROVIDER_ID, msg)

        response = parse_generation(value, model_id)
        response.latency_ms = latency_ms
        logger.debug(
            "Model %s answered: text=%s, tool_calls=%d",
            model_id,
            bool(response.content),
            len(response.tool_calls or []),
        )
        return response
