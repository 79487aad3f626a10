"""Provider adapter interface and data classes.

All model providers implement the ``ModelProvider`` protocol.
Data classes are immutable where possible (frozen dataclasses with slots).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from meshpilot.tools.base import ToolCall, ToolDefinition



@dataclass(frozen=True, slots=True)
class ConversationMessage:
    """A single message in a conversation."""

    role: str  # "system", "user", "assistant"
    content: str


@dataclass(frozen=True, slots=True)
class TokenUsage:
    """Token counts from a single model call."""

    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        """Total tokens consumed (input + output)."""
        return self.input_tokens + self.output_tokens


@dataclass(slots=True)
class ModelResponse:
    """Complete response from a model call."""

    content: str
    model_id: str
    finish_reason: str = "stop"  # "stop", "length", "tool_calls"
    tool_calls: list[ToolCall] | None = None
    usage: TokenUsage = field(default_factory=TokenUsage)
    latency_ms: float = 0.0
    raw_response: object = field(default=None, repr=False)


@runtime_checkable
class ModelProvider(Protocol):
    """Protocol that all provider adapters must satisfy.

    Implementations are stateless: they hold connection config but no
    conversation state. The agent owns every conversation.
    """

    @property
    def provider_id(self) -> str:
        """Unique identifier for this provider (e.g. 'mesh', 'anthropic')."""
        ...

    def ensure_ready(self) -> None:
        """Check credentials and bindings before the first call.

        Raises:
            ConfigError: If the provider cannot be used as configured.
        """
        ...

    async def send(
        self,
        messages: list[ConversationMessage],
        model_id: str,
        *,
        tools: list[ToolDefinition] | None = None,
        max_tokens: int = 2048,
        temperature: float = 0.7,
    ) -> ModelResponse:
        """Send a conversation and wait for the complete response.

        Args:
            messages: Conversation messages, system first.
            model_id: Model to use.
            tools: Tool definitions the model may call.
            max_tokens: Max output tokens.
            temperature: Sampling temperature.

        Raises ProviderError on failure.
        """
        ...
