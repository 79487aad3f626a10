"""LLM provider adapters."""

from meshpilot.providers.base import (
    ConversationMessage,
    ModelProvider,
    ModelResponse,
    TokenUsage,
)
from meshpilot.providers.manager import ProviderManager
from meshpilot.providers.turns import (
    EmptyTurn,
    ModelTurn,
    TextTurn,
    ToolCallTurn,
    decode_turn,
)

__all__ = [
    "ConversationMessage",
    "EmptyTurn",
    "ModelProvider",
    "ModelResponse",
    "ModelTurn",
    "ProviderManager",
    "TextTurn",
    "TokenUsage",
    "ToolCallTurn",
    "decode_turn",
]
