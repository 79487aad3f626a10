"""Normalized model turns.

Provider responses are decoded once into one of three shapes; the
router and executor loops match on the shape instead of probing the
raw response.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from meshpilot.providers.base import ModelResponse
    from meshpilot.tools.base import ToolCall


@dataclass(frozen=True, slots=True)
class TextTurn:
    """The model answered with text and no tool calls."""

    text: str


@dataclass(frozen=True, slots=True)
class ToolCallTurn:
    """The model asked for one or more tool calls.

    ``text`` is whatever text accompanied the calls, often empty.
    """

    calls: tuple[ToolCall, ...]
    text: str = ""


@dataclass(frozen=True, slots=True)
class EmptyTurn:
    """The model returned neither text nor tool calls."""


ModelTurn = TextTurn | ToolCallTurn | EmptyTurn


def decode_turn(response: ModelResponse) -> ModelTurn:
    """Classify a provider response."""
    if response.tool_calls:
        return ToolCallTurn(
            calls=tuple(response.tool_calls), text=response.content or ""
        )
    if response.content and response.content.strip():
        return TextTurn(response.content)
    return EmptyTurn()
