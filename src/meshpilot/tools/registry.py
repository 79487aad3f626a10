"""Local tool registry.

Provides registration, lookup, listing, and execution of tools that
implement the :class:`LocalTool` protocol.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from meshpilot.core.errors import ConfigError, RpcError
from meshpilot.tools.base import (
    ErrorResult,
    ToolDescriptor,
    ToolSource,
    as_tool_result,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

    from meshpilot.tools.base import LocalTool, ToolCall, ToolResult

logger = logging.getLogger(__name__)


class LocalToolRegistry:
    """Registry for the tools this process implements itself.

    Supports registration, lookup by name, listing descriptors (for the
    catalog merge view), and executing tool calls.
    """

    def __init__(self, tools: Iterable[LocalTool] = ()) -> None:
        self._tools: dict[str, LocalTool] = {}
        for tool in tools:
            self.register(tool)

    def register(self, tool: LocalTool) -> None:
        """Register a tool.

        Raises:
            ValueError: If a tool with the same name is already registered.
        """
        if tool.name in self._tools:
            msg = f"Tool already registered: {tool.name}"
            raise ValueError(msg)
        self._tools[tool.name] = tool

    def get(self, name: str) -> LocalTool:
        """Get a tool by name.

        Raises:
            KeyError: If the tool is not found.
        """
        if name not in self._tools:
            msg = f"Tool not found: {name}"
            raise KeyError(msg)
        return self._tools[name]

    def find(self, name: str) -> LocalTool | None:
        """Get a tool by name, or None."""
        return self._tools.get(name)

    def list_descriptors(self) -> list[ToolDescriptor]:
        """Return descriptors for all registered tools."""
        return [
            ToolDescriptor(
                name=t.name,
                description=t.description,
                input_schema=t.parameters_schema,
                source=ToolSource.LOCAL,
            )
            for t in self._tools.values()
        ]

    async def execute(self, tool_call: ToolCall) -> ToolResult:
        """Execute a tool call and return the result.

        If the tool is not found or execution fails, returns an
        :class:`ErrorResult`. Mesh transport and configuration errors
        raised by a tool propagate.
        """
        tool = self.find(tool_call.name)
        if tool is None:
            return ErrorResult(f"Tool not found: {tool_call.name}")
        try:
            result = await tool.execute(**tool_call.arguments)
        except (RpcError, ConfigError):
            raise
        except Exception as exc:
            logger.warning("Local tool %s failed: %s", tool_call.name, exc)
            return ErrorResult(f"Tool execution error: {exc}")
        return as_tool_result(result)

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: str) -> bool:
        return name in self._tools
