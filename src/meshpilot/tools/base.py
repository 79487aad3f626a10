"""Tool protocol and data types.

Defines the ``LocalTool`` protocol that locally implemented tools must
satisfy, descriptors for local and mesh tools, the requests a router
plan makes for them, and the tagged ``ToolResult`` variants every tool
call is normalized into.
"""

from __future__ import annotations

import enum
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable


class ToolSource(enum.StrEnum):
    """Where a tool is executed."""

    LOCAL = "local"
    REMOTE = "mesh"

    @classmethod
    def parse(cls, value: object) -> ToolSource | None:
        """Map a model-supplied source string to a ToolSource, or None."""
        if not isinstance(value, str):
            return None
        normalized = value.strip().lower()
        if normalized == "local":
            return cls.LOCAL
        if normalized in ("mesh", "remote"):
            return cls.REMOTE
        return None


@dataclass(frozen=True, slots=True)
class ToolDefinition:
    """Schema definition for a tool, suitable for passing to providers."""

    name: str
    description: str
    parameters_schema: dict[str, Any]


@dataclass(frozen=True, slots=True)
class ToolDescriptor:
    """A tool known to the catalog, local or hosted on a mesh connection."""

    name: str
    description: str
    input_schema: dict[str, Any]
    source: ToolSource
    connection_id: str | None = None

    def to_definition(self) -> ToolDefinition:
        return ToolDefinition(
            name=self.name,
            description=self.description,
            parameters_schema=self.input_schema or {"type": "object", "properties": {}},
        )

    @classmethod
    def from_mesh(cls, raw: Mapping[str, Any], connection_id: str) -> ToolDescriptor:
        """Build a descriptor from a mesh tool listing entry."""
        schema = raw.get("inputSchema")
        return cls(
            name=str(raw.get("name", "")),
            description=str(raw.get("description") or ""),
            input_schema=dict(schema) if isinstance(schema, Mapping) else {},
            source=ToolSource.REMOTE,
            connection_id=connection_id,
        )


@dataclass(frozen=True, slots=True)
class ToolRequest:
    """A tool the router asks the executor to be equipped with."""

    name: str
    source: ToolSource
    connection_id: str | None = None


@dataclass(frozen=True, slots=True)
class ExecutionPlan:
    """Hand-off from the router to the executor."""

    task: str
    tools: tuple[ToolRequest, ...]
    context: str | None = None


@dataclass(frozen=True, slots=True)
class ToolCall:
    """A tool invocation requested by a model."""

    name: str
    arguments: dict[str, Any] = field(default_factory=dict)
    id: str = ""


# ─── Tool results ─────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class StructuredResult:
    """A JSON-like payload."""

    value: Any


@dataclass(frozen=True, slots=True)
class ImageResult:
    """An image payload, carried as a ``data:`` URL."""

    mime_type: str
    data_url: str


@dataclass(frozen=True, slots=True)
class TextResult:
    """Plain text that was not JSON."""

    text: str


@dataclass(frozen=True, slots=True)
class ErrorResult:
    """A tool-level failure the model should see and react to."""

    message: str
    detail: Any = None


ToolResult = StructuredResult | ImageResult | TextResult | ErrorResult


def is_error(result: ToolResult) -> bool:
    """True if *result* carries an error marker.

    Structured payloads count as errors when they are a mapping with a
    truthy ``error`` key, which is how tools in the mesh report failure
    without raising.
    """
    if isinstance(result, ErrorResult):
        return True
    if isinstance(result, StructuredResult) and isinstance(result.value, Mapping):
        return bool(result.value.get("error"))
    return False


def as_tool_result(value: Any) -> ToolResult:
    """Wrap an arbitrary local tool return value as a ToolResult."""
    if isinstance(value, (StructuredResult, ImageResult, TextResult, ErrorResult)):
        return value
    if isinstance(value, str):
        return TextResult(value)
    return StructuredResult(value)


@runtime_checkable
class LocalTool(Protocol):
    """Protocol that all local tool implementations must satisfy."""

    @property
    def name(self) -> str:
        """Unique name for this tool."""
        ...

    @property
    def description(self) -> str:
        """Human-readable description of what the tool does."""
        ...

    @property
    def parameters_schema(self) -> dict[str, Any]:
        """JSON Schema for the tool's parameters."""
        ...

    async def execute(self, **kwargs: Any) -> Any:
        """Execute the tool with the given arguments.

        Returns:
            A JSON-like value, a string, or a ToolResult.

        Raises:
            Exception: On execution failure.
        """
        ...
