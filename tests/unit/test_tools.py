"""Tests for tool types, argument validation and the local registry."""

from __future__ import annotations

from typing import Any

import pytest

from meshpilot.core.errors import ConfigError, RpcTransportError, ToolValidationError
from meshpilot.tools.base import (
    ErrorResult,
    ImageResult,
    LocalTool,
    StructuredResult,
    TextResult,
    ToolCall,
    ToolDescriptor,
    ToolSource,
    as_tool_result,
    is_error,
)
from meshpilot.tools.registry import LocalToolRegistry
from meshpilot.tools.validation import required_fields, validate_arguments


class EchoTool:
    """Minimal tool for registry tests."""

    def __init__(self, name: str = "ECHO", *, raises: Exception | None = None) -> None:
        self._name = name
        self._raises = raises

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return "Echo the input"

    @property
    def parameters_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {"text": {"type": "string"}},
            "required": ["text"],
        }

    async def execute(self, **kwargs: Any) -> Any:
        if self._raises is not None:
            raise self._raises
        return {"echo": kwargs.get("text")}


# ── Types ────────────────────────────────────────────────────────


class TestToolSource:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("local", ToolSource.LOCAL),
            ("LOCAL", ToolSource.LOCAL),
            ("mesh", ToolSource.REMOTE),
            (" remote ", ToolSource.REMOTE),
            ("cloud", None),
            (None, None),
        ],
    )
    def test_parse(self, raw, expected) -> None:
        assert ToolSource.parse(raw) is expected


class TestToolDescriptor:
    def test_from_mesh(self) -> None:
        raw = {
            "name": "SEND",
            "description": "Send it",
            "inputSchema": {"type": "object"},
        }
        d = ToolDescriptor.from_mesh(raw, "conn_1")
        assert d.source is ToolSource.REMOTE
        assert d.connection_id == "conn_1"
        assert d.input_schema == {"type": "object"}

    def test_from_mesh_without_schema(self) -> None:
        d = ToolDescriptor.from_mesh({"name": "PING"}, "conn_1")
        assert d.description == ""
        assert d.input_schema == {}

    def test_definition_defaults_empty_schema(self) -> None:
        d = ToolDescriptor("PING", "", {}, ToolSource.REMOTE, "c")
        schema = d.to_definition().parameters_schema
        assert schema == {"type": "object", "properties": {}}


class TestResults:
    def test_error_result_is_error(self) -> None:
        assert is_error(ErrorResult("boom"))

    def test_structured_error_key_is_error(self) -> None:
        assert is_error(StructuredResult({"error": "Connection not found"}))
        assert not is_error(StructuredResult({"error": ""}))
        assert not is_error(StructuredResult({"ok": True}))
        assert not is_error(StructuredResult(["error"]))

    def test_text_and_image_are_not_errors(self) -> None:
        assert not is_error(TextResult("error"))
        assert not is_error(ImageResult("image/png", "data:image/png;base64,AA=="))

    def test_as_tool_result(self) -> None:
        assert as_tool_result("hi") == TextResult("hi")
        assert as_tool_result({"a": 1}) == StructuredResult({"a": 1})
        err = ErrorResult("x")
        assert as_tool_result(err) is err


# ── Validation ───────────────────────────────────────────────────


class TestValidation:
    SCHEMA = {
        "type": "object",
        "properties": {"channel": {"type": "string"}, "text": {"type": "string"}},
        "required": ["channel", "text"],
    }

    def test_required_fields(self) -> None:
        assert required_fields(self.SCHEMA) == ["channel", "text"]
        assert required_fields({}) == []
        assert required_fields(None) == []
        assert required_fields({"required": "channel"}) == []

    def test_valid_arguments_pass(self) -> None:
        validated = validate_arguments(
            "SEND", self.SCHEMA, {"channel": "#a", "text": "hi"}
        )
        assert validated.values == {"channel": "#a", "text": "hi"}

    def test_missing_field(self) -> None:
        with pytest.raises(ToolValidationError) as exc:
            validate_arguments("SEND", self.SCHEMA, {"channel": "#a"})
        assert exc.value.missing == ["text"]

    def test_empty_and_blank_count_as_missing(self) -> None:
        with pytest.raises(ToolValidationError) as exc:
            validate_arguments("SEND", self.SCHEMA, {"channel": "", "text": "   "})
        assert exc.value.missing == ["channel", "text"]

    def test_none_counts_as_missing(self) -> None:
        with pytest.raises(ToolValidationError):
            validate_arguments("SEND", self.SCHEMA, {"channel": None, "text": "x"})

    def test_empty_collections_count_as_missing(self) -> None:
        schema = {"required": ["ids", "filters"]}
        with pytest.raises(ToolValidationError) as exc:
            validate_arguments("T", schema, {"ids": [], "filters": {}})
        assert exc.value.missing == ["ids", "filters"]

    def test_filled_collections_are_present(self) -> None:
        schema = {"required": ["ids", "filters"]}
        args = {"ids": ["a"], "filters": {"k": "v"}}
        assert validate_arguments("T", schema, args).values == args

    def test_falsy_non_strings_are_present(self) -> None:
        schema = {"required": ["count", "flag"]}
        validated = validate_arguments("T", schema, {"count": 0, "flag": False})
        assert validated.values == {"count": 0, "flag": False}

    def test_no_required_accepts_anything(self) -> None:
        assert validate_arguments("T", {"type": "object"}, None).values == {}


# ── Registry ─────────────────────────────────────────────────────


class TestLocalToolRegistry:
    def test_echo_tool_satisfies_protocol(self) -> None:
        assert isinstance(EchoTool(), LocalTool)

    def test_register_and_get(self) -> None:
        registry = LocalToolRegistry([EchoTool()])
        assert "ECHO" in registry
        assert len(registry) == 1
        assert registry.get("ECHO").name == "ECHO"
        assert registry.find("NOPE") is None

    def test_duplicate_rejected(self) -> None:
        registry = LocalToolRegistry([EchoTool()])
        with pytest.raises(ValueError, match="already registered"):
            registry.register(EchoTool())

    def test_get_missing_raises(self) -> None:
        with pytest.raises(KeyError):
            LocalToolRegistry().get("NOPE")

    def test_descriptors_are_local(self) -> None:
        (descriptor,) = LocalToolRegistry([EchoTool()]).list_descriptors()
        assert descriptor.source is ToolSource.LOCAL
        assert descriptor.connection_id is None
        assert descriptor.input_schema["required"] == ["text"]

    async def test_execute(self) -> None:
        registry = LocalToolRegistry([EchoTool()])
        result = await registry.execute(ToolCall("ECHO", {"text": "hi"}))
        assert result == StructuredResult({"echo": "hi"})

    async def test_execute_unknown_tool(self) -> None:
        result = await LocalToolRegistry().execute(ToolCall("NOPE"))
        assert isinstance(result, ErrorResult)
        assert "Tool not found" in result.message

    async def test_execute_failure_becomes_error_result(self) -> None:
        registry = LocalToolRegistry([EchoTool(raises=ValueError("bad path"))])
        result = await registry.execute(ToolCall("ECHO", {"text": "x"}))
        assert isinstance(result, ErrorResult)
        assert "bad path" in result.message

    async def test_transport_errors_propagate(self) -> None:
        registry = LocalToolRegistry([EchoTool(raises=RpcTransportError("c", "down"))])
        with pytest.raises(RpcTransportError):
            await registry.execute(ToolCall("ECHO", {"text": "x"}))

    async def test_config_errors_propagate(self) -> None:
        registry = LocalToolRegistry([EchoTool(raises=ConfigError("no token"))])
        with pytest.raises(ConfigError):
            await registry.execute(ToolCall("ECHO", {"text": "x"}))
