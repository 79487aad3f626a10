"""Central argument validation for tool calls.

Every executor tool call goes through :func:`validate_arguments` once,
before dispatch. Only the ``required`` list of the tool's JSON schema
is enforced; type checking is left to the tool itself.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from meshpilot.core.errors import ToolValidationError


@dataclass(frozen=True, slots=True)
class ValidatedArguments:
    """Arguments that passed validation, in the order the model sent them."""

    tool_name: str
    values: dict[str, Any]


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return isinstance(value, (list, dict)) and not value


def required_fields(schema: Mapping[str, Any] | None) -> list[str]:
    """Return the ``required`` field names declared by *schema*."""
    if not schema:
        return []
    required = schema.get("required")
    if not isinstance(required, list):
        return []
    return [str(name) for name in required]


def validate_arguments(
    tool_name: str,
    schema: Mapping[str, Any] | None,
    arguments: Mapping[str, Any] | None,
) -> ValidatedArguments:
    """Check that every required field is present and non-empty.

    Raises:
        ToolValidationError: Listing the missing or empty fields.
    """
    values = dict(arguments or {})
    missing = [
        name for name in required_fields(schema) if _is_empty(values.get(name))
    ]
    if missing:
        raise ToolValidationError(tool_name, missing)
    return ValidatedArguments(tool_name=tool_name, values=values)
