"""Repeat-call detectors for the router and executor loops."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Mapping


class RouterLoopGuard:
    """Counts router meta-tool calls per name.

    A planning tool may legitimately be called a few times; once a name
    has been admitted *threshold* times, later calls are refused.
    """

    def __init__(self, threshold: int = 5) -> None:
        self._threshold = threshold
        self._counts: dict[str, int] = {}

    @property
    def threshold(self) -> int:
        return self._threshold

    def admit(self, name: str) -> bool:
        """Record a call to *name*; False if it went over the threshold."""
        count = self._counts.get(name, 0) + 1
        self._counts[name] = count
        return count <= self._threshold

    def count(self, name: str) -> int:
        return self._counts.get(name, 0)


def call_signature(name: str, arguments: Mapping[str, Any]) -> str:
    """Stable signature of a call: name plus canonical JSON arguments."""
    return f"{name}:{json.dumps(arguments, sort_keys=True, default=str)}"


class ExecutorLoopGuard:
    """Detects the same call repeated back to back.

    :meth:`observe` returns True when the call makes *limit* identical
    consecutive signatures, before that call is executed.
    """

    def __init__(self, limit: int = 3) -> None:
        self._limit = limit
        self._last: str | None = None
        self._streak = 0

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def streak(self) -> int:
        return self._streak

    def observe(self, name: str, arguments: Mapping[str, Any]) -> bool:
        signature = call_signature(name, arguments)
        if signature == self._last:
            self._streak += 1
        else:
            self._last = signature
            self._streak = 1
        return self._streak >= self._limit
