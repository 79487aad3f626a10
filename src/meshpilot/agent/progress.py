"""Progress and mode reporting.

The agent pushes human-readable progress lines and FAST/SMART mode
transitions to a :class:`ProgressSink`. Sinks belong to the
presentation layer; the agent always talks to them through
:class:`BestEffortSink`, so a failing sink never ends a run.
"""

from __future__ import annotations

import enum
import logging
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)


class AgentMode(enum.StrEnum):
    """Which phase of a run is active."""

    FAST = "FAST"
    SMART = "SMART"


@runtime_checkable
class ProgressSink(Protocol):
    """Receives progress messages and mode changes."""

    def on_progress(self, message: str) -> None: ...

    def on_mode_change(self, mode: AgentMode) -> None: ...


class NullSink:
    """Discards everything."""

    def on_progress(self, message: str) -> None:
        pass

    def on_mode_change(self, mode: AgentMode) -> None:
        pass


class CallbackSink:
    """Adapts plain callables to the sink protocol."""

    def __init__(
        self,
        on_progress: Callable[[str], None] | None = None,
        on_mode_change: Callable[[AgentMode], None] | None = None,
    ) -> None:
        self._on_progress = on_progress
        self._on_mode_change = on_mode_change

    def on_progress(self, message: str) -> None:
        if self._on_progress is not None:
            self._on_progress(message)

    def on_mode_change(self, mode: AgentMode) -> None:
        if self._on_mode_change is not None:
            self._on_mode_change(mode)


class BestEffortSink:
    """Wraps a sink; exceptions it raises are logged and dropped."""

    def __init__(self, sink: ProgressSink | None = None) -> None:
        self._sink: ProgressSink = sink if sink is not None else NullSink()

    def on_progress(self, message: str) -> None:
        try:
            self._sink.on_progress(message)
        except Exception:
            logger.warning("Progress sink failed", exc_info=True)

    def on_mode_change(self, mode: AgentMode) -> None:
        try:
            self._sink.on_mode_change(mode)
        except Exception:
            logger.warning("Mode sink failed", exc_info=True)
