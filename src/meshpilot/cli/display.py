"""Rich display for agent runs.

Implements the progress sink: progress lines print dimmed as they
arrive, mode changes print as a colored marker, and the final answer
renders in a panel. Also renders the ``tools`` listing.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from meshpilot.agent.progress import AgentMode

if TYPE_CHECKING:
    from collections.abc import Sequence

    from meshpilot.mesh.catalog import Connection
    from meshpilot.tools.base import ToolDescriptor

_TRUNCATE_LEN = 80

_MODE_STYLES = {
    AgentMode.FAST: ("FAST", "cyan"),
    AgentMode.SMART: ("SMART", "magenta"),
}


def _truncate(text: str, limit: int = _TRUNCATE_LEN) -> str:
    """Truncate text to *limit* characters with an ellipsis."""
    if len(text) <= limit:
        return text
    return text[:limit].rstrip() + " ..."


class PilotDisplay:
    """Rich display for one agent run.

    Accepts an optional :class:`~rich.console.Console` for dependency
    injection in tests.
    """

    def __init__(self, console: Console | None = None) -> None:
        self._console = console or Console()
        self._start_time: float = 0.0

    # ── Lifecycle ─────────────────────────────────────────────

    def start(self) -> None:
        """Record the start time for elapsed calculations."""
        self._start_time = time.monotonic()

    @property
    def elapsed(self) -> float:
        """Seconds elapsed since :meth:`start` was called."""
        if self._start_time == 0.0:
            return 0.0
        return time.monotonic() - self._start_time

    # ── Progress sink ─────────────────────────────────────────

    def on_progress(self, message: str) -> None:
        self._console.print(Text(f"  {message}", style="dim"))

    def on_mode_change(self, mode: AgentMode) -> None:
        label, style = _MODE_STYLES.get(mode, (str(mode), "white"))
        self._console.print(Text(f"[{label}]", style=f"bold {style}"))

    # ── Output ────────────────────────────────────────────────

    def show_response(self, text: str) -> None:
        """Render the final answer with elapsed time."""
        self._console.print()
        self._console.print(
            Panel(
                text,
                title="[bold green]Answer[/bold green]",
                subtitle=f"{self.elapsed:.1f}s",
                border_style="green",
            )
        )

    def show_tools(
        self,
        local: Sequence[ToolDescriptor],
        connections: Sequence[Connection],
    ) -> None:
        """Render local tools and mesh connections as tables."""
        table = Table(title="Local tools", show_lines=False)
        table.add_column("Name", style="cyan")
        table.add_column("Description")
        for tool in local:
            table.add_row(tool.name, _truncate(tool.description))
        self._console.print(table)

        if not connections:
            self._console.print(Text("No mesh connections available.", style="dim"))
            return

        conn_table = Table(title="Mesh connections")
        conn_table.add_column("ID", style="cyan")
        conn_table.add_column("Title")
        conn_table.add_column("Tools", justify="right")
        for conn in connections:
            conn_table.add_row(conn.id, conn.title, str(conn.tool_count))
        self._console.print(conn_table)
