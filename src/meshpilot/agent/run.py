"""Per-invocation agent state."""

from __future__ import annotations

from dataclasses import dataclass, field

from meshpilot.agent.guards import RouterLoopGuard
from meshpilot.agent.progress import AgentMode, BestEffortSink
from meshpilot.agent.tasklog import BestEffortTaskLog
from meshpilot.providers.base import ConversationMessage


@dataclass
class AgentRun:
    """State for one ``Agent.run`` call. Never shared between runs."""

    user_message: str
    history: list[ConversationMessage]
    sink: BestEffortSink
    task_log: BestEffortTaskLog
    router_guard: RouterLoopGuard
    task_id: str | None = None
    mode: AgentMode = AgentMode.FAST
    iterations: int = 0
    tools_used: list[str] = field(default_factory=list)
    images: list[str] = field(default_factory=list)

    def set_mode(self, mode: AgentMode) -> None:
        """Switch phase and notify the sink on a real change."""
        if mode is self.mode:
            return
        self.mode = mode
        self.sink.on_mode_change(mode)

    async def progress(self, message: str) -> None:
        self.sink.on_progress(message)
        await self.task_log.add_progress(self.task_id, message)

    async def record_tool(self, name: str) -> None:
        self.tools_used.append(name)
        await self.task_log.add_tool_used(self.task_id, name)

    def used(self, *names: str) -> bool:
        """True if any of *names* was executed earlier in this run."""
        return any(name in self.tools_used for name in names)
