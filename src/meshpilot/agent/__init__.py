"""Two-phase agent: router, executor, guards and reporting ports."""

from meshpilot.agent.agent import Agent
from meshpilot.agent.progress import (
    AgentMode,
    BestEffortSink,
    CallbackSink,
    NullSink,
    ProgressSink,
)
from meshpilot.agent.tasklog import (
    BestEffortTaskLog,
    InMemoryTaskLog,
    TaskLog,
    TaskStatus,
)

__all__ = [
    "Agent",
    "AgentMode",
    "BestEffortSink",
    "BestEffortTaskLog",
    "CallbackSink",
    "InMemoryTaskLog",
    "NullSink",
    "ProgressSink",
    "TaskLog",
    "TaskStatus",
]
