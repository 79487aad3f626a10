"""Task history tools: LIST_TASKS, TASK_SUMMARY and GET_TASK.

Read-only views over the task log the agent writes to, so a model can
answer "what did I ask you earlier?" or check whether a request failed.
"""

from __future__ import annotations

import time
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from meshpilot.agent.tasklog import TaskStatus

if TYPE_CHECKING:
    from collections.abc import Callable

    from meshpilot.agent.tasklog import InMemoryTaskLog, TaskRecord

DEFAULT_LIST_LIMIT = 10
MAX_LIST_LIMIT = 50
LIST_MESSAGE_CHARS = 100
LIST_TOOLS_SHOWN = 5
LIST_PROGRESS_SHOWN = 3
SUMMARY_RECENT = 5
SUMMARY_MESSAGE_CHARS = 60


def _iso(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp, tz=UTC).isoformat()


def format_age(seconds: float) -> str:
    """Coarse age such as ``42s ago`` or ``3h ago``."""
    if seconds < 60:
        return f"{round(seconds)}s ago"
    if seconds < 3600:
        return f"{round(seconds / 60)}m ago"
    if seconds < 86400:
        return f"{round(seconds / 3600)}h ago"
    return f"{round(seconds / 86400)}d ago"


def _progress(task: TaskRecord, last: int | None = None) -> list[dict[str, str]]:
    entries = task.progress if last is None else task.progress[-last:]
    return [{"timestamp": _iso(p.timestamp), "message": p.message} for p in entries]


def _limit(value: Any) -> int:
    try:
        limit = int(value)
    except (TypeError, ValueError):
        return DEFAULT_LIST_LIMIT
    return max(1, min(limit, MAX_LIST_LIMIT))


class ListTasksTool:
    """List recent tasks, newest first."""

    def __init__(self, log: InMemoryTaskLog) -> None:
        self._log = log

    @property
    def name(self) -> str:
        return "LIST_TASKS"

    @property
    def description(self) -> str:
        return (
            "List recent tasks with their status. Shows what the user has asked "
            "for and whether it completed, failed, or is in progress."
        )

    @property
    def parameters_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "limit": {
                    "type": "number",
                    "description": (
                        f"How many tasks to return (default: {DEFAULT_LIST_LIMIT}, "
                        f"max: {MAX_LIST_LIMIT})"
                    ),
                },
                "status": {
                    "type": "string",
                    "enum": [s.value for s in TaskStatus],
                    "description": "Filter by status (optional)",
                },
            },
        }

    async def execute(self, **kwargs: Any) -> dict[str, Any]:
        limit = _limit(kwargs.get("limit", DEFAULT_LIST_LIMIT))
        tasks = self._log.recent(MAX_LIST_LIMIT)
        status = kwargs.get("status")
        if status:
            tasks = [t for t in tasks if t.status.value == status]
        tasks = tasks[:limit]
        return {
            "tasks": [
                {
                    "id": t.id,
                    "status": t.status.value,
                    "message": t.user_message[:LIST_MESSAGE_CHARS],
                    "toolsUsed": t.tools_used[:LIST_TOOLS_SHOWN],
                    "progress": _progress(t, LIST_PROGRESS_SHOWN),
                    "durationMs": t.duration_ms,
                    "error": t.error,
                    "createdAt": _iso(t.created_at),
                }
                for t in tasks
            ],
            "count": len(tasks),
        }


class TaskSummaryTool:
    """Counts per status plus a glance at the latest tasks."""

    def __init__(
        self, log: InMemoryTaskLog, *, clock: Callable[[], float] = time.time
    ) -> None:
        self._log = log
        self._clock = clock

    @property
    def name(self) -> str:
        return "TASK_SUMMARY"

    @property
    def description(self) -> str:
        return (
            "Get a summary of task history: total counts, recent tasks, "
            "success/error rates."
        )

    @property
    def parameters_schema(self) -> dict[str, Any]:
        return {"type": "object", "properties": {}}

    async def execute(self, **kwargs: Any) -> dict[str, Any]:
        now = self._clock()
        recent = []
        for task in self._log.recent(SUMMARY_RECENT):
            message = task.user_message[:SUMMARY_MESSAGE_CHARS]
            if len(task.user_message) > SUMMARY_MESSAGE_CHARS:
                message += "..."
            recent.append(
                {
                    "id": task.id,
                    "status": task.status.value,
                    "message": message,
                    "age": format_age(now - task.created_at),
                }
            )
        return {**self._log.summary(), "recentTasks": recent}


class GetTaskTool:
    """Full record of one task, progress included."""

    def __init__(self, log: InMemoryTaskLog) -> None:
        self._log = log

    @property
    def name(self) -> str:
        return "GET_TASK"

    @property
    def description(self) -> str:
        return (
            "Get full details of a specific task by ID, including all progress "
            "updates."
        )

    @property
    def parameters_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "taskId": {"type": "string", "description": "The task ID to retrieve"}
            },
            "required": ["taskId"],
        }

    async def execute(self, **kwargs: Any) -> dict[str, Any]:
        task_id = str(kwargs.get("taskId") or "")
        task = self._log.get(task_id)
        if task is None:
            return {"error": f"Task not found: {task_id}"}
        return {
            "id": task.id,
            "status": task.status.value,
            "userMessage": task.user_message,
            "response": task.response,
            "error": task.error,
            "toolsUsed": list(task.tools_used),
            "progress": _progress(task),
            "durationMs": task.duration_ms,
            "createdAt": _iso(task.created_at),
            "updatedAt": _iso(task.updated_at),
        }


def task_tools(
    log: InMemoryTaskLog,
) -> list[ListTasksTool | TaskSummaryTool | GetTaskTool]:
    """The three task history tools reading one shared log."""
    return [ListTasksTool(log), TaskSummaryTool(log), GetTaskTool(log)]
