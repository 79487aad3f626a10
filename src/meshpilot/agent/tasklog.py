"""Task log port and an in-memory implementation.

A task log keeps a short record of recent requests: status, progress
lines, tools used, the response. The agent writes to it through
:class:`BestEffortTaskLog`; a failing log never affects a run.
"""

from __future__ import annotations

import enum
import logging
import secrets
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)

MAX_TASKS = 10
MAX_PROGRESS = 20
MAX_MESSAGE_CHARS = 500
MAX_RESPONSE_CHARS = 2000


class TaskStatus(enum.StrEnum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class TaskProgress:
    timestamp: float
    message: str


@dataclass(slots=True)
class TaskRecord:
    """One logged request."""

    id: str
    user_message: str
    created_at: float
    updated_at: float
    status: TaskStatus = TaskStatus.PENDING
    response: str | None = None
    error: str | None = None
    progress: list[TaskProgress] = field(default_factory=list)
    tools_used: list[str] = field(default_factory=list)
    duration_ms: float | None = None


@runtime_checkable
class TaskLog(Protocol):
    """Operations the agent performs on a task log."""

    async def create(self, user_message: str) -> str: ...

    async def update_status(
        self,
        task_id: str,
        status: TaskStatus,
        *,
        response: str | None = None,
        error: str | None = None,
    ) -> None: ...

    async def add_progress(self, task_id: str, message: str) -> None: ...

    async def add_tool_used(self, task_id: str, tool_name: str) -> None: ...


def _new_task_id(now: float) -> str:
    stamp = datetime.fromtimestamp(now, tz=UTC).strftime("%Y-%m-%d_%H%M%S")
    return f"task_{stamp}_{secrets.token_hex(2)}"


class InMemoryTaskLog:
    """Keeps the most recent tasks in memory, newest first."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._tasks: list[TaskRecord] = []

    async def create(self, user_message: str) -> str:
        now = self._clock()
        task = TaskRecord(
            id=_new_task_id(now),
            user_message=user_message[:MAX_MESSAGE_CHARS],
            created_at=now,
            updated_at=now,
        )
        self._tasks = [task, *self._tasks[: MAX_TASKS - 1]]
        return task.id

    async def update_status(
        self,
        task_id: str,
        status: TaskStatus,
        *,
        response: str | None = None,
        error: str | None = None,
    ) -> None:
        task = self.get(task_id)
        if task is None:
            return
        now = self._clock()
        task.status = status
        task.updated_at = now
        if response:
            task.response = response[:MAX_RESPONSE_CHARS]
        if error:
            task.error = error
        if status in (TaskStatus.COMPLETED, TaskStatus.ERROR):
            task.duration_ms = (now - task.created_at) * 1000

    async def add_progress(self, task_id: str, message: str) -> None:
        task = self.get(task_id)
        if task is None:
            return
        now = self._clock()
        task.progress.append(TaskProgress(timestamp=now, message=message))
        task.progress[:] = task.progress[-MAX_PROGRESS:]
        task.updated_at = now
        task.status = TaskStatus.IN_PROGRESS

    async def add_tool_used(self, task_id: str, tool_name: str) -> None:
        task = self.get(task_id)
        if task is not None and tool_name not in task.tools_used:
            task.tools_used.append(tool_name)

    def get(self, task_id: str) -> TaskRecord | None:
        return next((t for t in self._tasks if t.id == task_id), None)

    def recent(self, limit: int = MAX_TASKS) -> list[TaskRecord]:
        return self._tasks[:limit]

    def summary(self) -> dict[str, int]:
        """Task counts per status, plus the total."""
        counts = {status.value: 0 for status in TaskStatus}
        for task in self._tasks:
            counts[task.status.value] += 1
        counts["total"] = len(self._tasks)
        return counts


class BestEffortTaskLog:
    """Wraps a task log; failures are logged and swallowed.

    ``create`` returns None when the wrapped log failed; later calls
    with a None id do nothing.
    """

    def __init__(self, log: TaskLog | None = None) -> None:
        self._log = log

    async def create(self, user_message: str) -> str | None:
        if self._log is None:
            return None
        try:
            return await self._log.create(user_message)
        except Exception:
            logger.warning("Task log create failed", exc_info=True)
            return None

    async def update_status(
        self,
        task_id: str | None,
        status: TaskStatus,
        *,
        response: str | None = None,
        error: str | None = None,
    ) -> None:
        if self._log is None or task_id is None:
            return
        try:
            await self._log.update_status(
                task_id, status, response=response, error=error
            )
        except Exception:
            logger.warning("Task log update failed", exc_info=True)

    async def add_progress(self, task_id: str | None, message: str) -> None:
        if self._log is None or task_id is None:
            return
        try:
            await self._log.add_progress(task_id, message)
        except Exception:
            logger.warning("Task log progress failed", exc_info=True)

    async def add_tool_used(self, task_id: str | None, tool_name: str) -> None:
        if self._log is None or task_id is None:
            return
        try:
            await self._log.add_tool_used(task_id, tool_name)
        except Exception:
            logger.warning("Task log tool entry failed", exc_info=True)
